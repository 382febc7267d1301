'''
JSON Schema backed configuration with envar and yaml file sources.
'''
import os
import copy
import logging
import collections.abc as c_abc

import yaml
import fastjsonschema

import knowledge.exc as k_exc
import knowledge.common as k_common

import knowledge.lib.hashitem as k_hashitem

from fastjsonschema.exceptions import JsonSchemaValueException

logger = logging.getLogger(__name__)

draft07 = 'http://json-schema.org/draft-07/schema#'

# compiled validators keyed by the hash of (schema, use_default)
_JsValidators = {}

def getJsSchema(confbase, confdefs):
    '''
    Build the object schema for a configurable class.

    Notes:
        Properties in confbase take precedence over those in confdefs and
        unknown properties are not allowed.
    '''
    props = dict(confdefs)
    props.update(confbase)
    return {
        '$schema': draft07,
        'type': 'object',
        'properties': props,
        'additionalProperties': False,
    }

def getJsValidator(schema, use_default=True):
    '''
    Return a cached validator function for a JSON Schema.

    Notes:
        The returned function raises SchemaViolation for invalid data.  When
        use_default is True, missing defaults are set on the validated data.
    '''
    schema.setdefault('$schema', draft07)

    key = k_hashitem.hashitem((schema, use_default))
    func = _JsValidators.get(key)
    if func is not None:
        return func

    compiled = fastjsonschema.compile(schema, use_default=use_default)

    def func(item):
        try:
            return compiled(item)
        except JsonSchemaValueException as e:
            raise k_exc.SchemaViolation(mesg=e.message, name=e.name) from e

    _JsValidators[key] = func
    return func

def make_envar_name(key, prefix=None):
    '''
    Return the envar name for a config key ( ``slug:conflict`` -> ``KNOWLEDGE_SLUG_CONFLICT`` ).
    '''
    name = key.replace(':', '_')
    if prefix:
        name = f'{prefix}_{name}'
    return name.upper()

class Config(c_abc.MutableMapping):
    '''
    A dict-like set of configuration values checked against a JSON Schema.

    Args:
        schema (dict): The draft 7 object schema for the configuration.
        conf (dict): Initial values, each validated as it is set.
        envar_prefixes (tuple): The prefixes used to resolve environment variables.

    Notes:
        Defaults are only filled in by reqConfValid().
    '''
    def __init__(self, schema, conf=None, envar_prefixes=('',)):

        self.json_schema = schema
        self.envar_prefixes = envar_prefixes

        self.conf = {}
        self.validator = getJsValidator(schema)

        self._prop_validators = {}
        for name, prop in schema.get('properties', {}).items():
            self._prop_validators[name] = getJsValidator(dict(prop))

        if conf is not None:
            for name, valu in conf.items():
                self[name] = valu

    @classmethod
    def getConfFromKnow(cls, know, conf=None, envar_prefixes=None):
        '''
        Build a Config from the confbase and confdefs of a class or instance.
        '''
        schema = getJsSchema(know.confbase, know.confdefs)
        if envar_prefixes is None:
            envar_prefixes = know.getEnvPrefix()
        return cls(schema, conf=conf, envar_prefixes=envar_prefixes)

    def setConfFromFile(self, path):
        '''
        Fill in unset values from a yaml file, if it exists.
        '''
        item = k_common.yamlload(path)
        if item is None:
            return

        for name, valu in item.items():
            self.setdefault(name, valu)

    def setConfFromEnvs(self):
        '''
        Fill in unset values from environment variables.

        Notes:
            Envar values are parsed with ``yaml.safe_load()`` so ``true`` and
            ``10`` become a bool and an int.  Properties marked ``hideconf``
            are never read from the environment.

        Returns:
            dict: The values which were set from envars.
        '''
        updates = {}
        for prefix in self.envar_prefixes:
            for name, envar in self.getEnvarMapping(prefix=prefix).items():

                text = os.getenv(envar)
                if text is None:
                    continue

                valu = yaml.safe_load(text)
                if name in self.conf:
                    if self.conf[name] != valu:
                        logger.warning(f'Config envar {envar} ignored because {name} is already set.')
                    continue

                self[name] = valu
                updates[name] = valu
                logger.debug(f'Set config value {name} from envar {envar}')

        return updates

    def getEnvarMapping(self, prefix=None):
        '''
        Return a dict of config names to the envar names they are read from.
        '''
        if prefix is None:
            prefix = self.envar_prefixes[0]

        return {
            name: make_envar_name(name, prefix=prefix)
            for (name, prop) in self.json_schema.get('properties', {}).items()
            if not prop.get('hideconf')
        }

    def reqConfValid(self):
        '''
        Validate the whole configuration and fill in defaults.

        Raises:
            BadConfValu: If the configuration is not valid.
        '''
        try:
            self.validator(self.conf)
        except k_exc.SchemaViolation as e:
            logger.exception('Configuration is invalid.')
            raise k_exc.BadConfValu(mesg=f'Invalid configuration: {e.get("mesg")}', name=e.get('name')) from None

    def reqConfValu(self, key):
        '''
        Return a configuration value.

        Raises:
            BadArg: If the key is not in the schema.
            NeedConfValu: If the key has no value.
        '''
        if key not in self.json_schema.get('properties', {}):
            raise k_exc.BadArg(mesg=f'Config key {key} is not in the configuration schema.', key=key)

        if key not in self.conf:
            raise k_exc.NeedConfValu(mesg=f'Config key {key} requires a value.', key=key)

        return self.conf[key]

    def reqKeyValid(self, key, valu):

        func = self._prop_validators.get(key)
        if func is None:
            raise k_exc.BadArg(mesg=f'Unknown config key: {key}', key=key)

        try:
            func(valu)
        except k_exc.SchemaViolation as e:
            raise k_exc.BadConfValu(mesg=f'Invalid value for config {key}: {e.get("mesg")}', name=key, valu=valu) from None

    def asDict(self):
        return copy.deepcopy(self.conf)

    def __repr__(self):
        return f'<{self.__class__.__module__}.{self.__class__.__name__} conf={self.conf}>'

    def __len__(self):
        return len(self.conf)

    def __iter__(self):
        return iter(self.conf)

    def __delitem__(self, key):
        del self.conf[key]

    def __setitem__(self, key, valu):
        self.reqKeyValid(key, valu)
        self.conf[key] = valu

    def __getitem__(self, key):
        return self.conf[key]
