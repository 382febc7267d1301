'''
Schema registration, entity kinds and document validation.
'''
import copy
import enum
import logging

import fastjsonschema

from fastjsonschema.exceptions import JsonSchemaValueException

import knowledge.exc as k_exc

import knowledge.lib.schemas as k_schemas

logger = logging.getLogger(__name__)

class Kind(enum.Enum):
    '''
    The closed set of entity kinds.
    '''
    THING = 'thing'
    PARTY = 'party'
    GROUP = 'group'
    PLACE = 'place'
    ORG = 'org'
    EDGE = 'edge'

    @classmethod
    def norm(cls, valu):
        '''
        Normalize a kind name (or Kind) into a Kind.

        Raises:
            BadKind: If the value is not one of the known kinds.
        '''
        if isinstance(valu, Kind):
            return valu

        try:
            return cls(valu)
        except ValueError:
            raise k_exc.BadKind.init(valu) from None

    @property
    def schemaid(self):
        return k_schemas.schemaid(self.value)

def _errinfo(e):
    path = '.'.join(str(p) for p in e.path[1:])
    return {'path': path, 'mesg': e.message}

class SchemaRegistry:
    '''
    A registry of composable JSON schemas which may $ref each other by $id.

    Args:
        schemas (list): Optional schema definitions to load instead of the built in ones.

    Example:

        reg = SchemaRegistry()
        reg.initialize()

        info = reg.validate('ka://schemas/core/thing/1.0.0', doc)
        if not info['valid']:
            for err in info['errors']:
                print(err['path'], err['mesg'])
    '''
    def __init__(self, schemas=None):

        if schemas is None:
            schemas = k_schemas.schemas

        self.defs = list(schemas)

        self.schemas = {}
        self.byname = {}
        self.validators = {}

        self.initialized = False

    def initialize(self):
        '''
        Register and compile every schema definition. Calling this more than once has no effect.
        '''
        if self.initialized:
            return

        for schema in self.defs:
            self.addSchema(schema)

        for iden in list(self.schemas.keys()):
            self._getCompiled(iden)

        self.initialized = True
        logger.info(f'Loaded {len(self.schemas)} JSON schemas.',
                    extra={'knowledge': {'schemas': list(self.schemas.keys())}})

    def addSchema(self, schema):
        '''
        Register a schema by its $id (and name, when present).
        '''
        iden = schema.get('$id')
        if iden is None:
            raise k_exc.BadArg(mesg='Schema must have an $id property.', name=schema.get('name'))

        schema = copy.deepcopy(schema)

        self.schemas[iden] = schema

        name = schema.get('name')
        if name is not None:
            self.byname[name] = schema

        # a replaced schema invalidates every compiled validator which may $ref it
        self.validators.clear()

        logger.debug(f'Added schema: {name or iden}')

    def _reqInit(self):
        if not self.initialized:
            raise k_exc.BadState(mesg='SchemaRegistry is not initialized. Call initialize() first.')

    def _resolveRef(self, uri):
        schema = self.schemas.get(uri)
        if schema is None:
            raise k_exc.SchemaNotFound.init(uri)
        return schema

    def _getCompiled(self, name):

        schema = self.getSchema(name)
        if schema is None:
            raise k_exc.SchemaNotFound.init(name)

        iden = schema.get('$id')

        func = self.validators.get(iden)
        if func is not None:
            return func

        func = fastjsonschema.compile(schema, handlers={'ka': self._resolveRef}, use_default=False)
        self.validators[iden] = func
        return func

    def getSchema(self, name):
        '''
        Get a schema definition by $id or name.

        Returns:
            dict: The schema or None.
        '''
        schema = self.schemas.get(name)
        if schema is not None:
            return schema
        return self.byname.get(name)

    def getSchemaIds(self):
        return list(self.schemas.keys())

    def getValidator(self, name):
        '''
        Get the compiled validation function for a schema $id or name.

        Notes:
            The returned function raises fastjsonschema.JsonSchemaValueException for invalid data.
        '''
        self._reqInit()
        return self._getCompiled(name)

    def validate(self, name, doc):
        '''
        Validate a document against a schema.

        Args:
            name (str): The schema $id or name.
            doc (dict): The document to validate.

        Returns:
            dict: A ``{'valid': bool, 'errors': [{'path': str, 'mesg': str}, ...]}`` dictionary.
        '''
        func = self.getValidator(name)

        try:
            func(doc)
        except JsonSchemaValueException as e:
            return {'valid': False, 'errors': [_errinfo(e)]}

        return {'valid': True, 'errors': []}

    def reqValid(self, name, doc):
        '''
        Validate a document against a schema and raise ValidationError on failure.
        '''
        info = self.validate(name, doc)
        if not info['valid']:
            mesg = f'Document is not valid for schema {name}: {info["errors"][0]["mesg"]}'
            raise k_exc.ValidationError(mesg=mesg, schema=name, errors=info['errors'])
        return doc

    def getSchemaId(self, entity):
        '''
        Resolve the schema $id for an entity from its kind.

        Returns:
            str: The schema $id or None if the entity has no kind.

        Raises:
            BadKind: If the entity has an unknown kind.
        '''
        kind = entity.get('kind')
        if kind is None:
            return None

        return Kind.norm(kind).schemaid

    def validateEntity(self, entity):
        '''
        Validate an entity against the schema for its kind.

        Notes:
            An entity without a kind is not validated. An unknown kind is reported as an error.

        Returns:
            dict: A ``{'valid': bool, 'errors': [...]}`` dictionary.
        '''
        self._reqInit()

        try:
            iden = self.getSchemaId(entity)
        except k_exc.BadKind as e:
            return {'valid': False, 'errors': [{'path': 'kind', 'mesg': e.get('mesg')}]}

        if iden is None:
            logger.debug(f'No kind for entity {entity.get("id")}, skipping validation.')
            return {'valid': True, 'errors': []}

        return self.validate(iden, entity)

    def reqValidEntity(self, entity):
        '''
        Validate an entity and raise ValidationError on failure.
        '''
        info = self.validateEntity(entity)
        if not info['valid']:
            mesg = f'Entity {entity.get("id")} is not valid: {info["errors"][0]["mesg"]}'
            raise k_exc.ValidationError(mesg=mesg, kind=entity.get('kind'), errors=info['errors'])
        return entity
