'''
Exceptions used by knowledge, all inheriting from KnowErr
'''

class KnowErr(Exception):

    def __init__(self, *args, **info):
        self.errinfo = info
        self.errname = self.__class__.__name__
        Exception.__init__(self, self._getExcMsg())

    def _getExcMsg(self):
        props = sorted(self.errinfo.items())
        displ = ' '.join(['%s=%r' % (p, v) for (p, v) in props])
        return '%s: %s' % (self.__class__.__name__, displ)

    def _setExcMesg(self):
        '''Should be called when self.errinfo is modified.'''
        self.args = (self._getExcMsg(),)

    def __setstate__(self, state):
        '''Pickle support.'''
        super(KnowErr, self).__setstate__(state)
        self._setExcMesg()

    def items(self):
        return {k: v for k, v in self.errinfo.items()}

    def get(self, name, defv=None):
        '''
        Return a value from the errinfo dict.

        Example:

            try:
                await store.save(entity)
            except KnowErr as e:
                slug = e.get('slug')

        '''
        return self.errinfo.get(name, defv)

    def set(self, name, valu):
        '''
        Set a value in the errinfo dict.
        '''
        self.errinfo[name] = valu
        self._setExcMesg()

    def setdefault(self, name, valu):
        '''
        Set a value in errinfo dict if it is not already set.
        '''
        if name in self.errinfo:
            return
        self.errinfo[name] = valu
        self._setExcMesg()

    def update(self, items: dict):
        '''Update multiple items in the errinfo dict at once.'''
        self.errinfo.update(items)
        self._setExcMesg()

class ValidationError(KnowErr):
    '''
    A document does not conform to the schema resolved for it.

    The ``errors`` info value is a list of {'path': ..., 'mesg': ...} dicts.
    '''
    pass

class SlugConflict(KnowErr):
    '''
    Another entity already holds the requested meta.slug value.
    '''
    pass

class AccessDenied(KnowErr):
    '''
    The creatorAddress presented does not own the document being mutated.
    '''
    pass

class NotFound(KnowErr): pass

class DuplicateRelationship(KnowErr):
    '''
    A relationship with the same (subject, predicate, object) already exists.
    '''
    pass

class SchemaNotFound(KnowErr):

    @classmethod
    def init(cls, name, mesg=None):
        if mesg is None:
            mesg = f'No schema registered for {name}.'
        return SchemaNotFound(mesg=mesg, name=name)

class BackendUnavailable(KnowErr):
    '''The storage backend failed or has been shut down.'''
    pass

class BadArg(KnowErr):
    ''' Improper function arguments '''
    pass

class BadKind(KnowErr):

    @classmethod
    def init(cls, kind, mesg=None):
        if mesg is None:
            mesg = f'Unknown entity kind {kind!r}.'
        return BadKind(mesg=mesg, kind=kind)

class BadTypeValu(KnowErr): pass

class BadConfValu(KnowErr):
    '''
    The configuration value provided is not valid.

    This should contain the config name, valu and mesg.
    '''
    pass

class NeedConfValu(KnowErr): pass

class BadState(KnowErr): pass

class DupIndxValu(KnowErr):
    '''
    A write would duplicate a value in a unique index.
    '''
    pass

class IsFini(KnowErr): pass

class SchemaViolation(KnowErr): pass

class SlabAlreadyOpen(KnowErr): pass

class NotMsgpackSafe(KnowErr): pass
class BadMsgpackData(KnowErr): pass
