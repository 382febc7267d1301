'''
The Knowledge layer: entities, relationships and schemas backed by an LMDB slab.
'''
import logging

import knowledge.exc as k_exc
import knowledge.common as k_common
import knowledge.entities as k_entities
import knowledge.registry as k_registry
import knowledge.relationships as k_relationships

import knowledge.lib.base as k_base
import knowledge.lib.const as k_const
import knowledge.lib.perms as k_perms
import knowledge.lib.config as k_config
import knowledge.lib.lmdbslab as k_lmdbslab
import knowledge.lib.collection as k_collection

logger = logging.getLogger(__name__)

class Knowledge(k_base.Base):
    '''
    Load, save and query a collection of entities and the relationships between them.

    Example:

        async with await Knowledge.anit('/path/to/dirn') as know:

            item = await know.addEntity({'meta': {'label': 'Visitors', 'slug': 'visitors'}}, kind='group')

            for item in await know.findNearby(37.7749, -122.4194, maxDistance=5000):
                print(item['meta']['label'])

    Notes:
        The following events are fired on the Knowledge object:

        - ``entity:save``   (iden=, kind=, entity=)
        - ``entity:del``    (iden=, edges=)
        - ``edge:add``      (iden=, subject=, predicate=, object=, edge=)
        - ``edge:del``      (iden=) or (entity=, count=)
    '''
    confbase = {}  # type: ignore
    confdefs = {
        'collection:entities': {
            'description': 'The name of the entity collection.',
            'type': 'string',
            'minLength': 1,
            'default': 'entities',
        },
        'collection:relationships': {
            'description': 'The name of the relationship collection.',
            'type': 'string',
            'minLength': 1,
            'default': 'relationships',
        },
        'flush': {
            'description': 'Delete all entities and relationships during startup.',
            'type': 'boolean',
            'default': False,
        },
        'slab:mapsize': {
            'description': 'The initial LMDB map size in bytes.',
            'type': 'integer',
            'minimum': k_const.mebibyte,
            'default': k_const.gibibyte,
        },
        'validate': {
            'description': 'Validate entities against their kind schema by default.',
            'type': 'boolean',
            'default': True,
        },
        'slug:conflict': {
            'description': 'The default strategy for a meta.slug which is already held by another entity.',
            'type': 'string',
            'enum': list(k_const.slug_strategies),
            'default': 'reject',
        },
        'anon:writable': {
            'description': 'Allow anyone to modify or delete entities and relationships without a creatorAddress.',
            'type': 'boolean',
            'default': True,
        },
    }

    async def __anit__(self, dirn, conf=None):

        await k_base.Base.__anit__(self)

        if conf is None:
            conf = {}

        self.dirn = k_common.gendir(dirn)
        self.conf = self._initKnowConf(conf)

        entname = self.conf.get('collection:entities')
        relname = self.conf.get('collection:relationships')
        if entname == relname:
            mesg = 'The entity and relationship collections must have different names.'
            raise k_exc.BadConfValu(mesg=mesg, name='collection:relationships', valu=relname)

        self.anon_writable = self.conf.get('anon:writable')

        self.registry = k_registry.SchemaRegistry()
        self.registry.initialize()

        path = k_common.gendir(self.dirn, 'slabs', 'knowledge.lmdb')
        self.slab = await k_lmdbslab.Slab.anit(path, map_size=self.conf.get('slab:mapsize'))
        self.onfini(self.slab.fini)

        self.entcoll = k_collection.Collection(self.slab, entname)
        self.relcoll = k_collection.Collection(self.slab, relname)

        self.entities = k_entities.EntityStore(self.entcoll, self.registry,
                                               anon_writable=self.anon_writable,
                                               validate=self.conf.get('validate'),
                                               slugConflict=self.conf.get('slug:conflict'))

        self.relationships = k_relationships.RelationshipGraph(self.relcoll, self.registry,
                                                               anon_writable=self.anon_writable)

        # the stores must open their indexes first so a flush clears them too
        if self.conf.get('flush'):
            ents = self.entcoll.flush()
            rels = self.relcoll.flush()
            logger.warning(f'Flushed {ents} entities and {rels} relationships at startup.')

        logger.info(f'Knowledge layer initialized at {self.dirn}',
                    extra={'knowledge': {'dirn': self.dirn, 'entities': entname, 'relationships': relname}})

    def _initKnowConf(self, conf):
        '''
        Initialize the Knowledge config during __anit__.

        Notes:
            Explicit values take precedence over environment variables,
            which take precedence over the knowledge.yaml file in the directory.

        Returns:
            knowledge.lib.config.Config: A config object.
        '''
        if isinstance(conf, dict):
            conf = k_config.Config.getConfFromKnow(self, conf=conf)
            conf.setConfFromEnvs()
            conf.setConfFromFile(k_common.genpath(self.dirn, 'knowledge.yaml'))

        conf.reqConfValid()  # Populate defaults
        return conf

    @classmethod
    def getEnvPrefix(cls):
        '''Get a list of envar prefixes for config resolution.'''
        return ('KNOWLEDGE', )

    async def _reqEntity(self, iden):
        item = await self.entities.getEntityById(iden)
        if item is None:
            raise k_exc.NotFound(mesg=f'Entity with id {iden!r} not found.', iden=iden)
        return item

    async def addEntity(self, entity, validate=None, kind=None, slugConflict=None, creator=None):
        '''
        Create or update ( deep merge ) an entity.

        Args:
            entity (dict): The entity. An id is generated when it is missing.
            validate (bool): Validate the entity ( defaults to the ``validate`` config option ).
            kind (str): Explicitly set the entity kind.
            slugConflict (str): The slug conflict strategy ( defaults to the ``slug:conflict`` config option ).
            creator (str): The creatorAddress of the caller.

        Returns:
            dict: The stored entity ( None for an obliterate ).
        '''
        oblt = isinstance(entity, dict) and entity.get('obliterate')
        iden = entity.get('id') if oblt else None

        existed = False
        if oblt and iden:
            existed = await self.entities.getEntityById(iden) is not None

        item = await self.entities.save(entity, validate=validate, slugConflict=slugConflict, kind=kind, creator=creator)

        if item is None:
            if existed:
                await self.fire('entity:del', iden=iden, edges=0)
            return None

        await self.fire('entity:save', iden=item['id'], kind=item['kind'], entity=item)
        return item

    async def queryEntities(self, query=None):
        return await self.entities.queryEntities(query)

    async def getEntityById(self, iden):
        return await self.entities.getEntityById(iden)

    async def getEntityBySlug(self, slug):
        return await self.entities.getEntityBySlug(slug)

    async def isSlugAvailable(self, slug):
        return await self.entities.isSlugAvailable(slug)

    async def getEntitiesByCreator(self, creator, limit=None, offset=None):
        return await self.entities.getEntitiesByCreator(creator, limit=limit, offset=offset)

    async def updateEntity(self, iden, updates, creatorAddress=None, validate=None, slugConflict=None):
        '''
        Deep merge updates into an existing entity.

        Raises:
            NotFound: If no entity has the given id.
            AccessDenied: If creatorAddress does not own the entity.
        '''
        if updates.get('obliterate'):
            raise k_exc.BadArg(mesg='updateEntity() can not obliterate, use deleteEntity().', iden=iden)

        item = await self._reqEntity(iden)
        k_perms.reqAllowed(item, creatorAddress, anon_writable=self.anon_writable)

        updates = dict(updates)
        updates.pop('obliterate', None)
        updates['id'] = iden

        item = await self.entities.save(updates, validate=validate, slugConflict=slugConflict, creator=creatorAddress)
        logger.info(f'Entity {iden} updated', extra={'knowledge': {'iden': iden, 'creator': creatorAddress}})

        await self.fire('entity:save', iden=iden, kind=item['kind'], entity=item)
        return item

    async def deleteEntity(self, iden, creatorAddress=None, cascade=False):
        '''
        Delete an entity.

        Args:
            iden (str): The entity id.
            creatorAddress (str): The creatorAddress of the caller.
            cascade (bool): Also delete every relationship referencing the entity.

        Raises:
            NotFound: If no entity has the given id.
            AccessDenied: If creatorAddress does not own the entity.
        '''
        item = await self._reqEntity(iden)
        k_perms.reqAllowed(item, creatorAddress, anon_writable=self.anon_writable)

        await self.entities.deleteEntity(iden)

        edges = 0
        if cascade:
            edges = await self.relationships.deleteRelationshipsForEntity(iden)

        await self.fire('entity:del', iden=iden, edges=edges)

    async def validateEntity(self, entity):
        return await self.entities.validateEntity(entity)

    async def findNearby(self, lat, lon, maxDistance=k_const.near_maxdist, **opts):
        return await self.entities.findNearby(lat, lon, maxDistance=maxDistance, **opts)

    async def findByTimeRange(self, timeQuery, **opts):
        return await self.entities.findByTimeRange(timeQuery, **opts)

    async def createRelationship(self, subject, predicate, object, creatorAddress=None,
                                 rank=None, weight=None, edge=None, iden=None):
        rel = await self.relationships.createRelationship(subject, predicate, object,
                                                          creatorAddress=creatorAddress,
                                                          rank=rank, weight=weight, edge=edge, iden=iden)

        await self.fire('edge:add', iden=rel['id'], subject=subject, predicate=predicate, object=object, edge=rel)
        return rel

    async def getRelationship(self, iden):
        return await self.relationships.getRelationship(iden)

    async def getRelationshipsBySubject(self, iden, predicate=None):
        return await self.relationships.getRelationshipsBySubject(iden, predicate=predicate)

    async def getRelationshipsByObject(self, iden, predicate=None):
        return await self.relationships.getRelationshipsByObject(iden, predicate=predicate)

    async def getChildren(self, iden):
        return await self.relationships.getChildren(iden)

    async def getParent(self, iden):
        return await self.relationships.getParent(iden)

    async def deleteRelationship(self, iden, creatorAddress=None):
        if not await self.relationships.deleteRelationship(iden, creatorAddress=creatorAddress):
            return False

        await self.fire('edge:del', iden=iden)
        return True

    async def deleteRelationshipsForEntity(self, iden, creatorAddress=None):
        count = await self.relationships.deleteRelationshipsForEntity(iden, creatorAddress=creatorAddress)
        if count:
            await self.fire('edge:del', entity=iden, count=count)
        return count

    async def getAllRelationships(self, predicate=None, creatorAddress=None):
        return await self.relationships.getAllRelationships(predicate=predicate, creatorAddress=creatorAddress)

    def getSchemaIds(self):
        return self.registry.getSchemaIds()

    def getSchema(self, name):
        return self.registry.getSchema(name)

    def getValidator(self, name):
        return self.registry.getValidator(name)
