'''
The EntityStore owns the lifecycle of entities: validation, enrichment,
identifiers, timestamps, ownership, slug policy and persistence.
'''
import copy
import logging

import knowledge.exc as k_exc
import knowledge.common as k_common
import knowledge.query as k_query

import knowledge.lib.gis as k_gis
import knowledge.lib.time as k_time
import knowledge.lib.const as k_const
import knowledge.lib.perms as k_perms

from knowledge.registry import Kind

logger = logging.getLogger(__name__)

def mergeDeep(base, overlay):
    '''
    Deep merge an overlay (patch) dictionary onto a base dictionary.

    Args:
        base (dict): The stored document.
        overlay (dict): The patch. A value of ``k_common.tombstone`` ( or None ) deletes the key.

    Notes:
        Dictionaries are merged recursively. Any other value ( including lists ) replaces the stored value.

    Returns:
        dict: A new merged dictionary. The base dictionary is not modified.
    '''
    retn = dict(base)

    for name, valu in overlay.items():

        if k_common.isdel(valu):
            retn.pop(name, None)
            continue

        curv = retn.get(name)
        if isinstance(valu, dict) and isinstance(curv, dict):
            retn[name] = mergeDeep(curv, valu)
            continue

        retn[name] = _clean(valu)

    return retn

def _clean(valu):
    # strip delete markers from a value which has nothing to merge into
    if isinstance(valu, dict):
        return {k: _clean(v) for (k, v) in valu.items() if not k_common.isdel(v)}
    return valu

def _normPage(name, valu):

    if valu is None:
        return 0

    if isinstance(valu, bool):
        raise k_exc.BadArg(mesg=f'Invalid {name} value: {valu!r}', name=name, valu=valu)

    try:
        valu = int(valu)
    except (TypeError, ValueError):
        raise k_exc.BadArg(mesg=f'Invalid {name} value: {valu!r}', name=name, valu=valu) from None

    return max(valu, 0)

class EntityStore:
    '''
    Validated, ownership checked storage of entities in a Collection.

    Args:
        coll (knowledge.lib.collection.Collection): The entity collection.
        registry (knowledge.registry.SchemaRegistry): An initialized schema registry.
        translator (knowledge.query.QueryTranslator): Optional query translator.
        anon_writable (bool): Whether entities without a creatorAddress may be written by anyone.
        validate (bool): The default for the save() validate argument.
        slugConflict (str): The default slug conflict strategy ( reject, replace or update ).
    '''
    def __init__(self, coll, registry, translator=None, anon_writable=True, validate=True, slugConflict='reject'):

        if translator is None:
            translator = k_query.QueryTranslator()

        self.coll = coll
        self.registry = registry
        self.translator = translator

        self.validate = validate
        self.slugConflict = slugConflict
        self.anon_writable = anon_writable

        self.coll.addIndex('id', unique=True)
        self.coll.addIndex('meta.slug', unique=True, sparse=True)
        self.coll.addIndex('kind', sparse=True)
        self.coll.addIndex('meta.creatorAddress', sparse=True)
        self.coll.addIndex('time.begins', sparse=True)
        self.coll.addIndex('time.ends', sparse=True)

    def _reqStrategy(self, slugConflict):
        if slugConflict not in k_const.slug_strategies:
            mesg = f'Unknown slug conflict strategy: {slugConflict!r}'
            raise k_exc.BadArg(mesg=mesg, strategy=slugConflict)

    async def save(self, entity, validate=None, slugConflict=None, kind=None, creator=None):
        '''
        Create, update ( deep merge ) or obliterate an entity.

        Args:
            entity (dict): The entity ( or partial update ) to save.
            validate (bool): Validate the merged entity against its schema.
            slugConflict (str): How to resolve a meta.slug held by another entity ( reject, replace or update ).
            kind (str): Explicitly set the entity kind.
            creator (str): The creatorAddress of the caller. Defaults to the entity meta.creatorAddress.

        Notes:
            An ``obliterate`` key with a true value hard deletes the entity.

        Returns:
            dict: The stored entity ( or None for an obliterate ).
        '''
        if not isinstance(entity, dict):
            raise k_exc.BadArg(mesg=f'Entity must be a dictionary, not {type(entity).__name__}.')

        if validate is None:
            validate = self.validate

        if slugConflict is None:
            slugConflict = self.slugConflict

        self._reqStrategy(slugConflict)

        entity = copy.deepcopy(entity)

        obliterate = entity.pop('obliterate', False)

        iden = entity.get('id')
        if k_common.isdel(iden) or not iden:
            iden = k_common.uuid7()

        if not isinstance(iden, str):
            raise k_exc.BadArg(mesg=f'Entity id must be a string: {iden!r}', iden=iden)

        entity['id'] = iden

        meta = entity.get('meta')
        if k_common.isdel(meta):
            meta = {}

        if not isinstance(meta, dict):
            raise k_exc.BadArg(mesg=f'Entity meta must be a dictionary: {meta!r}', iden=iden)

        requester = creator or k_perms.getCreator(entity)

        existing = self.coll.findOne({'id': iden})

        if obliterate:
            return await self._obliterate(iden, existing, requester)

        k_perms.reqAllowed(existing, requester, anon_writable=self.anon_writable)

        kindv = kind
        if kindv is None and not k_common.isdel(entity.get('kind')):
            kindv = entity.get('kind')
        if kindv is None and existing is not None:
            kindv = existing.get('kind')
        if kindv is None:
            kindv = Kind.THING

        entity['kind'] = Kind.norm(kindv).value

        # timestamps are owned by the store
        meta.pop('created', None)
        meta.pop('updated', None)

        if existing is None and creator and not k_perms.getCreator(entity):
            meta['creatorAddress'] = creator

        entity['meta'] = meta

        merged = mergeDeep(existing or {}, entity)

        self._enrichLocation(merged)
        self._stampTimes(merged, existing)

        if validate:
            self.registry.reqValidEntity(merged)

        slug = meta.get('slug')
        if slug and not k_common.isdel(slug):
            self._handleSlugConflict(iden, slug, existing, slugConflict)

        try:

            if existing is None:
                self.coll.insert(merged)
                logger.info(f'Created entity {iden}', extra={'knowledge': {'iden': iden, 'kind': merged['kind']}})
            else:
                self.coll.replace(iden, merged)
                logger.info(f'Updated entity {iden}', extra={'knowledge': {'iden': iden, 'kind': merged['kind']}})

        except k_exc.DupIndxValu as e:
            if e.get('prop') != 'meta.slug':
                raise
            mesg = f'Slug conflict: another entity already exists with slug {e.get("valu")!r}'
            raise k_exc.SlugConflict(mesg=mesg, slug=e.get('valu'), iden=iden) from e

        return merged

    async def _obliterate(self, iden, existing, requester):

        if existing is None:
            logger.debug(f'Obliterate for missing entity {iden}')
            return None

        k_perms.reqAllowed(existing, requester, anon_writable=self.anon_writable)

        if self.coll.deleteOne({'id': iden}):
            logger.info(f'Obliterated entity {iden}', extra={'knowledge': {'iden': iden}})

        return None

    def _enrichLocation(self, entity):
        '''
        Derive location.point from location lat / lon when no point exists yet.
        '''
        loc = entity.get('location')
        if not isinstance(loc, dict) or loc.get('point') is not None:
            return

        lat = loc.get('lat')
        lon = loc.get('lon')
        if not k_gis.isnum(lat) or not k_gis.isnum(lon):
            return

        alt = loc.get('alt')
        if not k_gis.isnum(alt):
            alt = None

        loc['point'] = k_gis.mkpoint(lat, lon, alt=alt)
        logger.debug(f'Enhanced entity {entity.get("id")} with GeoJSON point: [{lon}, {lat}]')

    def _stampTimes(self, entity, existing):

        tick = k_common.now()

        created = None
        if existing is not None:
            oldmeta = existing.get('meta') or {}
            created = oldmeta.get('created')

            # updated always advances
            prev = oldmeta.get('updated')
            if prev is not None:
                try:
                    tick = max(tick, k_time.parse(prev) + 1)
                except k_exc.BadTypeValu:
                    logger.warning(f'Ignoring invalid meta.updated {prev!r} on entity {entity["id"]}')

        meta = entity['meta']

        updated = k_time.repr(tick)
        meta['created'] = created or updated
        meta['updated'] = updated

        if not meta.get('label'):
            meta['label'] = entity['id']

    def _handleSlugConflict(self, iden, slug, existing, strategy):

        other = self.coll.findOne({'meta.slug': slug, 'id': {'$ne': iden}})
        if other is None:
            return

        othr = other.get('id')
        logger.warning(f'Slug conflict detected: {slug!r} already exists on entity {othr}',
                       extra={'knowledge': {'slug': slug, 'iden': iden, 'other': othr, 'strategy': strategy}})

        if strategy == 'replace':
            self.coll.unset(othr, 'meta.slug')
            logger.info(f'Removed slug {slug!r} from conflicting entity {othr}')
            return

        if strategy == 'update' and existing is not None:
            logger.info(f'Allowing slug update for existing entity {iden}')
            return

        mesg = f'Slug namespace conflict: {slug!r} is already taken by entity {othr}'
        raise k_exc.SlugConflict(mesg=mesg, slug=slug, iden=iden, other=othr)

    async def queryEntities(self, query=None):
        '''
        Query entities using an abstract filter.

        Args:
            query (dict): The abstract filter. The ``limit`` and ``offset`` keys control pagination.

        Returns:
            list: The matching entities ( possibly empty ).
        '''
        query = dict(query or {})

        limit = _normPage('limit', query.pop('limit', None))
        offset = _normPage('offset', query.pop('offset', None))

        filt = self.translator.build(query)

        docs = self.coll.find(filt, skip=offset, limit=limit)
        logger.debug(f'Entity query found {len(docs)} results', extra={'knowledge': {'count': len(docs)}})
        return docs

    async def getEntityById(self, iden):
        # None values are dropped from queries
        if iden is None:
            return None

        for doc in await self.queryEntities({'id': iden, 'limit': 1}):
            return doc
        return None

    async def getEntityBySlug(self, slug):
        if slug is None:
            return None

        for doc in await self.queryEntities({'meta': {'slug': slug}, 'limit': 1}):
            return doc
        return None

    async def isSlugAvailable(self, slug):
        return await self.getEntityBySlug(slug) is None

    async def getEntitiesByCreator(self, creator, limit=None, offset=None):
        '''
        Get the entities whose meta.creatorAddress is the given creator.
        '''
        if creator is None:
            return []

        query = {'meta.creatorAddress': creator, 'limit': limit, 'offset': offset}
        docs = await self.queryEntities(query)
        logger.info(f'Found {len(docs)} entities created by {creator}')
        return docs

    async def findNearby(self, lat, lon, maxDistance=k_const.near_maxdist, **opts):
        '''
        Find entities with a location.point within maxDistance meters, nearest first.
        '''
        query = {'$near': {'lat': lat, 'lon': lon, 'maxDistance': maxDistance}}
        query.update(opts)
        docs = await self.queryEntities(query)
        logger.info(f'Found {len(docs)} entities within {maxDistance}m of [{lat}, {lon}]')
        return docs

    async def findByTimeRange(self, timeQuery, **opts):
        '''
        Find entities by time interval using ``after``, ``before`` and ``during`` instants.
        '''
        query = {'$timeRange': timeQuery}
        query.update(opts)
        docs = await self.queryEntities(query)
        logger.info(f'Found {len(docs)} entities matching time criteria')
        return docs

    async def deleteEntity(self, iden):
        '''
        Remove an entity by id.

        Returns:
            bool: True if an entity was removed.
        '''
        if self.coll.deleteOne({'id': iden}):
            logger.info(f'Entity {iden} deleted', extra={'knowledge': {'iden': iden}})
            return True

        logger.warning(f'Entity {iden} not found for deletion')
        return False

    async def validateEntity(self, entity):
        return self.registry.validateEntity(entity)

    async def count(self, query=None):
        return self.coll.count(self.translator.build(query))
