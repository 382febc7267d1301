'''
Directed (subject, predicate, object) relationships between entity ids.
'''
import logging

import knowledge.exc as k_exc
import knowledge.common as k_common

import knowledge.lib.time as k_time
import knowledge.lib.const as k_const
import knowledge.lib.perms as k_perms

from knowledge.registry import Kind

logger = logging.getLogger(__name__)

triple = ('subject', 'predicate', 'object')

class RelationshipGraph:
    '''
    A relationship collection referencing entities by id.

    Args:
        coll (knowledge.lib.collection.Collection): The relationship collection.
        registry (knowledge.registry.SchemaRegistry): An initialized schema registry.
        anon_writable (bool): Whether relationships without a creatorAddress may be deleted by anyone.

    Notes:
        Entity ids are references by convention only. Relationships are never updated.
    '''
    def __init__(self, coll, registry, anon_writable=True):

        self.coll = coll
        self.registry = registry
        self.anon_writable = anon_writable

        self.coll.addIndex('id', unique=True)
        self.coll.addIndex(triple, unique=True)
        self.coll.addIndex('subject')
        self.coll.addIndex('object')
        self.coll.addIndex('predicate')
        self.coll.addIndex('meta.creatorAddress', sparse=True)

    async def createRelationship(self, subject, predicate, object, creatorAddress=None,
                                 rank=None, weight=None, edge=None, iden=None):
        '''
        Create a relationship between two entities.

        Args:
            subject (str): The id of the subject entity.
            predicate (str): The type of relationship ( e.g. contains, memberOf ).
            object (str): The id of the object entity.
            creatorAddress (str): The creator of the relationship.
            rank (int): Optional ordering rank.
            weight (float): Optional relationship weight.
            edge (dict): Optional extra data about the edge.
            iden (str): Optional explicit relationship id.

        Returns:
            dict: The stored relationship.

        Raises:
            DuplicateRelationship: If the (subject, predicate, object) triple already exists.
            ValidationError: If the relationship does not conform to the edge schema.
        '''
        if iden is None:
            iden = k_common.uuid7()

        rel = {
            'id': iden,
            'subject': subject,
            'predicate': predicate,
            'object': object,
            'time': {'begins': k_time.repr(k_common.now())},
        }

        if creatorAddress:
            rel['meta'] = {'creatorAddress': creatorAddress}

        if edge:
            rel['edge'] = edge

        if rank is not None:
            rel['rank'] = rank

        if weight is not None:
            rel['weight'] = weight

        self.registry.reqValid(Kind.EDGE.schemaid, rel)

        if self.coll.findOne({'subject': subject, 'predicate': predicate, 'object': object}) is not None:
            raise self._dupErr(subject, predicate, object)

        try:
            self.coll.insert(rel)

        except k_exc.DupIndxValu as e:
            if e.get('prop') != ','.join(triple):
                raise
            raise self._dupErr(subject, predicate, object) from e

        logger.info(f'Created relationship: {subject} {predicate} {object}',
                    extra={'knowledge': {'iden': iden, 'subject': subject, 'predicate': predicate, 'object': object}})
        return rel

    def _dupErr(self, subject, predicate, object):
        mesg = f'Relationship already exists: {subject} {predicate} {object}'
        return k_exc.DuplicateRelationship(mesg=mesg, subject=subject, predicate=predicate, object=object)

    async def getRelationship(self, iden):
        return self.coll.findOne({'id': iden})

    async def getRelationshipsBySubject(self, iden, predicate=None):
        '''
        Get the outgoing relationships of an entity.
        '''
        filt = {'subject': iden}
        if predicate:
            filt['predicate'] = predicate

        rels = self.coll.find(filt)
        logger.debug(f'Found {len(rels)} relationships for subject {iden}')
        return rels

    async def getRelationshipsByObject(self, iden, predicate=None):
        '''
        Get the incoming relationships of an entity.
        '''
        filt = {'object': iden}
        if predicate:
            filt['predicate'] = predicate

        rels = self.coll.find(filt)
        logger.debug(f'Found {len(rels)} relationships for object {iden}')
        return rels

    async def getChildren(self, iden):
        '''
        Get the ids of the entities contained by the given entity.
        '''
        return [rel['object'] for rel in await self.getRelationshipsBySubject(iden, k_const.contains)]

    async def getParent(self, iden):
        '''
        Get the id of the entity which contains the given entity ( or None ).
        '''
        for rel in await self.getRelationshipsByObject(iden, k_const.contains):
            return rel['subject']
        return None

    async def deleteRelationship(self, iden, creatorAddress=None):
        '''
        Delete a relationship by id.

        Returns:
            bool: True if the relationship was deleted, False if it does not exist.

        Raises:
            AccessDenied: If creatorAddress does not own the relationship.
        '''
        rel = self.coll.findOne({'id': iden})
        if rel is None:
            return False

        k_perms.reqAllowed(rel, creatorAddress, anon_writable=self.anon_writable, name='relationship')

        if not self.coll.deleteOne({'id': iden}):
            return False

        logger.info(f'Deleted relationship: {iden}', extra={'knowledge': {'iden': iden}})
        return True

    async def deleteRelationshipsForEntity(self, iden, creatorAddress=None):
        '''
        Delete every relationship where the entity is the subject or the object.

        Args:
            iden (str): The entity id.
            creatorAddress (str): Only delete relationships created by this creator.

        Returns:
            int: The number of relationships deleted.
        '''
        filt = {'$or': [{'subject': iden}, {'object': iden}]}
        if creatorAddress:
            filt['meta.creatorAddress'] = creatorAddress

        count = self.coll.deleteMany(filt)
        logger.info(f'Deleted {count} relationships for entity {iden}',
                    extra={'knowledge': {'iden': iden, 'count': count}})
        return count

    async def getAllRelationships(self, predicate=None, creatorAddress=None):
        filt = {}
        if predicate:
            filt['predicate'] = predicate
        if creatorAddress:
            filt['meta.creatorAddress'] = creatorAddress

        rels = self.coll.find(filt)
        logger.debug(f'Found {len(rels)} relationships')
        return rels

    async def count(self, predicate=None, creatorAddress=None):
        filt = {}
        if predicate:
            filt['predicate'] = predicate
        if creatorAddress:
            filt['meta.creatorAddress'] = creatorAddress
        return self.coll.count(filt)
