'''
A document collection with unique, sparse and compound indexes stored in an LMDB slab.
'''
import hashlib
import logging
import contextlib

import lmdb

import knowledge.exc as k_exc
import knowledge.common as k_common

import knowledge.lib.match as k_match
import knowledge.lib.msgpack as k_msgpack

logger = logging.getLogger(__name__)

# lmdb keys are limited to 511 bytes
MAX_KEY_SIZE = 480

def indxkey(valu):
    '''
    Return the lmdb key bytes for an indexed value.
    '''
    byts = k_msgpack.en(valu)
    if len(byts) > MAX_KEY_SIZE:
        return b'\xff' + hashlib.sha256(byts).digest()
    return byts

class Index:
    '''
    A secondary index mapping property values to document sequence numbers.
    '''
    def __init__(self, coll, prop, unique=False, sparse=False):

        self.coll = coll
        self.prop = prop
        self.unique = unique
        self.sparse = sparse

        if isinstance(prop, (list, tuple)):
            self.props = tuple(prop)
        else:
            self.props = (prop,)

        self.name = ','.join(self.props)

        dbname = f'{coll.name}:indx:{self.name}'
        self.fresh = not coll.slab.dbexists(dbname)
        self.db = coll.slab.initdb(dbname, dupsort=not unique)

    def valu(self, doc):
        '''
        Return the indexed value of a document or novalu if it is skipped.
        '''
        vals = []
        for prop in self.props:
            found = k_match.getpath(doc, prop)
            vals.append(found[0] if found else None)

        if self.sparse and all(v is None for v in vals):
            return k_common.novalu

        if len(self.props) == 1:
            return vals[0]

        return tuple(vals)

    def key(self, doc):
        valu = self.valu(doc)
        if valu is k_common.novalu:
            return None
        return indxkey(valu)

    def seqs(self, valu):
        '''
        Yield the sequence bytes of documents holding the given value.
        '''
        lkey = indxkey(valu)
        if self.unique:
            byts = self.coll.slab.get(lkey, db=self.db)
            if byts is not None:
                yield byts
            return

        for _, byts in self.coll.slab.scanByDups(lkey, db=self.db):
            yield byts

    def reqUniq(self, doc, seqb=None):
        '''
        Raise DupIndxValu if another document already holds this document's value.
        '''
        if not self.unique:
            return

        lkey = self.key(doc)
        if lkey is None:
            return

        byts = self.coll.slab.get(lkey, db=self.db)
        if byts is not None and byts != seqb:
            valu = self.valu(doc)
            mesg = f'Duplicate value for unique index {self.name} in {self.coll.name}: {valu!r}'
            raise k_exc.DupIndxValu(mesg=mesg, prop=self.name, valu=valu)

    def add(self, doc, seqb):
        self.put(self.key(doc), seqb)

    def put(self, lkey, seqb):
        if lkey is None:
            return
        self.coll.slab.put(lkey, seqb, dupdata=not self.unique, db=self.db)

    def rem(self, doc, seqb):
        lkey = self.key(doc)
        if lkey is None:
            return

        if self.unique:
            self.coll.slab.delete(lkey, db=self.db)
            return

        self.coll.slab.delete(lkey, seqb, db=self.db)

class Collection:
    '''
    A named set of documents within a Slab.

    Args:
        slab (knowledge.lib.lmdbslab.Slab): The slab which stores the collection.
        name (str): The collection name.

    Notes:
        Every document must carry a unique ``id`` property.  Each write is
        committed before the method returns.
    '''
    def __init__(self, slab, name):

        self.slab = slab
        self.name = name

        self.indexes = {}

        self.docs = slab.initdb(f'{name}:docs')

        lkey = slab.lastkey(db=self.docs)
        self.nextseq = 0
        if lkey is not None:
            self.nextseq = k_common.int64un(lkey) + 1

        self.ids = self.addIndex('id', unique=True)

    def __repr__(self):
        return f'Collection: {self.name!r} in {self.slab!r}'

    @contextlib.contextmanager
    def _xact(self):

        if self.slab.isfini:
            raise k_exc.BackendUnavailable(mesg=f'{self!r} has been closed.', name=self.name)

        try:
            yield

        except k_exc.IsFini as e:
            raise k_exc.BackendUnavailable(mesg=f'{self!r} has been closed.', name=self.name) from e

        except lmdb.Error as e:
            logger.exception(f'LMDB failure in collection {self.name}.')
            if not self.slab.isfini:
                self.slab.abort()
            raise k_exc.BackendUnavailable(mesg=f'Storage failure in {self.name}: {e}', name=self.name) from e

        except Exception:
            # discard any partial document or index writes
            if not self.slab.isfini:
                self.slab.abort()
            raise

    def addIndex(self, prop, unique=False, sparse=False):
        '''
        Add (or open) an index on a property path or a tuple of property paths.

        Returns:
            Index: The index object.
        '''
        name = ','.join(prop) if isinstance(prop, (list, tuple)) else prop

        indx = self.indexes.get(name)
        if indx is not None:
            return indx

        with self._xact():

            indx = Index(self, prop, unique=unique, sparse=sparse)

            if indx.fresh:
                for lkey, doc in self._scanDocs():
                    indx.reqUniq(doc, seqb=lkey)
                    indx.add(doc, lkey)
                self.slab.forcecommit()

        self.indexes[name] = indx
        logger.debug(f'Collection {self.name} opened index {name} (unique={unique} sparse={sparse})')
        return indx

    def _scanDocs(self):
        for lkey, byts in self.slab.scanByFull(db=self.docs):
            yield lkey, k_msgpack.un(byts, use_list=True)

    def _loadDoc(self, seqb):
        byts = self.slab.get(seqb, db=self.docs)
        if byts is None:
            return None
        return k_msgpack.un(byts, use_list=True)

    def _getSeqById(self, iden):
        for seqb in self.ids.seqs(iden):
            return seqb
        return None

    def _candidates(self, filt):
        '''
        Yield (seqb, doc) tuples which may match the filter, using an index for a literal equality when possible.
        '''
        for name, cond in filt.items():

            if name.startswith('$'):
                continue

            indx = self.indexes.get(name)
            if indx is None:
                continue

            if cond is None or isinstance(cond, (dict, list, tuple)):
                continue

            seqs = sorted(set(indx.seqs(cond)))
            for seqb in seqs:
                doc = self._loadDoc(seqb)
                if doc is not None:
                    yield seqb, doc
            return

        yield from self._scanDocs()

    def _findItems(self, filt):
        if filt is None:
            filt = {}

        items = [(seqb, doc) for (seqb, doc) in self._candidates(filt) if k_match.match(doc, filt)]

        near = k_match.getNearSort(filt)
        if near is not None:
            path, lalo = near
            items.sort(key=lambda item: k_match.distance(item[1], path, lalo))

        return items

    def _reqUniq(self, doc, seqb=None):
        for indx in self.indexes.values():
            indx.reqUniq(doc, seqb=seqb)

    def _write(self, doc, seqb, olddoc=None):

        # encode everything before the first write
        byts = k_msgpack.en(doc)
        lkeys = [(indx, indx.key(doc)) for indx in self.indexes.values()]

        if olddoc is not None:
            for indx in self.indexes.values():
                indx.rem(olddoc, seqb)

        self.slab.put(seqb, byts, db=self.docs)

        for indx, lkey in lkeys:
            indx.put(lkey, seqb)

    def _delete(self, seqb, doc):
        for indx in self.indexes.values():
            indx.rem(doc, seqb)
        self.slab.delete(seqb, db=self.docs)

    def insert(self, doc):
        '''
        Insert a new document.

        Raises:
            DupIndxValu: If the document violates a unique index.

        Returns:
            dict: The inserted document.
        '''
        if doc.get('id') is None:
            raise k_exc.BadArg(mesg='Documents require an id property.')

        with self._xact():

            self._reqUniq(doc)

            seqb = k_common.int64en(self.nextseq)
            self._write(doc, seqb)
            self.slab.forcecommit()

            self.nextseq += 1

        return doc

    def replace(self, iden, doc):
        '''
        Replace the document with the given id.

        Returns:
            dict: The new document or None if no document has that id.
        '''
        doc['id'] = iden

        with self._xact():

            seqb = self._getSeqById(iden)
            if seqb is None:
                return None

            olddoc = self._loadDoc(seqb)

            self._reqUniq(doc, seqb=seqb)
            self._write(doc, seqb, olddoc=olddoc)
            self.slab.forcecommit()

        return doc

    def unset(self, iden, path):
        '''
        Remove a dotted property path from the document with the given id.

        Returns:
            bool: True if the property was present and removed.
        '''
        with self._xact():

            seqb = self._getSeqById(iden)
            if seqb is None:
                return False

            olddoc = self._loadDoc(seqb)
            newdoc = k_msgpack.deepcopy(olddoc, use_list=True)

            if not delpath(newdoc, path):
                return False

            self._write(newdoc, seqb, olddoc=olddoc)
            self.slab.forcecommit()

        return True

    def findOne(self, filt):
        for doc in self.find(filt, limit=1):
            return doc
        return None

    def find(self, filt=None, skip=0, limit=0):
        '''
        Find the documents matching a native filter.

        Args:
            filt (dict): The native filter.
            skip (int): The number of matches to skip.
            limit (int): The maximum number of documents to return ( 0 for no limit ).

        Notes:
            Documents are returned in insertion order unless the filter
            contains a $near clause, which orders them nearest first.

        Returns:
            list: The matching documents.
        '''
        with self._xact():
            items = self._findItems(filt)

        docs = [doc for (_, doc) in items]
        if skip:
            docs = docs[skip:]
        if limit:
            docs = docs[:limit]
        return docs

    def count(self, filt=None):
        if not filt:
            with self._xact():
                return self.slab.stat(db=self.docs)['entries']

        with self._xact():
            return len(self._findItems(filt))

    def deleteOne(self, filt):
        '''
        Delete the first document matching the filter.

        Returns:
            bool: True if a document was removed.
        '''
        with self._xact():

            items = self._findItems(filt)
            if not items:
                return False

            seqb, doc = items[0]
            self._delete(seqb, doc)
            self.slab.forcecommit()

        return True

    def deleteMany(self, filt):
        '''
        Delete every document matching the filter.

        Returns:
            int: The number of documents removed.
        '''
        with self._xact():

            items = self._findItems(filt)
            for seqb, doc in items:
                self._delete(seqb, doc)

            self.slab.forcecommit()

        return len(items)

    def flush(self):
        '''
        Remove every document (indexes are kept).

        Notes:
            Only the entries of indexes opened on this Collection are removed.

        Returns:
            int: The number of documents removed.
        '''
        count = self.deleteMany({})
        logger.warning(f'Flushed {count} documents from collection {self.name}.',
                       extra={'knowledge': {'collection': self.name, 'count': count}})
        return count

def delpath(doc, path):
    '''
    Delete a dot separated path from a document in place.

    Returns:
        bool: True if the path existed.
    '''
    names = path.split('.')

    item = doc
    for name in names[:-1]:
        if not isinstance(item, dict):
            return False
        item = item.get(name)

    if not isinstance(item, dict) or names[-1] not in item:
        return False

    item.pop(names[-1])
    return True
