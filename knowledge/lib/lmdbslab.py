'''
An LMDB environment wrapper which batches writes into one long lived transaction.
'''
import os
import logging

import lmdb

import knowledge.exc as k_exc
import knowledge.common as k_common

import knowledge.lib.base as k_base
import knowledge.lib.const as k_const

logger = logging.getLogger(__name__)

# the map size doubles on growth until it reaches this size, then grows by it
MAX_DOUBLE_SIZE = 100 * k_const.gibibyte

def _mapsizeround(size):
    '''
    Round a map size up to a power of two, or to a multiple of MAX_DOUBLE_SIZE past it.
    '''
    if size >= MAX_DOUBLE_SIZE:
        return ((size + MAX_DOUBLE_SIZE - 1) // MAX_DOUBLE_SIZE) * MAX_DOUBLE_SIZE

    if size & (size - 1):
        return 1 << size.bit_length()

    return size

class Slab(k_base.Base):
    '''
    An LMDB environment for use from the asyncio loop thread.

    Notes:
        The slab holds one write transaction open at a time.  Writes are
        batched into it and made durable by forcecommit() (or fini()).  When
        the map fills, the transaction is replayed into a larger map.
    '''
    # open slabs by path, lmdb must not open the same environment twice
    allslabs = {}

    WARN_COMMIT_TIME_MS = int(float(os.environ.get('KNOWLEDGE_SLAB_COMMIT_WARN', '1.0')) * 1000)

    async def __anit__(self, path, map_size=k_const.gibibyte, maxsize=None, **opts):

        await k_base.Base.__anit__(self)

        if path in self.allslabs:
            raise k_exc.SlabAlreadyOpen(mesg=f'Slab at {path} is already open.', path=path)

        self.path = path
        self.maxsize = maxsize

        mdbpath = k_common.genpath(path, 'data.mdb')
        if os.path.isfile(mdbpath):
            map_size = max(map_size, os.path.getsize(mdbpath))

        self.mapsize = _mapsizeround(map_size)
        if maxsize is not None:
            self.mapsize = min(self.mapsize, maxsize)

        opts.setdefault('max_dbs', 128)
        opts.setdefault('writemap', True)
        opts.setdefault('map_async', True)

        k_common.gendir(path)

        try:
            self.lenv = lmdb.open(str(path), map_size=self.mapsize, **opts)
        except lmdb.Error as e:
            raise k_exc.BackendUnavailable(mesg=f'Unable to open lmdb at {path}: {e}', path=path) from None

        self.allslabs[path] = self

        self.scans = set()
        self.dbnames = {None: (None, False)}

        # writes since the last commit, replayed after growing a full map
        self.xactops = []
        self.replaying = False

        self.xact = None
        self.dirty = False
        self._beginXact()

        self.onfini(self._onSlabFini)

    def __repr__(self):
        return f'Slab: {self.path!r}'

    def _reqNotFini(self):
        if self.isfini:
            raise k_exc.IsFini(mesg=f'{self!r} has been shut down.')

    def _bumpScans(self):
        for scan in self.scans:
            scan.bump()

    async def _onSlabFini(self):

        while True:
            try:
                self._commitXact()
                break
            except lmdb.MapFullError:
                self._handleMapFull()

        self.lenv.close()
        self.allslabs.pop(self.path, None)

    def _beginXact(self):
        try:
            self.xact = self.lenv.begin(write=True)

        except lmdb.MapResizedError:
            # another process grew the map, a zero map size adopts its size
            self.lenv.set_mapsize(0)
            self.mapsize = self.lenv.info()['map_size']
            self.xact = self.lenv.begin(write=True)

        self.dirty = False

    def _commitXact(self):
        self._bumpScans()

        if self.xact is None:
            return

        self.xact.commit()
        self.xact = None
        self.xactops.clear()

    def _growMapSize(self):

        mapsize = _mapsizeround(self.mapsize + 1)

        if self.maxsize is not None:
            mapsize = min(mapsize, self.maxsize)
            if mapsize == self.mapsize:
                mesg = f'Slab at {self.path} is full at its max size of {self.maxsize} bytes.'
                raise k_exc.BackendUnavailable(mesg=mesg, path=self.path)

        logger.warning(f'Slab {self.path} growing map size to {mapsize // k_const.mebibyte} MiB',
                       extra={'knowledge': {'path': self.path, 'mapsize': mapsize}})

        self.lenv.set_mapsize(mapsize)
        self.mapsize = mapsize

    def _handleMapFull(self):
        '''
        Grow the map and replay the pending writes, returning the last write's result.
        '''
        self._bumpScans()

        while True:

            self.xact.abort()
            self.xact = None

            self._growMapSize()
            self.xact = self.lenv.begin(write=True)

            try:
                self.replaying = True
                retn = None
                for func, args, kwargs in self.xactops:
                    retn = func(*args, **kwargs)

            except lmdb.MapFullError:
                continue

            finally:
                self.replaying = False

            self.dirty = True
            return retn

    def initdb(self, name, dupsort=False):
        '''
        Open (creating if needed) a named database and return the name used to refer to it.
        '''
        if name in self.dbnames:
            return name

        while True:
            try:
                db = self.lenv.open_db(name.encode('utf8'), txn=self.xact, dupsort=dupsort)
                break
            except lmdb.MapFullError:
                self._handleMapFull()

        self.dirty = True
        self.forcecommit()

        self.dbnames[name] = (db, dupsort)
        return name

    def dbexists(self, name):
        # named databases are stored as keys in the main database
        return self.get(name.encode('utf8')) is not None

    def get(self, lkey, db=None):
        self._reqNotFini()
        return self.xact.get(lkey, db=self.dbnames[db][0])

    def lastkey(self, db=None):
        self._reqNotFini()
        with self.xact.cursor(db=self.dbnames[db][0]) as curs:
            if curs.last():
                return curs.key()
        return None

    def stat(self, db=None):
        self._reqNotFini()
        return self.xact.stat(db=self.dbnames[db][0])

    def scanByFull(self, db=None):
        '''
        Yield every (key, value) in a database.
        '''
        with Scan(self, db) as scan:
            if scan.first():
                yield from scan.iternext()

    def scanByDups(self, lkey, db=None):
        '''
        Yield the (key, value) items for every duplicate value of a key.
        '''
        with Scan(self, db) as scan:

            if not scan.set_key(lkey):
                return

            for item in scan.iternext():
                if item[0] != lkey:
                    return
                yield item

    def _xactWrite(self, meth, func, lkey, *args, db=None, **kwargs):

        self._reqNotFini()

        if not self.replaying:
            self.xactops.append((meth, (lkey,) + args, dict(kwargs, db=db)))

        self.dirty = True

        try:
            return func(self.xact, lkey, *args, db=self.dbnames[db][0], **kwargs)
        except lmdb.MapFullError:
            if self.replaying:
                raise
            return self._handleMapFull()

    def put(self, lkey, lval, dupdata=False, overwrite=True, db=None):
        return self._xactWrite(self.put, lmdb.Transaction.put, lkey, lval,
                               dupdata=dupdata, overwrite=overwrite, db=db)

    def delete(self, lkey, lval=None, db=None):
        return self._xactWrite(self.delete, lmdb.Transaction.delete, lkey, lval, db=db)

    def abort(self):
        '''
        Discard every write made since the last commit.
        '''
        if self.xact is None:
            return

        self._bumpScans()

        self.xact.abort()
        self.xact = None
        self.xactops.clear()

        self._beginXact()

    def forcecommit(self):
        '''
        Commit pending writes and begin a new transaction.

        Returns:
            bool: False if there was nothing to commit.
        '''
        if not self.dirty:
            return False

        size = len(self.xactops)

        tick = k_common.now()
        while True:
            try:
                self._commitXact()
                break
            except lmdb.MapFullError:
                self._handleMapFull()

        took = k_common.now() - tick
        if self.WARN_COMMIT_TIME_MS and took > self.WARN_COMMIT_TIME_MS:
            logger.warning(f'Commit of {size} writes in {self!r} took {took} ms.')

        self._beginXact()
        return True

class Scan:
    '''
    A cursor over one database of a Slab which survives commits.

    Notes:
        When the slab commits, the scan is bumped.  The next iteration
        opens a new cursor and resumes after the last yielded item.
    '''
    def __init__(self, slab, db):
        slab._reqNotFini()

        self.slab = slab
        self.db, self.dupsort = slab.dbnames[db]

        self.curs = None
        self.genr = None
        self.atitem = None
        self.bumped = False

    def __enter__(self):
        self.curs = self.slab.xact.cursor(db=self.db)
        self.slab.scans.add(self)
        return self

    def __exit__(self, exc, cls, tb):
        self.bump()
        self.slab.scans.discard(self)
        self.curs = None

    def _start(self, ok):
        if not ok:
            return False
        self.genr = self.curs.iternext()
        self.atitem = next(self.genr)
        return True

    def first(self):
        return self._start(self.curs.first())

    def set_key(self, lkey):
        return self._start(self.curs.set_key(lkey))

    def bump(self):
        if not self.bumped:
            self.curs.close()
            self.bumped = True

    def iternext(self):

        while True:

            yield self.atitem

            if self.bumped:

                if self.slab.isfini:
                    raise k_exc.IsFini(mesg=f'{self.slab!r} has been shut down.')

                self.bumped = False
                self.curs = self.slab.xact.cursor(db=self.db)

                if not self.resume():
                    return

                self.genr = self.curs.iternext()

                # skip the last yielded item if it is still present
                if self.atitem == self.curs.item():
                    next(self.genr)

            self.atitem = next(self.genr, None)
            if self.atitem is None:
                return

    def resume(self):
        '''
        Position the new cursor at (or just after) the last yielded item.
        '''
        lkey, lval = self.atitem

        if not self.dupsort:
            return self.curs.set_range(lkey)

        if self.curs.set_range_dup(lkey, lval):
            return True

        if not self.curs.set_range(lkey):
            return False

        # still on the same key means every dup was already yielded
        if self.curs.key() == lkey:
            return self.curs.next_nodup()

        return True
