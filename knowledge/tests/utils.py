'''
Test helpers for the knowledge package.

KnowTest is a unittest.TestCase with short assertion names and helpers
which build isolated Knowledge objects, slabs and collections in temporary
directories.  Async test methods are run on the global loop, so run the
tests with pytest rather than selecting a single async test via unittest.
'''
import io
import os
import json
import types
import shutil
import inspect
import logging
import tempfile
import unittest
import threading
import contextlib

import knowledge.glob as k_glob
import knowledge.knowledge as k_knowledge

import knowledge.lib.const as k_const
import knowledge.lib.lmdbslab as k_lmdbslab
import knowledge.lib.collection as k_collection

logger = logging.getLogger(__name__)

TEST_MAP_SIZE = k_const.gibibyte

# ( lat, lon ) of places used by the geo tests
SF = (37.7749, -122.4194)
OAKLAND = (37.8044, -122.2711)
LA = (34.0522, -118.2437)

def norm(item):
    if isinstance(item, (list, tuple)):
        return tuple(norm(i) for i in item)
    if isinstance(item, dict):
        return {norm(k): norm(v) for (k, v) in item.items()}
    return item

class StreamEvent(io.StringIO, threading.Event):
    '''
    A StringIO which sets an Event once a watched string is written to it.
    '''
    def __init__(self, *args, **kwargs):
        io.StringIO.__init__(self, *args, **kwargs)
        threading.Event.__init__(self)
        self.mesg = ''

    def setMesg(self, mesg):
        self.mesg = mesg
        self.clear()

    def write(self, s):
        io.StringIO.write(self, s)
        if self.mesg and self.mesg in s:
            self.set()

    def jsonlines(self):
        return [json.loads(line) for line in self.getvalue().split('\n') if line]

class KnowTest(unittest.TestCase):

    def __init__(self, *args, **kwargs):
        unittest.TestCase.__init__(self, *args, **kwargs)

        # run async test methods on the global loop
        for name in dir(self):
            if not name.startswith('test_'):
                continue

            attr = getattr(self, name, None)
            if inspect.ismethod(attr) and inspect.iscoroutinefunction(attr):
                setattr(self, name, k_glob.synchelp(attr))

    @contextlib.contextmanager
    def getTestDir(self):
        '''
        Yield a temporary directory which is removed afterwards.
        '''
        dirn = tempfile.mkdtemp()
        try:
            yield dirn
        finally:
            shutil.rmtree(dirn, ignore_errors=True)

    @contextlib.contextmanager
    def mayTestDir(self, dirn):
        if dirn is not None:
            yield dirn
            return

        with self.getTestDir() as dirn:
            yield dirn

    @contextlib.asynccontextmanager
    async def getTestKnowledge(self, conf=None, dirn=None):
        '''
        Yield a Knowledge object in a temporary (or the given) directory.
        '''
        conf = dict(conf or {})
        conf.setdefault('slab:mapsize', TEST_MAP_SIZE)

        with self.mayTestDir(dirn) as dirn:
            async with await k_knowledge.Knowledge.anit(dirn, conf=conf) as know:
                yield know

    @contextlib.asynccontextmanager
    async def getTestSlab(self, dirn=None):
        with self.mayTestDir(dirn) as dirn:
            path = os.path.join(dirn, 'test.lmdb')
            async with await k_lmdbslab.Slab.anit(path, map_size=TEST_MAP_SIZE) as slab:
                yield slab

    @contextlib.asynccontextmanager
    async def getTestColl(self, name='test', dirn=None):
        async with self.getTestSlab(dirn=dirn) as slab:
            yield k_collection.Collection(slab, name)

    @contextlib.contextmanager
    def getLoggerStream(self, logname, mesg=''):
        '''
        Capture the output of a logger (at DEBUG) into a StreamEvent.

        Example:

            with self.getLoggerStream('knowledge.entities', 'Slug conflict') as stream:
                await know.addEntity(item)
                self.true(stream.wait(1))
        '''
        stream = StreamEvent()
        stream.setMesg(mesg)

        handler = logging.StreamHandler(stream)
        slogger = logging.getLogger(logname)

        level = slogger.level
        slogger.addHandler(handler)
        slogger.setLevel('DEBUG')

        try:
            yield stream
        finally:
            slogger.removeHandler(handler)
            slogger.setLevel(level)

    @contextlib.contextmanager
    def setTstEnvars(self, **props):
        '''
        Set environment variables (as strings) for the duration of a with block.
        '''
        olds = {key: os.environ.get(key) for key in props}

        for key, valu in props.items():
            os.environ[key] = str(valu)

        try:
            yield
        finally:
            for key, valu in olds.items():
                if valu is None:
                    os.environ.pop(key, None)
                else:
                    os.environ[key] = valu

    def eq(self, x, y, msg=None):
        self.assertEqual(norm(x), norm(y), msg=msg)

    def ne(self, x, y):
        self.assertNotEqual(norm(x), norm(y))

    def eqish(self, x, y, places=6, msg=None):
        self.assertAlmostEqual(x, y, places, msg=msg)

    def sorteq(self, x, y, msg=None):
        return self.eq(sorted(x), sorted(y), msg=msg)

    def true(self, x, msg=None):
        self.assertTrue(x, msg=msg)

    def false(self, x, msg=None):
        self.assertFalse(x, msg=msg)

    def nn(self, x, msg=None):
        self.assertIsNotNone(x, msg=msg)
        return x

    def none(self, x, msg=None):
        self.assertIsNone(x, msg=msg)

    def raises(self, *args, **kwargs):
        return self.assertRaises(*args, **kwargs)

    async def asyncraises(self, exc, coro):
        '''
        Assert a coroutine raises an exception and return the exception.
        '''
        with self.assertRaises(exc) as cm:
            await coro
        return cm.exception

    def isinstance(self, obj, cls, msg=None):
        self.assertIsInstance(obj, cls, msg=msg)

    def isin(self, member, container, msg=None):
        self.assertIn(member, container, msg=msg)

    def notin(self, member, container, msg=None):
        self.assertNotIn(member, container, msg=msg)

    def gt(self, x, y, msg=None):
        self.assertGreater(x, y, msg=msg)

    def lt(self, x, y, msg=None):
        self.assertLess(x, y, msg=msg)

    def len(self, x, obj, msg=None):
        if isinstance(obj, types.GeneratorType):
            obj = list(obj)
        self.eq(x, len(obj), msg=msg)
