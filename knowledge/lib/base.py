'''
An async lifecycle and event bus base class for knowledge objects.
'''
import asyncio
import inspect
import logging
import weakref
import contextlib
import collections

import knowledge.glob as k_glob

import knowledge.lib.coro as k_coro

logger = logging.getLogger(__name__)

class Base:
    '''
    An observable object with async construction and teardown.

    Example:

        class EntityCache(Base):

            async def __anit__(self, size):
                await Base.__anit__(self)
                self.size = size

        cache = await EntityCache.anit(1000)

    Notes:
        Instances must be constructed with the anit() class method.  Events
        are ``(name, info)`` tuples delivered to handlers registered with on()
        and to every function registered with link().
    '''
    def __init__(self):
        self.anitted = False
        assert inspect.stack()[1].function == 'anit', 'Base objects must be constructed via anit()'

    @classmethod
    async def anit(cls, *args, **kwargs):

        k_glob.initloop()

        self = cls()

        try:
            await self.__anit__(*args, **kwargs)

        except (asyncio.CancelledError, Exception):
            if self.anitted:
                await self.fini()
            raise

        try:
            await self.postAnit()

        except (asyncio.CancelledError, Exception):
            logger.exception(f'{cls.__name__} failed during postAnit().')
            await self.fini()
            raise

        return self

    async def __anit__(self):

        self.loop = asyncio.get_running_loop()

        # subclasses sharing a Base as a mixin only initialize it once
        if self.anitted:
            return

        self.anitted = True
        self.isfini = False
        self.entered = False
        self.finievt = None

        self.tofini = weakref.WeakSet()

        self._know_refs = 1
        self._know_funcs = collections.defaultdict(list)
        self._know_links = []
        self._fini_funcs = []

    async def postAnit(self):
        '''
        Called once __anit__() completes, before anit() returns the object.
        '''
        pass

    async def __aenter__(self):
        assert asyncio.get_running_loop() == self.loop
        self.entered = True
        return self

    async def __aexit__(self, exc, cls, tb):
        await self.fini()

    def onfini(self, func):
        '''
        Register a function, coroutine function or Base to be torn down by fini().
        '''
        if isinstance(func, Base):
            self.tofini.add(func)
            return

        self._fini_funcs.append(func)

    def incref(self):
        '''
        Add a reference which must be released by an additional fini() call.
        '''
        self._know_refs += 1
        return self._know_refs

    def link(self, func):
        '''
        Register a function which receives every event fired on this object.

        Example:

            know.link(bus.dist)
        '''
        self._know_links.append(func)

    def unlink(self, func):
        if func in self._know_links:
            self._know_links.remove(func)

    def on(self, evnt, func):
        '''
        Register a handler for the named event.

        Args:
            evnt (str): The event name (for example ``entity:save``).
            func: A function or coroutine function called with the event tuple.

        Notes:
            Registering the same handler twice has no effect.
        '''
        funcs = self._know_funcs[evnt]
        if func not in funcs:
            funcs.append(func)

    def off(self, evnt, func):
        funcs = self._know_funcs.get(evnt)
        if funcs and func in funcs:
            funcs.remove(func)

    @contextlib.contextmanager
    def onWith(self, evnt, func):
        '''
        Register a handler for the duration of a with block.
        '''
        self.on(evnt, func)
        try:
            yield self
        finally:
            self.off(evnt, func)

    async def fire(self, evtname, **info):
        '''
        Fire an event and return the ``(name, info)`` tuple.
        '''
        event = (evtname, info)
        if not self.isfini:
            await self.dist(event)
        return event

    async def dist(self, mesg):
        '''
        Deliver an event tuple to the named handlers and then to the links.

        Notes:
            A failing handler is logged and does not stop the delivery to the others.

        Returns:
            list: The handler return values.
        '''
        if self.isfini:
            return ()

        funcs = list(self._know_funcs.get(mesg[0], ()))
        funcs.extend(self._know_links)

        ret = []
        for func in funcs:
            try:
                ret.append(await k_coro.ornot(func, mesg))
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception('base %s error with mesg %s', self, mesg)

        return ret

    async def fini(self):
        '''
        Release a reference and tear the object down once none remain.

        Returns:
            int: The remaining reference count (or None if already torn down).
        '''
        assert self.anitted, f'{self.__class__.__name__} must be constructed via anit()'

        if self.isfini:
            return None

        self._know_refs -= 1
        if self._know_refs > 0:
            return self._know_refs

        self.isfini = True

        for base in list(self.tofini):
            await base.fini()

        for func in self._fini_funcs:
            try:
                await k_coro.ornot(func)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f'{self} fini function {func} failed.')

        self._know_funcs.clear()
        self._fini_funcs.clear()

        if self.finievt is not None:
            self.finievt.set()

        return 0

    async def waitfini(self, timeout=None):
        '''
        Wait for fini() to complete, returning False if the timeout expires first.
        '''
        if self.isfini:
            return True

        if self.finievt is None:
            self.finievt = asyncio.Event()

        return await k_coro.event_wait(self.finievt, timeout)

    def waiter(self, count, *names):
        '''
        Return a Waiter which collects count events with the given names (or any event).

        Example:

            waiter = know.waiter(2, 'entity:save')
            ...
            events = await waiter.wait(timeout=3)
        '''
        return Waiter(self, count, *names)

class Waiter:
    '''
    Collects events from a Base until a count is reached.
    '''
    def __init__(self, base, count, *names):

        self.base = base
        self.count = count
        self.names = names

        self.events = []
        self.event = asyncio.Event()

        if not names:
            base.link(self._onWaitEvent)

        for name in names:
            base.on(name, self._onWaitEvent)

    def _onWaitEvent(self, mesg):
        self.events.append(mesg)
        if len(self.events) >= self.count:
            self.event.set()

    async def wait(self, timeout=None):
        '''
        Return the collected events, or None if the timeout expires first.
        '''
        try:
            if not await k_coro.event_wait(self.event, timeout):
                return None
            return self.events

        finally:
            self.fini()

    def fini(self):

        if not self.names:
            self.base.unlink(self._onWaitEvent)

        for name in self.names:
            self.base.off(name, self._onWaitEvent)
