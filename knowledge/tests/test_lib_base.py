import asyncio

import knowledge.lib.base as k_base

import knowledge.tests.utils as k_t_utils

class Hehe(k_base.Base):

    async def __anit__(self, foo):
        await k_base.Base.__anit__(self)
        self.foo = foo
        self.posted = False

    async def postAnit(self):
        self.posted = True

class Haha(k_base.Base):

    async def __anit__(self):
        await k_base.Base.__anit__(self)
        raise Exception('haha')

class BaseTest(k_t_utils.KnowTest):

    async def test_base_anit(self):

        hehe = await Hehe.anit(10)
        self.eq(10, hehe.foo)
        self.true(hehe.posted)
        self.false(hehe.isfini)

        await hehe.fini()
        self.true(hehe.isfini)

        with self.raises(AssertionError):
            Hehe()

        with self.raises(Exception):
            await Haha.anit()

    async def test_base_fire(self):

        base = await k_base.Base.anit()

        evts = []

        async def onsave(mesg):
            evts.append(mesg)

        base.on('entity:save', onsave)
        base.on('entity:save', onsave)
        base.on('edge:add', evts.append)

        event = await base.fire('entity:save', iden='visi')
        self.eq(event, ('entity:save', {'iden': 'visi'}))

        await base.fire('edge:add', iden='rel')
        await base.fire('entity:del', iden='visi')

        self.eq(evts, [('entity:save', {'iden': 'visi'}), ('edge:add', {'iden': 'rel'})])

        base.off('entity:save', onsave)
        base.off('entity:save', onsave)
        base.off('newp', onsave)

        await base.fire('entity:save', iden='newp')
        self.len(2, evts)

        with base.onWith('entity:del', evts.append):
            await base.fire('entity:del', iden='visi')
        await base.fire('entity:del', iden='visi')
        self.eq(evts[-1], ('entity:del', {'iden': 'visi'}))
        self.len(3, evts)

        await base.fini()

        # no events after fini
        self.eq(('entity:save', {'iden': 'post'}), await base.fire('entity:save', iden='post'))
        self.eq((), await base.dist(('entity:save', {})))

    async def test_base_link(self):

        base = await k_base.Base.anit()
        bus = await k_base.Base.anit()

        evts = []
        bus.on('entity:save', evts.append)

        base.link(bus.dist)
        await base.fire('entity:save', iden='visi')
        self.eq(evts, [('entity:save', {'iden': 'visi'})])

        base.unlink(bus.dist)
        base.unlink(bus.dist)
        await base.fire('entity:save', iden='newp')
        self.len(1, evts)

        await base.fini()
        await bus.fini()

    async def test_base_dist_exc(self):

        base = await k_base.Base.anit()

        evts = []

        def boom(mesg):
            raise Exception('boom')

        base.on('entity:save', boom)
        base.on('entity:save', evts.append)

        with self.getLoggerStream('knowledge.lib.base', 'error with mesg') as stream:
            await base.fire('entity:save', iden='visi')
            self.true(stream.wait(1))

        # handler failures do not stop distribution
        self.len(1, evts)

        await base.fini()

    async def test_base_fini(self):

        base = await k_base.Base.anit()
        kid = await k_base.Base.anit()

        fins = []

        async def onfini():
            fins.append('async')

        def boom():
            raise Exception('boom')

        base.onfini(kid)
        base.onfini(onfini)
        base.onfini(boom)
        base.onfini(lambda: fins.append('sync'))

        self.eq(2, base.incref())
        self.eq(1, await base.fini())
        self.false(base.isfini)

        self.eq(0, await base.fini())
        self.true(base.isfini)
        self.true(kid.isfini)
        self.eq(fins, ['async', 'sync'])

        self.none(await base.fini())
        self.true(await base.waitfini(timeout=1))

    async def test_base_ctxmgr(self):

        async with await k_base.Base.anit() as base:
            self.true(base.entered)

        self.true(base.isfini)

        base = await k_base.Base.anit()

        async def dofini():
            await asyncio.sleep(0)
            await base.fini()

        task = base.loop.create_task(dofini())
        self.true(await base.waitfini(timeout=5))
        await task

        base = await k_base.Base.anit()
        self.false(await base.waitfini(timeout=0.01))
        await base.fini()

    async def test_base_waiter(self):

        base = await k_base.Base.anit()

        waiter = base.waiter(2, 'entity:save')
        await base.fire('entity:save', iden='a')
        await base.fire('edge:add', iden='b')
        await base.fire('entity:save', iden='c')

        evts = await waiter.wait(timeout=1)
        self.eq([e[1]['iden'] for e in evts], ['a', 'c'])

        # waiters remove their handlers
        self.len(0, base._know_funcs.get('entity:save'))

        waiter = base.waiter(1)
        await base.fire('edge:add', iden='b')
        evts = await waiter.wait(timeout=1)
        self.eq(evts, [('edge:add', {'iden': 'b'})])
        self.len(0, base._know_links)

        waiter = base.waiter(1, 'newp')
        self.none(await waiter.wait(timeout=0.01))

        await base.fini()
