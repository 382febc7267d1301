import asyncio
import inspect

async def event_wait(event, timeout=None):
    '''
    Wait for an asyncio.Event, returning False if the timeout expires first.
    '''
    try:
        await asyncio.wait_for(event.wait(), timeout)
    except asyncio.TimeoutError:
        return False
    return True

async def ornot(func, *args, **kwargs):
    '''
    Call a sync or async callback, awaiting the result when it is a coroutine.
    '''
    retn = func(*args, **kwargs)
    if inspect.iscoroutine(retn):
        return await retn
    return retn
