'''
The process wide event loop used to run knowledge coroutines from sync code.
'''
import asyncio
import threading

_glob_loop = None
_glob_thrd = None

def initloop():
    '''
    Return the process wide loop, adopting the running loop or starting one in a daemon thread.
    '''
    global _glob_loop
    global _glob_thrd

    if _glob_loop is not None:
        return _glob_loop

    try:
        _glob_loop = asyncio.get_running_loop()
        _glob_thrd = threading.current_thread()

    except RuntimeError:
        _glob_loop = asyncio.new_event_loop()
        _glob_thrd = threading.Thread(target=_glob_loop.run_forever, daemon=True)
        _glob_thrd.start()

    return _glob_loop

def iAmLoop():
    initloop()
    return threading.current_thread() == _glob_thrd

def sync(coro, timeout=None):
    '''
    Run a coroutine on the global loop from another thread and return its result.
    '''
    return asyncio.run_coroutine_threadsafe(coro, initloop()).result(timeout)

def synchelp(f):
    '''
    Decorate a coroutine function so non-loop threads may call it synchronously.

    Example:

        @k_glob.synchelp
        async def getEntity(iden):
            ...

        ent = await getEntity(iden)   # on the loop
        ent = getEntity(iden)         # from any other thread
    '''
    def wrap(*args, **kwargs):
        coro = f(*args, **kwargs)
        if iAmLoop():
            return coro
        return sync(coro)

    return wrap
