import io
import os
import sys
import time
import uuid
import struct
import hashlib
import logging
import binascii
import traceback

import yaml

import knowledge.exc as k_exc
import knowledge.lib.const as k_const
import knowledge.lib.msgpack as k_msgpack
import knowledge.lib.structlog as k_structlog

try:
    from yaml import CSafeLoader as Loader
    from yaml import CSafeDumper as Dumper
except ImportError:  # pragma: no cover
    from yaml import SafeLoader as Loader
    from yaml import SafeDumper as Dumper

class NoValu:
    pass

class Tombstone:
    '''
    The explicit "delete this key" value for partial updates.
    '''
    def __repr__(self):
        return 'tombstone'

novalu = NoValu()
tombstone = Tombstone()

logger = logging.getLogger(__name__)

def now():
    '''
    Return the current epoch time in milliseconds.
    '''
    return time.time_ns() // 1000000

def guid(valu=None):
    '''
    Return a 32 character hex identifier.

    Args:
        valu: If provided, the msgpack safe value is hashed to a stable guid.
    '''
    if valu is None:
        return binascii.hexlify(os.urandom(16)).decode('utf8')
    return hashlib.md5(k_msgpack.en(valu), usedforsecurity=False).hexdigest()

def uuid7(tick=None):
    '''
    Get a time ordered UUID (version 7) string.

    Args:
        tick (int): Optional epoch milliseconds to embed. Defaults to now().

    Notes:
        Values generated in different milliseconds sort in generation order
        when compared as strings.

    Returns:
        str: The canonical 36 character UUID text.
    '''
    if tick is None:
        tick = now()

    rand = int.from_bytes(os.urandom(10), 'big')

    valu = (tick & 0xffffffffffff) << 80
    valu |= 0x7 << 76
    valu |= ((rand >> 62) & 0xfff) << 64
    valu |= 0x2 << 62
    valu |= rand & 0x3fffffffffffffff

    return str(uuid.UUID(int=valu))

def isdel(valu):
    '''
    Returns True if the value of a partial update means "delete this key".
    '''
    return valu is None or isinstance(valu, Tombstone)

def genpath(*paths):
    '''
    Join path elements and expand ``~`` and environment variables into an absolute path.
    '''
    path = os.path.expandvars(os.path.expanduser(os.path.join(*paths)))
    return os.path.abspath(path)

def gendir(*paths, mode=0o700):
    '''
    Return the absolute directory path for the path elements, creating it if needed.
    '''
    path = genpath(*paths)
    if os.path.islink(path):
        path = os.readlink(path)

    os.makedirs(path, mode=mode, exist_ok=True)
    return path

def yamlloads(data):
    return yaml.load(data, Loader)

def yamlload(*paths):
    '''
    Load a yaml file, returning None if it does not exist.
    '''
    path = genpath(*paths)
    if not os.path.isfile(path):
        return None

    with io.open(path, 'rb') as fd:
        return yamlloads(fd)

def yamlsave(obj, *paths):
    '''
    Write an object to a yaml file, replacing any previous contents.
    '''
    path = genpath(*paths)
    gendir(os.path.dirname(path))

    with io.open(path, 'wb') as fd:
        yaml.dump(obj, stream=fd, encoding='utf8', allow_unicode=True,
                  default_flow_style=False, Dumper=Dumper)

_Int64be = struct.Struct('>Q')

def int64en(i):
    '''
    Pack an unsigned int into 8 big-endian bytes so keys sort numerically.
    '''
    return _Int64be.pack(i)

def int64un(b):
    return _Int64be.unpack(b)[0]

def envbool(name, defval='false'):
    '''
    Return False if the envar is "0" or "false" (in any case), otherwise True.
    '''
    return os.getenv(name, defval).lower() not in ('0', 'false')

def normLogLevel(valu):
    '''
    Normalize a log level name or number to a logging module level int.

    Raises:
        BadArg: If the value is not a known log level.
    '''
    if isinstance(valu, str):
        text = valu.strip()
        if text.isdigit():
            return normLogLevel(int(text))

        levl = k_const.LOG_LEVEL_CHOICES.get(text.upper())
        if levl is None:
            raise k_exc.BadArg(mesg=f'Invalid log level: {valu}', valu=valu)
        return levl

    if isinstance(valu, int) and valu in k_const.LOG_LEVEL_INVERSE_CHOICES:
        return valu

    raise k_exc.BadArg(mesg=f'Invalid log level: {valu!r}', valu=valu)

def setlogging(mlogger, defval=None, structlog=False, datefmt=None):
    '''
    Configure the root logger for a process hosting the knowledge layer.

    Args:
        mlogger (logging.Logger): The logger which reports the chosen level.
        defval (str): The log level used when KNOWLEDGE_LOG_LEVEL is not set.
        structlog (bool): Emit JSON lines unless KNOWLEDGE_LOG_STRUCT says otherwise.
        datefmt (str): Optional strftime format string.

    Returns:
        dict: The resolved logging options.
    '''
    levl = os.getenv('KNOWLEDGE_LOG_LEVEL', defval)
    datefmt = os.getenv('KNOWLEDGE_LOG_DATEFORMAT', datefmt)
    structlog = envbool('KNOWLEDGE_LOG_STRUCT', 'true' if structlog else 'false')

    ret = {'defval': levl, 'structlog': structlog, 'datefmt': datefmt}
    if levl is None:
        return ret

    levl = normLogLevel(levl)

    if structlog:
        handler = logging.StreamHandler()
        handler.setFormatter(k_structlog.JsonFormatter(datefmt=datefmt))
        logging.basicConfig(level=levl, handlers=(handler,), force=True)
    else:
        logging.basicConfig(level=levl, format=k_const.LOG_FORMAT, datefmt=datefmt, force=True)

    mlogger.info('log level set to %s', k_const.LOG_LEVEL_INVERSE_CHOICES.get(levl))
    return ret

def err(e, fulltb=False):
    '''
    Return an (errname, info) tuple describing an exception being handled.
    '''
    info = {}

    tbinfo = traceback.extract_tb(sys.exc_info()[2])
    if tbinfo:
        last = tbinfo[-1]
        info.update({
            'efile': os.path.basename(last.filename),
            'eline': last.lineno,
            'esrc': last.line,
            'ename': last.name,
        })

    if isinstance(e, k_exc.KnowErr):
        info.update(e.items())
    else:
        info['mesg'] = str(e)

    if fulltb:
        info['etb'] = traceback.format_exc().rstrip('\n')

    return (e.__class__.__name__, info)

def trimText(text, n=256, placeholder='...'):
    '''
    Trim text longer than n characters so that it ends with the placeholder.
    '''
    if len(text) <= n:
        return text
    return text[:n - len(placeholder)] + placeholder
