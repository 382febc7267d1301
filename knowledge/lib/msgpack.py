'''
Msgpack helpers for document and index key storage.

Integers outside the 64 bit range are carried as ext types so that
documents round trip without loss.
'''
import logging

import msgpack
import msgpack.fallback as m_fallback

import knowledge.exc as k_exc

logger = logging.getLogger(__name__)

def _ext_en(item):
    if isinstance(item, int):
        if item > 0xffffffffffffffff:
            return msgpack.ExtType(0, item.to_bytes((item.bit_length() + 7) // 8, 'big'))
        if item < -0x8000000000000000:
            return msgpack.ExtType(1, item.to_bytes((item.bit_length() // 8) + 1, 'big', signed=True))
    return item

def _ext_un(code, byts):
    if code == 0:
        return int.from_bytes(byts, 'big')
    if code == 1:
        return int.from_bytes(byts, 'big', signed=True)
    raise k_exc.BadMsgpackData(mesg=f'Unknown msgpack ext code: {code}', code=code)

_packer_kwargs = {
    'use_bin_type': True,
    'default': _ext_en,
}

# a single reusable Packer when the C extension is available
pakr = msgpack.Packer(**_packer_kwargs)
if isinstance(pakr, m_fallback.Packer):  # pragma: no cover
    logger.warning('msgpack C extension is unavailable, using the slower pure python packer.')
    pakr = None

def _pack(item):
    if pakr is None:  # pragma: no cover
        return msgpack.packb(item, **_packer_kwargs)

    try:
        return pakr.pack(item)
    except Exception:
        pakr.reset()
        raise

def en(item):
    '''
    Serialize an object to msgpack bytes.

    Raises:
        NotMsgpackSafe: If the object contains values msgpack cannot encode.
    '''
    try:
        return _pack(item)
    except Exception as e:
        mesg = f'Cannot serialize {repr(item)[:40]}: {e}'
        raise k_exc.NotMsgpackSafe(mesg=mesg) from e

def un(byts, use_list=False, strict=False):
    '''
    De-serialize msgpack bytes.

    Args:
        byts (bytes): The msgpack bytes.
        use_list (bool): Decode arrays as lists rather than tuples.
        strict (bool): Raise BadMsgpackData on invalid utf8 instead of using replacement characters.
    '''
    errors = 'strict' if strict else 'replace'
    try:
        return msgpack.loads(byts, use_list=use_list, raw=False, strict_map_key=False,
                             unicode_errors=errors, ext_hook=_ext_un)
    except UnicodeDecodeError as e:
        raise k_exc.BadMsgpackData(mesg='Invalid utf8 string in msgpack data.') from e

def deepcopy(item, use_list=False):
    '''
    Copy a msgpack safe structure by packing then unpacking it.
    '''
    return un(en(item), use_list=use_list)
