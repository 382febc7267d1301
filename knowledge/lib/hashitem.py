import knowledge.common as k_common

def hashitem(item):
    '''
    Return a stable guid for a JSON style structure.

    Notes:
        Dict key order and list / tuple differences do not change the hash,
        and None values are ignored.
    '''
    return k_common.guid(normitem(item))

def normitem(item):
    if isinstance(item, dict):
        return sorted((normitem(k), normitem(v)) for (k, v) in item.items() if v is not None)

    if isinstance(item, (list, tuple)):
        return [normitem(i) for i in item if i is not None]

    return item
