'''
Evaluate native (mongo style) filters against plain document dictionaries.
'''
import logging
import datetime

import knowledge.exc as k_exc

import knowledge.lib.gis as k_gis
import knowledge.lib.time as k_time

logger = logging.getLogger(__name__)

def isoper(valu):
    '''
    Returns True if valu is a dict whose keys are all $ operators.
    '''
    if not isinstance(valu, dict) or not valu:
        return False
    return all(isinstance(k, str) and k.startswith('$') for k in valu.keys())

def getpath(doc, path):
    '''
    Resolve a dot separated path within a document.

    Args:
        doc (dict): The document.
        path (str): A dot separated property path such as ``meta.slug``.

    Notes:
        Arrays encountered along the path are traversed element wise.

    Returns:
        list: The values present at the path. An empty list means the path is missing.
    '''
    vals = [doc]
    for name in path.split('.'):
        nvals = []
        for valu in vals:
            if isinstance(valu, dict):
                if name in valu:
                    nvals.append(valu[name])
                continue

            if isinstance(valu, (list, tuple)):
                if name.isdigit():
                    indx = int(name)
                    if indx < len(valu):
                        nvals.append(valu[indx])
                    continue

                for item in valu:
                    if isinstance(item, dict) and name in item:
                        nvals.append(item[name])

        vals = nvals
        if not vals:
            break

    return vals

def _flat(vals):
    # candidates plus the members of any array candidates
    for valu in vals:
        yield valu
        if isinstance(valu, (list, tuple)):
            yield from valu

def _eq(valu, cmpv):
    if isinstance(valu, bool) or isinstance(cmpv, bool):
        return type(valu) is type(cmpv) and valu == cmpv

    if isinstance(valu, (list, tuple)) and isinstance(cmpv, (list, tuple)):
        if len(valu) != len(cmpv):
            return False
        return all(_eq(v, c) for (v, c) in zip(valu, cmpv))

    return valu == cmpv

def _equals(vals, cmpv):
    if cmpv is None and not vals:
        return True
    return any(_eq(valu, cmpv) for valu in _flat(vals))

def _cmpable(valu, cmpv):
    '''
    Return a value comparable with cmpv or None.
    '''
    if isinstance(cmpv, datetime.datetime):
        if isinstance(valu, datetime.datetime):
            return k_time.todatetime(valu)
        if isinstance(valu, str):
            try:
                return k_time.todatetime(valu)
            except k_exc.BadTypeValu:
                return None
        return None

    if k_gis.isnum(cmpv):
        if k_gis.isnum(valu):
            return valu
        return None

    if isinstance(cmpv, str) and isinstance(valu, str):
        return valu

    return None

def _compare(vals, cmpv, func):
    if isinstance(cmpv, datetime.datetime):
        cmpv = k_time.todatetime(cmpv)

    for valu in _flat(vals):
        valu = _cmpable(valu, cmpv)
        if valu is None:
            continue
        if func(valu, cmpv):
            return True
    return False

def _near(vals, oper):
    lalo, maxdist = nearinfo(oper)
    for valu in vals:
        cmpt = k_gis.pointlalo(valu)
        if cmpt is None:
            continue
        if maxdist is None or k_gis.haversine(lalo, cmpt) <= maxdist:
            return True
    return False

def _geoWithin(vals, oper):

    if not isinstance(oper, dict) or '$centerSphere' not in oper:
        raise k_exc.BadArg(mesg='$geoWithin requires a $centerSphere operand.', valu=oper)

    sphere = oper.get('$centerSphere')
    try:
        center, radians = sphere
        lalo = k_gis.pointlalo(center)
    except (TypeError, ValueError):
        lalo = None

    if lalo is None or not k_gis.isnum(radians):
        raise k_exc.BadArg(mesg='$centerSphere must be [[lon, lat], radians].', valu=sphere)

    for valu in vals:
        cmpt = k_gis.pointlalo(valu)
        if cmpt is None:
            continue
        if k_gis.haversine(lalo, cmpt, r=1) <= radians:
            return True
    return False

def nearinfo(oper):
    '''
    Parse a $near operand into ((lat, lon), maxdist).
    '''
    if not isinstance(oper, dict):
        raise k_exc.BadArg(mesg='$near requires a dictionary operand.', valu=oper)

    geom = oper.get('$geometry', oper)
    lalo = k_gis.pointlalo(geom)
    if lalo is None:
        raise k_exc.BadArg(mesg='$near requires a $geometry Point.', valu=oper)

    maxdist = oper.get('$maxDistance')
    if maxdist is not None and not k_gis.isnum(maxdist):
        raise k_exc.BadArg(mesg='$maxDistance must be a number of meters.', valu=maxdist)

    return lalo, maxdist

def _isin(vals, cmpv):
    if not isinstance(cmpv, (list, tuple)):
        raise k_exc.BadArg(mesg='$in / $nin require a list operand.', valu=cmpv)
    return any(_equals(vals, c) for c in cmpv)

def _matchOper(vals, oper, cmpv):

    if oper == '$eq':
        return _equals(vals, cmpv)

    if oper == '$ne':
        return not _equals(vals, cmpv)

    if oper == '$gt':
        return _compare(vals, cmpv, lambda x, y: x > y)

    if oper == '$gte':
        return _compare(vals, cmpv, lambda x, y: x >= y)

    if oper == '$lt':
        return _compare(vals, cmpv, lambda x, y: x < y)

    if oper == '$lte':
        return _compare(vals, cmpv, lambda x, y: x <= y)

    if oper == '$in':
        return _isin(vals, cmpv)

    if oper == '$nin':
        return not _isin(vals, cmpv)

    if oper == '$exists':
        return bool(vals) == bool(cmpv)

    if oper == '$not':
        return not _matchValu(vals, cmpv)

    if oper == '$near':
        return _near(vals, cmpv)

    if oper == '$geoWithin':
        return _geoWithin(vals, cmpv)

    # modifiers consumed by their operator
    if oper in ('$maxDistance', '$geometry'):
        return True

    raise k_exc.BadArg(mesg=f'Unsupported filter operator {oper}.', oper=oper)

def _matchValu(vals, cond):

    if isoper(cond):
        return all(_matchOper(vals, oper, cmpv) for (oper, cmpv) in cond.items())

    return _equals(vals, cond)

def _reqList(oper, valu):
    if not isinstance(valu, (list, tuple)) or not valu:
        raise k_exc.BadArg(mesg=f'{oper} requires a non-empty list of filters.', valu=valu)
    return valu

def match(doc, filt):
    '''
    Returns True if the document satisfies the filter.

    Args:
        doc (dict): A document.
        filt (dict): A native filter.  An empty filter matches every document.
    '''
    for name, cond in filt.items():

        if name == '$and':
            if not all(match(doc, f) for f in _reqList(name, cond)):
                return False
            continue

        if name == '$or':
            if not any(match(doc, f) for f in _reqList(name, cond)):
                return False
            continue

        if name == '$nor':
            if any(match(doc, f) for f in _reqList(name, cond)):
                return False
            continue

        if name.startswith('$'):
            raise k_exc.BadArg(mesg=f'Unsupported top level filter operator {name}.', oper=name)

        if not _matchValu(getpath(doc, name), cond):
            return False

    return True

def getNearSort(filt):
    '''
    Find the $near clause of a filter (at the top level or inside $and).

    Returns:
        ((str, (float, float)) or None): The property path and the (lat, lon) origin.
    '''
    for name, cond in filt.items():

        if name == '$and' and isinstance(cond, (list, tuple)):
            for subf in cond:
                if isinstance(subf, dict):
                    retn = getNearSort(subf)
                    if retn is not None:
                        return retn
            continue

        if name.startswith('$'):
            continue

        if isinstance(cond, dict) and '$near' in cond:
            lalo, _ = nearinfo(cond.get('$near'))
            return name, lalo

    return None

def distance(doc, path, lalo):
    '''
    Return the shortest distance in meters from lalo to a point at path ( or None ).
    '''
    dists = []
    for valu in getpath(doc, path):
        cmpt = k_gis.pointlalo(valu)
        if cmpt is not None:
            dists.append(k_gis.haversine(lalo, cmpt))

    if not dists:
        return None

    return min(dists)
