'''
Translate abstract entity queries into native collection filters.
'''
import logging

import knowledge.exc as k_exc

import knowledge.lib.gis as k_gis
import knowledge.lib.time as k_time
import knowledge.lib.const as k_const
import knowledge.lib.match as k_match

from knowledge.registry import Kind

logger = logging.getLogger(__name__)

pointpath = 'location.point'

class QueryTranslator:
    '''
    A pure translator from an abstract filter into a native filter.

    The abstract filter supports the ``$near``, ``$geoWithin`` and ``$timeRange``
    operators, nested objects (flattened into dot paths) and native ``$`` operators
    which are passed through.

    Example:

        qt = QueryTranslator()
        filt = qt.build({'kind': 'place', 'meta': {'label': 'Home'}})
        # {'kind': 'place', 'meta.label': 'Home'}
    '''
    def build(self, query):
        '''
        Build a native filter from an abstract filter.

        Args:
            query (dict): The abstract filter. None or an empty dict matches everything.

        Returns:
            dict: The native filter.
        '''
        if not query:
            return {}

        if not isinstance(query, dict):
            raise k_exc.BadArg(mesg=f'Query must be a dictionary, not {type(query).__name__}.')

        filt = {}

        for name, valu in query.items():

            if valu is None:
                continue

            if name == '$near':
                filt[pointpath] = {'$near': self._near(valu)}
                continue

            if name == '$geoWithin':
                filt[pointpath] = {'$geoWithin': self._geoWithin(valu)}
                continue

            if name == '$timeRange':
                self._timeRange(filt, valu)
                continue

            if name.startswith('$'):
                if name == '$and' and isinstance(valu, (list, tuple)):
                    filt.setdefault('$and', []).extend(valu)
                    continue
                filt[name] = valu
                continue

            self._addProp(filt, name, valu)

        return filt

    def _addProp(self, filt, name, valu):

        if isinstance(valu, dict) and valu and not k_match.isoper(valu):
            for subn, subv in valu.items():
                if subv is None:
                    continue
                self._addProp(filt, f'{name}.{subn}', subv)
            return

        if name == 'kind':
            valu = self._normKind(valu)

        filt[name] = valu

    def _normKind(self, valu):

        if isinstance(valu, dict):
            retn = {}
            for oper, cmpv in valu.items():
                if oper in ('$eq', '$ne'):
                    cmpv = Kind.norm(cmpv).value
                elif oper in ('$in', '$nin') and isinstance(cmpv, (list, tuple)):
                    cmpv = [Kind.norm(v).value for v in cmpv]
                retn[oper] = cmpv
            return retn

        return Kind.norm(valu).value

    def _reqLatLon(self, oper, valu):

        if not isinstance(valu, dict):
            raise k_exc.BadArg(mesg=f'{oper} requires a dictionary with lat and lon.', valu=valu)

        lat = valu.get('lat')
        lon = valu.get('lon')
        if not k_gis.isnum(lat) or not k_gis.isnum(lon):
            raise k_exc.BadArg(mesg=f'{oper} requires numeric lat and lon values.', valu=valu)

        return lat, lon

    def _near(self, valu):

        lat, lon = self._reqLatLon('$near', valu)

        maxdist = valu.get('maxDistance')
        if maxdist is None:
            maxdist = valu.get('rad')
        if maxdist is None:
            maxdist = k_const.near_maxdist

        return {
            '$geometry': k_gis.mkpoint(lat, lon),
            '$maxDistance': maxdist,
        }

    def _geoWithin(self, valu):

        lat, lon = self._reqLatLon('$geoWithin', valu)

        radius = valu.get('radius')
        if not k_gis.isnum(radius):
            raise k_exc.BadArg(mesg='$geoWithin requires a numeric radius in meters.', valu=valu)

        return {'$centerSphere': [[lon, lat], radius / k_const.earth_radius_m]}

    def _timeRange(self, filt, valu):

        if not isinstance(valu, dict):
            raise k_exc.BadArg(mesg='$timeRange requires a dictionary.', valu=valu)

        after = valu.get('after')
        if after is not None:
            self._addOper(filt, 'time.begins', '$gte', k_time.todatetime(after))

        before = valu.get('before')
        if before is not None:
            self._addOper(filt, 'time.ends', '$lte', k_time.todatetime(before))

        during = valu.get('during')
        if during is not None:
            when = k_time.todatetime(during)
            clauses = [
                {'$or': [{'time.begins': {'$lte': when}}, {'time.begins': {'$exists': False}}]},
                {'$or': [{'time.ends': {'$gte': when}}, {'time.ends': {'$exists': False}}]},
            ]
            filt.setdefault('$and', []).extend(clauses)

    def _addOper(self, filt, name, oper, cmpv):
        curv = filt.get(name)
        if isinstance(curv, dict) and k_match.isoper(curv):
            filt[name] = dict(curv)
            filt[name][oper] = cmpv
            return
        filt[name] = {oper: cmpv}

_translator = QueryTranslator()

def build(query):
    '''
    Build a native filter from an abstract filter using the default translator.
    '''
    return _translator.build(query)
