import copy
import datetime

import pytz

import knowledge.exc as k_exc
import knowledge.query as k_query

import knowledge.tests.utils as k_t_utils

class QueryTest(k_t_utils.KnowTest):

    def test_query_basics(self):

        qt = k_query.QueryTranslator()

        self.eq({}, qt.build(None))
        self.eq({}, qt.build({}))
        self.raises(k_exc.BadArg, qt.build, 'kind:place')
        self.raises(k_exc.BadArg, qt.build, [{'kind': 'place'}])

        # nested objects flatten into dot paths
        filt = qt.build({'meta': {'label': 'Home', 'props': {'rank': 10}}})
        self.eq(filt, {'meta.label': 'Home', 'meta.props.rank': 10})

        # operator objects are kept as they are
        filt = qt.build({'meta': {'props': {'rank': {'$gte': 10}}}, 'id': {'$in': ['a', 'b']}})
        self.eq(filt, {'meta.props.rank': {'$gte': 10}, 'id': {'$in': ['a', 'b']}})

        # None values are skipped
        self.eq({'meta.label': 'Home'}, qt.build({'kind': None, 'meta': {'label': 'Home', 'slug': None}}))

        # native operators pass through
        ors = [{'kind': 'place'}, {'kind': 'org'}]
        self.eq({'$or': ors}, qt.build({'$or': ors}))

        self.eq({'kind': 'place'}, k_query.build({'kind': 'place'}))

    def test_query_kind(self):

        qt = k_query.QueryTranslator()

        self.eq({'kind': 'place'}, qt.build({'kind': 'place'}))
        self.eq({'kind': {'$in': ['place', 'org']}}, qt.build({'kind': {'$in': ['place', 'org']}}))
        self.eq({'kind': {'$ne': 'edge'}}, qt.build({'kind': {'$ne': 'edge'}}))
        self.eq({'kind': {'$exists': True}}, qt.build({'kind': {'$exists': True}}))

        self.raises(k_exc.BadKind, qt.build, {'kind': 'newp'})
        self.raises(k_exc.BadKind, qt.build, {'kind': {'$in': ['place', 'newp']}})

    def test_query_near(self):

        qt = k_query.QueryTranslator()

        filt = qt.build({'$near': {'lat': 37.7749, 'lon': -122.4194, 'maxDistance': 5000}})
        self.eq(filt, {'location.point': {'$near': {
            '$geometry': {'type': 'Point', 'coordinates': [-122.4194, 37.7749]},
            '$maxDistance': 5000,
        }}})

        # rad is used when maxDistance is absent and 10km is the default
        filt = qt.build({'$near': {'lat': 37.7749, 'lon': -122.4194, 'rad': 100}})
        self.eq(100, filt['location.point']['$near']['$maxDistance'])

        filt = qt.build({'$near': {'lat': 0, 'lon': 0}})
        self.eq(10000, filt['location.point']['$near']['$maxDistance'])
        self.eq([0, 0], filt['location.point']['$near']['$geometry']['coordinates'])

        self.raises(k_exc.BadArg, qt.build, {'$near': {'lat': 37.7749}})
        self.raises(k_exc.BadArg, qt.build, {'$near': {'lat': '37.7749', 'lon': -122.4194}})
        self.raises(k_exc.BadArg, qt.build, {'$near': {'lat': True, 'lon': -122.4194}})
        self.raises(k_exc.BadArg, qt.build, {'$near': [37.7749, -122.4194]})

    def test_query_geowithin(self):

        qt = k_query.QueryTranslator()

        filt = qt.build({'$geoWithin': {'lat': 37.7749, 'lon': -122.4194, 'radius': 6378100}})
        self.eq(filt, {'location.point': {'$geoWithin': {'$centerSphere': [[-122.4194, 37.7749], 1.0]}}})

        self.raises(k_exc.BadArg, qt.build, {'$geoWithin': {'lat': 37.7749, 'lon': -122.4194}})
        self.raises(k_exc.BadArg, qt.build, {'$geoWithin': {'lon': -122.4194, 'radius': 10}})
        self.raises(k_exc.BadArg, qt.build, {'$geoWithin': 'newp'})

    def test_query_time(self):

        qt = k_query.QueryTranslator()

        after = datetime.datetime(2025, 1, 1, tzinfo=pytz.utc)
        before = datetime.datetime(2025, 12, 31, tzinfo=pytz.utc)

        filt = qt.build({'$timeRange': {'after': '2025-01-01T00:00:00Z', 'before': '2025-12-31T00:00:00Z'}})
        self.eq(filt, {
            'time.begins': {'$gte': after},
            'time.ends': {'$lte': before},
        })

        # millis and naive datetimes are UTC
        filt = qt.build({'$timeRange': {'after': 1735689600000, 'before': datetime.datetime(2025, 12, 31)}})
        self.eq(filt, {
            'time.begins': {'$gte': after},
            'time.ends': {'$lte': before},
        })

        # range bounds merge with an existing operator on the same path
        filt = qt.build({
            'time': {'begins': {'$lt': before}},
            '$timeRange': {'after': after},
        })
        self.eq(filt, {'time.begins': {'$lt': before, '$gte': after}})

        when = datetime.datetime(2025, 6, 1, tzinfo=pytz.utc)
        filt = qt.build({'$and': [{'kind': 'place'}], '$timeRange': {'during': '2025-06-01'}})
        self.eq(filt, {'$and': [
            {'kind': 'place'},
            {'$or': [{'time.begins': {'$lte': when}}, {'time.begins': {'$exists': False}}]},
            {'$or': [{'time.ends': {'$gte': when}}, {'time.ends': {'$exists': False}}]},
        ]})

        self.eq({}, qt.build({'$timeRange': {}}))
        self.raises(k_exc.BadArg, qt.build, {'$timeRange': '2025'})
        self.raises(k_exc.BadTypeValu, qt.build, {'$timeRange': {'after': 'newp'}})

    def test_query_nomutate(self):

        qt = k_query.QueryTranslator()

        ands = [{'kind': 'place'}]
        query = {
            'meta': {'label': 'Home'},
            '$and': ands,
            '$timeRange': {'during': '2025-06-01'},
            '$near': {'lat': 37.7749, 'lon': -122.4194},
        }
        orig = copy.deepcopy(query)

        filt = qt.build(query)
        self.len(3, filt['$and'])

        self.eq(orig, query)
        self.len(1, ands)
