import datetime

import pytz

import knowledge.exc as k_exc

import knowledge.lib.gis as k_gis
import knowledge.lib.match as k_match

import knowledge.tests.utils as k_t_utils

doc = {
    'id': 'visi',
    'kind': 'party',
    'meta': {
        'label': 'Visi',
        'tags': ['hacker', 'writer'],
        'props': {'rank': 10, 'admin': True},
    },
    'time': {'begins': '2025-10-01T00:00:00.000Z'},
    'links': [{'name': 'home'}, {'name': 'work'}],
}

class MatchTest(k_t_utils.KnowTest):

    def test_match_getpath(self):
        self.eq(['visi'], k_match.getpath(doc, 'id'))
        self.eq([10], k_match.getpath(doc, 'meta.props.rank'))
        self.eq([['hacker', 'writer']], k_match.getpath(doc, 'meta.tags'))
        self.eq(['writer'], k_match.getpath(doc, 'meta.tags.1'))
        self.eq(['home', 'work'], k_match.getpath(doc, 'links.name'))
        self.eq([], k_match.getpath(doc, 'meta.newp'))
        self.eq([], k_match.getpath(doc, 'id.newp'))

        self.true(k_match.isoper({'$gt': 10}))
        self.false(k_match.isoper({'$gt': 10, 'foo': 20}))
        self.false(k_match.isoper({}))
        self.false(k_match.isoper('$gt'))

    def test_match_equality(self):

        self.true(k_match.match(doc, {}))
        self.true(k_match.match(doc, {'id': 'visi', 'kind': 'party'}))
        self.false(k_match.match(doc, {'id': 'visi', 'kind': 'thing'}))

        # array members match a scalar
        self.true(k_match.match(doc, {'meta.tags': 'writer'}))
        self.true(k_match.match(doc, {'meta.tags': ['hacker', 'writer']}))
        self.false(k_match.match(doc, {'meta.tags': ['writer', 'hacker']}))
        self.true(k_match.match(doc, {'links.name': 'work'}))

        # booleans are not numbers
        self.true(k_match.match(doc, {'meta.props.admin': True}))
        self.false(k_match.match(doc, {'meta.props.admin': 1}))

        # a missing property equals None
        self.true(k_match.match(doc, {'meta.slug': None}))
        self.false(k_match.match(doc, {'id': None}))

        self.true(k_match.match(doc, {'id': {'$eq': 'visi'}}))
        self.true(k_match.match(doc, {'id': {'$ne': 'newp'}}))
        self.false(k_match.match(doc, {'meta.tags': {'$ne': 'hacker'}}))

    def test_match_compare(self):

        self.true(k_match.match(doc, {'meta.props.rank': {'$gt': 9}}))
        self.true(k_match.match(doc, {'meta.props.rank': {'$gte': 10, '$lte': 10}}))
        self.false(k_match.match(doc, {'meta.props.rank': {'$lt': 10}}))

        # incomparable types never match
        self.false(k_match.match(doc, {'meta.props.rank': {'$gt': 'a'}}))
        self.false(k_match.match(doc, {'meta.label': {'$gt': 1}}))
        self.true(k_match.match(doc, {'meta.label': {'$gt': 'A'}}))

        # stored time strings compare with datetimes
        when = datetime.datetime(2025, 9, 1, tzinfo=pytz.utc)
        self.true(k_match.match(doc, {'time.begins': {'$gte': when}}))
        self.false(k_match.match(doc, {'time.begins': {'$lte': when}}))
        self.false(k_match.match(doc, {'meta.label': {'$lte': when}}))

    def test_match_sets(self):

        self.true(k_match.match(doc, {'kind': {'$in': ['place', 'party']}}))
        self.false(k_match.match(doc, {'kind': {'$in': ['place', 'thing']}}))
        self.true(k_match.match(doc, {'kind': {'$nin': ['place', 'thing']}}))
        self.true(k_match.match(doc, {'meta.tags': {'$in': ['writer']}}))
        self.true(k_match.match(doc, {'meta.slug': {'$in': [None]}}))

        self.raises(k_exc.BadArg, k_match.match, doc, {'kind': {'$in': 'party'}})

    def test_match_exists_not(self):

        self.true(k_match.match(doc, {'meta.label': {'$exists': True}}))
        self.true(k_match.match(doc, {'meta.slug': {'$exists': False}}))
        self.false(k_match.match(doc, {'time.ends': {'$exists': True}}))

        self.true(k_match.match(doc, {'meta.props.rank': {'$not': {'$gt': 20}}}))
        self.false(k_match.match(doc, {'meta.props.rank': {'$not': {'$gt': 5}}}))

    def test_match_logical(self):

        self.true(k_match.match(doc, {'$or': [{'kind': 'place'}, {'kind': 'party'}]}))
        self.false(k_match.match(doc, {'$or': [{'kind': 'place'}, {'kind': 'thing'}]}))
        self.true(k_match.match(doc, {'$and': [{'kind': 'party'}, {'id': 'visi'}]}))
        self.false(k_match.match(doc, {'$and': [{'kind': 'party'}, {'id': 'newp'}]}))
        self.true(k_match.match(doc, {'$nor': [{'kind': 'place'}, {'kind': 'thing'}]}))

        self.raises(k_exc.BadArg, k_match.match, doc, {'$or': []})
        self.raises(k_exc.BadArg, k_match.match, doc, {'$where': 'true'})
        self.raises(k_exc.BadArg, k_match.match, doc, {'id': {'$regex': 'v.*'}})

    def test_match_geo(self):

        sf = {'location': {'point': k_gis.mkpoint(*k_t_utils.SF)}}
        la = {'location': {'point': k_gis.mkpoint(*k_t_utils.LA)}}
        nope = {'location': {'lat': 1.0}}

        near = {'location.point': {'$near': {
            '$geometry': k_gis.mkpoint(*k_t_utils.OAKLAND),
            '$maxDistance': 20000,
        }}}

        self.true(k_match.match(sf, near))
        self.false(k_match.match(la, near))
        self.false(k_match.match(nope, near))

        self.eq(('location.point', k_t_utils.OAKLAND), k_match.getNearSort(near))
        self.eq(('location.point', k_t_utils.OAKLAND), k_match.getNearSort({'$and': [near]}))
        self.none(k_match.getNearSort({'kind': 'place'}))

        dist = k_match.distance(sf, 'location.point', k_t_utils.OAKLAND)
        self.gt(dist, 13000)
        self.lt(dist, 14000)
        self.none(k_match.distance(nope, 'location.point', k_t_utils.OAKLAND))

        # 20km expressed in radians of a 6378100m sphere
        within = {'location.point': {'$geoWithin': {'$centerSphere': [[-122.2711, 37.8044], 20000 / 6378100]}}}
        self.true(k_match.match(sf, within))
        self.false(k_match.match(la, within))

        self.raises(k_exc.BadArg, k_match.match, sf, {'location.point': {'$near': {'lat': 1}}})
        self.raises(k_exc.BadArg, k_match.match, sf, {'location.point': {'$geoWithin': {'$box': []}}})
        self.raises(k_exc.BadArg, k_match.match, sf, {'location.point': {'$geoWithin': {'$centerSphere': 10}}})
