import pickle

import knowledge.exc as k_exc

import knowledge.lib.msgpack as k_msgpack
import knowledge.lib.hashitem as k_hashitem

import knowledge.tests.utils as k_t_utils

class ExcTest(k_t_utils.KnowTest):

    def test_exc_basics(self):

        e = k_exc.SlugConflict(mesg='Slug namespace conflict', slug='home', iden='b')
        self.eq(e.errname, 'SlugConflict')
        self.eq(e.get('slug'), 'home')
        self.none(e.get('newp'))
        self.eq(e.get('newp', 10), 10)
        self.eq(e.items(), {'mesg': 'Slug namespace conflict', 'slug': 'home', 'iden': 'b'})
        self.eq(str(e), "SlugConflict: iden='b' mesg='Slug namespace conflict' slug='home'")

        e.set('other', 'a')
        self.eq(e.get('other'), 'a')
        self.isin("other='a'", str(e))

        e.setdefault('other', 'c')
        self.eq(e.get('other'), 'a')
        e.setdefault('strategy', 'reject')
        self.eq(e.get('strategy'), 'reject')

        e.update({'slug': 'house', 'iden': 'c'})
        self.eq(str(e), "SlugConflict: iden='c' mesg='Slug namespace conflict' other='a' slug='house' strategy='reject'")

        self.true(isinstance(k_exc.AccessDenied(), k_exc.KnowErr))
        self.true(isinstance(k_exc.BackendUnavailable(), Exception))

        e = pickle.loads(pickle.dumps(e))
        self.isinstance(e, k_exc.SlugConflict)
        self.eq(e.get('slug'), 'house')

    def test_exc_init(self):

        e = k_exc.BadKind.init('newp')
        self.eq('newp', e.get('kind'))
        self.eq("Unknown entity kind 'newp'.", e.get('mesg'))

        e = k_exc.SchemaNotFound.init('ka://schemas/core/newp/1.0.0')
        self.eq('ka://schemas/core/newp/1.0.0', e.get('name'))

        e = k_exc.SchemaNotFound.init('newp', mesg='hehe')
        self.eq('hehe', e.get('mesg'))

    def test_exc_msgpack(self):

        item = {'id': 'visi', 'tags': ('a', 'b'), 'big': 2 ** 70, 'neg': -2 ** 70}
        byts = k_msgpack.en(item)

        self.eq(k_msgpack.un(byts), {'id': 'visi', 'tags': ('a', 'b'), 'big': 2 ** 70, 'neg': -2 ** 70})
        self.eq(['a', 'b'], k_msgpack.un(byts, use_list=True)['tags'])
        self.eq(['a', 'b'], k_msgpack.deepcopy(item, use_list=True)['tags'])

        self.raises(k_exc.NotMsgpackSafe, k_msgpack.en, {'newp': object()})
        self.raises(k_exc.BadMsgpackData, k_msgpack.un, b'\xa1\xff', strict=True)
        self.eq('�', k_msgpack.un(b'\xa1\xff'))

    def test_exc_hashitem(self):
        self.eq(k_hashitem.hashitem({'a': 1, 'b': [1, 2]}), k_hashitem.hashitem({'b': (1, 2), 'a': 1}))
        self.eq(k_hashitem.hashitem({'a': 1}), k_hashitem.hashitem({'a': 1, 'b': None}))
        self.ne(k_hashitem.hashitem({'a': 1}), k_hashitem.hashitem({'a': 2}))
