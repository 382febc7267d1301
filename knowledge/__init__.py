'''
The knowledge entity and relationship store.
'''

import sys
if (sys.version_info.major, sys.version_info.minor) < (3, 9):  # pragma: no cover
    raise Exception('knowledge is not supported on Python versions < 3.9')

# checking maximum *signed* integer size to determine the interpreter arch
if sys.maxsize < 9223372036854775807:  # pragma: no cover
    raise Exception('knowledge is only supported on 64 bit architectures')

import lmdb
if tuple([int(x) for x in lmdb.__version__.split('.')[:2]]) < (0, 94):  # pragma: no cover
    raise Exception('knowledge is only supported on version >= 0.94 of the lmdb python module')

version = (0, 3, 0)
verstring = '.'.join([str(x) for x in version])
