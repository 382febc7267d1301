import logging

# Logging related constants
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s ' \
             '[%(filename)s:%(funcName)s:%(threadName)s:%(processName)s]'
LOG_LEVEL_CHOICES = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL,
}
LOG_LEVEL_INVERSE_CHOICES = {v: k for k, v in LOG_LEVEL_CHOICES.items()}

# Math related constants
kibibyte = 1024
mebibyte = 1024 * kibibyte
gibibyte = 1024 * mebibyte
tebibyte = 1024 * gibibyte

# time (in millis) constants
second = 1000
minute = second * 60
hour = minute * 60
day = hour * 24
week = day * 7

# distance (in meters) constants
kilometer = 1000

# default search radius for nearby queries
near_maxdist = 10 * kilometer

# the earth radius used to convert $geoWithin meters into radians
earth_radius_m = 6378100

# kinds of entities which may be stored
kinds = ('thing', 'party', 'group', 'place', 'org', 'edge')

# the relationship predicate used for parent / child lookups
contains = 'contains'

slug_strategies = ('reject', 'replace', 'update')

permissions = ('private', 'protected', 'public', 'append')
