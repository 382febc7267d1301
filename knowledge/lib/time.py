'''
Time related utilities for knowledge "epoch millis" time values and ISO-8601 text.
'''
import logging
import datetime

import pytz
import regex

import knowledge.exc as k_exc

logger = logging.getLogger(__name__)

EPOCH = datetime.datetime(1970, 1, 1)
EPOCHUTC = datetime.datetime(1970, 1, 1, tzinfo=pytz.utc)

onesec = 1000
onemin = 60000
onehour = 3600000
oneday = 86400000

tz_re = regex.compile(
    r'\d(?P<tzstr>\s?(?:'
    r'(?P<tzname>z|utc|gmt)|'
    r'(?:(?P<tzrel>\-|\+)(?P<tzhr>\d{1,2}):?(?P<tzmin>\d{2})))'
    r')$',
    flags=regex.IGNORECASE
)

def total_millis(delta):
    return (delta.days * oneday) + (delta.seconds * onesec) + (delta.microseconds // 1000)

def _rawparse(text):
    otext = text
    text = text.strip().lower().replace(' ', '')

    text, base = parsetz(text)
    parsed_tz = base != 0

    text = (''.join([c for c in text if c.isdigit()]))

    tlen = len(text)

    try:
        if tlen == 4:
            dt = datetime.datetime.strptime(text, '%Y')

        elif tlen == 6:
            dt = datetime.datetime.strptime(text, '%Y%m')

        elif tlen == 8:
            if parsed_tz:
                raise k_exc.BadTypeValu(mesg=f'Not enough information to parse timezone properly for {otext}.',
                                        valu=otext)
            dt = datetime.datetime.strptime(text, '%Y%m%d')

        elif tlen == 10:
            dt = datetime.datetime.strptime(text, '%Y%m%d%H')

        elif tlen == 12:
            dt = datetime.datetime.strptime(text, '%Y%m%d%H%M')

        elif tlen == 14:
            dt = datetime.datetime.strptime(text, '%Y%m%d%H%M%S')

        elif 15 <= tlen <= 20:
            dt = datetime.datetime.strptime(text, '%Y%m%d%H%M%S%f')

        else:
            raise k_exc.BadTypeValu(valu=otext, name='time',
                                    mesg=f'Unknown time format for {otext}')
    except ValueError as e:
        raise k_exc.BadTypeValu(mesg=f'Error parsing time "{otext}"; {str(e)}', valu=otext) from None

    return dt, base

def parse(text):
    '''
    Parse an ISO-8601 style time string into an epoch millis value.

    Args:
        text (str): Time string to parse. A trailing ``Z`` or ``+hh:mm`` offset is honored; no offset means UTC.

    Returns:
        int: Epoch milliseconds
    '''
    if not isinstance(text, str):
        raise k_exc.BadTypeValu(mesg=f'Time value must be a string, not {type(text).__name__}.', valu=text)

    dtraw, base = _rawparse(text)
    return total_millis(dtraw - EPOCH) + base

def parsetz(text):
    '''
    Parse timezone from time string, with UTC as the default.

    Args:
        text (str): Time string

    Returns:
        tuple: A tuple of text with tz chars removed and base milliseconds to offset time.
    '''

    match = tz_re.search(text)
    if match is None:
        return text, 0

    tzrel = match['tzrel']
    if tzrel is None:
        return text.replace(match['tzstr'], '', 1), 0

    base = onehour * int(match['tzhr']) + onemin * int(match['tzmin'])
    if tzrel == '+':
        base *= -1

    if abs(base) >= oneday:
        raise k_exc.BadTypeValu(mesg=f'Timezone offset must be between +/- 24 hours for {text}',
                                valu=text, name='time')

    return text[:match.start('tzstr')], base

def todatetime(valu):
    '''
    Normalize an epoch millis int, time string, or datetime into an aware UTC datetime.
    '''
    if isinstance(valu, datetime.datetime):
        if valu.tzinfo is None:
            return pytz.utc.localize(valu)
        return valu.astimezone(pytz.utc)

    if isinstance(valu, bool):
        raise k_exc.BadTypeValu(mesg='Time value may not be a boolean.', valu=valu)

    if isinstance(valu, int):
        return EPOCHUTC + datetime.timedelta(milliseconds=valu)

    return EPOCHUTC + datetime.timedelta(milliseconds=parse(valu))

def repr(tick):
    '''
    Return an ISO-8601 UTC date string with millisecond precision for an epoch-millis timestamp.

    Args:
        tick (int): The timestamp in milliseconds since the epoch.

    Returns:
        (str):  A date time string such as ``2025-11-15T12:00:00.000Z``
    '''
    dt = EPOCH + datetime.timedelta(milliseconds=tick)
    millis = dt.microsecond // 1000
    return f'{dt.year:04d}-{dt.month:02d}-{dt.day:02d}T{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}.{millis:03d}Z'
