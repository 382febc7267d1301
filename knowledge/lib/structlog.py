import logging

import msgspec.json as m_json

import knowledge.common as k_common

def _reprTrim(item):
    return k_common.trimText(repr(item))

class JsonFormatter(logging.Formatter):
    '''
    Format log records as single line JSON objects.

    Notes:
        Values from the ``knowledge`` dict passed via ``extra=`` are merged
        into the top level object without replacing the standard keys.
    '''

    def format(self, record: logging.LogRecord):

        record.message = record.getMessage()

        ret = {
            'message': self.formatMessage(record),
            'level': record.levelname,
            'time': self.formatTime(record, self.datefmt),
            'logger': {
                'name': record.name,
                'func': record.funcName,
                'filename': record.filename,
                'process': record.processName,
            },
        }

        if record.exc_info:
            errname, info = k_common.err(record.exc_info[1], fulltb=True)
            # ename is the function name
            info['errname'] = errname
            ret['err'] = info

        extras = record.__dict__.get('knowledge')
        if extras:
            for name, valu in extras.items():
                ret.setdefault(name, valu)

        return m_json.encode(ret, enc_hook=_reprTrim).decode()
