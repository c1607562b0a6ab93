"""Application-wide logging initialization

Call `initialize_logging()` once at startup, before any other logging is done.
Modules log through `logging.getLogger(__name__)`.

Formats:
    text: 2026-01-01 12:00:00,000 [INFO] gatelink.api.links: Link created
    json: {"timestamp": "2026-01-01T12:00:00.000Z", "level": "INFO",
           "logger": "gatelink.api.links", "message": "Link created", ...extra}
"""

import json
import logging
import logging.config
from datetime import datetime, timezone


class JsonFormatter(logging.Formatter):
    """JSON formatter that includes LogRecord extras"""

    STANDARD_ATTRS = frozenset(
        {
            'args',
            'asctime',
            'created',
            'exc_info',
            'exc_text',
            'filename',
            'funcName',
            'levelname',
            'levelno',
            'lineno',
            'module',
            'msecs',
            'msg',
            'name',
            'pathname',
            'process',
            'processName',
            'relativeCreated',
            'stack_info',
            'thread',
            'threadName',
            'taskName',
        }
    )

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc) \
                            .isoformat(timespec="milliseconds") \
                            .replace("+00:00", "Z")

        log = {
            'timestamp': timestamp,
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        # Attach `extra` fields
        for key, value in record.__dict__.items():
            if key not in self.STANDARD_ATTRS:
                log[key] = value

        if record.exc_info:
            log['exception'] = self.formatException(record.exc_info)

        return json.dumps(log, default=str)


def initialize_logging(level: str = "INFO", json_format: bool = False) -> None:
    logging.config.dictConfig(
        {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'text': {
                    'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
                },
                'json': {
                    '()': JsonFormatter,
                },
            },
            'handlers': {
                'stdout': {
                    'class': 'logging.StreamHandler',
                    'formatter': 'json' if json_format else 'text',
                    'stream': 'ext://sys.stdout',
                }
            },
            'root': {
                'level': level.upper(),
                'handlers': ['stdout'],
            },
        }
    )
