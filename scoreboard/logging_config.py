"""
Logging setup, called once from create_app().

LOG_LEVEL defaults to INFO; LOG_FORMAT selects "text" (default) or "json".
"""
import json
import logging
import sys
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """Single-line JSON log formatter for log aggregators."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry)


# Socket.IO / engine.IO log every packet at INFO
_NOISY_LOGGERS = [
    'engineio',
    'socketio',
    'werkzeug',
]


def configure_logging(level_name: str = 'INFO', log_format: str = 'text') -> None:
    level = getattr(logging, (level_name or 'INFO').upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    # Avoid duplicate handlers when create_app() runs more than once (tests)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if (log_format or 'text').lower() == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
