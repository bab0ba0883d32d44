"""
Structured logging configuration.

Called once from create_app() (and by RQ workers through leadflow.worker).
Text or single-line JSON output via LOG_FORMAT; LOG_LEVEL defaults to INFO.

Pipeline code attaches identifiers with `extra=`, e.g.
    logger.info("Lead moved", extra={'lead_id': 42, 'session_id': 'abc'})
JSON output carries them as top-level keys so aggregators can filter by lead
or session.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone

# Record attributes promoted into JSON output when present
CONTEXT_FIELDS = ('session_id', 'lead_id', 'stage', 'job_id')


class JSONFormatter(logging.Formatter):
    """Single-line JSON log formatter for production log aggregators."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ContextTextFormatter(logging.Formatter):
    """Human-readable lines with any context identifiers appended as key=value."""

    def format(self, record):
        line = super().format(record)
        context = ' '.join(
            f'{key}={getattr(record, key)}' for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        )
        return f'{line} [{context}]' if context else line


# Third-party loggers that are noisy at INFO
_NOISY_LOGGERS = [
    'sqlalchemy.engine',
    'alembic',
    'rq.worker',
    'redis',
    'werkzeug',
]


def _resolve_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(app=None):
    """
    Set up root logger with format/level from env vars.

    Environment variables:
        LOG_LEVEL  — Python log level name (default: INFO)
        LOG_FORMAT — "text" (default) or "json"
    """
    level = _resolve_level(os.getenv('LOG_LEVEL', 'INFO'))
    log_format = os.getenv('LOG_FORMAT', 'text').lower()

    root = logging.getLogger()
    root.setLevel(level)

    # Remove any existing handlers to avoid duplicates on re-init
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if log_format == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ContextTextFormatter(
            '[%(asctime)s] %(levelname)s %(name)s — %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))

    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        app.logger.handlers.clear()
        app.logger.propagate = True
