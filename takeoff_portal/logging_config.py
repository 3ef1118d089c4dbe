"""
Logging setup for the portal.

- text: readable single-line format for development
- json: one JSON object per line for log aggregation
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from takeoff_portal.config import settings


EXTRA_FIELDS = ('remote_addr', 'tenant_id')


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        return json.dumps(entry, ensure_ascii=False)


class ReadableFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now().strftime('%H:%M:%S')
        tenant = getattr(record, 'tenant_id', None)
        tenant_str = f' [company {tenant}]' if tenant is not None else ''
        base = f'{ts} {record.levelname:<8} {record.name}: {record.getMessage()}{tenant_str}'
        if record.exc_info and record.exc_info[0] is not None:
            base += '\n' + self.formatException(record.exc_info)
        return base


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    level_name = (level or settings.log_level).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    formatter = JSONFormatter() if (fmt or settings.log_format) == 'json' else ReadableFormatter()

    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for noisy in ('httpx', 'httpcore', 'sqlalchemy.engine', 'multipart'):
        logging.getLogger(noisy).setLevel(logging.WARNING)
