"""JSON log output on top of the standard :mod:`logging` module.

Callers attach structured fields with ``extra``::

    logger.info("command execution succeeded", extra={"exit_code": 0})

and :class:`JsonFormatter` writes one JSON object per line with the
message, level, logger name and every extra field.
"""

import json
import logging
import sys
from datetime import datetime, timezone

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# Attributes every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def parse_level(name: str) -> int:
    """Map a level name to a :mod:`logging` level, defaulting to INFO."""
    return _LEVELS.get((name or "").strip().lower(), logging.INFO)


class JsonFormatter(logging.Formatter):
    """Format records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def configure_logging(level: str) -> None:
    """Route all logging to stdout as JSON at the given level.

    Safe to call more than once; each call replaces the previous handler.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=parse_level(level), handlers=[handler], force=True)
