"""JSON log lines for the crawler.

Everything under the ``directory_sync`` logger is written as one JSON object
per line, with the crawl context (resource type, scope, counts) that syncers
pass through ``extra=`` lifted into top-level keys.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any, Optional, Union

LOGGER_NAME = "directory_sync"

EXTRA_FIELDS = (
    "resource_type", "scope_id", "records", "outcome", "cursor",
    "attempt", "duration_s",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key))
            for key in EXTRA_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class _CrawlerHandler(logging.StreamHandler):
    """Marks the handler ``configure_logging`` owns, so a rerun can swap it."""


def _level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    level: Union[str, int] = "INFO",
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """Route ``directory_sync.*`` records to ``stream`` (stderr) as JSON.

    Safe to call more than once: the handler installed by an earlier call is
    replaced, handlers added by anyone else are left alone. Unknown level
    names mean INFO.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for existing in [h for h in logger.handlers if isinstance(h, _CrawlerHandler)]:
        logger.removeHandler(existing)

    handler = _CrawlerHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(_level(level))
    logger.propagate = False
    return logger
