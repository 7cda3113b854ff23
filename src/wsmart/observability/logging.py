"""JSON logs on stdout, one object per line.

Cloud Run forwards stdout to Cloud Logging, which reads `severity` and
`message`; the remaining keys become jsonPayload fields. Call sites attach
their context as `extra={"extra_fields": safe_log_context(...)}`.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_correlation_id

SERVICE_NAME = "wsmart-ingest"

# Keys owned by the formatter; extra_fields cannot shadow them
_RESERVED = frozenset({"timestamp", "severity", "level", "logger", "service", "message"})


class JsonFormatter(logging.Formatter):
    """Render a record as a Cloud Logging-compatible JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "severity": record.levelname,
            "level": record.levelname,
            "logger": record.name,
            "service": SERVICE_NAME,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            entry["correlationId"] = correlation_id

        fields = getattr(record, "extra_fields", None)
        if isinstance(fields, dict):
            entry.update({k: v for k, v in fields.items() if k not in _RESERVED})

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


def _level_from_env() -> int:
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(JsonFormatter())


def get_logger(name: str) -> logging.Logger:
    """Logger writing through the shared JSON handler (idempotent)."""
    logger = logging.getLogger(name)
    if _handler not in logger.handlers:
        logger.addHandler(_handler)
        logger.setLevel(_level_from_env())
        logger.propagate = False
    return logger
