"""Structured log formatting for the relay.

Modules log through ``logging.getLogger(__name__)`` and pass diagnostic
context via ``extra={...}``. The formatter renders one line per record::

    [2024-10-01T12:00:00.000Z] [INFO] Received webhook event {"request_id": "req_..."}
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER = "link_relay"

# Attributes present on every LogRecord; anything else came in through ``extra``.
_RESERVED = set(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime", "taskName"}


class JsonContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )
        line = f"[{timestamp}] [{record.levelname}] {record.getMessage()}"
        context = record_context(record)
        if context:
            line = f"{line} {json.dumps(context, default=str)}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    return {key: value for key, value in record.__dict__.items() if key not in _RESERVED}


def configure_logging(level: str = "INFO", stream: Any = None) -> logging.Logger:
    """Attach the context formatter to the package logger. Safe to call twice."""

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level.upper())
    for handler in list(logger.handlers):
        if getattr(handler, "_link_relay", False):
            logger.removeHandler(handler)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonContextFormatter())
    handler._link_relay = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
