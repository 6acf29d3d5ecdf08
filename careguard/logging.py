"""
Structured Logging — Audit-Safe Output

Every record carries timestamp, level, logger and message, plus the
whitelisted audit fields a caller passed in `extra`: outcome,
categories, layers, counts, error types and durations.

Matched violation text and patient content have no key in the
whitelist, so they cannot reach a log sink even if a caller passes
them in `extra`. Exception messages and tracebacks are dropped for
the same reason: only the exception type is written.

Usage:
    from careguard.logging import get_logger
    logger = get_logger("orchestrator")
    logger.info("Filter complete", extra={"outcome": "passed", "violation_count": 0})
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone


LOG_LEVEL = os.getenv("CAREGUARD_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("CAREGUARD_LOG_FORMAT", "json")  # "json" or "text"

SAFE_EXTRA_FIELDS = (
    "outcome", "violation_count", "categories", "layers",
    "modification_kinds", "error_type", "duration_ms", "status_code",
    "method", "path", "pattern_count", "attempt", "core_version",
)


def audit_fields(record: logging.LogRecord) -> dict:
    """Whitelisted extras on the record, plus the exception type if any."""
    fields = {}
    for key in SAFE_EXTRA_FIELDS:
        val = getattr(record, key, None)
        if val is not None:
            fields[key] = val
    if record.exc_info and record.exc_info[0]:
        fields.setdefault("error_type", record.exc_info[0].__name__)
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(audit_fields(record))
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable format for development, audit fields as key=value."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        # Base format() would append the traceback
        record.message = record.getMessage()
        record.asctime = self.formatTime(record, self.datefmt)
        line = self.formatMessage(record)
        fields = audit_fields(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


def setup_logging():
    """Configure the careguard logger. Call once at app startup."""
    root = logging.getLogger("careguard")
    root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if LOG_FORMAT == "json" else TextFormatter())
    root.addHandler(handler)

    # Request lines are logged by the API middleware instead
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under the careguard namespace."""
    return logging.getLogger(f"careguard.{name}")
