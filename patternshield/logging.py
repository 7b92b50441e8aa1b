"""
Logging for scans, sinks and API requests.

Every module logs through get_logger(); context goes in ``extra=``.
Only whitelisted context keys are emitted, so a stray extra (a
request body, a key) never reaches the log stream.

Two output shapes, picked by PATTERNSHIELD_LOG_FORMAT:
    json   one object per line, for the hosted service
    text   one line per record with key=value context, for local runs
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional


LOG_LEVEL = os.getenv("PATTERNSHIELD_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("PATTERNSHIELD_LOG_FORMAT", "json")
LOG_FORMATS = ("json", "text")

SCAN_FIELDS = (
    "source_ref", "scan_mode", "risk_score", "detections_count",
    "diagnostics_count", "rule_id", "history_hash", "report_id",
)
REQUEST_FIELDS = ("method", "path", "status_code", "duration_ms", "key_id")
FAILURE_FIELDS = ("sink", "context", "error", "error_type")

EXTRA_FIELDS = SCAN_FIELDS + REQUEST_FIELDS + FAILURE_FIELDS

QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "google_genai")


def record_context(record: logging.LogRecord) -> dict:
    """Whitelisted extras set on a record, in EXTRA_FIELDS order."""
    context = {}
    for key in EXTRA_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            context[key] = value
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per record, timestamped when the event happened."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """`time [LEVEL] logger: message key=value ...`"""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        head, sep, tail = line.partition("\n")  # keep tracebacks below the context
        return f"{head} {pairs}{sep}{tail}"


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> logging.Logger:
    """
    Install one stdout handler on the ``patternshield`` logger.

    Safe to call again (tests, reloads): earlier handlers are replaced.
    Raises ValueError for a format other than json/text.
    """
    fmt = (fmt or LOG_FORMAT).lower()
    if fmt not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {fmt}")

    logger = logging.getLogger("patternshield")
    logger.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())
    logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"patternshield.{name}")
