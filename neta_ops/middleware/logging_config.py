"""
Structured logging configuration.

- Development: one readable line per record, workflow context appended
- Production: one JSON object per record (log aggregator compatible)
- LOG_LEVEL / LOG_FORMAT env variables override the defaults

Workflow services attach report/asset context through ``extra=``:

    logger.info("Report transition applied",
                extra={"report_id": rid, "action": "approve",
                       "from_status": "submitted", "to_status": "approved"})

Both formatters pick those keys up; every record emitted inside a request
also carries the request id set by the timing middleware.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Workflow context keys, in output order
_CONTEXT_KEYS = (
    "request_id",
    "job_id",
    "report_id",
    "asset_id",
    "actor_id",
    "action",
    "from_status",
    "to_status",
    "error_type",
)

# Request keys written by the timing middleware
_REQUEST_KEYS = ("method", "path", "status", "duration_ms", "remote_addr")


class RequestIdFilter(logging.Filter):
    """Stamp ``request_id`` onto records emitted while a request is active."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
        return True


def _record_fields(record, keys):
    return {k: getattr(record, k) for k in keys if getattr(record, k, None) is not None}


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.lineno}",
        }
        entry.update(_record_fields(record, _REQUEST_KEYS))
        entry.update(_record_fields(record, _CONTEXT_KEYS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Single-line formatter for local development."""

    LEVEL_COLORS = {
        "DEBUG": "\033[2m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, color=True):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<7}"
        if self.color and record.levelname in self.LEVEL_COLORS:
            level = f"{self.LEVEL_COLORS[record.levelname]}{level}{self.RESET}"

        parts = [f"{ts} {level} {record.name}: {record.getMessage()}"]
        ctx = _record_fields(record, _CONTEXT_KEYS)
        ctx.pop("request_id", None)
        if "from_status" in ctx or "to_status" in ctx:
            parts.append(f"{ctx.pop('from_status', '?')}→{ctx.pop('to_status', '?')}")
        parts.extend(f"{k}={v}" for k, v in ctx.items())
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            parts.append(f"({duration:.0f}ms)")

        line = " ".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install one stderr handler on the root logger.

    Defaults: JSON at INFO outside DEBUG/TESTING, readable at DEBUG otherwise.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)
    fmt = os.getenv("LOG_FORMAT", "json" if is_prod else "readable").lower()
    formatter = JSONFormatter() if fmt == "json" else ReadableFormatter(color=sys.stderr.isatty())

    # Cleared first: tests build the app more than once
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
