"""
Structured logging configuration for the AutoPR API.

- Production (ENVIRONMENT=production): JSON lines, one object per record
- Development (default): human-readable lines with a [job_id=... branch=...] suffix

Job context travels on records through `extra=`; see CONTEXT_FIELDS.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ("job_id", "batch_id", "repo_url", "branch")

DEV_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s%(context)s"


def _context(record: logging.LogRecord) -> dict:
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class ContextFilter(logging.Filter):
    """Renders job context into `record.context` for the plain-text format."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _context(record)
        record.context = (
            " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]" if context else ""
        )
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for log aggregation"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        log_entry.update(_context(record))

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(environment: str | None = None, log_level: str | None = None) -> None:
    """Configure the root logger. Arguments override ENVIRONMENT / LOG_LEVEL."""
    environment = (environment or os.getenv("ENVIRONMENT", "development")).lower()
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if environment == "production":
        handler.setFormatter(JSONFormatter())
    else:
        handler.addFilter(ContextFilter())
        handler.setFormatter(logging.Formatter(DEV_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(handler)

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
