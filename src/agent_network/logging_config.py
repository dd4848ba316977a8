"""
Logging configuration for the agent network pipeline.

Supports two formats:
- ``text`` (default): human-readable log lines
- ``json``: one JSON object per line for log aggregation

Every record carries a ``correlation_id``: the run id while a pipeline run
is executing, the request id while the API is serving a request, ``-``
otherwise.

Settings via env vars:
- ``LOG_LEVEL``: DEBUG / INFO / WARNING / ERROR (default: INFO)
- ``LOG_FORMAT``: text / json (default: text)
"""

from __future__ import annotations

import json as json_mod
import logging
import sys
import uuid
from contextvars import ContextVar

from config import LOG_FORMAT, LOG_LEVEL

correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="-")


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": correlation_id_ctx.get("-"),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json_mod.dumps(entry, default=str)


class _CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_ctx.get("-")  # type: ignore[attr-defined]
        return True


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure the root logger (env settings unless overridden)."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if (fmt or LOG_FORMAT) == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s (%(correlation_id)s) %(message)s",
                defaults={"correlation_id": "-"},
            )
        )
    handler.addFilter(_CorrelationIdFilter())
    root.addHandler(handler)

    # httpx logs every request at INFO, which drowns the pipeline summary
    logging.getLogger("httpx").setLevel(logging.WARNING)


def generate_request_id() -> str:
    """Short unique id for an API request."""
    return uuid.uuid4().hex[:12]


def generate_run_id() -> str:
    """Short unique id for a pipeline run."""
    return f"run-{uuid.uuid4().hex[:8]}"
