"""Logging configuration for the exporter.

The exporter has no error metric of its own: when a zone or account
cannot be fetched, the only trace is a log line.  Operators diagnose
missing or stale metrics by reading these logs, so every line emitted
while a target is being processed carries that target.

TWO FORMATTERS
---------------
  _ContainerFormatter: human-readable, single-line, for local runs.

  _JsonFormatter: one JSON object per line, for log aggregation.
    Set LOG_JSON=true to switch.  The current update target appears as
    a top-level "target" key, so "all failures for zone example.com"
    is a simple filter instead of a regex.

TARGET CONTEXT
---------------
The update cycle binds the zone or account it is working on into
``target_var``.  A root-logger filter copies it onto every LogRecord,
regardless of which module (exporter, HTTP client) emitted the line.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

target_var: ContextVar[str] = ContextVar("target", default="-")


@contextmanager
def bind_target(target: str) -> Iterator[None]:
    """Tag every log line emitted inside the block with ``target``."""
    token = target_var.set(target)
    try:
        yield
    finally:
        target_var.reset(token)


class _TargetContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.target = target_var.get("-")  # type: ignore[attr-defined]
        return True


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    - Always: ISO-8601 timestamp, level, logger name, message
    - WARNING+: appends [filename:lineno]
    - Stack trace included when exc_info is present
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter; context fields become top-level keys."""

    _CONTEXT_FIELDS = ("target",)

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None and value != "-":
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger for container environments.

    Args:
        level_name: Log level string (debug/info/warning/error)
        json_format: If True, emit JSON lines. If False, human-readable.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())
    handler.addFilter(_TargetContextFilter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # Keep third-party loggers from flooding at DEBUG
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
