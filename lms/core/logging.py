"""Logging configuration for lms-service.

Two output modes, picked by LOG_JSON:

  _ContainerFormatter  one human-readable line per record, for local dev
                       and `docker compose logs`.
  _JsonFormatter       JSON Lines for log aggregation.  Context fields that
                       the request middleware or the progression services
                       attach via ``extra=`` become top-level keys, so a
                       query like ``attempt_id == "..."`` finds every line
                       of one attempt's lifecycle.

Services log state transitions at INFO (attempt started, answered,
submitted, abandoned; enrollment completed; certificate issued) and
swallowed side-effect failures with ``logger.exception``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

SERVICE_NAME = "lms-service"

# Keys a record may carry via ``extra=``.  The request middleware sets the
# first group; the progression services set the second.
REQUEST_FIELDS = ("request_id", "method", "path", "status_code", "duration_ms")
DOMAIN_FIELDS = (
    "user_id",
    "course_id",
    "class_id",
    "lesson_id",
    "test_id",
    "attempt_id",
    "certificate_id",
    "error_code",
)

_NOISY_LOGGERS = (
    "uvicorn",
    "uvicorn.access",
    "uvicorn.error",
    "httpcore",
    "httpx",
    "sqlalchemy.engine",
)


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, UTC).isoformat(timespec="milliseconds")


class _ContainerFormatter(logging.Formatter):
    """One line per record: time, level, logger, request id, message.

    WARNING and above get ``[filename:lineno]`` appended.
    """

    def format(self, record: logging.LogRecord) -> str:
        request_id = getattr(record, "request_id", "-")
        line = (
            f"{_timestamp(record)} {record.levelname:<8} {record.name} "
            f"[{request_id}]  {record.getMessage()}"
        )
        if record.levelno >= logging.WARNING:
            line += f"  [{record.filename}:{record.lineno}]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


class _JsonFormatter(logging.Formatter):
    """JSON Lines with request and domain context lifted to top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": _timestamp(record),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value)
            for key in REQUEST_FIELDS + DOMAIN_FIELDS
            if (value := getattr(record, key, None)) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Send every record to stdout in the chosen format.

    Unknown level names fall back to INFO.  Third-party loggers are held
    at WARNING or above so DEBUG stays readable.
    """
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
