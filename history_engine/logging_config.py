"""
Logging for the history progress engine.

Every line logged inside a request carries two correlation fields set by
RequestIdMiddleware: the request id and the learner whose progress the
request touches (taken from ``/users/{user_id}/...`` paths). Production
emits one JSON object per line; development uses a compact text format.

Usage:
    from history_engine.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Quiz attempt recorded", extra={"event_id": event_id, "score": score})
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
learner_id_var: ContextVar[Optional[str]] = ContextVar("learner_id", default=None)

_CORRELATION_FIELDS = ("request_id", "learner_id")

# Standard LogRecord attributes; everything else on a record came from extra=
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "taskName", *_CORRELATION_FIELDS}

# Chatty dependencies: per-statement SQL and per-request access lines
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


class CorrelationFilter(logging.Filter):
    """Stamp request_id and learner_id from the request context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"  # type: ignore[attr-defined]
        record.learner_id = learner_id_var.get() or "-"  # type: ignore[attr-defined]
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _CORRELATION_FIELDS:
            value = getattr(record, field, "-")
            if value != "-":
                log_obj[field] = value

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or value is None:
                continue
            try:
                json.dumps(value)
                log_obj[key] = value
            except (TypeError, ValueError):
                # datetimes in attempt and lock payloads
                log_obj[key] = str(value)

        return json.dumps(log_obj)


_DEV_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] req=%(request_id)s learner=%(learner_id)s %(message)s"


def configure_logging(
    *,
    log_level: str = "INFO",
    environment: str = "development",
    debug: bool = False,
) -> None:
    """
    Install the stderr handler on the root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        environment: 'production' selects JSON lines
        debug: If True, use DEBUG level regardless of log_level
    """
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # Reload-safe: drop handlers from a previous configure_logging call
    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(CorrelationFilter())
    if environment == "production":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_DEV_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
