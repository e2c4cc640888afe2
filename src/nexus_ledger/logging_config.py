"""Structured logging configuration helpers for the ledger."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict

DEFAULT_ENV = os.getenv("NEXUS_LEDGER_ENV", os.getenv("ENV", "local"))

_RESERVED_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
}


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter that emits a stable set of fields.

    Values passed through the logging ``extra`` dictionary are preserved, so
    callers can attach identifiers such as ``portfolio_id`` or
    ``transaction_id``. The ``event`` field is a short machine-readable label
    for the log line.
    """

    def __init__(self, env: str | None = None) -> None:
        super().__init__()
        self.env = env or DEFAULT_ENV

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_time = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": log_time.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "event": getattr(record, "event", None),
            "env": getattr(record, "env", self.env),
            "request_id": getattr(record, "request_id", None),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_FIELDS:
                continue
            payload.setdefault(key, value)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def configure_logging(level: int = logging.INFO, env: str | None = None) -> None:
    """Configure root logging with a JSON formatter and stdout handler."""

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter(env=env))
    root_logger.addHandler(handler)


def structured_log_extra(
    *,
    env: str | None = None,
    request_id: str | None = None,
    event: str | None = None,
    portfolio_id: str | None = None,
    transaction_id: str | None = None,
    view: str | None = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """Build a consistent set of logging extras with common fields.

    ``event`` should be a short, stable identifier for the log. Ledger
    identifiers (``portfolio_id``, ``transaction_id``, ``view``) are only
    included when provided. Additional custom fields are preserved via
    ``**kwargs``.
    """

    extra: Dict[str, Any] = {
        "event": kwargs.pop("event", event),
        "env": env or DEFAULT_ENV,
        "request_id": request_id,
    }

    identifier_fields = {
        "portfolio_id": portfolio_id,
        "transaction_id": transaction_id,
        "view": view,
    }
    for key, value in identifier_fields.items():
        if value is not None:
            extra[key] = value

    extra.update(kwargs)
    return extra


def get_log_environment() -> str:
    """Expose the configured environment for downstream helpers."""

    return DEFAULT_ENV


__all__: list[str] = [
    "configure_logging",
    "structured_log_extra",
    "get_log_environment",
]
