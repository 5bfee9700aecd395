"""Structured logging helpers shared by the resolution engine and its callers."""

from __future__ import annotations

import contextvars
import json
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterator, Optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..settings import SecretPlanSettings

_RUN_ID_CTX: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "run_id", default=None
)
_CONFIGURED_SERVICES: set[str] = set()


class RunContextFilter(logging.Filter):
    """Inject the service name and active resolution run into log records."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self._service_name
        record.run_id = _RUN_ID_CTX.get()
        return True


class JsonLogFormatter(logging.Formatter):
    """Format log records as JSON with a consistent schema."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "service": getattr(record, "service", self._service_name),
            "message": record.getMessage(),
        }
        run_id = getattr(record, "run_id", None)
        if run_id:
            payload["run_id"] = run_id
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info

        reserved = _reserved_log_keys()
        for key, value in record.__dict__.items():
            if key in reserved or key in payload:
                continue
            try:
                json.dumps(value)
                payload[key] = value
            except TypeError:
                payload[key] = str(value)
        return json.dumps(payload, default=str)


def _reserved_log_keys() -> set[str]:
    return {
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
        "message",
        "run_id",
        "taskName",
    }


def configure_logging(service_name: str, level: int | str = logging.INFO) -> None:
    """Configure structured logging for the current process."""

    if service_name in _CONFIGURED_SERVICES:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter(service_name))
    handler.addFilter(RunContextFilter(service_name))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    _CONFIGURED_SERVICES.add(service_name)


def configure_from_settings(settings: "SecretPlanSettings") -> None:
    """Configure structured logging from ``service_name`` and ``log_level``."""

    configure_logging(settings.service_name, settings.log_level)


@contextmanager
def run_context(run_id: str | None = None) -> Iterator[str]:
    """Bind a resolution run identifier to every record logged inside the block."""

    active = run_id or uuid.uuid4().hex
    token = _RUN_ID_CTX.set(active)
    try:
        yield active
    finally:
        _RUN_ID_CTX.reset(token)


def get_run_id() -> Optional[str]:
    """Return the identifier of the active resolution run."""

    return _RUN_ID_CTX.get()


__all__ = [
    "JsonLogFormatter",
    "RunContextFilter",
    "configure_from_settings",
    "configure_logging",
    "get_run_id",
    "run_context",
]
