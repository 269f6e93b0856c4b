"""
Structured JSON logging for the depot kernel.

Each record becomes one JSON line: timestamp, level, logger, the snake_case
message name, the ``extra`` fields, and the ids bound on ``LogContext`` by
the coordinator's unit of work.  A logged ``DepotKernelError`` contributes
its ``to_dict()`` fields with an ``exc_`` prefix.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

LOGGER_NAMESPACE = "depot_kernel"

CONTEXT_FIELDS = (
    "correlation_id",
    "actor_id",
    "request_id",
    "delivery_note_id",
    "material_id",
)

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"depot_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """Ids attached to every record logged from the current thread or task."""

    @classmethod
    def get_all(cls) -> dict[str, str]:
        ctx: dict[str, str] = {}
        for name, var in _context_vars.items():
            value = var.get()
            if value is not None:
                ctx[name] = value
        return ctx

    @classmethod
    def clear(cls) -> None:
        for var in _context_vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: object) -> Iterator[None]:
        """
        Bind ids for the duration of the block.

        Values are stringified.  ``None`` values and names outside
        ``CONTEXT_FIELDS`` are ignored.  Previous values come back on exit.
        """
        tokens = [
            (_context_vars[name], _context_vars[name].set(str(value)))
            for name, value in fields.items()
            if name in _context_vars and value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    return str(obj)


class StructuredFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            to_dict = getattr(exc, "to_dict", None)
            fields = to_dict() if callable(to_dict) else {"message": str(exc)}
            for key, value in fields.items():
                payload[f"exc_{key}"] = value
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger named ``depot_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    handler: logging.Handler | None = None,
) -> None:
    """
    Install the JSON handler on the ``depot_kernel`` logger.

    Only the first call after import (or after ``reset_logging``) has any
    effect.  Without ``handler`` records go to stderr.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(LOGGER_NAMESPACE)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False
    installed = handler or logging.StreamHandler(sys.stderr)
    installed.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(installed)


def reset_logging() -> None:
    """Drop the installed handler so the next configure_logging applies. Tests only."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(LOGGER_NAMESPACE)
    for handler in list(kernel_logger.handlers):
        if isinstance(handler.formatter, StructuredFormatter):
            kernel_logger.removeHandler(handler)
    kernel_logger.setLevel(logging.WARNING)
