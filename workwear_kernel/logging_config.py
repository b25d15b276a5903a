"""
Structured JSON logging for the workwear kernel.

Every record under the ``workwear_kernel`` logger is written as one JSON
object per line.  Request-scoped identifiers (who is acting, for which
employee, on which order) live in context variables so that a service can
bind them once and every log line underneath picks them up, including
lines written from engine code that never sees the request.

    with LogContext.bind(order_id="O1", actor_id="site.admin@acme.example"):
        logger.info("order_approved", extra={"pr_status": "SITE_ADMIN_APPROVED"})

Bound context always wins over an ``extra`` with the same key.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import contextlib
import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, TextIO

LOGGER_ROOT = "workwear_kernel"

CONTEXT_FIELDS = ("correlation_id", "actor_id", "employee_id", "order_id", "trace_id")

_context_vars: dict[str, ContextVar[str | None]] = {
    field: ContextVar(f"workwear_log_{field}", default=None) for field in CONTEXT_FIELDS
}


class LogContext:
    """Request-scoped log fields, safe across threads and asyncio tasks."""

    @staticmethod
    def set(
        *,
        correlation_id: str | None = None,
        actor_id: str | None = None,
        employee_id: str | None = None,
        order_id: str | None = None,
        trace_id: str | None = None,
    ) -> None:
        """Overwrite the given fields; ``None`` leaves a field as it was."""
        values = dict(
            correlation_id=correlation_id,
            actor_id=actor_id,
            employee_id=employee_id,
            order_id=order_id,
            trace_id=trace_id,
        )
        for field, value in values.items():
            if value is not None:
                _context_vars[field].set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        snapshot = {field: var.get() for field, var in _context_vars.items()}
        return {field: value for field, value in snapshot.items() if value is not None}

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextlib.contextmanager
    def bind(**fields: str | None) -> Iterator[type["LogContext"]]:
        """
        Set fields for the duration of a ``with`` block, then put back
        whatever was there before.  Unknown names and ``None`` values are
        skipped.
        """
        tokens = [
            (_context_vars[name], _context_vars[name].set(value))
            for name, value in fields.items()
            if value is not None and name in _context_vars
        ]
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord carries; anything else on a record came from ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "taskName",
}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    # Decimal, UUID and anything else unknown
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Flatten an exception, including the public attributes kernel errors carry."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name.startswith("_") or name in ("args", "code"):
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload
        }
        payload.update(extras)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.approval")`` -> ``workwear_kernel.services.approval``."""
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")


_state_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``workwear_kernel`` logger.

    Only the first call has any effect until ``reset_logging()``; later
    calls (every ``init_engine_from_url`` makes one) are no-ops.
    """
    global _installed_handler
    with _state_lock:
        if _installed_handler is not None:
            return
        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        _installed_handler = handler

    kernel_logger = logging.getLogger(LOGGER_ROOT)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False
    kernel_logger.addHandler(handler)


def reset_logging() -> None:
    """Drop every handler and return the kernel logger to WARNING. Tests only."""
    global _installed_handler
    with _state_lock:
        _installed_handler = None
    kernel_logger = logging.getLogger(LOGGER_ROOT)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
