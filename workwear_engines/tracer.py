"""
workwear_engines.tracer -- ``@traced_engine`` and the WORKWEAR_ENGINE_TRACE record.

Every call to a decorated engine emits one structured log record with the
engine name and version, a fingerprint of the inputs it was asked to
compute over, the wall time it took and whether it returned or raised.
Two calls with the same fingerprint saw the same cart, so a disputed
personal-payment amount can be matched to the composition that produced
it.

The tracer only logs.  Engines stay pure; the record goes to the
``workwear_kernel.engines`` logger so it shares the kernel handler.
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

_logger = logging.getLogger("workwear_kernel.engines.tracer")

TRACE_MESSAGE = "WORKWEAR_ENGINE_TRACE"


def _canonical(value: Any) -> str:
    if value is None:
        return "~"
    if isinstance(value, Enum):
        return _canonical(value.value)
    if isinstance(value, Decimal):
        # 500 and 500.00 are the same price
        return format(value.normalize(), "f")
    if isinstance(value, (str, int, float, bool)):
        return repr(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        return f"{type(value).__name__}{_canonical(fields)}"
    if isinstance(value, Mapping):
        return "{" + ",".join(
            f"{key}={_canonical(value[key])}" for key in sorted(value, key=str)
        ) + "}"
    if isinstance(value, (list, tuple, frozenset, set)):
        members = [_canonical(v) for v in value]
        if isinstance(value, (set, frozenset)):
            members.sort()
        return "[" + ",".join(members) + "]"
    return str(value)


def fingerprint(arguments: Mapping[str, Any], fields: tuple[str, ...]) -> str:
    """16 hex chars of SHA-256 over the named arguments, in ``fields`` order."""
    text = ";".join(f"{name}:{_canonical(arguments.get(name))}" for name in fields)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Wrap a pure engine so each call emits a WORKWEAR_ENGINE_TRACE record.

    ``fingerprint_fields`` name parameters of the wrapped function; they
    are matched whether the caller passes them by position or by keyword.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            input_fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                input_fingerprint = fingerprint(bound.arguments, fingerprint_fields)

            record = {
                "trace_type": TRACE_MESSAGE,
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": input_fingerprint,
                "function": func.__qualname__,
            }
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                record["duration_ms"] = round((time.perf_counter() - started) * 1000, 3)
                record["outcome"] = "error"
                record["error_type"] = type(exc).__name__
                _logger.warning(TRACE_MESSAGE, extra=record)
                raise
            record["duration_ms"] = round((time.perf_counter() - started) * 1000, 3)
            record["outcome"] = "ok"
            _logger.info(TRACE_MESSAGE, extra=record)
            return result

        return wrapper

    return decorator
