"""
billing_engines.tracer -- BILLING_ENGINE_TRACE records for pure calculations.

``@traced_engine`` wraps an engine function and, after every call, logs at
DEBUG the engine name and version, a short fingerprint of the arguments
named in ``fingerprint_fields`` and the elapsed time.  Arguments are bound
against the function signature, so a call made positionally fingerprints
the same as one made by keyword.

A call that raises is traced with ``outcome="error"`` and the exception is
re-raised unchanged.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any

from billing_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_MESSAGE = "BILLING_ENGINE_TRACE"


def _stable_repr(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Decimal):
        # 1000 and 1000.00 are the same input
        return str(value.normalize())
    if isinstance(value, Mapping):
        parts = sorted(f"{k}:{_stable_repr(v)}" for k, v in value.items())
        return "{" + ",".join(parts) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_stable_repr(v) for v in value) + "]"
    return str(getattr(value, "value", value))


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """First 16 hex chars of SHA-256 over ``name=value`` pairs; absent names hash as null."""
    digest = hashlib.sha256()
    for name in fingerprint_fields:
        digest.update(f"{name}={_stable_repr(arguments.get(name))};".encode("utf-8"))
    return digest.hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            started = time.perf_counter()
            outcome = "ok"
            try:
                return func(*args, **kwargs)
            except Exception:
                outcome = "error"
                raise
            finally:
                _logger.debug(
                    TRACE_MESSAGE,
                    extra={
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": fingerprint,
                        "outcome": outcome,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                    },
                )

        wrapper.engine_name = engine_name  # type: ignore[attr-defined]
        wrapper.engine_version = engine_version  # type: ignore[attr-defined]
        return wrapper

    return decorator
