"""Correlation-id propagation and lightweight spans for ingestion runs.

Each processing or ingestion run gets a correlation id that is attached to log
records and sent to the ingestion service as ``X-Correlation-ID``.
"""

from __future__ import annotations

import contextvars
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from ..utils.logging import setup_logger
from .metrics import decrement_active_phase, increment_active_phase, observe_phase_duration

logger = setup_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

_correlation_id_context: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


@dataclass
class TraceSpan:
    """
    Timing record for one pipeline phase.

    Attributes:
        span_id: Unique identifier for this span
        correlation_id: Correlation id of the enclosing run
        operation: Phase name
        start_time: Monotonic start reading
        duration_ms: Duration in milliseconds, set when the span finishes
        metadata: Additional structured context
    """

    span_id: str
    correlation_id: str
    operation: str
    start_time: float
    end_time: float | None = None
    duration_ms: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def finish(self) -> None:
        if self.end_time is None:
            self.end_time = time.monotonic()
            self.duration_ms = int((self.end_time - self.start_time) * 1000)


def get_correlation_id() -> str | None:
    return _correlation_id_context.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id_context.set(correlation_id)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def ensure_correlation_id(provided_id: str | None = None) -> str:
    """Return the provided id, the active id, or a newly generated one (made active)."""

    if provided_id:
        set_correlation_id(provided_id)
        return provided_id

    existing = get_correlation_id()
    if existing:
        return existing

    new_id = generate_correlation_id()
    set_correlation_id(new_id)
    return new_id


def correlation_headers(headers: dict[str, str] | None = None) -> dict[str, str]:
    """Return a copy of ``headers`` carrying the active correlation id."""

    result = dict(headers or {})
    result[CORRELATION_HEADER] = ensure_correlation_id()
    return result


@contextmanager
def trace_span(operation: str, **metadata: Any) -> Iterator[TraceSpan]:
    """
    Time a pipeline phase, export its duration and log start/finish.

    Example:
        with trace_span("upload", job_id=job.job_id) as span:
            span.metadata["files"] = 3
    """
    corr_id = ensure_correlation_id()
    span = TraceSpan(
        span_id=str(uuid.uuid4()),
        correlation_id=corr_id,
        operation=operation,
        start_time=time.monotonic(),
        metadata=metadata,
    )

    logger.debug(
        "Span started: %s",
        operation,
        extra={"phase": operation, "correlation_id": corr_id},
    )
    increment_active_phase(operation)
    try:
        yield span
    finally:
        span.finish()
        decrement_active_phase(operation)
        observe_phase_duration(operation, (span.duration_ms or 0) / 1000)
        logger.debug(
            "Span completed: %s (duration: %dms)",
            operation,
            span.duration_ms or 0,
            extra={
                "phase": operation,
                "correlation_id": corr_id,
                "duration_ms": span.duration_ms,
            },
        )


__all__ = [
    "CORRELATION_HEADER",
    "TraceSpan",
    "correlation_headers",
    "ensure_correlation_id",
    "generate_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
    "trace_span",
]
