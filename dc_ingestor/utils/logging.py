"""Logging configuration for dc_ingestor."""

from __future__ import annotations

import logging
import sys
from threading import Lock
from typing import Any, Final

from .config import get_settings

LOG_FORMAT: Final[str] = (
    "%(asctime)s | %(levelname)s | %(name)s | "
    "stream=%(stream)s | job_id=%(job_id)s | file=%(file_name)s | "
    "phase=%(phase)s | status=%(status)s | duration_ms=%(duration_ms)s | "
    "correlation_id=%(correlation_id)s | %(message)s"
)

DEFAULT_CONTEXT: Final[dict[str, str]] = {
    "stream": "-",
    "job_id": "-",
    "file_name": "-",
    "phase": "-",
    "status": "-",
    "duration_ms": "-",
    "correlation_id": "-",
}

_LOG_CONFIGURED = False
_CONFIG_LOCK: Final = Lock()


class ContextualFormatter(logging.Formatter):
    """Formatter that injects default structured context fields when absent."""

    def __init__(self, fmt: str, defaults: dict[str, str] | None = None) -> None:
        super().__init__(fmt)
        self._defaults = defaults or {}

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        for key, value in self._defaults.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return super().format(record)


class CorrelationIdFilter(logging.Filter):
    """Fill ``correlation_id`` from the active run when a record does not carry one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "correlation_id", "-") in (None, "-"):
            # Imported here: the tracing module builds its logger from this one.
            from ..monitoring.tracing import get_correlation_id

            record.correlation_id = get_correlation_id() or "-"
        return True


def _configure_root_logger() -> None:
    """Configure the root logger exactly once based on global settings."""

    global _LOG_CONFIGURED
    with _CONFIG_LOCK:
        if _LOG_CONFIGURED:
            return

        settings = get_settings()
        resolved_level = getattr(logging, settings.log_level.upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(resolved_level)

        formatter = ContextualFormatter(LOG_FORMAT, DEFAULT_CONTEXT)
        correlation_filter = CorrelationIdFilter()

        if not root_logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setLevel(resolved_level)
            handler.setFormatter(formatter)
            handler.addFilter(correlation_filter)
            root_logger.addHandler(handler)
        else:
            for handler in root_logger.handlers:
                handler.setFormatter(formatter)
                handler.addFilter(correlation_filter)

        _LOG_CONFIGURED = True


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that lets per-call extras override defaults."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:  # type: ignore[override]
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **context: Any) -> StructuredLoggerAdapter:
        """Return a new adapter carrying additional default context."""

        merged = dict(self.extra or {})
        merged.update(context)
        return StructuredLoggerAdapter(self.logger, merged)


def setup_logger(
    name: str,
    *,
    level: str | None = None,
    context: dict[str, Any] | None = None,
) -> StructuredLoggerAdapter:
    """Return a logger configured with the global logging defaults.

    Args:
        name: Logger name to retrieve.
        level: Optional log level override (primarily for tests).
        context: Optional default structured context to include with every entry.

    Returns:
        LoggerAdapter injecting structured defaults for consistent formatting.
    """

    _configure_root_logger()
    logger = logging.getLogger(name)

    if level is not None:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    adapter_context: dict[str, Any] = dict(DEFAULT_CONTEXT)
    if context:
        adapter_context.update(context)

    return StructuredLoggerAdapter(logger, adapter_context)


def log_phase_event(
    logger: logging.Logger | logging.LoggerAdapter,
    phase: str,
    status: str,
    *,
    duration_ms: int | None = None,
    **extra_context: Any,
) -> None:
    """
    Log the outcome of a pipeline phase with structured context.

    Args:
        logger: Logger instance
        phase: Phase name (profile, authenticate, create_job, upload, complete_job)
        status: Outcome (success, error, aborted, ...)
        duration_ms: Optional phase duration in milliseconds
        **extra_context: Additional structured fields (stream, job_id, file_name, ...)
    """
    structured_context: dict[str, Any] = {
        "phase": phase,
        "status": status,
        "duration_ms": duration_ms if duration_ms is not None else "-",
    }
    known = {key: value for key, value in extra_context.items() if key in DEFAULT_CONTEXT}
    additional = {key: value for key, value in extra_context.items() if key not in DEFAULT_CONTEXT}
    structured_context.update(known)

    suffix = f" | context={additional}" if additional else ""
    status_value = status or "unknown"
    log_method = logger.error if status_value.lower() in {"error", "failed"} else logger.info
    log_method(f"Phase {phase} {status_value}{suffix}", extra=structured_context)
