"""Prometheus metrics definitions for dc_ingestor."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

FILES_PROFILED = Counter(
    "ingestion_files_profiled_total",
    "Candidate files sent to the remote profiler, by outcome.",
    labelnames=("file_format", "status"),
)

FILES_FILTERED = Counter(
    "ingestion_files_filtered_total",
    "Candidate files rejected by the extension filter.",
    labelnames=("file_format",),
)

BATCH_UPLOADS = Counter(
    "ingestion_batch_uploads_total",
    "Batch uploads against an ingestion job, by outcome.",
    labelnames=("status",),
)

INGESTION_RUNS = Counter(
    "ingestion_runs_total",
    "Ingestion runs by final outcome.",
    labelnames=("outcome",),
)

PHASE_DURATION = Histogram(
    "ingestion_phase_duration_seconds",
    "Duration of ingestion pipeline phases in seconds.",
    labelnames=("phase",),
    buckets=(0.1, 0.5, 1, 5, 15, 30, 60, 120, 300, 600),
)

FILE_PROFILING_DURATION = Histogram(
    "ingestion_file_profiling_duration_seconds",
    "Remote profiling time per file in seconds.",
    buckets=(0.1, 0.5, 1, 5, 15, 30, 60, 120, 300, 600),
)

ACTIVE_PHASES = Gauge(
    "ingestion_active_phases",
    "Pipeline phases currently running.",
    labelnames=("phase",),
)


def record_file_profiled(file_format: str, status: str) -> None:
    FILES_PROFILED.labels(file_format=file_format, status=status).inc()


def record_files_filtered(file_format: str, count: int) -> None:
    if count > 0:
        FILES_FILTERED.labels(file_format=file_format).inc(count)


def record_batch_upload(status: str) -> None:
    BATCH_UPLOADS.labels(status=status).inc()


def record_ingestion_run(outcome: str) -> None:
    """Increment the run counter with the final outcome (completed or a failed phase)."""

    INGESTION_RUNS.labels(outcome=outcome).inc()


def observe_phase_duration(phase: str, duration_seconds: float) -> None:
    PHASE_DURATION.labels(phase=phase).observe(max(duration_seconds, 0.0))


def observe_file_profiling_duration(duration_seconds: float) -> None:
    FILE_PROFILING_DURATION.observe(max(duration_seconds, 0.0))


def increment_active_phase(phase: str) -> None:
    ACTIVE_PHASES.labels(phase=phase).inc()


def decrement_active_phase(phase: str) -> None:
    ACTIVE_PHASES.labels(phase=phase).dec()
