"""Ingestion pipeline components: catalog, profiler, orchestrator and progress tracking."""

from .cancellation import CancellationToken
from .catalog import StreamCatalog
from .orchestrator import IngestionRunResult, JobOrchestrator, resolve_job_target
from .profiler import FileProfiler, ProfilerState, ProfilingResult, partition_by_format
from .progress import PhaseTimer, ProgressTracker
from .session import IngestionSession, Readiness

__all__ = [
    "CancellationToken",
    "FileProfiler",
    "IngestionRunResult",
    "IngestionSession",
    "JobOrchestrator",
    "PhaseTimer",
    "ProfilerState",
    "ProfilingResult",
    "ProgressTracker",
    "Readiness",
    "StreamCatalog",
    "partition_by_format",
    "resolve_job_target",
]
