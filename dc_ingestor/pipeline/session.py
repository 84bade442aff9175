"""Operator workflow tying stream selection, file profiling and job execution together."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from ..client.ingestion_api import IngestionAPIClient
from ..exceptions import (
    DCIngestorError,
    DiscoveryError,
    IncompleteProfilingError,
    NoFilesSelectedError,
    NoProfiledFilesError,
    NoStreamSelectedError,
    SelectionError,
    StreamDetailError,
)
from ..monitoring.tracing import generate_correlation_id, set_correlation_id
from ..schemas.ingestion import (
    CandidateFile,
    DataStream,
    FileFormat,
    ProfiledFile,
    ProgressStatus,
)
from ..utils.config import IngestorSettings
from ..utils.logging import setup_logger
from .cancellation import CancellationToken
from .catalog import StreamCatalog
from .orchestrator import IngestionRunResult, JobOrchestrator
from .profiler import FileProfiler, ProfilingResult
from .progress import ProgressListener, ProgressTracker


@dataclass
class Readiness:
    """Whether an ingestion run may start, and why not."""

    blockers: list[SelectionError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    busy: bool = False

    @property
    def can_start(self) -> bool:
        return not self.busy and not self.blockers and not self.warnings


class IngestionSession:
    """
    Per-operator state for the ingestion workflow.

    Holds the selected stream, the raw file selection and the persistent error
    banner; each processing or ingestion run gets a fresh tracker.
    """

    logger = setup_logger(__name__)

    def __init__(
        self,
        client: IngestionAPIClient,
        settings: IngestorSettings,
        *,
        listeners: Sequence[ProgressListener] = (),
    ) -> None:
        self.settings = settings
        self._listeners = tuple(listeners)
        self.catalog = StreamCatalog(client)
        self.profiler = FileProfiler(
            client,
            file_format=settings.file_format,
            base_directory=settings.base_directory,
            abort_on_failure=settings.abort_profiling_on_failure,
        )
        self.orchestrator = JobOrchestrator(
            client,
            default_object=settings.default_object,
            default_source_name=settings.default_source_name,
            abort_on_upload_failure=settings.abort_upload_on_failure,
        )
        self.streams: list[DataStream] = []
        self.selected_stream: DataStream | None = None
        self.raw_files: list[CandidateFile] = []
        self.error: str | None = None
        self.processing_tracker = self._new_tracker()
        self.ingestion_tracker = self._new_tracker()
        self.last_profiling: ProfilingResult | None = None
        self.last_run: IngestionRunResult | None = None
        self.is_processing = False
        self.is_uploading = False
        self.cancel_token = CancellationToken()

    def _new_tracker(self) -> ProgressTracker:
        tracker = ProgressTracker(tick_interval=self.settings.tick_interval_seconds)
        for listener in self._listeners:
            tracker.subscribe(listener)
        return tracker

    @property
    def profiled_files(self) -> list[ProfiledFile]:
        return self.profiler.profiled_files

    @property
    def matching_raw_files(self) -> list[CandidateFile]:
        return [f for f in self.raw_files if f.matches(self.profiler.file_format)]

    def set_file_format(self, file_format: FileFormat | str) -> None:
        self._ensure_idle()
        self.profiler.file_format = FileFormat(file_format)

    def set_base_directory(self, base_directory: str | None) -> None:
        self._ensure_idle()
        self.profiler.base_directory = base_directory or None

    async def refresh_streams(self) -> list[DataStream]:
        self.error = None
        try:
            self.streams = await self.catalog.list_streams()
        except DiscoveryError as exc:
            self.streams = []
            self.error = str(exc)
        return self.streams

    async def select_stream(self, stream: DataStream) -> DataStream:
        """Select ``stream`` and resolve its detail; a failed lookup keeps the catalog entry."""

        self.selected_stream = stream
        try:
            resolved = await self.catalog.get_stream_detail(stream)
        except StreamDetailError as exc:
            self.error = str(exc)
            self.logger.warning(
                "Falling back to catalog-level stream fields",
                extra={"stream": stream.key or stream.label, "status": "fallback"},
            )
            return stream

        # A newer selection made while the lookup was in flight wins.
        if self.selected_stream is stream:
            self.selected_stream = resolved
        return resolved

    async def add_files(self, files: Sequence[CandidateFile]) -> ProfilingResult:
        """Add files to the raw selection and profile them in a new processing run."""

        self._ensure_idle()
        self.raw_files.extend(files)
        self.processing_tracker = self._new_tracker()
        self.error = None
        self.is_processing = True
        set_correlation_id(generate_correlation_id())
        try:
            result = await self.profiler.process(
                files,
                self.processing_tracker,
                cancel_token=self.cancel_token,
            )
        finally:
            self.is_processing = False

        if result.error is not None:
            self.error = str(result.error)
        elif result.cancelled:
            self.error = "File processing was cancelled"
        elif result.no_matching_files:
            self.error = (
                f"No matching .{self.profiler.file_format.value} files found "
                f"({len(result.filtered_out)} filtered out)"
            )
        self.last_profiling = result
        return result

    def remove_file(self, file_name: str) -> bool:
        """Remove every raw and profiled file with this name (or folder-relative path)."""

        kept = [f for f in self.raw_files if file_name not in (f.name, f.relative_path)]
        removed_raw = len(kept) != len(self.raw_files)
        self.raw_files = kept
        removed = self.profiler.remove(file_name)
        return removed_raw or bool(removed)

    def clear_files(self) -> None:
        self._ensure_idle()
        self.raw_files.clear()
        self.profiler.clear()
        self.processing_tracker = self._new_tracker()
        self.ingestion_tracker = self._new_tracker()

    def readiness(self) -> Readiness:
        readiness = Readiness(busy=self.is_processing or self.is_uploading)
        if self.selected_stream is None:
            readiness.blockers.append(NoStreamSelectedError())
        if not self.raw_files:
            readiness.blockers.append(NoFilesSelectedError())
        elif not self.profiled_files:
            readiness.blockers.append(NoProfiledFilesError())
        else:
            expected = len(self.matching_raw_files)
            profiled = len(self.profiled_files)
            if profiled < expected:
                readiness.warnings.append(str(IncompleteProfilingError(profiled, expected)))
        return readiness

    async def start_ingestion(self, *, force: bool = False) -> IngestionRunResult:
        """
        Run the job lifecycle over the profiled files.

        A partially profiled selection is refused unless ``force`` is set, in which
        case only the profiled files are uploaded.
        """
        self._ensure_idle()
        self.ingestion_tracker = self._new_tracker()
        self.error = None
        set_correlation_id(generate_correlation_id())

        readiness = self.readiness()
        if readiness.warnings and not readiness.blockers and not force:
            expected = len(self.matching_raw_files)
            error = IncompleteProfilingError(len(self.profiled_files), expected)
            self.ingestion_tracker.record(f"Error: {error}", ProgressStatus.ERROR)
            self.error = str(error)
            self.last_run = IngestionRunResult(error=error, entries=self.ingestion_tracker.entries)
            return self.last_run

        self.is_uploading = True
        try:
            result = await self.orchestrator.run(
                self.selected_stream,
                len(self.raw_files),
                self.profiled_files,
                self.ingestion_tracker,
                cancel_token=self.cancel_token,
            )
        finally:
            self.is_uploading = False

        if result.error is not None:
            self.error = f"Ingestion failed: {result.error}"
        self.last_run = result
        return result

    def cancel(self, reason: str = "Cancelled by operator") -> None:
        """Stop at the next remote call and stop live timers; in-flight calls complete."""

        self.cancel_token.cancel(reason)
        self.processing_tracker.stop_timers()
        self.ingestion_tracker.stop_timers()

    def reset_cancellation(self) -> None:
        self.cancel_token = CancellationToken()

    def _ensure_idle(self) -> None:
        if self.is_processing or self.is_uploading:
            raise DCIngestorError("Another run is in progress")
