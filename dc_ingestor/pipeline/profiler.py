"""Validation and remote profiling of candidate files, one file at a time."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from pydantic import ValidationError as PydanticValidationError

from ..client.ingestion_api import IngestionAPIClient
from ..exceptions import OperationCancelledError, ProfilingError, RemoteCallError
from ..monitoring.metrics import (
    observe_file_profiling_duration,
    record_file_profiled,
    record_files_filtered,
)
from ..monitoring.tracing import trace_span
from ..schemas.ingestion import (
    CandidateFile,
    FileFormat,
    ProcessFileRequest,
    ProfiledFile,
    ProgressStatus,
)
from ..utils.logging import log_phase_event, setup_logger
from .cancellation import CancellationToken
from .progress import ProgressTracker, elapsed_seconds, format_elapsed, format_file_size


class ProfilerState(str, Enum):
    IDLE = "idle"
    FILTERING = "filtering"
    PROFILING = "profiling"
    DONE = "done"
    ABORTED = "aborted"


def partition_by_format(
    files: Iterable[CandidateFile],
    file_format: FileFormat,
) -> tuple[list[CandidateFile], list[CandidateFile]]:
    """Split files into (matching, filtered_out); every input lands in exactly one list."""

    matching: list[CandidateFile] = []
    filtered_out: list[CandidateFile] = []
    for candidate in files:
        (matching if candidate.matches(file_format) else filtered_out).append(candidate)
    return matching, filtered_out


@dataclass
class ProfilingResult:
    """Outcome of one processing run."""

    state: ProfilerState
    candidates: list[CandidateFile] = field(default_factory=list)
    profiled: list[ProfiledFile] = field(default_factory=list)
    filtered_out: list[CandidateFile] = field(default_factory=list)
    error: ProfilingError | None = None
    failures: list[ProfilingError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed_file(self) -> str | None:
        return self.error.file_name if self.error else None

    @property
    def no_matching_files(self) -> bool:
        return not self.candidates

    @property
    def succeeded(self) -> bool:
        return self.state == ProfilerState.DONE and not self.failures and bool(self.candidates)


class FileProfiler:
    """
    Filters candidate files by extension and profiles each match remotely.

    Profiled files are kept across runs, keyed by folder-relative path (or by
    name for files chosen individually); same-named files from different
    subfolders are separate entries. The header list of the first profiled
    file is sent as ``expectedHeaders`` for every later file. With ``abort_on_failure`` (the default) the first profiling failure
    ends the run and the remaining files are not attempted; files profiled so
    far are kept.
    """

    logger = setup_logger(__name__, context={"phase": "profile"})

    def __init__(
        self,
        client: IngestionAPIClient,
        *,
        file_format: FileFormat | str = FileFormat.CSV,
        base_directory: str | None = None,
        abort_on_failure: bool = True,
    ) -> None:
        self._client = client
        self.file_format = FileFormat(file_format)
        self.base_directory = base_directory or None
        self.abort_on_failure = abort_on_failure
        self.state = ProfilerState.IDLE
        self._profiled: dict[str, ProfiledFile] = {}
        self._filtered_out: list[CandidateFile] = []

    @property
    def profiled_files(self) -> list[ProfiledFile]:
        return list(self._profiled.values())

    @property
    def filtered_out(self) -> list[CandidateFile]:
        return list(self._filtered_out)

    @property
    def expected_headers(self) -> list[str] | None:
        """Header schema of the first profiled file still held, if any."""
        for profiled in self._profiled.values():
            if profiled.headers:
                return list(profiled.headers)
        return None

    def is_filtered_out(self, file_name: str) -> bool:
        return any(candidate.name == file_name for candidate in self._filtered_out)

    def remove(self, file_name: str) -> list[ProfiledFile]:
        """Drop every profiled file with this name or path, returning the dropped entries."""

        self._filtered_out = [c for c in self._filtered_out if c.name != file_name]
        keys = [
            key
            for key, profiled in self._profiled.items()
            if file_name in (profiled.file_name, profiled.file_path)
        ]
        return [self._profiled.pop(key) for key in keys]

    def clear(self) -> None:
        self._profiled.clear()
        self._filtered_out.clear()
        self.state = ProfilerState.IDLE

    async def process(
        self,
        files: Sequence[CandidateFile],
        tracker: ProgressTracker,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ProfilingResult:
        """
        Filter ``files`` and profile each match sequentially.

        Failures are reported in the returned result and in ``tracker`` rather
        than raised, so profiled files survive a failed run.
        """
        fmt = self.file_format.value
        self.state = ProfilerState.FILTERING
        matching, filtered_out = partition_by_format(files, self.file_format)
        self._filtered_out.extend(filtered_out)
        record_files_filtered(fmt, len(filtered_out))

        if filtered_out:
            self.logger.info(
                "Filtered out %d non-%s files",
                len(filtered_out),
                fmt.upper(),
                extra={"status": "filtered"},
            )

        result = ProfilingResult(
            state=ProfilerState.DONE,
            candidates=matching,
            filtered_out=filtered_out,
        )

        if not matching:
            tracker.record(
                f"No matching .{fmt} files found ({len(filtered_out)} filtered out)",
                ProgressStatus.ERROR,
            )
            self.state = ProfilerState.DONE
            return result

        total = len(matching)
        self.state = ProfilerState.PROFILING
        tracker.profiling_timer.start()
        try:
            with trace_span("profile", files=total) as span:
                for index, candidate in enumerate(matching, start=1):
                    if cancel_token is not None:
                        cancel_token.raise_if_cancelled()

                    profiled = await self._profile_one(candidate, index, total, tracker)
                    if isinstance(profiled, ProfilingError):
                        result.failures.append(profiled)
                        if result.error is None:
                            result.error = profiled
                        if self.abort_on_failure:
                            result.state = ProfilerState.ABORTED
                            break
                        continue

                    result.profiled.append(profiled)
                span.metadata["profiled"] = len(result.profiled)
        except OperationCancelledError as exc:
            result.state = ProfilerState.ABORTED
            result.cancelled = True
            tracker.record(f"Processing cancelled: {exc}", ProgressStatus.ERROR)
        finally:
            tracker.finish_file()
            tracker.profiling_timer.stop()

        self.state = result.state
        log_phase_event(
            self.logger,
            "profile",
            "aborted" if result.state == ProfilerState.ABORTED else "success",
            profiled=len(result.profiled),
            candidates=total,
        )
        return result

    async def _profile_one(
        self,
        candidate: CandidateFile,
        index: int,
        total: int,
        tracker: ProgressTracker,
    ) -> ProfiledFile | ProfilingError:
        current = tracker.begin_file(candidate.name, candidate.size, index, total)
        tracker.record(
            f"Processing file {index}/{total}: {candidate.name} ({format_file_size(candidate.size)})",
            ProgressStatus.PENDING,
        )

        request = ProcessFileRequest(
            file_path=candidate.relative_path,
            file_name=candidate.name,
            file_size=candidate.size,
            base_folder_name=candidate.base_folder_name,
            base_directory=self.base_directory,
            expected_headers=self.expected_headers,
        )

        try:
            body = await self._client.process_file(request)
            profiled = ProfiledFile.model_validate(
                {
                    "fileName": candidate.name,
                    "fileSize": candidate.size,
                    "headers": [],
                    **body,
                    "processingTimeSeconds": elapsed_seconds(current.started_at, tracker.now()),
                    "filePath": candidate.relative_path,
                    "baseFolderName": candidate.base_folder_name,
                    "baseDirectory": self.base_directory,
                }
            )
        except RemoteCallError as exc:
            return self._fail(candidate, exc.message or "Failed to process file", tracker)
        except PydanticValidationError as exc:
            return self._fail(candidate, f"Malformed profiling response ({exc.error_count()} errors)", tracker)

        if profiled.header_count == 0 and profiled.headers:
            profiled = profiled.model_copy(update={"header_count": len(profiled.headers)})

        key = profiled.file_path or profiled.file_name
        if key in self._profiled:
            self.logger.warning(
                "Replacing earlier profile of %s",
                key,
                extra={"file_name": profiled.file_name},
            )
        self._profiled[key] = profiled

        observe_file_profiling_duration(tracker.now() - current.started_at)
        record_file_profiled(self.file_format.value, "success")
        tracker.record(
            f"Processed {profiled.file_name}: {profiled.record_count:,} records, "
            f"{len(profiled.headers)} columns, {format_file_size(profiled.file_size)} "
            f"in {format_elapsed(profiled.processing_time_seconds)}",
            ProgressStatus.COMPLETED,
        )
        self.logger.info(
            "Profiled file %d/%d with %d records",
            index,
            total,
            profiled.record_count,
            extra={"file_name": profiled.file_name, "status": "success"},
        )

        if index == total:
            tracker.finish_file()
        return profiled

    def _fail(
        self,
        candidate: CandidateFile,
        reason: str,
        tracker: ProgressTracker,
    ) -> ProfilingError:
        error = ProfilingError(candidate.name, reason)
        record_file_profiled(self.file_format.value, "error")
        tracker.finish_file()
        tracker.record(str(error), ProgressStatus.ERROR)
        self.logger.error(
            "Profiling failed: %s",
            reason,
            extra={"file_name": candidate.name, "status": "error"},
        )
        return error
