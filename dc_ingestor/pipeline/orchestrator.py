"""Bulk ingestion job lifecycle: authenticate, create job, upload batches, complete job."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..client.ingestion_api import IngestionAPIClient
from ..exceptions import (
    AuthenticationFailedError,
    BatchUploadFailedError,
    DCIngestorError,
    JobCompletionFailedError,
    JobCreationFailedError,
    LifecycleError,
    NoFilesSelectedError,
    NoProfiledFilesError,
    NoStreamSelectedError,
    OperationCancelledError,
    RemoteCallError,
)
from ..monitoring.metrics import record_batch_upload, record_ingestion_run
from ..monitoring.tracing import ensure_correlation_id, trace_span
from ..schemas.ingestion import (
    DataStream,
    IngestedFileRecord,
    IngestionJob,
    JobStatus,
    ProfiledFile,
    ProgressEntry,
    ProgressStatus,
    UploadBatchRequest,
)
from ..utils.logging import StructuredLoggerAdapter, log_phase_event, setup_logger
from .cancellation import CancellationToken
from .progress import ProgressTracker, format_file_size

UPSERT = "upsert"


@dataclass
class IngestionRunResult:
    """Everything an operator needs to inspect a finished or failed run."""

    job: IngestionJob | None = None
    ingested_files: list[IngestedFileRecord] = field(default_factory=list)
    failed_files: list[BatchUploadFailedError] = field(default_factory=list)
    error: DCIngestorError | None = None
    entries: tuple[ProgressEntry, ...] = ()
    correlation_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return (
            self.error is None
            and not self.failed_files
            and self.job is not None
            and self.job.status == JobStatus.COMPLETED
        )

    @property
    def job_id(self) -> str | None:
        return self.job.job_id if self.job else None

    @property
    def phase(self) -> str | None:
        """Phase that ended the run, when it failed."""
        if self.error is None:
            return None
        if isinstance(self.error, LifecycleError):
            return self.error.phase
        if isinstance(self.error, OperationCancelledError):
            return "cancelled"
        return "preflight"

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "job": self.job.to_wire() if self.job else None,
            "ingested_files": [record.to_dict() for record in self.ingested_files],
            "failed_files": [failure.file_name for failure in self.failed_files],
            "error": str(self.error) if self.error else None,
            "phase": self.phase,
            "correlation_id": self.correlation_id,
        }


def resolve_job_target(
    stream: DataStream,
    *,
    default_object: str = "WebData",
    default_source_name: str = "DefaultSource",
) -> tuple[str, str]:
    """Return ``(object, source_name)`` for a job, preferring resolved stream detail."""

    source_name = stream.source_name or stream.name or stream.api_name or default_source_name
    object_name = stream.target_object or stream.object or default_object
    return object_name, source_name


class JobOrchestrator:
    """
    Drives one ingestion run through its phases in strict sequence.

    Only profiled files are uploaded, one batch per file. Every failure ends the
    run; it is recorded in the tracker and returned in the result together with
    the job id and the files uploaded so far. Nothing is retried.
    """

    logger = setup_logger(__name__, context={"phase": "ingest"})

    def __init__(
        self,
        client: IngestionAPIClient,
        *,
        default_object: str = "WebData",
        default_source_name: str = "DefaultSource",
        abort_on_upload_failure: bool = True,
    ) -> None:
        self._client = client
        self.default_object = default_object
        self.default_source_name = default_source_name
        self.abort_on_upload_failure = abort_on_upload_failure

    @staticmethod
    def preflight(
        stream: DataStream | None,
        raw_file_count: int,
        profiled_files: Sequence[ProfiledFile],
    ) -> DataStream:
        """
        Return the selected stream, or raise the first missing selection.

        Raises:
            NoStreamSelectedError, NoFilesSelectedError, NoProfiledFilesError
        """
        if stream is None:
            raise NoStreamSelectedError()
        if raw_file_count <= 0:
            raise NoFilesSelectedError()
        if not profiled_files:
            raise NoProfiledFilesError()
        return stream

    async def run(
        self,
        stream: DataStream | None,
        raw_file_count: int,
        profiled_files: Sequence[ProfiledFile],
        tracker: ProgressTracker,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> IngestionRunResult:
        """Execute the job lifecycle; failures are returned in the result, never raised."""

        result = IngestionRunResult(correlation_id=ensure_correlation_id())
        files = list(profiled_files)

        try:
            stream = self.preflight(stream, raw_file_count, files)
        except DCIngestorError as exc:
            return self._finish(result, tracker, exc)

        object_name, source_name = resolve_job_target(
            stream,
            default_object=self.default_object,
            default_source_name=self.default_source_name,
        )
        job = IngestionJob(object=object_name, source_name=source_name, operation=UPSERT)
        result.job = job
        log = self.logger.bind(stream=stream.key or stream.label, correlation_id=result.correlation_id)

        tracker.upload_timer.start()
        try:
            await self._authenticate(job, tracker, cancel_token)
            await self._create_job(job, tracker, cancel_token, log)
            await self._upload_batches(job, files, tracker, result, cancel_token, log)
            await self._complete_job(job, tracker, cancel_token, log)
        except DCIngestorError as exc:
            job.status = JobStatus.FAILED
            return self._finish(result, tracker, exc)
        finally:
            tracker.upload_timer.stop()

        job.status = JobStatus.COMPLETED
        if result.failed_files:
            tracker.record(
                f"Ingestion completed with {len(result.failed_files)} failed file(s)",
                ProgressStatus.ERROR,
            )
        else:
            tracker.record("Ingestion completed successfully!", ProgressStatus.COMPLETED)
        return self._finish(result, tracker, None)

    async def _authenticate(
        self,
        job: IngestionJob,
        tracker: ProgressTracker,
        cancel_token: CancellationToken | None,
    ) -> None:
        self._checkpoint(cancel_token)
        job.status = JobStatus.AUTHENTICATING
        tracker.record("Authenticating with Data Cloud (2-step process)...")

        with trace_span("authenticate"):
            try:
                body = await self._client.get_token()
            except RemoteCallError as exc:
                raise AuthenticationFailedError(exc.message) from exc

        tenant_url = body.get("instanceUrl")
        access_token = body.get("accessToken")
        if not tenant_url or not access_token:
            raise AuthenticationFailedError("response did not include instanceUrl and accessToken")

        job.tenant_url = tenant_url
        job.access_token = access_token
        tracker.record(f"Data Cloud authenticated - Tenant: {tenant_url}", ProgressStatus.COMPLETED)
        log_phase_event(self.logger, "authenticate", "success")

    async def _create_job(
        self,
        job: IngestionJob,
        tracker: ProgressTracker,
        cancel_token: CancellationToken | None,
        log: StructuredLoggerAdapter,
    ) -> None:
        self._checkpoint(cancel_token)
        job.status = JobStatus.CREATING
        tracker.record(f"Creating ingestion job for {job.object} (source {job.source_name})...")

        with trace_span("create_job", object=job.object):
            try:
                body = await self._client.create_job(
                    tenant_url=job.tenant_url or "",
                    access_token=job.access_token or "",
                    object_name=job.object,
                    source_name=job.source_name,
                    operation=job.operation,
                )
            except RemoteCallError as exc:
                raise JobCreationFailedError(exc.message) from exc

        job_id = body.get("jobId")
        if not job_id:
            raise JobCreationFailedError("response did not include a jobId")

        job.job_id = str(job_id)
        tracker.record(f"Ingestion job created: {job.job_id}", ProgressStatus.COMPLETED)
        log_phase_event(log, "create_job", "success", job_id=job.job_id)

    async def _upload_batches(
        self,
        job: IngestionJob,
        files: list[ProfiledFile],
        tracker: ProgressTracker,
        result: IngestionRunResult,
        cancel_token: CancellationToken | None,
        log: StructuredLoggerAdapter,
    ) -> None:
        job.status = JobStatus.UPLOADING
        total = len(files)
        tracker.record(f"Preparing to upload {total} file(s)...")

        with trace_span("upload", job_id=job.job_id, files=total) as span:
            for index, profiled in enumerate(files, start=1):
                self._checkpoint(cancel_token)
                tracker.record(f"Uploading file {index}/{total}: {profiled.file_name}...")

                request = UploadBatchRequest(
                    tenant_url=job.tenant_url or "",
                    access_token=job.access_token or "",
                    job_id=job.job_id or "",
                    file_path=profiled.file_path,
                    file_name=profiled.file_name,
                    base_folder_name=profiled.base_folder_name,
                    base_directory=profiled.base_directory,
                )
                try:
                    await self._client.upload_batch(request)
                except RemoteCallError as exc:
                    record_batch_upload("error")
                    failure = BatchUploadFailedError(profiled.file_name, exc.message, job_id=job.job_id)
                    result.failed_files.append(failure)
                    if self.abort_on_upload_failure:
                        raise failure from exc
                    tracker.record(f"Error: {failure}", ProgressStatus.ERROR)
                    log_phase_event(log, "upload", "error", job_id=job.job_id, file_name=profiled.file_name)
                    continue

                record_batch_upload("success")
                result.ingested_files.append(
                    IngestedFileRecord(
                        file_name=profiled.file_name,
                        timestamp=datetime.now(timezone.utc),
                        status="completed",
                        size=profiled.file_size,
                    )
                )
                tracker.record(
                    f"Uploaded: {profiled.file_name} ({format_file_size(profiled.file_size)})",
                    ProgressStatus.COMPLETED,
                )
                log.info(
                    "Uploaded batch %d/%d",
                    index,
                    total,
                    extra={"job_id": job.job_id, "file_name": profiled.file_name, "status": "success"},
                )
            span.metadata["uploaded"] = len(result.ingested_files)

    async def _complete_job(
        self,
        job: IngestionJob,
        tracker: ProgressTracker,
        cancel_token: CancellationToken | None,
        log: StructuredLoggerAdapter,
    ) -> None:
        self._checkpoint(cancel_token)
        job.status = JobStatus.COMPLETING
        tracker.record("Completing ingestion job...")

        with trace_span("complete_job", job_id=job.job_id):
            try:
                await self._client.complete_job(
                    tenant_url=job.tenant_url or "",
                    access_token=job.access_token or "",
                    job_id=job.job_id or "",
                )
            except RemoteCallError as exc:
                raise JobCompletionFailedError(job.job_id or "-", exc.message) from exc

        log_phase_event(log, "complete_job", "success", job_id=job.job_id)

    @staticmethod
    def _checkpoint(cancel_token: CancellationToken | None) -> None:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

    def _finish(
        self,
        result: IngestionRunResult,
        tracker: ProgressTracker,
        error: DCIngestorError | None,
    ) -> IngestionRunResult:
        result.error = error
        if error is not None:
            tracker.record(f"Error: {error}", ProgressStatus.ERROR)
            log_phase_event(
                self.logger,
                result.phase or "ingest",
                "error",
                job_id=result.job_id or "-",
                uploaded=len(result.ingested_files),
            )
            record_ingestion_run(result.phase or "failed")
        else:
            record_ingestion_run("completed")
        result.entries = tracker.entries
        return result
