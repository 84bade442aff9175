"""Custom exceptions for dc_ingestor."""

from __future__ import annotations


class DCIngestorError(Exception):
    """Base exception for all dc_ingestor errors."""

    pass


class ConfigurationError(DCIngestorError):
    """Raised when configuration is invalid or missing."""

    pass


class RemoteCallError(DCIngestorError):
    """Raised when a call to the remote ingestion service fails."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint
        self.status_code = status_code


class OperationCancelledError(DCIngestorError):
    """Raised when a run is cancelled before its next remote call."""

    pass


class DiscoveryError(DCIngestorError):
    """Raised when ingestion streams cannot be discovered."""

    REQUEST_FAILED = "request_failed"
    EMPTY = "empty"

    def __init__(self, message: str, *, reason: str = REQUEST_FAILED) -> None:
        super().__init__(message)
        self.reason = reason


class StreamDetailError(DiscoveryError):
    """Raised when the detail lookup for a selected stream fails."""

    def __init__(self, message: str, *, stream_key: str | None = None) -> None:
        super().__init__(message, reason=DiscoveryError.REQUEST_FAILED)
        self.stream_key = stream_key


class SelectionError(DCIngestorError):
    """Raised when an ingestion run is started without the required selections."""

    pass


class NoStreamSelectedError(SelectionError):
    def __init__(self, message: str = "Please select a data stream") -> None:
        super().__init__(message)


class NoFilesSelectedError(SelectionError):
    def __init__(self, message: str = "Please select at least one file") -> None:
        super().__init__(message)


class NoProfiledFilesError(SelectionError):
    def __init__(
        self,
        message: str = "No processed files to upload. Please process files first.",
    ) -> None:
        super().__init__(message)


class IncompleteProfilingError(SelectionError):
    """Raised when only part of the matching selection was profiled."""

    def __init__(self, profiled: int, expected: int) -> None:
        super().__init__(
            f"Only {profiled} of {expected} files were processed successfully. "
            "Remove the failed files or force the run to upload the processed ones."
        )
        self.profiled = profiled
        self.expected = expected


class ProfilingError(DCIngestorError):
    """Raised when the remote profiler rejects a candidate file."""

    def __init__(self, file_name: str, reason: str) -> None:
        super().__init__(f'Error in file "{file_name}": {reason}')
        self.file_name = file_name
        self.reason = reason


class LifecycleError(DCIngestorError):
    """Base class for failures of an ingestion job phase."""

    phase = "lifecycle"

    def __init__(self, message: str, *, job_id: str | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class AuthenticationFailedError(LifecycleError):
    phase = "authenticate"

    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to get Data Cloud token: {reason}")


class JobCreationFailedError(LifecycleError):
    phase = "create_job"

    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to create ingestion job: {reason}")


class BatchUploadFailedError(LifecycleError):
    phase = "upload"

    def __init__(self, file_name: str, reason: str, *, job_id: str | None = None) -> None:
        super().__init__(f"Failed to upload {file_name}: {reason}", job_id=job_id)
        self.file_name = file_name


class JobCompletionFailedError(LifecycleError):
    phase = "complete_job"

    def __init__(self, job_id: str, reason: str) -> None:
        super().__init__(f"Failed to complete ingestion job {job_id}: {reason}", job_id=job_id)
