"""Pydantic schemas and value objects for the bulk ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FileFormat(str, Enum):
    """File extensions accepted by the remote profiler."""

    CSV = "csv"
    JSON = "json"
    TXT = "txt"


class JobStatus(str, Enum):
    """Lifecycle states of a remote ingestion job."""

    NOT_STARTED = "not_started"
    AUTHENTICATING = "authenticating"
    CREATING = "creating"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    COMPLETED = "completed"
    FAILED = "failed"


class ProgressStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"


class WireModel(BaseModel):
    """Base model serialising to the camelCase JSON used by the ingestion service."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class DataStream(WireModel):
    """Ingestion target as listed by the catalog, optionally enriched by a detail lookup."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    id: str | None = Field(None, description="Stream identifier")
    name: str | None = Field(None, description="Display name shown in the catalog")
    api_name: str | None = Field(None, description="Developer name of the stream")
    object: str | None = Field(None, description="Catalog-level target object")
    target_object: str | None = Field(None, description="Object resolved from the detail lookup")
    source_name: str | None = Field(None, description="Source name resolved from the detail lookup")
    connection_details: dict[str, Any] | None = None
    connection_schema: dict[str, Any] | None = None
    details: dict[str, Any] | None = None

    @property
    def key(self) -> str | None:
        """Identifier used for detail lookups."""
        return self.id or self.api_name

    @property
    def label(self) -> str:
        return self.name or self.api_name or self.id or "<unnamed stream>"

    @property
    def has_detail(self) -> bool:
        return self.details is not None


class CandidateFile(BaseModel):
    """Raw file chosen by the operator, before filtering and profiling."""

    model_config = ConfigDict(frozen=True)

    name: str
    size: int = Field(default=0, ge=0)
    relative_path: str | None = Field(
        None,
        description="Folder-relative path when chosen through folder selection",
    )
    local_path: Path | None = Field(None, description="Location on the local filesystem")

    @property
    def extension(self) -> str | None:
        parts = self.name.split(".")
        if len(parts) < 2:
            return None
        return parts[-1].lower()

    @property
    def base_folder_name(self) -> str | None:
        """First segment of the relative path, used for server-side directory resolution."""
        if not self.relative_path:
            return None
        return self.relative_path.replace("\\", "/").split("/")[0] or None

    def matches(self, file_format: FileFormat | str) -> bool:
        expected = file_format.value if isinstance(file_format, FileFormat) else file_format
        return bool(self.name) and self.extension == expected.lower()


class ProcessFileRequest(WireModel):
    file_path: str | None = None
    file_name: str
    file_size: int
    base_folder_name: str | None = None
    base_directory: str | None = None
    expected_headers: list[str] | None = None


class ProfiledFile(WireModel):
    """File accepted by the remote profiler; the only files eligible for upload."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    file_name: str
    file_size: int = 0
    record_count: int = 0
    headers: list[str] = Field(default_factory=list)
    header_count: int = 0
    processing_time_seconds: int = 0
    preview: Any = None
    file_path: str | None = None
    base_folder_name: str | None = None
    base_directory: str | None = None


class UploadBatchRequest(WireModel):
    tenant_url: str
    access_token: str
    job_id: str
    file_path: str | None = None
    file_name: str
    base_folder_name: str | None = None
    base_directory: str | None = None


class IngestionJob(WireModel):
    """Remote bulk-ingestion job opened for a single run."""

    job_id: str | None = None
    tenant_url: str | None = None
    access_token: str | None = Field(None, repr=False, exclude=True)
    object: str
    source_name: str
    operation: str = "upsert"
    status: JobStatus = JobStatus.NOT_STARTED


@dataclass(frozen=True, slots=True)
class ProgressEntry:
    """Single immutable line of the progress log."""

    message: str
    status: ProgressStatus
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class IngestedFileRecord:
    """Batch that was accepted by the remote job."""

    file_name: str
    timestamp: datetime
    status: str
    size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileName": self.file_name,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
            "size": self.size,
        }
