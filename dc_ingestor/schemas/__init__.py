"""Schemas package initialization."""
from .ingestion import (
    CandidateFile,
    DataStream,
    FileFormat,
    IngestedFileRecord,
    IngestionJob,
    JobStatus,
    ProcessFileRequest,
    ProfiledFile,
    ProgressEntry,
    ProgressStatus,
    UploadBatchRequest,
)

__all__ = [
    "CandidateFile",
    "DataStream",
    "FileFormat",
    "IngestedFileRecord",
    "IngestionJob",
    "JobStatus",
    "ProcessFileRequest",
    "ProfiledFile",
    "ProgressEntry",
    "ProgressStatus",
    "UploadBatchRequest",
]
