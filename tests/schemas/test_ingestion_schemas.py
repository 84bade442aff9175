"""Tests for ingestion schemas and value objects."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from dc_ingestor.schemas import (
    CandidateFile,
    DataStream,
    FileFormat,
    IngestionJob,
    ProfiledFile,
    ProgressEntry,
    ProgressStatus,
)


def test_data_stream_accepts_camel_case_payload() -> None:
    stream = DataStream.model_validate({"id": "s1", "apiName": "Web_Data", "object": "WebData"})

    assert stream.api_name == "Web_Data"
    assert stream.key == "s1"
    assert stream.label == "Web_Data"
    assert not stream.has_detail


def test_data_stream_is_frozen() -> None:
    stream = DataStream(id="s1")
    with pytest.raises(ValidationError):
        stream.name = "changed"  # type: ignore[misc]


@pytest.mark.parametrize(
    ("name", "extension", "matches_csv"),
    [("a.csv", "csv", True), ("A.CSV", "csv", True), ("archive.csv.gz", "gz", False), ("README", None, False)],
)
def test_candidate_extension(name: str, extension: str | None, matches_csv: bool) -> None:
    candidate = CandidateFile(name=name)

    assert candidate.extension == extension
    assert candidate.matches(FileFormat.CSV) is matches_csv


def test_candidate_base_folder_handles_backslashes() -> None:
    assert CandidateFile(name="a.csv", relative_path="exports\\a.csv").base_folder_name == "exports"


def test_profiled_file_round_trips_wire_names() -> None:
    profiled = ProfiledFile.model_validate({"fileName": "a.csv", "recordCount": 5, "headers": ["x"], "extra": 1})

    wire = profiled.to_wire()

    assert wire["fileName"] == "a.csv"
    assert wire["recordCount"] == 5
    assert "extra" not in wire


def test_ingestion_job_hides_access_token() -> None:
    job = IngestionJob(object="WebData", source_name="src", access_token="secret")

    assert "accessToken" not in job.to_wire()
    assert "secret" not in repr(job)
    assert job.to_wire()["operation"] == "upsert"


def test_progress_entry_to_dict() -> None:
    stamp = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    entry = ProgressEntry(message="done", status=ProgressStatus.COMPLETED, timestamp=stamp)

    assert entry.to_dict() == {
        "message": "done",
        "status": "completed",
        "timestamp": "2024-01-02T03:04:05+00:00",
    }
