"""Tests for extension filtering and sequential remote profiling."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from dc_ingestor.client.ingestion_api import IngestionAPIClient
from dc_ingestor.pipeline.cancellation import CancellationToken
from dc_ingestor.pipeline.profiler import FileProfiler, ProfilerState, partition_by_format
from dc_ingestor.pipeline.progress import ProgressTracker
from dc_ingestor.schemas.ingestion import CandidateFile, FileFormat, ProgressStatus
from tests.fixtures.synthetic.ingestion_fixtures import FakeIngestionBackend

MakeCandidates = Callable[..., list[CandidateFile]]


def test_partition_assigns_every_file_once(make_candidates: MakeCandidates) -> None:
    files = make_candidates("a.csv", "B.CSV", "notes.txt", "README", "data.json")

    matching, filtered_out = partition_by_format(files, FileFormat.CSV)

    assert [f.name for f in matching] == ["a.csv", "B.CSV"]
    assert [f.name for f in filtered_out] == ["notes.txt", "README", "data.json"]
    assert len(matching) + len(filtered_out) == len(files)


def test_base_folder_name_comes_from_relative_path(make_candidates: MakeCandidates) -> None:
    nested = make_candidates("x.csv", folder="exports/2024")[0]
    flat = make_candidates("y.csv")[0]

    assert nested.base_folder_name == "exports"
    assert flat.base_folder_name is None


@pytest.mark.asyncio
async def test_profiles_matching_files_in_order(
    client: IngestionAPIClient,
    backend: FakeIngestionBackend,
    make_candidates: MakeCandidates,
) -> None:
    backend.record_counts = {"a.csv": 1200, "b.csv": 7}
    profiler = FileProfiler(client)
    tracker = ProgressTracker()

    result = await profiler.process(make_candidates("a.csv", "skip.txt", "b.csv"), tracker)

    assert result.succeeded
    assert [p.file_name for p in result.profiled] == ["a.csv", "b.csv"]
    assert [p.record_count for p in profiler.profiled_files] == [1200, 7]
    assert profiler.is_filtered_out("skip.txt")
    assert [b["fileName"] for b in backend.bodies_to("/process-file")] == ["a.csv", "b.csv"]
    messages = [entry.message for entry in tracker.entries]
    assert messages[0] == "Processing file 1/2: a.csv (2 KB)"
    assert messages[1].startswith("Processed a.csv: 1,200 records, 2 columns")
    assert tracker.profiling_timer.active is False
    assert tracker.current_file is None


@pytest.mark.asyncio
async def test_expected_headers_follow_first_profiled_file(
    client: IngestionAPIClient,
    backend: FakeIngestionBackend,
    make_candidates: MakeCandidates,
) -> None:
    backend.headers_by_file = {"first.csv": ["id", "email"], "second.csv": ["id", "email"]}
    profiler = FileProfiler(client)

    await profiler.process(make_candidates("first.csv", "second.csv"), ProgressTracker())

    bodies = backend.bodies_to("/process-file")
    assert bodies[0]["expectedHeaders"] is None
    assert bodies[1]["expectedHeaders"] == ["id", "email"]
    assert profiler.expected_headers == ["id", "email"]


@pytest.mark.asyncio
async def test_folder_selection_sends_path_and_base_folder(
    client: IngestionAPIClient,
    backend: FakeIngestionBackend,
    make_candidates: MakeCandidates,
) -> None:
    profiler = FileProfiler(client, base_directory="/srv/uploads")

    result = await profiler.process(make_candidates("part.csv", folder="exports"), ProgressTracker())

    body = backend.bodies_to("/process-file")[0]
    assert body["filePath"] == "exports/part.csv"
    assert body["baseFolderName"] == "exports"
    assert body["baseDirectory"] == "/srv/uploads"
    profiled = result.profiled[0]
    assert profiled.file_path == "exports/part.csv"
    assert profiled.base_folder_name == "exports"
    assert profiled.base_directory == "/srv/uploads"


@pytest.mark.asyncio
async def test_failure_aborts_remaining_files(
    client: IngestionAPIClient,
    backend: FakeIngestionBackend,
    make_candidates: MakeCandidates,
) -> None:
    """A failure at file 2 of 4 keeps file 1 and never calls for files 3 and 4."""

    backend.failing_profiles = {"f2.csv": "Header mismatch"}
    profiler = FileProfiler(client)
    tracker = ProgressTracker()

    result = await profiler.process(make_candidates("f1.csv", "f2.csv", "f3.csv", "f4.csv"), tracker)

    assert result.state is ProfilerState.ABORTED
    assert result.failed_file == "f2.csv"
    assert [p.file_name for p in profiler.profiled_files] == ["f1.csv"]
    assert [b["fileName"] for b in backend.bodies_to("/process-file")] == ["f1.csv", "f2.csv"]
    assert tracker.latest is not None
    assert tracker.latest.status is ProgressStatus.ERROR
    assert tracker.latest.message == 'Error in file "f2.csv": Header mismatch'
    assert profiler.state is ProfilerState.ABORTED


@pytest.mark.asyncio
async def test_continue_on_failure_collects_all_failures(
    client: IngestionAPIClient,
    backend: FakeIngestionBackend,
    make_candidates: MakeCandidates,
) -> None:
    backend.failing_profiles = {"f1.csv": "Empty file", "f3.csv": "Bad encoding"}
    profiler = FileProfiler(client, abort_on_failure=False)

    result = await profiler.process(make_candidates("f1.csv", "f2.csv", "f3.csv"), ProgressTracker())

    assert result.state is ProfilerState.DONE
    assert [failure.file_name for failure in result.failures] == ["f1.csv", "f3.csv"]
    assert result.failed_file == "f1.csv"
    assert [p.file_name for p in result.profiled] == ["f2.csv"]
    assert not result.succeeded


@pytest.mark.asyncio
async def test_no_matching_files_records_error(
    client: IngestionAPIClient,
    backend: FakeIngestionBackend,
    make_candidates: MakeCandidates,
) -> None:
    tracker = ProgressTracker()
    profiler = FileProfiler(client, file_format="json")

    result = await profiler.process(make_candidates("a.csv", "b.csv"), tracker)

    assert result.no_matching_files
    assert backend.calls == []
    assert tracker.latest is not None
    assert tracker.latest.message == "No matching .json files found (2 filtered out)"
    assert tracker.latest.status is ProgressStatus.ERROR


@pytest.mark.asyncio
async def test_remove_drops_profiled_file_by_name(
    client: IngestionAPIClient,
    make_candidates: MakeCandidates,
) -> None:
    profiler = FileProfiler(client)
    await profiler.process(make_candidates("a.csv", "b.csv"), ProgressTracker())

    removed = profiler.remove("a.csv")

    assert [p.file_name for p in removed] == ["a.csv"]
    assert [p.file_name for p in profiler.profiled_files] == ["b.csv"]
    assert profiler.remove("a.csv") == []


@pytest.mark.asyncio
async def test_reprocessing_replaces_entry_with_same_name(
    client: IngestionAPIClient,
    backend: FakeIngestionBackend,
    make_candidates: MakeCandidates,
) -> None:
    profiler = FileProfiler(client)
    await profiler.process(make_candidates("a.csv"), ProgressTracker())
    backend.record_counts = {"a.csv": 99}

    await profiler.process(make_candidates("a.csv"), ProgressTracker())

    assert [(p.file_name, p.record_count) for p in profiler.profiled_files] == [("a.csv", 99)]


@pytest.mark.asyncio
async def test_cancelled_token_stops_before_next_call(
    client: IngestionAPIClient,
    backend: FakeIngestionBackend,
    make_candidates: MakeCandidates,
) -> None:
    token = CancellationToken()
    token.cancel("Operator stopped processing")
    tracker = ProgressTracker()

    result = await FileProfiler(client).process(make_candidates("a.csv"), tracker, cancel_token=token)

    assert result.cancelled
    assert result.state is ProfilerState.ABORTED
    assert backend.calls == []
    assert tracker.latest is not None
    assert tracker.latest.message == "Processing cancelled: Operator stopped processing"


@pytest.mark.asyncio
async def test_same_name_in_different_subfolders_keeps_both(
    client: IngestionAPIClient,
    make_candidates: MakeCandidates,
) -> None:
    files = [
        *make_candidates("part_1.csv", folder="export/jan"),
        *make_candidates("part_1.csv", folder="export/feb"),
    ]
    profiler = FileProfiler(client)

    result = await profiler.process(files, ProgressTracker())

    assert len(result.profiled) == 2
    assert [p.file_path for p in profiler.profiled_files] == ["export/jan/part_1.csv", "export/feb/part_1.csv"]

    assert len(profiler.remove("export/feb/part_1.csv")) == 1
    assert [p.file_path for p in profiler.profiled_files] == ["export/jan/part_1.csv"]


@pytest.mark.asyncio
async def test_remove_by_name_drops_every_matching_path(
    client: IngestionAPIClient,
    make_candidates: MakeCandidates,
) -> None:
    profiler = FileProfiler(client)
    await profiler.process(
        [*make_candidates("part_1.csv", folder="jan"), *make_candidates("part_1.csv", "other.csv", folder="feb")],
        ProgressTracker(),
    )

    removed = profiler.remove("part_1.csv")

    assert sorted(p.file_path for p in removed) == ["feb/part_1.csv", "jan/part_1.csv"]
    assert [p.file_name for p in profiler.profiled_files] == ["other.csv"]


@pytest.mark.asyncio
async def test_current_file_and_timer_are_set_during_profiling_call(
    client: IngestionAPIClient,
    backend: FakeIngestionBackend,
    make_candidates: MakeCandidates,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Progress state for a file is in place before its remote call is made."""

    tracker = ProgressTracker()
    observed: list[tuple[str | None, bool, str | None, ProgressStatus | None]] = []
    respond = backend._process_file

    def observing_process_file(body):
        latest = tracker.latest
        observed.append(
            (
                tracker.current_file.name if tracker.current_file else None,
                tracker.profiling_timer.active,
                latest.message if latest else None,
                latest.status if latest else None,
            )
        )
        return respond(body)

    monkeypatch.setattr(backend, "_process_file", observing_process_file)

    await FileProfiler(client).process(make_candidates("a.csv", "b.csv"), tracker)

    assert observed == [
        ("a.csv", True, "Processing file 1/2: a.csv (2 KB)", ProgressStatus.PENDING),
        ("b.csv", True, "Processing file 2/2: b.csv (2 KB)", ProgressStatus.PENDING),
    ]
    assert tracker.file_progress == (2, 2)
    assert tracker.current_file is None
