"""Pytest configuration - no path manipulation, rely on proper package installation."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import pytest
import pytest_asyncio

from dc_ingestor.client.ingestion_api import IngestionAPIClient
from dc_ingestor.monitoring.tracing import set_correlation_id
from dc_ingestor.schemas.ingestion import CandidateFile
from dc_ingestor.utils.config import IngestorSettings, get_settings
from tests.fixtures.synthetic.ingestion_fixtures import BASE_URL, FakeIngestionBackend


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch):
    """Keep settings and correlation ids from leaking between tests."""

    monkeypatch.delenv("DC_INGESTOR_FILE_FORMAT", raising=False)
    monkeypatch.delenv("DC_INGESTOR_BASE_DIRECTORY", raising=False)
    get_settings(reload=True)
    set_correlation_id(None)
    yield
    set_correlation_id(None)
    get_settings(reload=True)


@pytest.fixture
def backend() -> FakeIngestionBackend:
    """Fake ingestion service with one stream and successful defaults."""
    return FakeIngestionBackend()


@pytest.fixture
def settings() -> IngestorSettings:
    return IngestorSettings(base_url=BASE_URL, tick_interval_seconds=0.01)


@pytest_asyncio.fixture
async def client(backend: FakeIngestionBackend) -> AsyncIterator[IngestionAPIClient]:
    """Client wired to the fake backend through httpx.MockTransport."""
    api_client = IngestionAPIClient(BASE_URL, transport=backend.transport)
    yield api_client
    await api_client.aclose()


@pytest.fixture
def make_candidates() -> Callable[..., list[CandidateFile]]:
    """Build candidate files, optionally as if chosen through a folder."""

    def _make(*names: str, folder: str | None = None, size: int = 2048) -> list[CandidateFile]:
        return [
            CandidateFile(
                name=name,
                size=size,
                relative_path=f"{folder}/{name}" if folder else None,
            )
            for name in names
        ]

    return _make
