"""Turn local filesystem paths into candidate files for profiling."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from ..exceptions import ConfigurationError
from ..schemas.ingestion import CandidateFile


def candidate_from_file(path: Path, *, relative_to: Path | None = None) -> CandidateFile:
    """Describe a single file; ``relative_to`` is the parent of a selected folder."""

    relative_path: str | None = None
    if relative_to is not None:
        relative_path = path.relative_to(relative_to).as_posix()
    return CandidateFile(
        name=path.name,
        size=path.stat().st_size,
        relative_path=relative_path,
        local_path=path,
    )


def collect_candidates(paths: Iterable[str | Path]) -> list[CandidateFile]:
    """
    Expand files and folders into candidate files.

    Individually chosen files carry no relative path. Files found under a chosen
    folder are collected recursively in sorted order and carry a path relative to
    the folder's parent, so the first path segment is the folder name.

    Raises:
        ConfigurationError: If a path does not exist
    """
    candidates: list[CandidateFile] = []
    for raw in paths:
        path = Path(raw).expanduser()
        if path.is_dir():
            parent = path.resolve().parent
            for child in sorted(p for p in path.resolve().rglob("*") if p.is_file()):
                candidates.append(candidate_from_file(child, relative_to=parent))
        elif path.is_file():
            candidates.append(candidate_from_file(path))
        else:
            raise ConfigurationError(f"Path does not exist: {raw}")
    return candidates
