"""Append-only progress log with derived elapsed-time counters."""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ..schemas.ingestion import ProgressEntry, ProgressStatus

Clock = Callable[[], float]
WallClock = Callable[[], datetime]
ProgressListener = Callable[[ProgressEntry], None]

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def elapsed_seconds(started_at: float | None, now: float) -> int:
    """Whole seconds between a monotonic start reading and ``now`` (0 when not started)."""

    if started_at is None:
        return 0
    return max(int(math.floor(now - started_at)), 0)


def completion_ratio(done: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return min(max(done / total, 0.0), 1.0)


def count_by_status(entries: Iterable[ProgressEntry]) -> dict[ProgressStatus, int]:
    counts = {status: 0 for status in ProgressStatus}
    for entry in entries:
        counts[entry.status] += 1
    return counts


def format_elapsed(seconds: int) -> str:
    """Render seconds as ``45s``, ``2m 5s`` or ``1h 2m 3s``."""

    seconds = max(int(seconds), 0)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m {seconds % 60}s"


def format_file_size(num_bytes: int) -> str:
    """Render a byte count with two-decimal precision, e.g. ``1.5 KB``."""

    if num_bytes <= 0:
        return "0 Bytes"
    index = 0
    while index < len(_SIZE_UNITS) - 1 and num_bytes >= 1024 ** (index + 1):
        index += 1
    value = round(num_bytes / (1024**index), 2)
    rendered = str(int(value)) if value == int(value) else str(value)
    return f"{rendered} {_SIZE_UNITS[index]}"


@dataclass(frozen=True, slots=True)
class CurrentFile:
    """File whose remote profiling call is in flight."""

    name: str
    size: int
    index: int
    total: int
    started_at: float


class PhaseTimer:
    """
    Elapsed-seconds counter for one pipeline phase.

    While active, a background task on the running event loop refreshes the
    counter every ``interval`` seconds; ``tick()`` performs the same refresh
    synchronously. The counter never decreases while active and is reset to zero
    by ``stop()``.
    """

    def __init__(self, phase: str, *, interval: float = 1.0, clock: Clock = time.monotonic) -> None:
        self.phase = phase
        self.interval = interval
        self._clock = clock
        self._active = False
        self._started_at: float | None = None
        self._elapsed = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def started_at(self) -> float | None:
        return self._started_at

    @property
    def elapsed(self) -> int:
        return self._elapsed

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._started_at = self._clock()
        self._elapsed = 0
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: callers drive the counter through tick().
            self._task = None
        else:
            self._task = loop.create_task(self._run(), name=f"{self.phase}-timer")

    def tick(self) -> int:
        if not self._active:
            return 0
        self._elapsed = max(self._elapsed, elapsed_seconds(self._started_at, self._clock()))
        return self._elapsed

    def stop(self) -> None:
        self._active = False
        self._started_at = None
        self._elapsed = 0
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while self._active:
            await asyncio.sleep(self.interval)
            self.tick()


class ProgressTracker:
    """
    Timestamped, append-only log of pipeline status events.

    The log is an immutable tuple that is replaced on every append, so readers
    holding a previous ``entries`` value never observe a change. A new run gets a
    new tracker rather than clearing this one.
    """

    def __init__(
        self,
        *,
        tick_interval: float = 1.0,
        clock: Clock = time.monotonic,
        wall_clock: WallClock = _utcnow,
    ) -> None:
        self._clock = clock
        self._wall_clock = wall_clock
        self._entries: tuple[ProgressEntry, ...] = ()
        self._listeners: list[ProgressListener] = []
        self.profiling_timer = PhaseTimer("profile", interval=tick_interval, clock=clock)
        self.upload_timer = PhaseTimer("upload", interval=tick_interval, clock=clock)
        self.current_file: CurrentFile | None = None
        self.file_progress: tuple[int, int] = (0, 0)

    @property
    def entries(self) -> tuple[ProgressEntry, ...]:
        return self._entries

    @property
    def latest(self) -> ProgressEntry | None:
        return self._entries[-1] if self._entries else None

    def most_recent_first(self) -> tuple[ProgressEntry, ...]:
        return tuple(reversed(self._entries))

    def now(self) -> float:
        return self._clock()

    def record(
        self,
        message: str,
        status: ProgressStatus = ProgressStatus.PENDING,
    ) -> ProgressEntry:
        entry = ProgressEntry(message=message, status=status, timestamp=self._wall_clock())
        self._entries = (*self._entries, entry)
        for listener in tuple(self._listeners):
            listener(entry)
        return entry

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a callable receiving each new entry; returns an unsubscribe hook."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def begin_file(self, name: str, size: int, index: int, total: int) -> CurrentFile:
        current = CurrentFile(name=name, size=size, index=index, total=total, started_at=self._clock())
        self.current_file = current
        self.file_progress = (index, total)
        return current

    def finish_file(self) -> None:
        self.current_file = None

    def current_file_elapsed(self) -> int:
        if self.current_file is None:
            return 0
        return elapsed_seconds(self.current_file.started_at, self._clock())

    def stop_timers(self) -> None:
        self.profiling_timer.stop()
        self.upload_timer.stop()

    def snapshot(self) -> dict[str, Any]:
        counts = count_by_status(self._entries)
        return {
            "entries": [entry.to_dict() for entry in self.most_recent_first()],
            "counts": {status.value: count for status, count in counts.items()},
            "profiling_elapsed": self.profiling_timer.elapsed,
            "upload_elapsed": self.upload_timer.elapsed,
            "current_file": self.current_file.name if self.current_file else None,
            "current_file_elapsed": self.current_file_elapsed(),
            "file_progress": list(self.file_progress),
        }
