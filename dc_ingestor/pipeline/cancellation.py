"""Cooperative cancellation for profiling and ingestion runs."""

from __future__ import annotations

from ..exceptions import OperationCancelledError


class CancellationToken:
    """
    Flag checked before every remote call of a run.

    Cancelling never interrupts a call that is already in flight; the run stops
    at the next checkpoint instead.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "Cancelled by operator") -> None:
        self._cancelled = True
        self.reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError(self.reason or "Cancelled")
