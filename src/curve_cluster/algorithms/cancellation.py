"""Cooperative cancellation for long-running clustering jobs."""

from __future__ import annotations

import threading
from typing import Optional

from ..exceptions import ClusteringCancelledError


class CancellationToken:
    """
    Thread-safe flag checked between permutation passes and engine passes.

    Cancelling never interrupts a pass midway; the next checkpoint raises
    :class:`ClusteringCancelledError` and the partial state is dropped.
    """

    def __init__(self):
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str = "") -> None:
        if self._event.is_set():
            where = f" during {stage}" if stage else ""
            raise ClusteringCancelledError(f"Clustering job {self._reason}{where}")


def checkpoint(token: Optional[CancellationToken], stage: str = "") -> None:
    """Raise if *token* has been cancelled; no-op when there is no token."""
    if token is not None:
        token.raise_if_cancelled(stage)
