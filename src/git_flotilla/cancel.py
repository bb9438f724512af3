"""Batch-wide cancellation token."""

from __future__ import annotations

import threading
import time

from .errors import OperationCancelled


class CancelToken:
    """Cooperative cancellation shared by every worker of a batch.

    An optional ``timeout`` (seconds) turns the token into a deadline: once it
    passes, the token reports itself cancelled. The engine imposes no timeout
    of its own.
    """

    def __init__(self, timeout: float | None = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled("operation cancelled")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile."""
        if self._deadline is not None:
            seconds = max(0.0, min(seconds, self._deadline - time.monotonic()))
        self._event.wait(seconds)
        return self.cancelled
