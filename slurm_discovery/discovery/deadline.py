"""Shared, cancellable deadline bounding one discovery attempt."""

from __future__ import annotations

import threading
import time

from ..exceptions import DeadlineExceeded


class Deadline:
    """An absolute monotonic expiry instant plus a cancellation flag.

    One instance is created per discovery attempt and handed to every probe,
    which derives its own per-call timeouts from :meth:`remaining`.
    """

    def __init__(self, timeout: float):
        self._expires_at = time.monotonic() + timeout
        self._cancelled = threading.Event()

    def remaining(self) -> float:
        if self._cancelled.is_set():
            return 0.0
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def bound(self, timeout: float) -> float:
        """Clamp a per-call timeout so it never outlives the deadline."""
        self.check()
        return min(timeout, self.remaining())

    def check(self, what: str = "discovery") -> None:
        """Raise DeadlineExceeded if the deadline has passed or was cancelled."""
        if self._cancelled.is_set():
            raise DeadlineExceeded(f"{what} cancelled")
        if time.monotonic() >= self._expires_at:
            raise DeadlineExceeded(f"{what} deadline exceeded")
