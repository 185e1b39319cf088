"""Cancellation token shared between the orchestrator and the speedtest backend."""

from __future__ import annotations

import threading
from typing import Optional

from .errors import MeasurementError


class CancellationToken:
    """Wraps a :class:`threading.Event` with an optional deadline.

    The event doubles as the ``shutdown_event`` handed to ``speedtest-cli`` so
    that in-flight transfer threads stop as soon as the token is cancelled.
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.event = threading.Event()
        self.reason: Optional[str] = None
        self._timer: Optional[threading.Timer] = None
        if timeout:
            self._timer = threading.Timer(timeout, self.cancel, kwargs={"reason": f"deadline of {timeout:g}s exceeded"})
            self._timer.daemon = True
            self._timer.start()

    @property
    def cancelled(self) -> bool:
        return self.event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self.event.is_set():
            self.reason = reason
            self.event.set()

    def raise_if_cancelled(self) -> None:
        if self.event.is_set():
            raise MeasurementError(f"Measurement run aborted: {self.reason}")

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*; returns True if cancelled meanwhile."""
        return self.event.wait(seconds)

    def close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
