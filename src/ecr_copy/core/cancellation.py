"""Cooperative cancellation for job attempts."""

import threading
import time
from enum import Enum
from typing import Callable, Optional

from .exceptions import CopyTimeoutError, JobCancelledError


class CancelReason(str, Enum):
    TIMEOUT = "timeout"
    FAIL_FAST = "fail_fast"


class CancelToken:
    """
    Shared between the scheduler and one running attempt.

    The attempt polls `raise_if_cancelled()` between stages and long-running
    commands poll `cancelled`. The token also trips on its own once its
    deadline passes. The first reason recorded wins.
    """

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._deadline = clock() + timeout_seconds if timeout_seconds else None
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[CancelReason] = None

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def cancel(self, reason: CancelReason) -> None:
        with self._lock:
            if self._reason is None:
                self._reason = reason
        self._event.set()

    def _check_deadline(self) -> None:
        if self._deadline is not None and self._clock() >= self._deadline:
            self.cancel(CancelReason.TIMEOUT)

    @property
    def cancelled(self) -> bool:
        self._check_deadline()
        return self._event.is_set()

    @property
    def reason(self) -> Optional[CancelReason]:
        self._check_deadline()
        return self._reason

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`, returning early (True) if cancelled."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(seconds)
        return self.cancelled

    def raise_if_cancelled(self) -> None:
        reason = self.reason
        if reason == CancelReason.TIMEOUT:
            raise CopyTimeoutError("Attempt exceeded its time budget")
        if reason == CancelReason.FAIL_FAST:
            raise JobCancelledError("Cancelled after another image failed")
