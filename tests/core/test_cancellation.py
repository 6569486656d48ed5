"""Tests for CancelToken."""

import threading

import pytest

from ecr_copy.core.cancellation import CancelReason, CancelToken
from ecr_copy.core.exceptions import CopyTimeoutError, JobCancelledError


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class TestCancelToken:
    """Tests for CancelToken."""

    def test_fresh_token_is_not_cancelled(self):
        """Test a token without deadline never trips on its own."""
        token = CancelToken()
        assert not token.cancelled
        assert token.reason is None
        assert token.remaining() is None
        token.raise_if_cancelled()

    def test_deadline_trips_timeout(self):
        """Test the token reports a timeout once its deadline passes."""
        clock = FakeClock()
        token = CancelToken(timeout_seconds=10, clock=clock)
        assert token.remaining() == 10
        clock.now += 10
        assert token.cancelled
        assert token.reason == CancelReason.TIMEOUT
        with pytest.raises(CopyTimeoutError):
            token.raise_if_cancelled()

    def test_fail_fast_raises_cancelled(self):
        """Test an explicit fail-fast cancellation."""
        token = CancelToken()
        token.cancel(CancelReason.FAIL_FAST)
        with pytest.raises(JobCancelledError):
            token.raise_if_cancelled()

    def test_first_reason_wins(self):
        """Test a later reason does not overwrite the first one."""
        clock = FakeClock()
        token = CancelToken(timeout_seconds=5, clock=clock)
        token.cancel(CancelReason.FAIL_FAST)
        clock.now += 60
        assert token.reason == CancelReason.FAIL_FAST

    def test_wait_returns_early_on_cancel(self):
        """Test wait() wakes up when another thread cancels."""
        token = CancelToken()
        timer = threading.Timer(0.05, token.cancel, args=(CancelReason.FAIL_FAST,))
        timer.start()
        try:
            assert token.wait(5) is True
        finally:
            timer.cancel()

    def test_zero_timeout_disables_deadline(self):
        """Test a zero timeout means no deadline."""
        assert CancelToken(timeout_seconds=0).deadline is None
