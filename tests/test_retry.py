"""
Retry executor and advisory timeouts (loading/retry.py)
"""

import asyncio

import pytest

from expozr.faults import LoadTimeoutFault
from expozr.loading.retry import with_retry, with_timeout


class Flaky:
    """Fails ``failures`` times, then returns ``value``."""

    def __init__(self, failures: int, value="ok"):
        self.failures = failures
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"failure {self.calls}")
        return self.value


# ============================================================================
# with_retry
# ============================================================================


class TestWithRetry:

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self, sleeper):
        op = Flaky(0)
        assert await with_retry(op, 3, 100, sleep=sleeper) == "ok"
        assert op.calls == 1
        assert sleeper.calls == []

    @pytest.mark.asyncio
    async def test_backoff_gaps(self, sleeper):
        op = Flaky(5)
        with pytest.raises(ConnectionError):
            await with_retry(op, attempts=3, delay_ms=100, backoff=2, sleep=sleeper)
        assert op.calls == 3
        assert sleeper.calls == [pytest.approx(0.1), pytest.approx(0.2)]

    @pytest.mark.asyncio
    async def test_stops_after_success(self, sleeper):
        op = Flaky(1)
        assert await with_retry(op, attempts=3, delay_ms=100, backoff=2, sleep=sleeper) == "ok"
        assert op.calls == 2
        assert sleeper.calls == [pytest.approx(0.1)]

    @pytest.mark.asyncio
    async def test_fixed_delay_by_default(self, sleeper):
        with pytest.raises(ConnectionError):
            await with_retry(Flaky(5), attempts=4, delay_ms=50, sleep=sleeper)
        assert sleeper.calls == [pytest.approx(0.05)] * 3

    @pytest.mark.asyncio
    async def test_last_error_reraised_unchanged(self, sleeper):
        op = Flaky(5)
        with pytest.raises(ConnectionError, match="failure 2"):
            await with_retry(op, attempts=2, delay_ms=1, sleep=sleeper)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("attempts", [1, 0, -3])
    async def test_single_attempt_no_delay(self, sleeper, attempts):
        op = Flaky(5)
        with pytest.raises(ConnectionError):
            await with_retry(op, attempts=attempts, delay_ms=1000, sleep=sleeper)
        assert op.calls == 1
        assert sleeper.calls == []

    @pytest.mark.asyncio
    async def test_zero_delay_skips_sleep(self, sleeper):
        with pytest.raises(ConnectionError):
            await with_retry(Flaky(5), attempts=3, delay_ms=0, sleep=sleeper)
        assert sleeper.calls == []


# ============================================================================
# with_timeout
# ============================================================================


class TestWithTimeout:

    @pytest.mark.asyncio
    async def test_completes_in_time(self):
        async def quick():
            return 42

        assert await with_timeout(quick(), 1000, "quick") == 42

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(LoadTimeoutFault) as exc_info:
            await with_timeout(slow(), 10, "remote/./math")
        assert exc_info.value.resource == "remote/./math"
        assert exc_info.value.timeout_ms == 10

    @pytest.mark.asyncio
    async def test_timeout_does_not_cancel_operation(self):
        finished = asyncio.Event()

        async def slow():
            await asyncio.sleep(0.05)
            finished.set()

        with pytest.raises(LoadTimeoutFault):
            await with_timeout(slow(), 5, "slow")
        await asyncio.wait_for(finished.wait(), 1)
        assert finished.is_set()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", [None, 0])
    async def test_no_timeout(self, timeout):
        async def value():
            return "v"

        assert await with_timeout(value(), timeout) == "v"

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        async def broken():
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            await with_timeout(broken(), 1000)
