"""
Unit tests for retry with linear backoff.
"""

from unittest.mock import AsyncMock

import pytest

from pkg.resilience import LinearBackoff, RetryExhaustedError, retry_async


class TestLinearBackoff:
    """Tests for LinearBackoff policy."""

    def test_delay_grows_linearly(self):
        """Test the delay after each failed attempt."""
        policy = LinearBackoff(max_attempts=3, backoff_unit=2.0)

        assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 6.0]

    @pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"backoff_unit": -1}])
    def test_invalid_policy(self, kwargs):
        """Test policy validation."""
        with pytest.raises(ValueError):
            LinearBackoff(**kwargs)


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        """Test that a success after failures is returned."""
        func = AsyncMock(side_effect=[ConnectionError("a"), "ok"])
        sleep = AsyncMock()

        result = await retry_async(func, LinearBackoff(3, 1.5), sleep=sleep)

        assert result == "ok"
        sleep.assert_awaited_once_with(1.5)

    @pytest.mark.asyncio
    async def test_exhaustion_keeps_last_error(self):
        """Test that the last error is reported after the final attempt."""
        errors = [ConnectionError("first"), ConnectionError("second")]
        failures = []
        sleep = AsyncMock()

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry_async(
                AsyncMock(side_effect=errors),
                LinearBackoff(2, 1.0),
                sleep=sleep,
                on_failure=lambda attempt, error: failures.append(attempt),
            )

        assert exc_info.value.attempts == 2
        assert exc_info.value.last_error is errors[1]
        assert failures == [1, 2]
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        """Test that exceptions outside retry_on propagate immediately."""
        func = AsyncMock(side_effect=KeyError("boom"))

        with pytest.raises(KeyError):
            await retry_async(func, LinearBackoff(3, 0), retry_on=(ConnectionError,), sleep=AsyncMock())

        assert func.await_count == 1
