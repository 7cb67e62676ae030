"""Unit tests for retry with backoff utility."""

from unittest.mock import AsyncMock, patch

import pytest

from tabgroups.host.base import HostBusyError
from tabgroups.utils.retry import RetryConfig, RetryError, retry_with_backoff_async


class TestRetryConfig:
    """Tests for retry configuration."""

    def test_default_config(self) -> None:
        """Test default retry configuration values."""
        config = RetryConfig()

        assert config.max_retries == 5
        assert config.base_delay == 0.025
        assert config.max_delay == 1.0
        assert config.exponential_base == 2.0
        assert config.jitter is False

    def test_default_delays_double(self) -> None:
        """Test the default schedule: 25, 50, 100, 200 and 400ms."""
        config = RetryConfig()

        delays = [config.calculate_delay(attempt) for attempt in range(5)]

        assert delays == pytest.approx([0.025, 0.05, 0.1, 0.2, 0.4])

    def test_max_delay_cap(self) -> None:
        """Test that delay is capped at max_delay."""
        config = RetryConfig(base_delay=10.0, max_delay=15.0)

        assert config.calculate_delay(4) == 15.0

    def test_jitter_stays_within_range(self) -> None:
        """Test that jitter moves the delay by at most 25%."""
        config = RetryConfig(base_delay=1.0, jitter=True)

        for _ in range(20):
            assert 0.75 <= config.calculate_delay(0) <= 1.25


class TestRetryWithBackoffAsync:
    """Tests for asynchronous retry with backoff."""

    @pytest.mark.asyncio
    async def test_succeeds_on_first_try(self) -> None:
        """Test async function that succeeds immediately."""
        func = AsyncMock(return_value="success")

        result = await retry_with_backoff_async(func)

        assert result == "success"
        assert func.call_count == 1

    @pytest.mark.asyncio
    async def test_succeeds_on_retry(self) -> None:
        """Test that a busy browser is retried until the edit goes through."""
        func = AsyncMock(side_effect=[HostBusyError(), HostBusyError(), "updated"])
        config = RetryConfig(base_delay=0.001)

        result = await retry_with_backoff_async(func, config=config, retry_on=(HostBusyError,))

        assert result == "updated"
        assert func.call_count == 3

    @pytest.mark.asyncio
    async def test_raises_after_max_retries(self) -> None:
        """Test that error is raised after max retries."""
        func = AsyncMock(side_effect=HostBusyError())
        config = RetryConfig(max_retries=2, base_delay=0.001)

        with pytest.raises(RetryError) as exc_info:
            await retry_with_backoff_async(func, config=config, retry_on=(HostBusyError,))

        assert func.call_count == 3  # Initial + 2 retries
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.__cause__, HostBusyError)

    @pytest.mark.asyncio
    async def test_does_not_retry_unexpected_exception(self) -> None:
        """Test that unexpected exceptions are not retried."""
        func = AsyncMock(side_effect=TypeError("unexpected"))

        with pytest.raises(TypeError):
            await retry_with_backoff_async(func, retry_on=(HostBusyError,))

        assert func.call_count == 1

    @pytest.mark.asyncio
    async def test_sleeps_between_attempts(self) -> None:
        """Test that the backoff delays are awaited between attempts."""
        func = AsyncMock(side_effect=HostBusyError())
        config = RetryConfig(max_retries=3)

        with patch("tabgroups.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(RetryError):
                await retry_with_backoff_async(func, config=config, retry_on=(HostBusyError,))

        delays = [call.args[0] for call in sleep.await_args_list]
        assert delays == pytest.approx([0.025, 0.05, 0.1])
