"""Unit tests for RetryPolicy and the with_retry decorator."""

import pytest

from fieldcheck.config import settings
from fieldcheck.runtime.errors import RetryableError, ServiceError, TerminalError
from fieldcheck.runtime.retry import RetryPolicy, with_retry


class TestRetryPolicy:
    """Tests for RetryPolicy configuration."""

    def test_default_values(self):
        """Should have sensible defaults."""
        policy = RetryPolicy()

        assert policy.max_attempts == 3
        assert policy.base_delay == 1.0
        assert policy.max_delay == 30.0
        assert policy.exponential_base == 2.0
        assert policy.jitter is True

    def test_from_settings(self):
        """Should read attempts and base delay from settings."""
        policy = RetryPolicy.from_settings()

        assert policy.max_attempts == settings.LLM_MAX_ATTEMPTS
        assert policy.base_delay == settings.LLM_RETRY_BASE_DELAY

    def test_is_frozen(self):
        """Should be immutable."""
        policy = RetryPolicy()
        with pytest.raises(Exception):
            policy.max_attempts = 10


class TestCalculateDelay:
    """Tests for delay calculation."""

    def test_exponential_backoff(self):
        """Delay should increase exponentially."""
        policy = RetryPolicy(base_delay=1.0, exponential_base=2.0, jitter=False)

        assert policy.calculate_delay(0) == 1.0
        assert policy.calculate_delay(1) == 2.0
        assert policy.calculate_delay(2) == 4.0

    def test_max_delay_caps_backoff(self):
        """Delay should not exceed max_delay."""
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, jitter=False)

        assert policy.calculate_delay(10) == 5.0

    def test_jitter_stays_within_bounds(self):
        """Jitter adds at most 25% on top of the base delay."""
        policy = RetryPolicy(base_delay=1.0, jitter=True)

        delays = [policy.calculate_delay(0) for _ in range(20)]

        assert all(1.0 <= d <= 1.25 for d in delays)


class TestWithRetryDecorator:
    """Tests for the async retry decorator."""

    @pytest.mark.asyncio
    async def test_returns_value_on_success(self):
        """Should return the function result when successful."""

        @with_retry(RetryPolicy(max_attempts=3, base_delay=0.0, jitter=False))
        async def success_func():
            return "success"

        assert await success_func() == "success"

    @pytest.mark.asyncio
    async def test_retries_on_retryable_error(self):
        """Should retry when RetryableError is raised."""
        call_count = 0

        @with_retry(RetryPolicy(max_attempts=3, base_delay=0.0, jitter=False))
        async def flaky_func():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise RetryableError(code="RETRY", message_safe="Try again")
            return "success"

        assert await flaky_func() == "success"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_raises_after_max_attempts(self):
        """Should re-raise the last error once attempts run out."""
        call_count = 0

        @with_retry(RetryPolicy(max_attempts=2, base_delay=0.0, jitter=False))
        async def always_fails():
            nonlocal call_count
            call_count += 1
            raise RetryableError(code="ALWAYS_FAIL", message_safe="Never works")

        with pytest.raises(RetryableError) as exc_info:
            await always_fails()

        assert exc_info.value.code == "ALWAYS_FAIL"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_does_not_retry_terminal_error(self):
        """Should not retry TerminalError."""
        call_count = 0

        @with_retry(RetryPolicy(max_attempts=3, base_delay=0.0, jitter=False))
        async def terminal_func():
            nonlocal call_count
            call_count += 1
            raise TerminalError(code="TERMINAL", message_safe="Stop")

        with pytest.raises(TerminalError):
            await terminal_func()

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_does_not_retry_plain_service_error(self):
        """A ServiceError that is not RetryableError propagates immediately."""
        call_count = 0

        @with_retry(RetryPolicy(max_attempts=3, base_delay=0.0, jitter=False))
        async def failing():
            nonlocal call_count
            call_count += 1
            raise ServiceError(code="OTHER", message_safe="Nope", retryable=True)

        with pytest.raises(ServiceError):
            await failing()

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_calls_on_retry_callback(self):
        """Should call on_retry before each retry."""
        retry_calls = []

        def on_retry(attempt, exc, delay):
            retry_calls.append((attempt, exc.code))

        call_count = 0

        @with_retry(RetryPolicy(max_attempts=3, base_delay=0.0, jitter=False), on_retry=on_retry)
        async def callback_func():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise RetryableError(code=f"RETRY_{call_count}", message_safe="Retry")
            return "done"

        await callback_func()

        assert retry_calls == [(0, "RETRY_1"), (1, "RETRY_2")]
