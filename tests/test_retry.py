"""Tests for LLM retry utilities."""

import time

import pytest

from stateset.llm.retry import RetryConfig, is_retryable_error, with_retry


class TestIsRetryableError:
    """Tests for is_retryable_error."""

    def test_rate_limit_error(self):
        """Test rate limit errors are retryable."""
        assert is_retryable_error(Exception("Rate limit exceeded"))
        assert is_retryable_error(Exception("rate_limit_error"))
        assert is_retryable_error(Exception("Too many requests"))

    def test_server_errors(self):
        assert is_retryable_error(Exception("Error 500"))
        assert is_retryable_error(Exception("503 Service Unavailable"))
        assert is_retryable_error(Exception("overloaded_error"))

    def test_error_type_name(self):
        class APIConnectionError(Exception):
            pass

        assert is_retryable_error(APIConnectionError("failed"))

    def test_status_code_attribute(self):
        """Test errors with status_code attribute."""

        class HttpError(Exception):
            def __init__(self, status_code: int):
                self.status_code = status_code
                super().__init__(f"HTTP {status_code}")

        assert is_retryable_error(HttpError(429))
        assert is_retryable_error(HttpError(529))
        assert not is_retryable_error(HttpError(400))
        assert not is_retryable_error(HttpError(401))

    def test_non_retryable_errors(self):
        assert not is_retryable_error(Exception("Invalid request"))
        assert not is_retryable_error(Exception("Authentication failed"))
        assert not is_retryable_error(ValueError("Invalid parameter"))


class TestRetryConfig:
    """Tests for RetryConfig.delay_for."""

    def test_exponential_and_capped(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0)
        assert [config.delay_for(i) for i in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]


class TestWithRetry:
    """Tests for with_retry."""

    @pytest.mark.asyncio
    async def test_success_no_retry(self):
        call_count = 0

        async def func():
            nonlocal call_count
            call_count += 1
            return "success"

        assert await with_retry(func) == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retry_on_transient_error(self):
        call_count = 0

        async def func():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise Exception("rate_limit_error")
            return "success"

        config = RetryConfig(max_retries=3, base_delay=0.01)
        assert await with_retry(func, config=config) == "success"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_no_retry_on_non_retryable_error(self):
        call_count = 0

        async def func():
            nonlocal call_count
            call_count += 1
            raise ValueError("Invalid parameter")

        config = RetryConfig(max_retries=3, base_delay=0.01)
        with pytest.raises(ValueError, match="Invalid parameter"):
            await with_retry(func, config=config)
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_max_retries_exceeded(self):
        call_count = 0

        async def func():
            nonlocal call_count
            call_count += 1
            raise Exception("rate_limit_error")

        config = RetryConfig(max_retries=2, base_delay=0.01)
        with pytest.raises(Exception, match="rate_limit_error"):
            await with_retry(func, config=config)
        assert call_count == 3  # Initial + 2 retries

    @pytest.mark.asyncio
    async def test_retry_disabled(self):
        call_count = 0

        async def func():
            nonlocal call_count
            call_count += 1
            raise Exception("rate_limit_error")

        with pytest.raises(Exception, match="rate_limit_error"):
            await with_retry(func, config=RetryConfig(enabled=False))
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_exponential_backoff(self):
        call_times: list[float] = []

        async def func():
            call_times.append(time.monotonic())
            if len(call_times) < 3:
                raise Exception("rate_limit_error")
            return "success"

        await with_retry(func, config=RetryConfig(max_retries=3, base_delay=0.1))

        delay1 = call_times[1] - call_times[0]
        delay2 = call_times[2] - call_times[1]
        assert delay1 >= 0.08
        assert delay2 >= 0.15
