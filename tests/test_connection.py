"""Tests for session retry utilities."""
import httpx
import pytest

from mcp_bundle_deployer.utils.connection import (
    with_retry,
    RETRYABLE_EXCEPTIONS,
)


class TestWithRetry:
    """Tests for retry decorator."""

    @pytest.mark.asyncio
    async def test_async_success_no_retry(self):
        """Successful async function doesn't retry."""
        call_count = 0

        @with_retry(max_attempts=3)
        async def succeeding_func():
            nonlocal call_count
            call_count += 1
            return "success"

        result = await succeeding_func()
        assert result == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_async_retry_then_success(self):
        """Async function retries on a refused connection then succeeds."""
        call_count = 0

        @with_retry(max_attempts=3, min_wait=0.01, max_wait=0.1)
        async def failing_then_succeeding():
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise httpx.ConnectError("Connection refused")
            return "success"

        result = await failing_then_succeeding()
        assert result == "success"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_async_max_retries_exceeded(self):
        """The last error is raised after max attempts."""
        call_count = 0

        @with_retry(max_attempts=3, min_wait=0.01, max_wait=0.1)
        async def always_failing():
            nonlocal call_count
            call_count += 1
            raise httpx.ConnectTimeout("Always times out")

        with pytest.raises(httpx.ConnectTimeout):
            await always_failing()
        assert call_count == 3

    def test_sync_success_no_retry(self):
        """Successful sync function doesn't retry."""
        call_count = 0

        @with_retry(max_attempts=3)
        def succeeding_func():
            nonlocal call_count
            call_count += 1
            return "success"

        result = succeeding_func()
        assert result == "success"
        assert call_count == 1

    def test_sync_retry(self):
        call_count = 0

        @with_retry(max_attempts=2, min_wait=0.01, max_wait=0.01)
        def reset_once():
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise ConnectionResetError("reset by peer")
            return call_count

        assert reset_once() == 2

    @pytest.mark.asyncio
    async def test_non_retryable_exception(self):
        """Controller errors such as a rejected login are not retried."""
        call_count = 0

        @with_retry(max_attempts=3)
        async def raising_value_error():
            nonlocal call_count
            call_count += 1
            raise ValueError("Not retryable")

        with pytest.raises(ValueError):
            await raising_value_error()
        assert call_count == 1  # Only one attempt


class TestRetryableExceptions:
    """Tests for retryable exceptions list."""

    def test_connection_refused_is_retryable(self):
        assert ConnectionRefusedError in RETRYABLE_EXCEPTIONS

    def test_timeout_is_retryable(self):
        assert TimeoutError in RETRYABLE_EXCEPTIONS

    def test_httpx_connect_errors_are_retryable(self):
        assert httpx.ConnectError in RETRYABLE_EXCEPTIONS
        assert httpx.ConnectTimeout in RETRYABLE_EXCEPTIONS

    def test_http_status_errors_are_not_retryable(self):
        """Only transport failures are retried."""
        assert httpx.HTTPStatusError not in RETRYABLE_EXCEPTIONS
