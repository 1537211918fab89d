"""Tests for utility modules."""

from unittest.mock import AsyncMock

import pytest

from utils.errors import (
    AuthenticationError,
    CorrelationTimeout,
    DeviceParseError,
    DiscoveryError,
    DiscoveryTimeout,
    EmptySceneError,
    ErrorCategory,
    NotConnectedError,
    classify_exception,
)
from utils.retry import RetryExhausted, retry_async


class TestRetry:
    """Tests for retry utilities."""

    @pytest.mark.asyncio
    async def test_retry_success_first_try(self):
        """Test successful operation on first try."""
        mock_func = AsyncMock(return_value="success")

        result = await retry_async(mock_func, max_attempts=3, initial_delay=0.01)

        assert result == "success"
        assert mock_func.call_count == 1

    @pytest.mark.asyncio
    async def test_retry_success_after_failures(self):
        """Test successful operation after some failures."""
        mock_func = AsyncMock(side_effect=[OSError, OSError, "success"])

        result = await retry_async(mock_func, max_attempts=3, initial_delay=0.01)

        assert result == "success"
        assert mock_func.call_count == 3

    @pytest.mark.asyncio
    async def test_retry_exhausted(self):
        """Test retry exhaustion."""
        mock_func = AsyncMock(side_effect=OSError("connection refused"))

        with pytest.raises(RetryExhausted) as exc_info:
            await retry_async(mock_func, max_attempts=3, initial_delay=0.01)

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_exception, OSError)
        assert mock_func.call_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_propagates(self):
        """Exceptions outside retryable_exceptions are not retried."""
        mock_func = AsyncMock(side_effect=TypeError("bad call"))

        with pytest.raises(TypeError):
            await retry_async(
                mock_func,
                max_attempts=3,
                initial_delay=0.01,
                retryable_exceptions=(OSError,),
            )

        assert mock_func.call_count == 1

    @pytest.mark.asyncio
    async def test_zero_attempts_still_tries_once(self):
        mock_func = AsyncMock(return_value="ok")

        assert await retry_async(mock_func, max_attempts=0) == "ok"
        assert mock_func.call_count == 1


class TestClassifyException:
    """Tests for classify_exception."""

    def test_correlation_timeout(self):
        error = classify_exception(CorrelationTimeout("GET_LIGHT_COUNT", 10.0))
        assert error.category is ErrorCategory.TIMEOUT
        assert "GET_LIGHT_COUNT" in error.message

    def test_discovery_timeout(self):
        error = classify_exception(DiscoveryTimeout(10.0, expected=5, received=3))
        assert error.category is ErrorCategory.TIMEOUT
        assert "3 of 5" in error.message

    def test_parse_failures(self):
        assert (
            classify_exception(DeviceParseError("{", "bad json")).category
            is ErrorCategory.PARSE_FAILURE
        )
        assert (
            classify_exception(DiscoveryError("Invalid light count")).category
            is ErrorCategory.PARSE_FAILURE
        )

    def test_not_found(self):
        error = classify_exception(KeyError("scene Evening"), device_id=None)
        assert error.category is ErrorCategory.NOT_FOUND
        assert "scene Evening" in error.message

    def test_invalid_input(self):
        error = classify_exception(EmptySceneError("Empty", 4))
        assert error.category is ErrorCategory.INVALID_INPUT
        assert "room 4" in error.message

    def test_connection_errors(self):
        assert (
            classify_exception(NotConnectedError()).category is ErrorCategory.NOT_CONNECTED
        )
        error = classify_exception(AuthenticationError("INCORRECTPIN", "Incorrect PIN"))
        assert error.category is ErrorCategory.NOT_CONNECTED
        assert "Incorrect PIN" in error.message

    def test_unexpected(self):
        error = classify_exception(RuntimeError("boom"), device_id=3)
        assert error.category is ErrorCategory.INTERNAL_ERROR
        data = error.to_dict()
        assert data["device_id"] == 3
        assert data["error_category"] == "internal_error"
        assert data["recovery"]
