"""Tests for retry utilities."""

import logging
from unittest.mock import AsyncMock

import httpx
import pytest

from dc_ingestor.utils.retry import (
    RetryableStatusError,
    RetryConfig,
    _parse_retry_after,
    execute_with_retry,
)


def _response(status_code: int, headers: dict[str, str] | None = None) -> httpx.Response:
    return httpx.Response(status_code, headers=headers, request=httpx.Request("GET", "https://svc/streams"))


class TestRetryConfig:
    """Test suite for RetryConfig model."""

    def test_retry_config_defaults(self):
        """Retries are opt-in and limited to read-only requests."""
        config = RetryConfig()

        assert config.enabled is False
        assert config.max_attempts == 3
        assert config.retry_on_methods == ["GET"]
        assert config.status_forcelist == [429, 502, 503, 504]

    def test_retry_config_validation_invalid_values(self):
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)
        with pytest.raises(ValueError):
            RetryConfig(backoff_factor=0)
        with pytest.raises(ValueError):
            RetryConfig(jitter=-0.5)

    def test_status_forcelist_accepts_comma_separated_string(self):
        config = RetryConfig(status_forcelist="429, 503")
        assert config.status_forcelist == [429, 503]

    def test_lifecycle_methods_cannot_be_retried(self):
        """POST calls open jobs and upload batches, so they are never retryable."""
        with pytest.raises(ValueError, match="only GET"):
            RetryConfig(retry_on_methods=["GET", "POST"])

    def test_methods_are_normalised(self):
        config = RetryConfig(retry_on_methods="get")
        assert config.should_retry_method("GET")
        assert not config.should_retry_method("POST")

    def test_describe_is_serialisable(self):
        assert RetryConfig(enabled=True).describe()["enabled"] is True


class TestRetryableStatusError:
    def test_retryable_status_error_creation(self):
        response = _response(503)

        error = RetryableStatusError(response)

        assert "Retryable HTTP status 503" in str(error)
        assert error.response is response


class TestParseRetryAfter:
    def test_parse_retry_after_none_and_empty(self):
        assert _parse_retry_after(None) is None
        assert _parse_retry_after("") is None

    def test_parse_retry_after_seconds(self):
        assert _parse_retry_after("120") == 120.0
        assert _parse_retry_after("0") == 0.0

    def test_parse_retry_after_invalid_format(self):
        assert _parse_retry_after("invalid-format") is None

    def test_parse_retry_after_past_http_date(self):
        assert _parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0


class TestExecuteWithRetry:
    @pytest.mark.asyncio
    async def test_disabled_config_sends_once(self):
        send = AsyncMock(return_value=_response(503))

        result = await execute_with_retry(send, method="GET", retry_config=RetryConfig())

        assert result.status_code == 503
        assert send.call_count == 1

    @pytest.mark.asyncio
    async def test_post_is_sent_once_even_when_enabled(self):
        send = AsyncMock(side_effect=httpx.ConnectError("Connection failed"))
        config = RetryConfig(enabled=True, max_attempts=3, backoff_factor=0.01)

        with pytest.raises(httpx.ConnectError):
            await execute_with_retry(send, method="POST", retry_config=config)

        assert send.call_count == 1

    @pytest.mark.asyncio
    async def test_retryable_status_then_success(self):
        send = AsyncMock(side_effect=[_response(503), _response(200)])
        config = RetryConfig(enabled=True, max_attempts=2, backoff_factor=0.01)

        result = await execute_with_retry(send, method="GET", retry_config=config)

        assert result.status_code == 200
        assert send.call_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_status_returns_last_response(self, caplog):
        send = AsyncMock(side_effect=[_response(429), _response(429)])
        config = RetryConfig(enabled=True, max_attempts=2, backoff_factor=0.01)

        with caplog.at_level(logging.WARNING):
            result = await execute_with_retry(send, method="GET", retry_config=config)

        assert result.status_code == 429
        assert send.call_count == 2

    @pytest.mark.asyncio
    async def test_execute_with_retry_exhausts_attempts(self):
        send = AsyncMock(side_effect=httpx.ConnectError("Connection failed"))
        config = RetryConfig(enabled=True, max_attempts=2, backoff_factor=0.01)

        with pytest.raises(httpx.ConnectError, match="Connection failed"):
            await execute_with_retry(send, method="GET", retry_config=config)

        assert send.call_count == 2

    @pytest.mark.asyncio
    async def test_non_retryable_status_is_returned_immediately(self):
        send = AsyncMock(return_value=_response(404))
        config = RetryConfig(enabled=True, max_attempts=3, backoff_factor=0.01)

        result = await execute_with_retry(send, method="GET", retry_config=config)

        assert result.status_code == 404
        assert send.call_count == 1
