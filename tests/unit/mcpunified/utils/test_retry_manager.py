# -*- coding: utf-8 -*-
"""Location: ./tests/unit/mcpunified/utils/test_retry_manager.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Unit tests for the resilient HTTP client.
"""

# Standard
from unittest.mock import AsyncMock, patch

# Third-Party
import httpx
import pytest

# First-Party
from mcpunified.utils.retry_manager import NON_RETRYABLE_STATUS_CODES, ResilientHttpClient, RETRYABLE_STATUS_CODES


@pytest.fixture
def client():
    return ResilientHttpClient(max_retries=3, base_backoff=0.1, max_delay=5, jitter_max=0.5)


@pytest.mark.asyncio
async def test_successful_request_no_retry(client):
    with patch.object(client.client, "request", new=AsyncMock(return_value=httpx.Response(200))) as mock_req:
        resp = await client.post("http://example.com/mcp", content=b"{}")
        assert resp.status_code == 200
        assert mock_req.call_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", sorted(RETRYABLE_STATUS_CODES))
async def test_retry_on_retryable_status(client, status_code):
    mock_response = httpx.Response(status_code)
    with patch.object(client.client, "request", new=AsyncMock(return_value=mock_response)) as mock_req:
        with patch("asyncio.sleep", new=AsyncMock()):
            resp = await client.get("http://retry.com")
            assert resp.status_code == status_code
            assert mock_req.call_count == client.max_retries


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", sorted(NON_RETRYABLE_STATUS_CODES))
async def test_no_retry_on_non_retryable_status(client, status_code):
    with patch.object(client.client, "request", new=AsyncMock(return_value=httpx.Response(status_code))) as mock_req:
        resp = await client.get("http://no-retry.com")
        assert mock_req.call_count == 1
        assert resp.status_code == status_code


@pytest.mark.asyncio
async def test_recovers_after_transient_failures(client):
    responses = [httpx.Response(503), httpx.Response(200)]
    with patch.object(client.client, "request", new=AsyncMock(side_effect=responses)) as mock_req:
        with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
            resp = await client.get("http://flaky.com")
    assert resp.status_code == 200
    assert mock_req.call_count == 2
    assert mock_sleep.call_count == 1


@pytest.mark.asyncio
async def test_retry_after_header_respected(client):
    mock_resp = httpx.Response(429, headers={"Retry-After": "2"})
    with patch.object(client.client, "request", new=AsyncMock(return_value=mock_resp)):
        with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
            await client.get("http://retry-after.com")
            assert mock_sleep.call_args_list[0][0][0] == 2.0


@pytest.mark.asyncio
async def test_retry_after_is_capped(client):
    mock_resp = httpx.Response(503, headers={"Retry-After": "3600"})
    with patch.object(client.client, "request", new=AsyncMock(return_value=mock_resp)):
        with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
            await client.get("http://slow-down.com")
            assert mock_sleep.call_args_list[0][0][0] == 5


@pytest.mark.asyncio
@pytest.mark.parametrize("exc_type", [httpx.ConnectError, httpx.ConnectTimeout])
async def test_connection_errors_retried_then_raised(client, exc_type):
    failing = AsyncMock(side_effect=exc_type("Connection failed"))
    with patch.object(client.client, "request", new=failing):
        with patch("asyncio.sleep", new=AsyncMock()):
            with pytest.raises(exc_type):
                await client.get("http://fail.com")
    assert failing.call_count == client.max_retries


@pytest.mark.asyncio
async def test_read_timeout_is_not_retried(client):
    failing = AsyncMock(side_effect=httpx.ReadTimeout("too slow"))
    with patch.object(client.client, "request", new=failing):
        with pytest.raises(httpx.ReadTimeout):
            await client.post("http://slow.com/mcp", content=b"{}")
    assert failing.call_count == 1


def test_backoff_delay_grows_and_caps(client):
    assert client.backoff_delay(0, jitter=False) == pytest.approx(0.1)
    assert client.backoff_delay(2, jitter=False) == pytest.approx(0.4)
    assert client.backoff_delay(10, jitter=False) == 5
    for attempt in range(4):
        base = client.backoff_delay(attempt, jitter=False)
        assert base <= client.backoff_delay(attempt) <= min(base * 1.5, 5)


def test_max_retries_at_least_one():
    assert ResilientHttpClient(max_retries=0).max_retries == 1


@pytest.mark.asyncio
async def test_context_manager_closes_client():
    async with ResilientHttpClient() as client:
        inner = client.client
    assert inner.is_closed
