"""Tests for retry logic and timeout wrapping."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from newshub.errors import EnrichmentUnavailable, ValidationError
from newshub.retry import retry_async, with_timeout


@pytest.mark.asyncio
async def test_retry_succeeds_on_first_try():
    """No retries needed when function succeeds."""
    call_count = 0

    async def fn():
        nonlocal call_count
        call_count += 1
        return "ok"

    result = await retry_async(fn)
    assert result == "ok"
    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_succeeds_after_transient_failure():
    """Retries on transient error and eventually succeeds."""
    call_count = 0

    async def fn():
        nonlocal call_count
        call_count += 1
        if call_count < 3:
            raise ConnectionError("transient")
        return "ok"

    result = await retry_async(fn, max_retries=3, base_delay=0.01)
    assert result == "ok"
    assert call_count == 3


@pytest.mark.asyncio
async def test_retry_exhausts_retries():
    """Raises after max retries exhausted."""

    async def fn():
        raise TimeoutError("always fails")

    with pytest.raises(TimeoutError, match="always fails"):
        await retry_async(fn, max_retries=2, base_delay=0.01)


@pytest.mark.asyncio
async def test_retry_does_not_retry_non_transient():
    """Non-retryable exceptions are raised immediately."""
    call_count = 0

    async def fn():
        nonlocal call_count
        call_count += 1
        raise ValidationError("bad input")

    with pytest.raises(ValidationError, match="bad input"):
        await retry_async(fn, max_retries=3, base_delay=0.01)
    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_on_extra_exception_types():
    """Callers can mark their own errors as transient."""
    call_count = 0

    async def fn():
        nonlocal call_count
        call_count += 1
        if call_count == 1:
            raise EnrichmentUnavailable("provider busy")
        return "ok"

    result = await retry_async(fn, max_retries=1, base_delay=0.0, retry_on=(EnrichmentUnavailable,))
    assert result == "ok"
    assert call_count == 2


@pytest.mark.asyncio
async def test_retry_on_server_error_but_not_client_error():
    request = httpx.Request("POST", "https://api.example.com")
    calls = {"503": 0, "400": 0}

    async def flaky():
        calls["503"] += 1
        if calls["503"] == 1:
            raise httpx.HTTPStatusError(
                "unavailable", request=request, response=httpx.Response(503, request=request),
            )
        return "ok"

    async def bad_request():
        calls["400"] += 1
        raise httpx.HTTPStatusError(
            "bad", request=request, response=httpx.Response(400, request=request),
        )

    assert await retry_async(flaky, max_retries=2, base_delay=0.0) == "ok"
    with pytest.raises(httpx.HTTPStatusError):
        await retry_async(bad_request, max_retries=2, base_delay=0.0)
    assert calls == {"503": 2, "400": 1}


@pytest.mark.asyncio
async def test_with_timeout_converts_exception():
    async def slow():
        await asyncio.sleep(1)

    with pytest.raises(EnrichmentUnavailable, match="enrichment timed out"):
        await with_timeout(slow(), 0.01, EnrichmentUnavailable, what="enrichment")


@pytest.mark.asyncio
async def test_with_timeout_passes_result():
    async def quick():
        return 42

    assert await with_timeout(quick(), 1.0, EnrichmentUnavailable) == 42
