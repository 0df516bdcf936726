"""Tests for the browser transport's retry, policy and circuit handling.

Rendering itself is replaced with a mock; no browser is launched.
"""

from unittest.mock import AsyncMock

import pytest

from catalog_cache.ingest.base import RenderedPage, RouteKind
from catalog_cache.ingest.browser import BrowserConfig, PlaywrightTransport
from catalog_cache.ingest.circuit_breaker import CircuitBreaker, CircuitOpenError
from catalog_cache.ingest.errors import (
    BlockedError,
    PageNotFoundError,
    PolicyBlockedError,
    TransientFetchError,
)
from catalog_cache.ingest.rate_limiter import RateLimiter
from catalog_cache.ingest.url_policy import UrlPolicy

URL = "https://www.worldofbooks.com/en-gb/collections/fiction-books"


def make_transport(max_attempts: int = 3, failure_threshold: int = 10, **policy) -> PlaywrightTransport:
    config = BrowserConfig(
        max_attempts=max_attempts,
        retry_base_delay_seconds=0.0,
        retry_max_delay_seconds=0.0,
        min_interval_seconds=0.0,
        max_interval_seconds=0.0,
        jitter_seconds=0.0,
    )
    return PlaywrightTransport(
        config=config,
        url_policy=UrlPolicy.from_patterns(**policy) if policy else UrlPolicy(),
        limiter=RateLimiter(),
        circuit_breaker=CircuitBreaker(failure_threshold=failure_threshold, recovery_seconds=300),
    )


def rendered(url: str = URL) -> RenderedPage:
    return RenderedPage(url=url, html="<html></html>", route_kind=RouteKind.CATEGORY, status_code=200)


class TestFetchRendered:
    """Tests for PlaywrightTransport.fetch_rendered."""

    @pytest.mark.asyncio
    async def test_success(self):
        transport = make_transport()
        transport._render = AsyncMock(return_value=rendered())

        page = await transport.fetch_rendered(URL, RouteKind.CATEGORY)

        assert page.url == URL
        transport._render.assert_awaited_once_with(URL, RouteKind.CATEGORY)

    @pytest.mark.asyncio
    async def test_policy_checked_before_fetch(self):
        transport = make_transport(blocked=[r"/collections/"])
        transport._render = AsyncMock()

        with pytest.raises(PolicyBlockedError):
            await transport.fetch_rendered(URL, RouteKind.CATEGORY)
        transport._render.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self):
        transport = make_transport()
        transport._render = AsyncMock(side_effect=[TransientFetchError(URL, "reset"), rendered()])

        page = await transport.fetch_rendered(URL, RouteKind.CATEGORY)

        assert page.url == URL
        assert transport._render.await_count == 2

    @pytest.mark.asyncio
    async def test_not_found_not_retried(self):
        transport = make_transport()
        transport._render = AsyncMock(side_effect=PageNotFoundError(URL, "404", 404))

        with pytest.raises(PageNotFoundError):
            await transport.fetch_rendered(URL, RouteKind.CATEGORY)
        assert transport._render.await_count == 1
        assert transport.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_non_retryable_status_not_retried(self):
        transport = make_transport()
        transport._render = AsyncMock(side_effect=TransientFetchError(URL, "HTTP 410", 410))

        with pytest.raises(TransientFetchError):
            await transport.fetch_rendered(URL, RouteKind.CATEGORY)
        assert transport._render.await_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        transport = make_transport(max_attempts=3)
        transport._render = AsyncMock(side_effect=BlockedError(URL, "Blocked (429)", 429))

        with pytest.raises(BlockedError):
            await transport.fetch_rendered(URL, RouteKind.CATEGORY)
        assert transport._render.await_count == 3

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self):
        transport = make_transport(max_attempts=1, failure_threshold=2)
        transport._render = AsyncMock(side_effect=TransientFetchError(URL, "HTTP 503", 503))

        for _ in range(2):
            with pytest.raises(TransientFetchError):
                await transport.fetch_rendered(URL, RouteKind.CATEGORY)

        with pytest.raises(CircuitOpenError):
            await transport.fetch_rendered(URL, RouteKind.CATEGORY)
        assert transport._render.await_count == 2

    @pytest.mark.asyncio
    async def test_close_without_browser(self):
        await make_transport().close()
