"""Headless browser transport: renders JavaScript-driven pages and classifies failures."""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import urlparse

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from catalog_cache.config import settings
from catalog_cache.ingest.base import RenderedPage, RouteKind
from catalog_cache.ingest.circuit_breaker import CircuitBreaker
from catalog_cache.ingest.errors import (
    BlockedError,
    FetchError,
    FetchTimeoutError,
    PageNotFoundError,
    PolicyBlockedError,
    TransientFetchError,
    classify_status,
)
from catalog_cache.ingest.rate_limiter import RateLimiter, rate_limiter
from catalog_cache.ingest.url_policy import UrlPolicy

logger = logging.getLogger(__name__)


# Realistic desktop user agents for rotation
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
]

STEALTH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--window-size=1920,1080",
]

STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-GB', 'en-US', 'en'] });
"""

COOKIE_CONSENT_SELECTOR = (
    '[data-testid="accept-cookies"], #onetrust-accept-btn-handler, '
    '.cookie-accept, button:has-text("Accept")'
)

# Page titles served by bot-protection interstitials
CHALLENGE_TITLES = [
    "just a moment",
    "attention required",
    "access denied",
    "verify you are a human",
]

ALGOLIA_STATE_SCRIPT = """
() => {
    const empty = document.querySelector('.ais-InfiniteHits--empty');
    return {
        hits: document.querySelectorAll('li.ais-InfiniteHits-item').length,
        cards: document.querySelectorAll('.card[data-product-id]').length,
        links: document.querySelectorAll('a[data-item_id]').length,
        noResults: !!(empty && empty.textContent && empty.textContent.includes('No results')),
    };
}
"""

AUTO_SCROLL_SCRIPT = """
async () => {
    await new Promise((resolve) => {
        let total = 0;
        let count = 0;
        const distance = 400;
        const timer = setInterval(() => {
            window.scrollBy(0, distance);
            total += distance;
            count += 1;
            if (total >= document.body.scrollHeight || count >= 50) {
                clearInterval(timer);
                window.scrollTo(0, 0);
                resolve();
            }
        }, 200);
    });
}
"""


class PageTransport(Protocol):
    """Anything that can turn a URL into rendered HTML."""

    def is_url_allowed(self, url: str) -> bool:
        ...

    async def fetch_rendered(self, url: str, route_kind: RouteKind) -> RenderedPage:
        """Render ``url``; raises a FetchError subclass on failure."""
        ...

    async def close(self) -> None:
        ...


@dataclass
class BrowserConfig:
    """Transport tuning; built from settings by ``from_settings``."""

    headless: bool = True
    max_concurrency: int = 1
    navigation_timeout_seconds: float = 90.0
    handler_timeout_seconds: float = 180.0
    max_attempts: int = 3
    retry_base_delay_seconds: float = 5.0
    retry_max_delay_seconds: float = 60.0
    retryable_status_codes: list[int] = field(default_factory=lambda: [408, 429, 500, 502, 503, 504])
    min_interval_seconds: float = 2.0
    max_interval_seconds: float = 5.0
    jitter_seconds: float = 0.5

    @classmethod
    def from_settings(cls) -> "BrowserConfig":
        return cls(
            headless=settings.scraper_headless,
            max_concurrency=settings.scraper_max_concurrency,
            navigation_timeout_seconds=settings.scraper_navigation_timeout_seconds,
            handler_timeout_seconds=settings.scraper_handler_timeout_seconds,
            max_attempts=settings.scraper_retry_max_attempts,
            retry_base_delay_seconds=settings.scraper_retry_base_delay_seconds,
            retry_max_delay_seconds=settings.scraper_retry_max_delay_seconds,
            retryable_status_codes=list(settings.scraper_retryable_status_codes),
            min_interval_seconds=settings.scraper_min_interval_seconds,
            max_interval_seconds=settings.scraper_max_interval_seconds,
            jitter_seconds=settings.scraper_jitter_seconds,
        )


class PlaywrightTransport:
    """Chromium-based transport with stealth settings, pacing, retries and a circuit breaker."""

    def __init__(
        self,
        config: Optional[BrowserConfig] = None,
        url_policy: Optional[UrlPolicy] = None,
        limiter: Optional[RateLimiter] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.config = config or BrowserConfig()
        self.url_policy = url_policy or UrlPolicy()
        self.rate_limiter = limiter or rate_limiter
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

        self._playwright = None
        self._browser: Optional[Browser] = None
        self._init_lock = asyncio.Lock()
        self._semaphore = asyncio.Semaphore(self.config.max_concurrency)

    def is_url_allowed(self, url: str) -> bool:
        return self.url_policy.is_url_allowed(url)

    async def _ensure_browser(self) -> Browser:
        async with self._init_lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            if self._browser is None:
                self._browser = await self._playwright.chromium.launch(
                    headless=self.config.headless,
                    args=STEALTH_ARGS,
                )
                logger.info("Launched headless chromium")
            return self._browser

    async def _new_context(self) -> BrowserContext:
        browser = await self._ensure_browser()
        context = await browser.new_context(
            user_agent=random.choice(USER_AGENTS),
            viewport={"width": 1920, "height": 1080},
            locale="en-GB",
        )
        await context.add_init_script(STEALTH_INIT_SCRIPT)
        return context

    async def close(self):
        """Close browser and cleanup."""
        if self._browser:
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    def _should_retry(self, error: FetchError) -> bool:
        if not error.retryable:
            return False
        if error.status_code is None:
            return True
        return error.status_code in self.config.retryable_status_codes

    async def fetch_rendered(self, url: str, route_kind: RouteKind) -> RenderedPage:
        """
        Render a page with retries.

        The URL policy is checked before every attempt, so a policy change
        between retries is honored.

        Raises:
            PolicyBlockedError: URL is not admissible (no network call made)
            PageNotFoundError: Upstream returned 404
            BlockedError, FetchTimeoutError, TransientFetchError: after retries
        """
        domain = urlparse(url).netloc
        max_attempts = max(1, self.config.max_attempts)

        async with self._semaphore:
            for attempt in range(1, max_attempts + 1):
                if not self.is_url_allowed(url):
                    raise PolicyBlockedError(url)

                self.circuit_breaker.before_call(url)
                await self.rate_limiter.acquire_with_interval(
                    domain,
                    self.config.min_interval_seconds,
                    self.config.max_interval_seconds,
                    self.config.jitter_seconds,
                )

                try:
                    page = await asyncio.wait_for(
                        self._render(url, route_kind),
                        timeout=self.config.handler_timeout_seconds,
                    )
                except asyncio.TimeoutError:
                    error: FetchError = FetchTimeoutError(url, f"Handler timed out for {url}")
                except FetchError as e:
                    error = e
                else:
                    self.circuit_breaker.record_success()
                    return page

                if not isinstance(error, PageNotFoundError):
                    self.circuit_breaker.record_failure(str(error))

                delay = self.rate_limiter.backoff_delay(
                    attempt,
                    self.config.retry_base_delay_seconds,
                    self.config.retry_max_delay_seconds,
                )
                if isinstance(error, BlockedError):
                    self.rate_limiter.set_cooldown(domain, delay)

                if attempt >= max_attempts or not self._should_retry(error):
                    logger.error(
                        f"Request failed: {url} | Status: {error.status_code or 'N/A'} | "
                        f"Error: {type(error).__name__}: {error}"
                    )
                    raise error

                logger.warning(
                    f"Retry {attempt}/{max_attempts} for {url} after {delay:.1f}s: "
                    f"{type(error).__name__}: {error}"
                )
                await asyncio.sleep(delay)

        raise TransientFetchError(url, f"No attempt made for {url}")

    async def _render(self, url: str, route_kind: RouteKind) -> RenderedPage:
        context = await self._new_context()
        try:
            page = await context.new_page()

            logger.debug(f"Navigating to {url}")
            try:
                response = await page.goto(
                    url,
                    wait_until="domcontentloaded",
                    timeout=self.config.navigation_timeout_seconds * 1000,
                )
            except PlaywrightTimeoutError:
                raise FetchTimeoutError(url, f"Navigation timeout for {url}")
            except PlaywrightError as e:
                raise TransientFetchError(url, str(e))

            status_code = response.status if response else None
            if status_code is not None:
                error = classify_status(url, status_code)
                if error is not None:
                    raise error

            await self._accept_cookies(page)
            await self._wait_for_load(page)

            title = (await page.title()).lower()
            if any(marker in title for marker in CHALLENGE_TITLES):
                raise BlockedError(url, f"Bot challenge page: {title}", status_code)

            try:
                if route_kind == RouteKind.HOME:
                    await self._wait_for_home(page)
                elif route_kind == RouteKind.CATEGORY:
                    await self._wait_for_category(page, url)
                else:
                    await self._wait_for_product(page)
            except PlaywrightTimeoutError:
                raise FetchTimeoutError(url, f"{route_kind.value} content did not render for {url}")

            html = await page.content()
            return RenderedPage(
                url=url,
                html=html,
                route_kind=route_kind,
                status_code=status_code,
                final_url=page.url,
            )
        except PlaywrightError as e:
            raise TransientFetchError(url, f"{type(e).__name__}: {e}")
        finally:
            await context.close()

    async def _accept_cookies(self, page: Page) -> None:
        try:
            button = await page.query_selector(COOKIE_CONSENT_SELECTOR)
            if button:
                await button.click()
                await asyncio.sleep(0.5)
        except PlaywrightError as e:
            logger.debug(f"Cookie consent not handled: {e}")

    async def _wait_for_load(self, page: Page) -> None:
        try:
            await page.wait_for_load_state("networkidle", timeout=15000)
        except PlaywrightTimeoutError:
            logger.warning("Network idle timeout - proceeding")
            await page.wait_for_load_state("domcontentloaded")
        await asyncio.sleep(random.uniform(0.5, 1.5))

    async def _wait_for_home(self, page: Page) -> None:
        await page.wait_for_selector("section.section-collection-list", timeout=30000, state="visible")
        await asyncio.sleep(2)

    async def _wait_for_product(self, page: Page) -> None:
        await page.wait_for_selector("product-info, .product, div.product", timeout=30000, state="visible")
        await asyncio.sleep(2)

    async def _wait_for_category(self, page: Page, url: str) -> None:
        await page.wait_for_selector("div.collection, #hits", timeout=30000)

        if not await self._wait_for_algolia(page):
            logger.warning(f"Products did not load on first attempt, reloading {url}")
            await page.reload(wait_until="domcontentloaded")
            await self._wait_for_load(page)
            if not await self._wait_for_algolia(page):
                raise FetchTimeoutError(url, f"Algolia products did not load after reload for {url}")

        # Infinite scroll loads the remaining cards
        await page.evaluate(AUTO_SCROLL_SCRIPT)
        await asyncio.sleep(1)

    async def _wait_for_algolia(self, page: Page, timeout_seconds: float = 45.0) -> bool:
        skeleton_timeout = 15.0
        try:
            if await page.query_selector("#skeleton-loader"):
                await page.wait_for_selector(
                    "#skeleton-loader", state="detached", timeout=skeleton_timeout * 1000
                )
        except PlaywrightTimeoutError:
            logger.warning(f"Skeleton loader did not detach within {skeleton_timeout:.0f}s, proceeding anyway")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + (timeout_seconds - skeleton_timeout)
        while loop.time() < deadline:
            state = await page.evaluate(ALGOLIA_STATE_SCRIPT)
            if state["hits"] or state["cards"] or state["links"]:
                logger.debug(f"Algolia loaded with {state['cards']} products")
                return True
            if state["noResults"]:
                logger.debug("Algolia returned no results for this category")
                return True
            await asyncio.sleep(0.5)

        logger.warning(f"Algolia products did not load within {timeout_seconds:.0f}s")
        return False
