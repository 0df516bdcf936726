"""Scraper service: builds page URLs, renders them through a transport and extracts records."""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from catalog_cache.config import settings
from catalog_cache.ingest.base import (
    CategoryData,
    FailureKind,
    ProductDetailData,
    ProductListItem,
    RenderedPage,
    RouteKind,
    ScrapeResult,
)
from catalog_cache.ingest.browser import PageTransport
from catalog_cache.ingest.errors import FetchError
from catalog_cache.ingest.extract import (
    extract_categories,
    extract_product_detail,
    extract_product_list,
)
from catalog_cache.ingest.url_policy import UrlPolicy
from catalog_cache.logging_config import get_logger
from catalog_cache import metrics

logger = get_logger(__name__, component="scraper")

T = TypeVar("T")


@dataclass
class ScraperConfig:
    """Where to scrape and how politely to batch."""

    base_url: str = "https://www.worldofbooks.com"
    locale: str = "en-gb"
    batch_size: int = 3
    batch_delay_seconds: float = 5.0
    url_policy: UrlPolicy = field(default_factory=UrlPolicy)

    @property
    def localized_base_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.locale}"

    @classmethod
    def from_settings(cls) -> "ScraperConfig":
        return cls(
            base_url=settings.scraper_base_url,
            locale=settings.scraper_locale,
            batch_size=settings.batch_scrape_size,
            batch_delay_seconds=settings.batch_scrape_delay_seconds,
        )


class ScraperService:
    """
    Route-kind dispatch over a page transport.

    Every public method returns a ScrapeResult. Fetch failures are reported
    in the result (with their FailureKind), never raised.
    """

    def __init__(self, transport: PageTransport, config: Optional[ScraperConfig] = None):
        self.transport = transport
        self.config = config or ScraperConfig()

    # URL builders

    def home_url(self) -> str:
        return self.config.localized_base_url

    def category_url(self, slug: str, page: Optional[int] = None) -> str:
        url = f"{self.config.localized_base_url}/collections/{slug}"
        if page and page > 1:
            url += f"?page={page}"
        return url

    def product_url(self, slug: str) -> str:
        return f"{self.config.localized_base_url}/products/{slug}"

    def is_url_allowed(self, url: str) -> bool:
        return self.config.url_policy.is_url_allowed(url)

    async def _scrape(
        self,
        url: str,
        route_kind: RouteKind,
        extract: Callable[[RenderedPage], T],
    ) -> ScrapeResult[T]:
        route = route_kind.value

        if not self.is_url_allowed(url):
            logger.warning(f"URL blocked by policy: {url}", extra={"route": route, "url": url})
            metrics.scrape_requests_total.labels(route=route, status=FailureKind.POLICY.value).inc()
            return ScrapeResult.failed(url, "blocked by policy", FailureKind.POLICY)

        logger.info(f"Processing {route.upper()}: {url}")
        try:
            with metrics.scrape_duration_seconds.labels(route=route).time():
                page = await self.transport.fetch_rendered(url, route_kind)
        except FetchError as e:
            logger.error(f"Failed to scrape {route} {url}: {e}", extra={"route": route, "url": url})
            metrics.scrape_requests_total.labels(route=route, status=e.kind.value).inc()
            return ScrapeResult.failed(url, str(e), e.kind)

        data = extract(page)
        metrics.scrape_requests_total.labels(route=route, status="success").inc()
        return ScrapeResult.ok(url, data)

    async def scrape_categories(self) -> ScrapeResult[list[CategoryData]]:
        """Scrape the category list from the home page."""
        result = await self._scrape(
            self.home_url(),
            RouteKind.HOME,
            lambda page: extract_categories(page.html, self.config.base_url),
        )
        if result.success:
            logger.info(f"Found {len(result.data)} categories")
        return result

    async def scrape_category(
        self, slug: str, page: Optional[int] = None
    ) -> ScrapeResult[list[ProductListItem]]:
        """Scrape one listing page of a category."""
        result = await self._scrape(
            self.category_url(slug, page),
            RouteKind.CATEGORY,
            lambda rendered: extract_product_list(rendered.html, self.config.base_url),
        )
        if result.success:
            logger.info(f"Found {len(result.data)} products in category {slug}")
        return result

    async def scrape_product(self, slug: str) -> ScrapeResult[Optional[ProductDetailData]]:
        """Scrape a product page; data is None when the page had no product."""
        return await self._scrape(
            self.product_url(slug),
            RouteKind.PRODUCT,
            lambda page: extract_product_detail(
                page.html, page.url, self.config.base_url
            ),
        )

    async def scrape_products(
        self,
        slugs: list[str],
        batch_size: Optional[int] = None,
        delay_seconds: Optional[float] = None,
    ) -> dict[str, ScrapeResult[Optional[ProductDetailData]]]:
        """
        Scrape product pages sequentially in small batches.

        Waits ``delay + random(0..2s)`` between items and ``2 * delay``
        between batches. A failure is recorded for its slug and the batch
        continues.
        """
        batch_size = batch_size or self.config.batch_size
        delay = self.config.batch_delay_seconds if delay_seconds is None else delay_seconds

        results: dict[str, ScrapeResult[Optional[ProductDetailData]]] = {}
        total_batches = (len(slugs) + batch_size - 1) // batch_size

        for start in range(0, len(slugs), batch_size):
            batch = slugs[start:start + batch_size]
            logger.info(f"Processing batch {start // batch_size + 1}/{total_batches}")

            for offset, slug in enumerate(batch):
                try:
                    results[slug] = await self.scrape_product(slug)
                except Exception as e:
                    logger.error(f"Unexpected error scraping product {slug}: {e}", exc_info=True)
                    results[slug] = ScrapeResult.failed(
                        self.product_url(slug), str(e), FailureKind.TRANSIENT
                    )

                if start + offset < len(slugs) - 1:
                    await asyncio.sleep(delay + random.uniform(0, 2))

            if start + batch_size < len(slugs):
                await asyncio.sleep(delay * 2)

        return results

    async def health_check(self) -> dict[str, Any]:
        """Check that the home page renders and yields categories."""
        try:
            result = await self.scrape_categories()
        except Exception as e:
            logger.error(f"Health check failed: {e}", exc_info=True)
            return {"healthy": False, "message": f"Health check failed: {e}"}

        if not result.success:
            return {"healthy": False, "message": f"Connection failed: {result.error}"}

        return {
            "healthy": len(result.data) > 0,
            "message": f"Connected successfully. Found {len(result.data)} categories.",
        }
