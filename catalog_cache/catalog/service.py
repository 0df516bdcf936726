"""
Read-through catalog service.

Every lookup classifies the cached entry (fresh, stale or missing), refreshes
it from the upstream site when needed and then serves from the store. A
failed refresh falls back to the stale copy; only when nothing is cached does
the caller get an error.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_cache.api.schemas import CategorySummary, CategoryWithProducts, ProductPage, ProductWithDetail
from catalog_cache.catalog import mapper
from catalog_cache.catalog.errors import NotFoundError, UpstreamUnavailableError
from catalog_cache.catalog.freshness import Freshness, StalenessConfig, classify
from catalog_cache.catalog.inflight import InflightRegistry
from catalog_cache.catalog.merge import MergeEngine
from catalog_cache.db.store import CatalogStore
from catalog_cache.ingest.base import FailureKind
from catalog_cache.ingest.scraper import ScraperService
from catalog_cache.utils.clock import utcnow
from catalog_cache import metrics

logger = logging.getLogger(__name__)


@dataclass
class RefreshOutcome:
    """Result of one fetch-and-merge attempt."""

    success: bool
    failure_kind: Optional[FailureKind] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, kind: Optional[FailureKind], error: Optional[str]) -> "RefreshOutcome":
        return cls(success=False, failure_kind=kind or FailureKind.TRANSIENT, error=error)


class CatalogService:
    """Cache-aside controller over the store and the scraper."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scraper: ScraperService,
        staleness: Optional[StalenessConfig] = None,
        inflight: Optional[InflightRegistry] = None,
        clock: Callable[[], object] = utcnow,
    ):
        self.session_factory = session_factory
        self.scraper = scraper
        self.staleness = staleness or StalenessConfig()
        self.inflight = inflight or InflightRegistry()
        self.clock = clock

    # =========================================================================
    # Categories
    # =========================================================================

    async def get_all_categories(self) -> list[CategorySummary]:
        """All categories by title; seeds the list from the home page when empty."""
        async with self.session_factory() as session:
            count = await CatalogStore(session).count_categories()

        if count == 0:
            logger.info("No categories in DB, scraping from website...")
            outcome = await self.seed_categories()
            if not outcome.success:
                raise UpstreamUnavailableError("categories", "all", outcome.error or "")

        async with self.session_factory() as session:
            categories = await CatalogStore(session).list_categories()
            return [CategorySummary.model_validate(c) for c in categories]

    async def seed_categories(self) -> RefreshOutcome:
        """Scrape the home page and upsert its categories."""
        return await self.inflight.run(("categories",), self._fetch_and_merge_categories)

    async def get_category(self, slug: str, page: int = 1, limit: int = 20) -> CategoryWithProducts:
        logger.info(f"Getting category: {slug} (page {page})")
        freshness = await self._category_freshness(slug)
        metrics.catalog_lookups_total.labels(entity="category", freshness=freshness.value).inc()

        if freshness != Freshness.FRESH:
            logger.info(f'Category "{slug}" is {freshness.value}, scraping...')
            outcome = await self._refresh_category(slug)
            self._handle_failed_refresh("category", slug, freshness, outcome)

        return await self._read_category(slug, page, limit)

    async def refresh_category(self, slug: str, page: int = 1, limit: int = 20) -> CategoryWithProducts:
        """Re-scrape a category regardless of its age."""
        logger.info(f"Force refreshing category: {slug}")
        freshness = await self._category_freshness(slug)
        outcome = await self._refresh_category(slug)
        self._handle_failed_refresh(
            "category", slug, Freshness.MISSING if freshness == Freshness.MISSING else Freshness.STALE, outcome
        )
        return await self._read_category(slug, page, limit)

    async def _category_freshness(self, slug: str) -> Freshness:
        async with self.session_factory() as session:
            category = await CatalogStore(session).find_category_by_slug(slug)
        return classify(
            category is not None,
            category.last_scraped_at if category else None,
            self.staleness.category_max_age,
            self.clock(),
        )

    async def _refresh_category(self, slug: str) -> RefreshOutcome:
        return await self.inflight.run(
            ("category", slug), lambda: self._fetch_and_merge_category(slug)
        )

    async def _read_category(self, slug: str, page: int, limit: int) -> CategoryWithProducts:
        async with self.session_factory() as session:
            store = CatalogStore(session)
            category = await store.find_category_by_slug(slug)
            if category is None:
                raise NotFoundError("category", slug)

            skip = (page - 1) * limit
            products = await store.find_products_in_category(category.id, skip, limit)
            total = await store.count_products_in_category(category.id)
            detail_ids = await store.product_ids_with_detail(p.id for p in products)

            return mapper.category_with_products(category, products, page, limit, total, detail_ids)

    # =========================================================================
    # Products
    # =========================================================================

    async def get_product(self, slug: str) -> ProductWithDetail:
        logger.info(f"Getting product: {slug}")
        freshness = await self._product_freshness(slug)
        metrics.catalog_lookups_total.labels(entity="product", freshness=freshness.value).inc()

        if freshness != Freshness.FRESH:
            logger.info(f'Product "{slug}" is {freshness.value}, scraping...')
            outcome = await self._refresh_product(slug)
            self._handle_failed_refresh("product", slug, freshness, outcome)

        return await self._read_product(slug)

    async def refresh_product(self, slug: str) -> ProductWithDetail:
        """Drop the stored detail and re-scrape the product page."""
        logger.info(f"Force refreshing product: {slug}")
        async with self.session_factory() as session:
            store = CatalogStore(session)
            product = await store.find_product_by_slug(slug)
            if product is not None:
                await store.delete_product_detail(product.id)
                await store.commit()

        outcome = await self._refresh_product(slug)
        self._handle_failed_refresh(
            "product", slug, Freshness.STALE if product is not None else Freshness.MISSING, outcome
        )
        return await self._read_product(slug)

    async def _product_freshness(self, slug: str) -> Freshness:
        """A product is only fresh when its detail page has been stored recently."""
        async with self.session_factory() as session:
            store = CatalogStore(session)
            product = await store.find_product_by_slug(slug)
            if product is None:
                return Freshness.MISSING
            if await store.get_product_detail(product.id) is None:
                return Freshness.STALE
            return classify(True, product.last_scraped_at, self.staleness.product_max_age, self.clock())

    async def _refresh_product(self, slug: str) -> RefreshOutcome:
        return await self.inflight.run(
            ("product", slug), lambda: self._fetch_and_merge_product(slug)
        )

    async def _read_product(self, slug: str) -> ProductWithDetail:
        async with self.session_factory() as session:
            store = CatalogStore(session)
            product = await store.find_product_by_slug(slug)
            if product is None:
                raise NotFoundError("product", slug)
            detail = await store.get_product_detail(product.id)
            return mapper.product_with_detail(product, detail)

    # =========================================================================
    # Search
    # =========================================================================

    async def search_products(self, query: str, page: int = 1, limit: int = 20) -> ProductPage:
        """Case-insensitive substring search over title and source id, newest first."""
        async with self.session_factory() as session:
            store = CatalogStore(session)
            skip = (page - 1) * limit
            products = await store.search_products(query, skip, limit)
            total = await store.count_search_results(query)
            detail_ids = await store.product_ids_with_detail(p.id for p in products)
            return mapper.product_page(products, page, limit, total, detail_ids)

    # =========================================================================
    # Refresh internals
    # =========================================================================

    def _handle_failed_refresh(
        self,
        entity: str,
        slug: str,
        freshness: Freshness,
        outcome: RefreshOutcome,
    ) -> None:
        """
        Decide what a failed refresh means for the caller.

        Raises:
            NotFoundError: Missing entity whose URL can never be fetched
            UpstreamUnavailableError: Missing entity and the fetch failed
        """
        if outcome.success:
            return

        if freshness == Freshness.MISSING:
            if outcome.failure_kind in (FailureKind.POLICY, FailureKind.NOT_FOUND):
                raise NotFoundError(entity, slug)
            raise UpstreamUnavailableError(entity, slug, outcome.error or "")

        metrics.stale_fallbacks_total.labels(entity=entity).inc()
        logger.warning(f'Scrape failed for {entity} "{slug}", serving stale data: {outcome.error}')

    async def _run_job(
        self,
        target_url: str,
        target_type: str,
        work: Callable[[], Awaitable[RefreshOutcome]],
    ) -> RefreshOutcome:
        """Run fetch-and-merge work and record it in the scrape job ledger."""
        job_id = await self._start_job(target_url, target_type)
        try:
            outcome = await work()
        except Exception as e:
            logger.error(f"Refresh of {target_type} {target_url} failed: {e}", exc_info=True)
            outcome = RefreshOutcome.failed(FailureKind.TRANSIENT, str(e))
        await self._finish_job(job_id, outcome)
        return outcome

    async def _start_job(self, target_url: str, target_type: str) -> Optional[int]:
        try:
            async with self.session_factory() as session:
                store = CatalogStore(session)
                job_id = await store.start_job(target_url, target_type)
                await store.commit()
                return job_id
        except Exception as e:
            logger.warning(f"Failed to record scrape job for {target_url}: {e}")
            return None

    async def _finish_job(self, job_id: Optional[int], outcome: RefreshOutcome) -> None:
        if job_id is None:
            return
        try:
            async with self.session_factory() as session:
                store = CatalogStore(session)
                await store.finish_job(
                    job_id,
                    "completed" if outcome.success else "failed",
                    None if outcome.success else outcome.error,
                )
                await store.commit()
        except Exception as e:
            logger.warning(f"Failed to update scrape job {job_id}: {e}")

    async def _fetch_and_merge_categories(self) -> RefreshOutcome:
        async def work() -> RefreshOutcome:
            result = await self.scraper.scrape_categories()
            if not result.success:
                return RefreshOutcome.failed(result.failure_kind, result.error)
            async with self.session_factory() as session:
                await MergeEngine(CatalogStore(session)).merge_categories(result.data)
            return RefreshOutcome(success=True)

        return await self._run_job(self.scraper.home_url(), "navigation", work)

    async def _fetch_and_merge_category(self, slug: str) -> RefreshOutcome:
        async def work() -> RefreshOutcome:
            result = await self.scraper.scrape_category(slug)
            if not result.success:
                return RefreshOutcome.failed(result.failure_kind, result.error)
            async with self.session_factory() as session:
                await MergeEngine(CatalogStore(session)).merge_category_products(slug, result.data)
            return RefreshOutcome(success=True)

        return await self._run_job(self.scraper.category_url(slug), "category", work)

    async def _fetch_and_merge_product(self, slug: str) -> RefreshOutcome:
        async def work() -> RefreshOutcome:
            result = await self.scraper.scrape_product(slug)
            if not result.success:
                return RefreshOutcome.failed(result.failure_kind, result.error)
            if result.data is None:
                logger.warning(f'No product data on page for "{slug}"')
                return RefreshOutcome(success=True)

            detail = result.data
            async with self.session_factory() as session:
                store = CatalogStore(session)
                merge = MergeEngine(store)
                product = await store.find_product_by_slug(slug)
                if product is None:
                    product_id = await merge.create_product_from_detail(detail)
                else:
                    product_id = product.id
                await merge.apply_product_detail(product_id, detail)
            return RefreshOutcome(success=True)

        return await self._run_job(self.scraper.product_url(slug), "product", work)

