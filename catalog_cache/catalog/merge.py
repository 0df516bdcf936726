"""Merge scraped records into the catalog store."""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional

from catalog_cache.catalog.mapper import detail_row_fields, slug_to_title
from catalog_cache.db.models import Category, Product
from catalog_cache.db.store import CatalogStore
from catalog_cache.ingest.base import CategoryData, ProductDetailData, ProductListItem
from catalog_cache.utils.clock import utcnow
from catalog_cache import metrics

logger = logging.getLogger(__name__)


@dataclass
class MergeReport:
    """What a merge wrote."""

    written: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    category_id: Optional[int] = None
    product_count: Optional[int] = None


def dedupe_items(items: Iterable[ProductListItem]) -> list[ProductListItem]:
    """Keep the last occurrence of each natural key, in first-seen order."""
    unique: dict[str, ProductListItem] = {}
    for item in items:
        unique[item.natural_key] = item
    return list(unique.values())


class MergeEngine:
    """
    Writes scraped records with upsert semantics.

    Scalars are last-write-wins, category membership only grows, and one
    failing record never aborts the rest of its batch.
    """

    def __init__(self, store: CatalogStore):
        self.store = store

    async def ensure_category(self, slug: str) -> int:
        """Id of the category with ``slug``, creating it under the default navigation."""
        existing = await self.store.find_category_by_slug(slug)
        if existing is not None:
            return existing.id

        navigation_id = await self.store.ensure_navigation()
        now = utcnow()
        return await self.store.upsert(
            Category,
            {"navigation_id": navigation_id, "slug": slug},
            {},
            {
                "title": slug_to_title(slug),
                "product_count": 0,
                "parent_id": None,
                "created_at": now,
                "updated_at": now,
            },
        )

    def _upsert_list_item(self, item: ProductListItem, category_id: int) -> Callable[[], Awaitable[int]]:
        async def op() -> int:
            now = utcnow()
            key = await self.store.resolve_product_key(item.source_id, item.url)
            product_id = await self.store.upsert(
                Product,
                key,
                {
                    "title": item.title,
                    "author": item.author,
                    "price": item.price,
                    "currency": item.currency,
                    "image_url": item.image_url,
                    "last_scraped_at": now,
                    "updated_at": now,
                },
                {
                    "source_id": item.source_id or None,
                    "source_url": item.url,
                    "slug": item.slug,
                    "created_at": now,
                },
            )
            await self.store.add_membership(product_id, category_id)
            return product_id

        return op

    async def merge_category_products(
        self, category_slug: str, items: Iterable[ProductListItem]
    ) -> MergeReport:
        """
        Upsert a category's listing and recompute its product count.

        The count is the number of distinct items in this scrape, so it is
        written (with ``last_scraped_at``) even for an empty listing.
        """
        unique = dedupe_items(items)
        category_id = await self.ensure_category(category_slug)

        outcome = await self.store.bulk_write(
            (self._upsert_list_item(item, category_id) for item in unique),
            label="product",
        )

        await self.store.update_category(
            category_id,
            product_count=len(unique),
            last_scraped_at=utcnow(),
        )
        await self.store.commit()

        metrics.merge_items_total.labels(entity="product", outcome="written").inc(outcome.succeeded)
        if outcome.failed:
            metrics.merge_items_total.labels(entity="product", outcome="failed").inc(outcome.failed)

        logger.info(
            f"Saved {outcome.succeeded} products to category {category_slug}"
            f" ({outcome.failed} failed)"
        )
        return MergeReport(
            written=outcome.succeeded,
            failed=outcome.failed,
            errors=outcome.errors,
            category_id=category_id,
            product_count=len(unique),
        )

    def _upsert_category(self, record: CategoryData, navigation_id: int) -> Callable[[], Awaitable[int]]:
        async def op() -> int:
            now = utcnow()
            return await self.store.upsert(
                Category,
                {"navigation_id": navigation_id, "slug": record.slug},
                {"title": record.title, "last_scraped_at": now, "updated_at": now},
                {"product_count": 0, "parent_id": None, "created_at": now},
            )

        return op

    async def merge_categories(self, records: Iterable[CategoryData]) -> MergeReport:
        """Upsert home page categories under the default navigation."""
        unique: dict[str, CategoryData] = {}
        for record in records:
            unique[record.slug] = record

        navigation_id = await self.store.ensure_navigation()
        outcome = await self.store.bulk_write(
            (self._upsert_category(record, navigation_id) for record in unique.values()),
            label="category",
        )
        await self.store.commit()

        metrics.merge_items_total.labels(entity="category", outcome="written").inc(outcome.succeeded)
        if outcome.failed:
            metrics.merge_items_total.labels(entity="category", outcome="failed").inc(outcome.failed)

        logger.info(f"Saved {outcome.succeeded} categories ({outcome.failed} failed)")
        return MergeReport(written=outcome.succeeded, failed=outcome.failed, errors=outcome.errors)

    async def save_product_detail(self, product_id: int, detail: ProductDetailData) -> int:
        """Replace the stored detail of a product."""
        return await self.store.replace_product_detail(product_id, detail_row_fields(detail))

    async def update_product_from_detail(self, product_id: int, detail: ProductDetailData) -> None:
        """Refresh the product's summary fields from its own page."""
        fields: dict[str, Any] = {
            "title": detail.title,
            "price": detail.price,
            "currency": detail.currency,
            "image_url": detail.image_url,
            "last_scraped_at": utcnow(),
        }
        if detail.author:
            fields["author"] = detail.author
        await self.store.update_product(product_id, **fields)

    async def create_product_from_detail(self, detail: ProductDetailData) -> int:
        """Upsert a product first seen on its own page; returns its id."""
        now = utcnow()
        product_id = await self.store.upsert(
            Product,
            await self.store.resolve_product_key(detail.source_id, detail.url),
            {
                "title": detail.title,
                "author": detail.author,
                "price": detail.price,
                "currency": detail.currency,
                "image_url": detail.image_url,
                "last_scraped_at": now,
                "updated_at": now,
            },
            {
                "source_id": detail.source_id or None,
                "source_url": detail.url,
                "slug": detail.slug,
                "created_at": now,
            },
        )
        await self.store.commit()
        return product_id

    async def apply_product_detail(self, product_id: int, detail: ProductDetailData) -> None:
        """
        Persist a scraped product page in two steps.

        The detail replacement is committed first; a failure refreshing the
        summary fields afterwards is logged and leaves the new detail in place.
        """
        await self.save_product_detail(product_id, detail)
        await self.store.commit()
        metrics.merge_items_total.labels(entity="product_detail", outcome="written").inc()

        try:
            await self.update_product_from_detail(product_id, detail)
            await self.store.commit()
        except Exception as e:
            await self.store.rollback()
            metrics.merge_items_total.labels(entity="product", outcome="failed").inc()
            logger.error(f"Failed to update product {product_id} from detail: {e}", exc_info=True)
