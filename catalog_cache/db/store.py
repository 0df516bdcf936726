"""Catalog persistence operations over an async SQLAlchemy session."""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_cache.db.models import (
    Base,
    Category,
    Navigation,
    Product,
    ProductDetail,
    ScrapeJob,
    product_categories,
)
from catalog_cache.utils.clock import utcnow

logger = logging.getLogger(__name__)

DEFAULT_NAVIGATION_SLUG = "all-categories"
DEFAULT_NAVIGATION_TITLE = "All Categories"


@dataclass
class BulkWriteResult:
    """Outcome of an unordered best-effort batch."""

    succeeded: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    results: list[Any] = field(default_factory=list)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CatalogStore:
    """
    Store boundary used by the merge engine and the catalog service.

    Upserts are single ``INSERT ... ON CONFLICT`` statements, so concurrent
    writers of the same key never produce duplicates.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def _insert(self, table):
        if self.session.get_bind().dialect.name == "postgresql":
            return postgresql.insert(table)
        return sqlite.insert(table)

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    # =========================================================================
    # Generic write primitives
    # =========================================================================

    async def upsert(
        self,
        model: type[Base],
        key: dict[str, Any],
        set_fields: dict[str, Any],
        set_on_insert: Optional[dict[str, Any]] = None,
    ) -> int:
        """
        Insert or update one row matched by ``key``.

        Args:
            model: Mapped class with an ``id`` primary key
            key: Columns of a unique constraint identifying the row
            set_fields: Written on insert and on every update
            set_on_insert: Written only when the row is created

        Returns:
            Row id
        """
        values = {**(set_on_insert or {}), **set_fields, **key}
        stmt = self._insert(model).values(**values)
        if set_fields:
            stmt = stmt.on_conflict_do_update(index_elements=list(key), set_=set_fields)
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=list(key))

        result = await self.session.execute(stmt.returning(model.id))
        row_id = result.scalar_one_or_none()
        if row_id is None:
            # DO NOTHING returns no row for an existing key
            result = await self.session.execute(select(model.id).filter_by(**key))
            row_id = result.scalar_one()
        return row_id

    async def bulk_write(
        self,
        ops: Iterable[Callable[[], Awaitable[Any]]],
        label: str = "write",
    ) -> BulkWriteResult:
        """
        Run operations unordered and best-effort.

        Each operation gets its own SAVEPOINT, so a failing one is rolled back
        alone and the rest of the batch still applies.
        """
        outcome = BulkWriteResult()
        for op in ops:
            try:
                async with self.session.begin_nested():
                    outcome.results.append(await op())
                outcome.succeeded += 1
            except Exception as e:
                outcome.failed += 1
                outcome.errors.append(str(e))
                logger.warning(f"Bulk {label} operation failed: {type(e).__name__}: {e}")
        return outcome

    async def add_membership(self, product_id: int, category_id: int) -> None:
        """Record that a product was seen in a category (insert-if-absent)."""
        stmt = (
            self._insert(product_categories)
            .values(product_id=product_id, category_id=category_id)
            .on_conflict_do_nothing(index_elements=["product_id", "category_id"])
        )
        await self.session.execute(stmt)

    # =========================================================================
    # Navigations and categories
    # =========================================================================

    async def ensure_navigation(
        self,
        slug: str = DEFAULT_NAVIGATION_SLUG,
        title: str = DEFAULT_NAVIGATION_TITLE,
    ) -> int:
        """Create the navigation if absent and return its id."""
        return await self.upsert(Navigation, {"slug": slug}, {}, {"title": title})

    async def count_categories(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(Category))
        return result.scalar_one()

    async def list_categories(self) -> Sequence[Category]:
        result = await self.session.execute(select(Category).order_by(Category.title))
        return result.scalars().all()

    async def find_category_by_slug(self, slug: str) -> Optional[Category]:
        result = await self.session.execute(
            select(Category).where(Category.slug == slug).order_by(Category.id).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_category(self, category_id: int) -> Optional[Category]:
        result = await self.session.execute(
            select(Category).where(Category.id == category_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_category(self, category_id: int, **fields: Any) -> None:
        category = await self.get_category(category_id)
        if category is None:
            return
        for name, value in fields.items():
            setattr(category, name, value)
        await self.session.flush()

    # =========================================================================
    # Products
    # =========================================================================

    async def get_product(self, product_id: int) -> Optional[Product]:
        result = await self.session.execute(
            select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def resolve_product_key(self, source_id: Optional[str], url: str) -> dict[str, Any]:
        """
        Unique key to upsert a scraped product under.

        A row already holding ``source_id`` wins. Otherwise a row already at
        ``url`` is reused, so a second id seen for the same page updates that
        row instead of colliding on ``source_url``.
        """
        if source_id:
            result = await self.session.execute(
                select(Product.id).where(Product.source_id == source_id).limit(1)
            )
            if result.scalar_one_or_none() is not None:
                return {"source_id": source_id}

        result = await self.session.execute(select(Product.id).where(Product.source_url == url).limit(1))
        if result.scalar_one_or_none() is not None or not source_id:
            return {"source_url": url}
        return {"source_id": source_id}

    async def find_product_by_slug(self, slug: str) -> Optional[Product]:
        result = await self.session.execute(
            select(Product)
            .where(Product.slug == slug)
            .order_by(Product.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_products_in_category(
        self, category_id: int, skip: int = 0, limit: int = 20
    ) -> Sequence[Product]:
        """Products observed in a category, most recently scraped first."""
        result = await self.session.execute(
            select(Product)
            .join(product_categories, product_categories.c.product_id == Product.id)
            .where(product_categories.c.category_id == category_id)
            .order_by(Product.last_scraped_at.desc(), Product.id)
            .offset(skip)
            .limit(limit)
        )
        return result.scalars().all()

    async def count_products_in_category(self, category_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(product_categories)
            .where(product_categories.c.category_id == category_id)
        )
        return result.scalar_one()

    def _search_filter(self, query: str):
        pattern = f"%{escape_like(query)}%"
        return or_(
            Product.title.ilike(pattern, escape="\\"),
            Product.source_id.ilike(pattern, escape="\\"),
        )

    async def search_products(
        self, query: str, skip: int = 0, limit: int = 20
    ) -> Sequence[Product]:
        result = await self.session.execute(
            select(Product)
            .where(self._search_filter(query))
            .order_by(Product.last_scraped_at.desc(), Product.id)
            .offset(skip)
            .limit(limit)
        )
        return result.scalars().all()

    async def count_search_results(self, query: str) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(Product).where(self._search_filter(query))
        )
        return result.scalar_one()

    async def update_product(self, product_id: int, **fields: Any) -> None:
        product = await self.get_product(product_id)
        if product is None:
            return
        for name, value in fields.items():
            setattr(product, name, value)
        product.updated_at = utcnow()
        await self.session.flush()

    # =========================================================================
    # Product details
    # =========================================================================

    async def get_product_detail(self, product_id: int) -> Optional[ProductDetail]:
        result = await self.session.execute(
            select(ProductDetail)
            .where(ProductDetail.product_id == product_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def product_ids_with_detail(self, product_ids: Iterable[int]) -> set[int]:
        ids = list(product_ids)
        if not ids:
            return set()
        result = await self.session.execute(
            select(ProductDetail.product_id).where(ProductDetail.product_id.in_(ids))
        )
        return set(result.scalars().all())

    async def replace_product_detail(self, product_id: int, fields: dict[str, Any]) -> int:
        """Overwrite every detail field for a product, creating the row if needed."""
        now = utcnow()
        return await self.upsert(
            ProductDetail,
            {"product_id": product_id},
            {**fields, "updated_at": now},
            {"created_at": now},
        )

    async def delete_product_detail(self, product_id: int) -> int:
        result = await self.session.execute(
            delete(ProductDetail).where(ProductDetail.product_id == product_id)
        )
        return result.rowcount

    # =========================================================================
    # Scrape job ledger
    # =========================================================================

    async def start_job(self, target_url: str, target_type: str) -> int:
        job = ScrapeJob(
            target_url=target_url,
            target_type=target_type,
            status="running",
            started_at=utcnow(),
        )
        self.session.add(job)
        await self.session.flush()
        return job.id

    async def finish_job(self, job_id: int, status: str, error_log: Optional[str] = None) -> None:
        job = await self.session.get(ScrapeJob, job_id)
        if job is None:
            return
        job.status = status
        job.finished_at = utcnow()
        job.error_log = error_log
        await self.session.flush()
