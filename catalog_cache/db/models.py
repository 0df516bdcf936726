"""SQLAlchemy database models."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from catalog_cache.utils.clock import utcnow

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB, "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# Category membership: one row per (product, category) pair observed on a listing page
product_categories = Table(
    "product_categories",
    Base.metadata,
    Column("product_id", Integer, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", Integer, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)


class Navigation(Base):
    """Root grouping for categories."""

    __tablename__ = "navigations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    last_scraped_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Category(Base):
    """A product category (collection) on the upstream site."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    navigation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("navigations.id"), nullable=False, index=True
    )
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("categories.id"), nullable=True, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    # Denormalized; recomputed on every successful scrape of the category
    product_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_scraped_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("navigation_id", "slug", name="uq_category_navigation_slug"),
        CheckConstraint("product_count >= 0", name="ck_category_product_count"),
    )


class Product(Base):
    """A product seen on a category listing or its own page."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # NULL when the listing carried no id; NULLs never collide on the unique index
    source_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    author: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="GBP", nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_url: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    last_scraped_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    categories: Mapped[list["Category"]] = relationship(
        "Category", secondary=product_categories, lazy="selectin"
    )

    __table_args__ = (CheckConstraint("price >= 0", name="ck_product_price"),)

    @property
    def category_ids(self) -> set[int]:
        """Ids of every category this product has been observed in."""
        return {category.id for category in self.categories}


class ProductDetail(Base):
    """Full product page data, replaced wholesale on each detail scrape."""

    __tablename__ = "product_details"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    specs: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    ratings_avg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    reviews_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    conditions: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    image_urls: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    in_stock: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    rrp: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    series: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    schema_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "ratings_avg IS NULL OR (ratings_avg >= 0 AND ratings_avg <= 5)",
            name="ck_detail_ratings_avg",
        ),
        CheckConstraint("reviews_count >= 0", name="ck_detail_reviews_count"),
    )


class ScrapeJob(Base):
    """Ledger of fetch-and-merge attempts."""

    __tablename__ = "scrape_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    target_url: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)  # navigation, category, product
    status: Mapped[str] = mapped_column(String(32), default="pending", nullable=False, index=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    error_log: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
