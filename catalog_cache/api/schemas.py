"""Response models for the HTTP API."""

from datetime import datetime
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Every response body is wrapped as ``{"success": true, "data": ...}``."""

    success: bool = True
    data: T


class Pagination(BaseModel):
    page: int
    limit: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class CategorySummary(BaseModel):
    id: int
    title: str
    slug: str
    product_count: int
    last_scraped_at: datetime | None

    class Config:
        from_attributes = True


class ProductSummary(BaseModel):
    id: int
    source_id: str | None
    title: str
    author: str | None
    price: float
    currency: str
    image_url: str | None
    slug: str
    url: str
    has_detail: bool = False


class ProductPage(BaseModel):
    items: List[ProductSummary]
    pagination: Pagination


class CategoryWithProducts(BaseModel):
    category: CategorySummary
    products: ProductPage


class ConditionInfo(BaseModel):
    type: str
    label: str
    price: float
    available: bool
    variant_id: str = ""
    sku: str | None = None
    stock: int | None = None


class ProductDetailInfo(BaseModel):
    description: str | None
    specs: dict[str, str]
    ratings_avg: float | None
    reviews_count: int
    conditions: List[ConditionInfo]
    in_stock: bool
    rrp: float | None = None
    series: str | None = None


class ProductWithDetail(ProductSummary):
    image_urls: List[str]
    last_scraped_at: datetime | None
    detail: Optional[ProductDetailInfo]


class ScrapeResultResponse(BaseModel):
    """Raw scrape outcome returned by the scraper passthrough routes."""

    success: bool
    url: str
    data: Any = None
    error: str | None = None
    failure_kind: str | None = None
    scraped_at: datetime


class HealthStatus(BaseModel):
    healthy: bool
    message: str
