"""Data shapes exchanged between the scraper, the extractor and the merge engine."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, Optional, TypeVar

from catalog_cache.utils.clock import utcnow

# Bumped whenever a field is added, removed or changes meaning
SCHEMA_VERSION = 1

DEFAULT_CURRENCY = "GBP"

T = TypeVar("T")


class RouteKind(str, Enum):
    """Kind of page being fetched, selects the wait and extraction strategy."""

    HOME = "home"
    CATEGORY = "category"
    PRODUCT = "product"


class FailureKind(str, Enum):
    """Classification of a failed fetch."""

    BLOCKED = "blocked"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    POLICY = "policy"


class ConditionType(str, Enum):
    NEW = "new"
    LIKE_NEW = "like_new"
    VERY_GOOD = "very_good"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    UNKNOWN = "unknown"


@dataclass
class CategoryData:
    """A category tile on the home page."""

    title: str
    url: str
    slug: str
    image_url: Optional[str] = None
    description: Optional[str] = None
    schema_version: int = SCHEMA_VERSION


@dataclass
class ProductListItem:
    """A product card on a category listing page."""

    source_id: str
    title: str
    url: str
    slug: str
    price: Decimal = Decimal("0")
    currency: str = DEFAULT_CURRENCY
    image_url: Optional[str] = None
    author: Optional[str] = None
    schema_version: int = SCHEMA_VERSION

    @property
    def natural_key(self) -> str:
        """Upsert key: the source id, or the URL when the listing had none."""
        return self.source_id or self.url


@dataclass
class ProductCondition:
    """A purchasable condition/variant of a product."""

    type: ConditionType
    label: str
    price: Decimal
    available: bool
    variant_id: str = ""
    sku: Optional[str] = None
    stock: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "label": self.label,
            "price": str(self.price),
            "available": self.available,
            "variant_id": self.variant_id,
            "sku": self.sku,
            "stock": self.stock,
        }


@dataclass
class ProductDetailData:
    """Everything read from a rendered product page."""

    source_id: str
    title: str
    url: str
    slug: str
    price: Decimal = Decimal("0")
    currency: str = DEFAULT_CURRENCY
    author: Optional[str] = None
    image_url: Optional[str] = None
    image_urls: list[str] = field(default_factory=list)
    description: Optional[str] = None
    specs: dict[str, str] = field(default_factory=dict)
    conditions: list[ProductCondition] = field(default_factory=list)
    in_stock: bool = True
    rrp: Optional[Decimal] = None
    series: Optional[str] = None
    schema_version: int = SCHEMA_VERSION


@dataclass
class PaginationInfo:
    """Pagination widget state on a listing page."""

    current_page: int = 1
    total_pages: Optional[int] = None
    next_page_url: Optional[str] = None


@dataclass
class RenderedPage:
    """HTML snapshot of a page after the browser finished rendering it."""

    url: str
    html: str
    route_kind: RouteKind
    status_code: Optional[int] = None
    final_url: Optional[str] = None


@dataclass
class ScrapeResult(Generic[T]):
    """Outcome of a scrape: data on success, a classified failure otherwise."""

    success: bool
    url: str
    data: Optional[T] = None
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    scraped_at: Optional[datetime] = None

    def __post_init__(self):
        if self.scraped_at is None:
            self.scraped_at = utcnow()

    @classmethod
    def ok(cls, url: str, data: T) -> "ScrapeResult[T]":
        return cls(success=True, url=url, data=data)

    @classmethod
    def failed(cls, url: str, error: str, kind: FailureKind) -> "ScrapeResult[T]":
        return cls(success=False, url=url, error=error, failure_kind=kind)
