"""Conversions between scraped records, database rows and response models."""

import math
from typing import Any, Iterable, Optional

from catalog_cache.api.schemas import (
    CategorySummary,
    CategoryWithProducts,
    ConditionInfo,
    Pagination,
    ProductDetailInfo,
    ProductPage,
    ProductSummary,
    ProductWithDetail,
)
from catalog_cache.db.models import Category, Product, ProductDetail
from catalog_cache.ingest.base import ProductDetailData


def slug_to_title(slug: str) -> str:
    """``"fiction-books"`` -> ``"Fiction Books"``."""
    return " ".join(word[:1].upper() + word[1:] for word in slug.split("-") if word)


def build_pagination(page: int, limit: int, total_items: int) -> Pagination:
    total_pages = math.ceil(total_items / limit) if limit > 0 else 0
    return Pagination(
        page=page,
        limit=limit,
        total_items=total_items,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )


def product_summary(product: Product, has_detail: bool = False) -> ProductSummary:
    return ProductSummary(
        id=product.id,
        source_id=product.source_id,
        title=product.title,
        author=product.author,
        price=float(product.price),
        currency=product.currency,
        image_url=product.image_url,
        slug=product.slug,
        url=product.source_url,
        has_detail=has_detail,
    )


def product_page(
    products: Iterable[Product],
    page: int,
    limit: int,
    total_items: int,
    detail_ids: Optional[set[int]] = None,
) -> ProductPage:
    detail_ids = detail_ids or set()
    return ProductPage(
        items=[product_summary(p, p.id in detail_ids) for p in products],
        pagination=build_pagination(page, limit, total_items),
    )


def category_with_products(
    category: Category,
    products: Iterable[Product],
    page: int,
    limit: int,
    total_items: int,
    detail_ids: Optional[set[int]] = None,
) -> CategoryWithProducts:
    return CategoryWithProducts(
        category=CategorySummary.model_validate(category),
        products=product_page(products, page, limit, total_items, detail_ids),
    )


def product_with_detail(product: Product, detail: Optional[ProductDetail]) -> ProductWithDetail:
    summary = product_summary(product, has_detail=detail is not None)

    detail_info = None
    image_urls: list[str] = []
    if detail is not None:
        image_urls = list(detail.image_urls or [])
        detail_info = ProductDetailInfo(
            description=detail.description,
            specs={str(k): str(v) for k, v in (detail.specs or {}).items()},
            ratings_avg=detail.ratings_avg,
            reviews_count=detail.reviews_count,
            conditions=[ConditionInfo(**c) for c in (detail.conditions or [])],
            in_stock=detail.in_stock,
            rrp=float(detail.rrp) if detail.rrp is not None else None,
            series=detail.series,
        )
    if not image_urls and product.image_url:
        image_urls = [product.image_url]

    return ProductWithDetail(
        **summary.model_dump(),
        image_urls=image_urls,
        last_scraped_at=product.last_scraped_at,
        detail=detail_info,
    )


def detail_row_fields(detail: ProductDetailData) -> dict[str, Any]:
    """ProductDetail column values for a scraped product page."""
    return {
        "description": detail.description,
        "specs": dict(detail.specs),
        "ratings_avg": None,
        "reviews_count": 0,
        "conditions": [c.to_dict() for c in detail.conditions],
        "image_urls": list(detail.image_urls),
        "in_stock": detail.in_stock,
        "rrp": detail.rrp,
        "series": detail.series,
        "schema_version": detail.schema_version,
    }
