"""Tests for response mapping and pagination math."""

from datetime import datetime
from decimal import Decimal

from catalog_cache.catalog.mapper import (
    build_pagination,
    detail_row_fields,
    product_with_detail,
    slug_to_title,
)
from catalog_cache.db.models import Product, ProductDetail
from catalog_cache.ingest.base import ConditionType, ProductCondition, ProductDetailData


def make_product(**overrides) -> Product:
    fields = dict(
        id=1,
        source_id="9780261102217",
        slug="the-hobbit",
        title="The Hobbit",
        author="J. R. R. Tolkien",
        price=Decimal("8.99"),
        currency="GBP",
        image_url="https://cdn.example.com/hobbit.jpg",
        source_url="https://www.worldofbooks.com/en-gb/products/the-hobbit",
        last_scraped_at=datetime(2024, 6, 1, 12, 0),
    )
    fields.update(overrides)
    return Product(**fields)


class TestPagination:
    def test_middle_page(self):
        pagination = build_pagination(page=2, limit=10, total_items=25)

        assert pagination.total_pages == 3
        assert pagination.has_next_page is True
        assert pagination.has_prev_page is True

    def test_last_page(self):
        pagination = build_pagination(page=3, limit=10, total_items=25)
        assert pagination.has_next_page is False

    def test_first_page(self):
        assert build_pagination(page=1, limit=10, total_items=25).has_prev_page is False

    def test_empty_result(self):
        pagination = build_pagination(page=1, limit=20, total_items=0)

        assert pagination.total_pages == 0
        assert pagination.has_next_page is False
        assert pagination.has_prev_page is False

    def test_exact_multiple(self):
        assert build_pagination(page=1, limit=10, total_items=20).total_pages == 2


def test_slug_to_title():
    assert slug_to_title("fiction-books") == "Fiction Books"
    assert slug_to_title("sci-fi--fantasy") == "Sci Fi Fantasy"


class TestProductWithDetail:
    def test_without_detail_uses_product_image(self):
        response = product_with_detail(make_product(), None)

        assert response.detail is None
        assert response.has_detail is False
        assert response.image_urls == ["https://cdn.example.com/hobbit.jpg"]
        assert response.price == 8.99
        assert response.url == "https://www.worldofbooks.com/en-gb/products/the-hobbit"

    def test_without_any_image(self):
        assert product_with_detail(make_product(image_url=None), None).image_urls == []

    def test_with_detail(self):
        detail = ProductDetail(
            product_id=1,
            description="A great adventure.",
            specs={"Pages": 320},
            ratings_avg=None,
            reviews_count=0,
            conditions=[{
                "type": "very_good",
                "label": "Very Good",
                "price": "8.99",
                "available": True,
                "variant_id": "111",
                "sku": None,
                "stock": 3,
            }],
            image_urls=["https://cdn.example.com/a.jpg"],
            in_stock=True,
            rrp=Decimal("14.99"),
            series="Middle-earth",
        )

        response = product_with_detail(make_product(), detail)

        assert response.has_detail is True
        assert response.image_urls == ["https://cdn.example.com/a.jpg"]
        assert response.detail.specs == {"Pages": "320"}
        assert response.detail.conditions[0].price == 8.99
        assert response.detail.rrp == 14.99
        assert response.detail.series == "Middle-earth"


def test_detail_row_fields():
    detail = ProductDetailData(
        source_id="1",
        title="Dune",
        url="https://www.worldofbooks.com/en-gb/products/dune",
        slug="dune",
        specs={"Pages": "412"},
        conditions=[ProductCondition(ConditionType.GOOD, "Good", Decimal("4.50"), True)],
    )

    fields = detail_row_fields(detail)

    assert fields["ratings_avg"] is None
    assert fields["reviews_count"] == 0
    assert fields["specs"] == {"Pages": "412"}
    assert fields["conditions"] == [{
        "type": "good",
        "label": "Good",
        "price": "4.50",
        "available": True,
        "variant_id": "",
        "sku": None,
        "stock": None,
    }]
