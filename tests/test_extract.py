"""Tests for World of Books HTML extraction."""

from decimal import Decimal

from selectolax.parser import HTMLParser

from catalog_cache.ingest.base import ConditionType
from catalog_cache.ingest.extract import (
    attr,
    extract_categories,
    extract_pagination,
    extract_product_detail,
    extract_product_list,
    extract_slug,
    first_of,
    normalize_condition,
    parse_price_text,
    text,
    to_absolute_url,
)
from pages import category_tile, home_page, listing_page, product_card, product_page

BASE = "https://www.worldofbooks.com"


class TestPriceParsing:
    """Tests for human-readable price parsing."""

    def test_pound_price(self):
        assert parse_price_text("£8.99") == (Decimal("8.99"), "GBP")

    def test_dollar_price(self):
        assert parse_price_text("$12.50") == (Decimal("12.50"), "USD")

    def test_comma_decimal_takes_leading_integer(self):
        assert parse_price_text("€8,99") == (Decimal("8"), "EUR")

    def test_grouping_comma_before_dot_decimal(self):
        assert parse_price_text("£1,299.00") == (Decimal("1299.00"), "GBP")

    def test_grouped_integer_without_decimal(self):
        assert parse_price_text("£1,299") == (Decimal("1"), "GBP")

    def test_no_price_signal(self):
        assert parse_price_text(None) == (Decimal("0"), "GBP")
        assert parse_price_text("") == (Decimal("0"), "GBP")

    def test_text_without_digits(self):
        assert parse_price_text("Free") == (Decimal("0"), "GBP")


class TestUrlHelpers:
    """Tests for URL normalization and slug extraction."""

    def test_root_relative_url(self):
        href = "/en-gb/product/foo-123?x=1#y"
        assert to_absolute_url(href, BASE) == f"{BASE}/en-gb/product/foo-123?x=1#y"
        assert extract_slug(href) == "foo-123"

    def test_protocol_relative_url(self):
        assert to_absolute_url("//cdn.example.com/a.jpg", BASE) == "https://cdn.example.com/a.jpg"

    def test_absolute_url_untouched(self):
        assert to_absolute_url("http://other.example.com/x", BASE) == "http://other.example.com/x"

    def test_bare_path_gets_leading_slash(self):
        assert to_absolute_url("en-gb/collections/fiction", BASE) == f"{BASE}/en-gb/collections/fiction"

    def test_empty_url(self):
        assert to_absolute_url(None, BASE) == ""
        assert to_absolute_url("", BASE) == ""

    def test_slug_ignores_trailing_slash(self):
        assert extract_slug("/en-gb/collections/fiction/") == "fiction"

    def test_slug_of_bare_origin(self):
        assert extract_slug("https://www.worldofbooks.com") == ""
        assert extract_slug("https://www.worldofbooks.com/") == ""


class TestStrategies:
    """Tests for the ordered-strategy combinator."""

    def test_first_non_empty_strategy_wins(self):
        node = HTMLParser('<div><a data-name="" href="/x">Link text</a></div>').body
        value = first_of(node, (attr("a", "data-name"), text("a"), text("h1")))
        assert value == "Link text"

    def test_default_when_nothing_matches(self):
        node = HTMLParser("<div></div>").body
        assert first_of(node, (attr("a", "href"), text("h1")), "fallback") == "fallback"


class TestExtractProductList:
    """Tests for category listing extraction."""

    def test_valid_card(self):
        html = listing_page(product_card(
            "9780261102217",
            "The Hobbit",
            "/en-gb/products/the-hobbit",
            price="8.99",
            author="J. R. R. Tolkien",
            image="//cdn.example.com/hobbit.jpg",
        ))

        items = extract_product_list(html, BASE)

        assert len(items) == 1
        item = items[0]
        assert item.source_id == "9780261102217"
        assert item.title == "The Hobbit"
        assert item.url == f"{BASE}/en-gb/products/the-hobbit"
        assert item.slug == "the-hobbit"
        assert item.price == Decimal("8.99")
        assert item.currency == "GBP"
        assert item.author == "J. R. R. Tolkien"
        assert item.image_url == "https://cdn.example.com/hobbit.jpg"

    def test_price_falls_back_to_visible_text(self):
        card = product_card("1", "Dune", "/en-gb/products/dune", price=None).replace(
            "</a>", '</a><span class="price-item">$4.50</span>'
        )

        item = extract_product_list(listing_page(card), BASE)[0]

        assert item.price == Decimal("4.50")
        assert item.currency == "USD"

    def test_title_falls_back_to_link_text(self):
        card = product_card("1", "Dune", "/en-gb/products/dune").replace(' data-item_name="Dune"', "")
        assert extract_product_list(listing_page(card), BASE)[0].title == "Dune"

    def test_source_id_falls_back_to_card(self):
        card = product_card("42", "Dune", "/en-gb/products/dune").replace(
            'data-item_id="42"', 'data-item_id=""'
        )

        item = extract_product_list(listing_page(card), BASE)[0]

        assert item.source_id == "42"
        assert item.natural_key == "42"

    def test_invalid_cards_are_dropped(self):
        html = listing_page(
            product_card("1", "Valid", "/en-gb/products/valid"),
            product_card("2", "", "/en-gb/products/untitled"),
            product_card("3", "No Link", ""),
            '<li class="ais-InfiniteHits-item"><div>not a card</div></li>',
        )

        items = extract_product_list(html, BASE)

        assert [item.slug for item in items] == ["valid"]

    def test_malformed_html_yields_empty_list(self):
        assert extract_product_list("<<<not html", BASE) == []
        assert extract_product_list("", BASE) == []


class TestExtractCategories:
    """Tests for home page category extraction."""

    def test_categories(self):
        html = home_page(
            category_tile("Fiction", "/en-gb/collections/fiction-books", caption="Novels and more"),
            category_tile("Children's", "/en-gb/collections/childrens-books"),
        )

        categories = extract_categories(html, BASE)

        assert [c.slug for c in categories] == ["fiction-books", "childrens-books"]
        fiction = categories[0]
        assert fiction.title == "Fiction"
        assert fiction.url == f"{BASE}/en-gb/collections/fiction-books"
        assert fiction.image_url == f"{BASE}/img/large.jpg"
        assert fiction.description == "Novels and more"
        assert categories[1].description is None

    def test_tile_without_link_is_skipped(self):
        html = home_page(
            category_tile("Fiction", "/en-gb/collections/fiction-books"),
            '<li class="collection-list__item"><div class="card">No link</div></li>',
        )
        assert len(extract_categories(html, BASE)) == 1


class TestExtractProductDetail:
    """Tests for product page extraction."""

    def test_full_page(self):
        url = f"{BASE}/en-gb/products/the-hobbit"

        detail = extract_product_detail(product_page(), url, BASE)

        assert detail is not None
        assert detail.source_id == "9780261102217"
        assert detail.title == "The Hobbit"
        assert detail.author == "J. R. R. Tolkien"
        assert detail.slug == "the-hobbit"
        assert detail.url == url
        assert detail.price == Decimal("8.99")
        assert detail.currency == "GBP"
        assert detail.image_url == "https://cdn.example.com/main.jpg"
        assert detail.image_urls == ["https://cdn.example.com/a.jpg", f"{BASE}/images/b.jpg"]
        assert detail.description == "A great adventure."
        assert detail.specs == {"ISBN": "9780261102217", "Pages": "320"}
        assert detail.rrp == Decimal("14.99")
        assert detail.series == "Middle-earth"
        assert detail.in_stock is True

    def test_conditions(self):
        detail = extract_product_detail(product_page(), f"{BASE}/en-gb/products/the-hobbit", BASE)

        very_good, like_new, good = detail.conditions
        assert very_good.type == ConditionType.VERY_GOOD
        assert very_good.label == "Very Good"
        assert very_good.price == Decimal("8.99")
        assert very_good.available is True
        assert very_good.stock == 3
        assert very_good.sku == "SKU-VG"
        assert very_good.variant_id == "111"

        assert like_new.type == ConditionType.LIKE_NEW
        assert like_new.available is False

        assert good.type == ConditionType.GOOD
        assert good.label == "Good"
        assert good.available is False

    def test_page_without_condition_widgets(self):
        detail = extract_product_detail(
            product_page(price="£5.00", conditions=False),
            f"{BASE}/en-gb/products/the-hobbit",
            BASE,
        )

        assert len(detail.conditions) == 1
        condition = detail.conditions[0]
        assert condition.type == ConditionType.UNKNOWN
        assert condition.label == "Standard"
        assert condition.price == Decimal("5.00")
        assert condition.available is True

    def test_page_without_title(self):
        html = "<html><body><div class='price'>£5.00</div></body></html>"
        assert extract_product_detail(html, f"{BASE}/en-gb/products/x", BASE) is None

    def test_url_without_slug(self):
        assert extract_product_detail(product_page(), BASE, BASE) is None

    def test_normalize_condition(self):
        assert normalize_condition("New") == ConditionType.NEW
        assert normalize_condition("like-new") == ConditionType.LIKE_NEW
        assert normalize_condition("Very Good") == ConditionType.VERY_GOOD
        assert normalize_condition("good") == ConditionType.GOOD
        assert normalize_condition("Acceptable") == ConditionType.ACCEPTABLE
        assert normalize_condition("Signed") == ConditionType.UNKNOWN


class TestExtractPagination:
    """Tests for the listing pagination widget."""

    def test_pagination(self):
        html = (
            "<html><body><nav class='pagination' aria-label='Pagination'>"
            "<a href='?page=1'>1</a>"
            "<span aria-current='page'>2</span>"
            "<a href='/en-gb/collections/fiction?page=3'>3</a>"
            "<a rel='next' href='/en-gb/collections/fiction?page=3'>Next</a>"
            "</nav></body></html>"
        )

        info = extract_pagination(html, f"{BASE}/en-gb/collections/fiction?page=2")

        assert info.current_page == 2
        assert info.total_pages == 3
        assert info.next_page_url == f"{BASE}/en-gb/collections/fiction?page=3"

    def test_no_widget(self):
        info = extract_pagination("<html><body></body></html>")
        assert info.current_page == 1
        assert info.total_pages is None
        assert info.next_page_url is None
