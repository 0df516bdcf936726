"""HTML extraction for World of Books pages.

Pure functions: rendered HTML in, typed records out. Nothing here performs
I/O or raises on malformed markup. Every field is read by an ordered tuple of
strategies (preferred attribute, then visible text, then a default) that
``first_of`` evaluates until one yields a non-empty value.

Listing pages are Algolia InstantSearch powered: each product is an
``li.ais-InfiniteHits-item`` wrapping a ``.card[data-product-id]``.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, Optional
from urllib.parse import urlsplit

from selectolax.parser import HTMLParser, Node

from catalog_cache.ingest.base import (
    DEFAULT_CURRENCY,
    CategoryData,
    ConditionType,
    PaginationInfo,
    ProductCondition,
    ProductDetailData,
    ProductListItem,
)
from catalog_cache import metrics

logger = logging.getLogger(__name__)

BASE_URL = "https://www.worldofbooks.com"

# A strategy reads one candidate value from a node, or returns None
Strategy = Callable[[Node], Optional[str]]

CURRENCY_SYMBOLS = [
    ("$", "USD"),
    ("€", "EUR"),
    ("£", "GBP"),
]

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
# Grouping comma, only when a dot decimal follows the groups ("1,299.00")
_THOUSANDS_RE = re.compile(r"(?<=\d),(?=\d{3}(?:,\d{3})*\.\d)")
_WHITESPACE_RE = re.compile(r"\s+")
_BY_PREFIX_RE = re.compile(r"^by\s*", re.IGNORECASE)


# =============================================================================
# Strategy combinator
# =============================================================================

def _clean_text(node: Node) -> str:
    """Visible text of a node with whitespace collapsed."""
    return _WHITESPACE_RE.sub(" ", node.text(deep=True, separator=" ")).strip()


def attr(selector: Optional[str], name: str) -> Strategy:
    """Read attribute ``name`` from the first match of ``selector`` (or the node itself)."""

    def read(node: Node) -> Optional[str]:
        target = node.css_first(selector) if selector else node
        if target is None:
            return None
        value = target.attributes.get(name)
        return value.strip() if value else None

    return read


def text(selector: Optional[str]) -> Strategy:
    """Read the visible text of the first match of ``selector`` (or the node itself)."""

    def read(node: Node) -> Optional[str]:
        target = node.css_first(selector) if selector else node
        if target is None:
            return None
        return _clean_text(target) or None

    return read


def first_of(node: Node, strategies: Iterable[Strategy], default=None):
    """Evaluate strategies in order; the first non-empty value wins."""
    for strategy in strategies:
        value = strategy(node)
        if value:
            return value
    return default


def _first_node(node: Node, selectors: Iterable[str]) -> Optional[Node]:
    for selector in selectors:
        found = node.css_first(selector)
        if found is not None:
            return found
    return None


# =============================================================================
# Value normalization
# =============================================================================

def parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    """Parse the first integer or dot-decimal number in ``value``; ``"8,99"`` gives 8."""
    if not value:
        return None
    match = _NUMBER_RE.search(_THOUSANDS_RE.sub("", value))
    if not match:
        return None
    try:
        return Decimal(match.group())
    except InvalidOperation:
        logger.debug("Failed to parse number: %s", value)
        return None


def detect_currency(price_text: str) -> str:
    for symbol, code in CURRENCY_SYMBOLS:
        if symbol in price_text:
            return code
    return DEFAULT_CURRENCY


def parse_price_text(price_text: Optional[str]) -> tuple[Decimal, str]:
    """
    Parse a human-readable price such as ``"£8.99"``.

    Returns:
        (price, currency); ``(0, "GBP")`` when there is no price signal
    """
    if not price_text:
        return Decimal("0"), DEFAULT_CURRENCY
    price = parse_decimal(price_text)
    return (price if price is not None else Decimal("0")), detect_currency(price_text)


def to_absolute_url(url: Optional[str], base_url: str = BASE_URL) -> str:
    """Resolve absolute, protocol-relative and root-relative URLs against the site origin."""
    if not url:
        return ""
    url = url.strip()
    if url.startswith(("http://", "https://")):
        return url
    if url.startswith("//"):
        return f"https:{url}"
    path = url if url.startswith("/") else f"/{url}"
    return f"{base_url.rstrip('/')}{path}"


def extract_slug(url_or_path: Optional[str]) -> str:
    """Last non-empty path segment, ignoring query string and fragment."""
    if not url_or_path:
        return ""
    path = urlsplit(url_or_path.strip()).path
    parts = [part for part in path.split("/") if part]
    return parts[-1] if parts else ""


def _image_from_srcset(srcset: str) -> Optional[str]:
    """Pick the last (largest) candidate of a srcset."""
    sources = [s.strip() for s in srcset.split(",") if s.strip()]
    if not sources:
        return None
    return sources[-1].split(" ")[0] or None


# =============================================================================
# Product listing
# =============================================================================

PRODUCT_ITEM = "li.ais-InfiniteHits-item"
PRODUCT_CARD = ".card[data-product-id]"
PRODUCT_LINK = "a.product-card[data-item_id], a.full-unstyled-link[data-item_id]"

LIST_SOURCE_ID: tuple[Strategy, ...] = (
    attr(PRODUCT_LINK, "data-item_id"),
    attr(PRODUCT_CARD, "data-product-id"),
)
LIST_TITLE: tuple[Strategy, ...] = (
    attr(PRODUCT_LINK, "data-item_name"),
    text(PRODUCT_LINK),
    text(".card__heading"),
)
LIST_HREF: tuple[Strategy, ...] = (attr(PRODUCT_LINK, "href"),)
LIST_AUTHOR: tuple[Strategy, ...] = (text("p.author"), text(".author"))
LIST_PRICE_ATTR: tuple[Strategy, ...] = (attr(PRODUCT_LINK, "data-price"),)
LIST_PRICE_TEXT: tuple[Strategy, ...] = (text(".price-item"),)
LIST_IMAGE: tuple[Strategy, ...] = (attr(".card__inner img", "src"),)


def _extract_list_price(item: Node) -> tuple[Decimal, str]:
    # data-price is numeric and already in major units
    price = parse_decimal(first_of(item, LIST_PRICE_ATTR))
    if price is not None:
        return price, DEFAULT_CURRENCY
    return parse_price_text(first_of(item, LIST_PRICE_TEXT))


def extract_product_item(item: Node, base_url: str = BASE_URL) -> Optional[ProductListItem]:
    """Extract one listing card; None when it lacks a title, URL or slug."""
    if item.css_first(PRODUCT_CARD) is None:
        return None

    title = first_of(item, LIST_TITLE, "")
    href = first_of(item, LIST_HREF, "")
    url = to_absolute_url(href, base_url)
    slug = extract_slug(href)

    if not title or not url or not slug:
        return None

    price, currency = _extract_list_price(item)
    image_src = first_of(item, LIST_IMAGE)

    return ProductListItem(
        source_id=first_of(item, LIST_SOURCE_ID, ""),
        title=title,
        url=url,
        slug=slug,
        price=price,
        currency=currency,
        image_url=to_absolute_url(image_src, base_url) if image_src else None,
        author=first_of(item, LIST_AUTHOR),
    )


def extract_product_list(html: str, base_url: str = BASE_URL) -> list[ProductListItem]:
    """
    Parse a category page into product list items.

    Never raises on malformed markup: invalid cards are skipped and counted,
    and the valid subset (possibly empty) is returned.
    """
    if not html:
        return []

    parser = HTMLParser(html)
    products: list[ProductListItem] = []
    skipped = 0

    for item in parser.css(PRODUCT_ITEM):
        try:
            product = extract_product_item(item, base_url)
        except Exception as e:
            logger.debug(f"Failed to parse product card: {e}")
            product = None

        if product is None:
            skipped += 1
            continue
        products.append(product)

    if skipped:
        metrics.extraction_skipped_total.labels(kind="product_list_item").inc(skipped)

    logger.debug("Parsed %d products from HTML (%d skipped)", len(products), skipped)
    return products


# =============================================================================
# Home page categories
# =============================================================================

CATEGORY_ITEM = "section.section-collection-list li.collection-list__item"
CATEGORY_LINK_SELECTORS = (
    "h3.card__heading a.full-unstyled-link",
    ".card__information h3.card__heading a",
    "a[href*='/collections/']",
)


def extract_categories(html: str, base_url: str = BASE_URL) -> list[CategoryData]:
    """Parse the home page collection list into categories."""
    if not html:
        return []

    parser = HTMLParser(html)
    categories: list[CategoryData] = []
    skipped = 0

    for item in parser.css(CATEGORY_ITEM):
        link = _first_node(item, CATEGORY_LINK_SELECTORS)
        href = (link.attributes.get("href") or "").strip() if link is not None else ""
        title = _clean_text(link) if link is not None else ""
        slug = extract_slug(href)
        url = to_absolute_url(href, base_url)

        if not title or not url or not slug:
            skipped += 1
            continue

        image_url = None
        img = item.css_first(".card__media img")
        if img is not None:
            image_src = _image_from_srcset(img.attributes.get("srcset") or "") or img.attributes.get("src")
            image_url = to_absolute_url(image_src, base_url) if image_src else None

        categories.append(CategoryData(
            title=title,
            url=url,
            slug=slug,
            image_url=image_url,
            description=first_of(item, (text(".card__caption"),)),
        ))

    if skipped:
        metrics.extraction_skipped_total.labels(kind="category").inc(skipped)

    logger.debug("Parsed %d categories from HTML (%d skipped)", len(categories), skipped)
    return categories


# =============================================================================
# Product detail
# =============================================================================

DETAIL_SOURCE_ID: tuple[Strategy, ...] = (
    attr("form[id*='product-form'] input[name='product-id']", "value"),
    attr("[data-product-id]", "data-product-id"),
    attr("product-info", "data-product-id"),
)
DETAIL_AUTHOR: tuple[Strategy, ...] = (text(".author-item a"), text(".author-item"))
DETAIL_PRICE_TEXT: tuple[Strategy, ...] = (
    text(".price-item--regular"),
    text(".price-item"),
)
DETAIL_IMAGE: tuple[Strategy, ...] = (
    attr(".product__media img", "src"),
    attr(".product-media img", "src"),
    attr("media-gallery img", "src"),
)
DETAIL_DESCRIPTION: tuple[Strategy, ...] = (
    text(".product__description"),
    text("[class*='product-description']"),
    text(".rte"),
)
DETAIL_SERIES: tuple[Strategy, ...] = (
    text(".series-block a"),
    text("[class*='series'] a"),
)
DETAIL_RRP: tuple[Strategy, ...] = (attr("input[data-rrp]", "data-rrp"),)

GALLERY_IMAGES = ".product__media-list img, media-gallery img"
SPEC_ROWS = ".product-specifications tr, .product-specs li, [class*='spec'] tr"
CONDITION_INPUTS = (
    ".condition-selector-container input[type='radio'], "
    ".variants-selector input[name='condition']"
)
ADD_TO_CART = ".product-form__submit, button[name='add']"
SOLD_OUT = ".sold-out, .out-of-stock, [class*='sold-out']"


def normalize_condition(value: str) -> ConditionType:
    """Map the site's condition labels onto ConditionType."""
    normalized = re.sub(r"[\s-]", "_", value.strip().lower())
    if normalized == "new":
        return ConditionType.NEW
    if "like" in normalized:
        return ConditionType.LIKE_NEW
    if "very" in normalized:
        return ConditionType.VERY_GOOD
    if normalized == "good":
        return ConditionType.GOOD
    if "accept" in normalized:
        return ConditionType.ACCEPTABLE
    return ConditionType.UNKNOWN


def _minor_units(value: Optional[str]) -> Optional[Decimal]:
    """Convert a pence/cents attribute into major units."""
    amount = parse_decimal(value)
    if amount is None:
        return None
    return amount / 100


def _extract_title(root: Node) -> str:
    title_node = _first_node(root, (".product__title h1", "h1"))
    if title_node is None:
        return ""
    # The author is rendered inside the heading
    for author_node in title_node.css(".author-item"):
        author_node.decompose()
    return _clean_text(title_node)


def _extract_specs(root: Node) -> dict[str, str]:
    specs: dict[str, str] = {}
    for row in root.css(SPEC_ROWS):
        label_node = _first_node(row, (".spec-label", "th"))
        value_node = row.css_first(".spec-value")
        cells = row.css("td")
        if label_node is None and cells:
            label_node = cells[0]
        if value_node is None and cells:
            value_node = cells[-1]
        if label_node is None or value_node is None:
            continue

        label = _clean_text(label_node)
        value = _clean_text(value_node)
        if label and value and label != value:
            specs[label] = value
    return specs


def _extract_conditions(root: Node, page_price: Decimal) -> list[ProductCondition]:
    conditions: list[ProductCondition] = []

    for input_node in root.css(CONDITION_INPUTS):
        attrs = input_node.attributes
        condition_value = (attrs.get("data-condition") or "").strip()
        stock_attr = attrs.get("data-stock")
        stock = int(stock_attr) if stock_attr and stock_attr.strip().isdigit() else None
        disabled = "disabled" in attrs

        label = None
        input_id = attrs.get("id")
        if input_id:
            label_node = root.css_first(f"label[for='{input_id}']")
            if label_node is not None:
                label = first_of(label_node, (text("span"), text(None)))

        conditions.append(ProductCondition(
            type=normalize_condition(condition_value),
            label=label or condition_value,
            price=_minor_units(attrs.get("data-price")) or Decimal("0"),
            available=not disabled and (stock is None or stock > 0),
            variant_id=(attrs.get("value") or "").strip(),
            sku=attrs.get("data-sku") or None,
            stock=stock,
        ))

    if not conditions:
        # Pages without variant widgets still expose one purchasable option
        conditions.append(ProductCondition(
            type=ConditionType.UNKNOWN,
            label="Standard",
            price=page_price,
            available=True,
        ))

    return conditions


def _extract_in_stock(root: Node) -> bool:
    button = root.css_first(ADD_TO_CART)
    if button is not None and "disabled" in button.attributes:
        return False
    return root.css_first(SOLD_OUT) is None


def extract_product_detail(
    html: str,
    page_url: str,
    base_url: str = BASE_URL,
) -> Optional[ProductDetailData]:
    """
    Read a rendered product page.

    Args:
        html: DOM snapshot taken after the condition/variant widgets rendered
        page_url: Final URL of the page (the slug is taken from it)
        base_url: Origin for relative links

    Returns:
        ProductDetailData, or None when the page carries no product title
    """
    if not html:
        return None

    root = HTMLParser(html)
    if root.body is None:
        return None
    body = root.body

    # Author must be read before the title strips it out of the heading
    author = first_of(body, DETAIL_AUTHOR)
    if author:
        author = _BY_PREFIX_RE.sub("", author).strip() or None

    title = _extract_title(body)
    slug = extract_slug(page_url)
    if not title or not slug:
        logger.debug("No product found on %s", page_url)
        return None

    price, currency = parse_price_text(first_of(body, DETAIL_PRICE_TEXT))

    image_src = first_of(body, DETAIL_IMAGE)
    image_urls: list[str] = []
    for img in body.css(GALLERY_IMAGES):
        src = img.attributes.get("src")
        if not src:
            continue
        src = to_absolute_url(src, base_url)
        if src not in image_urls:
            image_urls.append(src)

    return ProductDetailData(
        source_id=first_of(body, DETAIL_SOURCE_ID, ""),
        title=title,
        url=page_url,
        slug=slug,
        price=price,
        currency=currency,
        author=author,
        image_url=to_absolute_url(image_src, base_url) if image_src else None,
        image_urls=image_urls,
        description=first_of(body, DETAIL_DESCRIPTION),
        specs=_extract_specs(body),
        conditions=_extract_conditions(body, price),
        in_stock=_extract_in_stock(body),
        rrp=_minor_units(first_of(body, DETAIL_RRP)),
        series=first_of(body, DETAIL_SERIES),
    )


# =============================================================================
# Pagination
# =============================================================================

PAGINATION_CONTAINER = ".pagination, nav[aria-label='Pagination'], [class*='pagination']"


def extract_pagination(html: str, page_url: str = BASE_URL) -> PaginationInfo:
    """Read the pagination widget of a listing page."""
    info = PaginationInfo()
    if not html:
        return info

    container = HTMLParser(html).css_first(PAGINATION_CONTAINER)
    if container is None:
        return info

    current = first_of(container, (
        text("[aria-current='page']"),
        text(".pagination__item--current"),
        text(".current"),
    ))
    if current and current.isdigit():
        info.current_page = int(current)

    next_href = first_of(container, (
        attr("a[rel='next']", "href"),
        attr(".pagination__item--next a", "href"),
    ))
    if next_href:
        parts = urlsplit(page_url)
        origin = f"{parts.scheme}://{parts.netloc}" if parts.netloc else BASE_URL
        info.next_page_url = to_absolute_url(next_href, origin)

    page_numbers = [
        int(label) for label in (_clean_text(link) for link in container.css("a")) if label.isdigit()
    ]
    if page_numbers:
        info.total_pages = max(page_numbers)

    return info
