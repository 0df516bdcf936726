"""HTML builders for World of Books pages used across the tests."""

from typing import Optional


def product_card(
    source_id: str,
    title: str,
    href: str,
    price: Optional[str] = "8.99",
    author: Optional[str] = None,
    image: Optional[str] = None,
) -> str:
    """One ``li.ais-InfiniteHits-item`` as rendered on a collection page."""
    price_attr = f' data-price="{price}"' if price is not None else ""
    name_attr = f' data-item_name="{title}"' if title else ""
    author_html = f'<p class="author">{author}</p>' if author else ""
    image_html = f'<div class="card__inner"><img src="{image}"></div>' if image else ""
    return (
        '<li class="ais-InfiniteHits-item">'
        f'<div class="card" data-product-id="{source_id}">'
        f"{image_html}"
        f'<a class="product-card" data-item_id="{source_id}"{name_attr}{price_attr} href="{href}">{title}</a>'
        f"{author_html}"
        "</div></li>"
    )


def listing_page(*cards: str) -> str:
    return (
        "<html><body><div class='collection'><div id='hits'>"
        f"<ol class='ais-InfiniteHits-list'>{''.join(cards)}</ol>"
        "</div></div></body></html>"
    )


def category_tile(title: str, href: str, caption: Optional[str] = None) -> str:
    caption_html = f'<p class="card__caption">{caption}</p>' if caption else ""
    return (
        '<li class="collection-list__item"><div class="card">'
        '<div class="card__media"><img src="/img/small.jpg" '
        'srcset="/img/small.jpg 165w, /img/large.jpg 360w"></div>'
        '<div class="card__information"><h3 class="card__heading">'
        f'<a class="full-unstyled-link" href="{href}">{title}</a></h3>{caption_html}</div>'
        "</div></li>"
    )


def home_page(*tiles: str) -> str:
    return (
        "<html><body><section class='section-collection-list'><ul>"
        f"{''.join(tiles)}"
        "</ul></section></body></html>"
    )


def product_page(
    title: str = "The Hobbit",
    author: str = "J. R. R. Tolkien",
    price: str = "£8.99",
    source_id: str = "9780261102217",
    conditions: bool = True,
) -> str:
    conditions_html = ""
    if conditions:
        conditions_html = (
            '<div class="condition-selector-container">'
            '<input type="radio" id="cond-1" data-condition="Very Good" data-price="899" '
            'data-stock="3" data-sku="SKU-VG" value="111">'
            '<label for="cond-1"><span>Very Good</span><span>£8.99</span></label>'
            '<input type="radio" id="cond-2" data-condition="Like New" data-price="1299" '
            'data-stock="0" value="222">'
            '<label for="cond-2"><span>Like New</span></label>'
            '<input type="radio" id="cond-3" data-condition="Good" data-price="599" disabled value="333">'
            "</div>"
        )
    return (
        "<html><body><product-info>"
        f'<form id="product-form-main"><input name="product-id" value="{source_id}"></form>'
        '<div class="product__title"><h1>'
        f'{title} <span class="author-item">by <a href="/author">{author}</a></span>'
        "</h1></div>"
        f'<div class="price"><span class="price-item price-item--regular">{price}</span></div>'
        '<div class="product__media"><img src="//cdn.example.com/main.jpg"></div>'
        '<ul class="product__media-list">'
        '<li><img src="//cdn.example.com/a.jpg"></li>'
        '<li><img src="//cdn.example.com/a.jpg"></li>'
        '<li><img src="/images/b.jpg"></li>'
        "</ul>"
        '<div class="product__description"><p>A great   adventure.</p></div>'
        '<table class="product-specifications">'
        "<tr><th>ISBN</th><td>9780261102217</td></tr>"
        "<tr><td>Pages</td><td>320</td></tr>"
        "</table>"
        f"{conditions_html}"
        '<input type="hidden" data-rrp="1499">'
        '<div class="series-block"><a href="/series">Middle-earth</a></div>'
        '<button class="product-form__submit" name="add">Add to basket</button>'
        "</product-info></body></html>"
    )
