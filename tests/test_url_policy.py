"""Tests for URL allow/deny rules."""

import pytest

from catalog_cache.ingest.url_policy import UrlPolicy

BASE = "https://www.worldofbooks.com/en-gb"


class TestDefaultPolicy:
    """The default rules keep crawling on catalog pages."""

    @pytest.fixture
    def policy(self):
        return UrlPolicy()

    @pytest.mark.parametrize("url", [
        BASE,
        f"{BASE}/collections/fiction-books",
        f"{BASE}/collections/fiction-books?page=3",
        f"{BASE}/products/the-hobbit",
    ])
    def test_catalog_pages_allowed(self, policy, url):
        assert policy.is_url_allowed(url)

    @pytest.mark.parametrize("url", [
        f"{BASE}/search?q=tolkien",
        f"{BASE}/cart",
        f"{BASE}/checkout/step-1",
        f"{BASE}/account",
        f"{BASE}/collections/fiction-books?sort_by=price-ascending",
        f"{BASE}/collections/fiction+crime",
        f"{BASE}/collections/fiction%2Bcrime",
        f"{BASE}/collections/fiction?filter.v.price.gte=1&filter.v.price.lte=5",
        f"{BASE}/recommendations/products?product_id=1",
    ])
    def test_disallowed_paths_blocked(self, policy, url):
        assert not policy.is_url_allowed(url)

    def test_single_filter_allowed(self, policy):
        assert policy.is_url_allowed(f"{BASE}/collections/fiction?filter.v.price.gte=1")


class TestCustomPolicy:
    def test_allow_list_restricts(self):
        policy = UrlPolicy.from_patterns(blocked=[], allowed=[r"/collections/"])

        assert policy.is_url_allowed(f"{BASE}/collections/fiction")
        assert not policy.is_url_allowed(f"{BASE}/products/the-hobbit")

    def test_block_wins_over_allow(self):
        policy = UrlPolicy.from_patterns(blocked=[r"/collections/forbidden"], allowed=[r"/collections/"])

        assert not policy.is_url_allowed(f"{BASE}/collections/forbidden")

    def test_patterns_are_case_insensitive(self):
        policy = UrlPolicy.from_patterns(blocked=[r"/cart"])

        assert not policy.is_url_allowed(f"{BASE}/CART")
