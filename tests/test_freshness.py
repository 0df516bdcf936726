"""Tests for cache freshness classification."""

from datetime import datetime, timedelta

from catalog_cache.catalog.freshness import Freshness, StalenessConfig, classify
from catalog_cache.config import Settings

NOW = datetime(2024, 6, 1, 12, 0, 0)
MAX_AGE = timedelta(hours=24)


class TestClassify:
    def test_missing_record(self):
        assert classify(False, None, MAX_AGE, NOW) == Freshness.MISSING

    def test_missing_wins_over_timestamp(self):
        assert classify(False, NOW, MAX_AGE, NOW) == Freshness.MISSING

    def test_never_scraped_is_stale(self):
        assert classify(True, None, MAX_AGE, NOW) == Freshness.STALE

    def test_just_scraped_is_fresh(self):
        assert classify(True, NOW, MAX_AGE, NOW) == Freshness.FRESH

    def test_exactly_max_age_is_fresh(self):
        assert classify(True, NOW - MAX_AGE, MAX_AGE, NOW) == Freshness.FRESH

    def test_one_millisecond_under_max_age_is_fresh(self):
        scraped = NOW - MAX_AGE + timedelta(milliseconds=1)
        assert classify(True, scraped, MAX_AGE, NOW) == Freshness.FRESH

    def test_one_millisecond_over_max_age_is_stale(self):
        scraped = NOW - MAX_AGE - timedelta(milliseconds=1)
        assert classify(True, scraped, MAX_AGE, NOW) == Freshness.STALE

    def test_zero_max_age(self):
        assert classify(True, NOW, timedelta(0), NOW) == Freshness.FRESH
        assert classify(True, NOW - timedelta(seconds=1), timedelta(0), NOW) == Freshness.STALE


class TestStalenessConfig:
    def test_defaults(self):
        config = StalenessConfig()
        assert config.category_max_age == timedelta(hours=24)
        assert config.product_max_age == timedelta(hours=24)

    def test_from_settings(self):
        config = StalenessConfig.from_settings(
            Settings(category_max_age_hours=6, product_max_age_hours=0.5)
        )
        assert config.category_max_age == timedelta(hours=6)
        assert config.product_max_age == timedelta(minutes=30)
