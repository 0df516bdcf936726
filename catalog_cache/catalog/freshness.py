"""Freshness classification for cached catalog entries."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from catalog_cache.config import Settings


class Freshness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    MISSING = "missing"


@dataclass(frozen=True)
class StalenessConfig:
    """Maximum ages before categories and products are re-scraped."""

    category_max_age: timedelta = timedelta(hours=24)
    product_max_age: timedelta = timedelta(hours=24)

    @classmethod
    def from_settings(cls, settings: Settings) -> "StalenessConfig":
        return cls(
            category_max_age=timedelta(hours=settings.category_max_age_hours),
            product_max_age=timedelta(hours=settings.product_max_age_hours),
        )


def classify(
    record_exists: bool,
    last_scraped_at: Optional[datetime],
    max_age: timedelta,
    now: datetime,
) -> Freshness:
    """
    Classify a cached entry.

    An entry exactly ``max_age`` old is still fresh; a missing timestamp is
    always stale.
    """
    if not record_exists:
        return Freshness.MISSING
    if last_scraped_at is None:
        return Freshness.STALE
    if now - last_scraped_at > max_age:
        return Freshness.STALE
    return Freshness.FRESH
