"""Prometheus metrics for the catalog cache."""

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("catalog_cache", "Catalog cache application info")
app_info.info({"version": "0.1.0", "name": "wob-catalog-cache"})

# Cache lookups by entity and freshness state
catalog_lookups_total = Counter(
    "catalog_lookups_total",
    "Total number of catalog lookups",
    ["entity", "freshness"],
)

stale_fallbacks_total = Counter(
    "stale_fallbacks_total",
    "Total number of times stale data was served after a failed refresh",
    ["entity"],
)

# Scrape metrics
scrape_requests_total = Counter(
    "scrape_requests_total",
    "Total number of scrape attempts",
    ["route", "status"],
)

scrape_duration_seconds = Histogram(
    "scrape_duration_seconds",
    "Time spent fetching and extracting a page",
    ["route"],
    buckets=[1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 240.0],
)

extraction_skipped_total = Counter(
    "extraction_skipped_total",
    "Total number of records dropped during extraction",
    ["kind"],
)

# Merge metrics
merge_items_total = Counter(
    "merge_items_total",
    "Total number of records written by the merge engine",
    ["entity", "outcome"],
)
