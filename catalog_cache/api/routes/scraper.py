"""Scraper passthrough routes: scrape live without touching the cache."""

import dataclasses
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from catalog_cache.api.deps import get_scraper_service
from catalog_cache.api.schemas import Envelope, HealthStatus, ScrapeResultResponse
from catalog_cache.ingest.base import FailureKind, ScrapeResult
from catalog_cache.ingest.scraper import ScraperService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scraper", tags=["scraper"])


def _to_response(result: ScrapeResult) -> Envelope[ScrapeResultResponse]:
    """Raise for a failed scrape, wrap a successful one."""
    if not result.success:
        status_code = 403 if result.failure_kind == FailureKind.POLICY else 502
        raise HTTPException(status_code=status_code, detail=result.error or "Scraping failed")

    data = result.data
    if isinstance(data, list):
        data = [dataclasses.asdict(item) for item in data]
    elif dataclasses.is_dataclass(data):
        data = dataclasses.asdict(data)

    return Envelope(
        data=ScrapeResultResponse(
            success=True,
            url=result.url,
            data=data,
            scraped_at=result.scraped_at,
        )
    )


@router.get("/health", response_model=Envelope[HealthStatus])
async def health_check(scraper: ScraperService = Depends(get_scraper_service)):
    """Check that the upstream home page can be scraped."""
    return Envelope(data=HealthStatus(**await scraper.health_check()))


@router.get("/categories", response_model=Envelope[ScrapeResultResponse])
async def scrape_categories(scraper: ScraperService = Depends(get_scraper_service)):
    return _to_response(await scraper.scrape_categories())


@router.get("/categories/{slug}", response_model=Envelope[ScrapeResultResponse])
async def scrape_category(
    slug: str,
    page: Optional[int] = Query(None, ge=1),
    scraper: ScraperService = Depends(get_scraper_service),
):
    return _to_response(await scraper.scrape_category(slug, page))


@router.get("/products/{slug}", response_model=Envelope[ScrapeResultResponse])
async def scrape_product(slug: str, scraper: ScraperService = Depends(get_scraper_service)):
    return _to_response(await scraper.scrape_product(slug))
