"""FastAPI dependencies and service wiring."""

from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_cache.catalog.freshness import StalenessConfig
from catalog_cache.catalog.inflight import InflightRegistry
from catalog_cache.catalog.service import CatalogService
from catalog_cache.config import settings
from catalog_cache.ingest.browser import BrowserConfig, PlaywrightTransport
from catalog_cache.ingest.scraper import ScraperConfig, ScraperService


@dataclass
class Services:
    """Long-lived objects shared by every request."""

    transport: PlaywrightTransport
    scraper: ScraperService
    catalog: CatalogService

    async def close(self) -> None:
        await self.transport.close()


def build_services(session_factory: async_sessionmaker[AsyncSession]) -> Services:
    """Build the scraper and catalog services from settings."""
    scraper_config = ScraperConfig.from_settings()
    transport = PlaywrightTransport(
        config=BrowserConfig.from_settings(),
        url_policy=scraper_config.url_policy,
    )
    scraper = ScraperService(transport, scraper_config)
    catalog = CatalogService(
        session_factory,
        scraper,
        staleness=StalenessConfig.from_settings(settings),
        inflight=InflightRegistry(grace_seconds=settings.refresh_grace_seconds),
    )
    return Services(transport=transport, scraper=scraper, catalog=catalog)


def get_catalog_service(request: Request) -> CatalogService:
    return request.app.state.services.catalog


def get_scraper_service(request: Request) -> ScraperService:
    return request.app.state.services.scraper
