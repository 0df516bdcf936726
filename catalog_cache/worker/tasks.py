"""Background tasks for keeping the cached catalog warm."""

from typing import Optional

from catalog_cache.catalog.service import CatalogService
from catalog_cache.logging_config import get_logger

logger = get_logger(__name__, component="worker")


class TaskRunner:
    """Runner for scheduled catalog refreshes."""

    def __init__(self):
        self.catalog: Optional[CatalogService] = None

    def initialize(self, catalog: CatalogService) -> None:
        """Attach the catalog service built at startup."""
        self.catalog = catalog
        logger.info("Task runner initialized")

    async def refresh_categories(self) -> bool:
        """Re-scrape the home page category list."""
        if self.catalog is None:
            logger.warning("Task runner not initialized, skipping category refresh")
            return False

        logger.info("Refreshing category list")
        outcome = await self.catalog.seed_categories()
        if outcome.success:
            logger.info("Category list refreshed")
        else:
            logger.warning(f"Category refresh failed ({outcome.failure_kind}): {outcome.error}")
        return outcome.success


# Global task runner instance
task_runner = TaskRunner()
