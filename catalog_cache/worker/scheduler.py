"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from catalog_cache.worker.tasks import task_runner
from catalog_cache.config import settings

logger = logging.getLogger(__name__)


def setup_scheduler() -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    One job re-seeds the category list every
    ``settings.category_refresh_interval_hours``. Category and product pages
    themselves are refreshed on read.

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler()
    interval_hours = max(1, int(settings.category_refresh_interval_hours))

    scheduler.add_job(
        task_runner.refresh_categories,
        IntervalTrigger(hours=interval_hours),
        id="category_refresh",
        name="Refresh category list from the home page",
        max_instances=1,  # Prevent overlapping runs
        coalesce=True,
        misfire_grace_time=600,
        replace_existing=True,
    )

    logger.info("Scheduler configured: category refresh every %d hours", interval_hours)
    return scheduler
