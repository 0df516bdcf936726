"""Politeness pacing for upstream fetches: minimum intervals with jitter, cooldowns, backoff."""

import asyncio
import logging
import random
import time
from collections import defaultdict

from catalog_cache.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """Per-domain minimum interval limiter with jitter and cooldown windows."""

    def __init__(self):
        self.locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.last_request: dict[str, float] = {}
        self.domain_cooldowns: dict[str, float] = {}  # Domain -> cooldown until timestamp

    async def acquire_with_interval(
        self,
        domain: str,
        min_interval: float = None,
        max_interval: float = None,
        jitter: float = None,
    ) -> float:
        """
        Wait until the next request to ``domain`` is allowed.

        Args:
            domain: Domain to rate limit
            min_interval: Minimum seconds between requests (defaults to config)
            max_interval: Maximum seconds between requests (defaults to config)
            jitter: Random jitter range in seconds (+/-)

        Returns:
            Seconds actually waited
        """
        if min_interval is None:
            min_interval = settings.scraper_min_interval_seconds
        if max_interval is None:
            max_interval = settings.scraper_max_interval_seconds
        if jitter is None:
            jitter = settings.scraper_jitter_seconds

        waited = 0.0
        async with self.locks[domain]:
            now = time.monotonic()

            # Check domain cooldown
            cooldown_until = self.domain_cooldowns.get(domain, 0.0)
            if now < cooldown_until:
                wait_time = cooldown_until - now
                logger.debug(f"Domain {domain} in cooldown, waiting {wait_time:.1f}s")
                await asyncio.sleep(wait_time)
                waited += wait_time
                now = time.monotonic()

            last_time = self.last_request.get(domain)
            if last_time is not None:
                interval = random.uniform(min_interval, max(min_interval, max_interval))
                if jitter > 0:
                    interval = max(min_interval, interval + random.uniform(-jitter, jitter))

                wait_needed = max(0.0, interval - (now - last_time))
                if wait_needed > 0:
                    await asyncio.sleep(wait_needed)
                    waited += wait_needed

            self.last_request[domain] = time.monotonic()

        return waited

    def set_cooldown(self, domain: str, seconds: float) -> None:
        """
        Block requests to a domain for ``seconds``.

        Args:
            domain: Domain name
            seconds: Cooldown duration in seconds
        """
        self.domain_cooldowns[domain] = time.monotonic() + seconds
        logger.info(f"Cooldown set for {domain}: {seconds:.0f}s")

    @staticmethod
    def backoff_delay(
        attempt: int,
        base_seconds: float = None,
        max_seconds: float = None,
    ) -> float:
        """Exponential backoff delay for a 1-based attempt number."""
        if base_seconds is None:
            base_seconds = settings.scraper_retry_base_delay_seconds
        if max_seconds is None:
            max_seconds = settings.scraper_retry_max_delay_seconds
        return min(base_seconds * (2 ** (attempt - 1)), max_seconds)


# Global rate limiter instance
rate_limiter = RateLimiter()
