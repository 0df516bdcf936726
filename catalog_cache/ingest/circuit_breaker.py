"""
Circuit breaker for the upstream site.

After repeated failures the circuit opens and fetches fail fast instead of
hammering a site that is blocking or down. Once the recovery window has
passed a single trial fetch is let through (half-open); its outcome closes or
re-opens the circuit.
"""

import logging
import time
from enum import Enum
from typing import Optional

from catalog_cache.config import settings
from catalog_cache.ingest.errors import BlockedError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls immediately
    HALF_OPEN = "half_open"  # Testing if upstream recovered


class CircuitOpenError(BlockedError):
    """Raised instead of fetching while the circuit is open."""

    retryable = False

    def __init__(self, url: str, last_error: Optional[str] = None):
        super().__init__(url, f"Circuit open, last error: {last_error or 'unknown'}")
        self.last_error = last_error


class CircuitBreaker:
    """Consecutive-failure circuit breaker for a single upstream."""

    def __init__(
        self,
        failure_threshold: int = None,
        recovery_seconds: float = None,
    ):
        self.failure_threshold = failure_threshold or settings.circuit_breaker_failure_threshold
        self.recovery_seconds = (
            recovery_seconds if recovery_seconds is not None else settings.circuit_breaker_recovery_seconds
        )
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self.last_error: Optional[str] = None

    def before_call(self, url: str) -> None:
        """
        Gate a fetch.

        Raises:
            CircuitOpenError: If the circuit is open and still cooling down
        """
        if self.state == CircuitState.OPEN:
            if time.monotonic() - (self.opened_at or 0.0) >= self.recovery_seconds:
                logger.info("Circuit half-open, allowing trial request")
                self.state = CircuitState.HALF_OPEN
            else:
                raise CircuitOpenError(url, self.last_error)

    def record_success(self) -> None:
        if self.state != CircuitState.CLOSED:
            logger.info("Circuit closed after successful request")
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at = None

    def record_failure(self, error: str) -> None:
        self.failure_count += 1
        self.last_error = error

        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(
                    f"Circuit opened after {self.failure_count} failures "
                    f"(recovery in {self.recovery_seconds:.0f}s): {error}"
                )
            self.state = CircuitState.OPEN
            self.opened_at = time.monotonic()

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN
