"""Classified fetch failures raised by page transports."""

from typing import Optional

from catalog_cache.ingest.base import FailureKind


class FetchError(RuntimeError):
    """Base class for a failed page fetch."""

    kind: FailureKind = FailureKind.TRANSIENT
    retryable: bool = True

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class BlockedError(FetchError):
    """Raised when the site's bot defenses rejected the request (403, 429, challenge page)."""

    kind = FailureKind.BLOCKED


class FetchTimeoutError(FetchError):
    """Raised when navigation or rendering did not finish in time."""

    kind = FailureKind.TIMEOUT


class PageNotFoundError(FetchError):
    """Raised when the page does not exist (404)."""

    kind = FailureKind.NOT_FOUND
    retryable = False


class TransientFetchError(FetchError):
    """Raised for network and other failures that may succeed later."""

    kind = FailureKind.TRANSIENT


class PolicyBlockedError(FetchError):
    """Raised when a URL is excluded by the allow/deny rules. Never retried."""

    kind = FailureKind.POLICY
    retryable = False

    def __init__(self, url: str):
        super().__init__(url, "blocked by policy")


def classify_status(url: str, status_code: int) -> Optional[FetchError]:
    """Map an HTTP status to a fetch error, or None for a usable response."""
    if status_code < 400:
        return None
    if status_code in (403, 429):
        return BlockedError(url, f"Blocked by target site ({status_code})", status_code)
    if status_code == 404:
        return PageNotFoundError(url, f"404 for {url}", status_code)
    if status_code == 408:
        return FetchTimeoutError(url, f"408 for {url}", status_code)
    return TransientFetchError(url, f"HTTP {status_code} for {url}", status_code)
