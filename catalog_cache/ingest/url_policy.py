"""Allow/deny URL rules checked before every fetch."""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Pattern

logger = logging.getLogger(__name__)

# Paths and query shapes the site's robots.txt asks crawlers to avoid
DEFAULT_BLOCKED_PATTERNS = [
    r"/search(?:$|\?|/)",
    r"/cart(?:$|\?|/)",
    r"/checkout(?:$|\?|/)",
    r"/account(?:$|\?|/)",
    r"/admin(?:$|\?|/)",
    r"[?&]sort_by=",
    r"/collections/[^?]*\+",  # literal + in collection path
    r"/collections/[^?]*%2[Bb]",  # encoded +
    r"[?&]filter[^&]*&[^&]*filter",  # stacked filter params
    r"/recommendations/products",
    r"-[a-f0-9]{8}-remote",
]


def _compile(patterns: Iterable[str | Pattern]) -> list[Pattern]:
    compiled = []
    for pattern in patterns:
        if isinstance(pattern, str):
            pattern = re.compile(pattern, re.IGNORECASE)
        compiled.append(pattern)
    return compiled


@dataclass
class UrlPolicy:
    """
    URL admissibility rules.

    A URL is allowed when it matches none of the blocked patterns and, if any
    allowed patterns are configured, at least one of them.
    """

    blocked_patterns: list[Pattern] = field(default_factory=lambda: _compile(DEFAULT_BLOCKED_PATTERNS))
    allowed_patterns: list[Pattern] = field(default_factory=list)

    @classmethod
    def from_patterns(
        cls,
        blocked: Iterable[str | Pattern] = DEFAULT_BLOCKED_PATTERNS,
        allowed: Iterable[str | Pattern] = (),
    ) -> "UrlPolicy":
        return cls(blocked_patterns=_compile(blocked), allowed_patterns=_compile(allowed))

    def is_url_allowed(self, url: str) -> bool:
        for pattern in self.blocked_patterns:
            if pattern.search(url):
                logger.debug("URL blocked by pattern %s: %s", pattern.pattern, url)
                return False

        if self.allowed_patterns and not any(p.search(url) for p in self.allowed_patterns):
            logger.debug("URL not in allow list: %s", url)
            return False

        return True
