"""
Configuration settings for the polite web crawler.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Optional

# =============================================================================
# CRAWLING DEFAULTS (seconds unless noted)
# =============================================================================

DEFAULT_FETCH_TIMEOUT = 10.0       # Give up on a single URL after this long
DEFAULT_CRAWL_TIMEOUT = 30.0       # Stop the crawl after this long without new links
DEFAULT_POLITENESS_DELAY = 0.5     # Fixed delay used to compute a randomized wait per domain
DEFAULT_DEPTH = 16                 # Maximum depth to crawl from seed URLs (0 = unlimited)
DEFAULT_CONCURRENCY = 8            # Parallel fetches (0 = unbounded)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"

ROBOTS_TIMEOUT = 5.0               # robots.txt gets a shorter leash than pages
IDLE_POLL_INTERVAL = 0.25          # How often the scheduler re-checks the idle timeout

# Connection pool settings
CONNECTION_LIMIT = 100
CONNECTION_LIMIT_PER_HOST = 10
DNS_CACHE_TTL = 300
KEEPALIVE_TIMEOUT = 30

# =============================================================================
# HTTP HEADERS
# =============================================================================

REQUEST_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
}

# =============================================================================
# FILE ENCODING
# =============================================================================

FILE_ENCODING = "utf-8"


class ConfigurationError(ValueError):
    """Raised when crawler settings are missing or invalid."""


@dataclass(frozen=True)
class CrawlerSettings:
    """
    Immutable snapshot of everything a crawl needs.

    A new instance is built per crawl; use `with_overrides` to derive a
    variant instead of mutating.
    """
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    crawl_timeout: float = DEFAULT_CRAWL_TIMEOUT
    concurrency: int = DEFAULT_CONCURRENCY
    max_depth: int = DEFAULT_DEPTH
    user_agent: str = DEFAULT_USER_AGENT
    politeness_delay: float = DEFAULT_POLITENESS_DELAY
    # Link parser handed to the fetcher; None means the default regex parser
    parser: Optional[Any] = field(default=None, compare=False)

    @classmethod
    def default(cls, user_agent: str = DEFAULT_USER_AGENT) -> "CrawlerSettings":
        return cls(user_agent=user_agent)

    def with_overrides(self, **changes) -> "CrawlerSettings":
        """Return a copy with the non-None keyword arguments applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def validate(self) -> "CrawlerSettings":
        if self.fetch_timeout <= 0:
            raise ConfigurationError(f"fetch_timeout must be positive, got {self.fetch_timeout}")
        if self.crawl_timeout <= 0:
            raise ConfigurationError(f"crawl_timeout must be positive, got {self.crawl_timeout}")
        if self.concurrency < 0:
            raise ConfigurationError(f"concurrency must be >= 0, got {self.concurrency}")
        if self.max_depth < 0:
            raise ConfigurationError(f"max_depth must be >= 0, got {self.max_depth}")
        if self.politeness_delay < 0:
            raise ConfigurationError(f"politeness_delay must be >= 0, got {self.politeness_delay}")
        if not self.user_agent or not self.user_agent.strip():
            raise ConfigurationError("user_agent must not be empty")
        return self
