"""
Per-domain crawl policy: robots.txt eligibility, scope, dedup and the
politeness delay to wait before the next request to a domain.
"""

import random
import threading
from contextlib import contextmanager
from typing import Optional
from urllib.parse import urlparse, ParseResult

from cache import VisitedCache
from robots import Group


class ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


def _as_url(url) -> ParseResult:
    return url if isinstance(url, ParseResult) else urlparse(url)


def same_subdomain(domain, link) -> bool:
    """True if `link` is on the domain's host, or has no host at all."""
    link_host = _as_url(link).hostname
    return not link_host or link_host == _as_url(domain).hostname


def request_uri(url) -> str:
    """Path plus query, the part of a URL robots.txt rules are tested against."""
    parsed = _as_url(url)
    uri = parsed.path or "/"
    if parsed.query:
        uri += "?" + parsed.query
    return uri


def rand_delay(value: float) -> float:
    """Uniform random delay in [0.5 * value, 1.5 * value); 0 stays 0."""
    if value <= 0:
        return 0.0
    low = 0.5 * value
    return low + random.random() * value


class CrawlingRules:
    """
    Crawl policy for a single domain.

    Only `robots_group` and `last_delay` change after construction; both are
    guarded by a read-write lock.
    """

    def __init__(self, base_domain: str, cache: VisitedCache, fixed_delay: float = 0.0):
        self.base_domain = _as_url(base_domain)
        self.domain_key = self.base_domain.geturl()
        self.cache = cache
        self.fixed_delay = fixed_delay
        self._robots_group: Optional[Group] = None
        self._last_delay = 0.0
        self._lock = ReadWriteLock()

    @property
    def robots_group(self) -> Optional[Group]:
        with self._lock.read():
            return self._robots_group

    def install_group(self, group: Optional[Group]):
        """Swap in a freshly parsed robots group (or drop it with None)."""
        with self._lock.write():
            self._robots_group = group

    @property
    def last_delay(self) -> float:
        with self._lock.read():
            return self._last_delay

    def update_last_delay(self, seconds: float):
        """Record the latest observed response time for this domain."""
        with self._lock.write():
            self._last_delay = max(0.0, seconds)

    def allowed(self, url) -> bool:
        """
        Whether `url` may be crawled.

        The first evaluation of a URL marks it visited whatever the outcome,
        so every later call for the same URL returns False. Without a robots
        group every in-scope URL is allowed.
        """
        parsed = _as_url(url)
        key = parsed.geturl()

        if self.cache.contains(self.domain_key, key):
            return False
        self.cache.set(self.domain_key, key)

        group = self.robots_group
        if group is not None:
            return group.test(request_uri(parsed)) and same_subdomain(self.base_domain, parsed)
        return same_subdomain(self.base_domain, parsed)

    def crawl_delay(self) -> float:
        """
        Seconds to wait before the next request to this domain.

        The randomized fixed delay is the floor, a stricter robots.txt
        crawl-delay raises it, and the last observed response time raises it
        further.
        """
        with self._lock.read():
            robots_delay = self._robots_group.crawl_delay if self._robots_group else 0.0
            base = max(rand_delay(self.fixed_delay), robots_delay)
            return max(base, self._last_delay)
