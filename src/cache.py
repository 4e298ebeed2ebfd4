"""
Visited-URL cache shared by the crawl rules of every domain.
"""

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Set


class VisitedCache(ABC):
    """Per-domain set membership store."""

    @abstractmethod
    def set(self, domain: str, url: str) -> None:
        """Mark `url` as seen under `domain`."""

    @abstractmethod
    def contains(self, domain: str, url: str) -> bool:
        """Whether `url` was already seen under `domain`."""


class MemoryCache(VisitedCache):
    """In-process cache, safe to share between workers and threads."""

    def __init__(self):
        self._seen: Dict[str, Set[str]] = defaultdict(set)
        self._lock = threading.Lock()

    def set(self, domain: str, url: str) -> None:
        with self._lock:
            self._seen[domain].add(url)

    def contains(self, domain: str, url: str) -> bool:
        with self._lock:
            return url in self._seen.get(domain, ())

    def size(self, domain: str) -> int:
        with self._lock:
            return len(self._seen.get(domain, ()))
