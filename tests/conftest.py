import asyncio
import time
from typing import Dict, List, Optional

import pytest

from config import CrawlerSettings
from fetcher import FetchError, LinkFetcher, Response


class FakeFetcher(LinkFetcher):
    """
    Deterministic fetcher for crawler tests.

    `pages` maps URL -> list of links, `robots` maps a robots.txt URL to its
    body. `failures` maps URL -> exception raised from fetch_links. `latency`
    is the elapsed time reported (and slept) for every page.
    """

    def __init__(self, pages: Optional[Dict[str, List[str]]] = None,
                 robots: Optional[Dict[str, str]] = None,
                 failures: Optional[Dict[str, Exception]] = None,
                 latency: float = 0.0,
                 default_links: Optional[List[str]] = None):
        self.pages = pages or {}
        self.robots = robots or {}
        self.failures = failures or {}
        self.latency = latency
        self.default_links = default_links
        self.fetched: List[str] = []
        self.fetch_times: Dict[str, float] = {}
        self.robots_requests: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def fetch(self, url: str):
        self.robots_requests.append(url)
        if url in self.robots:
            return 0.0, Response(url=url, status=200,
                                 headers={"Content-Type": "text/plain"}, text=self.robots[url])
        return 0.0, Response(url=url, status=404, headers={}, text="")

    async def fetch_links(self, url: str):
        self.fetched.append(url)
        self.fetch_times[url] = time.monotonic()
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            if url in self.failures:
                raise self.failures[url]
            if url in self.pages:
                return self.latency, list(self.pages[url])
            if self.default_links is not None:
                return self.latency, list(self.default_links)
            raise FetchError(url, "HTTP 404", elapsed=self.latency, status=404)
        finally:
            self.in_flight -= 1

    async def close(self):
        self.closed = True


class HangingFetcher(FakeFetcher):
    """Every page fetch after the seed blocks until the fetch timeout."""

    def __init__(self, seed: str, links: List[str]):
        super().__init__(pages={seed: links})
        self.seed = seed

    async def fetch_links(self, url: str):
        if url == self.seed:
            return await super().fetch_links(url)
        self.fetched.append(url)
        await asyncio.sleep(3600)


@pytest.fixture
def fast_settings():
    """Settings with no politeness delay and short timeouts."""
    return CrawlerSettings(
        fetch_timeout=1.0,
        crawl_timeout=2.0,
        concurrency=4,
        max_depth=16,
        user_agent="TestBot/1.0",
        politeness_delay=0.0,
    )


