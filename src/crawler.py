"""
Async polite web crawler.

Features:
- Per-domain crawl rules (robots.txt, subdomain scope, URL dedup)
- Randomized per-domain politeness delay that adapts to server latency
- Bounded concurrency (or one task per frontier entry when unbounded)
- Depth limit
- Idle timeout: the crawl stops once no page has been fetched for a while,
  even if the frontier keeps growing (e.g. circular links)
- Cooperative cancellation that lets in-flight fetches finish
"""

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple
from urllib.parse import urlparse

from cache import MemoryCache, VisitedCache
from config import (
    DEFAULT_USER_AGENT,
    IDLE_POLL_INTERVAL,
    ROBOTS_TIMEOUT,
    ConfigurationError,
    CrawlerSettings,
)
from crawling_rules import CrawlingRules
from fetcher import FetchError, FetchTimeout, HTTPFetcher, LinkFetcher
from robots import parse_robots, robots_url

logger = logging.getLogger(__name__)


@dataclass
class ParsedResult:
    """One successfully fetched page and the links found on it."""
    url: str
    links: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass
class CrawlFailure:
    """A frontier entry that could not be fetched. Never retried."""
    url: str
    depth: int
    error: str
    timeout: bool = False


@dataclass
class FrontierEntry:
    url: str
    depth: int
    # Key of the CrawlingRules that judge this entry (the seed's domain)
    domain: str


@dataclass
class CrawlReport:
    """What a stopped crawl leaves behind."""
    results: List[ParsedResult] = field(default_factory=list)
    failures: List[CrawlFailure] = field(default_factory=list)
    denied: int = 0

    @property
    def urls(self) -> List[str]:
        return [r.url for r in self.results]


@dataclass
class CrawlStats:
    """Statistics for crawling progress."""
    pages_parsed: int = 0
    links_found: int = 0
    failed_urls: int = 0
    timeouts: int = 0
    denied_urls: int = 0
    queue_size: int = 0
    active_workers: int = 0
    domains: int = 0
    current_urls: List[str] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)
    last_discovery: float = field(default_factory=time.monotonic)
    draining: bool = False

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def idle_seconds(self) -> float:
        """Seconds since the last successful fetch."""
        return time.monotonic() - self.last_discovery

    @property
    def urls_per_minute(self) -> float:
        elapsed = self.elapsed_time
        if elapsed > 0:
            return (self.pages_parsed / elapsed) * 60
        return 0


ResultSink = Callable[[ParsedResult], Awaitable[None]]


def domain_of(url: str) -> str:
    """scheme://host[:port] of a URL, used as the per-domain key."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


class WebCrawler:
    """
    Crawls one or more seed domains, respecting robots.txt and a per-domain
    politeness delay, until the frontier is exhausted, the crawl goes idle,
    or `stop()` is called.
    """

    def __init__(self, settings: Optional[CrawlerSettings],
                 fetcher: Optional[LinkFetcher] = None,
                 cache: Optional[VisitedCache] = None):
        if settings is None:
            raise ConfigurationError("crawler settings are required")
        self.settings = settings.validate()
        self.fetcher = fetcher or HTTPFetcher(
            settings.user_agent, settings.parser, settings.fetch_timeout
        )
        self.cache = cache or MemoryCache()

        self.rules: Dict[str, CrawlingRules] = {}
        self._robots_loaded: Dict[str, asyncio.Event] = {}

        self.stats = CrawlStats()
        self.frontier: Optional[asyncio.Queue] = None
        self._output: Optional[asyncio.Queue] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._running = False

    @classmethod
    def new(cls, user_agent: str = DEFAULT_USER_AGENT, **overrides) -> "WebCrawler":
        """Crawler with default settings for `user_agent`."""
        settings = CrawlerSettings.default(user_agent).with_overrides(**overrides)
        return cls(settings)

    @property
    def running(self) -> bool:
        return self._running

    def stop(self):
        """Stop expanding the frontier; in-flight fetches are allowed to finish."""
        if self._running:
            logger.info("Draining crawl: no new URLs will be admitted")
        self._running = False
        self.stats.draining = True
        if self._wakeup is not None:
            self._wakeup.set()

    async def close(self):
        await self.fetcher.close()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, *seeds: str, sink: Optional[ResultSink] = None) -> CrawlReport:
        """
        Crawl from `seeds` and return every parsed page plus the failures.

        `sink`, if given, is awaited with each ParsedResult as it arrives.
        """
        if not seeds:
            raise ConfigurationError("at least one seed URL is required")

        report = CrawlReport()
        self.stats = CrawlStats()
        self.frontier = asyncio.Queue()
        self._output = asyncio.Queue()
        self._wakeup = asyncio.Event()
        self._in_flight = set()
        self._running = True

        for seed in seeds:
            self._enqueue(FrontierEntry(url=seed, depth=0, domain=domain_of(seed)))

        collector = asyncio.create_task(self._collect(report, sink))

        try:
            await self._schedule()
        except asyncio.CancelledError:
            logger.info("Crawl cancelled")
            self.stop()
        finally:
            await self._drain()
            await self._output.put(None)
            await collector

        self._running = False
        report.denied = self.stats.denied_urls
        logger.info(
            "Crawl finished: %d pages, %d failures, %d denied",
            len(report.results), len(report.failures), report.denied,
        )
        return report

    async def _schedule(self):
        """Admit frontier entries into worker tasks until the crawl is done."""
        crawl_timeout = self.settings.crawl_timeout

        while self._running:
            if self.stats.idle_seconds > crawl_timeout:
                logger.info("No page fetched for %.1fs, stopping", crawl_timeout)
                self.stop()
                break

            if self._has_capacity():
                try:
                    entry = self.frontier.get_nowait()
                except asyncio.QueueEmpty:
                    if not self._in_flight:
                        # Nothing queued and nobody left to discover more
                        break
                else:
                    self.stats.queue_size = self.frontier.qsize()
                    task = asyncio.create_task(self._visit(entry))
                    self._in_flight.add(task)
                    task.add_done_callback(self._task_done)
                    continue

            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=IDLE_POLL_INTERVAL)
            except asyncio.TimeoutError:
                pass

    def _has_capacity(self) -> bool:
        concurrency = self.settings.concurrency
        return concurrency == 0 or len(self._in_flight) < concurrency

    def _task_done(self, task: asyncio.Task):
        self._in_flight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Worker crashed", exc_info=task.exception())
        if self._wakeup is not None:
            self._wakeup.set()

    async def _drain(self):
        if self._in_flight:
            logger.debug("Waiting for %d in-flight tasks", len(self._in_flight))
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    def _enqueue(self, entry: FrontierEntry) -> bool:
        if not self._running:
            return False
        self.frontier.put_nowait(entry)
        self.stats.queue_size = self.frontier.qsize()
        if self._wakeup is not None:
            self._wakeup.set()
        return True

    async def _collect(self, report: CrawlReport, sink: Optional[ResultSink]):
        """Single consumer of worker output."""
        while True:
            item = await self._output.get()
            if item is None:
                break

            if isinstance(item, CrawlFailure):
                report.failures.append(item)
                continue

            report.results.append(item)
            if sink is not None:
                try:
                    await sink(item)
                except Exception:
                    logger.exception("Could not write result for %s", item.url)

    # ------------------------------------------------------------------
    # Domain rules
    # ------------------------------------------------------------------

    async def rules_for(self, domain: str) -> CrawlingRules:
        """Get or create the crawl rules of a domain, loading robots.txt once."""
        rules = self.rules.get(domain)
        if rules is not None:
            await self._robots_loaded[domain].wait()
            return rules

        rules = CrawlingRules(domain, self.cache, self.settings.politeness_delay)
        loaded = asyncio.Event()
        self.rules[domain] = rules
        self._robots_loaded[domain] = loaded
        self.stats.domains = len(self.rules)

        try:
            await self._load_robots(rules, domain)
        finally:
            loaded.set()
        return rules

    async def _load_robots(self, rules: CrawlingRules, domain: str):
        url = robots_url(domain)
        try:
            _, response = await asyncio.wait_for(self.fetcher.fetch(url), timeout=ROBOTS_TIMEOUT)
        except (FetchError, asyncio.TimeoutError) as e:
            logger.info("No robots.txt for %s (%s), allowing all", domain, e)
            return

        if not response.ok:
            logger.info("robots.txt for %s returned HTTP %d, allowing all", domain, response.status)
            return

        group = parse_robots(response.text, self.settings.user_agent)
        rules.install_group(group)
        if group is None:
            logger.info("robots.txt for %s has no group for our agent", domain)
        else:
            logger.info(
                "robots.txt for %s: %d rules for agent %r, crawl-delay %.2fs",
                domain, len(group.rules), group.agent, group.crawl_delay,
            )

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _fetch_links(self, url: str) -> Tuple[float, List[str]]:
        try:
            return await asyncio.wait_for(
                self.fetcher.fetch_links(url), timeout=self.settings.fetch_timeout
            )
        except asyncio.TimeoutError:
            raise FetchTimeout(url, f"timed out after {self.settings.fetch_timeout}s",
                               elapsed=self.settings.fetch_timeout)

    async def _visit(self, entry: FrontierEntry):
        """Fetch one frontier entry and expand the frontier with its links."""
        if not self._running:
            return

        rules = await self.rules_for(entry.domain)
        if not rules.allowed(entry.url):
            self.stats.denied_urls += 1
            logger.debug("Skipping %s (visited, disallowed or out of scope)", entry.url)
            return

        self.stats.active_workers += 1
        self.stats.current_urls.append(entry.url)

        try:
            await asyncio.sleep(rules.crawl_delay())
            if not self._running:
                return
            elapsed, links = await self._fetch_links(entry.url)
        except FetchError as e:
            if e.status is not None:
                # The server did answer, so its latency still counts
                rules.update_last_delay(e.elapsed)
            self.stats.failed_urls += 1
            if isinstance(e, FetchTimeout):
                self.stats.timeouts += 1
            logger.warning("Failed to fetch %s: %s", entry.url, e)
            await self._output.put(CrawlFailure(
                url=entry.url, depth=entry.depth, error=str(e),
                timeout=isinstance(e, FetchTimeout),
            ))
            return
        finally:
            self.stats.active_workers -= 1
            self.stats.current_urls.remove(entry.url)

        rules.update_last_delay(elapsed)
        self.stats.last_discovery = time.monotonic()
        self.stats.pages_parsed += 1
        self.stats.links_found += len(links)
        logger.debug("Fetched %s in %.2fs, %d links", entry.url, elapsed, len(links))
        await self._output.put(ParsedResult(url=entry.url, links=list(links)))

        max_depth = self.settings.max_depth
        if max_depth and entry.depth >= max_depth:
            return
        for link in links:
            if not self._enqueue(FrontierEntry(url=link, depth=entry.depth + 1, domain=entry.domain)):
                break
