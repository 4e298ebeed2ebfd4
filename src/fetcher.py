"""
Fetch capability: raw page downloads and link extraction.

The crawler only depends on the `LinkFetcher` interface, so tests can swap in
a fake with fixed responses and timings.
"""

import asyncio
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import urldefrag, urljoin

import aiohttp

from config import (
    CONNECTION_LIMIT,
    CONNECTION_LIMIT_PER_HOST,
    DEFAULT_FETCH_TIMEOUT,
    DNS_CACHE_TTL,
    KEEPALIVE_TIMEOUT,
    REQUEST_HEADERS,
)


class FetchError(Exception):
    """A single URL could not be fetched."""

    def __init__(self, url: str, message: str, elapsed: float = 0.0, status: Optional[int] = None):
        super().__init__(f"{url}: {message}")
        self.url = url
        self.elapsed = elapsed
        self.status = status


class FetchTimeout(FetchError):
    """The server did not answer within the fetch timeout."""


@dataclass
class Response:
    url: str
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "")


class Parser(ABC):
    """Turns page content into absolute outgoing URLs."""

    @abstractmethod
    def parse(self, base_url: str, content: str) -> List[str]:
        pass


class LinkFetcher(ABC):
    """Downloads pages and extracts their links."""

    @abstractmethod
    async def fetch(self, url: str) -> Tuple[float, Response]:
        """GET `url`, returning (elapsed seconds, response). Raises FetchError."""

    @abstractmethod
    async def fetch_links(self, url: str) -> Tuple[float, List[str]]:
        """GET `url` and return (elapsed seconds, absolute links). Raises FetchError."""

    async def close(self):
        pass


SKIP_SCHEMES = ('mailto:', 'tel:', 'javascript:', 'data:', '#')


class RegexLinkParser(Parser):
    """Extract anchors with a regex (faster than building a DOM)."""

    href_pattern = re.compile(r'href\s*=\s*["\']([^"\']+)["\']', re.I)

    def parse(self, base_url: str, content: str) -> List[str]:
        links = []
        seen = set()

        for match in self.href_pattern.finditer(content):
            href = match.group(1).strip()
            if not href or href.lower().startswith(SKIP_SCHEMES):
                continue

            full_url, _ = urldefrag(urljoin(base_url, href))
            if not full_url.startswith(('http://', 'https://')):
                continue
            if full_url in seen:
                continue

            seen.add(full_url)
            links.append(full_url)

        return links


class HTTPFetcher(LinkFetcher):
    """aiohttp-backed fetcher sharing one pooled session."""

    def __init__(self, user_agent: str, parser: Optional[Parser] = None,
                 timeout: float = DEFAULT_FETCH_TIMEOUT):
        self.user_agent = user_agent
        self.parser = parser or RegexLinkParser()
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=CONNECTION_LIMIT,
                limit_per_host=CONNECTION_LIMIT_PER_HOST,
                ttl_dns_cache=DNS_CACHE_TTL,
                keepalive_timeout=KEEPALIVE_TIMEOUT,
            )
            self._session = aiohttp.ClientSession(
                headers={**REQUEST_HEADERS, "User-Agent": self.user_agent},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                connector=connector,
                cookie_jar=aiohttp.DummyCookieJar(),
            )
        return self._session

    async def fetch(self, url: str) -> Tuple[float, Response]:
        return await self._get(url)

    async def _get(self, url: str, html_only: bool = False) -> Tuple[float, Response]:
        """
        GET `url`. With `html_only`, error statuses and non-HTML content
        types raise FetchError from the headers alone, before the body is read.
        """
        session = self._get_session()
        start = time.monotonic()

        try:
            async with session.get(url, allow_redirects=True) as resp:
                if html_only:
                    self._check_html(url, resp, time.monotonic() - start)
                text = await resp.text(errors="replace")
                response = Response(
                    url=str(resp.url),
                    status=resp.status,
                    headers=dict(resp.headers),
                    text=text,
                )
        except asyncio.TimeoutError:
            raise FetchTimeout(url, f"timed out after {self.timeout}s",
                               elapsed=time.monotonic() - start)
        except aiohttp.ClientError as e:
            raise FetchError(url, str(e) or e.__class__.__name__,
                             elapsed=time.monotonic() - start)

        return time.monotonic() - start, response

    @staticmethod
    def _check_html(url: str, resp: aiohttp.ClientResponse, elapsed: float):
        if not 200 <= resp.status < 300:
            resp.close()
            raise FetchError(url, f"HTTP {resp.status}", elapsed=elapsed, status=resp.status)

        content_type = resp.headers.get("Content-Type", "")
        if "html" not in content_type.lower():
            resp.close()
            raise FetchError(url, f"not HTML ({content_type or 'no content type'})",
                             elapsed=elapsed, status=resp.status)

    async def fetch_links(self, url: str) -> Tuple[float, List[str]]:
        elapsed, response = await self._get(url, html_only=True)

        # Resolve against the final URL so redirects keep relative links correct
        return elapsed, self.parser.parse(response.url, response.text)

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()
