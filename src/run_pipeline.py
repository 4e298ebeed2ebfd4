#!/usr/bin/env python3
"""
Polite Web Crawler
==================
Main entry point: crawls the given seed URLs with a live dashboard and
writes one JSON object per parsed page to a JSON Lines file:

    {"url": "...", "links": ["...", ...]}
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import aiofiles
from rich.console import Console
from rich.logging import RichHandler

from config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_CRAWL_TIMEOUT,
    DEFAULT_DEPTH,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_POLITENESS_DELAY,
    DEFAULT_USER_AGENT,
    FILE_ENCODING,
    ConfigurationError,
    CrawlerSettings,
)
from crawler import CrawlReport, ParsedResult, WebCrawler
from dashboard import LiveDashboard, print_final_summary


console = Console()


class JsonLinesWriter:
    """Appends crawl results to a JSON Lines file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self.written = 0

    async def __call__(self, result: ParsedResult):
        async with self._lock:
            async with aiofiles.open(self.path, mode='a', encoding=FILE_ENCODING) as f:
                await f.write(result.to_json() + '\n')
            self.written += 1


def normalize_seed(url: str) -> str:
    """Ensure a seed has a scheme and a path."""
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    if url.count("/") == 2:
        url += "/"
    return url


def setup_logging(verbose: bool = False, quiet: bool = False):
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )
    # Keep aiohttp's own chatter out of the crawl log
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def install_signal_handlers(crawler: WebCrawler, on_stop=None):
    """SIGINT/SIGTERM drain the crawl instead of killing it."""
    def shutdown_handler():
        console.print("\n[yellow]⚠️  Shutting down, waiting for in-flight fetches...[/yellow]")
        crawler.stop()
        if on_stop is not None:
            on_stop()

    if sys.platform != 'win32':
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown_handler)


async def run_with_dashboard(crawler: WebCrawler, seeds, sink) -> CrawlReport:
    """Run crawler with live dashboard."""
    dashboard = LiveDashboard(crawler, console)

    crawler_task = asyncio.create_task(crawler.run(*seeds, sink=sink))
    dashboard_task = asyncio.create_task(dashboard.run())
    install_signal_handlers(crawler, dashboard.stop)

    try:
        return await crawler_task
    finally:
        dashboard.stop()
        try:
            await asyncio.wait_for(dashboard_task, timeout=1.0)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            pass


async def run_without_dashboard(crawler: WebCrawler, seeds, sink) -> CrawlReport:
    """Run crawler with simple progress output."""
    from tqdm.asyncio import tqdm

    console.print("[bold cyan]🚀 Starting crawler...[/bold cyan]")
    console.print(f"   Seeds: {', '.join(seeds)}")
    console.print(f"   Workers: {crawler.settings.concurrency or 'unbounded'}")
    console.print(f"   Max depth: {crawler.settings.max_depth or 'unlimited'}\n")

    install_signal_handlers(crawler)

    async def progress_display():
        with tqdm(desc="Crawling", unit=" pages") as pbar:
            last_count = 0
            while True:
                current = crawler.stats.pages_parsed
                pbar.update(current - last_count)
                pbar.set_postfix({
                    'queue': crawler.stats.queue_size,
                    'failed': crawler.stats.failed_urls,
                })
                last_count = current
                await asyncio.sleep(0.5)

    progress_task = asyncio.create_task(progress_display())

    try:
        return await crawler.run(*seeds, sink=sink)
    finally:
        progress_task.cancel()


def build_settings(args) -> CrawlerSettings:
    return CrawlerSettings.default(args.user_agent).with_overrides(
        fetch_timeout=args.fetch_timeout,
        crawl_timeout=args.crawl_timeout,
        concurrency=args.workers,
        max_depth=args.depth,
        politeness_delay=args.delay,
    )


async def main(args) -> Optional[CrawlReport]:
    """Main entry point."""
    console.print("""
[bold blue]╔══════════════════════════════════════════════════════════════╗
║     [cyan]Polite Web Crawler[/cyan]                                       ║
║     [dim]robots.txt aware, depth bounded, idle aware[/dim]               ║
╚══════════════════════════════════════════════════════════════╝[/bold blue]
    """)

    try:
        crawler = WebCrawler(build_settings(args))
    except ConfigurationError as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        return None

    seeds = [normalize_seed(url) for url in args.urls]
    sink = None
    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        sink = JsonLinesWriter(output)
        console.print(f"📁 Output: [cyan]{output}[/cyan]\n")

    report = CrawlReport()
    try:
        if args.no_dashboard:
            report = await run_without_dashboard(crawler, seeds, sink)
        else:
            report = await run_with_dashboard(crawler, seeds, sink)
    finally:
        await crawler.close()

    print_final_summary(crawler, report, console)
    if sink is not None:
        console.print(f"📁 Wrote {sink.written:,} results to [cyan]{sink.path}[/cyan]")
    return report


def cli():
    """Command-line interface."""
    parser = argparse.ArgumentParser(
        description="Polite, depth-bounded web crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_crawler.py https://example.com/
  python run_crawler.py example.com --depth 2 --output results.jsonl
  python run_crawler.py https://example.com/ --workers 0 --delay 1.5
        """
    )

    parser.add_argument('urls', nargs='+', help='Seed URL(s) to start crawling from')
    parser.add_argument('--user-agent', default=DEFAULT_USER_AGENT,
                        help='User-Agent header, also selects the robots.txt group')
    parser.add_argument('--depth', type=int, default=None,
                        help=f'Maximum crawl depth, 0 = unlimited (default: {DEFAULT_DEPTH})')
    parser.add_argument('--workers', type=int, default=None,
                        help=f'Concurrent fetches, 0 = unbounded (default: {DEFAULT_CONCURRENCY})')
    parser.add_argument('--fetch-timeout', type=float, default=None,
                        help=f'Seconds before giving up on a URL (default: {DEFAULT_FETCH_TIMEOUT:g})')
    parser.add_argument('--crawl-timeout', type=float, default=None,
                        help=f'Stop after this many idle seconds (default: {DEFAULT_CRAWL_TIMEOUT:g})')
    parser.add_argument('--delay', type=float, default=None,
                        help=f'Fixed politeness delay in seconds (default: {DEFAULT_POLITENESS_DELAY:g})')
    parser.add_argument('--output', '-o', default=None,
                        help='Append results to this JSON Lines file')
    parser.add_argument('--no-dashboard', action='store_true',
                        help='Run without the live dashboard')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Debug logging')

    args = parser.parse_args()

    # The dashboard owns the screen, so only warnings get logged alongside it
    setup_logging(verbose=args.verbose, quiet=not args.no_dashboard and not args.verbose)

    if sys.platform == 'win32':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

    asyncio.run(main(args))


if __name__ == "__main__":
    cli()
