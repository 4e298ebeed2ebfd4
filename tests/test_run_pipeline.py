import argparse
import io
import json

import pytest
from rich.console import Console

from conftest import FakeFetcher
from crawler import CrawlFailure, CrawlReport, ParsedResult, WebCrawler
from dashboard import LiveDashboard, format_duration, print_final_summary
from run_pipeline import JsonLinesWriter, build_settings, normalize_seed


def make_args(**overrides):
    values = dict(
        urls=["example.com"],
        user_agent="TestBot/1.0",
        depth=None,
        workers=None,
        fetch_timeout=None,
        crawl_timeout=None,
        delay=None,
        output=None,
        no_dashboard=True,
        verbose=False,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.mark.parametrize("raw,expected", [
    ("example.com", "https://example.com/"),
    ("http://example.com", "http://example.com/"),
    ("https://example.com/a/b", "https://example.com/a/b"),
    ("  https://example.com/  ", "https://example.com/"),
])
def test_normalize_seed(raw, expected):
    assert normalize_seed(raw) == expected


def test_build_settings_keeps_defaults():
    settings = build_settings(make_args())
    assert settings.user_agent == "TestBot/1.0"
    assert settings.max_depth == 16
    assert settings.concurrency == 8
    assert settings.politeness_delay == 0.5


def test_build_settings_applies_zero_overrides():
    settings = build_settings(make_args(depth=0, workers=0, delay=0.0, crawl_timeout=5.0))
    assert settings.max_depth == 0
    assert settings.concurrency == 0
    assert settings.politeness_delay == 0.0
    assert settings.crawl_timeout == 5.0


@pytest.mark.asyncio
async def test_json_lines_writer(tmp_path):
    path = tmp_path / "results.jsonl"
    writer = JsonLinesWriter(path)

    await writer(ParsedResult(url="http://example.com/", links=["http://example.com/a"]))
    await writer(ParsedResult(url="http://example.com/a", links=[]))

    lines = path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line) for line in lines] == [
        {"url": "http://example.com/", "links": ["http://example.com/a"]},
        {"url": "http://example.com/a", "links": []},
    ]
    assert writer.written == 2


@pytest.mark.asyncio
async def test_crawl_writes_json_lines(tmp_path, fast_settings):
    seed = "http://example.com/"
    fetcher = FakeFetcher(pages={seed: ["http://example.com/a"], "http://example.com/a": []})
    crawler = WebCrawler(fast_settings, fetcher=fetcher)
    writer = JsonLinesWriter(tmp_path / "out.jsonl")

    await crawler.run(seed, sink=writer)

    records = [json.loads(line) for line in (tmp_path / "out.jsonl").read_text().splitlines()]
    assert [r["url"] for r in records] == [seed, "http://example.com/a"]


def test_format_duration():
    assert format_duration(3725.9) == "1:02:05"


@pytest.mark.asyncio
async def test_dashboard_renders(fast_settings):
    seed = "http://example.com/"
    fetcher = FakeFetcher(
        pages={seed: []},
        robots={"http://example.com/robots.txt": "User-agent: *\nDisallow: /x\nCrawl-delay: 0.1\n"},
    )
    crawler = WebCrawler(fast_settings.with_overrides(politeness_delay=0.0), fetcher=fetcher)
    await crawler.run(seed)

    output = io.StringIO()
    console = Console(file=output, width=120)
    console.print(LiveDashboard(crawler, console).generate_layout())

    text = output.getvalue()
    assert "http://example.com" in text
    assert "Polite Web Crawler" in text


def test_final_summary_lists_failures(fast_settings):
    crawler = WebCrawler(fast_settings, fetcher=FakeFetcher())
    report = CrawlReport(
        results=[ParsedResult(url="http://example.com/")],
        failures=[CrawlFailure(url="http://example.com/x", depth=1,
                               error="http://example.com/x: [timed out]", timeout=True)],
        denied=3,
    )
    output = io.StringIO()
    print_final_summary(crawler, report, Console(file=output, width=120))

    text = output.getvalue()
    assert "Crawling Complete" in text
    assert "(timeout) http://example.com/x: [timed out]" in text
