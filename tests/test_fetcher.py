import asyncio
import time

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from fetcher import FetchError, FetchTimeout, HTTPFetcher, RegexLinkParser

INDEX = """
<html><body>
  <a href="a.html">A</a>
  <a href='/b'>B</a>
  <a href="a.html#section">A again</a>
  <a href="mailto:someone@example.com">mail</a>
  <a href="#top">top</a>
  <a href="javascript:void(0)">js</a>
  <A HREF="http://other.com/c">C</A>
</body></html>
"""


class TestRegexLinkParser:

    def setup_method(self):
        self.parser = RegexLinkParser()

    def test_resolves_and_filters_links(self):
        links = self.parser.parse("http://example.com/dir/index.html", INDEX)
        assert links == [
            "http://example.com/dir/a.html",
            "http://example.com/b",
            "http://other.com/c",
        ]

    def test_protocol_relative_links_inherit_scheme(self):
        links = self.parser.parse("https://example.com/", '<a href="//cdn.example.com/x">x</a>')
        assert links == ["https://cdn.example.com/x"]

    def test_non_http_schemes_are_dropped(self):
        links = self.parser.parse("http://example.com/", '<a href="ftp://example.com/f">f</a>')
        assert links == []

    def test_no_links(self):
        assert self.parser.parse("http://example.com/", "<p>nothing here</p>") == []


async def index(request):
    return web.Response(text=INDEX, content_type="text/html")


async def user_agent(request):
    ua = request.headers.get("User-Agent", "")
    return web.Response(text=f'<a href="/seen?ua={len(ua)}">ua</a>', content_type="text/html")


async def slow(request):
    await asyncio.sleep(2)
    return web.Response(text="late", content_type="text/html")


async def data(request):
    return web.json_response({"links": []})


async def slow_binary(request):
    resp = web.StreamResponse(headers={"Content-Type": "application/octet-stream"})
    await resp.prepare(request)
    await resp.write(b"\0" * 1024)
    await asyncio.sleep(2)
    await resp.write(b"\0" * 1024)
    return resp


async def robots(request):
    return web.Response(text="User-agent: *\nDisallow: /private/\n", content_type="text/plain")


async def redirect(request):
    raise web.HTTPFound("/dir/page")


async def dir_page(request):
    return web.Response(text='<a href="next">next</a>', content_type="text/html")


@pytest_asyncio.fixture
async def server():
    app = web.Application()
    app.router.add_get("/", index)
    app.router.add_get("/ua", user_agent)
    app.router.add_get("/slow", slow)
    app.router.add_get("/data.json", data)
    app.router.add_get("/video.bin", slow_binary)
    app.router.add_get("/robots.txt", robots)
    app.router.add_get("/redirect", redirect)
    app.router.add_get("/dir/page", dir_page)

    test_server = TestServer(app)
    await test_server.start_server()
    yield test_server
    await test_server.close()


@pytest_asyncio.fixture
async def fetcher():
    http = HTTPFetcher("TestBot/1.0", timeout=0.5)
    yield http
    await http.close()


@pytest.mark.asyncio
async def test_fetch_links(server, fetcher):
    base = str(server.make_url("/"))
    elapsed, links = await fetcher.fetch_links(base)

    assert elapsed >= 0
    assert links == [base + "a.html", base + "b", "http://other.com/c"]


@pytest.mark.asyncio
async def test_fetch_returns_raw_response(server, fetcher):
    _, response = await fetcher.fetch(str(server.make_url("/robots.txt")))

    assert response.ok
    assert response.status == 200
    assert "Disallow: /private/" in response.text
    assert response.content_type.startswith("text/plain")


@pytest.mark.asyncio
async def test_fetch_does_not_raise_on_http_errors(server, fetcher):
    _, response = await fetcher.fetch(str(server.make_url("/missing")))
    assert response.status == 404
    assert not response.ok


@pytest.mark.asyncio
async def test_fetch_links_rejects_http_errors(server, fetcher):
    with pytest.raises(FetchError) as excinfo:
        await fetcher.fetch_links(str(server.make_url("/missing")))

    assert excinfo.value.status == 404
    assert not isinstance(excinfo.value, FetchTimeout)


@pytest.mark.asyncio
async def test_fetch_links_rejects_non_html(server, fetcher):
    with pytest.raises(FetchError, match="not HTML"):
        await fetcher.fetch_links(str(server.make_url("/data.json")))


@pytest.mark.asyncio
async def test_non_html_is_rejected_before_the_body_arrives(server, fetcher):
    start = time.monotonic()
    with pytest.raises(FetchError, match="not HTML") as excinfo:
        await fetcher.fetch_links(str(server.make_url("/video.bin")))

    assert not isinstance(excinfo.value, FetchTimeout)
    assert excinfo.value.status == 200
    assert time.monotonic() - start < 0.4


@pytest.mark.asyncio
async def test_timeout_is_distinguishable(server, fetcher):
    with pytest.raises(FetchTimeout) as excinfo:
        await fetcher.fetch_links(str(server.make_url("/slow")))

    assert excinfo.value.elapsed >= 0.4
    assert excinfo.value.status is None


@pytest.mark.asyncio
async def test_connection_error_is_a_fetch_error(fetcher):
    with pytest.raises(FetchError) as excinfo:
        await fetcher.fetch_links("http://127.0.0.1:1/")

    assert not isinstance(excinfo.value, FetchTimeout)


@pytest.mark.asyncio
async def test_relative_links_resolve_against_final_url(server, fetcher):
    _, links = await fetcher.fetch_links(str(server.make_url("/redirect")))
    assert links == [str(server.make_url("/dir/next"))]


@pytest.mark.asyncio
async def test_sends_user_agent(server, fetcher):
    _, links = await fetcher.fetch_links(str(server.make_url("/ua")))
    assert links == [str(server.make_url("/seen?ua=11"))]


@pytest.mark.asyncio
async def test_context_manager_closes_session(server):
    async with HTTPFetcher("TestBot/1.0", timeout=1.0) as http:
        await http.fetch(str(server.make_url("/")))
        assert http._session is not None
    assert http._session is None
