"""Tests for feed fetching over HTTP."""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from feeds import ACCEPT_HEADER, FeedHTTPError, create_session, fetch_source
from models import FeedSource

USER_AGENT = "Dashboard News Fetcher/1.0"


@pytest.fixture
def seen_headers():
    return []


@pytest_asyncio.fixture
async def feed_server(rss_feed, seen_headers):
    """Local HTTP server with valid, failing and slow feed endpoints."""

    async def feed(request):
        seen_headers.append(dict(request.headers))
        return web.Response(text=rss_feed, content_type="application/rss+xml")

    async def latin1(request):
        body = "<rss><channel><item><title>Caf\xe9</title><link>https://example.com/c</link></item></channel></rss>"
        return web.Response(body=body.encode("latin-1"), content_type="text/xml")

    async def missing(request):
        return web.Response(status=404)

    async def broken(request):
        return web.Response(status=503)

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(text=rss_feed)

    app = web.Application()
    app.router.add_get("/feed", feed)
    app.router.add_get("/latin1", latin1)
    app.router.add_get("/missing", missing)
    app.router.add_get("/broken", broken)
    app.router.add_get("/slow", slow)

    server = TestServer(app)
    await server.start_server()
    yield server
    await server.close()


def _source(url: str, name: str = "Example") -> FeedSource:
    return FeedSource(id="src-1", url=url, name=name)


class TestFetchSource:
    """Tests for fetch_source()."""

    async def test_fetches_parses_and_stores(self, feed_server, db):
        source = db.add_source(str(feed_server.make_url("/feed")), "Example")

        async with create_session(USER_AGENT, 2) as session:
            result = await fetch_source(session, source, db)

        assert result.error is None
        assert result.new_items_count == 2
        assert result.source_name == "Example"
        assert db.count_items(source.id) == 2

    async def test_second_fetch_finds_nothing_new(self, feed_server, db):
        source = db.add_source(str(feed_server.make_url("/feed")), "Example")

        async with create_session(USER_AGENT, 2) as session:
            await fetch_source(session, source, db)
            result = await fetch_source(session, source, db)

        assert result.error is None
        assert result.new_items_count == 0

    async def test_sends_identifying_headers(self, feed_server, seen_headers, db):
        source = db.add_source(str(feed_server.make_url("/feed")), "Example")

        async with create_session(USER_AGENT, 2) as session:
            await fetch_source(session, source, db)

        [headers] = seen_headers
        assert headers["User-Agent"] == USER_AGENT
        assert headers["Accept"] == ACCEPT_HEADER

    async def test_body_decoded_as_utf8(self, feed_server, db):
        source = db.add_source(str(feed_server.make_url("/latin1")), "Latin")

        async with create_session(USER_AGENT, 2) as session:
            result = await fetch_source(session, source, db)

        assert result.error is None
        assert result.new_items_count == 1

    async def test_http_404(self, feed_server):
        db = object()

        async with create_session(USER_AGENT, 2) as session:
            result = await fetch_source(session, _source(str(feed_server.make_url("/missing"))), db)

        assert result.error == "HTTP 404: Not Found"
        assert result.new_items_count == 0

    async def test_http_503(self, feed_server):
        async with create_session(USER_AGENT, 2) as session:
            result = await fetch_source(session, _source(str(feed_server.make_url("/broken"))), object())

        assert result.error == "HTTP 503: Service Unavailable"

    async def test_timeout(self, feed_server):
        async with create_session(USER_AGENT, 2) as session:
            result = await fetch_source(
                session, _source(str(feed_server.make_url("/slow"))), object(), timeout=0.2
            )

        assert result.error == "Request timed out after 0.2s"
        assert result.new_items_count == 0

    async def test_connection_refused(self):
        async with create_session(USER_AGENT, 2) as session:
            result = await fetch_source(session, _source("http://127.0.0.1:1/feed"), object())

        assert result.error
        assert result.new_items_count == 0


class TestFeedHTTPError:
    """Tests for the HTTP error message format."""

    def test_message(self):
        error = FeedHTTPError(500, "Internal Server Error")

        assert str(error) == "HTTP 500: Internal Server Error"
        assert error.status == 500
