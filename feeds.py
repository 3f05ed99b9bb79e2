"""Async feed fetching for configured news sources.

This module performs the HTTP side of the pipeline: one GET per source,
then hands the body to the parser and the parsed items to the dedup engine.

Features:
    - Shared client session with connection pooling
    - certifi CA bundle for TLS verification
    - Explicit per-request timeout
    - Bodies always decoded as UTF-8

Error Handling Strategy:
    - Non-2xx responses, transport failures, timeouts and parse errors are
      returned as FetchSourceResult.error and logged at WARNING; they never
      raise past fetch_source
    - Failed fetches are not retried within a run
    - StorageError from the dedup engine is NOT caught; it aborts the run
"""

import asyncio
import logging
import ssl

import aiohttp
import certifi

from database import Database
from dedup import upsert_items
from models.feed import FeedSource
from models.results import FetchSourceResult
from parser import parse_feed

logger = logging.getLogger(__name__)

ACCEPT_HEADER = "application/rss+xml, application/atom+xml, application/xml, text/xml"


class FeedHTTPError(Exception):
    """A feed server answered with a non-2xx status."""

    def __init__(self, status: int, reason: str):
        self.status = status
        self.reason = reason
        super().__init__(f"HTTP {status}: {reason}")


def ssl_context() -> ssl.SSLContext:
    """SSL context verifying certificates against the certifi bundle."""
    return ssl.create_default_context(cafile=certifi.where())


def request_headers(user_agent: str) -> dict[str, str]:
    return {"User-Agent": user_agent, "Accept": ACCEPT_HEADER}


def create_session(user_agent: str, max_concurrent: int) -> aiohttp.ClientSession:
    """Create the client session shared by all fetches of one run.

    Args:
        user_agent: Identifying User-Agent string
        max_concurrent: Maximum concurrent TCP connections

    Returns:
        Session that must be closed by the caller (use `async with`)
    """
    connector = aiohttp.TCPConnector(limit=max_concurrent, ssl=ssl_context())
    return aiohttp.ClientSession(connector=connector, headers=request_headers(user_agent))


async def _fetch_feed(session: aiohttp.ClientSession, url: str, timeout: float) -> str:
    """GET a feed and return its body as UTF-8 text.

    Args:
        session: aiohttp client session
        url: Feed URL to fetch
        timeout: Total request timeout in seconds

    Returns:
        Response body, decoded as UTF-8 with invalid bytes replaced

    Raises:
        FeedHTTPError: On a non-2xx status
        aiohttp.ClientError: On transport failures
        asyncio.TimeoutError: When the request exceeds `timeout`
    """
    async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
        if not 200 <= resp.status < 300:
            raise FeedHTTPError(resp.status, resp.reason or "")
        body = await resp.read()
    return body.decode("utf-8", errors="replace")


async def fetch_source(
    session: aiohttp.ClientSession,
    source: FeedSource,
    db: Database,
    timeout: float = 30.0,
) -> FetchSourceResult:
    """Fetch, parse and persist one source.

    Args:
        session: Shared client session
        source: Source to fetch
        db: Store for the dedup engine
        timeout: Request timeout in seconds

    Returns:
        FetchSourceResult with the new item count, or an error message

    Raises:
        StorageError: If persisting the parsed items fails
    """
    result = FetchSourceResult(source_id=source.id, source_name=source.name)

    try:
        xml_text = await _fetch_feed(session, source.url, timeout)
    except FeedHTTPError as e:
        if e.status >= 500:
            logger.warning("Feed %s: server error HTTP %d", source.url, e.status)
        else:
            logger.warning("Feed %s: HTTP %d", source.url, e.status)
        result.error = str(e)
        return result
    except asyncio.TimeoutError:
        logger.warning("Feed %s: request timed out after %ss", source.url, timeout)
        result.error = f"Request timed out after {timeout:g}s"
        return result
    except aiohttp.ClientError as e:
        logger.warning("Feed %s: %s: %s", source.url, type(e).__name__, e)
        result.error = str(e) or type(e).__name__
        return result

    parsed = parse_feed(xml_text, source.url)
    if parsed.error:
        logger.warning("Feed %s: parse error: %s", source.url, parsed.error)
        result.error = parsed.error
        return result

    result.new_items_count = upsert_items(db, source.id, parsed.items)
    logger.debug(
        "Feed %s: %d items, %d new", source.url, len(parsed.items), result.new_items_count
    )
    return result
