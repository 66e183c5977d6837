from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

import httpx
from bs4 import BeautifulSoup
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from .decoding import charset_from_content_type, decode_document
from .errors import ExtractionError, FeedError
from .extract import extract
from .feeds import parse_feed
from .models import ExtractedArticle, ParsedFeed
from .registry import ExtractorRegistry
from .sites import GENERIC, default_registry
from .utils import hostname_of, word_count

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "15"))
CONNECT_TIMEOUT = float(os.getenv("CONNECT_TIMEOUT", "5"))
PROBE_TIMEOUT = float(os.getenv("PROBE_TIMEOUT", "5"))
UA = os.getenv("HTTP_UA", ("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
                           "AppleWebKit/537.36 (KHTML, like Gecko) "
                           "Chrome/124.0 Safari/537.36"))

# Everything a single fetch can raise; callers treat these as "this candidate failed".
FETCH_ERRORS = (httpx.HTTPError, httpx.InvalidURL)

HEADERS = {
    "User-Agent": UA,
    "Accept": "text/html,application/xhtml+xml,application/rss+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


@dataclass
class FetchResult:
    url: str
    status: int
    body: bytes
    content_type: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return decode_document(self.body, charset_from_content_type(self.content_type))


def make_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers=HEADERS,
        follow_redirects=True,
        timeout=httpx.Timeout(HTTP_TIMEOUT, connect=CONNECT_TIMEOUT),
        transport=transport,
    )


async def _request(client: httpx.AsyncClient, method: str, url: str, timeout: float) -> FetchResult:
    r = await client.request(method, url, timeout=httpx.Timeout(timeout, connect=min(timeout, CONNECT_TIMEOUT)))
    return FetchResult(
        url=str(r.url),
        status=r.status_code,
        body=r.content,
        content_type=r.headers.get("content-type", ""),
    )


@retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(2),
    wait=wait_fixed(1),
    reraise=True,
)
async def fetch_page(client: httpx.AsyncClient, url: str) -> FetchResult:
    logger.info("[html] GET %s", url)
    return await _request(client, "GET", url, HTTP_TIMEOUT)


async def probe(client: httpx.AsyncClient, url: str) -> FetchResult:
    """Single short GET; no retries."""
    return await _request(client, "GET", url, PROBE_TIMEOUT)


async def head_status(client: httpx.AsyncClient, url: str) -> Optional[int]:
    try:
        r = await _request(client, "HEAD", url, PROBE_TIMEOUT)
    except FETCH_ERRORS as exc:
        logger.debug("[html] HEAD %s failed: %s", url, exc)
        return None
    return r.status


async def fetch_feed(client: httpx.AsyncClient, url: str) -> ParsedFeed:
    logger.info("[rss]  GET %s", url)
    try:
        r = await fetch_page(client, url)
    except FETCH_ERRORS as exc:
        raise FeedError(f"Failed to fetch feed: {exc}") from exc
    if not r.ok:
        raise FeedError(f"Failed to fetch feed: HTTP {r.status}")
    feed = parse_feed(r.text)
    if feed is None:
        raise FeedError("Failed to fetch feed: not a valid RSS or Atom document")
    logger.info("[rss]  %s: %d items", url, len(feed.items))
    return feed


async def fetch_article(
    client: httpx.AsyncClient,
    url: str,
    registry: Optional[ExtractorRegistry] = None,
) -> ExtractedArticle:
    registry = registry or default_registry()
    try:
        r = await fetch_page(client, url)
    except FETCH_ERRORS as exc:
        raise ExtractionError(f"Could not load {url}") from exc
    if not r.ok:
        raise ExtractionError(f"Could not load {url} (HTTP {r.status})")

    rules = registry.lookup(hostname_of(r.url)) or registry.lookup(hostname_of(url)) or GENERIC
    logger.info("[html] extracting %s with %s rules", r.url, rules.domain)
    article = extract(BeautifulSoup(r.text, "html.parser"), rules, url=r.url)
    if article.is_empty:
        raise ExtractionError("Could not parse this article")
    return article.model_copy(update={"word_count": word_count(article.content)})
