"""Turn a name, a bare domain or a URL into a list of working feed URLs.

Strategies, in order: resolve the input to a site (search scrape, then a
``<name>.com`` guess), read ``<link rel="alternate">`` tags from the page,
probe well-known feed paths, then re-fetch candidates whose title says
nothing ("RSS", "Feed", ...) to get a real title. Every network step is
isolated; one failed candidate only drops that candidate.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qs, urlencode, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from .errors import DiscoveryError, FeedError
from .feeds import parse_feed
from .fetchers import FETCH_ERRORS, fetch_feed, fetch_page, head_status, make_client, probe
from .models import DiscoveredFeed
from .utils import hostname_of, origin_of

logger = logging.getLogger(__name__)

SEARCH_URL = os.getenv("SEARCH_URL", "https://html.duckduckgo.com/html/")
COMMON_FEED_PATHS = (
    "/feed",
    "/rss",
    "/rss.xml",
    "/feed.xml",
    "/atom.xml",
    "/index.xml",
    "/blog/feed",
    "/blog/rss",
)
GENERIC_TITLES = {"", "rss", "atom", "feed"}
FEED_CONTENT_TYPES = ("rss", "atom", "application/xml", "text/xml")

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_DOMAIN_RE = re.compile(r"^[^\s/]+\.[a-z]{2,}(?:[:/?#]\S*)?$", re.IGNORECASE)


def classify_query(query: str) -> Tuple[str, str]:
    """Return ``("url", url)`` for URLs and bare domains, else ``("query", text)``."""
    q = query.strip()
    if _SCHEME_RE.match(q):
        return "url", q
    if _DOMAIN_RE.match(q):
        return "url", f"https://{q}"
    return "query", q


def guess_domain(query: str) -> Optional[str]:
    name = re.sub(r"[^a-z0-9]", "", query.lower())
    return f"https://{name}.com" if name else None


def is_generic_title(title: Optional[str]) -> bool:
    return (title or "").strip().lower() in GENERIC_TITLES


class DiscoveryCache:
    """Results per normalized query, kept for ``ttl`` seconds."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, List[DiscoveredFeed]]] = {}

    @staticmethod
    def key(query: str) -> str:
        return query.strip().lower()

    def get(self, query: str) -> Optional[List[DiscoveredFeed]]:
        entry = self._entries.get(self.key(query))
        if entry is None:
            return None
        stored_at, feeds = entry
        if self._clock() - stored_at > self.ttl:
            del self._entries[self.key(query)]
            return None
        return list(feeds)

    def put(self, query: str, feeds: List[DiscoveredFeed]) -> None:
        if self.ttl > 0:
            self._entries[self.key(query)] = (self._clock(), list(feeds))


class _Candidates:
    """Ordered feed list, deduplicated by absolute URL."""

    def __init__(self) -> None:
        self._seen: set = set()
        self.feeds: List[DiscoveredFeed] = []

    def add(self, feed: DiscoveredFeed) -> bool:
        if feed.url in self._seen:
            return False
        self._seen.add(feed.url)
        self.feeds.append(feed)
        return True

    def extend(self, feeds: Iterable[DiscoveredFeed]) -> None:
        for feed in feeds:
            self.add(feed)


def _unwrap_redirect(href: str) -> str:
    try:
        parsed = urlparse(href)
    except ValueError:
        return ""
    target = parse_qs(parsed.query).get("uddg")
    if target:
        return target[0]
    if href.startswith("//"):
        return "https:" + href
    return href


async def search_site(client: httpx.AsyncClient, query: str) -> Optional[str]:
    url = f"{SEARCH_URL}?{urlencode({'q': f'{query} rss feed'})}"
    try:
        r = await fetch_page(client, url)
    except FETCH_ERRORS as exc:
        logger.warning("[discover] search failed for %r: %s", query, exc)
        return None
    if not r.ok:
        logger.warning("[discover] search returned HTTP %s for %r", r.status, query)
        return None
    soup = BeautifulSoup(r.text, "html.parser")
    search_host = hostname_of(SEARCH_URL) or ""
    for a in soup.select("a.result__a"):
        href = _unwrap_redirect(a.get("href") or "")
        host = hostname_of(href)
        # ads link back through the search engine itself
        if _SCHEME_RE.match(href) and host and not host.endswith(search_host.split(".", 1)[-1]):
            return href
    return None


async def resolve_site(client: httpx.AsyncClient, query: str) -> str:
    kind, value = classify_query(query)
    if kind == "url":
        return value
    found = await search_site(client, value)
    if found:
        return found
    guess = guess_domain(value)
    if guess:
        status = await head_status(client, guess)
        # 405: the server exists but will not answer HEAD
        if status in (200, 405):
            logger.info("[discover] guessed %s for %r", guess, value)
            return guess
    raise DiscoveryError(f'Could not find a website for "{value}"')


def scan_link_alternates(html: str, page_url: str) -> List[DiscoveredFeed]:
    origin = origin_of(page_url)
    soup = BeautifulSoup(html, "html.parser")
    feeds = _Candidates()
    for link in soup.find_all("link"):
        rel = [r.lower() for r in (link.get("rel") or [])]
        kind = (link.get("type") or "").lower()
        href = (link.get("href") or "").strip()
        if "alternate" not in rel or not href:
            continue
        if "rss" not in kind and "atom" not in kind:
            continue
        try:
            url = urljoin(origin + "/", href)
        except ValueError:
            logger.debug("[discover] skipping malformed feed link %r", href)
            continue
        feeds.add(DiscoveredFeed(
            url=url,
            title=(link.get("title") or "").strip(),
            type="atom" if "atom" in kind else "rss",
            site_url=origin,
        ))
    return feeds.feeds


async def _probe_path(client: httpx.AsyncClient, origin: str, path: str) -> Optional[DiscoveredFeed]:
    try:
        r = await probe(client, origin + path)
    except FETCH_ERRORS as exc:
        logger.debug("[discover] probe %s%s failed: %s", origin, path, exc)
        return None
    if not r.ok:
        return None
    feed = parse_feed(r.text)
    if feed is None:
        return None
    return DiscoveredFeed(url=r.url, title=feed.title or "", type=feed.kind, site_url=feed.site_url or origin)


async def probe_common_paths(client: httpx.AsyncClient, origin: str) -> List[DiscoveredFeed]:
    results = await asyncio.gather(*(_probe_path(client, origin, path) for path in COMMON_FEED_PATHS))
    return [feed for feed in results if feed is not None]


async def _verify(client: httpx.AsyncClient, feed: DiscoveredFeed) -> Optional[DiscoveredFeed]:
    try:
        parsed = await fetch_feed(client, feed.url)
    except FeedError as exc:
        logger.debug("[discover] dropping %s: %s", feed.url, exc)
        return None
    return feed.model_copy(update={
        "title": parsed.title or feed.title or feed.url,
        "type": parsed.kind,
        "site_url": parsed.site_url or feed.site_url,
    })


async def verify_candidates(client: httpx.AsyncClient, feeds: List[DiscoveredFeed]) -> List[DiscoveredFeed]:
    """Backfill generic titles; candidates that fail to parse are dropped."""
    generic = [feed for feed in feeds if is_generic_title(feed.title)]
    verified = await asyncio.gather(*(_verify(client, feed) for feed in generic))
    by_url = {feed.url: result for feed, result in zip(generic, verified)}
    out: List[DiscoveredFeed] = []
    for feed in feeds:
        if feed.url not in by_url:
            out.append(feed)
        elif by_url[feed.url] is not None:
            out.append(by_url[feed.url])
    return out


def _is_feed_response(content_type: str) -> bool:
    ct = (content_type or "").lower()
    return any(marker in ct for marker in FEED_CONTENT_TYPES)


async def _discover(client: httpx.AsyncClient, query: str) -> List[DiscoveredFeed]:
    site_url = await resolve_site(client, query)
    logger.info("[discover] %r -> %s", query, site_url)

    page = None
    try:
        page = await fetch_page(client, site_url)
    except FETCH_ERRORS as exc:
        logger.warning("[discover] could not load %s: %s", site_url, exc)
    page_url = page.url if page is not None else site_url
    origin = origin_of(page_url)

    if page is not None and page.ok and _is_feed_response(page.content_type):
        feed = parse_feed(page.text)
        if feed is not None:
            return [DiscoveredFeed(
                url=page_url,
                title=feed.title or page_url,
                type=feed.kind,
                site_url=feed.site_url,
            )]

    candidates = _Candidates()
    if page is not None and page.ok:
        candidates.extend(scan_link_alternates(page.text, page_url))
    candidates.extend(await probe_common_paths(client, origin))

    final = _Candidates()
    final.extend(await verify_candidates(client, candidates.feeds))
    if not final.feeds:
        raise DiscoveryError(f'No RSS/Atom feeds found for "{query.strip()}"')
    logger.info("[discover] %d feed(s) for %r", len(final.feeds), query)
    return final.feeds


async def discover_feeds(
    query: str,
    client: Optional[httpx.AsyncClient] = None,
    cache: Optional[DiscoveryCache] = None,
) -> List[DiscoveredFeed]:
    if not query or not query.strip():
        raise DiscoveryError("Please enter a website, a URL or a name to search for")
    if cache is not None:
        cached = cache.get(query)
        if cached is not None:
            return cached
    if client is None:
        async with make_client() as own:
            feeds = await _discover(own, query)
    else:
        feeds = await _discover(client, query)
    if cache is not None:
        cache.put(query, feeds)
    return feeds
