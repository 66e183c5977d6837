"""Merge fetched feed items into storage, and the subscription workflows on top.

Inserts are idempotent by constraint: a (user, feed, guid) unique violation
counts as "existing". Two refreshes of the same feed racing each other can
both see an item as new before either inserts it; the loser is then counted
as existing, so counts are at-least-once rather than exact.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

import httpx

from . import storage
from .discovery import is_generic_title
from .errors import DuplicateKeyError, FeedError, StorageError
from .feeds import parse_opml
from .fetchers import fetch_feed
from .models import CleanupResult, FeedItem, FeedRefreshResult, FeedSource, OpmlOutline, SyncResult

logger = logging.getLogger(__name__)

READ_RETENTION_DAYS = int(os.getenv("READ_RETENTION_DAYS", "30"))
UNREAD_RETENTION_DAYS = int(os.getenv("UNREAD_RETENTION_DAYS", "90"))
MAX_ARTICLES_PER_FEED = int(os.getenv("MAX_ARTICLES_PER_FEED", "200"))

EMPTY_FEED_ERROR = "No items found or failed to parse"
ALREADY_SUBSCRIBED = "You are already subscribed to this feed."


def sync_items(user_id: str, feed_id: str, items: Iterable[FeedItem]) -> SyncResult:
    added = existing = 0
    errors: List[str] = []
    for item in items:
        try:
            storage.insert_article(user_id, feed_id, item)
            added += 1
        except DuplicateKeyError:
            existing += 1
        except StorageError as e:
            errors.append(f"Error for '{item.title}': {e}")
    if errors:
        logger.warning("[sync] feed %s: %d item(s) failed", feed_id, len(errors))
    logger.info("[sync] feed %s: %d added, %d existing", feed_id, added, existing)
    return SyncResult(added=added, existing=existing, errors=tuple(errors))


def feeds_with_unread_counts(user_id: str) -> List[dict]:
    counts = storage.unread_counts(user_id)
    return [
        {**feed.to_json(), "unreadCount": counts.get(feed.id, 0)}
        for feed in storage.list_feeds(user_id)
    ]


def _refined_title(feed: FeedSource, parsed_title: Optional[str]) -> Optional[str]:
    if not parsed_title or parsed_title == feed.title:
        return None
    if is_generic_title(feed.title) or feed.title == feed.url:
        return parsed_title
    return None


async def refresh_feed(client: httpx.AsyncClient, feed: FeedSource) -> FeedRefreshResult:
    try:
        parsed = await fetch_feed(client, feed.url)
    except FeedError as e:
        logger.warning("[sync] %s: %s", feed.url, e)
        return FeedRefreshResult(success=False, errors=[str(e)])
    if not parsed.items:
        return FeedRefreshResult(success=False, errors=[EMPTY_FEED_ERROR])

    title = _refined_title(feed, parsed.title)
    if title:
        storage.update_feed(feed.id, title, parsed.site_url)
        logger.info("[sync] renamed %s -> %r", feed.url, title)

    result = sync_items(feed.user_id, feed.id, parsed.items)
    return FeedRefreshResult(
        success=True,
        total_added=result.added,
        total_existing=result.existing,
        feeds_refreshed=1,
        errors=list(result.errors),
    )


async def refresh_all_feeds(client: httpx.AsyncClient, user_id: str) -> FeedRefreshResult:
    feeds = storage.list_feeds(user_id)
    results = await asyncio.gather(*(refresh_feed(client, feed) for feed in feeds))

    total = FeedRefreshResult(success=True)
    for feed, result in zip(feeds, results):
        total.total_added += result.total_added
        total.total_existing += result.total_existing
        total.feeds_refreshed += result.feeds_refreshed
        total.errors.extend(f"{feed.title}: {err}" for err in result.errors)
    total.success = not feeds or total.feeds_refreshed > 0
    logger.info(
        "[sync] refreshed %d/%d feed(s): %d new, %d existing",
        total.feeds_refreshed, len(feeds), total.total_added, total.total_existing,
    )
    return total


async def add_feed(
    client: httpx.AsyncClient,
    user_id: str,
    url: str,
    folder_id: Optional[str] = None,
) -> FeedSource:
    """Validate ``url`` by parsing it, subscribe, and store its current items."""
    url = url.strip()
    parsed = await fetch_feed(client, url)
    try:
        feed = storage.insert_feed(user_id, url, parsed.title or url, parsed.site_url, folder_id)
    except DuplicateKeyError as e:
        raise FeedError(ALREADY_SUBSCRIBED) from e
    sync_items(user_id, feed.id, parsed.items)
    return feed


def _is_feed_outline(outline: OpmlOutline) -> bool:
    return bool(outline.xml_url) and (outline.type or "rss").lower() in ("rss", "atom")


def _import_outlines(user_id: str, outlines: List[OpmlOutline], folder_id: Optional[str]) -> Tuple[int, int]:
    imported = failed = 0
    for outline in outlines:
        if _is_feed_outline(outline):
            title = outline.title or outline.text or outline.xml_url
            try:
                storage.insert_feed(user_id, outline.xml_url, title, outline.html_url, folder_id)
                imported += 1
            except StorageError as e:
                logger.warning("[sync] OPML import of %s failed: %s", outline.xml_url, e)
                failed += 1
        elif outline.outlines:
            name = outline.title or outline.text or "Imported"
            child = storage.get_or_create_folder(user_id, name, folder_id)
            more, bad = _import_outlines(user_id, outline.outlines, child)
            imported += more
            failed += bad
    return imported, failed


def import_opml(user_id: str, text: str) -> Tuple[int, int]:
    """Subscribe to every feed in an OPML document; returns (imported, failed).

    Feeds are stored as listed without being fetched; the next refresh
    validates them. Feeds the user already has count as failed.
    """
    imported, failed = _import_outlines(user_id, parse_opml(text), None)
    logger.info("[sync] OPML import: %d imported, %d failed", imported, failed)
    return imported, failed


def cleanup_articles(user_id: str, now: Optional[datetime] = None) -> CleanupResult:
    now = now or datetime.now(timezone.utc)
    read_deleted = storage.delete_older_than(user_id, now - timedelta(days=READ_RETENTION_DAYS), is_read=True)
    unread_deleted = storage.delete_older_than(user_id, now - timedelta(days=UNREAD_RETENTION_DAYS), is_read=False)
    trimmed = sum(storage.trim_feed(feed.id, MAX_ARTICLES_PER_FEED) for feed in storage.list_feeds(user_id))
    logger.info("[db] cleanup: %d read, %d unread, %d over limit", read_deleted, unread_deleted, trimmed)
    return CleanupResult(read_deleted=read_deleted, unread_deleted=unread_deleted, trimmed=trimmed)
