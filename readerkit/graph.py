from __future__ import annotations

import logging
import os
from typing import List

import httpx
import yaml

from . import storage
from .errors import FeedError
from .models import FeedRefreshResult
from .sync import ALREADY_SUBSCRIBED, add_feed, feeds_with_unread_counts, refresh_all_feeds

logger = logging.getLogger(__name__)

SOURCES_FILE = os.getenv("SOURCES_FILE", "sources.yaml")


class State(dict):
    user_id: str
    feeds: List[dict]
    subscribed: int
    refresh: FeedRefreshResult
    report: List[dict]


def load_sources(_: State, path: str = None) -> State:
    with open(path or SOURCES_FILE, "r") as f:
        data = yaml.safe_load(f) or {}
    feeds = [f if isinstance(f, dict) else {"url": f} for f in data.get("feeds") or []]
    logger.info("[sources] loaded: %d", len(feeds))
    return State(user_id=str(data.get("user", "default")), feeds=feeds, subscribed=0)


async def subscribe_all(state: State, client: httpx.AsyncClient) -> State:
    """Subscribe to any configured feed that is not stored yet."""
    known = {feed.url for feed in storage.list_feeds(state["user_id"])}
    for entry in state["feeds"]:
        url = entry["url"].strip()
        if url in known:
            continue
        folder_id = None
        if entry.get("folder"):
            folder_id = storage.get_or_create_folder(state["user_id"], entry["folder"])
        try:
            await add_feed(client, state["user_id"], url, folder_id)
            state["subscribed"] += 1
        except FeedError as e:
            if str(e) != ALREADY_SUBSCRIBED:
                logger.warning("[sources] %s: %s", url, e)
    logger.info("[sources] new subscriptions: %d", state["subscribed"])
    return state


async def refresh_all(state: State, client: httpx.AsyncClient) -> State:
    state["refresh"] = await refresh_all_feeds(client, state["user_id"])
    for err in state["refresh"].errors:
        logger.warning("[refresh] %s", err)
    return state


def build_report(state: State) -> State:
    report = feeds_with_unread_counts(state["user_id"])
    state["report"] = report
    logger.info("[report] %d unread across %d feed(s)", sum(f["unreadCount"] for f in report), len(report))
    return state
