from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
import xml.sax
from typing import List, Optional

import feedparser

from .errors import OpmlError
from .models import FeedItem, OpmlOutline, ParsedFeed
from .utils import parse_date, plain_text, to_utc

logger = logging.getLogger(__name__)

SNIPPET_CHARS = 300
_IMG_SRC = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)
# the text handed to feedparser is always re-encoded as UTF-8
_UTF8_HEADERS = {"content-type": "application/xml; charset=utf-8"}


def _first_image(entry) -> Optional[str]:
    for thumb in entry.get("media_thumbnail") or []:
        if thumb.get("url"):
            return thumb["url"]
    media = entry.get("media_content") or []
    for m in media:
        if (m.get("type") or "").startswith("image/") and m.get("url"):
            return m["url"]
    for m in media:
        if m.get("medium") == "image" and m.get("url"):
            return m["url"]
    for enc in entry.get("enclosures") or []:
        if (enc.get("type") or "").startswith("image/") and (enc.get("href") or enc.get("url")):
            return enc.get("href") or enc.get("url")
    return None


def image_from_html(html: Optional[str]) -> Optional[str]:
    if not html:
        return None
    m = _IMG_SRC.search(html)
    return m.group(1) if m else None


def _entry_content(entry) -> str:
    for block in entry.get("content") or []:
        value = (block.get("value") or "").strip()
        if value:
            return value
    return ""


def _entry_author(entry) -> Optional[str]:
    author = (entry.get("author") or "").strip()
    if author:
        return author
    detail = entry.get("author_detail") or {}
    return (detail.get("name") or "").strip() or None


def _entry_date(entry):
    for key in ("published", "updated", "created"):
        parsed = parse_date(entry.get(key))
        if parsed:
            return parsed
    return to_utc(entry.get("published_parsed")) or to_utc(entry.get("updated_parsed"))


def normalize_entry(entry) -> FeedItem:
    title = (entry.get("title") or "").strip()
    link = (entry.get("link") or "").strip()
    content = _entry_content(entry)
    summary = (entry.get("summary") or "").strip()
    snippet = plain_text(summary)

    guid = (entry.get("id") or "").strip() or link or title
    if not content:
        content = summary
    image = _first_image(entry) or image_from_html(content)
    if not snippet:
        snippet = plain_text(content)[:SNIPPET_CHARS].strip()

    return FeedItem(
        guid=guid,
        title=title,
        link=link,
        pub_date=_entry_date(entry),
        author=_entry_author(entry),
        content=content or None,
        content_snippet=snippet or None,
        image_url=image,
    )


def _is_fatal(parsed) -> bool:
    exc = parsed.get("bozo_exception")
    return bool(parsed.get("bozo")) and isinstance(exc, xml.sax.SAXException)


def parse_feed(text: str) -> Optional[ParsedFeed]:
    """Parse decoded RSS or Atom text.

    Returns None when the text is not a feed at all, and a feed with no items
    when the document is malformed XML; a half-parsed item list is never
    returned.
    """
    if not text or not text.strip():
        return None
    parsed = feedparser.parse(text.encode("utf-8"), response_headers=_UTF8_HEADERS)
    version = parsed.get("version") or ""
    fatal = _is_fatal(parsed)
    if not version and (fatal or not parsed.entries):
        return None

    feed = parsed.get("feed", {})
    kind = "atom" if version.startswith("atom") else "rss"
    title = (feed.get("title") or "").strip() or None
    site_url = (feed.get("link") or "").strip() or None
    if fatal:
        logger.warning("[rss] malformed feed document: %s", parsed.get("bozo_exception"))
        return ParsedFeed(title=title, site_url=site_url, kind=kind, items=[])

    items = [normalize_entry(e) for e in parsed.entries]
    return ParsedFeed(title=title, site_url=site_url, kind=kind, items=items)


def parse_feed_items(text: str) -> List[FeedItem]:
    feed = parse_feed(text)
    return feed.items if feed else []


# ---- OPML ----

def _outline(node: ET.Element) -> OpmlOutline:
    text = node.get("text")
    return OpmlOutline(
        text=text,
        title=node.get("title") or text,
        type=node.get("type"),
        xml_url=node.get("xmlUrl"),
        html_url=node.get("htmlUrl"),
        outlines=[_outline(child) for child in node.findall("outline")],
    )


def parse_opml(text: str) -> List[OpmlOutline]:
    try:
        root = ET.fromstring(text.encode("utf-8") if isinstance(text, str) else text)
    except ET.ParseError as exc:
        raise OpmlError("Failed to parse OPML content") from exc
    body = root.find("body")
    if root.tag != "opml" or body is None:
        raise OpmlError("Failed to parse OPML content")
    return [_outline(node) for node in body.findall("outline")]
