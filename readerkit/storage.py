import logging
import os
import sqlite3
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .errors import DuplicateKeyError, StorageError
from .models import FeedItem, FeedSource, StoredArticle
from .utils import make_id

logger = logging.getLogger(__name__)

DB_PATH = os.getenv("DB_PATH", "reader.db")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS rss_folders (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    parent_id TEXT REFERENCES rss_folders(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS rss_feeds (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    folder_id TEXT REFERENCES rss_folders(id) ON DELETE SET NULL,
    url TEXT NOT NULL,
    title TEXT NOT NULL,
    site_url TEXT,
    created_at TEXT NOT NULL,
    UNIQUE (user_id, url)
);
CREATE TABLE IF NOT EXISTS rss_articles (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    feed_id TEXT NOT NULL REFERENCES rss_feeds(id) ON DELETE CASCADE,
    guid TEXT NOT NULL CHECK (guid <> ''),
    title TEXT,
    link TEXT,
    pub_date TEXT,
    author TEXT,
    content TEXT,
    content_snippet TEXT,
    image_url TEXT,
    is_read INTEGER NOT NULL DEFAULT 0,
    read_at TEXT,
    created_at TEXT NOT NULL,
    UNIQUE (user_id, feed_id, guid)
);
CREATE INDEX IF NOT EXISTS rss_articles_unread ON rss_articles (user_id, is_read, feed_id);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(dt: Optional[datetime]) -> Optional[str]:
    # stored as UTC ISO strings so text comparison orders them
    return dt.astimezone(timezone.utc).isoformat() if dt else None


def _conn():
    os.makedirs(os.path.dirname(DB_PATH), exist_ok=True) if "/" in DB_PATH else None
    cx = sqlite3.connect(DB_PATH)
    cx.row_factory = sqlite3.Row
    cx.execute("PRAGMA foreign_keys = ON")
    cx.executescript(_SCHEMA)
    return cx


def reset_db_if_requested():
    if os.getenv("RESET_DB_ON_RUN", "false").lower() == "true":
        if os.path.exists(DB_PATH):
            os.remove(DB_PATH)
            logger.info("[db] removed %s", DB_PATH)


def _insert(cx, sql: str, params: tuple):
    try:
        cx.execute(sql, params)
    except sqlite3.IntegrityError as e:
        if "UNIQUE" in str(e):
            raise DuplicateKeyError(str(e)) from e
        raise StorageError(str(e)) from e
    except sqlite3.Error as e:
        raise StorageError(str(e)) from e


# ---- folders ----

def get_or_create_folder(user_id: str, name: str, parent_id: Optional[str] = None) -> str:
    cx = _conn()
    try:
        row = cx.execute(
            "SELECT id FROM rss_folders WHERE user_id=? AND name=? AND parent_id IS ?",
            (user_id, name, parent_id),
        ).fetchone()
        if row:
            return row["id"]
        folder_id = make_id(user_id, parent_id, name)
        _insert(
            cx,
            "INSERT INTO rss_folders (id, user_id, name, parent_id, created_at) VALUES (?, ?, ?, ?, ?)",
            (folder_id, user_id, name, parent_id, _now()),
        )
        cx.commit()
        return folder_id
    finally:
        cx.close()


# ---- feeds ----

def _feed(row) -> FeedSource:
    return FeedSource(
        id=row["id"],
        user_id=row["user_id"],
        folder_id=row["folder_id"],
        url=row["url"],
        title=row["title"],
        site_url=row["site_url"],
    )


def insert_feed(
    user_id: str,
    url: str,
    title: str,
    site_url: Optional[str] = None,
    folder_id: Optional[str] = None,
) -> FeedSource:
    """Raises DuplicateKeyError if the user already has this url."""
    feed_id = make_id(user_id, url)
    cx = _conn()
    try:
        _insert(
            cx,
            "INSERT INTO rss_feeds (id, user_id, folder_id, url, title, site_url, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (feed_id, user_id, folder_id, url, title, site_url, _now()),
        )
        cx.commit()
    finally:
        cx.close()
    return FeedSource(id=feed_id, user_id=user_id, folder_id=folder_id, url=url, title=title, site_url=site_url)


def get_feed(user_id: str, feed_id: str) -> Optional[FeedSource]:
    cx = _conn()
    try:
        row = cx.execute("SELECT * FROM rss_feeds WHERE user_id=? AND id=?", (user_id, feed_id)).fetchone()
        return _feed(row) if row else None
    finally:
        cx.close()


def list_feeds(user_id: str) -> List[FeedSource]:
    cx = _conn()
    try:
        rows = cx.execute("SELECT * FROM rss_feeds WHERE user_id=? ORDER BY title", (user_id,)).fetchall()
        return [_feed(r) for r in rows]
    finally:
        cx.close()


def update_feed(feed_id: str, title: str, site_url: Optional[str] = None):
    cx = _conn()
    try:
        cx.execute(
            "UPDATE rss_feeds SET title=?, site_url=COALESCE(?, site_url) WHERE id=?",
            (title, site_url, feed_id),
        )
        cx.commit()
    finally:
        cx.close()


def delete_feed(user_id: str, feed_id: str) -> bool:
    """Delete a subscription; its articles go with it."""
    cx = _conn()
    try:
        cur = cx.execute("DELETE FROM rss_feeds WHERE user_id=? AND id=?", (user_id, feed_id))
        cx.commit()
        return cur.rowcount > 0
    finally:
        cx.close()


# ---- articles ----

def insert_article(user_id: str, feed_id: str, item: FeedItem) -> str:
    """Insert one feed item; DuplicateKeyError if (user, feed, guid) exists."""
    article_id = make_id(user_id, feed_id, item.guid)
    cx = _conn()
    try:
        _insert(
            cx,
            "INSERT INTO rss_articles (id, user_id, feed_id, guid, title, link, pub_date, author, "
            "content, content_snippet, image_url, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                article_id, user_id, feed_id, item.guid, item.title, item.link, _iso(item.pub_date),
                item.author, item.content, item.content_snippet, item.image_url, _now(),
            ),
        )
        cx.commit()
    finally:
        cx.close()
    return article_id


def _article(row) -> StoredArticle:
    return StoredArticle(
        id=row["id"],
        user_id=row["user_id"],
        feed_id=row["feed_id"],
        guid=row["guid"],
        title=row["title"] or "",
        link=row["link"] or "",
        pub_date=row["pub_date"],
        author=row["author"],
        content=row["content"],
        content_snippet=row["content_snippet"],
        image_url=row["image_url"],
        is_read=bool(row["is_read"]),
        read_at=row["read_at"],
    )


def list_articles(
    user_id: str,
    feed_id: Optional[str] = None,
    include_read: bool = True,
    limit: int = 50,
) -> List[StoredArticle]:
    sql = "SELECT * FROM rss_articles WHERE user_id=?"
    params: list = [user_id]
    if feed_id:
        sql += " AND feed_id=?"
        params.append(feed_id)
    if not include_read:
        sql += " AND is_read=0"
    sql += " ORDER BY COALESCE(pub_date, created_at) DESC LIMIT ?"
    params.append(limit)
    cx = _conn()
    try:
        return [_article(r) for r in cx.execute(sql, params).fetchall()]
    finally:
        cx.close()


def unread_counts(user_id: str) -> Dict[str, int]:
    cx = _conn()
    try:
        rows = cx.execute(
            "SELECT feed_id, COUNT(1) AS n FROM rss_articles WHERE user_id=? AND is_read=0 GROUP BY feed_id",
            (user_id,),
        ).fetchall()
        return {r["feed_id"]: r["n"] for r in rows}
    finally:
        cx.close()


def set_read(user_id: str, article_ids: Iterable[str], read: bool = True) -> int:
    ids = list(article_ids)
    if not ids:
        return 0
    marks = ",".join("?" for _ in ids)
    cx = _conn()
    try:
        cur = cx.execute(
            f"UPDATE rss_articles SET is_read=?, read_at=? WHERE user_id=? AND id IN ({marks})",
            (int(read), _now() if read else None, user_id, *ids),
        )
        cx.commit()
        return cur.rowcount
    finally:
        cx.close()


def mark_feed_read(user_id: str, feed_id: str) -> int:
    cx = _conn()
    try:
        cur = cx.execute(
            "UPDATE rss_articles SET is_read=1, read_at=? WHERE user_id=? AND feed_id=? AND is_read=0",
            (_now(), user_id, feed_id),
        )
        cx.commit()
        return cur.rowcount
    finally:
        cx.close()


# ---- retention ----

def delete_older_than(user_id: str, cutoff: datetime, is_read: bool) -> int:
    cx = _conn()
    try:
        cur = cx.execute(
            "DELETE FROM rss_articles WHERE user_id=? AND is_read=? AND COALESCE(pub_date, created_at) < ?",
            (user_id, int(is_read), _iso(cutoff)),
        )
        cx.commit()
        return cur.rowcount
    finally:
        cx.close()


def trim_feed(feed_id: str, keep: int) -> int:
    """Delete everything past the newest ``keep`` articles of a feed."""
    cx = _conn()
    try:
        cur = cx.execute(
            "DELETE FROM rss_articles WHERE id IN ("
            " SELECT id FROM rss_articles WHERE feed_id=?"
            " ORDER BY COALESCE(pub_date, created_at) DESC LIMIT -1 OFFSET ?)",
            (feed_id, keep),
        )
        cx.commit()
        return cur.rowcount
    finally:
        cx.close()
