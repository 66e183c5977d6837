import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import find_dotenv, load_dotenv

# Load .env if present (CI uses env vars)
dotenv_path = find_dotenv(usecwd=True)
if dotenv_path:
    load_dotenv(dotenv_path, override=False)

from . import storage
from .discovery import DiscoveryCache, discover_feeds
from .errors import ReaderError
from .fetchers import fetch_article, fetch_feed, make_client
from .sync import add_feed, cleanup_articles, feeds_with_unread_counts, import_opml, refresh_all_feeds

LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING").upper()
DEFAULT_USER = os.getenv("READER_USER", "default")
DISCOVERY_CACHE_TTL = float(os.getenv("DISCOVERY_CACHE_TTL", "0"))


def _print(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def _discover(args):
    cache = DiscoveryCache(DISCOVERY_CACHE_TTL) if DISCOVERY_CACHE_TTL > 0 else None
    async with make_client() as client:
        feeds = await discover_feeds(args.query, client, cache=cache)
    return [f.to_json() for f in feeds]


async def _parse(args):
    async with make_client() as client:
        article = await fetch_article(client, args.url)
    data = article.to_json()
    data["readTimeMinutes"] = article.read_time_minutes
    return data


async def _feed(args):
    async with make_client() as client:
        feed = await fetch_feed(client, args.url)
    return feed.to_json()


async def _add(args):
    folder_id = storage.get_or_create_folder(args.user, args.folder) if args.folder else None
    async with make_client() as client:
        feed = await add_feed(client, args.user, args.url, folder_id)
    return feed.to_json()


async def _refresh(args):
    async with make_client() as client:
        result = await refresh_all_feeds(client, args.user)
    return result.to_json()


async def _unread(args):
    return feeds_with_unread_counts(args.user)


async def _import_opml(args):
    with open(args.file, "r", encoding="utf-8") as f:
        text = f.read()
    imported, failed = import_opml(args.user, text)
    return {"imported": imported, "failed": failed}


async def _cleanup(args):
    return cleanup_articles(args.user).to_json()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="readerkit", description="Feed discovery, parsing and article extraction")
    p.add_argument("--user", default=DEFAULT_USER, help="user id for subscriptions")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("discover", help="find feeds for a site, URL or name")
    s.add_argument("query")
    s.set_defaults(func=_discover)

    s = sub.add_parser("parse", help="extract an article")
    s.add_argument("url")
    s.set_defaults(func=_parse)

    s = sub.add_parser("feed", help="fetch and parse a feed")
    s.add_argument("url")
    s.set_defaults(func=_feed)

    s = sub.add_parser("add", help="subscribe to a feed")
    s.add_argument("url")
    s.add_argument("--folder")
    s.set_defaults(func=_add)

    sub.add_parser("refresh", help="refresh every subscription").set_defaults(func=_refresh)
    sub.add_parser("unread", help="subscriptions with unread counts").set_defaults(func=_unread)

    s = sub.add_parser("import-opml", help="subscribe to every feed in an OPML file")
    s.add_argument("file")
    s.set_defaults(func=_import_opml)

    sub.add_parser("cleanup", help="apply the retention policy").set_defaults(func=_cleanup)
    return p


def main(argv=None) -> int:
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s")

    args = build_parser().parse_args(argv)
    try:
        _print(asyncio.run(args.func(args)))
    except ReaderError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e.strerror or e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
