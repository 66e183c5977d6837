import asyncio

import httpx
import pytest

from readerkit import storage
from readerkit.fetchers import make_client


def rss(title="Example", items=(), link="https://example.com/"):
    """Small RSS 2.0 document; ``items`` are (guid, title, link) tuples."""
    body = "".join(
        f"<item><guid>{guid}</guid><title>{t}</title><link>{url}</link>"
        f"<pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate><description>About {t}</description></item>"
        for guid, t, url in items
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<rss version="2.0"><channel><title>{title}</title><link>{link}</link>{body}</channel></rss>'
    )


def run_with(handler, fn):
    """Run ``fn(client)`` against an httpx client backed by ``handler``."""

    async def main():
        async with make_client(transport=httpx.MockTransport(handler)) as client:
            return await fn(client)

    return asyncio.run(main())


@pytest.fixture
def db(tmp_path, monkeypatch):
    path = str(tmp_path / "reader.db")
    monkeypatch.setattr(storage, "DB_PATH", path)
    return path
