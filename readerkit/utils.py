import hashlib
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

_WS_RE = re.compile(r"\s+")


def make_id(*parts) -> str:
    """Create a stable hash ID from arbitrary parts (handles non-strings)."""
    cleaned = []
    for p in parts:
        if p is None:
            continue
        s = str(p).strip()
        if s:
            cleaned.append(s)
    norm = "\u0001".join(cleaned)
    return hashlib.sha256(norm.encode("utf-8")).hexdigest()


def plain_text(html: Optional[str]) -> str:
    """Visible text of an HTML fragment, whitespace collapsed."""
    if not html:
        return ""
    text = BeautifulSoup(html, "html.parser").get_text(" ")
    return _WS_RE.sub(" ", text).strip()


def word_count(html: Optional[str]) -> int:
    return len(plain_text(html).split())


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def hostname_of(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    return host.lower() if host else None


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """RFC 822 first, then ISO 8601. Naive results are taken as UTC."""
    if not value:
        return None
    value = value.strip()
    parsed = None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        pass
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_utc(dt_struct) -> Optional[datetime]:
    if not dt_struct:
        return None
    try:
        return datetime(*dt_struct[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None
