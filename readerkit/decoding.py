"""Turn raw response bytes into text, whatever the server claims the charset is."""

from __future__ import annotations

import codecs
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

_LATIN1_DECL = re.compile(r"""encoding=(["'])ISO-8859-1\1""", re.IGNORECASE)
_ANY_DECL = re.compile(r"""(<\?xml[^>]*?encoding=)(["'])[^"']*\2""", re.IGNORECASE)
_META_CHARSET = re.compile(r"""(<meta[^>]+charset=["']?)[\w-]+""", re.IGNORECASE)


def _declare_utf8(text: str) -> str:
    text = _LATIN1_DECL.sub(lambda m: f"encoding={m.group(1)}UTF-8{m.group(1)}", text)
    text = _ANY_DECL.sub(lambda m: f"{m.group(1)}{m.group(2)}UTF-8{m.group(2)}", text, count=1)
    return _META_CHARSET.sub(r"\g<1>utf-8", text, count=1)


def decode_document(data: bytes, declared: Optional[str] = None) -> str:
    """Decode ``data`` trying UTF-8, then Latin-1, then Windows-1252.

    UTF-8 is strict so it is tried first; Latin-1 accepts every byte. When a
    non-UTF-8 decoding is used, encoding declarations in the text are
    rewritten to UTF-8 so parsers fed the re-encoded text do not decode it a
    second time. A ``declared`` charset that is neither UTF-8 nor Latin-1 is
    tried strictly between the two. Never raises.
    """
    if not data:
        return ""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass
    # declared charset: an extra step between the utf-8 and latin-1 attempts
    codec = _lookup(declared)
    if codec and codec not in ("utf-8", "utf-8-sig", "iso8859-1", "latin-1", "cp1252"):
        try:
            return _declare_utf8(data.decode(codec))
        except UnicodeDecodeError:
            logger.debug("[decode] declared charset %s does not match the body", declared)
    logger.debug("[decode] not utf-8, falling back to latin-1")
    # latin-1 maps every byte, so the cp1252 branch below is unreachable today
    try:
        return _declare_utf8(data.decode("latin-1"))
    except UnicodeDecodeError:
        pass
    return _declare_utf8(data.decode("cp1252", errors="replace"))


def charset_from_content_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    m = re.search(r"charset=([\w-]+)", content_type, re.IGNORECASE)
    return m.group(1) if m else None


def _lookup(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    try:
        return codecs.lookup(name).name
    except LookupError:
        return None
