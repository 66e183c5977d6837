"""Recover article content from Next.js flight data (``self.__next_f.push``).

Client-rendered sites ship the article as escaped JSON inside inline
scripts. We unescape each pushed string, cut the ``"content":[...]`` array
out of it with a bracket counter, render the typed blocks to HTML and append
marker elements (``.extracted-content``, ``.extracted-author``, ...) that the
site's selectors pick up.
"""

from __future__ import annotations

import html
import json
import logging
import re
from typing import Any, Callable, List, Optional

from bs4 import BeautifulSoup, Tag

from .models import AssetRef, ContentBlock, GalleryBlock, ImageBlock, TextBlock

logger = logging.getLogger(__name__)

PUSH_MARKER = "self.__next_f.push"
PUSH_RE = re.compile(r'self\.__next_f\.push\(\[[^,]+,\s*"(.*)"\]\)', re.DOTALL)
CONTENT_KEY = '"content":'

FIRST_NAME_RE = re.compile(r'"firstName":"(.*?)"')
LAST_NAME_RE = re.compile(r'"lastName":"(.*?)"')
DATE_RE = re.compile(r'"date":"(.*?)"')
TITLE_RE = re.compile(r'"title":"(.*?)"')


def unescape_payload(raw: str) -> str:
    try:
        return json.loads('"' + raw.replace("\n", "\\n") + '"')
    except ValueError:
        return raw.replace('\\"', '"').replace("\\\\", "\\")


def extract_content_array(text: str) -> Optional[str]:
    """Return the ``"content":[...]`` array literal, matched by bracket depth.

    Brackets inside string values are counted too, so a literal ``[`` or
    ``]`` in the content text throws the depth off.
    """
    idx = text.find(CONTENT_KEY + "[")
    if idx == -1:
        return None
    depth = 0
    for pos in range(idx + len(CONTENT_KEY), len(text)):
        char = text[pos]
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return text[idx + len(CONTENT_KEY):pos + 1]
    return None


def _asset(value: Any) -> Optional[AssetRef]:
    if not isinstance(value, dict):
        return None
    ref = value.get("_ref")
    return AssetRef.parse(ref) if isinstance(ref, str) else None


def _image(raw: dict) -> Optional[ImageBlock]:
    asset = _asset(raw.get("asset"))
    if asset is None:
        return None
    caption = raw.get("caption")
    return ImageBlock(asset=asset, caption=caption if isinstance(caption, str) else "")


def decode_blocks(raw: Any) -> List[ContentBlock]:
    """Decode the loosely typed block list; unknown ``_type`` values are skipped."""
    blocks: List[ContentBlock] = []
    if not isinstance(raw, list):
        return blocks
    for item in raw:
        if not isinstance(item, dict):
            continue
        kind = item.get("_type")
        if kind == "block" and isinstance(item.get("children"), list):
            texts = [c.get("text") for c in item["children"] if isinstance(c, dict)]
            blocks.append(TextBlock(children=[t for t in texts if isinstance(t, str)]))
        elif kind == "image":
            image = _image(item)
            if image is not None:
                blocks.append(image)
        elif kind == "gallery" and isinstance(item.get("images"), list):
            images = [_image(i) for i in item["images"] if isinstance(i, dict)]
            blocks.append(GalleryBlock(images=[i for i in images if i is not None]))
    return blocks


def _figure(image: ImageBlock, cdn_base: str) -> str:
    src = html.escape(image.asset.url(cdn_base), quote=True)
    return f'<figure><img src="{src}" /><figcaption>{html.escape(image.caption)}</figcaption></figure>'


def render_blocks(blocks: List[ContentBlock], cdn_base: str) -> str:
    parts: List[str] = []
    for block in blocks:
        if isinstance(block, TextBlock):
            parts.append(f"<p>{html.escape(' '.join(block.children), quote=False)}</p>")
        elif isinstance(block, ImageBlock):
            parts.append(_figure(block, cdn_base))
        elif isinstance(block, GalleryBlock):
            parts.extend(_figure(image, cdn_base) for image in block.images)
    return "\n".join(parts)


def _append_marker(doc: BeautifulSoup, css_class: str, inner_html: str) -> None:
    fragment = BeautifulSoup(f'<div class="{css_class}">{inner_html}</div>', "html.parser")
    target = doc.body or doc
    target.append(fragment.div)


def _append_metadata(doc: BeautifulSoup, text: str) -> None:
    first, last = FIRST_NAME_RE.search(text), LAST_NAME_RE.search(text)
    if first and last:
        _append_marker(doc, "extracted-author", html.escape(f"{first.group(1)} {last.group(1)}"))
    date = DATE_RE.search(text)
    if date:
        _append_marker(doc, "extracted-date", html.escape(date.group(1)))
    title = TITLE_RE.search(text)
    if title:
        _append_marker(doc, "extracted-title", html.escape(title.group(1)))


def hydrate_script(doc: BeautifulSoup, script_text: str, cdn_base: str) -> bool:
    """Process one inline script; returns True if content was appended."""
    match = PUSH_RE.search(script_text)
    if not match:
        return False
    payload = unescape_payload(match.group(1))
    array = extract_content_array(payload)
    if array is None:
        return False
    rendered = render_blocks(decode_blocks(json.loads(array)), cdn_base)
    if not rendered:
        return False
    _append_marker(doc, "extracted-content", rendered)
    _append_metadata(doc, payload)
    return True


def make_hydration_transform(
    cdn_base: str,
    fast_selector: Optional[str] = None,
    min_text: int = 50,
) -> Callable[[Tag, BeautifulSoup], None]:
    """Build a content transform that fills in marker elements from flight data.

    If ``fast_selector`` already holds more than ``min_text`` characters the
    page rendered server-side and the scripts are left alone.
    """

    def transform(_node: Tag, doc: BeautifulSoup) -> None:
        if fast_selector:
            fast = doc.select_one(fast_selector)
            if fast is not None and len(fast.get_text(strip=True)) > min_text:
                return
        found = 0
        for script in doc.find_all("script"):
            text = script.string or script.get_text()
            if not text or PUSH_MARKER not in text:
                continue
            try:
                if hydrate_script(doc, text, cdn_base):
                    found += 1
            except (ValueError, TypeError, KeyError) as exc:
                logger.debug("[hydrate] skipping script: %s", exc)
        if found:
            logger.info("[hydrate] recovered content from %d script(s)", found)

    return transform
