"""Rule-driven article extraction over a parsed HTML document.

Every scalar field walks its selector list in order and the first non-empty
value wins. Content runs the rule set's transforms first (they may add marker
elements to the document), then selects a subtree the same way and cleans it.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .models import ExtractedArticle, ExtractionRuleSet, Selector, Transform
from .utils import hostname_of, parse_date

logger = logging.getLogger(__name__)

BOILERPLATE_TAGS = ["script", "style", "noscript", "form", "header", "footer", "nav", "aside"]

Document = Union[BeautifulSoup, str, bytes, None]


def _as_soup(document: Document) -> Optional[BeautifulSoup]:
    if isinstance(document, BeautifulSoup):
        return document
    if not document:
        return None
    return BeautifulSoup(document, "html.parser")


def _query(doc: Tag, css: str) -> Optional[Tag]:
    return doc.select_one(css)


def _inner_html(node: Tag) -> str:
    return "".join(str(child) for child in node.contents)


def _resolve(doc: Tag, selector: Selector) -> str:
    if isinstance(selector, str):
        node = _query(doc, selector)
        return node.get_text(" ", strip=True) if node is not None else ""
    css, attr = selector
    node = _query(doc, css)
    if node is None:
        return ""
    value = node.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    return (value or "").strip()


def select_field(doc: Tag, selectors: Iterable[Selector]) -> Optional[str]:
    for selector in selectors:
        value = _resolve(doc, selector)
        if value:
            return value
    return None


def select_content(doc: Tag, selectors: Iterable[Selector]) -> Optional[Tag]:
    for selector in selectors:
        css = selector if isinstance(selector, str) else selector[0]
        node = _query(doc, css)
        if node is not None and _inner_html(node).strip():
            return node
    return None


def apply_transforms(doc: BeautifulSoup, transforms: Mapping[str, Transform]) -> None:
    for css, transform in transforms.items():
        nodes = list(doc.select(css))
        # fragments parsed without a <body> still get their body transform
        if not nodes and css == "body":
            nodes = [doc]
        for node in nodes:
            try:
                transform(node, doc)
            except Exception as exc:  # isolated per transform
                logger.warning("[extract] transform %r failed: %s", css, exc)


def default_clean(root: Tag) -> None:
    """Generic boilerplate removal applied unless a rule set opts out."""
    for tag in root(BOILERPLATE_TAGS):
        tag.decompose()
    for p in root.find_all("p"):
        if not p.get_text(strip=True) and not p.find(["img", "iframe", "video"]):
            p.decompose()


def clean_content(root: Tag, selectors: Iterable[str]) -> None:
    for css in selectors:
        for node in root.select(css):
            node.decompose()


def _normalize_date(raw: Optional[str]) -> Optional[str]:
    parsed = parse_date(raw)
    return parsed.isoformat() if parsed else raw


def extract(document: Document, rules: ExtractionRuleSet, url: Optional[str] = None) -> ExtractedArticle:
    doc = _as_soup(document)
    if doc is None:
        return ExtractedArticle(url=url, domain=hostname_of(url))

    if rules.content.transforms:
        apply_transforms(doc, rules.content.transforms)

    content = None
    node = select_content(doc, rules.content.selectors)
    if node is not None:
        fragment = BeautifulSoup(_inner_html(node), "html.parser")
        if rules.content.default_cleaner:
            default_clean(fragment)
        clean_content(fragment, rules.content.clean)
        content = str(fragment).strip() or None

    lead_image = select_field(doc, rules.lead_image_url.selectors)
    if lead_image and url:
        lead_image = urljoin(url, lead_image)

    return ExtractedArticle(
        url=url,
        title=select_field(doc, rules.title.selectors),
        author=select_field(doc, rules.author.selectors),
        date_published=_normalize_date(select_field(doc, rules.date_published.selectors)),
        lead_image_url=lead_image,
        excerpt=select_field(doc, rules.excerpt.selectors),
        content=content,
        domain=hostname_of(url),
    )
