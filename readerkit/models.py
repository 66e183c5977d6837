from __future__ import annotations

import math
from datetime import datetime
from typing import Callable, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

FeedKind = Literal["rss", "atom"]

# A plain CSS selector (text is taken) or a (selector, attribute) pair.
Selector = Union[str, Tuple[str, str]]
Transform = Callable[..., None]


class Record(BaseModel):
    """Base for records exchanged as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ---- extraction rules ----

class FieldRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    selectors: Tuple[Selector, ...] = ()


class ContentRule(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    selectors: Tuple[Selector, ...] = ()
    clean: Tuple[str, ...] = ()
    transforms: Mapping[str, Transform] = Field(default_factory=dict)
    default_cleaner: bool = True


class ExtractionRuleSet(BaseModel):
    """Per-domain selector chains for every article field."""

    model_config = ConfigDict(frozen=True)

    domain: str
    aliases: Tuple[str, ...] = ()
    title: FieldRule = FieldRule()
    author: FieldRule = FieldRule()
    date_published: FieldRule = FieldRule()
    lead_image_url: FieldRule = FieldRule()
    excerpt: FieldRule = FieldRule()
    content: ContentRule = ContentRule()


class ExtractedArticle(Record):
    url: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    date_published: Optional[str] = None
    lead_image_url: Optional[str] = None
    excerpt: Optional[str] = None
    content: Optional[str] = None
    domain: Optional[str] = None
    word_count: int = 0

    @property
    def read_time_minutes(self) -> int:
        if self.word_count <= 0:
            return 0
        return max(1, math.ceil(self.word_count / 200))

    @property
    def is_empty(self) -> bool:
        return not (self.title or self.content)


# ---- hydration content blocks ----

class AssetRef(BaseModel):
    id: str
    dimensions: str
    extension: str

    @classmethod
    def parse(cls, ref: str) -> Optional["AssetRef"]:
        # image-<id>-<dimensions>-<ext>
        parts = ref.split("-")
        if len(parts) < 4 or not all(parts[1:4]):
            return None
        return cls(id=parts[1], dimensions=parts[2], extension=parts[3])

    def url(self, cdn_base: str) -> str:
        return f"{cdn_base.rstrip('/')}/{self.id}-{self.dimensions}.{self.extension}"


class TextBlock(BaseModel):
    kind: Literal["block"] = "block"
    children: List[str] = []


class ImageBlock(BaseModel):
    kind: Literal["image"] = "image"
    asset: AssetRef
    caption: str = ""


class GalleryBlock(BaseModel):
    kind: Literal["gallery"] = "gallery"
    images: List[ImageBlock] = []


ContentBlock = Union[TextBlock, ImageBlock, GalleryBlock]


# ---- feeds ----

class FeedItem(Record):
    guid: str = ""
    title: str = ""
    link: str = ""
    pub_date: Optional[datetime] = None
    author: Optional[str] = None
    content: Optional[str] = None
    content_snippet: Optional[str] = None
    image_url: Optional[str] = None


class ParsedFeed(Record):
    title: Optional[str] = None
    site_url: Optional[str] = None
    kind: FeedKind = "rss"
    items: List[FeedItem] = []


class FeedSource(Record):
    id: Optional[str] = None
    user_id: Optional[str] = None
    folder_id: Optional[str] = None
    url: str
    title: str
    site_url: Optional[str] = None


class DiscoveredFeed(Record):
    url: str
    title: str = ""
    type: FeedKind = "rss"
    site_url: Optional[str] = None


class StoredArticle(FeedItem):
    id: str
    user_id: str
    feed_id: str
    is_read: bool = False
    read_at: Optional[datetime] = None


class SyncResult(Record):
    model_config = ConfigDict(frozen=True)

    added: int = 0
    existing: int = 0
    errors: Tuple[str, ...] = ()


class FeedRefreshResult(Record):
    success: bool
    total_added: int = 0
    total_existing: int = 0
    feeds_refreshed: int = 0
    errors: List[str] = []


class OpmlOutline(Record):
    text: Optional[str] = None
    title: Optional[str] = None
    type: Optional[str] = None
    xml_url: Optional[str] = None
    html_url: Optional[str] = None
    outlines: List["OpmlOutline"] = []


class CleanupResult(Record):
    read_deleted: int = 0
    unread_deleted: int = 0
    trimmed: int = 0
