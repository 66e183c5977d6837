"""Per-site extraction rules, plus the generic fallback."""

from __future__ import annotations

from typing import Optional

from bs4 import BeautifulSoup, Tag

from .hydration import make_hydration_transform
from .models import ContentRule, ExtractionRuleSet, FieldRule
from .registry import ExtractorRegistry, RegistryBuilder

SANITY_CDN = "https://cdn.sanity.io/images/ba9gdw6b/production"


def _og(prop: str):
    return (f'meta[property="{prop}"]', "content")


def _meta(name: str):
    return (f'meta[name="{name}"]', "content")


GENERIC = ExtractionRuleSet(
    domain="*",
    title=FieldRule(selectors=(_og("og:title"), _meta("twitter:title"), "h1", "title")),
    author=FieldRule(selectors=(_meta("author"), '[rel="author"]', ".author")),
    date_published=FieldRule(selectors=(
        _og("article:published_time"), ("time[datetime]", "datetime"), _meta("date"),
    )),
    lead_image_url=FieldRule(selectors=(_og("og:image"), _meta("twitter:image"))),
    excerpt=FieldRule(selectors=(_og("og:description"), _meta("description"))),
    content=ContentRule(selectors=("article", "main", '[role="main"]', "body")),
)


ULTIMOUOMO = ExtractionRuleSet(
    domain="ultimouomo.it",
    aliases=("www.ultimouomo.it",),
    title=FieldRule(selectors=("h1", _og("og:title"), _meta("twitter:title"), ".extracted-title")),
    author=FieldRule(selectors=(_meta("author"), ".author-name", ".extracted-author")),
    date_published=FieldRule(selectors=(
        _og("article:published_time"), ("time[datetime]", "datetime"), ".extracted-date",
    )),
    lead_image_url=FieldRule(selectors=(_og("og:image"), _meta("twitter:image"), ".extracted-image")),
    excerpt=FieldRule(selectors=(_og("og:description"), _meta("description"))),
    content=ContentRule(
        selectors=(".extracted-content", ".slug_post__WJWtL", "article"),
        transforms={"body": make_hydration_transform(SANITY_CDN, fast_selector=".slug_post__WJWtL")},
        clean=("script", "style"),
    ),
)


SPORTS_SKY_IT = ExtractionRuleSet(
    domain="sports.sky.it",
    title=FieldRule(selectors=("h1.c-hero__title-content", _meta("og:title"))),
    author=FieldRule(selectors=(".c-hero__author-name", _meta("author"))),
    date_published=FieldRule(selectors=(_meta("article:published_time"), ".c-hero__date")),
    lead_image_url=FieldRule(selectors=(_meta("og:image"), (".c-hero__media img", "src"))),
    content=ContentRule(
        selectors=(".l-grid__main", "article", ".c-article-body", ".c-article-abstract"),
        clean=(
            ".c-hero__author-name",
            ".c-intro",
            ".c-social-share",
            ".j-social-share",
            ".c-box-marketing",
            ".c-banner-no-cookies",
            ".video-playlist-inline",
            ".s-native-sponsored",
            ".s-social-connection",
            ".s-tag-section",
            ".s-outbrain",
            ".j-outbrain",
            ".c-personalization-widget",
            "#autoPushNotifications",
            'p:-soup-contains("selectBoxes")',
            'p:-soup-contains("SkySport")',
        ),
    ),
)


UNAPAROLAALGIORNO = ExtractionRuleSet(
    domain="unaparolaalgiorno.it",
    aliases=("www.unaparolaalgiorno.it",),
    title=FieldRule(selectors=("article.word h1", "h1", _og("og:title"))),
    author=FieldRule(selectors=(_meta("author"),)),
    date_published=FieldRule(selectors=(_og("article:published_time"), ".word-datapub")),
    lead_image_url=FieldRule(selectors=(_og("og:image"),)),
    excerpt=FieldRule(selectors=(_meta("description"), _og("og:description"), ".word-significato")),
    content=ContentRule(
        selectors=("article.word .content",),
        clean=(
            ".social-share-container",
            ".social-share",
            "#quiz-section-container",
            "#daily-quiz-section",
            "script",
            "style",
            ".newsletter-box",
            "#comments-container",
            "#next-section-container",
        ),
        # word pages are short; the generic pass strips too much
        default_cleaner=False,
    ),
)


def _promote(node: Tag, data_attr: str, attr: str) -> None:
    value = node.get(data_attr)
    if value:
        node[attr] = value
        del node[data_attr]
        if "class" in node.attrs:
            del node["class"]


def _lazy_src(node: Tag, _doc: Optional[BeautifulSoup] = None) -> None:
    _promote(node, "data-src", "src")


def _lazy_srcset(node: Tag, _doc: Optional[BeautifulSoup] = None) -> None:
    _promote(node, "data-srcset", "srcset")


def _unwrap_iframe(node: Tag, _doc: Optional[BeautifulSoup] = None) -> None:
    iframe = node.find("iframe")
    if iframe is not None:
        node.replace_with(iframe)


COMINGSOON = ExtractionRuleSet(
    domain="www.comingsoon.it",
    aliases=("comingsoon.it",),
    title=FieldRule(selectors=("h1.h1", "h1", _og("og:title"))),
    author=FieldRule(selectors=("#author", '.art-personal a[rel="publisher"]', _meta("author"))),
    date_published=FieldRule(selectors=(
        ("time[datetime]", "datetime"), _og("article:published_time"), "time",
    )),
    lead_image_url=FieldRule(selectors=(_og("og:image"),)),
    excerpt=FieldRule(selectors=(_meta("description"), _og("og:description"), ".art-subtitle")),
    content=ContentRule(
        selectors=("#contenuto-articolo", "article"),
        transforms={
            "iframe[data-src]": _lazy_src,
            "img[data-src]": _lazy_src,
            "picture source[data-srcset]": _lazy_srcset,
            "span.contenitore-iframe": _unwrap_iframe,
        },
        clean=(
            ".advCollapse",
            ".boxAdv",
            ".gptslot",
            ".art-social",
            ".art-tag",
            ".art-personal",
            ".tasti-social-top",
            ".cs-btn",
            "script",
            "style",
            "noscript",
            ".liveBlog_refresh",
            "#liveblog",
            ".divider-dark",
            ".breadcrumb",
        ),
    ),
)


SITE_RULES = (ULTIMOUOMO, SPORTS_SKY_IT, UNAPAROLAALGIORNO, COMINGSOON)


def register_sites(builder: RegistryBuilder) -> RegistryBuilder:
    for rules in SITE_RULES:
        builder.register(rules)
    return builder


def default_registry() -> ExtractorRegistry:
    return register_sites(RegistryBuilder()).freeze()
