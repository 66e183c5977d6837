from readerkit import extract as extract_mod
from readerkit.extract import extract
from readerkit.models import ContentRule, ExtractionRuleSet, FieldRule
from readerkit.sites import COMINGSOON, GENERIC


def test_first_matching_content_selector_wins(monkeypatch):
    html = '<html><body><div class="b"><p>Second</p></div><div class="c"><p>Third</p></div></body></html>'
    rules = ExtractionRuleSet(
        domain="example.com",
        content=ContentRule(selectors=(".a", ".b", ".c"), default_cleaner=False),
    )
    seen = []
    real_query = extract_mod._query

    def spy(doc, css):
        seen.append(css)
        return real_query(doc, css)

    monkeypatch.setattr(extract_mod, "_query", spy)
    article = extract(html, rules)

    assert article.content == "<p>Second</p>"
    assert seen == [".a", ".b"]


def test_attribute_selector_and_blank_values_are_skipped():
    html = (
        '<html><head><meta property="og:title" content="From OpenGraph"><title>Doc</title></head>'
        "<body><h1>  </h1></body></html>"
    )
    rules = ExtractionRuleSet(
        domain="example.com",
        title=FieldRule(selectors=("h1", ('meta[property="og:title"]', "content"), "title")),
    )
    assert extract(html, rules).title == "From OpenGraph"


def test_missing_field_is_empty():
    rules = ExtractionRuleSet(domain="example.com", author=FieldRule(selectors=(".author",)))
    assert extract("<html><body><p>x</p></body></html>", rules).author is None


def test_clean_and_default_cleaner():
    html = (
        '<html><body><article><p>Body text</p><script>track()</script>'
        '<div class="ad">Buy now</div><p></p></article></body></html>'
    )
    rules = ExtractionRuleSet(domain="example.com", content=ContentRule(selectors=("article",), clean=(".ad",)))
    content = extract(html, rules).content
    assert "Body text" in content
    assert "track()" not in content
    assert "Buy now" not in content
    assert "<p></p>" not in content


def test_default_cleaner_can_be_disabled():
    html = "<html><body><article><p>Body</p><nav>Menu</nav></article></body></html>"
    rules = ExtractionRuleSet(
        domain="example.com",
        content=ContentRule(selectors=("article",), default_cleaner=False),
    )
    assert "Menu" in extract(html, rules).content


def test_transforms_run_before_selection():
    def add_marker(node, doc):
        marker = doc.new_tag("div", attrs={"class": "made"})
        marker.string = "Made here"
        doc.body.append(marker)

    rules = ExtractionRuleSet(
        domain="example.com",
        content=ContentRule(selectors=(".made",), transforms={"body": add_marker}),
    )
    assert extract("<html><body><p>x</p></body></html>", rules).content == "Made here"


def test_failing_transform_does_not_stop_extraction():
    def boom(node, doc):
        raise RuntimeError("nope")

    rules = ExtractionRuleSet(
        domain="example.com",
        content=ContentRule(selectors=("article",), transforms={"article": boom}),
    )
    assert extract("<html><body><article><p>Kept</p></article></body></html>", rules).content == "<p>Kept</p>"


def test_empty_document_gives_empty_article():
    article = extract(None, GENERIC, url="https://example.com/post")
    assert article.title is None
    assert article.content is None
    assert article.domain == "example.com"
    assert article.is_empty


def test_generic_rules_resolve_lead_image_and_date():
    html = (
        '<html><head><meta property="og:image" content="/img/lead.jpg">'
        '<meta property="article:published_time" content="Tue, 02 Jan 2024 10:00:00 GMT"></head>'
        "<body><h1>Headline</h1><article><p>Hello</p></article></body></html>"
    )
    article = extract(html, GENERIC, url="https://example.com/news/post")
    assert article.title == "Headline"
    assert article.lead_image_url == "https://example.com/img/lead.jpg"
    assert article.date_published == "2024-01-02T10:00:00+00:00"
    assert article.content == "<p>Hello</p>"


def test_comingsoon_lazy_media_is_promoted():
    html = (
        '<html><body><div id="contenuto-articolo"><p>Testo</p>'
        '<img class="lazy" data-src="/a.jpg">'
        '<span class="contenitore-iframe"><iframe data-src="https://video.example/x"></iframe></span>'
        '<div class="boxAdv">pubblicità</div></div></body></html>'
    )
    content = extract(html, COMINGSOON, url="https://www.comingsoon.it/film/x").content
    assert 'src="/a.jpg"' in content
    assert "data-src" not in content
    assert '<iframe src="https://video.example/x">' in content
    assert "contenitore-iframe" not in content
    assert "pubblicità" not in content
