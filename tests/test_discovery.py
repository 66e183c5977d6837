import httpx
import pytest

from readerkit.discovery import (
    DiscoveryCache,
    _is_feed_response,
    classify_query,
    discover_feeds,
    guess_domain,
    scan_link_alternates,
)
from readerkit.errors import DiscoveryError

from conftest import rss, run_with

ATOM = (
    '<?xml version="1.0" encoding="utf-8"?><feed xmlns="http://www.w3.org/2005/Atom">'
    '<title>Example Atom</title><link href="https://blog.example/"/>'
    '<entry><id>tag:1</id><title>A</title><link href="https://blog.example/a"/></entry></feed>'
)


def site(pages):
    """Handler serving ``pages`` keyed by (host, path); everything else is a 404."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        page = pages.get((request.url.host, request.url.path))
        if page is None:
            return httpx.Response(404, text="not found")
        if isinstance(page, httpx.Response):
            return page
        if page.lstrip().startswith("<?xml"):
            return httpx.Response(200, text=page, headers={"content-type": "application/xml"})
        return httpx.Response(200, html=page)

    return handler, requests


def test_classify_query():
    assert classify_query("theverge.com") == ("url", "https://theverge.com")
    assert classify_query(" https://x.com/blog ") == ("url", "https://x.com/blog")
    assert classify_query("blog.example/path?q=1") == ("url", "https://blog.example/path?q=1")
    assert classify_query("the verge") == ("query", "the verge")
    assert guess_domain("The Verge!") == "https://theverge.com"
    assert guess_domain("!!!") is None


def test_bare_domain_is_normalized_and_relative_link_resolved():
    html = (
        '<html><head><link rel="alternate" type="application/rss+xml" '
        'title="The Verge" href="/rss/index.xml"></head><body></body></html>'
    )
    handler, requests = site({("theverge.com", "/"): html})

    feeds = run_with(handler, lambda client: discover_feeds("theverge.com", client))

    first = requests[0].url
    assert (first.scheme, first.host) == ("https", "theverge.com")
    assert [f.to_json() for f in feeds] == [{
        "url": "https://theverge.com/rss/index.xml",
        "title": "The Verge",
        "type": "rss",
        "siteUrl": "https://theverge.com",
    }]


def test_link_scan_and_probes_are_merged_without_duplicates():
    html = (
        '<html><head>'
        '<link rel="alternate" type="application/rss+xml" title="Blog posts" href="https://blog.example/feed.xml">'
        '<link rel="stylesheet" href="/style.css">'
        '</head></html>'
    )
    handler, _ = site({
        ("blog.example", "/"): html,
        ("blog.example", "/feed.xml"): rss(title="Blog posts", items=[("1", "One", "https://blog.example/1")]),
        ("blog.example", "/atom.xml"): ATOM,
    })

    feeds = run_with(handler, lambda client: discover_feeds("https://blog.example", client))

    assert [(f.url, f.type) for f in feeds] == [
        ("https://blog.example/feed.xml", "rss"),
        ("https://blog.example/atom.xml", "atom"),
    ]
    assert feeds[1].title == "Example Atom"


def test_generic_titles_are_verified():
    html = (
        '<html><head>'
        '<link rel="alternate" type="application/rss+xml" title="RSS" href="/feed">'
        '<link rel="alternate" type="application/atom+xml" title="Feed" href="/broken.xml">'
        '</head></html>'
    )
    handler, _ = site({
        ("news.example", "/"): html,
        ("news.example", "/feed"): rss(title="Real News", link="https://news.example/"),
    })

    feeds = run_with(handler, lambda client: discover_feeds("news.example", client))

    assert len(feeds) == 1
    assert feeds[0].url == "https://news.example/feed"
    assert feeds[0].title == "Real News"
    assert feeds[0].site_url == "https://news.example/"


def test_feed_url_is_returned_directly():
    handler, requests = site({("x.example", "/feed.xml"): rss(title="Direct")})

    feeds = run_with(handler, lambda client: discover_feeds("https://x.example/feed.xml", client))

    assert [(f.url, f.title) for f in feeds] == [("https://x.example/feed.xml", "Direct")]
    assert len(requests) == 1


def test_failing_probe_is_isolated():
    def handler(request):
        if request.url.path == "/rss":
            raise httpx.ConnectError("refused", request=request)
        if request.url.path == "/index.xml":
            return httpx.Response(200, text=rss(title="Hugo"), headers={"content-type": "application/xml"})
        if request.url.path == "/":
            return httpx.Response(200, html="<html><head></head></html>")
        return httpx.Response(404)

    feeds = run_with(handler, lambda client: discover_feeds("hugo.example", client))
    assert [f.url for f in feeds] == ["https://hugo.example/index.xml"]


def test_no_feeds_found():
    handler, _ = site({("empty.example", "/"): "<html><head></head><body>nothing</body></html>"})
    with pytest.raises(DiscoveryError, match='No RSS/Atom feeds found for "empty.example"'):
        run_with(handler, lambda client: discover_feeds("empty.example", client))


def test_search_result_is_followed():
    results = (
        '<html><body>'
        '<a class="result__a" href="//duckduckgo.com/y.js?ad_domain=ads.example&uddg=https%3A%2F%2Fduckduckgo.com%2Fad">Ad</a>'
        '<a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fwww.verge.example%2F&rut=x">The Verge</a>'
        '</body></html>'
    )
    html = '<link rel="alternate" type="application/rss+xml" title="Verge" href="/rss/index.xml">'
    handler, _ = site({
        ("html.duckduckgo.com", "/html/"): results,
        ("www.verge.example", "/"): html,
    })

    feeds = run_with(handler, lambda client: discover_feeds("the verge", client))
    assert [f.url for f in feeds] == ["https://www.verge.example/rss/index.xml"]


def test_malformed_search_results_are_skipped():
    results = (
        "<html><body>"
        '<a class="result__a" href="http://[broken/">Broken</a>'
        '<a class="result__a" href="//duckduckgo.com/l/?uddg=http%3A%2F%2F%5Bbroken%2F">Broken too</a>'
        '<a class="result__a" href="https://good.example/">Good</a>'
        "</body></html>"
    )
    html = '<link rel="alternate" type="application/rss+xml" title="Good" href="/feed">'
    handler, _ = site({
        ("html.duckduckgo.com", "/html/"): results,
        ("good.example", "/"): html,
    })

    feeds = run_with(handler, lambda client: discover_feeds("good site", client))
    assert [f.url for f in feeds] == ["https://good.example/feed"]


def test_unknown_name_reports_missing_website():
    handler, requests = site({("html.duckduckgo.com", "/html/"): "<html><body>No results</body></html>"})
    with pytest.raises(DiscoveryError, match='Could not find a website for "zz unknown"'):
        run_with(handler, lambda client: discover_feeds("zz unknown", client))
    assert requests[-1].method == "HEAD"
    assert requests[-1].url.host == "zzunknown.com"


def test_guessed_domain_is_accepted_on_405():
    def handler(request):
        if request.url.host == "html.duckduckgo.com":
            return httpx.Response(200, html="<html></html>")
        if request.method == "HEAD":
            return httpx.Response(405)
        if request.url.path == "/feed":
            return httpx.Response(200, text=rss(title="Guessed"), headers={"content-type": "text/xml"})
        return httpx.Response(200, html="<html></html>")

    feeds = run_with(handler, lambda client: discover_feeds("guessed", client))
    assert [f.url for f in feeds] == ["https://guessed.com/feed"]


def test_cache_hits_until_ttl_expires():
    now = [100.0]
    cache = DiscoveryCache(ttl=60, clock=lambda: now[0])
    handler, requests = site({("c.example", "/feed.xml"): rss(title="Cached")})

    def discover(client):
        return discover_feeds("https://c.example/feed.xml", client, cache=cache)

    run_with(handler, discover)
    run_with(handler, discover)
    assert len(requests) == 1

    now[0] += 61
    run_with(handler, discover)
    assert len(requests) == 2


def test_scan_link_alternates_ignores_other_links():
    html = (
        '<link rel="alternate" type="text/html" href="/en">'
        '<link rel="alternate" type="application/atom+xml" href="feeds/all.atom.xml">'
        '<link rel="icon" type="application/rss+xml" href="/odd">'
    )
    feeds = scan_link_alternates(html, "https://site.example/blog/post")
    assert [(f.url, f.type, f.title) for f in feeds] == [("https://site.example/feeds/all.atom.xml", "atom", "")]


def test_blank_query_is_rejected():
    with pytest.raises(DiscoveryError):
        run_with(lambda request: httpx.Response(404), lambda client: discover_feeds("   ", client))


def test_malformed_alternate_link_does_not_abort_discovery():
    html = (
        '<html><head><link rel="alternate" type="application/rss+xml" title="Broken" '
        'href="http://[broken/feed"></head><body></body></html>'
    )
    handler, _ = site({
        ("site.example", "/"): html,
        ("site.example", "/feed"): rss(title="Site"),
    })

    feeds = run_with(handler, lambda client: discover_feeds("site.example", client))
    assert [f.url for f in feeds] == ["https://site.example/feed"]


def test_xhtml_is_not_a_feed_response():
    assert not _is_feed_response("application/xhtml+xml; charset=utf-8")
    assert not _is_feed_response("text/html")
    assert _is_feed_response("application/rss+xml")
    assert _is_feed_response("application/atom+xml")
    assert _is_feed_response("text/xml; charset=utf-8")
    assert _is_feed_response("application/xml")
