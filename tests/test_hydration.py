import json

from readerkit.extract import extract
from readerkit.hydration import decode_blocks, extract_content_array, render_blocks, unescape_payload
from readerkit.models import AssetRef
from readerkit.sites import ULTIMOUOMO

CDN = "https://cdn.example/images"

POST = {
    "post": {
        "title": "Il titolo",
        "date": "2024-03-01",
        "author": {"firstName": "Mario", "lastName": "Rossi"},
        "content": [
            {"_type": "block", "children": [{"text": "Primo"}, {"text": "paragrafo"}]},
            {"_type": "image", "asset": {"_ref": "image-abc123-800x600-jpg"}, "caption": "Una foto"},
        ],
    }
}


COMPACT = json.dumps(POST, separators=(",", ":"))


def push_script(payload: str) -> str:
    return f"<script>self.__next_f.push([1,{json.dumps(payload)}])</script>"


def page(*scripts, server_text=""):
    return (
        "<html><head><title>Ultimo Uomo</title></head><body>"
        f'<div class="slug_post__WJWtL">{server_text}</div>{"".join(scripts)}</body></html>'
    )


def test_bracket_scan_returns_exact_array():
    text = '{"x":1,"content":[{"a":1},{"b":[1,2,[3,4]]}],"other":[5,6]}'
    assert extract_content_array(text) == '[{"a":1},{"b":[1,2,[3,4]]}]'


def test_bracket_scan_unbalanced():
    assert extract_content_array('"content":[{"a":[1,2}') is None
    assert extract_content_array('{"body":[]}') is None


def test_text_block_becomes_paragraph():
    array = extract_content_array('"content":[{"_type":"block","children":[{"text":"Hello"},{"text":"world"}]}]')
    assert render_blocks(decode_blocks(json.loads(array)), CDN) == "<p>Hello world</p>"


def test_images_and_galleries_render_figures():
    blocks = decode_blocks([
        {"_type": "image", "asset": {"_ref": "image-abc-800x600-jpg"}, "caption": "Cap"},
        {"_type": "gallery", "images": [{"asset": {"_ref": "image-def-10x10-png"}}]},
        {"_type": "video", "url": "ignored"},
    ])
    assert render_blocks(blocks, CDN) == (
        '<figure><img src="https://cdn.example/images/abc-800x600.jpg" /><figcaption>Cap</figcaption></figure>\n'
        '<figure><img src="https://cdn.example/images/def-10x10.png" /><figcaption></figcaption></figure>'
    )


def test_text_is_escaped():
    blocks = decode_blocks([{"_type": "block", "children": [{"text": "a < b & c"}]}])
    assert render_blocks(blocks, CDN) == "<p>a &lt; b &amp; c</p>"


def test_asset_ref_needs_all_parts():
    assert AssetRef.parse("image-abc-800x600") is None
    assert AssetRef.parse("image-abc-800x600-webp").url(CDN + "/") == "https://cdn.example/images/abc-800x600.webp"


def test_unescape_payload():
    assert unescape_payload('{\\"a\\":\\"b\\"}') == '{"a":"b"}'


def test_flight_data_fills_article():
    html = page(push_script(COMPACT))
    article = extract(html, ULTIMOUOMO, url="https://www.ultimouomo.it/calcio/pezzo")

    assert article.content == (
        "<p>Primo paragrafo</p>\n"
        '<figure><img src="https://cdn.sanity.io/images/ba9gdw6b/production/abc123-800x600.jpg"/>'
        "<figcaption>Una foto</figcaption></figure>"
    )
    assert article.title == "Il titolo"
    assert article.author == "Mario Rossi"
    assert article.date_published.startswith("2024-03-01")


def test_bad_script_does_not_block_the_next_one():
    bad = push_script('"content":[{not json}]')
    html = page(bad, push_script(COMPACT))
    article = extract(html, ULTIMOUOMO, url="https://www.ultimouomo.it/calcio/pezzo")
    assert "<p>Primo paragrafo</p>" in article.content


def test_server_rendered_page_skips_scripts():
    text = "Questo articolo è già stato renderizzato dal server e supera i cinquanta caratteri."
    html = page(push_script(COMPACT), server_text=f"<p>{text}</p>")
    article = extract(html, ULTIMOUOMO, url="https://www.ultimouomo.it/calcio/pezzo")
    assert article.content == f"<p>{text}</p>"
    assert article.author is None


def test_fragment_without_body_is_hydrated():
    html = "<title>x</title>" + push_script(COMPACT)
    article = extract(html, ULTIMOUOMO, url="https://www.ultimouomo.it/calcio/pezzo")
    assert "<p>Primo paragrafo</p>" in article.content
    assert article.title == "Il titolo"
