from bs4 import BeautifulSoup

from src import body_rewriter
from src.body_rewriter import PENDING_CLASS, PLACEHOLDER_SRC, has_cid_reference, rewrite_body


def images(html):
    return BeautifulSoup(html, "html.parser").find_all("img")


def test_cid_reference_becomes_data_uri(make_attachment):
    logo = make_attachment(
        "image001.png", content_type="image/png", content_id="<abc123>", is_inline=True, content_bytes="QQ=="
    )

    result = rewrite_body('<img src="cid:abc123">', [logo])

    assert 'src="data:image/png;base64,QQ=="' in result.html
    assert result.signature_content_ids == frozenset()


def test_missing_cid_gets_pending_placeholder():
    result = rewrite_body('<p>See below</p><img src="cid:zzz">', [])

    (img,) = images(result.html)
    assert img["src"] == PLACEHOLDER_SRC
    assert PENDING_CLASS in img["class"]
    assert img["data-cid"] == "zzz"


def test_second_phase_resolves_placeholders(make_attachment):
    body = '<img class="photo" src="cid:drawing@01DA">'
    drawing = make_attachment("drawing.jpg", content_type="image/jpeg", content_id="drawing@01DA")

    first = rewrite_body(body, [])
    second = rewrite_body(body, [drawing])

    assert images(first.html)[0]["src"] == PLACEHOLDER_SRC
    img = images(second.html)[0]
    assert img["src"] == "data:image/jpeg;base64,QQ=="
    assert img["class"] == ["photo"]
    assert not img.has_attr("data-cid")
    assert rewrite_body(body, [drawing]) == second


def test_existing_pending_marker_is_cleared(make_attachment):
    body = f'<img class="{PENDING_CLASS}" src="cid:abc">'
    attachment = make_attachment("a.png", content_type="image/png", content_id="abc")

    img = images(rewrite_body(body, [attachment]).html)[0]

    assert not img.has_attr("class")


def test_prefix_before_at_is_tried_after_full_id(make_attachment):
    truncated = make_attachment("site.png", content_type="image/png", content_id="<site>", content_bytes="U0lURQ==")
    exact = make_attachment("exact.png", content_type="image/png", content_id="site@host", content_bytes="RVhBQ1Q=")

    fallback = rewrite_body('<img src="cid:site@other-host">', [truncated])
    preferred = rewrite_body('<img src="cid:site@host">', [truncated, exact])

    assert images(fallback.html)[0]["src"] == "data:image/png;base64,U0lURQ=="
    assert images(preferred.html)[0]["src"] == "data:image/png;base64,RVhBQ1Q="


def test_reference_by_file_name(make_attachment):
    attachment = make_attachment("Elevation.PNG", content_type="image/png", content_id=None)

    result = rewrite_body('<img src="cid:elevation.png">', [attachment])

    assert images(result.html)[0]["src"] == "data:image/png;base64,QQ=="


def test_percent_encoded_cid(make_attachment):
    attachment = make_attachment("a.png", content_type="image/png", content_id="image001.png@01D9")

    result = rewrite_body('<img src="cid%3Aimage001.png%4001D9">', [attachment])

    assert images(result.html)[0]["src"] == "data:image/png;base64,QQ=="


def test_attachments_without_bytes_do_not_resolve(make_attachment):
    attachment = make_attachment("a.png", content_type="image/png", content_id="abc", content_bytes="")

    img = images(rewrite_body('<img src="cid:abc">', [attachment]).html)[0]

    assert img["src"] == PLACEHOLDER_SRC


def test_signature_images_are_tagged_even_when_resolved(make_attachment):
    body = (
        "<p>Order attached.</p>"
        '<div id="Signature"><table><tr><td><img src="cid:logo@brand"></td></tr></table></div>'
        '<img src="cid:photo">'
    )
    logo = make_attachment("logo.png", content_type="image/png", content_id="logo@brand")

    result = rewrite_body(body, [logo])

    assert result.signature_content_ids == frozenset({"logo@brand", "logo"})
    assert images(result.html)[0]["src"] == "data:image/png;base64,QQ=="


def test_gmail_signature_class_is_recognised():
    result = rewrite_body('<div class="gmail_signature"><img src="cid:Badge"></div>', [])

    assert result.signature_content_ids == frozenset({"badge"})


def test_quoted_replies_are_removed():
    body = (
        "<html><head><style>p {margin: 0}</style></head><body>"
        "<p>Cabinets ship Tuesday.</p>"
        '<div id="divRplyFwdMsg"><b>From:</b> Shop</div>'
        '<div class="gmail_quote">Earlier message<div class="gmail_quote">Older</div></div>'
        "</body></html>"
    )

    result = rewrite_body(body, [])

    assert "Cabinets ship Tuesday." in result.html
    assert "From:" not in result.html
    assert "Earlier message" not in result.html
    assert "<body" not in result.html


def test_body_without_cid_passes_through():
    result = rewrite_body('<p>Hello <img src="https://example.com/a.png"></p>', [])

    assert images(result.html)[0]["src"] == "https://example.com/a.png"
    assert "Hello" in result.html


def test_parse_failure_returns_original(monkeypatch):
    def broken(*args, **kwargs):
        raise ValueError("parser exploded")

    monkeypatch.setattr(body_rewriter, "BeautifulSoup", broken)
    body = '<img src="cid:abc">'

    result = rewrite_body(body, [])

    assert result.html == body
    assert result.signature_content_ids == frozenset()


def test_empty_body():
    assert rewrite_body("", []).html == ""


def test_has_cid_reference():
    assert has_cid_reference('<img src="CID:abc">')
    assert not has_cid_reference("<p>no images</p>")
    assert not has_cid_reference(None)
