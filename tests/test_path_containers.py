import pytest

from page_mirror.path_containers import (
    CssText,
    HtmlCommonTag,
    HtmlImgSrcsetTag,
    Replacement,
    Source,
    can_fetch_url,
    iter_srcset_candidates,
    split_sources,
)

CSS = (
    'body { background: url("img/bg.png"); }\n'
    ".a { background: url( img/a.png ) }\n"
    '@import "other.css";\n'
    "@import url('print.css');\n"
    ".b { background: url(data:image/png;base64,AAAA) }\n"
    ".c { background: url(#gradient) }\n"
    ".d{background:url(img/bg.png)}\n"
)

SOURCES = [
    Source("img", "src"),
    Source('link[rel="stylesheet"]', "href"),
    Source("script", "src"),
]


# -------------------- CSS --------------------


def test_css_paths_in_document_order_without_repeats() -> None:
    assert CssText(CSS).get_paths() == ["img/bg.png", "img/a.png", "other.css", "print.css"]


def test_css_update_rewrites_every_occurrence_and_keeps_quotes() -> None:
    container = CssText(CSS)
    container.get_paths()
    text = container.update_text(
        [
            Replacement("img/bg.png", "local/bg.png"),
            Replacement("img/a.png", "local/a.png"),
            Replacement("other.css", "local/other.css"),
            Replacement("print.css", "local/print.css"),
        ]
    )

    assert 'url("local/bg.png")' in text
    assert "url( local/a.png )" in text
    assert '@import "local/other.css";' in text
    assert "@import url('local/print.css');" in text
    assert ".d{background:url(local/bg.png)}" in text
    assert "url(data:image/png;base64,AAAA)" in text
    assert "url(#gradient)" in text


def test_css_update_without_replacements_returns_same_text() -> None:
    assert CssText(CSS).update_text([]) == CSS


def test_css_without_references() -> None:
    assert CssText("body { color: red }").get_paths() == []
    assert CssText("").get_paths() == []


# -------------------- common attributes --------------------


def test_common_tag_follows_declaration_then_document_order() -> None:
    html = (
        "<html><head>"
        '<link rel="stylesheet" href="/b.css">'
        "<script src='c.js'></script>"
        "</head><body>"
        '<img src="a.jpg"><img src="d.jpg">'
        "</body></html>"
    )
    assert HtmlCommonTag(html, SOURCES).get_paths() == ["a.jpg", "d.jpg", "/b.css", "c.js"]


def test_common_tag_skips_empty_and_unfetchable_values() -> None:
    html = '<img src=""><img src="   "><img src="data:image/gif;base64,R0lG"><a href="#top">x</a>'
    container = HtmlCommonTag(html, SOURCES + [Source("a", "href")])
    assert container.get_paths() == []


def test_common_tag_accepts_mapping_sources() -> None:
    html = '<img src="a.jpg">'
    container = HtmlCommonTag(html, [{"selector": "img", "attr": "src"}])
    assert container.get_paths() == ["a.jpg"]


def test_common_tag_update_touches_only_attribute_values() -> None:
    html = (
        "<html>\n<head>\n"
        "  <link rel='stylesheet' href='/b.css'>\n"
        "</head>\n<body>\n"
        "  <p>Привет, мир &mdash; &nbsp;</p>\n"
        "  <IMG\n     SRC=a.jpg alt=\"a\">\n"
        "</body>\n</html>\n"
    )
    container = HtmlCommonTag(html, SOURCES)
    assert container.get_paths() == ["a.jpg", "/b.css"]

    text = container.update_text(
        [Replacement("a.jpg", "local/a.jpg"), Replacement("/b.css", "local/b.css")]
    )
    expected = html.replace("SRC=a.jpg", "SRC=local/a.jpg").replace(
        "href='/b.css'", "href='local/b.css'"
    )
    assert text == expected


def test_common_tag_compares_decoded_values() -> None:
    html = '<img src="a.jpg?x=1&amp;y=2">'
    container = HtmlCommonTag(html, SOURCES)
    assert container.get_paths() == ["a.jpg?x=1&y=2"]
    assert container.update_text([Replacement("a.jpg?x=1&y=2", "local/a.jpg")]) == (
        '<img src="local/a.jpg">'
    )


def test_common_tag_same_attribute_selected_twice_is_one_occurrence() -> None:
    html = '<img class="x" src="a.jpg">'
    container = HtmlCommonTag(html, [Source("img", "src"), Source("img.x", "src")])
    assert container.get_paths() == ["a.jpg"]
    assert container.update_text([Replacement("a.jpg", "l.jpg")]) == '<img class="x" src="l.jpg">'


def test_common_tag_ignores_markup_inside_scripts() -> None:
    html = '<script>var s = "<img src=\'fake.jpg\'>";</script><img src="real.jpg">'
    assert HtmlCommonTag(html, SOURCES).get_paths() == ["real.jpg"]


# -------------------- srcset --------------------


def test_srcset_paths_keep_duplicates() -> None:
    html = '<img srcset="a.jpg 1x, b.jpg 2x, a.jpg 3x">'
    container = HtmlImgSrcsetTag(html, [Source("img", "srcset")])
    assert container.get_paths() == ["a.jpg", "b.jpg", "a.jpg"]


def test_srcset_update_preserves_descriptors_and_order() -> None:
    html = (
        '<img src="http://example.com/image45.jpg" '
        'srcset="http://example.com/image150.jpg 150w, http://example.com/image45.jpg 45w">'
    )
    container = HtmlImgSrcsetTag(html, [Source("img", "srcset")])
    text = container.update_text(
        [
            Replacement("http://example.com/image150.jpg", "local/image150.jpg"),
            Replacement("http://example.com/image45.jpg", "local/image45.jpg"),
        ]
    )
    assert 'srcset="local/image150.jpg 150w, local/image45.jpg 45w"' in text
    # src is not a srcset attribute
    assert 'src="http://example.com/image45.jpg"' in text


def test_srcset_leaves_unparsable_candidates_untouched() -> None:
    html = '<img srcset="a.jpg 1x, b.jpg big, c.jpg 3x">'
    container = HtmlImgSrcsetTag(html, [Source("img", "srcset")])
    assert container.get_paths() == ["a.jpg", "c.jpg"]
    text = container.update_text(
        [
            Replacement("a.jpg", "l/a.jpg"),
            Replacement("b.jpg", "l/b.jpg"),
            Replacement("c.jpg", "l/c.jpg"),
        ]
    )
    assert text == '<img srcset="l/a.jpg 1x, b.jpg big, l/c.jpg 3x">'


def test_srcset_candidates_without_descriptor() -> None:
    value = "a.jpg, b.jpg 2x,c.jpg"
    spans = [(value[s:e], d) for s, e, d in iter_srcset_candidates(value)]
    assert spans == [("a.jpg", ""), ("b.jpg", "2x"), ("c.jpg", "")]


# -------------------- helpers --------------------


@pytest.mark.parametrize(
    "value,expected",
    [
        ("a.png", True),
        ("//cdn.example.com/x.js", True),
        ("", False),
        (None, False),
        ("#top", False),
        ("data:image/png;base64,AA", False),
        ("mailto:someone@example.com", False),
        ("javascript:void(0)", False),
    ],
)
def test_can_fetch_url(value, expected) -> None:
    assert can_fetch_url(value) is expected


def test_split_sources() -> None:
    common, srcset = split_sources(
        [{"selector": "img", "attr": "src"}, ("img", "srcset"), Source("source", "SRCSET")]
    )
    assert common == [Source("img", "src")]
    assert srcset == [Source("img", "srcset"), Source("source", "SRCSET")]
