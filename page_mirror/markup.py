import re
from typing import Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

# Markup is never re-serialized from the parse tree: bs4 would re-quote
# attributes and turn non-ASCII text into entities. The tree is only used to
# select elements; edits are applied to spans of the original text.

NEWLINE_RE = re.compile(r"\n")
TAG_NAME_RE = re.compile(r"<[^\s/>]+")
ATTR_RE = re.compile(
    r"""([^\s"'>/=]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]*)))?"""
)

Span = Tuple[int, int]


def bs4_parse(html: str) -> BeautifulSoup:
    # html.parser is the only builder that records source positions
    return BeautifulSoup(html, "html.parser", multi_valued_attributes=None)


def replace_spans(text: str, edits: Iterable[Tuple[int, int, str]]) -> str:
    out: List[str] = []
    last = 0
    for start, end, new in sorted(edits):
        if start < last:
            raise ValueError(f"overlapping edit at {start}")
        out.append(text[last:start])
        out.append(new)
        last = end
    out.append(text[last:])
    return "".join(out)


def scan_start_tag(text: str, offset: int) -> Tuple[List[Tuple[str, Span]], int]:
    """Walk the raw start tag at ``offset``.

    Returns ``(attributes, end)`` where each attribute is ``(name, value span)``
    and ``end`` is the index just past the closing ``>``.
    """
    m = TAG_NAME_RE.match(text, offset)
    if not m:
        raise ValueError(f"no start tag at {offset}")
    pos = m.end()
    n = len(text)
    attrs: List[Tuple[str, Span]] = []
    while pos < n:
        ch = text[pos]
        if ch == ">":
            return attrs, pos + 1
        if ch.isspace() or ch == "/":
            pos += 1
            continue
        am = ATTR_RE.match(text, pos)
        if not am:
            pos += 1
            continue
        for group in (2, 3, 4):
            if am.group(group) is not None:
                attrs.append((am.group(1).lower(), am.span(group)))
                break
        pos = am.end()
    return attrs, n


class HtmlDocument:
    def __init__(self, text: str):
        self.text = text
        self.soup = bs4_parse(text)
        self._line_starts = [0] + [m.end() for m in NEWLINE_RE.finditer(text)]

    def offset_of(self, tag: Tag) -> int:
        return self._line_starts[tag.sourceline - 1] + tag.sourcepos

    def start_tag_span(self, tag: Tag) -> Span:
        start = self.offset_of(tag)
        _, end = scan_start_tag(self.text, start)
        return start, end

    def attribute_span(self, tag: Tag, attr: str) -> Optional[Span]:
        attrs, _ = scan_start_tag(self.text, self.offset_of(tag))
        attr = attr.lower()
        found = None
        # html.parser keeps the last of duplicated attributes
        for name, span in attrs:
            if name == attr:
                found = span
        return found
