import html
import re
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from .markup import HtmlDocument, replace_spans

CSS_URL_RE = re.compile(
    r"""url\(\s*(?:"([^"]*)"|'([^']*)'|([^)\s"']*))\s*\)""", re.IGNORECASE
)
CSS_IMPORT_RE = re.compile(r"""@import\s+(?:"([^"]*)"|'([^']*)')""", re.IGNORECASE)
SRCSET_DESCRIPTOR_RE = re.compile(
    r"^(?:\d+w|\d+h|(?:\d+\.?\d*|\.\d+)(?:e[+-]?\d+)?x)$", re.IGNORECASE
)

SRCSET_ATTR = "srcset"


class Replacement(NamedTuple):
    old_path: str
    new_path: str


class Occurrence(NamedTuple):
    path: str
    start: int
    end: int


class Source(NamedTuple):
    selector: str
    attr: str

    @classmethod
    def from_mapping(cls, value: Union["Source", Mapping[str, str], Sequence[str]]) -> "Source":
        if isinstance(value, Source):
            return value
        if isinstance(value, Mapping):
            return cls(value["selector"], value.get("attr") or value["attribute"])
        selector, attr = value
        return cls(selector, attr)


def can_fetch_url(u: Optional[str]) -> bool:
    if not u:
        return False
    u = u.strip()
    if not u:
        return False
    if u.startswith(("#", "mailto:", "tel:", "javascript:", "data:", "blob:", "about:")):
        return False
    return True


class PathContainer(ABC):
    """Finds reference strings in one text snapshot and rewrites them.

    ``update_text`` always works from the snapshot given to the constructor,
    so one batch of replacements gives the same text whatever order the
    replacements were produced in.
    """

    def __init__(self, text: str):
        self.text = text or ""
        self._occurrences: Optional[List[Occurrence]] = None

    @abstractmethod
    def find_occurrences(self) -> Iterable[Occurrence]:
        ...

    @property
    def occurrences(self) -> List[Occurrence]:
        if self._occurrences is None:
            self._occurrences = list(self.find_occurrences())
        return self._occurrences

    def get_paths(self) -> List[str]:
        return [o.path for o in self.occurrences]

    def update_text(self, replacements: Iterable[Replacement]) -> str:
        new_paths: Dict[str, str] = {}
        for old_path, new_path in replacements:
            new_paths.setdefault(old_path, new_path)
        edits = [
            (o.start, o.end, new_paths[o.path])
            for o in self.occurrences
            if o.path in new_paths
        ]
        if not edits:
            return self.text
        return replace_spans(self.text, edits)


# -------------------- CSS --------------------


def _group_span(m: re.Match) -> Tuple[int, int]:
    for g in range(1, (m.re.groups or 0) + 1):
        if m.group(g) is not None:
            return m.span(g)
    return m.end(), m.end()


class CssText(PathContainer):
    """``url(...)`` and ``@import "..."`` references in a stylesheet (or in
    any text holding CSS, e.g. a whole HTML document with style blocks)."""

    def find_occurrences(self) -> Iterator[Occurrence]:
        matches = list(CSS_URL_RE.finditer(self.text)) + list(
            CSS_IMPORT_RE.finditer(self.text)
        )
        matches.sort(key=lambda m: m.start())
        for m in matches:
            start, end = _group_span(m)
            raw = self.text[start:end]
            path = raw.strip()
            if not can_fetch_url(path):
                continue
            lead = len(raw) - len(raw.lstrip())
            yield Occurrence(path, start + lead, start + lead + len(path))

    def get_paths(self) -> List[str]:
        # every occurrence is rewritten, but each distinct path is asked for once
        return list(dict.fromkeys(super().get_paths()))


# -------------------- HTML --------------------


class HtmlAttributeContainer(PathContainer):
    """Base for containers driven by ``(selector, attr)`` declarations.

    Attribute values are located by the parser and edited in place in the
    raw text, so quoting, entities and everything outside the value survive.
    """

    def __init__(self, text: str, sources: Iterable[Union[Source, Mapping[str, str]]]):
        super().__init__(text)
        self.sources = [Source.from_mapping(s) for s in sources]

    def iter_attribute_values(self) -> Iterator[Tuple[int, str]]:
        """Yield ``(offset, raw value)`` in declaration order, then document order."""
        if not self.sources:
            return
        doc = HtmlDocument(self.text)
        seen = set()
        for source in self.sources:
            attr = source.attr.lower()
            for tag in doc.soup.select(source.selector):
                if not tag.get(attr):
                    continue
                span = doc.attribute_span(tag, attr)
                if span is None or span in seen:
                    continue
                seen.add(span)
                yield span[0], self.text[span[0]:span[1]]

    @abstractmethod
    def parse_value(self, offset: int, raw: str) -> Iterator[Occurrence]:
        ...

    def find_occurrences(self) -> Iterator[Occurrence]:
        for offset, raw in self.iter_attribute_values():
            yield from self.parse_value(offset, raw)


class HtmlCommonTag(HtmlAttributeContainer):
    """One reference per attribute value (``img[src]``, ``link[href]`` ...)."""

    def parse_value(self, offset: int, raw: str) -> Iterator[Occurrence]:
        stripped = raw.strip()
        path = html.unescape(stripped)
        if not can_fetch_url(path):
            return
        start = offset + len(raw) - len(raw.lstrip())
        yield Occurrence(path, start, start + len(stripped))


def iter_srcset_candidates(value: str) -> Iterator[Tuple[int, int, str]]:
    """Yield ``(url start, url end, descriptor)`` for each candidate of a
    srcset value. A url directly followed by a comma has no descriptor."""
    n = len(value)
    pos = 0
    while pos < n:
        while pos < n and (value[pos].isspace() or value[pos] == ","):
            pos += 1
        if pos >= n:
            break
        start = pos
        while pos < n and not value[pos].isspace():
            pos += 1
        url_end = pos
        while url_end > start and value[url_end - 1] == ",":
            url_end -= 1
        if url_end < pos:
            yield start, url_end, ""
            continue
        desc_start = pos
        while pos < n and value[pos] != ",":
            pos += 1
        yield start, url_end, value[desc_start:pos].strip()


def valid_srcset_descriptor(descriptor: str) -> bool:
    return all(SRCSET_DESCRIPTOR_RE.match(d) for d in descriptor.split())


class HtmlImgSrcsetTag(HtmlAttributeContainer):
    """Every candidate url of a srcset list is one occurrence, duplicates
    included. Candidates with an unknown descriptor are left as they are."""

    def parse_value(self, offset: int, raw: str) -> Iterator[Occurrence]:
        for start, end, descriptor in iter_srcset_candidates(raw):
            if not valid_srcset_descriptor(descriptor):
                continue
            path = html.unescape(raw[start:end])
            if not can_fetch_url(path):
                continue
            yield Occurrence(path, offset + start, offset + end)


def split_sources(
    sources: Iterable[Union[Source, Mapping[str, str]]]
) -> Tuple[List[Source], List[Source]]:
    """Split declarations into (common attributes, srcset attributes)."""
    common: List[Source] = []
    srcset: List[Source] = []
    for s in sources:
        source = Source.from_mapping(s)
        (srcset if source.attr.lower() == SRCSET_ATTR else common).append(source)
    return common, srcset
