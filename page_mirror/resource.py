import os
from typing import List, Optional
from urllib.parse import urlparse


class ResourceType:
    HTML = "html"
    CSS = "css"
    OTHER = "other"


TEXTUAL_TYPES = {ResourceType.HTML, ResourceType.CSS}

HTML_LIKE_EXTS = {".html", ".htm", ".xhtml", ".php", ".asp", ".aspx", ".jsp", ".jspx", ".cfm"}


def resource_type_for(content_type: Optional[str], url: str) -> str:
    ct = (content_type or "").split(";")[0].strip().lower()
    if ct in ("text/html", "application/xhtml+xml"):
        return ResourceType.HTML
    if ct == "text/css":
        return ResourceType.CSS
    if ct:
        return ResourceType.OTHER
    ext = os.path.splitext(urlparse(url).path)[1].lower()
    if ext in HTML_LIKE_EXTS:
        return ResourceType.HTML
    if ext == ".css":
        return ResourceType.CSS
    return ResourceType.OTHER


class Resource:
    """One node of the crawl graph.

    ``children`` keeps one entry per reference occurrence, so the same child
    appears several times when a document points at it several times.
    ``parent`` is only a back-reference to the document that first asked for
    this resource.
    """

    def __init__(self, url: str, filename: Optional[str] = None):
        self.url = url
        self.filename = filename
        self.type: Optional[str] = None
        self.text: Optional[str] = None
        self.encoding: Optional[str] = None
        self.parent: Optional["Resource"] = None
        self.children: List["Resource"] = []
        self.depth = 0

    def __repr__(self) -> str:
        return f"Resource({self.url!r}, {self.filename!r})"

    def create_child(self, url: str, filename: Optional[str] = None) -> "Resource":
        child = Resource(url, filename)
        child.parent = self
        child.depth = self.depth + 1
        return child

    def register_child(self, child: "Resource") -> None:
        self.children.append(child)

    def get_url(self) -> str:
        return self.url

    def set_url(self, url: str) -> None:
        self.url = url

    def get_filename(self) -> Optional[str]:
        return self.filename

    def set_filename(self, filename: str) -> None:
        self.filename = filename

    def get_depth(self) -> int:
        return self.depth

    def get_type(self) -> str:
        if self.type is not None:
            return self.type
        return resource_type_for(None, self.filename or self.url)

    def set_type(self, resource_type: str) -> None:
        if self.text is not None and resource_type not in TEXTUAL_TYPES:
            raise ValueError(f"textual resource cannot become {resource_type}: {self.url}")
        self.type = resource_type

    def get_text(self) -> Optional[str]:
        return self.text

    def set_text(self, text: str) -> None:
        if self.type is not None and self.type not in TEXTUAL_TYPES:
            raise ValueError(f"binary resource cannot hold text: {self.url}")
        self.text = text

    def is_textual(self) -> bool:
        return self.text is not None
