from .config import DEFAULT_SOURCES, Settings
from .path_containers import (
    CssText,
    HtmlCommonTag,
    HtmlImgSrcsetTag,
    PathContainer,
    Replacement,
    Source,
)
from .resource import Resource, ResourceType
from .resource_handler import ResourceHandler
from .scraper import Scraper, run

__all__ = [
    "CssText",
    "DEFAULT_SOURCES",
    "HtmlCommonTag",
    "HtmlImgSrcsetTag",
    "PathContainer",
    "Replacement",
    "Resource",
    "ResourceHandler",
    "ResourceType",
    "Scraper",
    "Settings",
    "Source",
    "run",
]
