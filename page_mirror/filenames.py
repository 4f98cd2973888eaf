import hashlib
import mimetypes
import os
import posixpath
import re
from typing import Optional
from urllib.parse import unquote, urlparse

from .resource import HTML_LIKE_EXTS, ResourceType

INVALID_FILENAME_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def sanitize_filename(name: str) -> str:
    """Make one path segment safe on disk: no separators, no leading dot."""
    name = INVALID_FILENAME_CHARS_RE.sub("_", name) or "file"
    if name[0] == ".":
        name = "_" + name[1:]
    return name[:200]


def short_h(url: str) -> str:
    return hashlib.md5(url.encode("utf-8")).hexdigest()[:8]


EXT_FOR_TYPE = {
    "application/javascript": ".js",
    "text/javascript": ".js",
    "application/json": ".json",
    "application/manifest+json": ".webmanifest",
    "image/svg+xml": ".svg",
    "font/woff": ".woff",
    "font/woff2": ".woff2",
    "text/css": ".css",
}

# category -> (content-type test, extensions); first match wins
CATEGORIES = (
    ("img", lambda ct: ct.startswith("image/"),
     {".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".ico", ".bmp", ".avif"}),
    ("css", lambda ct: ct.startswith("text/css"), {".css"}),
    ("js", lambda ct: "javascript" in ct, {".js", ".mjs"}),
    ("font", lambda ct: ct.startswith("font/"), {".woff", ".woff2", ".ttf", ".otf", ".eot"}),
    ("media", lambda ct: ct.startswith(("audio/", "video/")),
     {".mp4", ".webm", ".mp3", ".ogg", ".wav", ".m4a", ".mkv"}),
    ("data", lambda ct: "json" in ct, {".json", ".webmanifest", ".map"}),
)


def guess_ext_from_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    ct = content_type.split(";")[0].strip().lower()
    return EXT_FOR_TYPE.get(ct) or mimetypes.guess_extension(ct)


def category_for(path: str, content_type: Optional[str]) -> str:
    """Asset subdirectory for a url path and its Content-Type."""
    ext = posixpath.splitext(path)[1].lower()
    ct = (content_type or "").lower()
    for name, type_matches, exts in CATEGORIES:
        if type_matches(ct) or ext in exts:
            return name
    return "other"


def _host_prefix(url: str, start_url: str) -> str:
    host = urlparse(url).netloc
    if host == urlparse(start_url).netloc:
        return ""
    return posixpath.join("vendor", sanitize_filename(host) or "host")


def html_filename_for_url(page_url: str, start_url: str, default_filename: str = "index.html") -> str:
    p = urlparse(page_url)
    path = unquote(p.path or "/")
    segs = [sanitize_filename(seg) for seg in path.split("/") if seg]
    last = segs[-1] if segs else ""
    ext = os.path.splitext(last)[1].lower()
    if not path.endswith("/") and ext in HTML_LIKE_EXTS:
        if ext != ".html":
            segs[-1] = os.path.splitext(last)[0] + ".html"
    else:
        segs.append(default_filename)
    if p.query:
        base, ext = os.path.splitext(segs[-1])
        segs[-1] = f"{base}_{short_h(page_url)}{ext}"
    return posixpath.join(_host_prefix(page_url, start_url), *segs)


def asset_filename_for_url(asset_url: str, start_url: str, content_type: Optional[str]) -> str:
    au = urlparse(asset_url)
    cat = category_for(au.path, content_type)
    name = os.path.basename(unquote(au.path).rstrip("/")) or "file"
    base, ext = os.path.splitext(name)
    if not ext:
        ext = guess_ext_from_type(content_type) or ""
    base = sanitize_filename(base)
    fname = f"{base}_{short_h(asset_url)}{ext}"
    return posixpath.join(_host_prefix(asset_url, start_url), "assets", cat, fname)


def filename_for(
    url: str,
    resource_type: str,
    content_type: Optional[str],
    start_url: str,
    default_filename: str = "index.html",
) -> str:
    if resource_type == ResourceType.HTML:
        return html_filename_for_url(url, start_url, default_filename)
    return asset_filename_for_url(url, start_url, content_type)
