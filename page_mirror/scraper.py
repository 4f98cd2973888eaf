import asyncio
import codecs
import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, NamedTuple, Optional, Set
from urllib.parse import urldefrag, urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import DEFAULT_HEADERS, Settings
from .filenames import filename_for, short_h
from .resource import TEXTUAL_TYPES, Resource, ResourceType, resource_type_for
from .resource_handler import ResourceHandler

META_CHARSET_RE = re.compile(
    rb"""<meta[^>]+charset\s*=\s*["']?\s*([a-zA-Z0-9_.:-]+)""", re.IGNORECASE
)
CSS_CHARSET_RE = re.compile(rb"""^@charset\s+["']([a-zA-Z0-9_.:-]+)["']""")


class FetchResult(NamedTuple):
    url: str
    content_type: Optional[str]
    body: bytes


# -------------------- HTTP --------------------


def build_session(headers: Optional[Dict[str, str]] = None) -> requests.Session:
    s = requests.Session()
    retry = Retry(
        total=5,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods={"GET", "HEAD"},
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=128, pool_maxsize=128)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    s.headers.update(DEFAULT_HEADERS if headers is None else headers)
    return s


def apply_extra_headers(session: requests.Session, extra_headers: Iterable[str]) -> None:
    for h in extra_headers:
        if ":" not in h:
            logging.warning("invalid header (no colon): %s", h)
            continue
        k, v = h.split(":", 1)
        session.headers[k.strip()] = v.strip()


def normalize_url(u: str) -> str:
    return urldefrag(u)[0]


def is_same_origin(base: str, other: str) -> bool:
    b, o = urlparse(base), urlparse(other)
    return (b.scheme, b.netloc) == (o.scheme, o.netloc)


def url_allowed(u: str, start_urls: Iterable[str], settings: Settings) -> bool:
    if settings.same_origin_only and not any(is_same_origin(s, u) for s in start_urls):
        return False
    if settings.include and not re.search(settings.include, u):
        return False
    if settings.exclude and re.search(settings.exclude, u):
        return False
    return True


def detect_encoding(body: bytes, content_type: Optional[str], resource_type: str) -> str:
    declared = requests.utils.get_encoding_from_headers({"content-type": content_type or ""})
    if declared and "charset" in (content_type or "").lower():
        return declared
    head = body[:4096]
    m = (META_CHARSET_RE if resource_type == ResourceType.HTML else CSS_CHARSET_RE).search(head)
    if m:
        try:
            return codecs.lookup(m.group(1).decode("ascii")).name
        except LookupError:
            logging.debug("unknown charset %r", m.group(1))
    try:
        body.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError:
        return "windows-1252"


def ensure_parent_dir(p: Path) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)


# -------------------- Scraper context --------------------


class Scraper:
    """Context the resource handler works against.

    Owns everything around the resource graph: fetching, deduplication by
    url, depth limits, filenames and writing files. Undecodable bytes of
    textual resources survive the round trip through ``surrogateescape``.
    """

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or build_session(settings.request_headers())
        apply_extra_headers(self.session, settings.extra_headers)
        self.directory = Path(settings.directory)
        self.handler = ResourceHandler(settings.handler_options(), self)
        self.executor = ThreadPoolExecutor(max_workers=max(1, settings.workers))
        self.resources: List[Resource] = []
        self.errors: Dict[str, str] = {}
        self._requested: Dict[str, "asyncio.Future[Resource]"] = {}
        self._loading: Dict[str, "asyncio.Future[Resource]"] = {}
        self._filenames: Set[str] = set()

    def close(self) -> None:
        self.executor.shutdown(wait=True)
        self.session.close()

    # requests

    def fetch(self, url: str) -> FetchResult:
        logging.debug("GET %s", url)
        resp = self.session.get(url, timeout=self.settings.timeout, stream=True)
        with resp:
            resp.raise_for_status()
            cl = resp.headers.get("Content-Length")
            if cl and cl.isdigit() and int(cl) > self.settings.max_bytes:
                raise ValueError(f"too large ({cl} bytes)")
            chunks = []
            written = 0
            for chunk in resp.iter_content(chunk_size=64 * 1024):
                written += len(chunk)
                if written > self.settings.max_bytes:
                    raise ValueError(f"too large (over {self.settings.max_bytes} bytes)")
                chunks.append(chunk)
            return FetchResult(resp.url, resp.headers.get("Content-Type"), b"".join(chunks))

    def skip_reason(self, candidate: Resource, url: str) -> Optional[str]:
        if urlparse(url).scheme not in ("http", "https"):
            return "unsupported scheme"
        max_depth = self.settings.max_depth
        if max_depth is not None and candidate.get_depth() > max_depth:
            return "max depth"
        if candidate.parent is not None and not url_allowed(url, self.settings.urls, self.settings):
            return "not allowed"
        return None

    async def request_resource(self, candidate: Resource) -> Optional[Resource]:
        url = normalize_url(candidate.get_url())
        reason = self.skip_reason(candidate, url)
        if reason:
            logging.debug("skip %s: %s", url, reason)
            return None
        future = self._requested.get(url)
        if future is None:
            future = asyncio.ensure_future(self._download(candidate, url))
            self._requested[url] = future
        return await future

    async def _download(self, candidate: Resource, url: str) -> Resource:
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(self.executor, self.fetch, url)
        except (requests.RequestException, ValueError) as e:
            self.errors[url] = str(e)
            logging.warning("error downloading %s: %s", url, e)
            raise

        final_url = normalize_url(result.url or url)
        if final_url != url:
            logging.debug("redirect %s -> %s", url, final_url)
            # later references to the target share this download
            self._requested.setdefault(final_url, self._requested[url])
        resource_type = resource_type_for(result.content_type, final_url)
        candidate.set_url(final_url)
        candidate.set_type(resource_type)
        candidate.set_filename(
            self.reserve_filename(final_url, resource_type, result.content_type)
        )
        self.resources.append(candidate)

        if resource_type in TEXTUAL_TYPES:
            encoding = detect_encoding(result.body, result.content_type, resource_type)
            candidate.encoding = encoding
            candidate.set_text(result.body.decode(encoding, errors="surrogateescape"))
        else:
            path = self.directory / candidate.get_filename()
            await loop.run_in_executor(self.executor, self.write_bytes, path, result.body)
            logging.info("downloaded asset: %s -> %s", url, path)
        return candidate

    def reserve_filename(self, url: str, resource_type: str, content_type: Optional[str]) -> str:
        start_url = self.settings.urls[0] if self.settings.urls else url
        name = filename_for(
            url, resource_type, content_type, start_url, self.settings.default_filename
        )
        if name in self._filenames:
            stem, dot, ext = name.rpartition(".")
            if not dot or "/" in ext:
                stem, ext = name, ""
            name = f"{stem}_{short_h(url)}{'.' + ext if ext else ''}"
        self._filenames.add(name)
        return name

    # loading

    def load_resource(self, resource: Resource) -> "asyncio.Future[Resource]":
        key = resource.get_filename() or resource.get_url()
        future = self._loading.get(key)
        if future is None:
            future = asyncio.ensure_future(self._load(resource))
            self._loading[key] = future
        return future

    async def _load(self, resource: Resource) -> Resource:
        await self.handler.handle_resource(resource)
        if not resource.is_textual():
            return resource
        path = self.directory / resource.get_filename()
        try:
            data = resource.get_text().encode(
                resource.encoding or "utf-8", errors="surrogateescape"
            )
            await asyncio.get_running_loop().run_in_executor(
                self.executor, self.write_bytes, path, data
            )
        except (OSError, UnicodeError) as e:
            self.errors[resource.get_url()] = str(e)
            logging.warning("error saving %s: %s", resource.get_url(), e)
            return resource
        logging.info("saved %s -> %s", resource.get_url(), path)
        return resource

    async def wait_for_loads(self) -> None:
        while True:
            pending = [f for f in self._loading.values() if not f.done()]
            if not pending:
                break
            await asyncio.gather(*pending)
        for f in self._loading.values():
            f.result()

    @staticmethod
    def write_bytes(path: Path, data: bytes) -> None:
        ensure_parent_dir(path)
        path.write_bytes(data)

    # entry points

    async def scrape(self) -> List[Resource]:
        roots = [Resource(u) for u in self.settings.urls]
        outcomes = await asyncio.gather(
            *(self.request_resource(r) for r in roots), return_exceptions=True
        )
        loaded: List[Resource] = []
        for root, outcome in zip(roots, outcomes):
            if isinstance(outcome, BaseException) or outcome is None:
                logging.error("failed to fetch start url %s", root.get_url())
                continue
            loaded.append(outcome)
            if outcome.is_textual():
                self.load_resource(outcome)
        await self.wait_for_loads()
        return loaded


# -------------------- Manifest --------------------


def write_manifest(scraper: Scraper) -> Path:
    meta = scraper.directory / "meta"
    meta.mkdir(parents=True, exist_ok=True)
    pages = [r.get_filename() for r in scraper.resources if r.get_type() == ResourceType.HTML]
    assets = [r.get_filename() for r in scraper.resources if r.get_type() != ResourceType.HTML]
    # RFC3339 UTC timestamp without microseconds
    created_ts = (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )
    data = {
        "urls": list(scraper.settings.urls),
        "created_utc": created_ts,
        "pages": pages,
        "assets": assets,
        "failed": dict(scraper.errors),
    }
    path = meta / "manifest.json"
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def run(settings: Settings) -> List[Resource]:
    scraper = Scraper(settings)
    try:
        roots = asyncio.run(scraper.scrape())
        write_manifest(scraper)
    finally:
        scraper.close()
    return roots
