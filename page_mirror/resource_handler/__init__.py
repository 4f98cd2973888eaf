import asyncio
import logging
import posixpath
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional
from urllib.parse import quote, urljoin, urlparse

from ..path_containers import PathContainer, Replacement
from ..resource import Resource, ResourceType
from .css import load_css
from .html import load_html, normalize_base_tag

SUPPORTED_OPTIONS = ("prettify_urls", "default_filename", "sources")

Handler = Callable[["ResourceHandler", Resource], Awaitable[Any]]


async def noop(handler: "ResourceHandler", resource: Resource) -> None:
    return None


async def handle_html(handler: "ResourceHandler", resource: Resource) -> None:
    normalize_base_tag(resource)
    await load_css(handler, resource)
    await load_html(handler, resource)


class ResourceHandler:
    """Runs the per-type pipeline for a resource.

    ``context`` is the scraper context. It must provide an async
    ``request_resource(candidate)`` returning a Resource with a filename (or
    ``None`` to skip the reference) and a plain ``load_resource(resource)``
    that schedules recursive handling of a textual child.
    """

    def __init__(self, options: Optional[Mapping[str, Any]] = None, context: Any = None):
        options = options or {}
        self.options: Dict[str, Any] = {
            k: options[k] for k in SUPPORTED_OPTIONS if k in options
        }
        self.context = context

    def get_resource_handler(self, resource: Resource) -> Handler:
        resource_type = resource.get_type()
        if resource_type == ResourceType.HTML:
            return handle_html
        if resource_type == ResourceType.CSS:
            return load_css
        return noop

    async def handle_resource(self, resource: Resource) -> Resource:
        handler = self.get_resource_handler(resource)
        logging.debug("handle %s resource %s", resource.get_type(), resource.get_url())
        await handler(self, resource)
        return resource

    def get_relative_path(self, parent: Resource, child: Resource, url: str) -> str:
        parent_dir = posixpath.dirname(parent.get_filename() or "")
        rel = posixpath.relpath(child.get_filename(), parent_dir or ".")
        default_filename = self.options.get("default_filename")
        if self.options.get("prettify_urls") and default_filename:
            if posixpath.basename(rel) == default_filename:
                rel = rel[: -len(default_filename)] or "./"
        # filenames hold decoded characters; the reference must be a url
        rel = quote(rel, safe="/")
        fragment = urlparse(url).fragment
        if fragment:
            rel = f"{rel}#{fragment}"
        return rel

    async def handle_children_resources(
        self,
        container_factory: Callable[[str], PathContainer],
        resource: Resource,
        text: str,
    ) -> str:
        container = container_factory(text)
        paths = [p for p in container.get_paths() if p]
        base_url = resource.get_url()

        pending: List[tuple] = []
        for path in paths:
            url = urljoin(base_url, path)
            candidate = resource.create_child(url)
            pending.append((path, url, self.context.request_resource(candidate)))

        outcomes = await asyncio.gather(*(p[2] for p in pending), return_exceptions=True)

        replacements: List[Replacement] = []
        for (path, url, _), child in zip(pending, outcomes):
            if isinstance(child, BaseException):
                logging.debug("failed %s (from %s): %s", url, base_url, child)
                continue
            if child is None:
                logging.debug("skip %s (from %s)", url, base_url)
                continue
            resource.register_child(child)
            replacements.append(
                Replacement(path, self.get_relative_path(resource, child, url))
            )
            if child.is_textual():
                self.context.load_resource(child)

        updated = container.update_text(replacements)
        resource.set_text(updated)
        return updated
