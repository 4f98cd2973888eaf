import logging
import re
from functools import partial
from urllib.parse import urljoin

from ..markup import HtmlDocument
from ..path_containers import HtmlCommonTag, HtmlImgSrcsetTag, split_sources
from ..resource import Resource

CLOSING_BASE_RE = re.compile(r"\s*</base\s*>", re.IGNORECASE)


def normalize_base_tag(resource: Resource) -> None:
    """Apply ``<base href>`` to the resource url and drop the tag.

    Every relative reference in the document resolves against the new url
    afterwards. A ``<base>`` without ``href`` is left alone.
    """
    text = resource.get_text()
    if not text or "<base" not in text.lower():
        return
    doc = HtmlDocument(text)
    tag = doc.soup.find("base", href=True)
    if tag is None:
        return
    base_url = urljoin(resource.get_url(), tag["href"].strip())
    logging.debug("base url for %s: %s", resource.get_url(), base_url)
    resource.set_url(base_url)

    start, end = doc.start_tag_span(tag)
    closing = CLOSING_BASE_RE.match(text, end)
    if closing:
        end = closing.end()
    resource.set_text(text[:start] + text[end:])


async def load_html(handler, resource: Resource) -> Resource:
    common, srcset = split_sources(handler.options.get("sources") or [])
    if common and resource.get_text():
        await handler.handle_children_resources(
            partial(HtmlCommonTag, sources=common), resource, resource.get_text()
        )
    if srcset and resource.get_text():
        await handler.handle_children_resources(
            partial(HtmlImgSrcsetTag, sources=srcset), resource, resource.get_text()
        )
    return resource
