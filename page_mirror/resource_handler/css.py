from ..path_containers import CssText


async def load_css(handler, resource):
    text = resource.get_text()
    if not text:
        return resource
    await handler.handle_children_resources(CssText, resource, text)
    return resource
