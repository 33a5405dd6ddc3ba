"""Strip unsafe constructs from HTML fragments before they enter a document."""

from __future__ import annotations

import logging
import re

from sitepatch.dom.node import Node
from sitepatch.dom.parser import parse_fragment, serialize

__all__ = [
    "REMOVED_TAGS",
    "URL_ATTRIBUTES",
    "is_event_handler_attr",
    "is_javascript_url",
    "sanitize_fragment",
    "sanitize_nodes",
]

logger = logging.getLogger(__name__)

# Elements deleted together with their whole subtree.
REMOVED_TAGS = frozenset({"script", "iframe", "object", "embed", "style", "meta"})

URL_ATTRIBUTES = frozenset({"href", "src", "action", "formaction", "xlink:href"})

# Browsers ignore ASCII whitespace and control characters inside a scheme.
_IGNORED_URL_CHARS = re.compile(r"[\x00-\x20]+")


def is_event_handler_attr(name: str) -> bool:
    return name.strip().lower().startswith("on")


def is_javascript_url(value: str) -> bool:
    return _IGNORED_URL_CHARS.sub("", value).lower().startswith("javascript:")


def _is_removed(node: Node) -> bool:
    if node.tag in REMOVED_TAGS:
        return True
    if node.tag == "link":
        rel = (node.attrs.get("rel") or "").lower().split()
        return "stylesheet" in rel
    return False


def _clean_attrs(node: Node) -> None:
    for name in list(node.attrs):
        if is_event_handler_attr(name):
            del node.attrs[name]
        elif name in URL_ATTRIBUTES and is_javascript_url(node.attrs[name]):
            del node.attrs[name]


def sanitize_nodes(nodes: list[Node]) -> list[Node]:
    """Sanitize detached nodes in place and return the surviving top level."""
    kept: list[Node] = []
    for node in nodes:
        if node.is_element and _is_removed(node):
            logger.debug("Dropped <%s> from fragment", node.tag)
            node.detach()
            continue
        kept.append(node)
        _sanitize_subtree(node)
    return kept


def _sanitize_subtree(node: Node) -> None:
    stack = [node]
    while stack:
        current = stack.pop()
        if current.is_element:
            _clean_attrs(current)
        for child in list(current.children):
            if child.is_element and _is_removed(child):
                logger.debug("Dropped <%s> from fragment", child.tag)
                child.detach()
            else:
                stack.append(child)


def sanitize_fragment(html: str) -> str:
    """Return *html* with scripts, frames, embeds, style/meta/stylesheet links,
    ``on*`` attributes and ``javascript:`` URLs removed.

    Applying it twice gives the same result as applying it once.
    """
    return "".join(serialize(n) for n in sanitize_nodes(parse_fragment(html)))
