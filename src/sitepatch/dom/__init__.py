from sitepatch.dom.node import Document, Node, structural_key
from sitepatch.dom.parser import inner_html, parse_fragment, parse_html, serialize
from sitepatch.dom.sanitizer import sanitize_fragment, sanitize_nodes
from sitepatch.dom.selector import SelectorGroup, matches, parse_selector, select

__all__ = [
    "Document",
    "Node",
    "structural_key",
    "parse_html",
    "parse_fragment",
    "serialize",
    "inner_html",
    "sanitize_fragment",
    "sanitize_nodes",
    "SelectorGroup",
    "parse_selector",
    "matches",
    "select",
]
