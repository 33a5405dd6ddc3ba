"""Scope resolution: which nodes a patch may touch, and which it never may."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from sitepatch.config import DEFAULT_PROTECTED_SELECTORS
from sitepatch.dom.node import Document, Node
from sitepatch.dom.selector import select

__all__ = ["ProtectedSet", "compute_protected", "compute_roots", "fallback_root"]

logger = logging.getLogger(__name__)


def fallback_root(document: Document) -> Node:
    """The document's top-level content container: ``body``, else the root."""
    return document.body or document.root


def compute_roots(document: Document, root_selector: str | None) -> list[Node]:
    """Resolve the scope roots for one request, in document order.

    An absent, empty, invalid or non-matching selector falls back to
    :func:`fallback_root`.
    """
    roots: list[Node] = []
    if isinstance(root_selector, str) and root_selector.strip():
        roots = select(document, root_selector)
    if not roots:
        logger.debug("Root selector %r matched nothing; using fallback root", root_selector)
        return [fallback_root(document)]
    return roots


class ProtectedSet:
    """Nodes immune to mutation for one request, together with their subtrees.

    Membership of a subtree is not cached: every :meth:`is_protected` call
    walks the candidate's ancestor chain in the live tree.
    """

    def __init__(self, nodes: Iterable[Node] = ()) -> None:
        # keyed by id(); holding the node keeps its id from being reused
        self._nodes: dict[int, Node] = {}
        for node in nodes:
            self.add(node)

    def add(self, node: Node) -> None:
        self._nodes.setdefault(id(node), node)

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes.values())

    def is_protected(self, node: Node) -> bool:
        """True if *node* is, or descends from, a protected node."""
        if id(node) in self._nodes:
            return True
        return any(id(a) in self._nodes for a in node.ancestors())

    def intersects(self, node: Node) -> bool:
        """True if a protected node lies inside *node*'s subtree."""
        return any(node.contains(p) for p in self._nodes.values())


def compute_protected(
    document: Document,
    protected_selectors: Iterable[str] = (),
    *,
    defaults: Iterable[str] = DEFAULT_PROTECTED_SELECTORS,
) -> ProtectedSet:
    """Collect nodes matched by the default and caller-supplied selectors.

    Invalid selectors match nothing.
    """
    protected = ProtectedSet()
    for selector in [*defaults, *protected_selectors]:
        for node in select(document, selector):
            protected.add(node)
    return protected
