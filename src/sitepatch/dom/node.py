"""Document tree: nodes with a tag, attributes, ordered children and text."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

DOCUMENT = "#document"
TEXT = "#text"
COMMENT = "#comment"
DOCTYPE = "#doctype"

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})


@dataclass(eq=False)
class Node:
    """One node of a document tree.

    Elements carry a lowercase tag name and an attribute map. Text, comment
    and doctype nodes use the pseudo tags ``#text``, ``#comment`` and
    ``#doctype`` and keep their content in ``text``. Nodes compare by
    identity; use :func:`structural_key` for a position-derived key.
    """

    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    children: list[Node] = field(default_factory=list)
    text: str | None = None
    parent: Node | None = field(default=None, repr=False)

    # --- kind ---------------------------------------------------------------

    @property
    def is_element(self) -> bool:
        return not self.tag.startswith("#")

    @property
    def is_text(self) -> bool:
        return self.tag == TEXT

    # --- tree structure -----------------------------------------------------

    def append(self, child: Node) -> Node:
        """Append *child* as the last child, detaching it from any old parent."""
        if child is self or child in self.ancestors():
            raise ValueError("cannot append a node to its own subtree")
        child.detach()
        child.parent = self
        self.children.append(child)
        return child

    def detach(self) -> None:
        """Remove this node from its parent, if any."""
        if self.parent is not None:
            siblings = self.parent.children
            for i, sibling in enumerate(siblings):
                if sibling is self:
                    del siblings[i]
                    break
            self.parent = None

    def clear(self) -> None:
        """Remove all children."""
        for child in self.children:
            child.parent = None
        self.children = []

    def replace_children(self, nodes: list[Node]) -> None:
        self.clear()
        for node in nodes:
            self.append(node)

    def ancestors(self) -> Iterator[Node]:
        """Yield the parent chain, nearest first."""
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def iter_descendants(self) -> Iterator[Node]:
        """Yield every descendant in document order (self excluded)."""
        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def iter_elements(self) -> Iterator[Node]:
        """Yield descendant elements in document order."""
        return (n for n in self.iter_descendants() if n.is_element)

    def element_children(self) -> list[Node]:
        return [c for c in self.children if c.is_element]

    def contains(self, other: Node) -> bool:
        """True if *other* is this node or one of its descendants."""
        return other is self or any(a is self for a in other.ancestors())

    # --- content ------------------------------------------------------------

    @property
    def text_content(self) -> str:
        if self.is_text:
            return self.text or ""
        return "".join(n.text or "" for n in self.iter_descendants() if n.is_text)

    def set_text(self, text: str) -> None:
        """Replace all children with a single text node."""
        self.clear()
        if text:
            self.append(Node(TEXT, text=text))

    # --- attributes ---------------------------------------------------------

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.attrs.get(name.lower(), default)

    def set(self, name: str, value: str) -> None:
        self.attrs[name.lower()] = value

    @property
    def classes(self) -> list[str]:
        return (self.attrs.get("class") or "").split()

    @classes.setter
    def classes(self, names: list[str]) -> None:
        if names:
            self.attrs["class"] = " ".join(names)
        else:
            self.attrs.pop("class", None)


@dataclass(eq=False)
class Document:
    """A parsed document: a synthetic ``#document`` root plus its subtree."""

    root: Node = field(default_factory=lambda: Node(DOCUMENT))

    def iter_elements(self) -> Iterator[Node]:
        return self.root.iter_elements()

    def find_first(self, tag: str) -> Node | None:
        tag = tag.lower()
        for node in self.iter_elements():
            if node.tag == tag:
                return node
        return None

    @property
    def body(self) -> Node | None:
        return self.find_first("body")


def structural_key(node: Node) -> str:
    """Derive an identity key from the node's position, tag, id and classes.

    The key is recomputed from the live tree on every call: it is only valid
    until the next mutation touching the node or its ancestors.
    """
    steps: list[str] = []
    current = node
    while current.parent is not None:
        siblings = current.parent.children
        index = next(i for i, s in enumerate(siblings) if s is current)
        steps.append(f"{current.tag}[{index}]")
        current = current.parent
    path = ">".join(reversed(steps))
    node_id = node.attrs.get("id", "")
    classes = ".".join(node.classes)
    return f"{path}|{node.tag}|#{node_id}|.{classes}"
