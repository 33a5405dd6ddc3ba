"""Tolerant HTML parsing and serialization.

Tree building sits on top of :class:`html.parser.HTMLParser`. The builder is
best effort, in the spirit of a browser: unclosed elements are closed at end
of input, stray end tags are dropped, and the usual optional end tags
(``p``, ``li``, ``td`` ...) close implicitly.
"""

from __future__ import annotations

from html import escape
from html.parser import HTMLParser

from sitepatch.dom.node import (
    COMMENT,
    DOCTYPE,
    TEXT,
    VOID_ELEMENTS,
    Document,
    Node,
)
from sitepatch.errors import ParseError

__all__ = ["parse_html", "parse_fragment", "serialize"]

RAW_TEXT_ELEMENTS = frozenset({"script", "style"})

# Block-level tags whose start closes an open <p>.
_CLOSES_P = frozenset({
    "address", "article", "aside", "blockquote", "details", "div", "dl",
    "fieldset", "figcaption", "figure", "footer", "form", "h1", "h2", "h3",
    "h4", "h5", "h6", "header", "hr", "main", "menu", "nav", "ol", "p",
    "pre", "section", "table", "ul",
})

# tag -> open tags it closes implicitly when it starts
_IMPLIED_END: dict[str, frozenset[str]] = {
    "li": frozenset({"li"}),
    "dt": frozenset({"dt", "dd"}),
    "dd": frozenset({"dt", "dd"}),
    "option": frozenset({"option"}),
    "tr": frozenset({"tr", "td", "th"}),
    "td": frozenset({"td", "th"}),
    "th": frozenset({"td", "th"}),
}

# An implicit close never crosses one of these containers.
_SCOPE_BOUNDARIES = frozenset({"ul", "ol", "dl", "select", "table", "tbody", "thead", "tfoot"})


class _TreeBuilder(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.document = Document()
        self._stack: list[Node] = [self.document.root]

    @property
    def _current(self) -> Node:
        return self._stack[-1]

    # --- implicit closing ---------------------------------------------------

    def _close_implied(self, tag: str) -> None:
        if tag in _CLOSES_P:
            self._pop_if_open("p", boundaries=frozenset({"button"}) | _SCOPE_BOUNDARIES)
        closes = _IMPLIED_END.get(tag)
        if closes:
            for i in range(len(self._stack) - 1, 0, -1):
                open_tag = self._stack[i].tag
                if open_tag in closes:
                    del self._stack[i:]
                    return
                if open_tag in _SCOPE_BOUNDARIES:
                    return

    def _pop_if_open(self, tag: str, boundaries: frozenset[str]) -> None:
        for i in range(len(self._stack) - 1, 0, -1):
            open_tag = self._stack[i].tag
            if open_tag == tag:
                del self._stack[i:]
                return
            if open_tag in boundaries:
                return

    # --- HTMLParser callbacks -----------------------------------------------

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self._close_implied(tag)
        node = Node(tag, attrs=_attr_map(attrs))
        self._current.append(node)
        if tag not in VOID_ELEMENTS:
            self._stack.append(node)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self._close_implied(tag)
        self._current.append(Node(tag, attrs=_attr_map(attrs)))

    def handle_endtag(self, tag: str) -> None:
        if tag in VOID_ELEMENTS:
            return
        for i in range(len(self._stack) - 1, 0, -1):
            if self._stack[i].tag == tag:
                del self._stack[i:]
                return
        # stray end tag: ignored

    def handle_data(self, data: str) -> None:
        if not data:
            return
        children = self._current.children
        if children and children[-1].is_text:
            children[-1].text = (children[-1].text or "") + data
        else:
            self._current.append(Node(TEXT, text=data))

    def handle_comment(self, data: str) -> None:
        self._current.append(Node(COMMENT, text=data))

    def handle_decl(self, decl: str) -> None:
        self._current.append(Node(DOCTYPE, text=decl))

    def unknown_decl(self, data: str) -> None:
        # <![CDATA[...]]> and friends carry no structure we keep.
        self.handle_data(data)


def _attr_map(attrs: list[tuple[str, str | None]]) -> dict[str, str]:
    out: dict[str, str] = {}
    for name, value in attrs:
        # First occurrence wins, as in browsers.
        if name not in out:
            out[name] = value if value is not None else ""
    return out


def _build(source: object) -> _TreeBuilder:
    if not isinstance(source, str):
        raise ParseError(f"Document source must be a string, got {type(source).__name__}")
    builder = _TreeBuilder()
    try:
        builder.feed(source)
        builder.close()
    except Exception as exc:
        raise ParseError(f"Unprocessable document: {exc}", cause=exc) from exc
    return builder


def parse_html(html: object) -> Document:
    """Parse an HTML string into a :class:`Document`.

    Raises:
        ParseError: The input is not a string or the tokenizer gave up on it.
    """
    return _build(html).document


def parse_fragment(html: object) -> list[Node]:
    """Parse an HTML fragment into a list of detached top-level nodes."""
    root = _build(html).document.root
    nodes = list(root.children)
    root.clear()
    return nodes


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def serialize(target: Document | Node) -> str:
    """Serialize a document or node back to HTML.

    For a :class:`Document` (or the ``#document`` node) only the children are
    emitted; for any other node the node itself is included.
    """
    parts: list[str] = []
    if isinstance(target, Document):
        for child in target.root.children:
            _write(child, parts)
    elif not target.is_element and target.tag == "#document":
        for child in target.children:
            _write(child, parts)
    else:
        _write(target, parts)
    return "".join(parts)


def inner_html(node: Node) -> str:
    parts: list[str] = []
    for child in node.children:
        _write(child, parts)
    return "".join(parts)


def _write(node: Node, out: list[str]) -> None:
    # Explicit stack: documents may nest deeper than the recursion limit.
    stack: list[Node | str] = [node]
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            out.append(item)
            continue
        if item.tag == TEXT:
            parent = item.parent
            if parent is not None and parent.tag in RAW_TEXT_ELEMENTS:
                out.append(item.text or "")
            else:
                out.append(escape(item.text or "", quote=False))
            continue
        if item.tag == COMMENT:
            out.append(f"<!--{item.text or ''}-->")
            continue
        if item.tag == DOCTYPE:
            out.append(f"<!{item.text or ''}>")
            continue
        if not item.is_element:
            stack.extend(reversed(item.children))
            continue

        out.append(f"<{item.tag}")
        for name, value in item.attrs.items():
            if value == "":
                out.append(f" {name}")
            else:
                out.append(f' {name}="{escape(value, quote=True)}"')
        out.append(">")
        if item.tag in VOID_ELEMENTS:
            continue
        stack.append(f"</{item.tag}>")
        stack.extend(reversed(item.children))
