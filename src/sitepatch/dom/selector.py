"""Minimal CSS selector support: grammar, parsed model, and matching.

Supported syntax:
    div  *  #id  .class  [attr]  [attr=value]  [attr~=v]  [attr^=v]
    [attr$=v]  [attr*=v]  [attr|=v]  a b (descendant)  a > b (child)
    a, b (groups)

Pseudo-classes, pseudo-elements and sibling combinators are not supported
and raise :class:`SelectorError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from lark import Lark, Token, Transformer
from lark.exceptions import LarkError

from sitepatch.dom.node import Document, Node
from sitepatch.errors import SelectorError

__all__ = [
    "AttributeTest",
    "Compound",
    "ComplexSelector",
    "SelectorGroup",
    "parse_selector",
    "matches",
    "select",
]

_GRAMMAR = r"""
start: complex (COMMA complex)*

complex: compound (combinator compound)*

combinator: CHILD | DESC

compound: type_selector subclass*
        | subclass+

type_selector: IDENT | STAR

?subclass: id_selector
         | class_selector
         | attr_selector

id_selector: "#" IDENT
class_selector: "." IDENT
attr_selector: "[" IDENT "]"
             | "[" IDENT ATTR_OP attr_value "]"

attr_value: STRING | BARE_VALUE

COMMA.2: /\s*,\s*/
CHILD.2: /\s*>\s*/
DESC: /\s+/
STAR: "*"
ATTR_OP: "=" | "~=" | "^=" | "$=" | "*=" | "|="
IDENT: /-?[_a-zA-Z][_a-zA-Z0-9-]*/
STRING: /"[^"]*"/ | /'[^']*'/
BARE_VALUE: /[^\]\s"']+/
"""


@dataclass(frozen=True)
class AttributeTest:
    """``[name]`` when *op* is empty, otherwise ``[name<op>value]``."""

    name: str
    op: str = ""
    value: str = ""

    def test(self, node: Node) -> bool:
        actual = node.attrs.get(self.name)
        if actual is None:
            return False
        if not self.op:
            return True
        if self.op == "=":
            return actual == self.value
        if self.op == "~=":
            return self.value in actual.split()
        if self.op == "|=":
            return actual == self.value or actual.startswith(self.value + "-")
        # ^= $= *= never match an empty value
        if not self.value:
            return False
        if self.op == "^=":
            return actual.startswith(self.value)
        if self.op == "$=":
            return actual.endswith(self.value)
        if self.op == "*=":
            return self.value in actual
        return False


@dataclass(frozen=True)
class Compound:
    """A sequence of simple selectors that must all hold on one element."""

    tag: str = "*"
    ids: tuple[str, ...] = ()
    classes: tuple[str, ...] = ()
    attributes: tuple[AttributeTest, ...] = ()

    def test(self, node: Node) -> bool:
        if not node.is_element:
            return False
        if self.tag != "*" and node.tag != self.tag:
            return False
        node_id = node.attrs.get("id")
        if any(i != node_id for i in self.ids):
            return False
        if self.classes:
            present = set(node.classes)
            if not all(c in present for c in self.classes):
                return False
        return all(a.test(node) for a in self.attributes)


@dataclass(frozen=True)
class ComplexSelector:
    """Compounds joined by combinators; ``combinators[i]`` sits between
    ``compounds[i]`` and ``compounds[i + 1]`` and is ``" "`` or ``">"``."""

    compounds: tuple[Compound, ...]
    combinators: tuple[str, ...] = ()

    def test(self, node: Node) -> bool:
        return _match_from(self, len(self.compounds) - 1, node)


@dataclass(frozen=True)
class SelectorGroup:
    selectors: tuple[ComplexSelector, ...]

    def test(self, node: Node) -> bool:
        return any(s.test(node) for s in self.selectors)


def _match_from(selector: ComplexSelector, index: int, node: Node) -> bool:
    """Right-to-left match of compounds[0..index] ending at *node*."""
    if not selector.compounds[index].test(node):
        return False
    if index == 0:
        return True
    combinator = selector.combinators[index - 1]
    parent = node.parent
    if combinator == ">":
        return parent is not None and _match_from(selector, index - 1, parent)
    while parent is not None:
        if _match_from(selector, index - 1, parent):
            return True
        parent = parent.parent
    return False


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class _SelectorTransformer(Transformer):  # type: ignore[type-arg]
    """Turn the lark parse tree into selector dataclasses."""

    def start(self, items: list[object]) -> SelectorGroup:
        return SelectorGroup(
            selectors=tuple(i for i in items if isinstance(i, ComplexSelector))
        )

    def complex(self, items: list[object]) -> ComplexSelector:
        compounds = tuple(i for i in items if isinstance(i, Compound))
        combinators = tuple(i for i in items if isinstance(i, str))
        return ComplexSelector(compounds=compounds, combinators=combinators)

    def combinator(self, items: list[Token]) -> str:
        return ">" if items[0].type == "CHILD" else " "

    def compound(self, items: list[object]) -> Compound:
        tag = "*"
        ids: list[str] = []
        classes: list[str] = []
        attributes: list[AttributeTest] = []
        for item in items:
            if isinstance(item, _TypeSel):
                tag = item.name
            elif isinstance(item, _IdSel):
                ids.append(item.name)
            elif isinstance(item, _ClassSel):
                classes.append(item.name)
            elif isinstance(item, AttributeTest):
                attributes.append(item)
        return Compound(
            tag=tag,
            ids=tuple(ids),
            classes=tuple(classes),
            attributes=tuple(attributes),
        )

    def type_selector(self, items: list[Token]) -> _TypeSel:
        return _TypeSel(str(items[0]).lower())

    def id_selector(self, items: list[Token]) -> _IdSel:
        return _IdSel(str(items[0]))

    def class_selector(self, items: list[Token]) -> _ClassSel:
        return _ClassSel(str(items[0]))

    def attr_selector(self, items: list[object]) -> AttributeTest:
        name = str(items[0]).lower()
        if len(items) == 1:
            return AttributeTest(name=name)
        return AttributeTest(name=name, op=str(items[1]), value=str(items[2]))

    def attr_value(self, items: list[Token]) -> str:
        token = items[0]
        raw = str(token)
        if token.type == "STRING":
            return raw[1:-1]
        return raw


@dataclass(frozen=True)
class _TypeSel:
    name: str


@dataclass(frozen=True)
class _IdSel:
    name: str


@dataclass(frozen=True)
class _ClassSel:
    name: str


_PARSER = Lark(_GRAMMAR, parser="lalr", start="start")


@lru_cache(maxsize=512)
def parse_selector(source: str) -> SelectorGroup:
    """Parse a selector string.

    Raises:
        SelectorError: The selector is empty or uses unsupported syntax.
    """
    text = source.strip() if isinstance(source, str) else ""
    if not text:
        raise SelectorError("Empty selector")
    try:
        tree = _PARSER.parse(text)
    except LarkError as exc:
        raise SelectorError(f"Unsupported selector {source!r}: {exc}", cause=exc) from exc
    return _SelectorTransformer().transform(tree)


def matches(node: Node, selector: str | SelectorGroup) -> bool:
    group = parse_selector(selector) if isinstance(selector, str) else selector
    return group.test(node)


def select(scope: Document | Node, selector: str) -> list[Node]:
    """Return elements under *scope* matching *selector*, in document order.

    Like ``querySelectorAll``, ancestors outside *scope* still take part in
    matching, and *scope* itself is never returned. An invalid selector
    yields an empty list.
    """
    if not isinstance(selector, str):
        return []
    try:
        group = parse_selector(selector)
    except SelectorError:
        return []
    root = scope.root if isinstance(scope, Document) else scope
    return [n for n in root.iter_elements() if group.test(n)]
