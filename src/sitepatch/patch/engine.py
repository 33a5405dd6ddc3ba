"""Apply a batch of untrusted edit operations to an HTML document.

Operations run in caller order, each one seeing the mutations made by the
ones before it. Every operation is confined to the request's scope roots,
never touches a protected subtree, and stops once the change budget is spent.
A malformed or out-of-policy operation is skipped rather than raised: the
only hard failure is a root document that cannot be parsed.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable

from sitepatch.config import DEFAULT_PROTECTED_SELECTORS
from sitepatch.dom.node import Document, Node, structural_key
from sitepatch.dom.parser import parse_fragment, parse_html, serialize
from sitepatch.dom.sanitizer import (
    URL_ATTRIBUTES,
    is_event_handler_attr,
    is_javascript_url,
    sanitize_nodes,
)
from sitepatch.dom.selector import select
from sitepatch.patch.css import upsert_rule
from sitepatch.patch.ops import (
    AddClass,
    AppendHtml,
    AppliedChange,
    Operation,
    PatchRequest,
    PatchResult,
    RemoveClass,
    ReplaceHtml,
    ReplaceText,
    SetAttr,
    UpsertStyle,
    class_tokens,
    op_signature,
    parse_operation,
)
from sitepatch.patch.scope import ProtectedSet, compute_protected, compute_roots

__all__ = ["PatchEngine", "apply_patch"]

logger = logging.getLogger(__name__)

_ATTR_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_.:-]*$")

NodeMutation = Callable[[Operation, Node], bool]


class _Budget:
    def __init__(self, max_ops: int) -> None:
        self.max_ops = max_ops
        self.changed = 0

    @property
    def exhausted(self) -> bool:
        return self.max_ops > 0 and self.changed >= self.max_ops


class PatchEngine:
    """Scoped, sanitizing patch application.

    Args:
        protected_defaults: Selectors protected on every request, in addition
            to the request's own ``protected_selectors``.
    """

    def __init__(self, protected_defaults: Iterable[str] = DEFAULT_PROTECTED_SELECTORS) -> None:
        self.protected_defaults = tuple(protected_defaults)
        self._mutations: dict[type, NodeMutation] = {
            ReplaceText: _replace_text,
            AppendHtml: _append_html,
            ReplaceHtml: _replace_html,
            SetAttr: _set_attr,
            AddClass: _add_class,
            RemoveClass: _remove_class,
        }

    def apply(self, request: PatchRequest) -> PatchResult:
        """Apply ``request.ops`` and return the patched html/css.

        Raises:
            ParseError: ``request.html`` cannot be parsed. Nothing is mutated.
        """
        document = parse_html(request.html)
        css = request.css if isinstance(request.css, str) else ""

        roots = compute_roots(document, request.root_selector)
        protected = compute_protected(
            document, request.protected_selectors, defaults=self.protected_defaults
        )

        budget = _Budget(request.max_ops)
        log: list[AppliedChange] = []
        applied: set[tuple[str, str]] = set()

        for raw in request.ops:
            if budget.exhausted:
                logger.debug("Change budget of %d reached; ignoring remaining ops", budget.max_ops)
                break
            op = parse_operation(raw)
            if op is None:
                logger.debug("Skipping unusable operation: %r", raw)
                continue

            if isinstance(op, UpsertStyle):
                new_css = self._upsert_style(op, css)
                if new_css != css:
                    css = new_css
                    budget.changed += 1
                    log.append(AppliedChange(op=op.kind.value, selector=op.selector))
                continue

            self._apply_to_candidates(
                op, document, roots, protected, budget, log, applied
            )

        logger.info(
            "Patch applied: ops=%d changed=%d", len(request.ops), budget.changed
        )
        return PatchResult(
            html=serialize(document),
            css=css,
            changed_count=budget.changed,
            applied_log=tuple(log),
        )

    # --- internals ----------------------------------------------------------

    def _apply_to_candidates(
        self,
        op: Operation,
        document: Document,
        roots: list[Node],
        protected: ProtectedSet,
        budget: _Budget,
        log: list[AppliedChange],
        applied: set[tuple[str, str]],
    ) -> None:
        mutate = self._mutations[type(op)]
        signature = op_signature(op)
        for node, key in _candidates(roots, op.selector):
            if budget.exhausted:
                return
            if not document.root.contains(node):
                # an earlier candidate of this op replaced its subtree
                continue
            if protected.is_protected(node):
                logger.debug("Skipping protected target %s for %s", key, op.kind)
                continue
            if isinstance(op, ReplaceHtml) and any(node is r for r in roots):
                logger.debug("Skipping replace_html on scope root %s", key)
                continue
            if isinstance(op, (ReplaceText, ReplaceHtml)) and protected.intersects(node):
                logger.debug("Skipping %s that would wipe a protected subtree under %s", op.kind, key)
                continue
            if (signature, key) in applied:
                continue
            if mutate(op, node):
                applied.add((signature, key))
                budget.changed += 1
                log.append(AppliedChange(op=op.kind.value, selector=op.selector, target=key))

    def _upsert_style(self, op: UpsertStyle, css: str) -> str:
        rules = op.style_rules
        if not isinstance(rules, str) or not rules.strip():
            return css
        # upsert_rule refuses braces and markup itself
        return upsert_rule(css, op.selector, rules)


def _candidates(roots: list[Node], selector: str) -> list[tuple[Node, str]]:
    """Matches under every root, de-duplicated by structural key."""
    seen: set[str] = set()
    out: list[tuple[Node, str]] = []
    for root in roots:
        for node in select(root, selector):
            key = structural_key(node)
            if key in seen:
                continue
            seen.add(key)
            out.append((node, key))
    return out


# ---------------------------------------------------------------------------
# Per-kind mutations. Each returns True when the node was changed.
# ---------------------------------------------------------------------------


def _replace_text(op: ReplaceText, node: Node) -> bool:
    if not isinstance(op.text, str):
        return False
    node.set_text(op.text)
    return True


def _safe_fragment(html: object) -> list[Node] | None:
    if not isinstance(html, str):
        return None
    return sanitize_nodes(parse_fragment(html))


def _append_html(op: AppendHtml, node: Node) -> bool:
    nodes = _safe_fragment(op.html)
    if nodes is None:
        return False
    for child in nodes:
        node.append(child)
    return True


def _replace_html(op: ReplaceHtml, node: Node) -> bool:
    nodes = _safe_fragment(op.html)
    if nodes is None:
        return False
    node.replace_children(nodes)
    return True


def _set_attr(op: SetAttr, node: Node) -> bool:
    name = op.attr
    if not isinstance(name, str) or not _ATTR_NAME_RE.match(name.strip()):
        return False
    name = name.strip().lower()
    if is_event_handler_attr(name):
        return False
    if op.value is None:
        value = ""
    elif isinstance(op.value, str):
        value = op.value
    else:
        return False
    if name in URL_ATTRIBUTES and is_javascript_url(value):
        return False
    node.set(name, value)
    return True


def _add_class(op: AddClass, node: Node) -> bool:
    tokens = class_tokens(op.classes)
    if not tokens:
        return False
    current = node.classes
    added = [t for t in dict.fromkeys(tokens) if t not in current]
    if not added:
        return False
    node.classes = current + added
    return True


def _remove_class(op: RemoveClass, node: Node) -> bool:
    tokens = set(class_tokens(op.classes))
    if not tokens:
        return False
    current = node.classes
    kept = [c for c in current if c not in tokens]
    if len(kept) == len(current):
        return False
    node.classes = kept
    return True


def apply_patch(
    html: str,
    css: str,
    ops: Iterable[object],
    *,
    root_selector: str | None = None,
    protected_selectors: Iterable[str] = (),
    max_ops: int = 0,
    protected_defaults: Iterable[str] = DEFAULT_PROTECTED_SELECTORS,
) -> PatchResult:
    """Convenience wrapper: build a request and run it on a fresh engine."""
    request = PatchRequest(
        html=html,
        css=css,
        ops=tuple(ops),
        root_selector=root_selector,
        protected_selectors=tuple(protected_selectors),
        max_ops=max_ops,
    )
    return PatchEngine(protected_defaults).apply(request)
