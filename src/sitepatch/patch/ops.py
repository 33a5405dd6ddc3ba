"""Patch operations and the request/result envelopes around them.

Operations arrive as JSON objects proposed by a model, so field values are
kept as received: type checks happen when an operation is applied, where a
wrong type turns the operation into a no-op instead of an error.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class OpKind(StrEnum):
    REPLACE_TEXT = "replace_text"
    APPEND_HTML = "append_html"
    REPLACE_HTML = "replace_html"
    SET_ATTR = "set_attr"
    ADD_CLASS = "add_class"
    REMOVE_CLASS = "remove_class"
    UPSERT_STYLE = "upsert_style"


@dataclass(frozen=True)
class ReplaceText:
    selector: str
    text: Any = None
    kind = OpKind.REPLACE_TEXT


@dataclass(frozen=True)
class AppendHtml:
    selector: str
    html: Any = None
    kind = OpKind.APPEND_HTML


@dataclass(frozen=True)
class ReplaceHtml:
    selector: str
    html: Any = None
    kind = OpKind.REPLACE_HTML


@dataclass(frozen=True)
class SetAttr:
    selector: str
    attr: Any = None
    value: Any = None
    kind = OpKind.SET_ATTR


@dataclass(frozen=True)
class AddClass:
    selector: str
    classes: Any = None
    kind = OpKind.ADD_CLASS


@dataclass(frozen=True)
class RemoveClass:
    selector: str
    classes: Any = None
    kind = OpKind.REMOVE_CLASS


@dataclass(frozen=True)
class UpsertStyle:
    """Targets the stylesheet, not the document: ``selector`` is the CSS
    selector of the rule block."""

    selector: str
    style_rules: Any = None
    kind = OpKind.UPSERT_STYLE


Operation = ReplaceText | AppendHtml | ReplaceHtml | SetAttr | AddClass | RemoveClass | UpsertStyle


def parse_operation(raw: Any) -> Operation | None:
    """Build an operation from its JSON form, or None if it is unusable.

    Unknown kinds, non-object entries and missing or blank selectors all
    return None.
    """
    if not isinstance(raw, dict):
        return None
    try:
        kind = OpKind(raw.get("op"))
    except ValueError:
        return None

    if kind is OpKind.UPSERT_STYLE:
        selector = raw.get("cssSelector") or raw.get("selector")
    else:
        selector = raw.get("selector")
    if not isinstance(selector, str) or not selector.strip():
        return None

    if kind is OpKind.REPLACE_TEXT:
        return ReplaceText(selector, raw.get("text"))
    if kind is OpKind.APPEND_HTML:
        return AppendHtml(selector, raw.get("html"))
    if kind is OpKind.REPLACE_HTML:
        return ReplaceHtml(selector, raw.get("html"))
    if kind is OpKind.SET_ATTR:
        return SetAttr(selector, raw.get("attr"), raw.get("value"))
    classes = raw.get("classes", raw.get("value"))
    if kind is OpKind.ADD_CLASS:
        return AddClass(selector, classes)
    if kind is OpKind.REMOVE_CLASS:
        return RemoveClass(selector, classes)
    return UpsertStyle(selector, raw.get("styleRules"))


def class_tokens(value: Any) -> list[str]:
    """Split a class list given as a string or a list of strings."""
    if isinstance(value, str):
        return value.split()
    if isinstance(value, (list, tuple)):
        tokens: list[str] = []
        for item in value:
            if isinstance(item, str):
                tokens.extend(item.split())
        return tokens
    return []


def selector_tuple(value: Any) -> tuple[str, ...]:
    """Normalize a selector list given as one string or a list of strings.

    A bare string is a single selector. Other types give an empty tuple.
    """
    if isinstance(value, str):
        return (value,) if value.strip() else ()
    if isinstance(value, (list, tuple)):
        return tuple(s for s in value if isinstance(s, str))
    return ()


def op_signature(op: Operation) -> str:
    """Stable text form of an operation, used to spot repeats in one batch."""
    payload = {k: v for k, v in op.__dict__.items()}
    return f"{op.kind}:{json.dumps(payload, sort_keys=True, default=str)}"


# ---------------------------------------------------------------------------
# Request / result envelopes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PatchRequest:
    html: str
    css: str = ""
    ops: tuple[Any, ...] = ()
    root_selector: str | None = None
    protected_selectors: tuple[str, ...] = ()
    max_ops: int = 0  # <= 0 means unbounded

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatchRequest:
        """Build a request from its JSON shape (camelCase keys)."""
        ops = data.get("ops") or ()
        root = data.get("rootSelector", data.get("root"))
        try:
            max_ops = int(data.get("maxOps") or 0)
        except (TypeError, ValueError, OverflowError):
            max_ops = 0
        return cls(
            html=data.get("html", ""),
            css=data.get("css") or "",
            ops=tuple(ops) if isinstance(ops, (list, tuple)) else (),
            root_selector=root if isinstance(root, str) else None,
            protected_selectors=selector_tuple(data.get("protectedSelectors")),
            max_ops=max_ops,
        )


@dataclass(frozen=True)
class AppliedChange:
    op: str
    selector: str
    target: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"op": self.op, "selector": self.selector, "target": self.target}


@dataclass(frozen=True)
class PatchResult:
    html: str
    css: str
    changed_count: int = 0
    applied_log: tuple[AppliedChange, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "html": self.html,
            "css": self.css,
            "changedCount": self.changed_count,
            "appliedLog": [entry.to_dict() for entry in self.applied_log],
        }
