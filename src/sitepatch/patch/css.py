"""Idempotent insert-or-merge of a single CSS rule block.

The stylesheet itself is treated as opaque text: only the one block whose
selector matches exactly is ever rewritten, everything around it is kept
byte for byte.
"""

from __future__ import annotations

import re

__all__ = ["find_rule", "format_declarations", "parse_declarations", "upsert_rule"]


def parse_declarations(body: str) -> dict[str, str]:
    """Parse ``prop: value; ...`` into an ordered mapping.

    Declarations are split on ``;`` and then on their first ``:``. Entries
    without a colon or with an empty property name are dropped. A repeated
    property keeps its first position and its last value.
    """
    props: dict[str, str] = {}
    for chunk in body.split(";"):
        name, sep, value = chunk.partition(":")
        name = name.strip()
        if not sep or not name:
            continue
        props[name] = value.strip()
    return props


def format_declarations(props: dict[str, str]) -> str:
    return "; ".join(f"{name}: {value}" for name, value in props.items())


def _selector_pattern(selector: str) -> re.Pattern[str]:
    # The selector is literal text: escape it, but let any run of whitespace
    # inside it match any run of whitespace in the stylesheet.
    parts = [re.escape(p) for p in selector.split()]
    literal = r"\s+".join(parts)
    return re.compile(
        r"(?:\A|(?<=[};])|(?<=\*/))\s*"
        rf"(?P<selector>{literal})\s*\{{(?P<body>[^{{}}]*)\}}"
    )


def find_rule(css: str, selector: str) -> re.Match[str] | None:
    """Locate the first ``selector { body }`` block anchored at a selector
    boundary (start of text, ``}``, ``;`` or the end of a comment)."""
    if not selector.strip():
        return None
    return _selector_pattern(selector.strip()).search(css)


def _is_unsafe(text: str) -> bool:
    return "{" in text or "}" in text or "</" in text


def _ends_at_boundary(css: str) -> bool:
    tail = css.rstrip()
    return not tail or tail.endswith(("}", ";", "*/"))


def upsert_rule(css: str, selector: str, rules: str) -> str:
    """Insert ``selector { rules }`` or merge *rules* into the existing block.

    A selector or rules text containing braces or ``</`` is refused and the
    stylesheet comes back unchanged. When the stylesheet does not end at a
    selector boundary, a ``;`` is written before the new block so the block is
    found again on the next call. Applying the same ``(selector, rules)`` pair
    twice gives the same text as applying it once.
    """
    selector = selector.strip()
    if not selector or _is_unsafe(selector) or _is_unsafe(rules):
        return css
    match = find_rule(css, selector)
    if match is None:
        separator = "" if _ends_at_boundary(css) else ";"
        return f"{css}{separator}\n{selector} {{ {rules} }}"

    existing = parse_declarations(match.group("body"))
    merged = dict(existing)
    merged.update(parse_declarations(rules))
    if list(merged.items()) == list(existing.items()):
        return css

    block = f"{selector} {{ {format_declarations(merged)} }}"
    return css[: match.start("selector")] + block + css[match.end():]
