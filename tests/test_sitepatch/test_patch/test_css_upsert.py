from __future__ import annotations

import pytest

from sitepatch.patch.css import (
    find_rule,
    format_declarations,
    parse_declarations,
    upsert_rule,
)


class TestUpsertRule:
    def test_merges_into_existing_block(self):
        css = ".a { color: red; }"
        assert upsert_rule(css, ".a", "color: blue; margin: 1px") == ".a { color: blue; margin: 1px }"

    def test_appends_missing_block(self):
        css = "body { margin: 0 }"
        out = upsert_rule(css, ".hero h1", "font-size: 3rem")
        assert out == "body { margin: 0 }\n.hero h1 { font-size: 3rem }"

    def test_appends_to_empty_stylesheet(self):
        assert upsert_rule("", ".b", "color: red") == "\n.b { color: red }"

    def test_surrounding_text_is_untouched(self):
        css = "/* theme */\nbody { margin: 0 }\n.a { color: red }\nfooter { padding: 1em }"
        out = upsert_rule(css, ".a", "color: blue")
        assert out == "/* theme */\nbody { margin: 0 }\n.a { color: blue }\nfooter { padding: 1em }"

    def test_block_right_after_comment(self):
        css = "/* x */.a { color: red }"
        assert upsert_rule(css, ".a", "color: blue") == "/* x */.a { color: blue }"

    def test_selector_must_start_at_boundary(self):
        css = "div.a { color: red }"
        out = upsert_rule(css, ".a", "color: blue")
        assert out == "div.a { color: red }\n.a { color: blue }"

    def test_inner_whitespace_is_flexible(self):
        css = ".a  .b{color:red}"
        assert upsert_rule(css, ".a .b", "margin: 0") == ".a .b { color: red; margin: 0 }"

    def test_regex_metacharacters_are_literal(self):
        css = "a[href*='x'] { color: red }"
        out = upsert_rule(css, "a[href*='x']", "color: blue")
        assert out == "a[href*='x'] { color: blue }"
        assert upsert_rule(".x { a: b }", ".+", "c: d") == ".x { a: b }\n.+ { c: d }"

    def test_blank_selector_is_a_no_op(self):
        assert upsert_rule(".a { b: c }", "   ", "color: red") == ".a { b: c }"

    def test_separator_when_text_does_not_end_at_boundary(self):
        out = upsert_rule('@import "base.css"', ".a", "color: red")
        assert out == '@import "base.css";\n.a { color: red }'
        assert upsert_rule(out, ".a", "color: red") == out

    def test_refuses_braces_and_markup(self):
        assert upsert_rule("", ".a", "color: red }") == ""
        assert upsert_rule(".a { b: c }", ".a { x", "color: red") == ".a { b: c }"
        assert upsert_rule(".a { b: c }", ".a", "content: '</style>'") == ".a { b: c }"

    def test_unchanged_merge_returns_input(self):
        css = ".a{color:red}"
        assert upsert_rule(css, ".a", "color: red") == css

    @pytest.mark.parametrize(
        "css,selector,rules",
        [
            (".a { color: red; }", ".a", "color: blue; margin: 1px"),
            ("", ".new", "display: grid"),
            ("body{margin:0}", "body", "margin: 0; padding: 0"),
            (".a { x: 1 }", ".a", "garbage without colon"),
            ("p { a: 1 }", "p", "a: 2; a: 3"),
            ("/* c */", "#id > .k", "z-index: 2"),
            ('@import "base.css"', ".a", "color: red"),
            ("a { color: red", ".b", "margin: 0"),
            ("", ".a", "color: red }"),
            (".a { x: 1 }", ".a", "y: 2 } body { display: none"),
            ("", ".a { x", "color: red"),
        ],
    )
    def test_idempotent(self, css, selector, rules):
        once = upsert_rule(css, selector, rules)
        assert upsert_rule(once, selector, rules) == once


class TestDeclarations:
    def test_parse_drops_malformed_entries(self):
        assert parse_declarations(" a: 1; b; : 2; c: url(x:y) ") == {"a": "1", "c": "url(x:y)"}

    def test_parse_repeated_property_keeps_last_value(self):
        assert parse_declarations("a: 1; b: 2; a: 3") == {"a": "3", "b": "2"}

    def test_format(self):
        assert format_declarations({"color": "red", "margin": "0"}) == "color: red; margin: 0"

    def test_find_rule(self):
        match = find_rule("x { } .a { color: red }", ".a")
        assert match is not None
        assert match.group("body").strip() == "color: red"
        assert find_rule(".ab { }", ".a") is None
