from __future__ import annotations

import pytest

from sitepatch.dom.parser import parse_html
from sitepatch.dom.selector import (
    AttributeTest,
    Compound,
    matches,
    parse_selector,
    select,
)
from sitepatch.errors import SelectorError

HTML = (
    '<div id="x" class="a b">'
    '<p class="c" data-k="v1 v2" lang="en-US">t</p>'
    "<span><p>q</p></span>"
    "</div>"
    '<footer><p class="c">f</p></footer>'
)


@pytest.fixture
def doc():
    return parse_html(HTML)


def _texts(nodes):
    return [n.text_content for n in nodes]


class TestParseSelector:
    def test_compound_parts(self):
        group = parse_selector("div#x.a.b[data-k]")
        (complex_,) = group.selectors
        (compound,) = complex_.compounds
        assert compound == Compound(
            tag="div",
            ids=("x",),
            classes=("a", "b"),
            attributes=(AttributeTest(name="data-k"),),
        )

    def test_combinators(self):
        (complex_,) = parse_selector("main > section p").selectors
        assert [c.tag for c in complex_.compounds] == ["main", "section", "p"]
        assert complex_.combinators == (">", " ")

    def test_group(self):
        assert len(parse_selector("h1, h2 ,h3").selectors) == 3

    def test_quoted_attribute_value(self):
        (complex_,) = parse_selector('[data-section="hero"]').selectors
        assert complex_.compounds[0].attributes == (
            AttributeTest(name="data-section", op="=", value="hero"),
        )

    def test_tag_is_case_insensitive(self):
        (complex_,) = parse_selector("DIV").selectors
        assert complex_.compounds[0].tag == "div"

    @pytest.mark.parametrize(
        "source",
        ["", "   ", "a:hover", "a + b", "a ~ b", "p::before", "#1abc", "div[", ">"],
    )
    def test_unsupported_syntax_raises(self, source):
        with pytest.raises(SelectorError):
            parse_selector(source)


class TestSelect:
    def test_descendant(self, doc):
        assert _texts(select(doc, "#x p")) == ["t", "q"]

    def test_child(self, doc):
        assert _texts(select(doc, "#x > p")) == ["t"]

    def test_classes_must_all_match(self, doc):
        assert len(select(doc, "div.a.b")) == 1
        assert select(doc, ".a.z") == []

    @pytest.mark.parametrize(
        "selector",
        [
            "[data-k]",
            '[data-k="v1 v2"]',
            "[data-k~=v2]",
            "[data-k^=v1]",
            "[data-k$=v2]",
            "[data-k*='1 v']",
            "[lang|=en]",
        ],
    )
    def test_attribute_operators(self, doc, selector):
        assert _texts(select(doc, selector)) == ["t"]

    def test_attribute_operator_mismatch(self, doc):
        assert select(doc, "[data-k~=v]") == []
        assert select(doc, "[lang|=e]") == []

    def test_group_results_are_in_document_order(self, doc):
        nodes = select(doc, "span, p")
        assert [n.tag for n in nodes] == ["p", "span", "p", "p"]

    def test_universal(self, doc):
        div = doc.find_first("div")
        assert [n.tag for n in select(div, "*")] == ["p", "span", "p"]

    def test_scope_itself_is_never_returned(self, doc):
        div = doc.find_first("div")
        assert select(div, "div") == []

    def test_ancestors_outside_scope_take_part(self, doc):
        span = doc.find_first("span")
        assert _texts(select(span, "div p")) == ["q"]

    def test_invalid_selector_selects_nothing(self, doc):
        assert select(doc, "p:first-child") == []
        assert select(doc, None) == []  # type: ignore[arg-type]

    def test_matches(self, doc):
        p = doc.find_first("p")
        assert matches(p, "div > p.c")
        assert not matches(p, "footer p")
