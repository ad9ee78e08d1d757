"""
Inline segmenter tests: math spans, emphasis runs and the formula fallback boundary.
"""
import time
from unittest.mock import patch

from mathword.inline_segmenter import segment
from mathword.schemas import BoldText, FormulaGroup, ItalicText, PlainText, Run, SuperScript


def test_bold_text_and_inline_formula():
    runs = segment("**bold** and $x^2$")
    assert runs == [
        BoldText(text="bold"),
        PlainText(text=" and "),
        FormulaGroup(nodes=[SuperScript(base=[Run(text="x")], script=[Run(text="2")])], source="x^2"),
    ]


def test_plain_line_is_single_run():
    assert segment("no markup here") == [PlainText(text="no markup here")]


def test_empty_line():
    assert segment("") == []


def test_italic_text():
    assert segment("an *emphasised* word") == [
        PlainText(text="an "), ItalicText(text="emphasised"), PlainText(text=" word"),
    ]


def test_display_math_is_preferred_over_inline():
    runs = segment("see $$a$b$$ now")
    assert len(runs) == 3
    formula = runs[1]
    assert formula.type == 'formula'
    assert formula.display is True
    assert formula.source == "a$b"


def test_inline_and_display_flags():
    runs = segment("$x$ then $$y$$")
    assert [r.display for r in runs if r.type == 'formula'] == [False, True]


def test_formula_content_is_trimmed():
    runs = segment("$  \\alpha  $")
    assert runs == [FormulaGroup(nodes=[Run(text="α")], source="\\alpha")]


def test_unclosed_dollar_stays_text():
    assert segment("costs $5") == [PlainText(text="costs $5")]


def test_empty_formula_emits_nothing():
    assert segment("a $ $ b") == [PlainText(text="a "), PlainText(text=" b")]


def test_malformed_formula_still_builds_literally():
    runs = segment("$\\frac{1}$")
    assert runs == [FormulaGroup(nodes=[Run(text="frac{1}")], source="\\frac{1}")]


def test_too_deep_formula_becomes_marked_plain_text():
    formula = "$" + "x^{" * 50 + "1" + "}" * 50 + "$"
    runs = segment("before " + formula, max_depth=8)
    assert runs[0] == PlainText(text="before ")
    assert runs[1].type == 'plain'
    assert runs[1].text == formula
    assert runs[1].error is not None


def test_unexpected_builder_failure_is_contained():
    with patch("mathword.latex_converter.build_nodes", side_effect=RuntimeError("boom")):
        runs = segment("a $x$ b")
    assert runs[1] == PlainText(text="$x$", error="RuntimeError: boom")
    assert runs[0] == PlainText(text="a ")
    assert runs[2] == PlainText(text=" b")


def test_emphasis_inside_formula_is_not_split():
    runs = segment("$a*b*c$")
    assert len(runs) == 1
    assert runs[0].type == 'formula'


def test_image_placeholder_in_math_span_is_literal():
    runs = segment("$[[IMG:3:1]]$")
    assert runs == [FormulaGroup(nodes=[Run(text="[[IMG:3:1]]")], source="[[IMG:3:1]]")]


def test_unclosed_display_delimiter_is_kept_as_text():
    runs = segment("price $$ unknown")
    assert runs == [PlainText(text="price "), PlainText(text="$$"), PlainText(text=" unknown")]
    assert "".join(r.text for r in runs) == "price $$ unknown"


def test_unbalanced_groups_segment_in_linear_time():
    start = time.perf_counter()
    runs = segment("$" + "x^{" * 8000 + "$")
    assert time.perf_counter() - start < 2.0
    assert runs[0].type == 'formula'
