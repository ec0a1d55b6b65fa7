from __future__ import annotations

import pytest

from pdftextx.core.document import Document
from pdftextx.extractor import extract_page_text, extract_text_fragments
from pdftextx.text.interpreter import (
    ContentInterpreter,
    TextCollector,
    TextState,
    classify_operator,
    matrix_apply,
    matrix_multiply,
)
from pdftextx.types import ExtractionOptions


def _page_text(text_pdf, content: bytes, **kwargs) -> str:
    return extract_page_text(text_pdf([content], **kwargs), 0)


def test_matrix_multiply_applies_right_operand_first():
    scale = (2.0, 0.0, 0.0, 2.0, 0.0, 0.0)
    shift = (1.0, 0.0, 0.0, 1.0, 10.0, 5.0)

    combined = matrix_multiply(scale, shift)

    assert matrix_apply(combined, 1.0, 1.0) == (22.0, 12.0)
    assert matrix_apply(TextState.IDENTITY_MATRIX, 3.0, 4.0) == (3.0, 4.0)


@pytest.mark.parametrize(
    ("operator", "category"),
    [("Tj", "text_show"), ("Td", "text_position"), ("cm", "graphics_state"), ("re", "path_construction"), ("zz", "unknown")],
)
def test_classify_operator(operator, category):
    assert classify_operator(operator) == category


def test_single_show_gives_its_text(text_pdf):
    assert _page_text(text_pdf, b"BT /F1 12 Tf 72 720 Td (Hello) Tj ET") == "Hello"


def test_tj_adjustments_become_spaces_only_when_wide(text_pdf):
    content = b"BT /F1 12 Tf 72 720 Td [(Hello) -300 (World)] TJ 0 -20 Td [(Ker) 20 (ning)] TJ ET"

    assert _page_text(text_pdf, content) == "Hello World\nKerning"


def test_baseline_change_starts_new_line(text_pdf):
    content = b"BT /F1 12 Tf 72 720 Td (First) Tj 0 -14 Td (Second) Tj ET"

    assert _page_text(text_pdf, content) == "First\nSecond"


def test_small_rise_stays_on_the_line(text_pdf):
    content = b"BT /F1 12 Tf 72 720 Td (x) Tj 3 Ts (2) Tj ET"

    assert _page_text(text_pdf, content) == "x2"


def test_next_line_operators_force_newlines(text_pdf):
    content = b"BT /F1 12 Tf 14 TL 72 720 Td (A) Tj T* (B) Tj (C) ' 2 1 (D) \" ET"

    assert _page_text(text_pdf, content) == "A\nB\nC\nD"


def test_td_sets_leading(text_pdf):
    content = b"BT /F1 12 Tf 72 720 Td (one) Tj 0 -16 TD (two) Tj T* (three) Tj ET"
    fragments = extract_text_fragments(text_pdf([content]), 0)

    assert [fragment.y for fragment in fragments] == [720.0, 704.0, 688.0]


def test_horizontal_gap_becomes_space(text_pdf):
    content = b"BT /F1 12 Tf 72 720 Td (Left) Tj 100 0 Td (Right) Tj ET"

    assert _page_text(text_pdf, content) == "Left Right"


def test_backward_jump_on_same_line_becomes_space(text_pdf):
    content = b"BT /F1 12 Tf 72 720 Td (B) Tj -50 0 Td (A) Tj ET"

    assert _page_text(text_pdf, content) == "B A"


def test_explicit_space_is_not_doubled(text_pdf):
    content = b"BT /F1 12 Tf 72 720 Td (Hello ) Tj 40 0 Td (World) Tj ET"

    assert _page_text(text_pdf, content) == "Hello World"


def test_word_spacing_and_char_spacing_move_the_pen(text_pdf):
    content = b"BT /F1 10 Tf 2 Tc 5 Tw 0 0 Td (a b) Tj (c) Tj ET"
    fragments = extract_text_fragments(text_pdf([content]), 0)

    # Four glyphs of 5 + 2 each, plus 5 for the word space.
    assert len(fragments) == 1
    assert fragments[0].text == "a bc"
    assert fragments[0].width == pytest.approx(4 * 7 + 5)


def test_horizontal_scaling_compresses_advances(text_pdf):
    content = b"BT /F1 10 Tf 50 Tz 0 0 Td (ab) Tj ET"

    assert extract_text_fragments(text_pdf([content]), 0)[0].width == pytest.approx(5.0)


def test_text_matrix_and_ctm_give_device_positions(text_pdf):
    content = b"2 0 0 2 10 10 cm BT /F1 12 Tf 1 0 0 1 5 6 Tm (Big) Tj ET"

    fragment = extract_text_fragments(text_pdf([content]), 0)[0]

    assert (fragment.x, fragment.y) == (20.0, 22.0)
    assert fragment.font_size == pytest.approx(24.0)
    assert fragment.font_name == "Helvetica"


def test_graphics_state_is_restored_by_q(text_pdf):
    content = b"q 3 0 0 3 0 0 cm Q BT /F1 12 Tf 10 10 Td (Plain) Tj ET"

    fragment = extract_text_fragments(text_pdf([content]), 0)[0]

    assert (fragment.x, fragment.y, fragment.font_size) == (10.0, 10.0, 12.0)


def test_unbalanced_restore_is_ignored(text_pdf):
    assert _page_text(text_pdf, b"Q Q BT /F1 12 Tf (ok) Tj ET") == "ok"


def test_rotated_text_keeps_words_together(text_pdf):
    content = b"BT /F1 12 Tf 0 1 -1 0 300 100 Tm (Up) Tj (wards) Tj ET"

    assert _page_text(text_pdf, content) == "Upwards"


def test_bad_operands_are_skipped(text_pdf):
    content = b"BT /F1 Tf (x) 12 Td /F1 12 Tf 72 720 Td (still) Tj ET"

    assert _page_text(text_pdf, content) == "still"


@pytest.mark.parametrize("huge", [b"9" * 400, b"9" * 400 + b".5"])
def test_out_of_range_operands_are_skipped(text_pdf, huge):
    content = b"BT /F1 12 Tf " + huge + b" Tr " + huge + b" 0 Td 72 720 Td (kept) Tj ET"

    assert _page_text(text_pdf, content) == "kept"


def test_missing_font_resource_uses_fallback(text_pdf):
    assert _page_text(text_pdf, b"BT /F9 12 Tf 0 0 Td (Fallback) Tj ET") == "Fallback"


def test_text_without_font_still_decodes(text_pdf):
    assert _page_text(text_pdf, b"BT 0 0 Td (bare) Tj ET") == "bare"


def test_inline_images_are_skipped(text_pdf):
    content = b"BI /W 1 /H 1 /BPC 8 /CS /G ID \x80 EI BT /F1 12 Tf (after) Tj ET"

    assert _page_text(text_pdf, content) == "after"


def test_form_xobject_text_is_interpreted(text_pdf, make_stream):
    form = make_stream(
        b"BT /F1 12 Tf 0 0 Td (Inside form) Tj ET",
        b"/Type /XObject /Subtype /Form /BBox [0 0 200 50] /Matrix [1 0 0 1 50 60] ",
    )
    data = text_pdf(
        [b"BT /F1 12 Tf 72 720 Td (Before) Tj ET q 1 0 0 1 0 100 cm /Fm1 Do Q"],
        resources=b"/XObject << /Fm1 6 0 R >> ",
        extra_objects=[form],
    )

    fragments = extract_text_fragments(data, 0)

    assert [fragment.text for fragment in fragments] == ["Before", "Inside form"]
    assert (fragments[1].x, fragments[1].y) == (50.0, 160.0)
    assert extract_page_text(data, 0, ExtractionOptions(include_form_xobjects=False)) == "Before"


def test_self_drawing_form_xobject_terminates(text_pdf, make_stream):
    form = make_stream(
        b"BT /F1 12 Tf 0 0 Td (Loop) Tj ET /Fm1 Do",
        b"/Type /XObject /Subtype /Form /Resources << /Font << /F1 3 0 R >> /XObject << /Fm1 6 0 R >> >> ",
    )
    data = text_pdf([b"/Fm1 Do"], resources=b"/XObject << /Fm1 6 0 R >> ", extra_objects=[form])

    assert extract_page_text(data, 0) == "Loop"


def test_interpreter_resets_between_pages(three_page_pdf):
    document = Document(three_page_pdf)
    interpreter = ContentInterpreter(document)

    texts = ["".join(fragment.text for fragment in interpreter.run(page)) for page in document.pages]

    assert texts == ["Page one", "Page two", "Page three"]
    assert interpreter.operator_counts["text_show"] == 1


def test_collector_thresholds_are_configurable():
    collector = TextCollector(word_gap=1.0, line_gap=2.0)
    direction = (1.0, 0.0)

    collector.add_run("ab", (0.0, 0.0), (10.0, 0.0), direction, "F", 10.0)
    collector.add_run("cd", (15.0, 0.0), (25.0, 0.0), direction, "F", 10.0)
    collector.add_run("ef", (0.0, -15.0), (10.0, -15.0), direction, "F", 10.0)
    collector.add_run("gh", (0.0, -40.0), (10.0, -40.0), direction, "F", 10.0)

    assert [(fragment.separator, fragment.text) for fragment in collector.fragments] == [
        ("", "abcd"),
        (" ", "ef"),
        ("\n", "gh"),
    ]


def test_font_change_starts_a_fragment_without_a_separator():
    collector = TextCollector()
    direction = (1.0, 0.0)

    collector.add_run("bold", (0.0, 0.0), (24.0, 0.0), direction, "Helvetica-Bold", 12.0)
    collector.add_run("face", (24.0, 0.0), (48.0, 0.0), direction, "Helvetica", 12.0)
    collector.add_run("d", (48.0, 0.0), (54.0, 0.0), direction, "Helvetica", 12.0)

    assert [(fragment.separator, fragment.text, fragment.font_name) for fragment in collector.fragments] == [
        ("", "bold", "Helvetica-Bold"),
        ("", "faced", "Helvetica"),
    ]
    assert collector.fragments[1].width == 30.0
