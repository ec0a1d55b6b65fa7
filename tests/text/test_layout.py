from __future__ import annotations

import json

import pytest

from pdftextx.text.layout import (
    FORMATS,
    find_matches,
    format_fragments,
    group_into_blocks,
    group_into_lines,
    render_text,
    split_words,
    to_html,
    to_json,
)
from pdftextx.types import PageInfo, TextFragment


def _fragment(text, x, y, *, width=None, size=10.0, separator="", font="Helvetica"):
    return TextFragment(
        text=text,
        x=x,
        y=y,
        width=len(text) * 5.0 if width is None else width,
        font_name=font,
        font_size=size,
        separator=separator,
    )


@pytest.fixture()
def column():
    """Two lines of one paragraph and a third line far below."""

    return [
        _fragment("Hello world", 72.0, 700.0),
        _fragment("second line", 72.0, 688.0, separator="\n"),
        _fragment("Footer", 72.0, 100.0, separator="\n"),
    ]


def test_render_text_joins_separators_and_trims():
    fragments = [
        _fragment("  ", 0.0, 0.0),
        _fragment("Title   ", 0.0, 0.0, separator="\n"),
        _fragment("body", 0.0, 0.0, separator="\n"),
        _fragment("end", 0.0, 0.0, separator=" "),
        _fragment("", 0.0, 0.0, separator="\n"),
    ]

    assert render_text(fragments) == "Title\nbody end"


def test_render_text_of_nothing_is_empty():
    assert render_text([]) == ""


def test_split_words_shares_width_between_characters():
    words = split_words([_fragment("ab  cd", 10.0, 50.0, width=60.0)])

    assert [(word.text, word.x, word.width) for word in words] == [("ab", 10.0, 20.0), ("cd", 50.0, 20.0)]
    assert all(word.height == 10.0 for word in words)


def test_group_into_lines_orders_top_down_and_left_to_right():
    fragments = [
        _fragment("right", 300.0, 500.0),
        _fragment("lower", 72.0, 480.0),
        _fragment("left", 72.0, 501.0),
    ]

    lines = group_into_lines(fragments)

    assert [line.text for line in lines] == ["left right", "lower"]
    assert lines[0].height == 10.0


def test_group_into_blocks_splits_on_large_gaps(column):
    blocks = group_into_blocks(group_into_lines(column))

    assert [block.text for block in blocks] == ["Hello world\nsecond line", "Footer"]
    first = blocks[0]
    assert (first.x, first.y) == (72.0, 700.0)
    assert first.width == pytest.approx(55.0)
    assert first.height == pytest.approx(22.0)


def test_to_json_describes_blocks(column):
    payload = json.loads(to_json(column, PageInfo(number=3, width=612.0, height=792.0)))

    assert (payload["page"], payload["width"], payload["height"]) == (3, 612.0, 792.0)
    assert len(payload["blocks"]) == 2
    first_line = payload["blocks"][0]["lines"][0]
    assert first_line["text"] == "Hello world"
    assert [word["text"] for word in first_line["words"]] == ["Hello", "world"]


def test_to_json_without_page_info():
    payload = json.loads(to_json([]))

    assert payload == {"page": None, "width": None, "height": None, "blocks": []}


def test_to_html_positions_lines_and_escapes():
    fragments = [_fragment("a<b & c", 72.0, 700.0, font="Times<Bold>")]

    markup = to_html(fragments, PageInfo(number=2, width=612.0, height=792.0))

    assert markup.startswith('<div class="page" data-page="2">')
    assert "top:92.0px;left:72.0px;" in markup
    assert "a&lt;b" in markup
    assert "&amp;" in markup
    assert "Times&lt;Bold&gt;" in markup
    assert markup.endswith("</div>")


def test_to_html_of_empty_page():
    assert to_html([]) == '<div class="page" data-page="1"></div>'


@pytest.mark.parametrize("fmt", FORMATS)
def test_format_fragments_supports_every_format(fmt, column):
    assert format_fragments(column, fmt) is not None


def test_format_fragments_rejects_unknown_format(column):
    with pytest.raises(ValueError, match="Unsupported format"):
        format_fragments(column, "pdf")


def test_find_matches_interpolates_positions_inside_a_run():
    fragments = [_fragment("Hello World", 100.0, 700.0, width=110.0)]

    (match,) = find_matches(fragments, "World", 1)

    assert match.text == "World"
    assert match.x == pytest.approx(160.0)
    assert match.width == pytest.approx(50.0)
    assert (match.y, match.height, match.page) == (700.0, 10.0, 1)
    assert match.context == "Hello World"


def test_find_matches_is_case_sensitive_unless_asked():
    fragments = [_fragment("Total", 0.0, 50.0), _fragment("total", 0.0, 30.0, separator="\n")]

    assert [match.y for match in find_matches(fragments, "total", 3)] == [30.0]
    matches = find_matches(fragments, "TOTAL", 3, ignore_case=True)
    assert [(match.text, match.context) for match in matches] == [("Total", "Total"), ("total", "total")]


def test_find_matches_spans_runs_on_one_line():
    fragments = [_fragment("Grand", 10.0, 100.0), _fragment("total", 50.0, 100.0, separator=" ")]

    (match,) = find_matches(fragments, "d t", 1)

    assert match.x == pytest.approx(30.0)
    assert match.width == pytest.approx(25.0)
    assert match.context == "Grand total"


def test_find_matches_counts_every_occurrence():
    fragments = [_fragment("abcabcab", 0.0, 0.0)]

    assert len(find_matches(fragments, "ab", 1)) == 3
    assert find_matches(fragments, "", 1) == []
    assert find_matches([], "ab", 1) == []
