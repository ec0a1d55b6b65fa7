"""Grouping of text fragments into words, lines and blocks, plus output formats."""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import asdict, dataclass, field
import html
import json
import re
from typing import Any, Iterable

from ..types import PageInfo, TextFragment, TextMatch

__all__ = [
    "FORMATS",
    "TextWord",
    "TextLine",
    "TextBlock",
    "render_text",
    "split_words",
    "group_into_lines",
    "group_into_blocks",
    "to_html",
    "to_json",
    "format_fragments",
    "find_matches",
]

FORMATS = ("text", "words", "lines", "blocks", "json", "html")

# Lines further apart than this many line heights start a new block.
_BLOCK_GAP = 2.0


@dataclass(slots=True)
class TextWord:
    text: str
    x: float
    y: float
    width: float
    height: float
    font_name: str = ""
    font_size: float = 0.0


@dataclass(slots=True)
class TextLine:
    y: float
    words: list[TextWord] = field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(word.text for word in self.words)

    @property
    def height(self) -> float:
        return max((word.height for word in self.words), default=0.0)


@dataclass(slots=True)
class TextBlock:
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    lines: list[TextLine] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)


def render_text(fragments: Iterable[TextFragment]) -> str:
    """Join fragments with their separators into the plain page text.

    Trailing blanks are removed from every line, as are empty lines at the
    start and end of the page.
    """

    text = "".join(fragment.separator + fragment.text for fragment in fragments)
    lines = [line.rstrip() for line in text.replace("\r\n", "\n").replace("\r", "\n").split("\n")]
    return "\n".join(lines).strip("\n")


def split_words(fragments: Iterable[TextFragment]) -> list[TextWord]:
    """Split fragments at whitespace.

    The fragment width is shared among its characters so each word gets an
    approximate position of its own.
    """

    words: list[TextWord] = []
    for fragment in fragments:
        text = fragment.text
        if not text:
            continue
        per_char = fragment.width / len(text)
        position = 0
        for part in text.split():
            position = text.index(part, position)
            words.append(
                TextWord(
                    text=part,
                    x=fragment.x + position * per_char,
                    y=fragment.y,
                    width=len(part) * per_char,
                    height=fragment.font_size,
                    font_name=fragment.font_name,
                    font_size=fragment.font_size,
                )
            )
            position += len(part)
    return words


def group_into_lines(fragments: Iterable[TextFragment]) -> list[TextLine]:
    """Group words sharing a baseline, top of the page first, left to right."""

    lines: list[TextLine] = []
    for word in split_words(fragments):
        tolerance = max(word.height, 1.0) * 0.5
        for line in lines:
            if abs(line.y - word.y) < tolerance:
                line.words.append(word)
                break
        else:
            lines.append(TextLine(y=word.y, words=[word]))

    lines.sort(key=lambda line: -line.y)
    for line in lines:
        line.words.sort(key=lambda word: word.x)
    return lines


def group_into_blocks(lines: list[TextLine]) -> list[TextBlock]:
    blocks: list[TextBlock] = []
    previous: TextLine | None = None
    for line in lines:
        if not line.words:
            continue
        if previous is None or abs(previous.y - line.y) > previous.height * _BLOCK_GAP:
            blocks.append(TextBlock(x=line.words[0].x, y=line.y))
        blocks[-1].lines.append(line)
        previous = line

    for block in blocks:
        words = [word for line in block.lines for word in line.words]
        left = min(word.x for word in words)
        right = max(word.x + word.width for word in words)
        block.x = left
        block.width = right - left
        # y is the top baseline; height runs down to the last line's descent.
        block.height = block.y - block.lines[-1].y + block.lines[-1].height
    return blocks


def to_json(fragments: list[TextFragment], page: PageInfo | None = None) -> str:
    blocks = group_into_blocks(group_into_lines(fragments))
    payload: dict[str, Any] = {
        "page": page.number if page else None,
        "width": page.width if page else None,
        "height": page.height if page else None,
        "blocks": [
            {
                "x": block.x,
                "y": block.y,
                "width": block.width,
                "height": block.height,
                "lines": [
                    {"y": line.y, "text": line.text, "words": [asdict(word) for word in line.words]}
                    for line in block.lines
                ],
            }
            for block in blocks
        ],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def to_html(fragments: list[TextFragment], page: PageInfo | None = None) -> str:
    """Absolutely positioned HTML, one ``<p>`` per line."""

    lines = group_into_lines(fragments)
    number = page.number if page else 1
    if not lines:
        return f'<div class="page" data-page="{number}"></div>'
    top_of_page = page.height if page else max(line.y for line in lines)

    parts = [f'<div class="page" data-page="{number}">']
    for line in lines:
        spans = []
        for word in line.words:
            style = f"font-size:{word.font_size:.1f}px;"
            if word.font_name:
                style += f"font-family:'{html.escape(word.font_name, quote=True)}';"
            spans.append(f'<span style="{style}">{html.escape(word.text, quote=False)}</span>')
        parts.append(
            f'  <p style="position:absolute;top:{top_of_page - line.y:.1f}px;'
            f'left:{line.words[0].x:.1f}px;">' + " ".join(spans) + "</p>"
        )
    parts.append("</div>")
    return "\n".join(parts)


def format_fragments(fragments: list[TextFragment], fmt: str, page: PageInfo | None = None) -> Any:
    """Render ``fragments`` in one of :data:`FORMATS`.

    ``text``, ``json`` and ``html`` give strings; ``words``, ``lines`` and
    ``blocks`` give lists of the dataclasses above.
    """

    if fmt == "text":
        return render_text(fragments)
    if fmt == "words":
        return split_words(fragments)
    if fmt == "lines":
        return group_into_lines(fragments)
    if fmt == "blocks":
        return group_into_blocks(group_into_lines(fragments))
    if fmt == "json":
        return to_json(fragments, page)
    if fmt == "html":
        return to_html(fragments, page)
    raise ValueError(f"Unsupported format {fmt!r}; expected one of {', '.join(FORMATS)}")


def _offset_x(fragment: TextFragment, start: int, offset: int) -> float:
    if not fragment.text:
        return fragment.x
    chars = min(max(offset - start, 0), len(fragment.text))
    return fragment.x + fragment.width * chars / len(fragment.text)


def find_matches(
    fragments: Iterable[TextFragment], query: str, page_number: int, *, ignore_case: bool = False
) -> list[TextMatch]:
    """Locate every occurrence of ``query`` in the text of one page.

    The fragments are joined with their separators, so a query may span
    runs, words and lines. Positions inside a run are interpolated from its
    width, which assumes horizontal text.
    """

    if not query:
        return []
    fragments = list(fragments)
    starts: list[int] = []
    parts: list[str] = []
    position = 0
    for fragment in fragments:
        position += len(fragment.separator)
        starts.append(position)
        parts.append(fragment.separator + fragment.text)
        position += len(fragment.text)
    text = "".join(parts)

    pattern = re.compile(re.escape(query), re.IGNORECASE if ignore_case else 0)
    matches: list[TextMatch] = []
    for found in pattern.finditer(text):
        first = max(bisect_right(starts, found.start()) - 1, 0)
        last = max(bisect_right(starts, found.end() - 1) - 1, 0)
        head, tail = fragments[first], fragments[last]
        x = _offset_x(head, starts[first], found.start())
        if abs(tail.y - head.y) < 0.01:
            end_x = _offset_x(tail, starts[last], found.end())
        else:
            end_x = head.x + head.width
        line_start = text.rfind("\n", 0, found.start()) + 1
        line_end = text.find("\n", found.end())
        matches.append(
            TextMatch(
                page=page_number,
                text=found.group(0),
                x=x,
                y=head.y,
                width=max(end_x - x, 0.0),
                height=head.font_size,
                context=text[line_start : line_end if line_end != -1 else len(text)].strip(),
            )
        )
    return matches
