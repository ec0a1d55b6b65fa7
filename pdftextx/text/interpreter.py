"""Content stream interpretation.

:class:`ContentInterpreter` runs the text-related operators of a page's
content streams and reports every shown string as a positioned run. A
:class:`TextCollector` turns the runs into :class:`~pdftextx.types.TextFragment`
objects, inferring spaces and line breaks from how far the pen moved.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
import logging
from math import hypot
from typing import TYPE_CHECKING, Any, Callable, ClassVar

from ..core.objects import PdfName, PdfRef, PdfStream, as_number
from ..core.parser import ContentStreamParser
from ..exceptions import PDFTextXError, StructuralCycleError
from ..types import ExtractionOptions, TextFragment
from .fonts import Font, FontLoader

if TYPE_CHECKING:
    from ..core.document import Document
    from ..core.pages import Page

__all__ = [
    "Matrix",
    "TextState",
    "TextCollector",
    "ContentInterpreter",
    "classify_operator",
    "matrix_multiply",
    "matrix_apply",
]

_LOGGER = logging.getLogger(__name__)

Matrix = tuple[float, float, float, float, float, float]

_MAX_FORM_DEPTH = 16

_TEXT_CONTROL_OPS = {"BT", "ET"}
_TEXT_STATE_OPS = {"Tc", "Tw", "TL", "Tz", "Tr", "Ts", "Tf", "d0", "d1"}
_TEXT_POSITION_OPS = {"Td", "TD", "Tm", "T*"}
_TEXT_SHOW_OPS = {"Tj", "TJ", "'", '"'}
_GRAPHICS_STATE_OPS = {"q", "Q", "cm", "gs", "w", "J", "j", "M", "d", "ri", "i"}
_COLOR_OPS = {"RG", "rg", "G", "g", "K", "k", "CS", "cs", "SC", "sc", "SCN", "scn"}
_PATH_CONSTRUCTION_OPS = {"m", "l", "c", "v", "y", "h", "re"}
_PATH_PAINTING_OPS = {"S", "s", "f", "F", "f*", "B", "B*", "b", "b*", "n"}
_CLIPPING_OPS = {"W", "W*"}
_XOBJECT_OPS = {"Do"}
_INLINE_IMAGE_OPS = {"BI", "ID", "EI"}
_MARKED_CONTENT_OPS = {"BMC", "BDC", "EMC", "MP", "DP", "BX", "EX"}
_SHADING_OPS = {"sh"}

_CATEGORIES = (
    ("text_control", _TEXT_CONTROL_OPS),
    ("text_state", _TEXT_STATE_OPS),
    ("text_position", _TEXT_POSITION_OPS),
    ("text_show", _TEXT_SHOW_OPS),
    ("graphics_state", _GRAPHICS_STATE_OPS),
    ("color", _COLOR_OPS),
    ("path_construction", _PATH_CONSTRUCTION_OPS),
    ("path_painting", _PATH_PAINTING_OPS),
    ("clipping", _CLIPPING_OPS),
    ("xobject", _XOBJECT_OPS),
    ("inline_image", _INLINE_IMAGE_OPS),
    ("marked_content", _MARKED_CONTENT_OPS),
    ("shading", _SHADING_OPS),
)


def classify_operator(operator: str) -> str:
    for category, operators in _CATEGORIES:
        if operator in operators:
            return category
    return "unknown"


def matrix_multiply(lhs: Matrix, rhs: Matrix) -> Matrix:
    """Compose two matrices; the result applies ``rhs`` first, then ``lhs``."""

    a1, b1, c1, d1, e1, f1 = lhs
    a2, b2, c2, d2, e2, f2 = rhs
    return (
        a1 * a2 + c1 * b2,
        b1 * a2 + d1 * b2,
        a1 * c2 + c1 * d2,
        b1 * c2 + d1 * d2,
        a1 * e2 + c1 * f2 + e1,
        b1 * e2 + d1 * f2 + f1,
    )


def matrix_apply(matrix: Matrix, x: float, y: float) -> tuple[float, float]:
    a, b, c, d, e, f = matrix
    return a * x + c * y + e, b * x + d * y + f


def _translation(tx: float, ty: float) -> Matrix:
    return (1.0, 0.0, 0.0, 1.0, tx, ty)


def _numbers(operands: list[Any], count: int) -> list[float]:
    if len(operands) < count:
        raise ValueError(f"expected {count} operands, got {len(operands)}")
    values = [as_number(value) for value in operands[-count:]]
    if any(value is None for value in values):
        raise TypeError("non-numeric operand")
    return values  # type: ignore[return-value]


@dataclass(slots=True)
class TextState:
    """Graphics and text state relevant to text positioning."""

    IDENTITY_MATRIX: ClassVar[Matrix] = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)

    ctm: Matrix = IDENTITY_MATRIX
    text_matrix: Matrix = IDENTITY_MATRIX
    line_matrix: Matrix = IDENTITY_MATRIX
    font_resource: str | None = None
    font: Font | None = None
    font_size: float = 0.0
    character_spacing: float = 0.0
    word_spacing: float = 0.0
    horizontal_scaling: float = 100.0
    leading: float = 0.0
    rise: float = 0.0
    render_mode: int = 0

    def reset(self) -> None:
        """Reset to the defaults that hold at the start of every page."""

        self.ctm = self.IDENTITY_MATRIX
        self.text_matrix = self.IDENTITY_MATRIX
        self.line_matrix = self.IDENTITY_MATRIX
        self.font_resource = None
        self.font = None
        self.font_size = 0.0
        self.character_spacing = 0.0
        self.word_spacing = 0.0
        self.horizontal_scaling = 100.0
        self.leading = 0.0
        self.rise = 0.0
        self.render_mode = 0

    def copy(self) -> "TextState":
        return replace(self)

    def rendering_matrix(self) -> Matrix:
        return matrix_multiply(self.ctm, self.text_matrix)


class TextCollector:
    """Accumulate glyph runs into fragments with inferred separators.

    Distances are measured along and across the baseline direction of the
    run, in multiples of its font size: moving across by more than
    ``line_gap`` starts a new line, moving along by more than ``word_gap``
    (or jumping back by more than a full em) starts a new word.
    """

    def __init__(self, word_gap: float = 0.15, line_gap: float = 0.5) -> None:
        self.word_gap = word_gap
        self.line_gap = line_gap
        self.fragments: list[TextFragment] = []
        self._last_end: tuple[float, float] | None = None
        self._last_size = 0.0
        self._pending_newline = False

    def line_break(self) -> None:
        """Record an explicit move to the next line (``T*``, ``'``, ``"``)."""

        if self.fragments:
            self._pending_newline = True

    def add_run(
        self,
        text: str,
        start: tuple[float, float],
        end: tuple[float, float],
        direction: tuple[float, float],
        font_name: str,
        font_size: float,
    ) -> None:
        if not text:
            return
        separator = self._separator(start, direction, font_size)
        if separator == " " and (text[0].isspace() or self._ends_with_space()):
            separator = ""
        self._pending_newline = False

        width = (end[0] - start[0]) * direction[0] + (end[1] - start[1]) * direction[1]
        previous = self.fragments[-1] if self.fragments else None
        if (
            previous is not None
            and not separator
            and previous.font_name == font_name
            and abs(previous.font_size - font_size) < 0.01
        ):
            previous.text += text
            previous.width = max(previous.width, (end[0] - previous.x) * direction[0] + (end[1] - previous.y) * direction[1])
        else:
            self.fragments.append(
                TextFragment(
                    text=text,
                    x=start[0],
                    y=start[1],
                    width=width,
                    font_name=font_name,
                    font_size=font_size,
                    separator=separator if previous is not None else "",
                )
            )
        self._last_end = end
        self._last_size = font_size

    def _ends_with_space(self) -> bool:
        return bool(self.fragments) and self.fragments[-1].text[-1:].isspace()

    def _separator(self, start: tuple[float, float], direction: tuple[float, float], font_size: float) -> str:
        if self._last_end is None:
            return ""
        if self._pending_newline:
            return "\n"
        size = max(font_size, self._last_size) or 1.0
        dx = start[0] - self._last_end[0]
        dy = start[1] - self._last_end[1]
        along = dx * direction[0] + dy * direction[1]
        across = -dx * direction[1] + dy * direction[0]
        if abs(across) > self.line_gap * size:
            return "\n"
        if along > self.word_gap * size or along < -size:
            return " "
        return ""


class ContentInterpreter:
    """Interpret page content streams and collect positioned text.

    One interpreter can be reused for several pages; all per-page state is
    reset by :meth:`run`. Use one instance per thread.
    """

    def __init__(
        self,
        document: Document,
        fonts: FontLoader | None = None,
        options: ExtractionOptions | None = None,
    ) -> None:
        self.document = document
        self.options = options or ExtractionOptions()
        self.fonts = fonts or FontLoader(document, self.options.placeholder)
        self.state = TextState()
        self.operator_counts: Counter[str] = Counter()
        self._stack: list[TextState] = []
        self._resources: dict[str, Any] = {}
        self._form_stack: list[Any] = []
        self._collector = TextCollector(self.options.word_gap, self.options.line_gap)
        self._handlers: dict[str, Callable[[list[Any]], None]] = {
            "BT": self._op_begin_text,
            "ET": self._op_end_text,
            "Tf": self._op_set_font,
            "Td": self._op_move,
            "TD": self._op_move_set_leading,
            "Tm": self._op_set_matrix,
            "T*": self._op_next_line,
            "TL": self._op_set_leading,
            "Tc": self._op_set_char_spacing,
            "Tw": self._op_set_word_spacing,
            "Tz": self._op_set_scaling,
            "Ts": self._op_set_rise,
            "Tr": self._op_set_render_mode,
            "Tj": self._op_show,
            "TJ": self._op_show_array,
            "'": self._op_next_line_show,
            '"': self._op_spacing_next_line_show,
            "q": self._op_save,
            "Q": self._op_restore,
            "cm": self._op_concat,
            "Do": self._op_xobject,
        }

    # -- Entry points ----------------------------------------------------------

    def run(self, page: Page) -> list[TextFragment]:
        """Interpret every content stream of ``page``.

        Decode failures (for example :class:`UnsupportedFilterError`) are
        raised so the caller can mark the page as failed.
        """

        streams = page.content_streams(self.document)
        data = b"\n".join(self.document.stream_data(stream) for stream in streams)
        return self.run_content(data, page.resources)

    def run_content(self, data: bytes, resources: dict[str, Any] | None = None) -> list[TextFragment]:
        self.state.reset()
        self.operator_counts.clear()
        self._stack = []
        self._form_stack = []
        self._collector = TextCollector(self.options.word_gap, self.options.line_gap)
        self._execute(data, resources or {})
        _LOGGER.debug(
            "Interpreted %d operators, %d text fragments",
            sum(self.operator_counts.values()),
            len(self._collector.fragments),
        )
        return self._collector.fragments

    def _execute(self, data: bytes, resources: dict[str, Any]) -> None:
        previous = self._resources
        self._resources = resources
        try:
            for operands, operator in ContentStreamParser(data).operations():
                self.operator_counts[classify_operator(operator)] += 1
                handler = self._handlers.get(operator)
                if handler is None:
                    continue
                try:
                    handler(operands)
                except (TypeError, ValueError, IndexError, ArithmeticError) as exc:
                    _LOGGER.debug("Ignoring operator %s with bad operands %r: %s", operator, operands, exc)
        finally:
            self._resources = previous

    # -- Text objects and state ----------------------------------------------

    def _op_begin_text(self, operands: list[Any]) -> None:
        self.state.text_matrix = TextState.IDENTITY_MATRIX
        self.state.line_matrix = TextState.IDENTITY_MATRIX

    def _op_end_text(self, operands: list[Any]) -> None:
        pass

    def _op_set_font(self, operands: list[Any]) -> None:
        if len(operands) < 2 or not isinstance(operands[-2], PdfName):
            raise TypeError("Tf needs a font name and a size")
        (size,) = _numbers(operands, 1)
        name = str(operands[-2])
        fonts = self.document.resolve(self._resources.get("Font"))
        value = fonts.get(name) if isinstance(fonts, dict) else None
        if value is None:
            _LOGGER.debug("Font resource /%s not found", name)
            font: Font = self.fonts.fallback()
        else:
            font = self.fonts.load(value)
        self.state.font_resource = name
        self.state.font = font
        self.state.font_size = size

    def _op_set_leading(self, operands: list[Any]) -> None:
        (self.state.leading,) = _numbers(operands, 1)

    def _op_set_char_spacing(self, operands: list[Any]) -> None:
        (self.state.character_spacing,) = _numbers(operands, 1)

    def _op_set_word_spacing(self, operands: list[Any]) -> None:
        (self.state.word_spacing,) = _numbers(operands, 1)

    def _op_set_scaling(self, operands: list[Any]) -> None:
        (self.state.horizontal_scaling,) = _numbers(operands, 1)

    def _op_set_rise(self, operands: list[Any]) -> None:
        (self.state.rise,) = _numbers(operands, 1)

    def _op_set_render_mode(self, operands: list[Any]) -> None:
        (mode,) = _numbers(operands, 1)
        self.state.render_mode = int(mode)

    # -- Positioning -----------------------------------------------------------

    def _move(self, tx: float, ty: float) -> None:
        state = self.state
        state.line_matrix = matrix_multiply(state.line_matrix, _translation(tx, ty))
        state.text_matrix = state.line_matrix

    def _op_move(self, operands: list[Any]) -> None:
        tx, ty = _numbers(operands, 2)
        self._move(tx, ty)

    def _op_move_set_leading(self, operands: list[Any]) -> None:
        tx, ty = _numbers(operands, 2)
        self.state.leading = -ty
        self._move(tx, ty)

    def _op_set_matrix(self, operands: list[Any]) -> None:
        matrix = tuple(_numbers(operands, 6))
        self.state.text_matrix = matrix  # type: ignore[assignment]
        self.state.line_matrix = matrix  # type: ignore[assignment]

    def _op_next_line(self, operands: list[Any]) -> None:
        self._move(0.0, -self.state.leading)
        self._collector.line_break()

    # -- Showing text ----------------------------------------------------------

    def _op_show(self, operands: list[Any]) -> None:
        if not operands or not isinstance(operands[-1], bytes):
            raise TypeError("Tj needs a string operand")
        self._show(operands[-1])

    def _op_show_array(self, operands: list[Any]) -> None:
        if not operands or not isinstance(operands[-1], list):
            raise TypeError("TJ needs an array operand")
        state = self.state
        for item in operands[-1]:
            if isinstance(item, bytes):
                self._show(item)
            else:
                adjustment = as_number(item)
                if adjustment is None:
                    continue
                tx = -(adjustment / 1000.0) * state.font_size * (state.horizontal_scaling / 100.0)
                state.text_matrix = matrix_multiply(state.text_matrix, _translation(tx, 0.0))

    def _op_next_line_show(self, operands: list[Any]) -> None:
        self._op_next_line([])
        self._op_show(operands)

    def _op_spacing_next_line_show(self, operands: list[Any]) -> None:
        if len(operands) < 3:
            raise ValueError('" needs three operands')
        word_spacing, char_spacing = _numbers(operands[:-1], 2)
        self.state.word_spacing = word_spacing
        self.state.character_spacing = char_spacing
        self._op_next_line_show(operands[-1:])

    def _show(self, data: bytes) -> None:
        state = self.state
        font = state.font
        if font is None:
            _LOGGER.debug("Text shown before any font was selected")
            font = state.font = self.fonts.fallback()
        chars = font.decode(bytes(data))
        if not chars:
            return

        start_matrix = state.rendering_matrix()
        start = matrix_apply(start_matrix, 0.0, state.rise)
        scaling = state.horizontal_scaling / 100.0
        for char in chars:
            advance = char.width * state.font_size + state.character_spacing
            if char.is_space:
                advance += state.word_spacing
            state.text_matrix = matrix_multiply(state.text_matrix, _translation(advance * scaling, 0.0))
        end = matrix_apply(state.rendering_matrix(), 0.0, state.rise)

        a, b, c, d, _, _ = start_matrix
        norm = hypot(a, b)
        direction = (a / norm, b / norm) if norm else (1.0, 0.0)
        size = abs(state.font_size) * (hypot(c, d) or 1.0)
        text = "".join(char.text for char in chars)
        self._collector.add_run(text, start, end, direction, font.name, size)

    # -- Graphics state and XObjects -------------------------------------------

    def _op_save(self, operands: list[Any]) -> None:
        self._stack.append(self.state.copy())

    def _op_restore(self, operands: list[Any]) -> None:
        if not self._stack:
            _LOGGER.debug("Unbalanced Q operator")
            return
        restored = self._stack.pop()
        # The text matrix is not part of the graphics state.
        restored.text_matrix = self.state.text_matrix
        restored.line_matrix = self.state.line_matrix
        self.state = restored

    def _op_concat(self, operands: list[Any]) -> None:
        matrix = tuple(_numbers(operands, 6))
        self.state.ctm = matrix_multiply(self.state.ctm, matrix)  # type: ignore[arg-type]

    def _op_xobject(self, operands: list[Any]) -> None:
        if not self.options.include_form_xobjects:
            return
        if not operands or not isinstance(operands[-1], PdfName):
            raise TypeError("Do needs a name operand")
        xobjects = self.document.resolve(self._resources.get("XObject"))
        value = xobjects.get(str(operands[-1])) if isinstance(xobjects, dict) else None
        xobject = self.document.resolve(value)
        if not isinstance(xobject, PdfStream) or xobject.get("Subtype") != "Form":
            return
        key = value if isinstance(value, PdfRef) else id(xobject)
        if key in self._form_stack:
            issue = StructuralCycleError(f"Form XObject {value} draws itself", ref=value)
            _LOGGER.warning("%s; skipping it", issue)
            return
        if len(self._form_stack) >= _MAX_FORM_DEPTH:
            _LOGGER.warning("Form XObjects nested deeper than %d levels; skipping", _MAX_FORM_DEPTH)
            return
        try:
            data = self.document.stream_data(xobject)
        except PDFTextXError as exc:
            _LOGGER.warning("Form XObject %s cannot be decoded: %s", value, exc)
            return

        resources = self.document.resolve(xobject.get("Resources"))
        if not isinstance(resources, dict):
            resources = self._resources
        matrix = self.document.resolve(xobject.get("Matrix"))
        saved = self.state.copy()
        saved_stack = self._stack
        if isinstance(matrix, list) and len(matrix) == 6:
            try:
                self.state.ctm = matrix_multiply(self.state.ctm, tuple(_numbers(matrix, 6)))  # type: ignore[arg-type]
            except TypeError:
                pass
        self._stack = []
        self._form_stack.append(key)
        try:
            self._execute(data, resources)
        finally:
            self._form_stack.pop()
            self._stack = saved_stack
            self.state = saved
