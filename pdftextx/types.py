"""Type definitions and dataclasses for pdftextx."""

from __future__ import annotations

from dataclasses import dataclass, field

__all__ = ["ExtractionOptions", "ExtractionResult", "TextFragment", "PageInfo", "TextMatch", "FontInfo"]


@dataclass(slots=True)
class ExtractionOptions:
    """Configuration for text extraction.

    Attributes:
        password: User or owner password for encrypted documents. The empty
            user password is always tried first.
        page_separator: Inserted between the text of consecutive pages.
        placeholder: Emitted for character codes with no Unicode mapping.
        word_gap: Horizontal gap, as a fraction of the font size, above which
            a space is inferred between two runs of glyphs.
        line_gap: Baseline shift, as a fraction of the font size, above which
            a line break is inferred.
        max_workers: Pages interpreted concurrently; ``1`` is sequential.
        include_form_xobjects: Also interpret text drawn by form XObjects.
    """

    password: str | bytes | None = None
    page_separator: str = "\n\n"
    placeholder: str = "\ufffd"
    word_gap: float = 0.15
    line_gap: float = 0.5
    max_workers: int = 1
    include_form_xobjects: bool = True

    def __post_init__(self) -> None:
        if self.word_gap < 0 or self.line_gap < 0:
            raise ValueError("word_gap and line_gap must not be negative")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")


@dataclass(slots=True)
class TextFragment:
    """A run of text drawn at one position.

    ``x``/``y`` are the baseline origin in default user space, ``separator``
    is what the reading-order heuristics put in front of the run.
    """

    text: str
    x: float
    y: float
    width: float
    font_name: str
    font_size: float
    separator: str = ""


@dataclass(slots=True)
class PageInfo:
    number: int
    width: float
    height: float
    rotation: int = 0


@dataclass(slots=True)
class TextMatch:
    """One occurrence of a search query.

    ``x``/``y`` locate the start of the match on its baseline, ``width`` is
    estimated from the advance of the runs it falls in and ``context`` is
    the full line of page text around it.
    """

    page: int
    text: str
    x: float
    y: float
    width: float
    height: float
    context: str = ""


@dataclass(slots=True)
class FontInfo:
    """A font used by a page, as declared in its resources."""

    page: int
    resource_name: str
    name: str
    base_font: str
    subtype: str
    encoding: str | None = None
    embedded: bool = False
    object_number: int | None = None


@dataclass(slots=True)
class ExtractionResult:
    """Per-page text of a document plus the pages that failed."""

    pages: list[str]
    separator: str = "\n\n"
    failures: dict[int, str] = field(default_factory=dict)
    recovered: bool = False

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def text(self) -> str:
        return self.separator.join(self.pages)

    @property
    def success(self) -> bool:
        return not self.failures

    def __str__(self) -> str:
        if self.failures:
            return f"ExtractionResult(pages={self.page_count}, failed={sorted(self.failures)})"
        return f"ExtractionResult(pages={self.page_count})"
