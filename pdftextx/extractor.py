"""Extraction entry points: page counts, page text and formatted output."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
import logging
from typing import Any

from .core.document import Document, open_document
from .core.pages import Page
from .exceptions import (
    EncryptionRequiredError,
    PageOutOfBoundsError,
    PDFTextXError,
    UnreadableDocumentError,
)
from .text.fonts import FontLoader
from .text.interpreter import ContentInterpreter
from .text.layout import find_matches, format_fragments, render_text
from .types import ExtractionOptions, ExtractionResult, FontInfo, PageInfo, TextFragment, TextMatch

__all__ = [
    "TextExtractor",
    "open_document",
    "page_count",
    "extract_all_text",
    "extract_pages",
    "extract_page_text",
    "extract_text_fragments",
    "extract_formatted",
    "extract_formatted_pages",
    "page_infos",
    "search_text",
    "search_page_text",
    "extract_fonts",
    "extract_all_fonts",
]

_LOGGER = logging.getLogger(__name__)

Source = bytes | bytearray | memoryview | Document

# Errors a broken page may raise besides the package's own.
_PAGE_ERRORS = (PDFTextXError, ValueError, TypeError, KeyError, IndexError, ArithmeticError, RecursionError)


class TextExtractor:
    """Extract text from PDF buffers with one set of options.

    Every method accepts either the raw bytes of a PDF or a
    :class:`~pdftextx.core.document.Document` that is already open, so a
    caller can parse once and ask several questions.
    """

    def __init__(self, options: ExtractionOptions | None = None) -> None:
        self.options = options or ExtractionOptions()

    def open(self, source: Source) -> Document:
        if isinstance(source, Document):
            return source
        return open_document(source, self.options)

    def page_count(self, source: Source) -> int:
        return self.open(source).number_of_pages

    def page_infos(self, source: Source) -> list[PageInfo]:
        return [
            PageInfo(number=page.number, width=page.width, height=page.height, rotation=page.rotate)
            for page in self.open(source).pages
        ]

    def extract_pages(self, source: Source) -> ExtractionResult:
        """Extract every page, containing failures to the page they occur on.

        A page that cannot be interpreted contributes ``""`` and is listed in
        :attr:`ExtractionResult.failures`, so ``len(result.pages)`` always
        equals the page count.
        """

        document = self.open(source)
        pages = document.pages
        fonts = FontLoader(document, self.options.placeholder)
        workers = min(self.options.max_workers, len(pages))
        if workers > 1:
            _LOGGER.debug("Extracting %d pages with %d workers", len(pages), workers)
            with ThreadPoolExecutor(max_workers=workers) as executor:
                outcomes = list(executor.map(lambda page: self._safe_page_text(document, page, fonts), pages))
        else:
            outcomes = [self._safe_page_text(document, page, fonts) for page in pages]

        result = ExtractionResult(pages=[], separator=self.options.page_separator, recovered=document.recovered)
        for page, (text, error) in zip(pages, outcomes):
            result.pages.append(text)
            if error is not None:
                result.failures[page.number] = error
        if result.failures:
            _LOGGER.warning("%d of %d pages could not be extracted", len(result.failures), len(pages))
        return result

    def extract_all_text(self, source: Source) -> str:
        return self.extract_pages(source).text

    def extract_text_fragments(self, source: Source, index: int) -> list[TextFragment]:
        """Positioned fragments of the page at zero-based ``index``.

        Unlike :meth:`extract_pages`, decode errors on the page are raised.
        """

        document = self.open(source)
        page = self._page(document, index)
        return self._interpreter(document).run(page)

    def extract_page_text(self, source: Source, index: int) -> str:
        return render_text(self.extract_text_fragments(source, index))

    def extract_formatted(self, source: Source, index: int, fmt: str = "text") -> Any:
        document = self.open(source)
        page = self._page(document, index)
        fragments = self._interpreter(document).run(page)
        info = PageInfo(number=page.number, width=page.width, height=page.height, rotation=page.rotate)
        return format_fragments(fragments, fmt, info)

    def extract_formatted_pages(self, source: Source, fmt: str = "text") -> tuple[list[Any], dict[int, str]]:
        """Every page in ``fmt`` plus the failures, keyed by page number.

        A page that cannot be interpreted is formatted as an empty page.
        """

        document = self.open(source)
        fonts = FontLoader(document, self.options.placeholder)
        formatted: list[Any] = []
        failures: dict[int, str] = {}
        for page in document.pages:
            fragments, error = self._safe_fragments(document, page, fonts)
            if error is not None:
                failures[page.number] = error
            info = PageInfo(number=page.number, width=page.width, height=page.height, rotation=page.rotate)
            formatted.append(format_fragments(fragments, fmt, info))
        return formatted, failures

    def search_page(self, source: Source, index: int, query: str, *, ignore_case: bool = False) -> list[TextMatch]:
        """Occurrences of ``query`` on the page at zero-based ``index``."""

        document = self.open(source)
        page = self._page(document, index)
        return find_matches(self._interpreter(document).run(page), query, page.number, ignore_case=ignore_case)

    def search(self, source: Source, query: str, *, ignore_case: bool = False) -> list[TextMatch]:
        """Occurrences of ``query`` on every page, in page order.

        Pages that cannot be interpreted are skipped, as in :meth:`extract_pages`.
        """

        document = self.open(source)
        fonts = FontLoader(document, self.options.placeholder)
        matches: list[TextMatch] = []
        for page in document.pages:
            fragments, _ = self._safe_fragments(document, page, fonts)
            matches.extend(find_matches(fragments, query, page.number, ignore_case=ignore_case))
        return matches

    def extract_fonts(self, source: Source, index: int) -> list[FontInfo]:
        document = self.open(source)
        return self._page_fonts(document, self._page(document, index), FontLoader(document, self.options.placeholder))

    def extract_all_fonts(self, source: Source) -> dict[int, list[FontInfo]]:
        """Fonts of every page that declares any, keyed by page number."""

        document = self.open(source)
        loader = FontLoader(document, self.options.placeholder)
        fonts: dict[int, list[FontInfo]] = {}
        for page in document.pages:
            page_fonts = self._page_fonts(document, page, loader)
            if page_fonts:
                fonts[page.number] = page_fonts
        return fonts

    # -- Helpers ---------------------------------------------------------------

    def _interpreter(self, document: Document, fonts: FontLoader | None = None) -> ContentInterpreter:
        return ContentInterpreter(document, fonts, self.options)

    def _page(self, document: Document, index: int) -> Page:
        pages = document.pages
        if not 0 <= index < len(pages):
            raise PageOutOfBoundsError(f"Page index {index} is outside 0..{len(pages) - 1}")
        return pages[index]

    def _page_fonts(self, document: Document, page: Page, loader: FontLoader) -> list[FontInfo]:
        resources = document.resolve(page.resources.get("Font"))
        if not isinstance(resources, dict):
            return []
        return [loader.describe(str(name), value, page.number) for name, value in sorted(resources.items())]

    def _safe_fragments(
        self, document: Document, page: Page, fonts: FontLoader
    ) -> tuple[list[TextFragment], str | None]:
        try:
            return self._interpreter(document, fonts).run(page), None
        except (UnreadableDocumentError, EncryptionRequiredError):
            raise
        except _PAGE_ERRORS as exc:
            _LOGGER.warning("Page %d could not be extracted: %s", page.number, exc)
            return [], str(exc) or type(exc).__name__

    def _safe_page_text(self, document: Document, page: Page, fonts: FontLoader) -> tuple[str, str | None]:
        fragments, error = self._safe_fragments(document, page, fonts)
        return render_text(fragments), error


def _options(options: ExtractionOptions | None, password: str | bytes | None) -> ExtractionOptions:
    options = options or ExtractionOptions()
    if password is not None:
        options = replace(options, password=password)
    return options


def page_count(data: Source, *, password: str | bytes | None = None) -> int:
    """Number of pages reachable from the document's page tree."""

    return TextExtractor(_options(None, password)).page_count(data)


def extract_all_text(
    data: Source,
    *,
    options: ExtractionOptions | None = None,
    password: str | bytes | None = None,
) -> str:
    """Text of every page in document order, joined by the page separator.

    Raises :class:`UnreadableDocumentError` when the buffer is not a usable
    PDF and :class:`EncryptionRequiredError` when it cannot be decrypted.
    Problems confined to single pages only blank those pages.
    """

    return TextExtractor(_options(options, password)).extract_all_text(data)


def extract_pages(data: Source, options: ExtractionOptions | None = None) -> ExtractionResult:
    return TextExtractor(options).extract_pages(data)


def extract_page_text(data: Source, index: int, options: ExtractionOptions | None = None) -> str:
    return TextExtractor(options).extract_page_text(data, index)


def extract_text_fragments(data: Source, index: int, options: ExtractionOptions | None = None) -> list[TextFragment]:
    return TextExtractor(options).extract_text_fragments(data, index)


def extract_formatted(data: Source, index: int, fmt: str = "text", options: ExtractionOptions | None = None) -> Any:
    return TextExtractor(options).extract_formatted(data, index, fmt)


def extract_formatted_pages(
    data: Source, fmt: str = "text", options: ExtractionOptions | None = None
) -> tuple[list[Any], dict[int, str]]:
    return TextExtractor(options).extract_formatted_pages(data, fmt)


def page_infos(data: Source, *, password: str | bytes | None = None) -> list[PageInfo]:
    return TextExtractor(_options(None, password)).page_infos(data)


def search_text(
    data: Source,
    query: str,
    *,
    ignore_case: bool = False,
    options: ExtractionOptions | None = None,
) -> list[TextMatch]:
    """Every occurrence of ``query`` in the document, with page positions.

    Example:
        >>> for match in search_text(data, "invoice", ignore_case=True):
        ...     print(match.page, round(match.x), round(match.y), match.context)
    """

    return TextExtractor(options).search(data, query, ignore_case=ignore_case)


def search_page_text(
    data: Source,
    index: int,
    query: str,
    *,
    ignore_case: bool = False,
    options: ExtractionOptions | None = None,
) -> list[TextMatch]:
    return TextExtractor(options).search_page(data, index, query, ignore_case=ignore_case)


def extract_fonts(data: Source, index: int, options: ExtractionOptions | None = None) -> list[FontInfo]:
    return TextExtractor(options).extract_fonts(data, index)


def extract_all_fonts(data: Source, options: ExtractionOptions | None = None) -> dict[int, list[FontInfo]]:
    return TextExtractor(options).extract_all_fonts(data)
