"""
pdftextx - Page counting and text extraction for PDF documents.

The package parses PDF files itself: it reads the cross-reference data
(rebuilding it by scanning when it is damaged), walks the page tree and
interprets page content streams to recover text in drawing order.

Quick Start:
    >>> from pdftextx import extract_all_text, page_count, search_text
    >>> data = open("input.pdf", "rb").read()
    >>> page_count(data)
    3
    >>> text = extract_all_text(data)
    >>> matches = search_text(data, "total", ignore_case=True)

Main Classes:
    - TextExtractor: Extraction entry points bound to one set of options
    - Document: A parsed PDF with lazy object resolution

Exceptions:
    - PDFTextXError: Base exception
    - UnreadableDocumentError: No usable catalog could be found
    - EncryptionRequiredError: Encrypted and not decryptable
"""

from pdftextx.core.document import Document, open_document
from pdftextx.exceptions import (
    EncryptionRequiredError,
    InvalidPasswordError,
    MalformedSyntaxError,
    PageOutOfBoundsError,
    PDFTextXError,
    StructuralCycleError,
    UnreadableDocumentError,
    UnsupportedEncodingError,
    UnsupportedEncryptionError,
    UnsupportedFilterError,
)
from pdftextx.extractor import (
    TextExtractor,
    extract_all_text,
    extract_all_fonts,
    extract_fonts,
    extract_formatted,
    extract_formatted_pages,
    extract_page_text,
    extract_pages,
    extract_text_fragments,
    page_count,
    page_infos,
    search_page_text,
    search_text,
)
from pdftextx.types import (
    ExtractionOptions,
    ExtractionResult,
    FontInfo,
    PageInfo,
    TextFragment,
    TextMatch,
)

__version__ = "1.0.0"

__all__ = [
    "Document",
    "open_document",
    "TextExtractor",
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
    "ExtractionOptions",
    "ExtractionResult",
    "PageInfo",
    "TextFragment",
    "TextMatch",
    "FontInfo",
    "PDFTextXError",
    "MalformedSyntaxError",
    "StructuralCycleError",
    "UnreadableDocumentError",
    "UnsupportedFilterError",
    "UnsupportedEncodingError",
    "EncryptionRequiredError",
    "InvalidPasswordError",
    "UnsupportedEncryptionError",
    "PageOutOfBoundsError",
    "__version__",
]
