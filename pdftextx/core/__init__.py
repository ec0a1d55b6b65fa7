"""Low-level PDF parsing: tokens, objects, cross-references and pages."""

from __future__ import annotations

from .document import Document, open_document
from .lexer import Lexer, Token, TokenKind
from .objects import PdfName, PdfRef, PdfStream, PdfString
from .pages import Page, PageTreeWalker
from .parser import ContentStreamParser, ObjectParser
from .xref import XRefEntry, XRefIndex, read_cross_reference, reconstruct_cross_reference

__all__ = [
    "Document",
    "open_document",
    "Lexer",
    "Token",
    "TokenKind",
    "PdfName",
    "PdfRef",
    "PdfStream",
    "PdfString",
    "Page",
    "PageTreeWalker",
    "ContentStreamParser",
    "ObjectParser",
    "XRefEntry",
    "XRefIndex",
    "read_cross_reference",
    "reconstruct_cross_reference",
]
