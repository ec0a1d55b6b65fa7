"""Custom exception types for :mod:`pdftextx`.

Only :class:`UnreadableDocumentError` and :class:`EncryptionRequiredError`
escape the extraction entry points. Everything else is raised internally,
logged, and turned into degraded output by the caller that catches it.
"""

from __future__ import annotations

from typing import Any


class PDFTextXError(Exception):
    """Base exception for all pdftextx related errors."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def default_message(self) -> str:
        return "An unknown pdftextx error occurred."


class MalformedSyntaxError(PDFTextXError):
    """Raised when bytes do not match any valid token or object grammar."""

    def __init__(self, message: str = "", position: int | None = None) -> None:
        super().__init__(message)
        self.position = position

    @property
    def default_message(self) -> str:
        return "Malformed PDF syntax."


class StructuralCycleError(PDFTextXError):
    """Raised when a reference chain loops back onto an ancestor."""

    def __init__(self, message: str = "", ref: Any = None) -> None:
        super().__init__(message)
        self.ref = ref

    @property
    def default_message(self) -> str:
        return "Cycle detected in the document structure."


class UnreadableDocumentError(PDFTextXError):
    """Raised when no catalog can be found, even after reconstruction."""

    @property
    def default_message(self) -> str:
        return "The document could not be read."


class UnsupportedFilterError(PDFTextXError):
    """Raised when a stream uses a decode filter that cannot be applied."""

    def __init__(self, message: str = "", filter_name: str | None = None) -> None:
        super().__init__(message or (f"Unsupported stream filter: {filter_name}" if filter_name else ""))
        self.filter_name = filter_name

    @property
    def default_message(self) -> str:
        return "Unsupported stream filter."


class UnsupportedEncodingError(PDFTextXError):
    """Raised when a font encoding cannot be interpreted."""

    @property
    def default_message(self) -> str:
        return "Unsupported font encoding."


class EncryptionRequiredError(PDFTextXError):
    """Raised when the document is encrypted and cannot be decrypted."""

    @property
    def default_message(self) -> str:
        return "PDF is encrypted and cannot be processed without a password."


class InvalidPasswordError(EncryptionRequiredError):
    """Raised when neither the user nor the owner password matches."""

    @property
    def default_message(self) -> str:
        return "The supplied password does not open this PDF."


class UnsupportedEncryptionError(EncryptionRequiredError):
    """Raised when the security handler or cipher is not supported."""

    @property
    def default_message(self) -> str:
        return "The document uses an unsupported security handler."


class PageOutOfBoundsError(PDFTextXError, IndexError):
    """Raised when a page index outside the document is requested."""

    @property
    def default_message(self) -> str:
        return "Page index is outside the document."
