"""PDF object model.

Objects are represented with plain Python values wherever one fits:

===============  ==========================================
PDF type         Python representation
===============  ==========================================
null             ``None``
boolean          ``bool``
number           ``int`` / ``float``
string           :class:`PdfString` (raw bytes)
name             :class:`PdfName` (``str`` without the slash)
array            ``list``
dictionary       ``dict`` keyed by :class:`PdfName`
stream           :class:`PdfStream`
indirect ref     :class:`PdfRef`
===============  ==========================================
"""

from __future__ import annotations

import codecs
import math
from dataclasses import dataclass, field
from typing import Any, NamedTuple

from pypdf._codecs import charset_encoding

__all__ = [
    "PdfName",
    "PdfString",
    "PdfRef",
    "PdfStream",
    "PdfKeyword",
    "decode_text_string",
    "as_number",
    "as_int",
    "as_name",
]


class PdfName(str):
    """A PDF name. ``PdfName("Type") == "Type"`` so dict lookups stay plain."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"/{str(self)}"


class PdfKeyword(str):
    """A bare keyword token such as ``obj``, ``R`` or a content operator."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"PdfKeyword({str(self)!r})"


class PdfString(bytes):
    """A PDF string: raw bytes as they appear after unescaping."""

    def __repr__(self) -> str:
        return f"PdfString({bytes(self)!r})"

    def to_text(self) -> str:
        return decode_text_string(self)


class PdfRef(NamedTuple):
    """Indirect reference ``num gen R``."""

    num: int
    gen: int = 0

    def __str__(self) -> str:
        return f"{self.num} {self.gen} R"


@dataclass(slots=True, eq=False)
class PdfStream:
    """A stream object: its dictionary plus the raw (still encoded) bytes."""

    dictionary: dict[str, Any]
    raw: bytes
    ref: PdfRef | None = None
    decrypted: bool = field(default=False, repr=False)

    def get(self, key: str, default: Any = None) -> Any:
        return self.dictionary.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self.dictionary

    def __getitem__(self, key: str) -> Any:
        return self.dictionary[key]


# -- Coercion helpers --------------------------------------------------------


def as_number(value: Any, default: float | None = None) -> float | None:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return default
        # Reals too long for a double lex as inf; treat them as missing.
        return number if math.isfinite(number) else default
    return default


def as_int(value: Any, default: int | None = None) -> int | None:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return default


def as_name(value: Any) -> str | None:
    if isinstance(value, PdfName):
        return str(value)
    return None


def _pdfdoc_table() -> dict[int, str]:
    table = charset_encoding["/PDFDocEncoding"]
    return {code: char for code, char in enumerate(table)}


_PDFDOC = _pdfdoc_table()


def decode_text_string(raw: bytes) -> str:
    """Decode a text string (UTF-16 with BOM, UTF-8 with BOM, or PDFDocEncoding)."""

    if raw.startswith(codecs.BOM_UTF16_BE):
        return raw[2:].decode("utf-16-be", "replace")
    if raw.startswith(codecs.BOM_UTF16_LE):
        return raw[2:].decode("utf-16-le", "replace")
    if raw.startswith(codecs.BOM_UTF8):
        return raw[3:].decode("utf-8", "replace")
    return "".join(_PDFDOC.get(byte, chr(byte)) for byte in raw)
