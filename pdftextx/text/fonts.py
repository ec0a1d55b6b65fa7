"""Font dictionaries turned into byte → text decoders.

A font is one of two variants with the same ``decode`` capability:

* :class:`SimpleFont` for Type1, TrueType, Type3 and MMType1 fonts, one
  byte per character code;
* :class:`CompositeFont` for Type0 fonts, whose codes are cut by an
  encoding CMap and mapped through ``/ToUnicode``.

Codes that map to nothing decode to a placeholder character.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Any, ClassVar

from ..core.objects import PdfName, PdfRef, PdfStream, as_int, as_name, as_number
from ..exceptions import PDFTextXError, UnsupportedEncodingError
from ..types import FontInfo
from .cmap import CMap, parse_cmap, predefined_cmap
from .glyphs import base_encoding, glyph_name_to_unicode

if TYPE_CHECKING:
    from ..core.document import Document

__all__ = [
    "DecodedChar",
    "SimpleFont",
    "CompositeFont",
    "Font",
    "FontLoader",
    "DEFAULT_PLACEHOLDER",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER = "\ufffd"
# Advance used when a font declares no widths (standard 14 fonts).
_FALLBACK_WIDTH = 0.5
_KEEP_CONTROLS = {"\t", "\n", "\r"}
_FONT_FILES = ("FontFile", "FontFile2", "FontFile3")


@dataclass(slots=True)
class DecodedChar:
    """One character code after decoding; ``width`` is in text space units."""

    text: str
    code: bytes
    width: float
    is_space: bool = False


@dataclass(slots=True)
class SimpleFont:
    kind: ClassVar[str] = "simple"

    name: str
    subtype: str = "Type1"
    encoding: list[str | None] = field(default_factory=lambda: [None] * 256)
    to_unicode: CMap | None = None
    widths: dict[int, float] = field(default_factory=dict)
    default_width: float = _FALLBACK_WIDTH
    placeholder: str = DEFAULT_PLACEHOLDER

    @property
    def vertical(self) -> bool:
        return False

    def decode(self, data: bytes) -> list[DecodedChar]:
        chars: list[DecodedChar] = []
        to_unicode = self.to_unicode
        for byte in data:
            code = bytes((byte,))
            text = to_unicode.lookup_unicode(code) if to_unicode is not None else None
            if text is None:
                text = self.encoding[byte]
            chars.append(
                DecodedChar(
                    text=text or self.placeholder,
                    code=code,
                    width=self.widths.get(byte, self.default_width),
                    is_space=byte == 0x20,
                )
            )
        return chars


@dataclass(slots=True)
class CompositeFont:
    kind: ClassVar[str] = "composite"

    name: str
    encoding: CMap
    to_unicode: CMap | None = None
    widths: dict[int, float] = field(default_factory=dict)
    default_width: float = 1.0
    placeholder: str = DEFAULT_PLACEHOLDER

    @property
    def vertical(self) -> bool:
        return self.encoding.wmode == 1

    def decode(self, data: bytes) -> list[DecodedChar]:
        chars: list[DecodedChar] = []
        for code in self.encoding.split(data, default_width=2):
            text = self.to_unicode.lookup_unicode(code) if self.to_unicode is not None else None
            if text is None:
                text = self.encoding.lookup_unicode(code)
            cid = self.encoding.lookup_cid(code)
            width = self.widths.get(cid, self.default_width) if cid is not None else self.default_width
            chars.append(
                DecodedChar(text=text or self.placeholder, code=code, width=width, is_space=code == b" ")
            )
        return chars


Font = SimpleFont | CompositeFont


# -- Loading ---------------------------------------------------------------


def _clean(text: str | None) -> str | None:
    if not text:
        return None
    if len(text) == 1 and (ord(text) < 0x20 or 0x7F <= ord(text) < 0xA0) and text not in _KEEP_CONTROLS:
        return None
    return text


def _strip_subset(name: str) -> str:
    if len(name) > 7 and name[6] == "+" and name[:6].isalpha() and name[:6].isupper():
        return name[7:]
    return name


class FontLoader:
    """Build and cache :data:`Font` objects for one document.

    The cache is keyed by the font's reference (or identity for direct
    dictionaries) and filled with ``setdefault`` so loaders can be shared by
    threads working on different pages.
    """

    def __init__(self, document: Document, placeholder: str = DEFAULT_PLACEHOLDER) -> None:
        self.document = document
        self.placeholder = placeholder
        self._cache: dict[Any, Font] = {}

    def load(self, value: Any) -> Font:
        key = value if isinstance(value, PdfRef) else id(value)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        font_dict = self.document.resolve(value)
        if not isinstance(font_dict, dict):
            _LOGGER.debug("Font %s is missing; using a standard encoding", value)
            font: Font = self.fallback()
        else:
            try:
                font = self._build(font_dict)
            except PDFTextXError as exc:
                _LOGGER.warning("Font %s could not be loaded (%s); using a standard encoding", value, exc)
                font = self.fallback()
        if isinstance(value, PdfRef):
            return self._cache.setdefault(key, font)
        return font

    def fallback(self) -> SimpleFont:
        table = base_encoding("StandardEncoding") or [None] * 256
        return SimpleFont(
            name="",
            encoding=[_clean(char) for char in table],
            placeholder=self.placeholder,
        )

    def _build(self, font_dict: dict[str, Any]) -> Font:
        resolve = self.document.resolve
        subtype = str(resolve(font_dict.get("Subtype")) or "Type1")
        name = _strip_subset(str(resolve(font_dict.get("BaseFont")) or ""))
        to_unicode = self._to_unicode(font_dict.get("ToUnicode"))
        if subtype == "Type0":
            return self._build_composite(font_dict, name, to_unicode)

        encoding = self._simple_encoding(font_dict, subtype, name)
        widths, default_width = self._simple_widths(font_dict, subtype)
        return SimpleFont(
            name=name,
            subtype=subtype,
            encoding=encoding,
            to_unicode=to_unicode,
            widths=widths,
            default_width=default_width,
            placeholder=self.placeholder,
        )

    # -- Description -----------------------------------------------------------

    def describe(self, resource_name: str, value: Any, page_number: int) -> FontInfo:
        """Summarise a font resource without building its decoder."""

        resolve = self.document.resolve
        font_dict = resolve(value)
        if not isinstance(font_dict, dict):
            font_dict = {}
        subtype = as_name(resolve(font_dict.get("Subtype"))) or "Unknown"
        base_font = as_name(resolve(font_dict.get("BaseFont"))) or ""

        described = font_dict
        if subtype == "Type0":
            descendants = resolve(font_dict.get("DescendantFonts"))
            if isinstance(descendants, list) and descendants and isinstance(resolve(descendants[0]), dict):
                described = resolve(descendants[0])
        descriptor = resolve(described.get("FontDescriptor"))
        # Type3 glyphs are content streams inside the file.
        embedded = subtype == "Type3" or (
            isinstance(descriptor, dict) and any(key in descriptor for key in _FONT_FILES)
        )
        return FontInfo(
            page=page_number,
            resource_name=resource_name,
            name=_strip_subset(base_font) or resource_name,
            base_font=base_font,
            subtype=subtype,
            encoding=self._encoding_name(font_dict.get("Encoding")),
            embedded=embedded,
            object_number=value.num if isinstance(value, PdfRef) else None,
        )

    def _encoding_name(self, value: Any) -> str | None:
        encoding = self.document.resolve(value)
        if isinstance(encoding, PdfName):
            return str(encoding)
        if isinstance(encoding, PdfStream):
            return as_name(self.document.resolve(encoding.get("CMapName"))) or "Embedded CMap"
        if isinstance(encoding, dict):
            base = as_name(self.document.resolve(encoding.get("BaseEncoding")))
            if base is None:
                return "Differences"
            return f"{base} with Differences" if "Differences" in encoding else base
        return None

    # -- Simple fonts ----------------------------------------------------------

    def _simple_encoding(self, font_dict: dict[str, Any], subtype: str, name: str) -> list[str | None]:
        resolve = self.document.resolve
        if name.startswith("Symbol"):
            default = "Symbol"
        elif "Dingbats" in name:
            default = "ZapfDingbats"
        elif subtype == "TrueType":
            default = "WinAnsiEncoding"
        else:
            default = "StandardEncoding"
        table = base_encoding(default) or [None] * 256

        encoding = resolve(font_dict.get("Encoding"))
        differences: Any = None
        base_name: Any = None
        if isinstance(encoding, PdfName):
            base_name = encoding
        elif isinstance(encoding, dict):
            base_name = resolve(encoding.get("BaseEncoding"))
            differences = resolve(encoding.get("Differences"))
        if isinstance(base_name, PdfName):
            named = base_encoding(str(base_name))
            if named is None:
                issue = UnsupportedEncodingError(f"Unknown encoding /{base_name}; using {default}")
                _LOGGER.warning("%s", issue)
            else:
                table = named

        result: list[str | None] = [_clean(char) for char in table]
        if isinstance(differences, list):
            code = 0
            for item in differences:
                item = resolve(item)
                if isinstance(item, int) and not isinstance(item, bool):
                    code = item
                elif isinstance(item, PdfName):
                    if 0 <= code < 256:
                        result[code] = glyph_name_to_unicode(str(item))
                    code += 1
        return result

    def _simple_widths(self, font_dict: dict[str, Any], subtype: str) -> tuple[dict[int, float], float]:
        resolve = self.document.resolve
        scale = 0.001
        if subtype == "Type3":
            matrix = resolve(font_dict.get("FontMatrix"))
            if isinstance(matrix, list) and matrix:
                scale = as_number(resolve(matrix[0]), 0.001) or 0.001
        descriptor = resolve(font_dict.get("FontDescriptor"))
        default_width = _FALLBACK_WIDTH
        if isinstance(descriptor, dict):
            missing = as_number(resolve(descriptor.get("MissingWidth")))
            if missing:
                default_width = missing * scale

        widths: dict[int, float] = {}
        first = as_int(resolve(font_dict.get("FirstChar")), 0) or 0
        values = resolve(font_dict.get("Widths"))
        if isinstance(values, list):
            for offset, value in enumerate(values):
                width = as_number(resolve(value))
                if width is not None:
                    widths[first + offset] = width * scale
        return widths, default_width

    # -- Composite fonts -------------------------------------------------------

    def _build_composite(self, font_dict: dict[str, Any], name: str, to_unicode: CMap | None) -> CompositeFont:
        resolve = self.document.resolve
        encoding = self._encoding_cmap(font_dict.get("Encoding"))
        descendants = resolve(font_dict.get("DescendantFonts"))
        descendant = resolve(descendants[0]) if isinstance(descendants, list) and descendants else None
        widths: dict[int, float] = {}
        default_width = 1.0
        if isinstance(descendant, dict):
            dw = as_number(resolve(descendant.get("DW")))
            if dw is not None:
                default_width = dw / 1000.0
            widths = self._cid_widths(resolve(descendant.get("W")))
        return CompositeFont(
            name=name,
            encoding=encoding,
            to_unicode=to_unicode,
            widths=widths,
            default_width=default_width,
            placeholder=self.placeholder,
        )

    def _encoding_cmap(self, value: Any) -> CMap:
        encoding = self.document.resolve(value)
        if isinstance(encoding, PdfName):
            try:
                return predefined_cmap(str(encoding))
            except UnsupportedEncodingError as exc:
                _LOGGER.warning("%s; reading codes as two-byte CIDs", exc)
                return predefined_cmap("Identity-H")
        if isinstance(encoding, PdfStream):
            try:
                cmap = parse_cmap(self.document.stream_data(encoding))
            except PDFTextXError as exc:
                _LOGGER.warning("Embedded encoding CMap unreadable (%s); using Identity-H", exc)
                return predefined_cmap("Identity-H")
            if not cmap.codespaces:
                parent = cmap.parent or "Identity-H"
                try:
                    cmap.codespaces = predefined_cmap(parent).codespaces
                except UnsupportedEncodingError:
                    cmap.codespaces = [(b"\x00\x00", b"\xff\xff")]
            return cmap
        return predefined_cmap("Identity-H")

    def _cid_widths(self, value: Any) -> dict[int, float]:
        resolve = self.document.resolve
        widths: dict[int, float] = {}
        if not isinstance(value, list):
            return widths
        items = [resolve(item) for item in value]
        index = 0
        while index + 1 < len(items):
            first = as_int(items[index])
            following = items[index + 1]
            if first is None:
                index += 1
                continue
            if isinstance(following, list):
                for offset, width in enumerate(following):
                    number = as_number(resolve(width))
                    if number is not None:
                        widths[first + offset] = number / 1000.0
                index += 2
                continue
            last = as_int(following)
            width = as_number(items[index + 2]) if index + 2 < len(items) else None
            if last is not None and width is not None and 0 <= last - first < 0x10000:
                for cid in range(first, last + 1):
                    widths[cid] = width / 1000.0
            index += 3
        return widths

    # -- ToUnicode -------------------------------------------------------------

    def _to_unicode(self, value: Any) -> CMap | None:
        to_unicode = self.document.resolve(value)
        if isinstance(to_unicode, PdfStream):
            try:
                cmap = parse_cmap(self.document.stream_data(to_unicode))
            except PDFTextXError as exc:
                _LOGGER.warning("ToUnicode CMap unreadable: %s", exc)
                return None
            return None if cmap.is_empty else cmap
        if isinstance(to_unicode, PdfName) and str(to_unicode).startswith("Identity"):
            cmap = predefined_cmap("Identity-H")
            cmap.code_is_unicode = True
            return cmap
        return None
