"""CMap parsing for ToUnicode maps and composite-font encodings."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any

from ..core.objects import PdfKeyword, PdfName, PdfString, as_int
from ..core.parser import ObjectParser
from ..exceptions import MalformedSyntaxError, UnsupportedEncodingError
from .glyphs import glyph_name_to_unicode

__all__ = ["CMap", "parse_cmap", "predefined_cmap", "decode_utf16"]

_LOGGER = logging.getLogger(__name__)

_MAX_RANGE = 0x10000


def decode_utf16(raw: bytes) -> str:
    """Decode a ToUnicode destination string."""

    if len(raw) == 1:
        return chr(raw[0])
    if len(raw) % 2:
        raw = b"\x00" + raw
    try:
        return raw.decode("utf-16-be")
    except UnicodeDecodeError:
        return raw.decode("utf-16-be", "replace")


@dataclass(slots=True)
class CMap:
    """Code splitting plus code → Unicode and code → CID lookups."""

    name: str | None = None
    codespaces: list[tuple[bytes, bytes]] = field(default_factory=list)
    unicode: dict[bytes, str] = field(default_factory=dict)
    cids: dict[bytes, int] = field(default_factory=dict)
    cid_ranges: list[tuple[bytes, bytes, int]] = field(default_factory=list)
    wmode: int = 0
    parent: str | None = None
    # Predefined UCS-2/UTF-16 CMaps: the code itself is the Unicode value.
    code_is_unicode: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.unicode or self.cids or self.cid_ranges or self.code_is_unicode)

    def code_lengths(self) -> list[int]:
        if self.codespaces:
            return sorted({len(low) for low, _ in self.codespaces})
        lengths = {len(code) for code in self.unicode} | {len(code) for code in self.cids}
        return sorted(lengths)

    def split(self, data: bytes, default_width: int = 1) -> list[bytes]:
        """Cut ``data`` into character codes using the codespace ranges."""

        if not self.codespaces:
            lengths = self.code_lengths()
            width = lengths[0] if len(lengths) == 1 else default_width
            return [data[i : i + width] for i in range(0, len(data), width)]

        lengths = self.code_lengths()
        codes: list[bytes] = []
        index = 0
        while index < len(data):
            for length in lengths:
                chunk = data[index : index + length]
                if len(chunk) == length and self._in_codespace(chunk):
                    break
            else:
                # Unmatched bytes are consumed using the shortest code length.
                length = lengths[0]
                chunk = data[index : index + length]
            codes.append(chunk)
            index += length
        return codes

    def _in_codespace(self, code: bytes) -> bool:
        for low, high in self.codespaces:
            if len(low) == len(code) and all(lo <= byte <= hi for lo, byte, hi in zip(low, code, high)):
                return True
        return False

    def lookup_unicode(self, code: bytes) -> str | None:
        text = self.unicode.get(code)
        if text is not None:
            return text
        if self.code_is_unicode and code:
            return decode_utf16(code)
        return None

    def lookup_cid(self, code: bytes) -> int | None:
        cid = self.cids.get(code)
        if cid is not None:
            return cid
        for low, high, start in self.cid_ranges:
            if len(low) == len(code) and low <= code <= high:
                return start + int.from_bytes(code, "big") - int.from_bytes(low, "big")
        return None


# -- Predefined CMaps ---------------------------------------------------------


def _identity(name: str) -> CMap:
    return CMap(
        name=name,
        codespaces=[(b"\x00\x00", b"\xff\xff")],
        cid_ranges=[(b"\x00\x00", b"\xff\xff", 0)],
        wmode=1 if name.endswith("-V") else 0,
    )


def predefined_cmap(name: str) -> CMap:
    """Return one of the predefined CMaps that can be handled without tables.

    Raises :class:`UnsupportedEncodingError` for the legacy CJK CMaps, which
    need Adobe's CMap resources.
    """

    if name in ("Identity-H", "Identity-V"):
        return _identity(name)
    if "UCS2" in name or "UTF16" in name:
        cmap = _identity(name)
        cmap.code_is_unicode = True
        return cmap
    raise UnsupportedEncodingError(f"Predefined CMap {name} is not bundled")


# -- Embedded CMap programs -----------------------------------------------------


def parse_cmap(data: bytes) -> CMap:
    """Parse an embedded CMap program (ToUnicode or encoding)."""

    parser = ObjectParser(data, allow_references=False)
    lexer = parser.lexer
    cmap = CMap()
    operands: list[Any] = []
    while True:
        try:
            if lexer.peek_token() is None:
                break
            value = parser.parse_object()
        except MalformedSyntaxError as exc:
            _LOGGER.debug("Skipping malformed CMap token at %s", exc.position)
            lexer.resync()
            continue
        if isinstance(value, PdfKeyword):
            _apply_operator(cmap, str(value), operands)
            operands = []
        else:
            operands.append(value)

    if cmap.parent and cmap.parent in ("Identity-H", "Identity-V") and not cmap.codespaces:
        cmap.codespaces.append((b"\x00\x00", b"\xff\xff"))
    return cmap


def _apply_operator(cmap: CMap, operator: str, operands: list[Any]) -> None:
    if operator == "endcodespacerange":
        for low, high in _groups(operands, 2):
            if isinstance(low, bytes) and isinstance(high, bytes) and len(low) == len(high) and low:
                cmap.codespaces.append((bytes(low), bytes(high)))
    elif operator == "endbfchar":
        for source, target in _groups(operands, 2):
            if not isinstance(source, bytes):
                continue
            text = _target_text(target)
            if text is not None:
                cmap.unicode[bytes(source)] = text
    elif operator == "endbfrange":
        for low, high, target in _groups(operands, 3):
            _apply_bfrange(cmap, low, high, target)
    elif operator == "endcidchar":
        for source, cid in _groups(operands, 2):
            if isinstance(source, bytes) and as_int(cid) is not None:
                cmap.cids[bytes(source)] = as_int(cid)  # type: ignore[assignment]
    elif operator == "endcidrange":
        for low, high, cid in _groups(operands, 3):
            if isinstance(low, bytes) and isinstance(high, bytes) and as_int(cid) is not None:
                cmap.cid_ranges.append((bytes(low), bytes(high), as_int(cid)))  # type: ignore[arg-type]
    elif operator == "usecmap" and operands and isinstance(operands[-1], PdfName):
        cmap.parent = str(operands[-1])
    elif operator == "def" and len(operands) >= 2 and isinstance(operands[-2], PdfName):
        key, value = operands[-2], operands[-1]
        if key == "WMode" and as_int(value) is not None:
            cmap.wmode = as_int(value)  # type: ignore[assignment]
        elif key == "CMapName" and isinstance(value, PdfName):
            cmap.name = str(value)


def _groups(operands: list[Any], size: int) -> list[tuple[Any, ...]]:
    return [tuple(operands[i : i + size]) for i in range(0, len(operands) - size + 1, size)]


def _target_text(target: Any) -> str | None:
    if isinstance(target, PdfString):
        return decode_utf16(bytes(target))
    if isinstance(target, PdfName):
        return glyph_name_to_unicode(str(target))
    return None


def _apply_bfrange(cmap: CMap, low: Any, high: Any, target: Any) -> None:
    if not isinstance(low, bytes) or not isinstance(high, bytes) or len(low) != len(high):
        return
    start = int.from_bytes(low, "big")
    end = int.from_bytes(high, "big")
    if end < start or end - start >= _MAX_RANGE:
        _LOGGER.debug("Ignoring bfrange %r..%r", low, high)
        return
    width = len(low)
    if isinstance(target, list):
        for offset, item in enumerate(target[: end - start + 1]):
            text = _target_text(item)
            if text is not None:
                cmap.unicode[(start + offset).to_bytes(width, "big")] = text
        return
    if not isinstance(target, bytes) or not target:
        return
    # Only the last byte of the destination counts up; codes past 0xFF in
    # that byte stay unmapped.
    prefix, last = bytes(target[:-1]), target[-1]
    count = min(end - start + 1, 256 - last)
    if count < end - start + 1:
        _LOGGER.debug("bfrange %r..%r overflows the last byte of %r", low, high, bytes(target))
    for offset in range(count):
        cmap.unicode[(start + offset).to_bytes(width, "big")] = decode_utf16(prefix + bytes([last + offset]))
