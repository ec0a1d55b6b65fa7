"""Cross-reference tables, cross-reference streams and their fallback.

The resolver walks the ``startxref`` → ``/Prev`` chain newest section first,
so the first definition recorded for an object number is the one that wins.
When the chain cannot be read at all, :func:`reconstruct_cross_reference`
rebuilds an index by scanning the buffer for ``n g obj`` headers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Any, Iterable

from ..exceptions import MalformedSyntaxError, PDFTextXError
from .filters import decode_stream
from .lexer import WHITESPACE
from .objects import PdfRef, PdfStream, as_int
from .parser import ObjectParser, Resolver
from .utils import decode_be_integer

__all__ = [
    "XRefEntry",
    "XRefIndex",
    "locate_startxref",
    "read_cross_reference",
    "reconstruct_cross_reference",
    "object_stream_header",
]

_LOGGER = logging.getLogger(__name__)

_ENTRY = re.compile(rb"[\x00\t\n\f\r ]*(\d{1,10})[ ]+(\d{1,5})[ ]+([nf])")
_OBJECT_HEADER = re.compile(
    rb"(?<![0-9])(\d{1,10})[\x00\t\n\f\r ]+(\d{1,5})[\x00\t\n\f\r ]+obj(?![A-Za-z])"
)
_TRAILER = re.compile(rb"trailer[\x00\t\n\f\r ]*<<")
_STARTXREF = re.compile(rb"startxref[\x00\t\n\f\r ]*(\d+)")
# Keys that describe a cross-reference stream rather than the document.
_SECTION_KEYS = frozenset({"Prev", "XRefStm", "W", "Index", "Length", "Filter", "DecodeParms", "Type", "DL"})


# -- Index models --------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class XRefEntry:
    """Where an object lives: a byte offset, a slot in an object stream, or nowhere."""

    kind: str
    offset: int = 0
    generation: int = 0
    container: int = 0
    index: int = 0

    @classmethod
    def at_offset(cls, offset: int, generation: int = 0) -> "XRefEntry":
        return cls("offset", offset=offset, generation=generation)

    @classmethod
    def compressed(cls, container: int, index: int) -> "XRefEntry":
        return cls("compressed", container=container, index=index)

    @classmethod
    def free(cls, generation: int = 0) -> "XRefEntry":
        return cls("free", generation=generation)

    @property
    def in_use(self) -> bool:
        return self.kind != "free"


@dataclass(slots=True)
class XRefIndex:
    """Merged view of every cross-reference section in the file."""

    entries: dict[int, XRefEntry]
    trailer: dict[str, Any]
    startxref: int | None = None
    sections: list[str] = field(default_factory=list)
    recovered: bool = False

    def get(self, num: int) -> XRefEntry | None:
        return self.entries.get(num)

    def object_numbers(self) -> list[int]:
        return sorted(num for num, entry in self.entries.items() if entry.in_use)


# -- Section chain -------------------------------------------------------------


def locate_startxref(data: bytes) -> int:
    """Return the offset recorded after the last ``startxref`` marker."""

    index = data.rfind(b"startxref")
    if index == -1:
        raise MalformedSyntaxError("Unable to locate startxref marker")
    match = _STARTXREF.match(data, index)
    if not match:
        raise MalformedSyntaxError("startxref offset not found", position=index)
    return int(match.group(1))


def read_cross_reference(data: bytes, resolver: Resolver | None = None) -> XRefIndex:
    """Parse the chain of cross-reference sections starting at ``startxref``.

    Raises :class:`MalformedSyntaxError` when the newest section cannot be
    read; a broken older section only truncates the chain.
    """

    startxref = locate_startxref(data)
    if not 0 <= startxref < len(data):
        raise MalformedSyntaxError(f"startxref offset {startxref} is outside the file")

    entries: dict[int, XRefEntry] = {}
    trailers: list[dict[str, Any]] = []
    sections: list[str] = []
    visited: set[int] = set()
    next_offset: int | None = startxref

    while next_offset is not None:
        if next_offset in visited:
            _LOGGER.warning("Cross-reference chain loops back to offset %d", next_offset)
            break
        visited.add(next_offset)
        try:
            section_entries, trailer, kind = _parse_section(data, next_offset, resolver)
        except PDFTextXError as exc:
            if not sections:
                raise MalformedSyntaxError(
                    f"Unreadable cross-reference section at {next_offset}: {exc}", position=next_offset
                ) from exc
            _LOGGER.warning("Ignoring unreadable cross-reference section at %d: %s", next_offset, exc)
            break

        # Newer sections were read first, so never overwrite what is there.
        for num, entry in section_entries.items():
            entries.setdefault(num, entry)
        trailers.append(trailer)
        sections.append(kind)

        hybrid = as_int(trailer.get("XRefStm"))
        if hybrid is not None and hybrid not in visited:
            visited.add(hybrid)
            try:
                stream_entries, _, _ = _parse_section(data, hybrid, resolver)
            except PDFTextXError as exc:
                _LOGGER.warning("Ignoring unreadable /XRefStm section at %d: %s", hybrid, exc)
            else:
                for num, entry in stream_entries.items():
                    entries.setdefault(num, entry)
                sections.append("stream")

        next_offset = as_int(trailer.get("Prev"))

    return XRefIndex(
        entries=entries,
        trailer=_merge_trailers(trailers),
        startxref=startxref,
        sections=sections,
    )


def _merge_trailers(trailers: Iterable[dict[str, Any]]) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for trailer in trailers:
        for key, value in trailer.items():
            if key in _SECTION_KEYS or value is None:
                continue
            merged.setdefault(key, value)
    return merged


def _parse_section(
    data: bytes, offset: int, resolver: Resolver | None
) -> tuple[dict[int, XRefEntry], dict[str, Any], str]:
    index = offset
    while index < len(data) and data[index] in WHITESPACE:
        index += 1
    if data.startswith(b"xref", index):
        entries, trailer = _parse_table_section(data, index + len(b"xref"), resolver)
        return entries, trailer, "table"
    entries, trailer = _parse_stream_section(data, index, resolver)
    return entries, trailer, "stream"


def _skip_ws(buffer: bytes, index: int) -> int:
    while index < len(buffer) and buffer[index] in WHITESPACE:
        index += 1
    return index


def _read_int(buffer: bytes, index: int) -> tuple[int, int]:
    index = _skip_ws(buffer, index)
    start = index
    while index < len(buffer) and buffer[index] in b"+-0123456789":
        index += 1
    if start == index:
        raise MalformedSyntaxError("Expected integer in xref table", position=index)
    return int(buffer[start:index]), index


def _parse_table_section(
    data: bytes, index: int, resolver: Resolver | None
) -> tuple[dict[int, XRefEntry], dict[str, Any]]:
    entries: dict[int, XRefEntry] = {}
    length = len(data)
    index = _skip_ws(data, index)

    while index < length:
        if data.startswith(b"trailer", index):
            parser = ObjectParser(data, index + len(b"trailer"), resolver=resolver)
            trailer = parser.parse_object()
            if not isinstance(trailer, dict):
                raise MalformedSyntaxError("Trailer is not a dictionary", position=index)
            return entries, trailer

        first, index = _read_int(data, index)
        count, index = _read_int(data, index)
        for position in range(count):
            match = _ENTRY.match(data, index)
            if not match:
                raise MalformedSyntaxError("Malformed cross-reference entry", position=index)
            offset, generation, marker = int(match.group(1)), int(match.group(2)), match.group(3)
            index = match.end()
            # A common generator bug numbers the first subsection from 1
            # while still emitting the free head entry of object 0.
            if position == 0 and first == 1 and marker == b"f" and generation == 65535:
                first = 0
            num = first + position
            if marker == b"n":
                if offset > 0:
                    entries.setdefault(num, XRefEntry.at_offset(offset, generation))
            else:
                entries.setdefault(num, XRefEntry.free(generation))
        index = _skip_ws(data, index)

    raise MalformedSyntaxError("Cross-reference table has no trailer")


def _parse_stream_section(
    data: bytes, index: int, resolver: Resolver | None
) -> tuple[dict[int, XRefEntry], dict[str, Any]]:
    parser = ObjectParser(data, index, resolver=resolver)
    _, stream = parser.parse_indirect_object()
    if not isinstance(stream, PdfStream):
        raise MalformedSyntaxError("Expected a cross-reference stream", position=index)

    decoded = decode_stream(stream)
    widths_obj = stream.get("W")
    if not isinstance(widths_obj, list) or len(widths_obj) != 3:
        raise MalformedSyntaxError("Cross-reference stream without valid /W", position=index)
    widths = [as_int(width, 0) or 0 for width in widths_obj]
    entry_width = sum(widths)
    if entry_width <= 0:
        raise MalformedSyntaxError("Cross-reference stream with zero-width entries", position=index)

    size = as_int(stream.get("Size"), 0) or 0
    index_obj = stream.get("Index")
    if isinstance(index_obj, list) and len(index_obj) % 2 == 0:
        subsections = [
            (as_int(index_obj[i], 0) or 0, as_int(index_obj[i + 1], 0) or 0)
            for i in range(0, len(index_obj), 2)
        ]
    else:
        subsections = [(0, size)]

    w0, w1, _ = widths
    entries: dict[int, XRefEntry] = {}
    position = 0
    for first, count in subsections:
        for i in range(count):
            end = position + entry_width
            if end > len(decoded):
                _LOGGER.debug("Cross-reference stream data ends early at entry %d", first + i)
                return entries, stream.dictionary
            kind = decode_be_integer(decoded[position : position + w0]) if w0 else 1
            field2 = decode_be_integer(decoded[position + w0 : position + w0 + w1])
            field3 = decode_be_integer(decoded[position + w0 + w1 : end])
            position = end

            num = first + i
            if kind == 0:
                entries.setdefault(num, XRefEntry.free(field3))
            elif kind == 1:
                entries.setdefault(num, XRefEntry.at_offset(field2, field3))
            elif kind == 2:
                entries.setdefault(num, XRefEntry.compressed(field2, field3))
            # Unknown entry types are references to the null object.
    return entries, stream.dictionary


# -- Object streams ------------------------------------------------------------


def object_stream_header(decoded: bytes, count: int, first: int) -> list[tuple[int, int]]:
    """Read the ``num offset`` pairs that prefix an object stream.

    Offsets are returned absolute, i.e. already shifted by ``/First``.
    """

    parser = ObjectParser(decoded[:first], allow_references=False)
    pairs: list[tuple[int, int]] = []
    for _ in range(count):
        try:
            num = parser.parse_object()
            offset = parser.parse_object()
        except MalformedSyntaxError:
            break
        if not isinstance(num, int) or not isinstance(offset, int):
            break
        pairs.append((num, first + offset))
    return pairs


# -- Fallback reconstruction ---------------------------------------------------


def reconstruct_cross_reference(data: bytes) -> XRefIndex:
    """Rebuild an index by scanning the whole buffer for object headers."""

    entries: dict[int, XRefEntry] = {}
    for match in _OBJECT_HEADER.finditer(data):
        num, generation = int(match.group(1)), int(match.group(2))
        # File order is update order, so later headers replace earlier ones.
        entries[num] = XRefEntry.at_offset(match.start(), generation)

    def _lookup(ref: PdfRef) -> Any:
        entry = entries.get(ref.num)
        if entry is None or entry.kind != "offset":
            return None
        return ObjectParser(data, entry.offset).parse_indirect_object(ref)[1]

    trailers: list[dict[str, Any]] = []
    for match in _TRAILER.finditer(data):
        try:
            trailer = ObjectParser(data, match.end() - 2, resolver=_lookup).parse_object()
        except PDFTextXError:
            continue
        if isinstance(trailer, dict):
            trailers.append(trailer)

    compressed: dict[int, XRefEntry] = {}
    for num, entry in sorted(entries.items(), key=lambda item: item[1].offset):
        window = data[entry.offset : entry.offset + 2048]
        if b"/ObjStm" not in window and b"/XRef" not in window:
            continue
        try:
            _, value = ObjectParser(data, entry.offset, resolver=_lookup).parse_indirect_object()
        except PDFTextXError:
            continue
        if not isinstance(value, PdfStream):
            continue
        if value.get("Type") == "XRef":
            trailers.append(value.dictionary)
        elif value.get("Type") == "ObjStm":
            try:
                decoded = decode_stream(value)
            except PDFTextXError as exc:
                _LOGGER.debug("Skipping undecodable object stream %d: %s", num, exc)
                continue
            count = as_int(value.get("N"), 0) or 0
            first = as_int(value.get("First"), 0) or 0
            for slot, (member, _) in enumerate(object_stream_header(decoded, count, first)):
                compressed[member] = XRefEntry.compressed(num, slot)

    for member, entry in compressed.items():
        entries.setdefault(member, entry)

    _LOGGER.warning("Rebuilt cross-reference index from %d object headers", len(entries))
    return XRefIndex(
        entries=entries,
        trailer=_merge_trailers(reversed(trailers)),
        startxref=None,
        sections=["scan"],
        recovered=True,
    )
