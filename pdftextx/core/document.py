"""In-memory PDF document: object resolution on top of the xref index."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
import threading
from typing import TYPE_CHECKING, Any, Iterator

from ..exceptions import (
    MalformedSyntaxError,
    PDFTextXError,
    StructuralCycleError,
    UnreadableDocumentError,
    UnsupportedEncryptionError,
)
from .filters import decode_stream
from .lexer import WHITESPACE
from .objects import PdfRef, PdfStream, PdfString, as_int
from .parser import ObjectParser
from .security import StandardSecurityHandler, crypt_filter_is_identity
from .utils import as_buffer
from .xref import XRefIndex, object_stream_header, read_cross_reference, reconstruct_cross_reference

if TYPE_CHECKING:
    from .pages import Page

__all__ = ["Document", "open_document"]

_LOGGER = logging.getLogger(__name__)

_HEADER = re.compile(rb"%PDF-(\d+\.\d+)")
_MAX_REFERENCE_CHAIN = 32


@dataclass(slots=True)
class _ObjectStream:
    data: bytes
    offsets: list[tuple[int, int]]


def _search_object_offset(data: bytes, ref: PdfRef) -> int | None:
    """Best-effort search to locate an object declaration in the raw file."""

    pattern = rb"(?<![0-9])" + str(ref.num).encode("ascii") + rb"[\x00\t\n\f\r ]+" + str(ref.gen).encode("ascii")
    matches = list(re.finditer(pattern + rb"[\x00\t\n\f\r ]+obj(?![A-Za-z])", data))
    if not matches:
        return None
    # The last definition in the file belongs to the newest update.
    return matches[-1].start()


class Document:
    """A parsed PDF held entirely in memory.

    Objects are resolved lazily and cached; resolution is idempotent so the
    cache is filled with ``dict.setdefault`` and may be shared across
    threads. Use :func:`open_document` or construct directly from bytes.
    """

    def __init__(self, data: bytes | bytearray | memoryview, *, password: str | bytes | None = None) -> None:
        self.data = as_buffer(data)
        if not self.data.strip(WHITESPACE):
            raise UnreadableDocumentError("The PDF buffer is empty")
        self.version = self._detect_version(self.data)
        self.security: StandardSecurityHandler | None = None
        self._encrypt_ref: PdfRef | None = None
        self._cache: dict[PdfRef, Any] = {}
        self._object_streams: dict[int, _ObjectStream | None] = {}
        self._local = threading.local()
        self._pages: list[Page] | None = None
        self._pages_lock = threading.Lock()
        self.page_tree_issues: list[PDFTextXError] = []

        self.xref = self._load_cross_reference()
        self._setup_security(password)
        self.catalog = self._locate_catalog()

    # -- Cached accessors ----------------------------------------------------

    @property
    def trailer(self) -> dict[str, Any]:
        return self.xref.trailer

    @property
    def recovered(self) -> bool:
        """True when the object index had to be rebuilt by scanning."""

        return self.xref.recovered

    @property
    def is_encrypted(self) -> bool:
        return self.security is not None

    @property
    def pages(self) -> list[Page]:
        if self._pages is None:
            from .pages import PageTreeWalker

            with self._pages_lock:
                if self._pages is None:
                    walker = PageTreeWalker(self)
                    pages = walker.walk()
                    self.page_tree_issues = list(walker.issues)
                    self._pages = pages
        return self._pages

    @property
    def number_of_pages(self) -> int:
        return len(self.pages)

    def get_number_of_pages(self) -> int:
        return self.number_of_pages

    @property
    def info(self) -> dict[str, str]:
        """Document information dictionary with text values decoded."""

        info = self.resolve(self.trailer.get("Info"))
        if not isinstance(info, dict):
            return {}
        result: dict[str, str] = {}
        for key, value in info.items():
            value = self.resolve(value)
            if isinstance(value, PdfString):
                result[str(key)] = value.to_text()
            elif isinstance(value, (str, int, float)) and not isinstance(value, bool):
                result[str(key)] = str(value)
        return result

    # -- Object resolution ---------------------------------------------------

    def resolve(self, value: Any) -> Any:
        """Follow references until a direct object is reached."""

        seen = 0
        while isinstance(value, PdfRef):
            if seen >= _MAX_REFERENCE_CHAIN:
                _LOGGER.warning("Reference chain through %s is too long", value)
                return None
            seen += 1
            try:
                value = self.get_object(value)
            except StructuralCycleError as exc:
                _LOGGER.debug("%s", exc)
                return None
        return value

    def get_object(self, ref: PdfRef) -> Any:
        try:
            return self._cache[ref]
        except KeyError:
            pass
        in_progress = self._in_progress()
        if ref in in_progress:
            raise StructuralCycleError(f"Object {ref} refers to itself while loading", ref=ref)
        in_progress.add(ref)
        try:
            value = self._load(ref)
        finally:
            in_progress.discard(ref)
        return self._cache.setdefault(ref, value)

    def objects(self) -> Iterator[tuple[PdfRef, Any]]:
        """Yield every in-use object in object-number order, skipping broken ones."""

        for num in self.xref.object_numbers():
            entry = self.xref.entries[num]
            ref = PdfRef(num, entry.generation if entry.kind == "offset" else 0)
            try:
                yield ref, self.get_object(ref)
            except PDFTextXError as exc:
                _LOGGER.debug("Skipping object %s: %s", ref, exc)

    def stream_data(self, stream: PdfStream) -> bytes:
        """Decoded payload of ``stream``."""

        return decode_stream(stream, self.resolve)

    def _in_progress(self) -> set[PdfRef]:
        pending = getattr(self._local, "pending", None)
        if pending is None:
            pending = self._local.pending = set()
        return pending

    def _load(self, ref: PdfRef) -> Any:
        entry = self.xref.get(ref.num)
        if entry is None or not entry.in_use:
            _LOGGER.debug("Object %s is not in the cross-reference index", ref)
            return None
        if entry.kind == "compressed":
            return self._load_compressed(ref, entry.container, entry.index)
        value = self._parse_at(entry.offset, ref)
        return self._decrypt(ref, value)

    def _parse_at(self, offset: int, ref: PdfRef) -> Any:
        try:
            return ObjectParser(self.data, offset, resolver=self.get_object).parse_indirect_object(ref)[1]
        except MalformedSyntaxError as exc:
            fallback = _search_object_offset(self.data, ref)
            if fallback is None or fallback == offset:
                _LOGGER.debug("Cannot parse object %s at offset %d: %s", ref, offset, exc)
                return None
        _LOGGER.debug("Object %s not found at offset %d; found it at %d", ref, offset, fallback)
        try:
            return ObjectParser(self.data, fallback, resolver=self.get_object).parse_indirect_object(ref)[1]
        except MalformedSyntaxError as exc:
            _LOGGER.debug("Cannot parse object %s: %s", ref, exc)
            return None

    def _load_compressed(self, ref: PdfRef, container: int, index: int) -> Any:
        stream = self._object_stream(container)
        if stream is None:
            return None
        offset: int | None = None
        if index < len(stream.offsets) and stream.offsets[index][0] == ref.num:
            offset = stream.offsets[index][1]
        else:
            for num, candidate in stream.offsets:
                if num == ref.num:
                    offset = candidate
                    break
        if offset is None:
            _LOGGER.debug("Object %s missing from object stream %d", ref, container)
            return None
        try:
            return ObjectParser(stream.data, offset).parse_object()
        except MalformedSyntaxError as exc:
            _LOGGER.debug("Cannot parse object %s in object stream %d: %s", ref, container, exc)
            return None

    def _object_stream(self, num: int) -> _ObjectStream | None:
        if num in self._object_streams:
            return self._object_streams[num]
        stream = self.resolve(PdfRef(num, 0))
        parsed: _ObjectStream | None = None
        if isinstance(stream, PdfStream):
            try:
                decoded = self.stream_data(stream)
            except PDFTextXError as exc:
                _LOGGER.warning("Object stream %d cannot be decoded: %s", num, exc)
            else:
                count = as_int(self.resolve(stream.get("N")), 0) or 0
                first = as_int(self.resolve(stream.get("First")), 0) or 0
                parsed = _ObjectStream(decoded, object_stream_header(decoded, count, first))
        else:
            _LOGGER.debug("Object stream %d is missing", num)
        return self._object_streams.setdefault(num, parsed)

    def _decrypt(self, ref: PdfRef, value: Any) -> Any:
        security = self.security
        if security is None or ref == self._encrypt_ref:
            return value
        if isinstance(value, PdfStream):
            dictionary = value.dictionary
            if dictionary.get("Type") == "XRef":
                return value
            if dictionary.get("Type") == "Metadata" and not security.encrypt_metadata:
                return value
            decrypted = PdfStream(security.decrypt_object(ref, dictionary), value.raw, value.ref, decrypted=True)
            if not crypt_filter_is_identity(dictionary):
                decrypted.raw = security.decrypt_stream(ref, value.raw)
            return decrypted
        return security.decrypt_object(ref, value)

    # -- Document structure --------------------------------------------------

    @staticmethod
    def _detect_version(data: bytes) -> str:
        match = _HEADER.search(data, 0, 1024)
        if not match:
            _LOGGER.warning("Missing %%PDF- header")
            return "unknown"
        return match.group(1).decode("ascii")

    def _load_cross_reference(self) -> XRefIndex:
        try:
            xref = read_cross_reference(self.data)
        except PDFTextXError as exc:
            _LOGGER.warning("Cross-reference data unusable (%s); scanning the file instead", exc)
            return reconstruct_cross_reference(self.data)
        if not xref.entries:
            _LOGGER.warning("Cross-reference data is empty; scanning the file instead")
            return reconstruct_cross_reference(self.data)
        return xref

    def _rebuild_index(self) -> None:
        self.xref = reconstruct_cross_reference(self.data)
        self._cache.clear()
        self._object_streams.clear()

    def _setup_security(self, password: str | bytes | None) -> None:
        encrypt_value = self.trailer.get("Encrypt")
        if encrypt_value is None:
            return
        if isinstance(encrypt_value, PdfRef):
            self._encrypt_ref = encrypt_value
        encrypt = self.resolve(encrypt_value)
        if not isinstance(encrypt, dict):
            raise UnsupportedEncryptionError("The /Encrypt dictionary cannot be read")
        ids = self.resolve(self.trailer.get("ID"))
        file_id = b""
        if isinstance(ids, list) and ids and isinstance(self.resolve(ids[0]), bytes):
            file_id = bytes(self.resolve(ids[0]))
        self.security = StandardSecurityHandler.open(encrypt, file_id, password, self.resolve)
        # Anything loaded before the key was known is still ciphertext.
        self._cache = {ref: value for ref, value in self._cache.items() if ref == self._encrypt_ref}
        self._object_streams.clear()

    def _locate_catalog(self) -> dict[str, Any]:
        catalog = self.resolve(self.trailer.get("Root"))
        if isinstance(catalog, dict):
            return catalog
        if not self.xref.recovered:
            _LOGGER.warning("Document catalog unreachable through the cross-reference index; rescanning")
            self._rebuild_index()
            catalog = self.resolve(self.trailer.get("Root"))
            if isinstance(catalog, dict):
                return catalog
        for ref, value in reversed(list(self.objects())):
            if isinstance(value, dict) and value.get("Type") == "Catalog":
                _LOGGER.warning("Using catalog object %s found by scanning", ref)
                self.xref.trailer["Root"] = ref
                return value
        raise UnreadableDocumentError("No document catalog could be located")


def open_document(
    data: bytes | bytearray | memoryview,
    options: Any = None,
    *,
    password: str | bytes | None = None,
) -> Document:
    """Parse ``data`` into a :class:`Document`.

    ``options`` may be an :class:`~pdftextx.types.ExtractionOptions`; its
    password is used when ``password`` is not given.
    """

    if password is None and options is not None:
        password = getattr(options, "password", None)
    return Document(data, password=password)
