"""Stream decode filters.

The general-purpose decoders are pypdf's (``pypdf.filters``); this module
maps the engine's filter names and decode parameters onto them. Image codecs
(DCT, JPX, CCITT, JBIG2) never carry text and raise
:class:`UnsupportedFilterError`.
"""

from __future__ import annotations

import logging
import math
import zlib
from typing import Any, Callable

from pypdf.errors import PyPdfError
from pypdf.filters import ASCII85Decode, ASCIIHexDecode, FlateDecode, LZWDecode, RunLengthDecode
from pypdf.generic import BooleanObject, DictionaryObject, FloatObject, NameObject, NumberObject

from ..exceptions import MalformedSyntaxError, UnsupportedFilterError
from .objects import PdfName, PdfStream, as_int

__all__ = ["decode_stream", "apply_filter", "stream_filters", "FILTER_ALIASES"]

_LOGGER = logging.getLogger(__name__)

FILTER_ALIASES = {
    "Fl": "FlateDecode",
    "LZW": "LZWDecode",
    "AHx": "ASCIIHexDecode",
    "A85": "ASCII85Decode",
    "RL": "RunLengthDecode",
    "DCT": "DCTDecode",
    "CCF": "CCITTFaxDecode",
}
_IMAGE_FILTERS = {"DCTDecode", "JPXDecode", "CCITTFaxDecode", "JBIG2Decode"}
_DECODERS = {
    "ASCIIHexDecode": ASCIIHexDecode,
    "ASCII85Decode": ASCII85Decode,
    "RunLengthDecode": RunLengthDecode,
}
_DECODE_ERRORS = (PyPdfError, ValueError, zlib.error)


def _identity(value: Any) -> Any:
    return value


def stream_filters(
    stream: PdfStream, resolve: Callable[[Any], Any] = _identity
) -> list[tuple[str, dict[str, Any]]]:
    """Return ``(filter name, decode parms)`` pairs in application order."""

    filters = resolve(stream.get("Filter", stream.get("F")))
    parms = resolve(stream.get("DecodeParms", stream.get("DP")))
    if isinstance(filters, PdfName):
        filters = [filters]
        parms = [parms]
    elif not isinstance(filters, list):
        return []
    if not isinstance(parms, list):
        parms = [parms] * len(filters) if isinstance(parms, dict) else []
    pairs: list[tuple[str, dict[str, Any]]] = []
    for index, entry in enumerate(filters):
        name = resolve(entry)
        if not isinstance(name, PdfName):
            continue
        parm = resolve(parms[index]) if index < len(parms) else None
        pairs.append((FILTER_ALIASES.get(str(name), str(name)), parm if isinstance(parm, dict) else {}))
    return pairs


def decode_stream(stream: PdfStream, resolve: Callable[[Any], Any] = _identity) -> bytes:
    """Apply the stream's filter chain to its raw bytes."""

    data = stream.raw
    for name, parms in stream_filters(stream, resolve):
        data = apply_filter(name, data, {key: resolve(value) for key, value in parms.items()})
    return data


def apply_filter(name: str, data: bytes, parms: dict[str, Any] | None = None) -> bytes:
    parms = parms or {}
    if name == "FlateDecode":
        return _flate_decode(data, parms)
    if name == "LZWDecode":
        return _lzw_decode(data, parms)
    decoder = _DECODERS.get(name)
    if decoder is not None:
        try:
            return decoder.decode(data)
        except _DECODE_ERRORS as exc:
            raise MalformedSyntaxError(f"Invalid {name} data: {exc}") from exc
    if name == "Crypt":
        # Decryption already happened when the stream was loaded.
        return data
    if name in _IMAGE_FILTERS:
        raise UnsupportedFilterError(f"{name} is an image codec", filter_name=name)
    raise UnsupportedFilterError(filter_name=name)


def _pypdf_parms(parms: dict[str, Any]) -> DictionaryObject:
    """Convert resolved decode parms to the ``/Name`` keyed form pypdf reads."""

    converted = DictionaryObject()
    for key, value in parms.items():
        if isinstance(value, bool):
            converted[NameObject(f"/{key}")] = BooleanObject(value)
        elif isinstance(value, int):
            converted[NameObject(f"/{key}")] = NumberObject(value)
        elif isinstance(value, float):
            converted[NameObject(f"/{key}")] = FloatObject(value)
    return converted


def _check_predictor(parms: dict[str, Any]) -> int:
    predictor = as_int(parms.get("Predictor"), 1) or 1
    if predictor not in (1, 2) and not 10 <= predictor <= 15:
        raise UnsupportedFilterError(f"Unknown predictor {predictor}", filter_name="Predictor")
    return predictor


def _flate_decode(data: bytes, parms: dict[str, Any]) -> bytes:
    _check_predictor(parms)
    try:
        decoded = FlateDecode.decode(data, _pypdf_parms(parms))
    except _DECODE_ERRORS as exc:
        raise MalformedSyntaxError(f"Flate decompression failed: {exc}") from exc
    if decoded or not data:
        return decoded
    # pypdf keeps whatever inflated before a corrupt tail; nothing at all
    # usually means a raw deflate stream without the zlib header.
    try:
        decoded = zlib.decompressobj(-zlib.MAX_WBITS).decompress(data)
    except zlib.error:
        decoded = b""
    if not decoded:
        _LOGGER.warning("Flate data of %d bytes produced no output", len(data))
        raise MalformedSyntaxError("Flate decompression failed")
    return decoded


def _lzw_decode(data: bytes, parms: dict[str, Any]) -> bytes:
    predictor = _check_predictor(parms)
    if as_int(parms.get("EarlyChange"), 1) == 0:
        _LOGGER.warning("LZW EarlyChange 0 is not supported; decoding with early change")
    try:
        decoded = LZWDecode.decode(data)
        if predictor == 1:
            return decoded
        if predictor == 2:
            _LOGGER.warning("TIFF predictor after LZWDecode is not supported; data left as is")
            return decoded
        # pypdf applies predictors for Flate only, so reuse its PNG row decoder.
        columns, colors, bits = FlateDecode._get_parameters(_pypdf_parms(parms))
        row_length = math.ceil(columns * colors * bits / 8) + 1
        return FlateDecode._decode_png_prediction(decoded, columns, row_length)
    except _DECODE_ERRORS as exc:
        raise MalformedSyntaxError(f"Invalid LZWDecode data: {exc}") from exc
