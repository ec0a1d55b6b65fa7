"""Glyph names and single-byte base encodings."""

from __future__ import annotations

import re

from pypdf._codecs import adobe_glyphs, charset_encoding

__all__ = ["glyph_name_to_unicode", "base_encoding"]

_UNI = re.compile(r"uni((?:[0-9A-F]{4})+)\Z")
_U = re.compile(r"u([0-9A-F]{4,6})\Z")


def _code_point(value: int) -> str | None:
    if 0 <= value <= 0x10FFFF and not 0xD800 <= value <= 0xDFFF:
        return chr(value)
    return None


def glyph_name_to_unicode(name: str) -> str | None:
    """Map an Adobe glyph name to text.

    Understands the Adobe Glyph List, ``uniXXXX`` / ``uXXXX[XX]`` names,
    suffixed variants such as ``a.sc`` and ligatures written ``f_f_i``.
    """

    if not name:
        return None
    name = name.lstrip("/")
    known = adobe_glyphs.get(f"/{name}")
    if known:
        return known
    base = name.split(".", 1)[0]
    if not base:
        return None
    if base != name:
        known = adobe_glyphs.get(f"/{base}")
        if known:
            return known
    if "_" in base:
        parts = [glyph_name_to_unicode(part) for part in base.split("_")]
        if all(parts):
            return "".join(parts)  # type: ignore[arg-type]
        return None
    match = _UNI.match(base)
    if match:
        digits = match.group(1)
        chars = [_code_point(int(digits[i : i + 4], 16)) for i in range(0, len(digits), 4)]
        if all(chars):
            return "".join(chars)  # type: ignore[arg-type]
        return None
    match = _U.match(base)
    if match:
        return _code_point(int(match.group(1), 16))
    return None


def base_encoding(name: str) -> list[str] | None:
    """256-entry code → text table for a named encoding, or ``None``."""

    table = charset_encoding.get(f"/{name}")
    if table is None:
        return None
    return list(table)
