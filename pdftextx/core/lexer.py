"""Byte-level tokenizer for PDF syntax.

The lexer works directly on the document buffer and never copies it. It
knows nothing about objects: the parser in :mod:`pdftextx.core.parser`
assembles tokens into values.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import re
from typing import Iterator

from ..exceptions import MalformedSyntaxError

__all__ = ["TokenKind", "Token", "Lexer", "WHITESPACE", "DELIMITERS", "is_regular"]

_LOGGER = logging.getLogger(__name__)

WHITESPACE = b"\x00\t\n\r\f "
DELIMITERS = b"()<>[]{}/%"

_IS_WHITESPACE = [False] * 256
_IS_DELIMITER = [False] * 256
for _byte in WHITESPACE:
    _IS_WHITESPACE[_byte] = True
for _byte in DELIMITERS:
    _IS_DELIMITER[_byte] = True

_HEX_DIGITS = b"0123456789abcdefABCDEF"
_NUMBER = re.compile(rb"[+-]*(\d+\.?\d*|\.\d+)\Z")
_ESCAPES = {
    ord("n"): b"\n",
    ord("r"): b"\r",
    ord("t"): b"\t",
    ord("b"): b"\b",
    ord("f"): b"\f",
    ord("("): b"(",
    ord(")"): b")",
    ord("\\"): b"\\",
}


def is_regular(byte: int) -> bool:
    return not (_IS_WHITESPACE[byte] or _IS_DELIMITER[byte])


class TokenKind(Enum):
    INTEGER = "integer"
    REAL = "real"
    STRING = "string"
    HEX_STRING = "hex_string"
    NAME = "name"
    ARRAY_OPEN = "["
    ARRAY_CLOSE = "]"
    DICT_OPEN = "<<"
    DICT_CLOSE = ">>"
    PROC_OPEN = "{"
    PROC_CLOSE = "}"
    KEYWORD = "keyword"


@dataclass(slots=True)
class Token:
    kind: TokenKind
    value: object
    start: int
    end: int

    def is_keyword(self, word: str) -> bool:
        return self.kind is TokenKind.KEYWORD and self.value == word


class Lexer:
    """Sequential tokenizer over a byte buffer.

    ``position`` can be read and assigned freely; the parser uses that to
    look ahead for ``n g R`` and to jump over stream payloads.
    """

    def __init__(self, data: bytes, position: int = 0) -> None:
        self.data = data
        self.position = position

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self.next_token()
            if token is None:
                return
            yield token

    # -- Whitespace ----------------------------------------------------------

    def skip_whitespace(self) -> int:
        """Skip whitespace and comments, returning the new position."""

        data = self.data
        length = len(data)
        index = self.position
        while index < length:
            byte = data[index]
            if _IS_WHITESPACE[byte]:
                index += 1
            elif byte == 0x25:  # %
                while index < length and data[index] not in (0x0A, 0x0D):
                    index += 1
            else:
                break
        self.position = index
        return index

    def resync(self) -> None:
        """Advance past the offending byte to the next token boundary."""

        data = self.data
        index = self.position + 1
        while index < len(data) and is_regular(data[index]):
            index += 1
        self.position = index

    # -- Tokens --------------------------------------------------------------

    def peek_token(self) -> Token | None:
        saved = self.position
        try:
            return self.next_token()
        finally:
            self.position = saved

    def next_token(self) -> Token | None:
        """Return the next token or ``None`` at end of data.

        Raises :class:`MalformedSyntaxError` when the byte at the current
        position starts no valid token; the position is left on that byte so
        the caller can decide to :meth:`resync`.
        """

        data = self.data
        start = self.skip_whitespace()
        if start >= len(data):
            return None
        byte = data[start]

        if byte == 0x2F:  # /
            return self._read_name(start)
        if byte == 0x28:  # (
            return self._read_literal_string(start)
        if byte == 0x3C:  # <
            if data[start + 1 : start + 2] == b"<":
                self.position = start + 2
                return Token(TokenKind.DICT_OPEN, "<<", start, start + 2)
            return self._read_hex_string(start)
        if byte == 0x3E:  # >
            if data[start + 1 : start + 2] == b">":
                self.position = start + 2
                return Token(TokenKind.DICT_CLOSE, ">>", start, start + 2)
            raise MalformedSyntaxError("Unexpected '>'", position=start)
        if byte == 0x5B:
            self.position = start + 1
            return Token(TokenKind.ARRAY_OPEN, "[", start, start + 1)
        if byte == 0x5D:
            self.position = start + 1
            return Token(TokenKind.ARRAY_CLOSE, "]", start, start + 1)
        if byte == 0x7B:
            self.position = start + 1
            return Token(TokenKind.PROC_OPEN, "{", start, start + 1)
        if byte == 0x7D:
            self.position = start + 1
            return Token(TokenKind.PROC_CLOSE, "}", start, start + 1)
        if byte == 0x29:
            raise MalformedSyntaxError("Unbalanced ')'", position=start)
        return self._read_regular(start)

    def _read_regular(self, start: int) -> Token:
        data = self.data
        index = start
        while index < len(data) and is_regular(data[index]):
            index += 1
        self.position = index
        raw = data[start:index]
        if _NUMBER.match(raw):
            return Token(*_number_token(raw), start, index)
        return Token(TokenKind.KEYWORD, raw.decode("latin-1"), start, index)

    def _read_name(self, start: int) -> Token:
        data = self.data
        index = start + 1
        out = bytearray()
        while index < len(data) and is_regular(data[index]):
            byte = data[index]
            if byte == 0x23:  # #xx escape
                digits = data[index + 1 : index + 3]
                if len(digits) == 2 and all(d in _HEX_DIGITS for d in digits):
                    out.append(int(digits, 16))
                    index += 3
                    continue
            out.append(byte)
            index += 1
        self.position = index
        try:
            name = out.decode("utf-8")
        except UnicodeDecodeError:
            name = out.decode("latin-1")
        return Token(TokenKind.NAME, name, start, index)

    def _read_literal_string(self, start: int) -> Token:
        data = self.data
        length = len(data)
        index = start + 1
        depth = 1
        out = bytearray()
        while index < length:
            byte = data[index]
            if byte == 0x5C:  # backslash
                index += 1
                if index >= length:
                    break
                escaped = data[index]
                if escaped in _ESCAPES:
                    out += _ESCAPES[escaped]
                    index += 1
                elif 0x30 <= escaped <= 0x37:
                    end = index
                    while end < length and end - index < 3 and 0x30 <= data[end] <= 0x37:
                        end += 1
                    out.append(int(data[index:end], 8) & 0xFF)
                    index = end
                elif escaped == 0x0D:
                    index += 1
                    if index < length and data[index] == 0x0A:
                        index += 1
                elif escaped == 0x0A:
                    index += 1
                else:
                    # Unknown escapes keep the character and drop the backslash.
                    out.append(escaped)
                    index += 1
                continue
            if byte == 0x28:
                depth += 1
            elif byte == 0x29:
                depth -= 1
                if depth == 0:
                    index += 1
                    break
            elif byte == 0x0D:
                out.append(0x0A)
                index += 1
                if index < length and data[index] == 0x0A:
                    index += 1
                continue
            out.append(byte)
            index += 1
        else:
            _LOGGER.debug("Unterminated literal string at offset %d", start)
        self.position = index
        return Token(TokenKind.STRING, bytes(out), start, index)

    def _read_hex_string(self, start: int) -> Token:
        data = self.data
        index = start + 1
        digits = bytearray()
        while index < len(data):
            byte = data[index]
            if byte == 0x3E:
                index += 1
                break
            if _IS_WHITESPACE[byte]:
                index += 1
                continue
            if byte not in _HEX_DIGITS:
                self.position = start
                raise MalformedSyntaxError(
                    f"Invalid hex digit {bytes([byte])!r} in hex string", position=index
                )
            digits.append(byte)
            index += 1
        if len(digits) % 2:
            digits.append(0x30)
        self.position = index
        return Token(TokenKind.HEX_STRING, bytes.fromhex(digits.decode("ascii")), start, index)


def _number_token(raw: bytes) -> tuple[TokenKind, int | float]:
    body = raw.lstrip(b"+-")
    # Doubled signs such as "--5" are read as a single minus.
    negative = b"-" in raw[: len(raw) - len(body)]
    if b"." in body:
        value: int | float = float(body)
        kind = TokenKind.REAL
    else:
        try:
            value = int(body)
            kind = TokenKind.INTEGER
        except ValueError:
            # Past the interpreter's digit limit; as_number() rejects the inf.
            value = float(body)
            kind = TokenKind.REAL
    return kind, -value if negative else value
