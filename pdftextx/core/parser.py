"""Assemble lexer tokens into PDF objects.

:class:`ObjectParser` builds values, indirect objects and streams from the
document buffer. :class:`ContentStreamParser` reuses the same machinery to
turn a decoded content stream into ``(operands, operator)`` pairs.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator

from ..exceptions import MalformedSyntaxError, PDFTextXError
from .lexer import WHITESPACE, Lexer, Token, TokenKind
from .objects import PdfKeyword, PdfName, PdfRef, PdfStream, PdfString, as_int

__all__ = ["ObjectParser", "ContentStreamParser", "Resolver"]

_LOGGER = logging.getLogger(__name__)

Resolver = Callable[[PdfRef], Any]

_MAX_DEPTH = 256
_CONSTANTS = {"true": True, "false": False, "null": None}
# Keywords that can never appear inside a container; seeing one means the
# container was left unterminated.
_TERMINATORS = frozenset({"endobj", "stream", "endstream", "obj", "xref", "trailer", "startxref"})


class ObjectParser:
    """Parse PDF objects starting at ``position`` in ``data``.

    ``resolver`` is only used to look up an indirect ``/Length`` of a
    stream; references are otherwise returned as :class:`PdfRef` and never
    followed here.
    """

    def __init__(
        self,
        data: bytes,
        position: int = 0,
        *,
        resolver: Resolver | None = None,
        allow_references: bool = True,
    ) -> None:
        self.data = data
        self.lexer = Lexer(data, position)
        self.resolver = resolver
        self.allow_references = allow_references

    @property
    def position(self) -> int:
        return self.lexer.position

    @position.setter
    def position(self, value: int) -> None:
        self.lexer.position = value

    # -- Values --------------------------------------------------------------

    def parse_object(self) -> Any:
        token = self.lexer.next_token()
        if token is None:
            raise MalformedSyntaxError("Unexpected end of data", position=self.position)
        return self._build(token, 0)

    def _build(self, token: Token, depth: int) -> Any:
        kind = token.kind
        if kind is TokenKind.INTEGER:
            if self.allow_references:
                ref = self._maybe_reference(token)
                if ref is not None:
                    return ref
            return token.value
        if kind is TokenKind.REAL:
            return token.value
        if kind is TokenKind.STRING or kind is TokenKind.HEX_STRING:
            return PdfString(token.value)
        if kind is TokenKind.NAME:
            return PdfName(token.value)
        if kind is TokenKind.KEYWORD:
            if token.value in _CONSTANTS:
                return _CONSTANTS[token.value]
            return PdfKeyword(token.value)
        if depth >= _MAX_DEPTH:
            raise MalformedSyntaxError("Objects nested too deeply", position=token.start)
        if kind is TokenKind.ARRAY_OPEN:
            return self._parse_array(depth + 1)
        if kind is TokenKind.DICT_OPEN:
            return self._parse_dictionary(depth + 1)
        if kind is TokenKind.PROC_OPEN:
            return self._parse_array(depth + 1, closer=TokenKind.PROC_CLOSE)
        raise MalformedSyntaxError(f"Unexpected {kind.value!r}", position=token.start)

    def _maybe_reference(self, first: Token) -> PdfRef | None:
        lexer = self.lexer
        saved = lexer.position
        try:
            second = lexer.next_token()
            if second is not None and second.kind is TokenKind.INTEGER and second.value >= 0:
                third = lexer.next_token()
                if third is not None and third.is_keyword("R") and first.value >= 0:
                    return PdfRef(first.value, second.value)
        except MalformedSyntaxError:
            pass
        lexer.position = saved
        return None

    def _next_in_container(self) -> Token | None:
        """Next token inside an array or dictionary, skipping garbage bytes."""

        while True:
            try:
                return self.lexer.next_token()
            except MalformedSyntaxError as exc:
                _LOGGER.debug("Skipping malformed token at offset %s: %s", exc.position, exc)
                self.lexer.resync()

    def _parse_array(self, depth: int, closer: TokenKind = TokenKind.ARRAY_CLOSE) -> list[Any]:
        items: list[Any] = []
        while True:
            token = self._next_in_container()
            if token is None:
                _LOGGER.debug("Unterminated array at end of data")
                return items
            if token.kind is closer:
                return items
            if token.kind is TokenKind.KEYWORD and token.value in _TERMINATORS:
                self.lexer.position = token.start
                _LOGGER.debug("Unterminated array before '%s' at offset %d", token.value, token.start)
                return items
            try:
                items.append(self._build(token, depth))
            except MalformedSyntaxError as exc:
                _LOGGER.debug("Dropping array item at offset %d: %s", token.start, exc)

    def _parse_dictionary(self, depth: int) -> dict[str, Any]:
        result: dict[str, Any] = {}
        while True:
            token = self._next_in_container()
            if token is None:
                _LOGGER.debug("Unterminated dictionary at end of data")
                return result
            if token.kind is TokenKind.DICT_CLOSE:
                return result
            if token.kind is TokenKind.KEYWORD and token.value in _TERMINATORS:
                self.lexer.position = token.start
                _LOGGER.debug("Unterminated dictionary before '%s' at offset %d", token.value, token.start)
                return result
            if token.kind is not TokenKind.NAME:
                _LOGGER.debug("Ignoring non-name dictionary key at offset %d", token.start)
                continue
            key = PdfName(token.value)
            value_token = self._next_in_container()
            if value_token is None:
                result[key] = None
                return result
            if value_token.kind is TokenKind.DICT_CLOSE:
                result[key] = None
                return result
            if value_token.kind is TokenKind.KEYWORD and value_token.value in _TERMINATORS:
                self.lexer.position = value_token.start
                result[key] = None
                return result
            try:
                result[key] = self._build(value_token, depth)
            except MalformedSyntaxError as exc:
                _LOGGER.debug("Dropping value of /%s: %s", key, exc)

    # -- Indirect objects ------------------------------------------------------

    def parse_indirect_object(self, expected: PdfRef | None = None) -> tuple[PdfRef, Any]:
        """Parse ``num gen obj <value> endobj`` at the current position."""

        lexer = self.lexer
        start = lexer.skip_whitespace()
        header = [lexer.next_token() for _ in range(3)]
        num_tok, gen_tok, obj_tok = header
        if (
            num_tok is None
            or gen_tok is None
            or obj_tok is None
            or num_tok.kind is not TokenKind.INTEGER
            or gen_tok.kind is not TokenKind.INTEGER
            or not obj_tok.is_keyword("obj")
        ):
            raise MalformedSyntaxError("Expected an indirect object header", position=start)
        ref = PdfRef(num_tok.value, gen_tok.value)
        if expected is not None and ref.num != expected.num:
            raise MalformedSyntaxError(
                f"Found object {ref} where {expected} was expected", position=start
            )

        following = lexer.peek_token()
        if following is None or following.is_keyword("endobj"):
            value: Any = None
        else:
            value = self.parse_object()

        saved = lexer.position
        try:
            token = lexer.next_token()
        except MalformedSyntaxError:
            token = None
        if isinstance(value, dict) and token is not None and token.is_keyword("stream"):
            value = self._read_stream(value, token.end, ref)
            saved = lexer.position
            try:
                token = lexer.next_token()
            except MalformedSyntaxError:
                token = None
        if token is None or not token.is_keyword("endobj"):
            lexer.position = saved
        return ref, value

    def _read_stream(self, dictionary: dict[str, Any], keyword_end: int, ref: PdfRef) -> PdfStream:
        data = self.data
        index = keyword_end
        while data[index : index + 1] == b" ":
            index += 1
        if data[index : index + 2] == b"\r\n":
            index += 2
        elif data[index : index + 1] in (b"\n", b"\r"):
            index += 1
        start = index

        end: int | None = None
        length = self._stream_length(dictionary)
        if length is not None and 0 <= length and start + length <= len(data):
            cursor = start + length
            while cursor < len(data) and data[cursor] in WHITESPACE:
                cursor += 1
            if data.startswith(b"endstream", cursor):
                end = start + length
        if end is None:
            found = data.find(b"endstream", start)
            if found == -1:
                _LOGGER.debug("Stream %s has no endstream keyword", ref)
                end = len(data)
            else:
                end = found
                if data[end - 2 : end] == b"\r\n":
                    end -= 2
                elif data[end - 1 : end] in (b"\n", b"\r"):
                    end -= 1
                _LOGGER.debug("Stream %s length %s did not match; using endstream marker", ref, length)
            end = max(end, start)

        marker = data.find(b"endstream", end)
        self.lexer.position = len(data) if marker == -1 else marker + len(b"endstream")
        return PdfStream(dictionary, data[start:end], ref)

    def _stream_length(self, dictionary: dict[str, Any]) -> int | None:
        value = dictionary.get("Length")
        if isinstance(value, PdfRef):
            if self.resolver is None:
                return None
            try:
                value = self.resolver(value)
            except PDFTextXError as exc:
                _LOGGER.debug("Could not resolve stream length %s: %s", value, exc)
                return None
        return as_int(value)


class ContentStreamParser:
    """Split a decoded content stream into ``(operands, operator)`` pairs.

    Inline images are returned as a single ``BI`` operation whose operands
    are the image dictionary and its raw data.
    """

    def __init__(self, data: bytes) -> None:
        self.data = data
        self._objects = ObjectParser(data, allow_references=False)

    def operations(self) -> Iterator[tuple[list[Any], str]]:
        lexer = self._objects.lexer
        operands: list[Any] = []
        while True:
            try:
                token = lexer.next_token()
            except MalformedSyntaxError as exc:
                _LOGGER.debug("Skipping malformed content token at offset %s", exc.position)
                lexer.resync()
                continue
            if token is None:
                return
            if token.kind is TokenKind.KEYWORD and token.value not in _CONSTANTS:
                if token.value == "BI":
                    yield list(self._read_inline_image()), "BI"
                    operands = []
                    continue
                yield operands, token.value
                operands = []
                continue
            try:
                operands.append(self._objects._build(token, 0))
            except MalformedSyntaxError as exc:
                _LOGGER.debug("Dropping malformed operand at offset %d: %s", token.start, exc)

    def _read_inline_image(self) -> tuple[dict[str, Any], bytes]:
        lexer = self._objects.lexer
        data = self.data
        image: dict[str, Any] = {}
        while True:
            try:
                token = lexer.next_token()
            except MalformedSyntaxError:
                lexer.resync()
                continue
            if token is None:
                return image, b""
            if token.is_keyword("ID"):
                break
            if token.kind is TokenKind.NAME:
                try:
                    image[PdfName(token.value)] = self._objects.parse_object()
                except MalformedSyntaxError:
                    lexer.resync()
        start = lexer.position + 1
        search = start
        while True:
            found = data.find(b"EI", search)
            if found == -1:
                lexer.position = len(data)
                return image, data[start:]
            before_ok = found == 0 or data[found - 1] in WHITESPACE
            after = found + 2
            after_ok = after >= len(data) or data[after] in WHITESPACE
            if before_ok and after_ok:
                lexer.position = after
                end = found - 1 if found > start else found
                return image, data[start:end]
            search = found + 1
