from __future__ import annotations

import pytest

from pdftextx.core.lexer import Lexer, TokenKind
from pdftextx.core.objects import as_int, as_number
from pdftextx.exceptions import MalformedSyntaxError


def _values(data: bytes) -> list[tuple[TokenKind, object]]:
    return [(token.kind, token.value) for token in Lexer(data)]


def test_lexer_reads_numbers_names_and_keywords():
    tokens = _values(b"12 -3 +4 3.5 -.25 4. /Type obj true")

    assert tokens == [
        (TokenKind.INTEGER, 12),
        (TokenKind.INTEGER, -3),
        (TokenKind.INTEGER, 4),
        (TokenKind.REAL, 3.5),
        (TokenKind.REAL, -0.25),
        (TokenKind.REAL, 4.0),
        (TokenKind.NAME, "Type"),
        (TokenKind.KEYWORD, "obj"),
        (TokenKind.KEYWORD, "true"),
    ]


def test_lexer_reads_doubled_sign_as_negative():
    assert _values(b"--7") == [(TokenKind.INTEGER, -7)]


def test_lexer_skips_comments_and_all_whitespace():
    data = b"% header comment\r\n1\x00\t2\f%another\n3"

    assert [value for _, value in _values(data)] == [1, 2, 3]


def test_literal_string_escapes_and_nesting():
    token = next(iter(Lexer(rb"(a\(b\) (nested) \101\7 tab\there\
joined\q)")))

    assert token.kind is TokenKind.STRING
    assert token.value == b"a(b) (nested) A\x07 tab\therejoinedq"


def test_literal_string_normalises_end_of_line():
    assert next(iter(Lexer(b"(one\r\ntwo\rthree)"))).value == b"one\ntwo\nthree"


def test_hex_string_ignores_whitespace_and_pads_odd_digit():
    token = next(iter(Lexer(b"<48 65 6c 6C 6>")))

    assert token.kind is TokenKind.HEX_STRING
    assert token.value == b"Hell`"


def test_name_hex_escapes():
    assert _values(b"/A#20B /Lime#23Green") == [
        (TokenKind.NAME, "A B"),
        (TokenKind.NAME, "Lime#Green"),
    ]


def test_delimiter_tokens():
    kinds = [kind for kind, _ in _values(b"<< [ ] >> { }")]

    assert kinds == [
        TokenKind.DICT_OPEN,
        TokenKind.ARRAY_OPEN,
        TokenKind.ARRAY_CLOSE,
        TokenKind.DICT_CLOSE,
        TokenKind.PROC_OPEN,
        TokenKind.PROC_CLOSE,
    ]


def test_invalid_hex_digit_raises_with_position():
    lexer = Lexer(b"  <4G>")

    with pytest.raises(MalformedSyntaxError) as excinfo:
        lexer.next_token()

    assert excinfo.value.position == 4
    assert lexer.position == 2


def test_stray_closing_delimiters_raise():
    with pytest.raises(MalformedSyntaxError):
        Lexer(b")").next_token()
    with pytest.raises(MalformedSyntaxError):
        Lexer(b"> 1").next_token()


def test_resync_moves_past_bad_byte():
    lexer = Lexer(b") 42")
    with pytest.raises(MalformedSyntaxError):
        lexer.next_token()

    lexer.resync()

    token = lexer.next_token()
    assert token is not None and token.value == 42


def test_peek_does_not_consume():
    lexer = Lexer(b"1 2")

    assert lexer.peek_token().value == 1
    assert lexer.next_token().value == 1
    assert lexer.next_token().value == 2
    assert lexer.next_token() is None


def test_numbers_too_large_for_a_float_read_as_missing():
    values = [value for _, value in _values(b"9" * 5000 + b" " + b"9" * 400 + b".5 -" + b"9" * 400)]

    assert len(values) == 3
    assert [as_number(value, 0.0) for value in values] == [0.0, 0.0, 0.0]
    assert as_int(values[1]) is None
