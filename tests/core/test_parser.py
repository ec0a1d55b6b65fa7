from __future__ import annotations

import pytest

from pdftextx.core.objects import PdfKeyword, PdfName, PdfRef, PdfStream, PdfString
from pdftextx.core.parser import ContentStreamParser, ObjectParser
from pdftextx.exceptions import MalformedSyntaxError


def test_parse_nested_containers_and_references():
    value = ObjectParser(b"<< /Kids [3 0 R 4 0 R] /Count 2 /Nested << /Flag true /None null >> >>").parse_object()

    assert value == {
        "Kids": [PdfRef(3, 0), PdfRef(4, 0)],
        "Count": 2,
        "Nested": {"Flag": True, "None": None},
    }
    assert isinstance(next(iter(value)), PdfName)


def test_integers_without_r_are_not_references():
    assert ObjectParser(b"[1 2 3]").parse_object() == [1, 2, 3]
    assert ObjectParser(b"[1 0 R 5]").parse_object() == [PdfRef(1, 0), 5]


def test_references_can_be_disabled():
    assert ObjectParser(b"[1 0 R]", allow_references=False).parse_object() == [1, 0, PdfKeyword("R")]


def test_strings_become_pdf_strings():
    value = ObjectParser(b"[(abc) <616263>]").parse_object()

    assert value == [b"abc", b"abc"]
    assert all(isinstance(item, PdfString) for item in value)


def test_unterminated_array_stops_at_endobj():
    parser = ObjectParser(b"1 0 obj [1 2 endobj")

    ref, value = parser.parse_indirect_object()

    assert ref == PdfRef(1, 0)
    assert value == [1, 2]


def test_garbage_inside_dictionary_is_skipped():
    value = ObjectParser(b"<< /A 1 ) /B 2 >>").parse_object()

    assert value == {"A": 1, "B": 2}


def test_deep_nesting_is_cut_off():
    data = b"[" * 300 + b"]" * 300

    # Arrays past the depth limit are dropped.
    value = ObjectParser(data).parse_object()

    depth = 0
    while isinstance(value, list) and value:
        value = value[0]
        depth += 1
    assert depth < 300


def test_empty_input_raises():
    with pytest.raises(MalformedSyntaxError):
        ObjectParser(b"   ").parse_object()


def test_indirect_object_header_is_required():
    with pytest.raises(MalformedSyntaxError):
        ObjectParser(b"<< /A 1 >>").parse_indirect_object()


def test_stream_uses_declared_length():
    data = b"7 0 obj\n<< /Length 5 >>\nstream\nHello\nendstream\nendobj\n"

    ref, value = ObjectParser(data).parse_indirect_object(PdfRef(7, 0))

    assert ref == PdfRef(7, 0)
    assert isinstance(value, PdfStream)
    assert value.raw == b"Hello"
    assert value.get("Length") == 5


def test_stream_with_wrong_length_falls_back_to_endstream():
    data = b"7 0 obj\n<< /Length 99 >>\nstream\r\nHello world\r\nendstream\nendobj\n"

    _, value = ObjectParser(data).parse_indirect_object()

    assert value.raw == b"Hello world"


def test_stream_with_indirect_length_uses_resolver():
    data = b"7 0 obj\n<< /Length 8 0 R >>\nstream\nabcdef\nendstream\nendobj\n"
    calls = []

    def resolver(ref):
        calls.append(ref)
        return 3

    _, value = ObjectParser(data, resolver=resolver).parse_indirect_object()

    assert calls == [PdfRef(8, 0)]
    # Length 3 is not followed by endstream, so the marker wins.
    assert value.raw == b"abcdef"


def test_content_stream_operations():
    data = b"BT /F1 12 Tf 72 700 Td [(A) -250 (B)] TJ (x) ' ET"

    operations = list(ContentStreamParser(data).operations())

    assert operations == [
        ([], "BT"),
        ([PdfName("F1"), 12], "Tf"),
        ([72, 700], "Td"),
        ([[b"A", -250, b"B"]], "TJ"),
        ([b"x"], "'"),
        ([], "ET"),
    ]


def test_content_stream_inline_image_is_one_operation():
    data = b"q BI /W 2 /H 1 /CS /G /BPC 8 ID \x00\xff EI Q"

    operations = list(ContentStreamParser(data).operations())

    assert [operator for _, operator in operations] == ["q", "BI", "Q"]
    image, payload = operations[1][0]
    assert image["W"] == 2
    assert payload.startswith(b"\x00\xff")


def test_content_stream_skips_malformed_tokens():
    operations = list(ContentStreamParser(b"1 0 0 1 0 0 cm ) (ok) Tj").operations())

    assert operations[-1] == ([b"ok"], "Tj")
