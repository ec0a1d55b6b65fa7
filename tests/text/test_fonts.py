from __future__ import annotations

import pytest

from pdftextx.core.document import Document
from pdftextx.core.objects import PdfRef
from pdftextx.text.fonts import CompositeFont, FontLoader, SimpleFont

TO_UNICODE = b"""begincmap
1 begincodespacerange <0000> <FFFF> endcodespacerange
2 beginbfchar <0001> <0048> <0002> <0069> endbfchar
endcmap"""


@pytest.fixture()
def fonts(make_pdf, make_stream) -> FontLoader:
    data = make_pdf(
        [
            b"<< /Type /Catalog /Pages 2 0 R >>",
            b"<< /Type /Pages /Kids [] /Count 0 >>",
            # 3: simple font with WinAnsi and widths
            b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding"
            b" /FirstChar 32 /Widths [278 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 667] >>",
            # 4: differences on top of a base encoding
            b"<< /Type /Font /Subtype /Type1 /BaseFont /Custom /Encoding"
            b" << /BaseEncoding /WinAnsiEncoding /Differences [65 /B /A 200 /uni20AC /T_h /bogusname] >> >>",
            # 5: composite font with ToUnicode
            b"<< /Type /Font /Subtype /Type0 /BaseFont /ABCDEF+NotoSans /Encoding /Identity-H"
            b" /DescendantFonts [6 0 R] /ToUnicode 7 0 R >>",
            b"<< /Type /Font /Subtype /CIDFontType2 /BaseFont /ABCDEF+NotoSans /DW 500 /W [1 [600 700] 10 20 250] >>",
            make_stream(TO_UNICODE),
            # 8: composite font without ToUnicode
            b"<< /Type /Font /Subtype /Type0 /BaseFont /Bare /Encoding /Identity-H /DescendantFonts [6 0 R] >>",
            # 9: Type3 font with its own glyph space
            b"<< /Type /Font /Subtype /Type3 /FontMatrix [0.01 0 0 0.01 0 0] /FirstChar 65 /Widths [50]"
            b" /Encoding << /Differences [65 /A] >> >>",
            # 10: unknown encoding name
            b"<< /Type /Font /Subtype /Type1 /BaseFont /Odd /Encoding /FooEncoding >>",
            # 11: symbol font
            b"<< /Type /Font /Subtype /Type1 /BaseFont /Symbol >>",
        ]
    )
    return FontLoader(Document(data))


def _text(font, data: bytes) -> str:
    return "".join(char.text for char in font.decode(data))


def test_simple_font_uses_base_encoding_and_widths(fonts):
    font = fonts.load(PdfRef(3, 0))

    assert isinstance(font, SimpleFont)
    assert font.name == "Helvetica"
    assert _text(font, b"Caf\xe9") == "Café"
    chars = font.decode(b" A")
    assert chars[0].is_space and chars[0].width == pytest.approx(0.278)
    assert chars[1].width == pytest.approx(0.667)


def test_fonts_without_widths_use_default_advance(fonts):
    font = fonts.load(PdfRef(4, 0))

    assert font.decode(b"x")[0].width == pytest.approx(0.5)


def test_differences_override_base_encoding(fonts):
    font = fonts.load(PdfRef(4, 0))

    assert _text(font, b"AB") == "BA"
    assert _text(font, b"\xc8\xc9") == "€Th"
    assert _text(font, b"\xca") == "�"
    assert _text(font, b"\xe9") == "é"


def test_composite_font_maps_through_to_unicode(fonts):
    font = fonts.load(PdfRef(5, 0))

    assert isinstance(font, CompositeFont)
    assert font.name == "NotoSans"
    chars = font.decode(b"\x00\x01\x00\x02\x00\x0f")
    assert [char.text for char in chars] == ["H", "i", "�"]
    assert [char.width for char in chars] == pytest.approx([0.6, 0.7, 0.25])
    assert not font.vertical


def test_composite_font_without_to_unicode_yields_placeholders(fonts):
    font = fonts.load(PdfRef(8, 0))

    assert _text(font, b"\x00\x01\x00\x02") == "��"
    assert font.decode(b"\x00\x05")[0].width == pytest.approx(0.5)


def test_custom_placeholder(make_pdf):
    data = make_pdf(
        [
            b"<< /Type /Catalog /Pages 2 0 R >>",
            b"<< /Type /Pages /Kids [] /Count 0 >>",
            b"<< /Type /Font /Subtype /Type0 /Encoding /Identity-H /DescendantFonts [] >>",
        ]
    )
    font = FontLoader(Document(data), placeholder="?").load(PdfRef(3, 0))

    assert _text(font, b"\x00\x01") == "?"


def test_type3_widths_use_font_matrix(fonts):
    font = fonts.load(PdfRef(9, 0))

    char = font.decode(b"A")[0]
    assert char.text == "A"
    assert char.width == pytest.approx(0.5)


def test_unknown_encoding_falls_back_to_default(fonts):
    assert _text(fonts.load(PdfRef(10, 0)), b"Hi") == "Hi"


def test_symbol_font_uses_builtin_encoding(fonts):
    assert _text(fonts.load(PdfRef(11, 0)), b"a") == "α"


def test_missing_font_falls_back_to_standard_encoding(fonts):
    font = fonts.load(PdfRef(99, 0))

    assert isinstance(font, SimpleFont)
    assert _text(font, b"Hello") == "Hello"


def test_fonts_are_cached_by_reference(fonts):
    assert fonts.load(PdfRef(3, 0)) is fonts.load(PdfRef(3, 0))


def test_describe_reports_name_subtype_and_encoding(fonts):
    simple = fonts.describe("F1", PdfRef(3, 0), 1)
    differences = fonts.describe("F2", PdfRef(4, 0), 1)
    composite = fonts.describe("F3", PdfRef(5, 0), 2)
    type3 = fonts.describe("F4", PdfRef(9, 0), 2)

    assert (simple.name, simple.subtype, simple.encoding, simple.embedded) == (
        "Helvetica",
        "Type1",
        "WinAnsiEncoding",
        False,
    )
    assert simple.object_number == 3
    assert differences.encoding == "WinAnsiEncoding with Differences"
    assert (composite.name, composite.base_font, composite.encoding) == ("NotoSans", "ABCDEF+NotoSans", "Identity-H")
    assert composite.page == 2 and composite.resource_name == "F3"
    assert type3.embedded
    assert type3.name == "F4"
    assert type3.encoding == "Differences"


def test_describe_finds_embedded_font_files(make_pdf, make_stream):
    data = make_pdf(
        [
            b"<< /Type /Catalog /Pages 2 0 R >>",
            b"<< /Type /Pages /Kids [] /Count 0 >>",
            b"<< /Type /Font /Subtype /TrueType /BaseFont /XYZABC+Arial /FontDescriptor 4 0 R >>",
            b"<< /Type /FontDescriptor /FontName /XYZABC+Arial /FontFile2 5 0 R >>",
            make_stream(b"\x00\x01\x00\x00"),
            b"<< /Type /Font /Subtype /Type0 /BaseFont /Composite /Encoding /Identity-H /DescendantFonts [7 0 R] >>",
            b"<< /Type /Font /Subtype /CIDFontType2 /BaseFont /Composite /FontDescriptor 8 0 R >>",
            b"<< /Type /FontDescriptor /FontName /Composite /FontFile3 5 0 R >>",
        ]
    )
    loader = FontLoader(Document(data))

    assert loader.describe("TT", PdfRef(3, 0), 1).embedded
    assert loader.describe("T0", PdfRef(6, 0), 1).embedded


def test_describe_missing_font_keeps_the_resource_name(fonts):
    info = fonts.describe("F9", PdfRef(99, 0), 1)

    assert (info.name, info.subtype, info.encoding, info.embedded) == ("F9", "Unknown", None, False)
