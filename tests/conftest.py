from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence
import sys

import pytest
from pypdf import PdfWriter

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

HELVETICA = b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>"


def _stream(data: bytes, extra: bytes = b"") -> bytes:
    return b"<< /Length %d %s>>\nstream\n" % (len(data), extra) + data + b"\nendstream"


def _assemble(
    objects: Sequence[bytes],
    *,
    root: int = 1,
    trailer_extra: bytes = b"",
    with_xref: bool = True,
) -> bytes:
    """Lay out ``objects`` as objects 1..n with a matching xref table."""

    out = bytearray(b"%PDF-1.7\n%\xe2\xe3\xcf\xd3\n")
    offsets = []
    for num, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % num + body + b"\nendobj\n"
    if not with_xref:
        out += b"%%EOF\n"
        return bytes(out)
    startxref = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root %d 0 R %s>>\n" % (len(objects) + 1, root, trailer_extra)
    out += b"startxref\n%d\n%%%%EOF\n" % startxref
    return bytes(out)


def _text_document(
    contents: Sequence[bytes],
    *,
    font: bytes = HELVETICA,
    resources: bytes = b"",
    extra_objects: Sequence[bytes] = (),
    stream_extras: dict[int, bytes] | None = None,
    with_xref: bool = True,
) -> bytes:
    """One page per entry of ``contents``; the font is object 3 (/F1).

    ``stream_extras`` adds dictionary entries to the content stream of the
    page at that index. ``extra_objects`` are numbered after the pages,
    starting at ``4 + 2 * len(contents)``.
    """

    kids = b" ".join(b"%d 0 R" % (4 + 2 * index) for index in range(len(contents)))
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [%s] /Count %d /MediaBox [0 0 612 792] >>" % (kids, len(contents)),
        font,
    ]
    for index, content in enumerate(contents):
        objects.append(
            b"<< /Type /Page /Parent 2 0 R /Resources << /Font << /F1 3 0 R >> %s>> /Contents %d 0 R >>"
            % (resources, 5 + 2 * index)
        )
        objects.append(_stream(content, (stream_extras or {}).get(index, b"")))
    objects.extend(extra_objects)
    return _assemble(objects, with_xref=with_xref)


@pytest.fixture()
def make_stream() -> Callable[..., bytes]:
    return _stream


@pytest.fixture()
def make_pdf() -> Callable[..., bytes]:
    return _assemble


@pytest.fixture()
def text_pdf() -> Callable[..., bytes]:
    return _text_document


@pytest.fixture()
def hello_pdf() -> bytes:
    return _text_document([b"BT /F1 12 Tf 72 720 Td (Hello) Tj ET"])


@pytest.fixture()
def three_page_pdf() -> bytes:
    return _text_document(
        [
            b"BT /F1 12 Tf 72 720 Td (Page one) Tj ET",
            b"BT /F1 12 Tf 72 720 Td (Page two) Tj ET",
            b"BT /F1 12 Tf 72 720 Td (Page three) Tj ET",
        ]
    )


@pytest.fixture()
def sample_pdf(tmp_path: Path) -> Path:
    pdf_path = tmp_path / "sample.pdf"
    writer = PdfWriter()
    for _ in range(5):
        writer.add_blank_page(width=200, height=200)
    writer.add_metadata({"/Producer": "pdftextx-tests", "/Title": "Sample"})
    with pdf_path.open("wb") as stream:
        writer.write(stream)
    return pdf_path


@pytest.fixture()
def pdf_file(tmp_path: Path) -> Callable[[bytes, str], Path]:
    def _create(data: bytes, filename: str = "document.pdf") -> Path:
        path = tmp_path / filename
        path.write_bytes(data)
        return path

    return _create
