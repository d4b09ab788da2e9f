import base64

import fitz
import pytest

from core.page_renderer import PdfPageRenderer
from model.job import SourceDocument
from util.errors import PreparationError


@pytest.fixture
def two_page_pdf(tmp_path):
    path = tmp_path / "sheet.pdf"
    doc = fitz.open()
    for n in (1, 2):
        page = doc.new_page()
        page.insert_text((72, 72), f"Answer {n}: photosynthesis needs light")
    doc.save(str(path))
    doc.close()
    return str(path)


def test_renders_every_page_as_jpeg(two_page_pdf):
    renderer = PdfPageRenderer(scale=1.0, max_width=400, jpeg_quality=70)
    pages = renderer.prepare(SourceDocument(filename="sheet.pdf", path=two_page_pdf))

    assert [p.page for p in pages] == [1, 2]
    assert all(p.media_type == "image/jpeg" for p in pages)
    assert base64.b64decode(pages[0].data).startswith(b"\xff\xd8")


def test_width_is_capped(two_page_pdf):
    renderer = PdfPageRenderer(scale=4.0, max_width=300)
    page = renderer.prepare(SourceDocument(filename="sheet.pdf", path=two_page_pdf))[0]

    pix = fitz.Pixmap(base64.b64decode(page.data))
    assert pix.width <= 301


def test_page_count(two_page_pdf):
    assert PdfPageRenderer().page_count(two_page_pdf) == 2


def test_unreadable_file(tmp_path):
    junk = tmp_path / "junk.pdf"
    junk.write_bytes(b"not a pdf at all")
    renderer = PdfPageRenderer()

    with pytest.raises(PreparationError) as err:
        renderer.prepare(SourceDocument(filename="junk.pdf", path=str(junk)))
    assert "junk.pdf" in err.value.message
    assert err.value.status_code == 422
    assert renderer.page_count(str(junk)) is None
    assert renderer.page_count(str(tmp_path / "missing.pdf")) is None
