import io

import pytesseract
from PIL import Image
from pypdf.errors import PdfReadError

from assistant_core.domain.exceptions import ExtractionError, UnsupportedFormat
from assistant_core.extraction import text_extractor
from assistant_core.extraction.text_extractor import TextExtractor


def _png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (40, 20), "white").save(buf, format="PNG")
    return buf.getvalue()


class FakePage:
    def __init__(self, text=None, error=None):
        self._text = text
        self._error = error

    def extract_text(self):
        if self._error:
            raise self._error
        return self._text


def test_unsupported_mime_type_yields_empty_text():
    extractor = TextExtractor()
    assert extractor.extract(b"hello", "text/plain") == ""
    text, error = extractor.extract_with_status(b"hello", "application/zip")
    assert text == ""
    assert isinstance(error, UnsupportedFormat)
    assert error.code == "UNSUPPORTED_FORMAT"


def test_image_goes_through_ocr(monkeypatch):
    calls = []

    def fake_ocr(image, lang=None):
        calls.append((image.size, lang))
        return "mur porte"

    monkeypatch.setattr(pytesseract, "image_to_string", fake_ocr)
    extractor = TextExtractor(ocr_language="fra")
    assert extractor.extract(_png_bytes(), "image/png") == "mur porte"
    assert calls == [((40, 20), "fra")]


def test_ocr_failure_degrades_to_empty_text(monkeypatch):
    def broken_ocr(image, lang=None):
        raise pytesseract.TesseractError(1, "engine crashed")

    monkeypatch.setattr(pytesseract, "image_to_string", broken_ocr)
    text, error = TextExtractor().extract_with_status(_png_bytes(), "image/jpeg")
    assert text == ""
    assert isinstance(error, ExtractionError)
    assert error.code == "OCR_ERROR"


def test_unreadable_image_degrades_to_empty_text():
    text, error = TextExtractor().extract_with_status(b"not an image", "image/png")
    assert text == ""
    assert error.code == "OCR_ERROR"


def test_pdf_pages_joined_and_bad_page_skipped(monkeypatch):
    class FakeReader:
        def __init__(self, stream):
            assert stream.read() == b"%PDF-fake"
            self.pages = [FakePage("mur"), FakePage(error=KeyError("/Contents")), FakePage("porte")]

    monkeypatch.setattr(text_extractor, "PdfReader", FakeReader)
    text, error = TextExtractor().extract_with_status(b"%PDF-fake", "application/pdf")
    assert error is None
    assert text == "mur  porte"


def test_pdf_that_cannot_be_opened(monkeypatch):
    class BrokenReader:
        def __init__(self, stream):
            raise PdfReadError("EOF marker not found")

    monkeypatch.setattr(text_extractor, "PdfReader", BrokenReader)
    text, error = TextExtractor().extract_with_status(b"garbage", "application/pdf; version=1.7")
    assert text == ""
    assert error.code == "PDF_READ_ERROR"


def test_broken_pdf_page_tree_is_soft_error(monkeypatch):
    class BrokenTree:
        def __init__(self, stream):
            pass

        @property
        def pages(self):
            raise KeyError("/Kids")

    monkeypatch.setattr(text_extractor, "PdfReader", BrokenTree)
    text, error = TextExtractor().extract_with_status(b"%PDF-1.4", "application/pdf")
    assert text == ""
    assert error.code == "PDF_READ_ERROR"


def test_decompression_bomb_is_soft_error(monkeypatch):
    def bomb(fp, *a, **kw):
        raise Image.DecompressionBombError("image too large")

    monkeypatch.setattr(Image, "open", bomb)
    text, error = TextExtractor().extract_with_status(_png_bytes(), "image/png")
    assert text == ""
    assert error.code == "OCR_ERROR"
