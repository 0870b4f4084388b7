"""
Tests for loading PDF bytes into Documents.
"""

import asyncio

import pymupdf
import pytest

from pdf_viewer_backend.document_loader import load_document
from pdf_viewer_backend.errors import LoadError, LoadErrorKind


class TestLoadSuccess:
    """Tests for loading valid PDFs."""

    def test_page_count_and_handles(self, load, sample_pdf):
        """Pages should be indexed in order with their sizes."""
        document = load(sample_pdf)

        assert document.page_count == 3
        assert [page.index for page in document.pages] == [0, 1, 2]
        assert document.page(1).width == pytest.approx(612)
        assert document.source == sample_pdf

    def test_embedded_rotation_is_reported(self, load, pdf_factory):
        """Each page's /Rotate should be reported."""
        document = load(pdf_factory(2, rotations=[90, 0]))
        assert document.page(0).embedded_rotation == 90
        assert document.page(1).embedded_rotation == 0

    def test_source_can_be_dropped(self, load, sample_pdf):
        """Source bytes should be dropped when not retained."""
        assert load(sample_pdf, retain_source=False).source is None

    def test_each_load_gets_its_own_id(self, load, sample_pdf):
        """Loading the same bytes twice should give two ids."""
        assert load(sample_pdf).id != load(sample_pdf).id

    def test_page_out_of_range(self, load, sample_pdf):
        """Asking for a page past the end should raise IndexError."""
        with pytest.raises(IndexError):
            load(sample_pdf).page(3)

    def test_close_is_idempotent(self, sample_pdf):
        """Closing twice should be harmless and disable the handle."""
        document = asyncio.run(load_document(sample_pdf))
        document.close()
        document.close()
        assert document.closed
        with pytest.raises(RuntimeError):
            document.handle


class TestLoadErrors:
    """Tests for load error classification."""

    def test_empty_bytes(self):
        """Empty input should be EMPTY."""
        with pytest.raises(LoadError) as exc_info:
            asyncio.run(load_document(b""))
        assert exc_info.value.kind is LoadErrorKind.EMPTY

    def test_garbage_bytes(self):
        """Bytes that are not a PDF should be MALFORMED."""
        with pytest.raises(LoadError) as exc_info:
            asyncio.run(load_document(b"this is definitely not a pdf"))
        assert exc_info.value.kind is LoadErrorKind.MALFORMED

    def test_encrypted_pdf_is_unsupported(self):
        """A password-protected PDF should be UNSUPPORTED."""
        doc = pymupdf.open()
        doc.new_page()
        data = doc.tobytes(encryption=pymupdf.PDF_ENCRYPT_AES_256, owner_pw="owner", user_pw="user")
        doc.close()

        with pytest.raises(LoadError) as exc_info:
            asyncio.run(load_document(data))
        assert exc_info.value.kind is LoadErrorKind.UNSUPPORTED
