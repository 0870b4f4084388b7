"""
Tests for filename helpers.
"""

from pdf_viewer_backend.utils import looks_like_pdf_upload, pdf_filename


class TestPdfFilename:
    """Tests for output filenames."""

    def test_sanitizes_label(self):
        """Unsafe characters should collapse to hyphens."""
        assert pdf_filename("Q3 Report!") == "q3-report.pdf"

    def test_keeps_single_extension(self):
        """An existing .pdf extension should not be doubled."""
        assert pdf_filename("Report.PDF") == "report.pdf"

    def test_falls_back_when_nothing_survives(self):
        """An empty result should use the fallback."""
        assert pdf_filename("@#$") == "document.pdf"


class TestLooksLikePdfUpload:
    """Tests for upload type checks."""

    def test_extension_or_content_type(self):
        """Either the extension or the content type should qualify."""
        assert looks_like_pdf_upload("scan.pdf", "application/octet-stream")
        assert looks_like_pdf_upload("scan", "application/pdf")
        assert not looks_like_pdf_upload("notes.txt", "text/plain")
        assert not looks_like_pdf_upload(None, "application/pdf")
