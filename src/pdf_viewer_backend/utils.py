"""
Filename helpers for uploads, downloads and saved documents.
"""

from __future__ import annotations

import re

# Runs of characters outside [a-zA-Z0-9._-] collapse to one hyphen
UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]+")

PDF_EXTENSION = ".pdf"
PDF_CONTENT_TYPE = "application/pdf"


def pdf_filename(label: str, fallback: str = "document") -> str:
    """
    Build a download/upload filename from a document id or label.

    Example:
        >>> pdf_filename("Q3 Report!")
        "q3-report.pdf"
        >>> pdf_filename("report.pdf")
        "report.pdf"
    """
    stem = label.strip()
    if stem.lower().endswith(PDF_EXTENSION):
        stem = stem[: -len(PDF_EXTENSION)]
    stem = UNSAFE_FILENAME_CHARS.sub("-", stem).strip("-_.").lower()
    return f"{stem or fallback}{PDF_EXTENSION}"


def looks_like_pdf_upload(filename: str | None, content_type: str | None) -> bool:
    if not filename:
        return False
    return filename.lower().endswith(PDF_EXTENSION) or (content_type or "") == PDF_CONTENT_TYPE
