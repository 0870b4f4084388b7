"""
Document loading: raw PDF bytes to an in-memory Document handle.

Decoding runs in a worker thread so the event loop is never blocked by
MuPDF. PyMuPDF is not thread-safe, so every call into it (here, in the page
renderer and in the export builder) is serialized through MUPDF_LOCK.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import threading
from dataclasses import dataclass, field
from typing import Optional
from uuid import uuid4

import pymupdf

from .errors import LoadError, LoadErrorKind

logger = logging.getLogger(__name__)

MUPDF_LOCK = threading.RLock()


@dataclass(frozen=True)
class PageHandle:
    """
    Immutable reference to one page of a loaded document.

    Attributes:
        index: 0-based page index
        width: Page width in PDF points (unrotated)
        height: Page height in PDF points (unrotated)
        embedded_rotation: /Rotate value found in the source bytes; informational
            only, the viewer tracks rotation in TransformState
    """

    index: int
    width: float
    height: float
    embedded_rotation: int = 0


@dataclass(eq=False)
class Document:
    """
    A decoded PDF owned by a single viewer session.

    The original bytes are retained (unless released) because the export
    builder copies page content from them rather than from the decode state.
    """

    id: str
    pages: tuple[PageHandle, ...]
    source: Optional[bytes]
    _handle: pymupdf.Document = field(repr=False)
    closed: bool = False

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def handle(self) -> pymupdf.Document:
        if self.closed:
            raise RuntimeError(f"Document {self.id} is closed")
        return self._handle

    def page(self, index: int) -> PageHandle:
        if index < 0 or index >= self.page_count:
            raise IndexError(f"Page out of range: {index} (0..{self.page_count - 1})")
        return self.pages[index]

    def close(self) -> None:
        if self.closed:
            return
        with MUPDF_LOCK:
            self._handle.close()
        self.closed = True
        logger.debug(f"Closed document {self.id}")


def make_document_id(data: bytes) -> str:
    # Content hash plus a random suffix: reloading the same bytes yields a new id
    return hashlib.sha256(data).hexdigest()[:12] + uuid4().hex[:4]


def _decode(data: bytes, retain_source: bool) -> Document:
    if not data:
        raise LoadError(LoadErrorKind.EMPTY, "Document contains no bytes")

    with MUPDF_LOCK:
        try:
            handle = pymupdf.open(stream=data, filetype="pdf")
        except (pymupdf.FileDataError, RuntimeError, ValueError) as exc:
            raise LoadError(LoadErrorKind.MALFORMED, f"Bytes do not parse as a PDF: {exc}") from exc

        if not handle.is_pdf or handle.needs_pass:
            handle.close()
            raise LoadError(LoadErrorKind.UNSUPPORTED, "Document is not a plain, unencrypted PDF")

        if handle.page_count == 0:
            handle.close()
            raise LoadError(LoadErrorKind.EMPTY, "Document has no pages")

        try:
            pages = tuple(
                PageHandle(
                    index=page.number,
                    width=float(page.rect.width),
                    height=float(page.rect.height),
                    embedded_rotation=int(page.rotation or 0),
                )
                for page in handle
            )
        except (pymupdf.FileDataError, RuntimeError, ValueError) as exc:
            handle.close()
            raise LoadError(LoadErrorKind.MALFORMED, f"Page tree could not be read: {exc}") from exc

    return Document(
        id=make_document_id(data),
        pages=pages,
        source=bytes(data) if retain_source else None,
        _handle=handle,
    )


async def load_document(data: bytes, *, retain_source: bool = True) -> Document:
    """
    Decode raw PDF bytes into a Document.

    Args:
        data: Raw document bytes
        retain_source: Keep the original bytes on the Document (required for export)

    Returns:
        Document with page_count >= 1

    Raises:
        LoadError: MALFORMED, UNSUPPORTED or EMPTY
    """
    try:
        document = await asyncio.to_thread(_decode, data, retain_source)
    except LoadError as exc:
        logger.error(f"Document load failed: {exc}")
        raise
    logger.info(f"Loaded document {document.id} with {document.page_count} page(s)")
    return document
