"""
Export: rebuild an output PDF from the original bytes and per-page rotation.

Pages are copied verbatim from the source document (no re-rasterization),
then their /Rotate entry is set to the absolute rotation held in the
TransformState. Any rotation embedded in the source is overwritten, not
composed with.
"""

from __future__ import annotations

import asyncio
import logging

import pymupdf

from .document_loader import MUPDF_LOCK, Document
from .errors import ExportError, ExportErrorKind
from .transform_state import TransformState

logger = logging.getLogger(__name__)


def _build(source: bytes, page_count: int, rotation: tuple[int, ...]) -> bytes:
    # MUPDF_LOCK is held per page, never across the whole export
    with MUPDF_LOCK:
        try:
            src = pymupdf.open(stream=source, filetype="pdf")
        except (pymupdf.FileDataError, RuntimeError, ValueError) as exc:
            raise ExportError(ExportErrorKind.SOURCE_UNAVAILABLE, f"Source bytes no longer decode: {exc}") from exc
        source_pages = src.page_count
        out = pymupdf.open()

    try:
        if source_pages != page_count:
            raise ExportError(
                ExportErrorKind.SOURCE_UNAVAILABLE,
                f"Source has {source_pages} page(s), document expects {page_count}",
            )
        for page_index in range(page_count):
            with MUPDF_LOCK:
                try:
                    out.insert_pdf(src, from_page=page_index, to_page=page_index)
                    out[page_index].set_rotation(rotation[page_index])
                except Exception as exc:  # noqa: BLE001
                    raise ExportError(ExportErrorKind.COPY_FAILED, f"Page {page_index} failed to copy: {exc}") from exc
        with MUPDF_LOCK:
            return out.tobytes()
    finally:
        with MUPDF_LOCK:
            out.close()
            src.close()


async def build_export(document: Document, state: TransformState) -> bytes:
    """
    Produce output PDF bytes for a document under a transform snapshot.

    Args:
        document: Loaded document; its original bytes must still be retained
        state: TransformState snapshot whose rotation is written to each page

    Returns:
        The output PDF as bytes, same page count and order as the input

    Raises:
        ExportError: SOURCE_UNAVAILABLE if the original bytes are gone,
            COPY_FAILED if a page cannot be copied
    """
    source = document.source
    if source is None:
        logger.error(f"Export of document {document.id} failed: source bytes not retained")
        raise ExportError(ExportErrorKind.SOURCE_UNAVAILABLE, "Original document bytes are not retained")
    if state.page_count != document.page_count:
        raise ExportError(
            ExportErrorKind.SOURCE_UNAVAILABLE,
            f"Transform state covers {state.page_count} page(s), document has {document.page_count}",
        )

    try:
        data = await asyncio.to_thread(_build, source, document.page_count, state.rotation)
    except ExportError as exc:
        logger.error(f"Export of document {document.id} failed: {exc}")
        raise
    logger.info(f"Exported document {document.id}: {document.page_count} page(s), {len(data)} bytes")
    return data
