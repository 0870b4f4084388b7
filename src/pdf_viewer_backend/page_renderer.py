from __future__ import annotations

from abc import ABC, abstractmethod

import pymupdf

from .document_loader import MUPDF_LOCK, Document
from .errors import RenderError, RenderErrorKind
from .raster_cache import RasterImage


class PageRenderer(ABC):
    """
    Render primitive driven by the render scheduler.

    Renderers must:
    - Rasterize exactly one page at the requested viewport (scale + rotation)
    - Be safe to call from worker threads
    - Raise RenderError for failures they can classify; anything else is
      reported by the scheduler as DECODE_FAILED
    """

    @abstractmethod
    def render(self, document: Document, page_index: int, rotation: int, scale: float) -> RasterImage:
        raise NotImplementedError


class PymupdfPageRenderer(PageRenderer):
    def render(self, document: Document, page_index: int, rotation: int, scale: float) -> RasterImage:
        if page_index < 0 or page_index >= document.page_count:
            raise RenderError(
                RenderErrorKind.SURFACE_UNAVAILABLE,
                f"No page {page_index} in document {document.id}",
                page_index=page_index,
            )

        with MUPDF_LOCK:
            if document.closed:
                raise RenderError(
                    RenderErrorKind.SURFACE_UNAVAILABLE,
                    f"Document {document.id} was closed before page {page_index} rendered",
                    page_index=page_index,
                )
            try:
                page = document.handle.load_page(page_index)
                # get_pixmap applies the embedded /Rotate; rotation here is absolute
                matrix = pymupdf.Matrix(scale, scale).prerotate(rotation - page.rotation)
                pixmap = page.get_pixmap(matrix=matrix, alpha=False)
                data = pixmap.tobytes("png")
            except (pymupdf.FileDataError, RuntimeError, ValueError) as exc:
                raise RenderError(
                    RenderErrorKind.DECODE_FAILED,
                    f"Page {page_index} failed to render: {exc}",
                    page_index=page_index,
                ) from exc

        return RasterImage(data=data, width=pixmap.width, height=pixmap.height)
