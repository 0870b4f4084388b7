"""
Error taxonomy for the viewer pipeline.

Each failure family is a single exception class carrying a ``kind`` enum so
callers can branch on the cause without string matching:

- LoadError: raw bytes could not be turned into a Document
- RenderError: one page raster could not be produced (non-fatal)
- ExportError: the output document could not be rebuilt
- NetworkError: the persistence gateway could not be reached or refused

All of them derive from ViewerError so the HTTP layer can catch the family
in one place.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class LoadErrorKind(str, Enum):
    MALFORMED = "malformed"
    UNSUPPORTED = "unsupported"
    EMPTY = "empty"


class RenderErrorKind(str, Enum):
    SURFACE_UNAVAILABLE = "surface_unavailable"
    DECODE_FAILED = "decode_failed"
    TIMEOUT = "timeout"


class ExportErrorKind(str, Enum):
    SOURCE_UNAVAILABLE = "source_unavailable"
    COPY_FAILED = "copy_failed"


class NetworkErrorKind(str, Enum):
    UNREACHABLE = "unreachable"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"


class ViewerError(Exception):
    """Base class for every error raised by the viewer pipeline."""

    def __init__(self, kind: Enum, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class LoadError(ViewerError):
    """Raised when document bytes do not decode into a usable document."""

    kind: LoadErrorKind


class RenderError(ViewerError):
    """Raised (or reported) when a single page raster cannot be produced."""

    kind: RenderErrorKind

    def __init__(self, kind: RenderErrorKind, message: str, page_index: Optional[int] = None) -> None:
        super().__init__(kind, message)
        self.page_index = page_index


class ExportError(ViewerError):
    """Raised when the output document cannot be rebuilt."""

    kind: ExportErrorKind


class NetworkError(ViewerError):
    """Raised when the persistence gateway transfer fails."""

    kind: NetworkErrorKind

    def __init__(self, kind: NetworkErrorKind, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(kind, message)
        self.status_code = status_code
