"""
Per-page raster cache.

Holds at most one thumbnail and one full-page raster per page. Lookups are a
pure key match on the transform that produced the raster, so a lookup made
with the current rotation/scale either returns a fresh entry or misses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Dict, Optional, Tuple


class RasterKind(str, Enum):
    THUMBNAIL = "thumbnail"
    FULL_PAGE = "full_page"


@dataclass(frozen=True)
class RasterImage:
    data: bytes  # encoded PNG
    width: int
    height: int


@dataclass(frozen=True)
class RasterEntry:
    page_index: int
    kind: RasterKind
    produced_from_rotation: int
    produced_from_scale: float
    image: RasterImage

    def matches(self, rotation: int, scale: Optional[float] = None) -> bool:
        if self.produced_from_rotation != rotation:
            return False
        return scale is None or self.produced_from_scale == scale


class RasterCache:
    """Thread-safe latest-wins store keyed by (page_index, kind)."""

    def __init__(self) -> None:
        self._entries: Dict[Tuple[int, RasterKind], RasterEntry] = {}
        self._lock = Lock()

    def get_thumbnail(self, page_index: int, rotation: int) -> Optional[RasterEntry]:
        entry = self.peek(page_index, RasterKind.THUMBNAIL)
        if entry is None or not entry.matches(rotation):
            return None
        return entry

    def get_full_page(self, page_index: int, rotation: int, scale: float) -> Optional[RasterEntry]:
        entry = self.peek(page_index, RasterKind.FULL_PAGE)
        if entry is None or not entry.matches(rotation, scale):
            return None
        return entry

    def get(self, page_index: int, kind: RasterKind, rotation: int, scale: float) -> Optional[RasterEntry]:
        if kind is RasterKind.THUMBNAIL:
            return self.get_thumbnail(page_index, rotation)
        return self.get_full_page(page_index, rotation, scale)

    def peek(self, page_index: int, kind: RasterKind) -> Optional[RasterEntry]:
        """Return the latest entry for the key whatever transform produced it."""
        with self._lock:
            return self._entries.get((page_index, kind))

    def put(self, entry: RasterEntry) -> None:
        with self._lock:
            self._entries[(entry.page_index, entry.kind)] = entry

    def invalidate(self, page_index: int) -> None:
        with self._lock:
            for kind in RasterKind:
                self._entries.pop((page_index, kind), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            thumbnails = sum(1 for _, kind in self._entries if kind is RasterKind.THUMBNAIL)
            total_bytes = sum(len(entry.image.data) for entry in self._entries.values())
            return {
                "thumbnails": thumbnails,
                "full_pages": len(self._entries) - thumbnails,
                "bytes": total_bytes,
            }
