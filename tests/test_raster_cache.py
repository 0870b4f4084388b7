"""
Tests for the per-page raster cache.
"""

from pdf_viewer_backend.raster_cache import RasterCache, RasterEntry, RasterImage, RasterKind


def _entry(page_index, kind, rotation=0, scale=1.0, data=b"png"):
    return RasterEntry(
        page_index=page_index,
        kind=kind,
        produced_from_rotation=rotation,
        produced_from_scale=scale,
        image=RasterImage(data=data, width=1, height=1),
    )


class TestLookup:
    """Tests for transform-keyed cache lookups."""

    def test_full_page_hit_requires_rotation_and_scale(self):
        """Full pages should match on rotation and scale."""
        cache = RasterCache()
        cache.put(_entry(0, RasterKind.FULL_PAGE, rotation=90, scale=1.5))

        assert cache.get_full_page(0, 90, 1.5) is not None
        assert cache.get_full_page(0, 0, 1.5) is None
        assert cache.get_full_page(0, 90, 1.0) is None

    def test_thumbnail_hit_ignores_scale(self):
        """Thumbnails should match on rotation alone."""
        cache = RasterCache()
        cache.put(_entry(1, RasterKind.THUMBNAIL, rotation=180, scale=0.2))

        assert cache.get_thumbnail(1, 180) is not None
        assert cache.get_thumbnail(1, 0) is None

    def test_kinds_are_independent(self):
        """Thumbnail and full-page entries should not satisfy each other."""
        cache = RasterCache()
        cache.put(_entry(0, RasterKind.THUMBNAIL))
        assert cache.get_full_page(0, 0, 1.0) is None


class TestLatestWins:
    """The cache keeps only the latest raster per page and kind."""

    def test_put_overwrites_same_key(self):
        """A new entry should replace the previous one."""
        cache = RasterCache()
        cache.put(_entry(0, RasterKind.FULL_PAGE, rotation=0, data=b"old"))
        cache.put(_entry(0, RasterKind.FULL_PAGE, rotation=90, data=b"new"))

        assert cache.get_full_page(0, 0, 1.0) is None
        assert cache.peek(0, RasterKind.FULL_PAGE).image.data == b"new"
        assert cache.stats()["full_pages"] == 1

    def test_peek_returns_stale_entry(self):
        """peek should return an entry regardless of transform."""
        cache = RasterCache()
        cache.put(_entry(2, RasterKind.FULL_PAGE, rotation=0))
        assert cache.get_full_page(2, 90, 1.0) is None
        assert cache.peek(2, RasterKind.FULL_PAGE).produced_from_rotation == 0


class TestInvalidate:
    """Tests for dropping cached rasters."""

    def test_invalidate_drops_both_kinds_for_page(self):
        """Invalidating a page should drop both of its rasters only."""
        cache = RasterCache()
        cache.put(_entry(0, RasterKind.THUMBNAIL))
        cache.put(_entry(0, RasterKind.FULL_PAGE))
        cache.put(_entry(1, RasterKind.FULL_PAGE))

        cache.invalidate(0)

        assert cache.peek(0, RasterKind.THUMBNAIL) is None
        assert cache.peek(0, RasterKind.FULL_PAGE) is None
        assert cache.peek(1, RasterKind.FULL_PAGE) is not None

    def test_clear(self):
        """clear should empty the cache and reset the stats."""
        cache = RasterCache()
        cache.put(_entry(0, RasterKind.THUMBNAIL, data=b"12345"))
        assert cache.stats() == {"thumbnails": 1, "full_pages": 0, "bytes": 5}
        cache.clear()
        assert cache.stats() == {"thumbnails": 0, "full_pages": 0, "bytes": 0}
