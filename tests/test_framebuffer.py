"""Tests for tiles and the accumulation framebuffer."""

import numpy as np
import pytest

from voltrace.core.framebuffer import Framebuffer, Tile, TileFailure


class TestTile:
    """Tests for tile geometry."""

    def test_dimensions(self):
        """Test width, height and pixel count."""
        tile = Tile(index=3, x0=4, y0=2, x1=7, y1=4)
        assert (tile.width, tile.height, tile.pixel_count) == (3, 2, 6)

    def test_pixel_coords_row_major(self):
        """Test pixel coordinates run along rows first."""
        xs, ys = Tile(index=0, x0=1, y0=5, x1=3, y1=7).pixel_coords()
        assert xs.tolist() == [1, 2, 1, 2]
        assert ys.tolist() == [5, 5, 6, 6]


class TestFramebuffer:
    """Tests for the framebuffer."""

    def test_invalid_size(self):
        """Test non-positive sizes are rejected."""
        with pytest.raises(ValueError, match="positive"):
            Framebuffer(0, 4)

    def test_write_tile_and_mean(self):
        """Test tile writes land in place and the image is the per-pixel mean."""
        fb = Framebuffer(4, 3)
        tile = Tile(index=0, x0=2, y0=1, x1=4, y1=3)
        fb.write_tile(tile, np.full((2, 2, 3), 6.0), np.full((2, 2), 3, dtype=np.int64))
        image = fb.get_image_numpy()
        assert image.shape == (3, 4, 3)
        np.testing.assert_allclose(image[1:3, 2:4], 2.0)
        np.testing.assert_allclose(image[0], 0.0)
        assert fb.total_samples == 12

    def test_shape_mismatch(self):
        """Test buffers not matching the tile are rejected."""
        fb = Framebuffer(4, 4)
        with pytest.raises(ValueError, match="does not match"):
            fb.write_tile(Tile(0, 0, 0, 2, 2), np.zeros((3, 2, 3)), np.zeros((3, 2), dtype=np.int64))

    def test_record_failure_and_clear(self):
        """Test failures are recorded and clear resets everything."""
        fb = Framebuffer(2, 2)
        tile = Tile(0, 0, 0, 2, 2)
        fb.write_tile(tile, np.ones((2, 2, 3)), np.ones((2, 2), dtype=np.int64))
        fb.record_failure(TileFailure(tile, attempts=2, error="RuntimeError('boom')"))
        assert len(fb.failed_tiles) == 1
        fb.clear()
        assert fb.total_samples == 0
        assert fb.failed_tiles == []
        np.testing.assert_allclose(fb.radiance_sum, 0.0)
