"""Tests for the multi-threaded tile scheduler.

Tests cover:
- Tile partitioning (coverage, row-major order, clipped edge tiles)
- Progress callbacks
- Identical output for any thread count
- Retry and failure handling for tiles whose worker raises
- Out-of-memory aborts
- The module-level render() entry point
"""

import logging
import threading

import numpy as np
import pytest

from voltrace.config import RenderConfig
from voltrace.core.framebuffer import Framebuffer
from voltrace.core.scheduler import TileScheduler, partition_tiles, render
from voltrace.scene.cornell_box import create_cornell_smoke_scene


def small_config(**kwargs):
    params = dict(width=12, height=12, samples_per_pixel=2, tile_size=4, thread_count=2, seed=42)
    params.update(kwargs)
    return RenderConfig(**params)


class FlakyScheduler(TileScheduler):
    """Scheduler whose workers raise for selected tiles."""

    def __init__(self, config, fail_times, error=RuntimeError):
        super().__init__(config)
        self.fail_times = dict(fail_times)
        self.error = error
        self.calls = {}
        self._lock = threading.Lock()

    def _render_tile(self, scene, camera, tile):
        with self._lock:
            self.calls[tile.index] = self.calls.get(tile.index, 0) + 1
            remaining = self.fail_times.get(tile.index, 0)
            if remaining:
                self.fail_times[tile.index] = remaining - 1
        if remaining:
            raise self.error(f"tile {tile.index} exploded")
        return super()._render_tile(scene, camera, tile)


class TestPartitionTiles:
    """Tests for partition_tiles."""

    def test_exact_cover(self):
        """Test tiles cover every pixel exactly once."""
        tiles = partition_tiles(10, 7, 4)
        coverage = np.zeros((7, 10), dtype=int)
        for tile in tiles:
            coverage[tile.y0 : tile.y1, tile.x0 : tile.x1] += 1
        np.testing.assert_array_equal(coverage, 1)

    def test_row_major_order(self):
        """Test tiles are indexed left to right, top to bottom."""
        tiles = partition_tiles(10, 7, 4)
        assert len(tiles) == 6
        assert [t.index for t in tiles] == list(range(6))
        assert [(t.x0, t.y0) for t in tiles[:4]] == [(0, 0), (4, 0), (8, 0), (0, 4)]

    def test_edge_tiles_clipped(self):
        """Test right and bottom tiles are clipped to the image."""
        last = partition_tiles(10, 7, 4)[-1]
        assert (last.x1, last.y1) == (10, 7)
        assert (last.width, last.height) == (2, 3)

    def test_tile_larger_than_image(self):
        """Test a single tile covers a small image."""
        tiles = partition_tiles(3, 2, 64)
        assert len(tiles) == 1
        assert tiles[0].pixel_count == 6

    @pytest.mark.parametrize("args", [(0, 4, 4), (4, -1, 4), (4, 4, 0)])
    def test_invalid(self, args):
        """Test non-positive sizes are rejected."""
        with pytest.raises(ValueError):
            partition_tiles(*args)


class TestRendering:
    """Tests for complete renders."""

    def test_every_pixel_sampled(self, unit_sphere_scene, front_camera):
        """Test the framebuffer receives spp samples per pixel."""
        framebuffer = TileScheduler(small_config()).render(unit_sphere_scene, front_camera)
        np.testing.assert_array_equal(framebuffer.sample_count, 2)
        assert framebuffer.failed_tiles == []
        assert np.all(np.isfinite(framebuffer.get_image_numpy()))

    def test_progress_callback(self, unit_sphere_scene, front_camera):
        """Test the callback reports every tile once, ending at the total."""
        calls = []
        TileScheduler(small_config()).render(
            unit_sphere_scene, front_camera, callback=lambda done, total: calls.append((done, total))
        )
        assert [done for done, _ in calls] == list(range(1, 10))
        assert all(total == 9 for _, total in calls)

    def test_thread_count_does_not_change_image(self):
        """Test 1 and 8 threads produce the same image for the same seed."""
        manager, camera, _ = create_cornell_smoke_scene()
        scene = manager.build()
        config = dict(width=16, height=16, samples_per_pixel=2, tile_size=4, max_depth=6, seed=42)
        single = TileScheduler(RenderConfig(thread_count=1, **config)).render(scene, camera)
        many = TileScheduler(RenderConfig(thread_count=8, **config)).render(scene, camera)
        diff = np.abs(single.get_image_numpy() - many.get_image_numpy()).max()
        assert diff < 1e-4

    def test_framebuffer_written_by_caller(self, unit_sphere_scene, front_camera, monkeypatch):
        """Test finished tiles are written from the thread that called render."""
        writers = []
        original = Framebuffer.write_tile

        def recording_write(self, tile, radiance_sum, sample_count):
            writers.append(threading.current_thread())
            original(self, tile, radiance_sum, sample_count)

        monkeypatch.setattr(Framebuffer, "write_tile", recording_write)
        TileScheduler(small_config(thread_count=4)).render(unit_sphere_scene, front_camera)
        assert len(writers) == 9
        assert set(writers) == {threading.current_thread()}

    def test_automatic_thread_count(self, unit_sphere_scene, front_camera):
        """Test thread_count 0 renders with one worker per CPU."""
        framebuffer = TileScheduler(small_config(thread_count=0)).render(unit_sphere_scene, front_camera)
        np.testing.assert_array_equal(framebuffer.sample_count, 2)

    def test_seed_changes_image(self, unit_sphere_scene, front_camera):
        """Test different seeds give different noise."""
        a = TileScheduler(small_config(seed=1)).render(unit_sphere_scene, front_camera)
        b = TileScheduler(small_config(seed=2)).render(unit_sphere_scene, front_camera)
        assert not np.allclose(a.get_image_numpy(), b.get_image_numpy())

    def test_render_function(self, unit_sphere_scene, front_camera):
        """Test the functional entry point forwards options to the config."""
        framebuffer = render(
            unit_sphere_scene, front_camera, (8, 6), samples_per_pixel=1, thread_count=2, tile_size=4
        )
        assert (framebuffer.width, framebuffer.height) == (8, 6)
        assert framebuffer.total_samples == 48

    def test_render_function_rejects_bad_options(self, unit_sphere_scene, front_camera):
        """Test invalid options raise before rendering."""
        with pytest.raises(ValueError, match="tile_size"):
            render(unit_sphere_scene, front_camera, (8, 8), 1, 1, tile_size=0)


class TestFailureHandling:
    """Tests for worker exceptions."""

    def test_retry_succeeds(self, unit_sphere_scene, front_camera, caplog):
        """Test a tile failing once is retried and rendered."""
        scheduler = FlakyScheduler(small_config(), {4: 1})
        with caplog.at_level(logging.WARNING, logger="voltrace.core.scheduler"):
            framebuffer = scheduler.render(unit_sphere_scene, front_camera)
        assert scheduler.calls[4] == 2
        assert framebuffer.failed_tiles == []
        np.testing.assert_array_equal(framebuffer.sample_count, 2)
        assert "retrying" in caplog.text

    def test_failed_tile_recorded(self, unit_sphere_scene, front_camera, caplog):
        """Test a tile failing every attempt is recorded and left empty."""
        scheduler = FlakyScheduler(small_config(max_tile_retries=1), {0: 10})
        calls = []
        with caplog.at_level(logging.ERROR, logger="voltrace.core.scheduler"):
            framebuffer = scheduler.render(
                unit_sphere_scene, front_camera, callback=lambda done, total: calls.append(done)
            )
        assert scheduler.calls[0] == 2
        assert len(framebuffer.failed_tiles) == 1
        failure = framebuffer.failed_tiles[0]
        assert failure.tile.index == 0
        assert failure.attempts == 2
        assert "exploded" in failure.error
        np.testing.assert_array_equal(framebuffer.sample_count[0:4, 0:4], 0)
        np.testing.assert_array_equal(framebuffer.sample_count[4:, :], 2)
        assert calls[-1] == 9
        assert "failed after 2 attempts" in caplog.text

    def test_no_retries(self, unit_sphere_scene, front_camera):
        """Test max_tile_retries=0 records the first failure."""
        scheduler = FlakyScheduler(small_config(max_tile_retries=0), {3: 1})
        framebuffer = scheduler.render(unit_sphere_scene, front_camera)
        assert scheduler.calls[3] == 1
        assert [f.tile.index for f in framebuffer.failed_tiles] == [3]

    def test_memory_error_aborts(self, unit_sphere_scene, front_camera):
        """Test running out of memory aborts the render."""
        scheduler = FlakyScheduler(small_config(thread_count=1), {0: 1}, error=MemoryError)
        with pytest.raises(MemoryError):
            scheduler.render(unit_sphere_scene, front_camera)
