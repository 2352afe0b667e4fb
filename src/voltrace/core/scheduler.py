"""Multi-threaded tile scheduler.

The image is split into square tiles which are pulled by a fixed pool of
worker threads. Each worker renders a whole tile into local buffers through
`PathIntegrator.render_tile` and the scheduler writes the finished tile into
the shared framebuffer. Tiles are disjoint, so writes never overlap; since
every sample is keyed by (pixel, sample index) and summed in sample order,
the image does not depend on the number of threads.

A tile whose worker raises is retried up to `max_tile_retries` times and
then recorded as a TileFailure; only a MemoryError aborts the render.

Example:
    >>> config = RenderConfig(width=64, height=64, samples_per_pixel=4, thread_count=4)
    >>> framebuffer = TileScheduler(config).render(scene, camera)
    >>> image = framebuffer.get_image_numpy()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any

from voltrace.camera.perspective import PerspectiveCamera
from voltrace.config import RenderConfig
from voltrace.core.framebuffer import Framebuffer, Tile, TileFailure
from voltrace.core.integrator import PathIntegrator, TileResult
from voltrace.core.sampler import CMJSampler
from voltrace.scene.scene import Scene

logger = logging.getLogger(__name__)

# Type alias for progress callback
# Callback receives (tiles_done, tiles_total)
ProgressCallback = Callable[[int, int], None]

__all__ = [
    "ProgressCallback",
    "Tile",
    "TileFailure",
    "TileScheduler",
    "partition_tiles",
    "render",
]


def partition_tiles(width: int, height: int, tile_size: int) -> list[Tile]:
    """Split an image into disjoint tiles in row-major order.

    Tiles on the right and bottom edges are clipped to the image.

    Raises:
        ValueError: If a dimension or the tile size is not positive.
    """
    if width < 1 or height < 1:
        raise ValueError(f"Image size must be positive, got {width}x{height}")
    if tile_size < 1:
        raise ValueError(f"tile_size must be positive, got {tile_size}")

    tiles = []
    for y0 in range(0, height, tile_size):
        for x0 in range(0, width, tile_size):
            tiles.append(
                Tile(
                    index=len(tiles),
                    x0=x0,
                    y0=y0,
                    x1=min(x0 + tile_size, width),
                    y1=min(y0 + tile_size, height),
                )
            )
    return tiles


class TileScheduler:
    """Renders a scene tile by tile on a thread pool.

    Attributes:
        config: Render parameters.
        integrator: Integrator used for every tile. Built from the config
            when omitted.
        sampler: CMJ sampler shared by all workers (it is stateless).
    """

    def __init__(self, config: RenderConfig, integrator: PathIntegrator | None = None) -> None:
        self.config = config
        if integrator is None:
            integrator = PathIntegrator(
                max_depth=config.max_depth,
                russian_roulette=config.russian_roulette,
                rr_min_depth=config.rr_min_depth,
            )
        self.integrator = integrator
        self.sampler = CMJSampler(samples_per_pixel=config.samples_per_pixel, seed=config.seed)

    def _render_tile(self, scene: Scene, camera: PerspectiveCamera, tile: Tile) -> TileResult:
        return self.integrator.render_tile(
            scene, camera, self.sampler, tile, self.config.width, self.config.height
        )

    def render(
        self,
        scene: Scene,
        camera: PerspectiveCamera,
        callback: ProgressCallback | None = None,
    ) -> Framebuffer:
        """Render every tile and return the filled framebuffer.

        Args:
            scene: The scene to render.
            camera: Camera generating the primary rays.
            callback: Optional function called as callback(tiles_done,
                tiles_total) after every finished or failed tile.

        Returns:
            The framebuffer. Tiles that failed after all retries are listed in
            `framebuffer.failed_tiles` and have a sample count of 0.

        Raises:
            MemoryError: If a worker ran out of memory; pending tiles are
                cancelled.
        """
        config = self.config
        framebuffer = Framebuffer(config.width, config.height)
        tiles = partition_tiles(config.width, config.height, config.tile_size)
        total = len(tiles)
        done = 0
        discarded = 0
        start = time.perf_counter()

        logger.info(
            "Rendering %dx%d at %d spp: %d tiles on %d threads",
            config.width,
            config.height,
            config.samples_per_pixel,
            total,
            config.workers,
        )

        executor = ThreadPoolExecutor(max_workers=config.workers, thread_name_prefix="voltrace")
        try:
            attempts = {tile.index: 1 for tile in tiles}
            pending: dict[Future[TileResult], Tile] = {
                executor.submit(self._render_tile, scene, camera, tile): tile for tile in tiles
            }
            while pending:
                finished, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in finished:
                    tile = pending.pop(future)
                    try:
                        result = future.result()
                    except MemoryError:
                        logger.error("Out of memory while rendering tile %d; aborting", tile.index)
                        raise
                    except Exception as exc:
                        if attempts[tile.index] <= config.max_tile_retries:
                            logger.warning(
                                "Tile %d failed on attempt %d (%s); retrying",
                                tile.index,
                                attempts[tile.index],
                                exc,
                            )
                            attempts[tile.index] += 1
                            pending[executor.submit(self._render_tile, scene, camera, tile)] = tile
                            continue
                        logger.error(
                            "Tile %d failed after %d attempts: %s", tile.index, attempts[tile.index], exc
                        )
                        framebuffer.record_failure(TileFailure(tile, attempts[tile.index], repr(exc)))
                    else:
                        framebuffer.write_tile(tile, result.radiance_sum, result.sample_count)
                        discarded += result.discarded

                    done += 1
                    if callback is not None:
                        callback(done, total)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        elapsed = time.perf_counter() - start
        if discarded:
            logger.debug("Discarded %d invalid samples in total", discarded)
        logger.info(
            "Finished in %.2f s (%d failed tiles)", elapsed, len(framebuffer.failed_tiles)
        )
        return framebuffer


def render(
    scene: Scene,
    camera: PerspectiveCamera,
    resolution: tuple[int, int],
    samples_per_pixel: int,
    thread_count: int,
    callback: ProgressCallback | None = None,
    **options: Any,
) -> Framebuffer:
    """Render a scene and return the framebuffer.

    Args:
        scene: The scene to render.
        camera: Camera generating the primary rays.
        resolution: Image (width, height) in pixels.
        samples_per_pixel: Samples per pixel.
        thread_count: Worker threads, 0 for one per CPU.
        callback: Optional progress callback(tiles_done, tiles_total).
        **options: Further RenderConfig fields (seed, max_depth, tile_size,
            russian_roulette, rr_min_depth, max_tile_retries).

    Example:
        >>> fb = render(scene, camera, (64, 64), samples_per_pixel=4, thread_count=8, seed=42)
    """
    width, height = resolution
    config = RenderConfig(
        width=width,
        height=height,
        samples_per_pixel=samples_per_pixel,
        thread_count=thread_count,
        **options,
    )
    return TileScheduler(config).render(scene, camera, callback=callback)
