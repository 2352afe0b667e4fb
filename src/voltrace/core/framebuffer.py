"""Accumulation framebuffer and image tiles.

The framebuffer stores, per pixel, the sum of all radiance samples and the
number of samples taken. Row 0 is the top of the image. Workers never touch
the framebuffer while rendering: each renders its tile into local buffers and
the scheduler thread writes the finished tile in one step.

Example:
    >>> fb = Framebuffer(4, 2)
    >>> tile = Tile(index=0, x0=0, y0=0, x1=2, y1=2)
    >>> fb.write_tile(tile, np.ones((2, 2, 3)), np.ones((2, 2), dtype=np.int64))
    >>> fb.get_image_numpy()[0, 0]
    array([1., 1., 1.])
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray


@dataclass(frozen=True)
class Tile:
    """A rectangular block of pixels [x0, x1) x [y0, y1).

    Attributes:
        index: Position of the tile in row-major tile order.
        x0: First pixel column.
        y0: First pixel row (0 = top).
        x1: One past the last column.
        y1: One past the last row.
    """

    index: int
    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def width(self) -> int:
        return self.x1 - self.x0

    @property
    def height(self) -> int:
        return self.y1 - self.y0

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    def pixel_coords(self) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.int64]]:
        """Columns and rows of the tile's pixels in row-major order."""
        ys, xs = np.mgrid[self.y0 : self.y1, self.x0 : self.x1]
        return xs.ravel().astype(np.int64), ys.ravel().astype(np.int64)


@dataclass(frozen=True)
class TileFailure:
    """A tile that could not be rendered.

    Attributes:
        tile: The failed tile.
        attempts: Number of attempts made.
        error: Description of the last exception.
    """

    tile: Tile
    attempts: int
    error: str


@dataclass(eq=False)
class Framebuffer:
    """Per-pixel radiance sums and sample counts.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        radiance_sum: Summed radiance, shape (height, width, 3).
        sample_count: Samples per pixel, shape (height, width).
        failed_tiles: Tiles that failed after all retries.

    Raises:
        ValueError: If width or height is not positive.
    """

    width: int
    height: int
    radiance_sum: FloatArray = field(init=False)
    sample_count: npt.NDArray[np.int64] = field(init=False)
    failed_tiles: list[TileFailure] = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ValueError(f"Framebuffer size must be positive, got {self.width}x{self.height}")
        self.radiance_sum = np.zeros((self.height, self.width, 3))
        self.sample_count = np.zeros((self.height, self.width), dtype=np.int64)

    def write_tile(self, tile: Tile, radiance_sum: FloatArray, sample_count: npt.NDArray[np.int64]) -> None:
        """Add a completed tile's local buffers into the framebuffer."""
        if radiance_sum.shape != (tile.height, tile.width, 3):
            raise ValueError(
                f"Tile buffer shape {radiance_sum.shape} does not match tile "
                f"{tile.width}x{tile.height}"
            )
        region = (slice(tile.y0, tile.y1), slice(tile.x0, tile.x1))
        self.radiance_sum[region] += radiance_sum
        self.sample_count[region] += sample_count

    def record_failure(self, failure: TileFailure) -> None:
        self.failed_tiles.append(failure)

    def clear(self) -> None:
        self.radiance_sum.fill(0.0)
        self.sample_count.fill(0)
        self.failed_tiles.clear()

    @property
    def total_samples(self) -> int:
        return int(self.sample_count.sum())

    def get_image_numpy(self) -> FloatArray:
        """Mean radiance per pixel, shape (height, width, 3).

        Pixels without samples (failed tiles) are black.
        """
        counts = np.maximum(self.sample_count, 1)[..., None]
        return np.where(self.sample_count[..., None] > 0, self.radiance_sum / counts, 0.0)
