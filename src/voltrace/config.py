"""Render configuration.

RenderConfig collects every parameter of a render job that is not part of
the scene or camera. It is immutable and validated on construction.

Example:
    >>> config = RenderConfig(width=320, height=240, samples_per_pixel=16)
    >>> config.resolution
    (320, 240)
    >>> RenderConfig.from_dict({"width": 64, "height": 64, "seed": 7}).seed
    7
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_WIDTH = 400
DEFAULT_HEIGHT = 400
DEFAULT_SPP = 16
DEFAULT_MAX_DEPTH = 50
DEFAULT_TILE_SIZE = 32
DEFAULT_SEED = 0


def default_thread_count() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class RenderConfig:
    """Parameters of a render job.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        samples_per_pixel: Camera samples per pixel.
        max_depth: Maximum number of scattering events per path.
        thread_count: Worker threads. 0 selects the number of CPUs.
        seed: Sampler seed; renders with the same seed are identical.
        tile_size: Edge length of the square tiles handed to workers.
        russian_roulette: Enable Russian roulette path termination.
        rr_min_depth: Bounces before Russian roulette applies.
        max_tile_retries: Retries for a tile whose worker raised.

    Raises:
        ValueError: If any parameter is out of range.
    """

    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    samples_per_pixel: int = DEFAULT_SPP
    max_depth: int = DEFAULT_MAX_DEPTH
    thread_count: int = 0
    seed: int = DEFAULT_SEED
    tile_size: int = DEFAULT_TILE_SIZE
    russian_roulette: bool = True
    rr_min_depth: int = 3
    max_tile_retries: int = 1

    def __post_init__(self) -> None:
        for name in ("width", "height", "samples_per_pixel", "max_depth", "tile_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        for name in ("thread_count", "rr_min_depth", "max_tile_retries"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
        if not isinstance(self.seed, int) or self.seed < 0:
            raise ValueError(f"seed must be a non-negative integer, got {self.seed!r}")

    @property
    def workers(self) -> int:
        """Number of worker threads, resolving thread_count 0 to the CPU count."""
        return self.thread_count or default_thread_count()

    @property
    def resolution(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RenderConfig:
        """Build a config from a dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown render config keys: {', '.join(unknown)}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
