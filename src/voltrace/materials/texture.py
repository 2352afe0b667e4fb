"""Textures: spatially varying colors for material parameters.

A texture maps surface coordinates to an RGB value. Every texture is
vectorized over a batch of hits:

    value(uv, points) -> (N, 3)

where `uv` has shape (N, 2) and `points` shape (N, 3). Materials take a
texture wherever a color is expected, and plain RGB tuples are promoted to a
ConstantTexture by `as_texture`.

Example:
    >>> checker = CheckerTexture(even=(0.2, 0.3, 0.1), odd=(0.9, 0.9, 0.9))
    >>> checker.value(np.zeros((1, 2)), np.array([[0.1, 0.1, 0.1]]))
    array([[0.2, 0.3, 0.1]])
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, Sequence, Union

import numpy as np
from PIL import Image

from voltrace.core.ray import FloatArray, as_vec3
from voltrace.media.noise import Perlin


class Texture(Protocol):
    """Interface shared by all textures."""

    def value(self, uv: FloatArray, points: FloatArray) -> FloatArray:
        ...


@dataclass(frozen=True, eq=False)
class ConstantTexture:
    """A single color everywhere."""

    color: FloatArray

    def __post_init__(self) -> None:
        object.__setattr__(self, "color", as_vec3(self.color, "color"))

    def value(self, uv: FloatArray, points: FloatArray) -> FloatArray:
        return np.broadcast_to(self.color, (len(points), 3)).copy()


@dataclass(frozen=True, eq=False)
class CheckerTexture:
    """Solid 3D checkerboard alternating between two textures.

    The pattern is the sign of sin(sx) * sin(sy) * sin(sz), so it does not
    depend on the surface parameterization.

    Attributes:
        even: Texture used where the sine product is non-negative.
        odd: Texture used where it is negative.
        scale: Spatial frequency of the checks.
    """

    even: Texture
    odd: Texture
    scale: float = 10.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "even", as_texture(self.even))
        object.__setattr__(self, "odd", as_texture(self.odd))

    def value(self, uv: FloatArray, points: FloatArray) -> FloatArray:
        s = self.scale * points
        sines = np.sin(s[:, 0]) * np.sin(s[:, 1]) * np.sin(s[:, 2])
        return np.where(
            (sines < 0.0)[:, None],
            self.odd.value(uv, points),
            self.even.value(uv, points),
        )


@dataclass(frozen=True, eq=False)
class NoiseTexture:
    """Marble-like grayscale pattern driven by Perlin turbulence.

    Attributes:
        frequency: Frequency of the stripes and of the noise lookup.
        octaves: Number of turbulence octaves.
        seed: Seed of the Perlin generator.
    """

    frequency: float = 1.0
    octaves: int = 7
    seed: int = 0
    noise: Perlin = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.octaves < 1:
            raise ValueError(f"octaves must be at least 1, got {self.octaves}")
        object.__setattr__(self, "noise", Perlin(self.seed))

    def value(self, uv: FloatArray, points: FloatArray) -> FloatArray:
        turb = self.noise.turbulence(points * self.frequency, self.octaves)
        sine = np.sin(self.frequency * points[:, 0] + 5.0 * np.abs(turb))
        gray = 0.5 * (1.0 + sine)
        return np.repeat(gray[:, None], 3, axis=1)


@dataclass(frozen=True, eq=False)
class ImageTexture:
    """Texture looked up from an RGB image by surface UV.

    Attributes:
        pixels: Image data as floats in [0, 1], shape (H, W, 3), row 0 at
            the top.
    """

    pixels: FloatArray

    @classmethod
    def from_file(cls, path: str | Path) -> ImageTexture:
        """Load an image file with Pillow."""
        with Image.open(path) as img:
            data = np.asarray(img.convert("RGB"), dtype=np.float64) / 255.0
        return cls(data)

    def value(self, uv: FloatArray, points: FloatArray) -> FloatArray:
        h, w = self.pixels.shape[:2]
        u = np.clip(uv[:, 0], 0.0, 1.0)
        v = 1.0 - np.clip(uv[:, 1], 0.0, 1.0)
        i = np.clip((u * w).astype(np.int64), 0, w - 1)
        j = np.clip((v * h).astype(np.int64), 0, h - 1)
        return self.pixels[j, i]


TextureLike = Union[Texture, Sequence[float]]


def as_texture(value: TextureLike) -> Texture:
    """Return textures unchanged and wrap RGB triples in a ConstantTexture."""
    if hasattr(value, "value"):
        return value
    return ConstantTexture(value)


def texture_range(texture: Texture) -> tuple[float, float]:
    """Known lower/upper bound of a texture's channels, used for validation.

    Procedural textures with unknown ranges report (0, 1).
    """
    if isinstance(texture, ConstantTexture):
        return float(texture.color.min()), float(texture.color.max())
    if isinstance(texture, CheckerTexture):
        lo_e, hi_e = texture_range(texture.even)
        lo_o, hi_o = texture_range(texture.odd)
        return min(lo_e, lo_o), max(hi_e, hi_o)
    if isinstance(texture, ImageTexture):
        return float(texture.pixels.min()), float(texture.pixels.max())
    return 0.0, 1.0
