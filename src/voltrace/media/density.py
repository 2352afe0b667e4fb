"""Density fields for participating media.

A density field maps world-space points to a non-negative density and
reports an upper bound of that density over its whole domain. The bound is
what makes Woodcock tracking unbiased, so every field computes it from its
own data rather than trusting the caller.

Fields:
    ConstantDensity: homogeneous medium
    GridDensity: vertex-sampled voxel grid with trilinear interpolation
    NoiseDensity: Perlin turbulence, clipped to [0, 1] and scaled
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Sequence

import numpy as np

from voltrace.core.ray import FloatArray, as_vec3
from voltrace.media.noise import Perlin


class DensityField(Protocol):
    """Interface shared by all density fields."""

    def density(self, points: FloatArray) -> FloatArray:
        """Density at points of shape (N, 3), returns shape (N,)."""
        ...

    def max_density(self) -> float:
        """Upper bound of the density over the whole domain."""
        ...


@dataclass(frozen=True)
class ConstantDensity:
    """Uniform density everywhere."""

    value: float = 1.0

    def __post_init__(self) -> None:
        if not (self.value >= 0.0 and np.isfinite(self.value)):
            raise ValueError(f"Density must be finite and non-negative, got {self.value}")

    def density(self, points: FloatArray) -> FloatArray:
        return np.full(points.shape[:-1], float(self.value))

    def max_density(self) -> float:
        return float(self.value)


@dataclass(frozen=True, eq=False)
class GridDensity:
    """Density sampled on the vertices of a regular grid.

    The grid spans [bounds_min, bounds_max] with values[0, 0, 0] at
    bounds_min and values[-1, -1, -1] at bounds_max. Density is trilinearly
    interpolated inside and zero outside the bounds.

    Attributes:
        values: Non-negative samples, shape (nx, ny, nz), each at least 2.
        bounds_min: Minimum corner of the grid.
        bounds_max: Maximum corner of the grid.
    """

    values: FloatArray
    bounds_min: FloatArray
    bounds_max: FloatArray

    def __post_init__(self) -> None:
        values = np.asarray(self.values, dtype=np.float64)
        if values.ndim != 3 or min(values.shape) < 2:
            raise ValueError(f"Grid values must be 3D with at least 2 samples per axis, got {values.shape}")
        if not np.all(np.isfinite(values)) or np.any(values < 0.0):
            raise ValueError("Grid values must be finite and non-negative")
        bmin = as_vec3(self.bounds_min, "bounds_min")
        bmax = as_vec3(self.bounds_max, "bounds_max")
        if np.any(bmax <= bmin):
            raise ValueError("Grid bounds_max must exceed bounds_min on every axis")
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "bounds_min", bmin)
        object.__setattr__(self, "bounds_max", bmax)

    def density(self, points: FloatArray) -> FloatArray:
        shape = np.array(self.values.shape)
        rel = (points - self.bounds_min) / (self.bounds_max - self.bounds_min)
        inside = np.all((rel >= 0.0) & (rel <= 1.0), axis=-1)
        g = np.clip(rel, 0.0, 1.0) * (shape - 1)
        base = np.minimum(np.floor(g).astype(np.int64), shape - 2)
        f = g - base
        i, j, k = base[..., 0], base[..., 1], base[..., 2]
        fx, fy, fz = f[..., 0], f[..., 1], f[..., 2]

        v = self.values
        c00 = v[i, j, k] * (1 - fx) + v[i + 1, j, k] * fx
        c10 = v[i, j + 1, k] * (1 - fx) + v[i + 1, j + 1, k] * fx
        c01 = v[i, j, k + 1] * (1 - fx) + v[i + 1, j, k + 1] * fx
        c11 = v[i, j + 1, k + 1] * (1 - fx) + v[i + 1, j + 1, k + 1] * fx
        c0 = c00 * (1 - fy) + c10 * fy
        c1 = c01 * (1 - fy) + c11 * fy
        return np.where(inside, c0 * (1 - fz) + c1 * fz, 0.0)

    def max_density(self) -> float:
        return float(self.values.max())


@dataclass(frozen=True)
class NoiseDensity:
    """Smoke-like density from Perlin turbulence.

    density(x) = scale * clip(turbulence(frequency * x), 0, 1)

    Attributes:
        scale: Peak density, also the bound of the field.
        frequency: Spatial frequency applied to world positions.
        octaves: Number of turbulence octaves.
        seed: Seed of the Perlin generator.
    """

    scale: float = 1.0
    frequency: float = 1.0
    octaves: int = 7
    seed: int = 0
    perlin: Perlin = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not (self.scale >= 0.0 and np.isfinite(self.scale)):
            raise ValueError(f"Noise scale must be finite and non-negative, got {self.scale}")
        if self.octaves < 1:
            raise ValueError(f"octaves must be at least 1, got {self.octaves}")
        object.__setattr__(self, "perlin", Perlin(self.seed))

    def density(self, points: FloatArray) -> FloatArray:
        turb = self.perlin.turbulence(self.frequency * points, self.octaves)
        return self.scale * np.clip(turb, 0.0, 1.0)

    def max_density(self) -> float:
        return float(self.scale)


def linear_ramp_grid(
    bounds_min: Sequence[float],
    bounds_max: Sequence[float],
    start: float,
    end: float,
    axis: int = 0,
) -> GridDensity:
    """Grid whose density rises linearly from `start` to `end` along an axis."""
    shape = [2, 2, 2]
    values = np.full(shape, float(start))
    index: list[slice | int] = [slice(None)] * 3
    index[axis] = 1
    values[tuple(index)] = float(end)
    return GridDensity(values, bounds_min, bounds_max)

