"""Vectorized Perlin gradient noise.

A Perlin generator holds 256 random unit gradient vectors and three random
permutation tables. Lattice corners are hashed by XOR-ing the permuted
corner coordinates, and the eight corner contributions are blended with
Hermite-smoothed trilinear weights.

The generator is seeded, so noise-driven textures and media are identical
across runs and across worker threads.
"""

from __future__ import annotations

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray, normalize

POINT_COUNT = 256


class Perlin:
    """Seeded Perlin noise generator.

    Args:
        seed: Seed for the gradient vectors and permutation tables.
    """

    def __init__(self, seed: int = 0) -> None:
        rng = np.random.default_rng(seed)
        self.seed = seed
        self.gradients = normalize(rng.uniform(-1.0, 1.0, size=(POINT_COUNT, 3)))
        self.perm_x = rng.permutation(POINT_COUNT)
        self.perm_y = rng.permutation(POINT_COUNT)
        self.perm_z = rng.permutation(POINT_COUNT)

    def noise(self, points: npt.ArrayLike) -> FloatArray:
        """Noise values in roughly [-1, 1] at points of shape (..., 3)."""
        p = np.asarray(points, dtype=np.float64)
        floor = np.floor(p)
        frac = p - floor
        cell = floor.astype(np.int64)
        smooth = frac * frac * (3.0 - 2.0 * frac)

        acc = np.zeros(p.shape[:-1])
        for di in (0, 1):
            wx = smooth[..., 0] if di else 1.0 - smooth[..., 0]
            ix = self.perm_x[(cell[..., 0] + di) & 255]
            for dj in (0, 1):
                wy = smooth[..., 1] if dj else 1.0 - smooth[..., 1]
                iy = self.perm_y[(cell[..., 1] + dj) & 255]
                for dk in (0, 1):
                    wz = smooth[..., 2] if dk else 1.0 - smooth[..., 2]
                    iz = self.perm_z[(cell[..., 2] + dk) & 255]
                    gradient = self.gradients[ix ^ iy ^ iz]
                    offset = frac - np.array([di, dj, dk], dtype=np.float64)
                    acc += wx * wy * wz * np.sum(gradient * offset, axis=-1)
        return acc

    def turbulence(self, points: npt.ArrayLike, depth: int = 7) -> FloatArray:
        """Sum of |noise| over `depth` octaves, halving weight per octave."""
        p = np.asarray(points, dtype=np.float64)
        acc = np.zeros(p.shape[:-1])
        weight = 1.0
        for _ in range(depth):
            acc += weight * np.abs(self.noise(p))
            weight *= 0.5
            p = p * 2.0
        return acc
