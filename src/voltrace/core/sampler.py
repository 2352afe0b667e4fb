"""Correlated multi-jittered (CMJ) sampling.

Implements Kensler's "Correlated Multi-Jittered Sampling" (Pixar Technical
Memo 13-01) on uint32 numpy arrays. The sampler holds no mutable state:
every value is a pure function of (seed, pixel id, sample index, dimension),
so worker threads derive their samples independently and renders are
reproducible for any thread count.

For samples_per_pixel = m * n the unit square is split into an m x n grid
(m is the largest divisor of spp not above sqrt(spp), so square counts give
an N x N grid). The first spp samples of a pixel occupy every grid cell
exactly once; the cell assignment, the sub-strata and the jitter are
permuted per pixel and dimension by a hashed pattern id, which breaks the
correlation between neighbouring pixels.

Dimension layout used by the integrator:
    0   pixel jitter (2D)
    1   lens position (2D)
    2   shutter time (1D)
    ... per-bounce and per-tracking-step dimensions come from dimension_key()

Example:
    >>> sampler = CMJSampler(samples_per_pixel=16, seed=42)
    >>> x, y = sampler.generate(pixel_id=0, sample_index=3, dimension=0)
    >>> 0.0 <= x < 1.0 and 0.0 <= y < 1.0
    True
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np
import numpy.typing as npt

U32 = np.uint32
UIntArray = npt.NDArray[np.uint32]

# Camera dimensions
DIM_PIXEL = 0
DIM_LENS = 1
DIM_TIME = 2

_INV_2_32 = 1.0 / 4294967808.0


def _u32(value: npt.ArrayLike) -> UIntArray:
    """Flatten to a 1-D uint32 array (wrapping modulo 2^32)."""
    arr = np.atleast_1d(np.asarray(value))
    if arr.dtype.kind == "f":
        arr = arr.astype(np.int64)
    return arr.astype(np.uint64).astype(np.uint32).ravel()


def hash_u32(value: npt.ArrayLike) -> UIntArray:
    """32-bit integer finalizer hash (lowbias32)."""
    x = _u32(value).copy()
    x ^= x >> U32(16)
    x *= U32(0x7FEB352D)
    x ^= x >> U32(15)
    x *= U32(0x846CA68B)
    x ^= x >> U32(16)
    return x


def dimension_key(*parts: npt.ArrayLike) -> UIntArray:
    """Combine integers into a hashed dimension id.

    Used for dimensions that depend on the bounce number or on the step of a
    tracking loop. Arguments broadcast against each other.
    """
    arrays = np.broadcast_arrays(*[np.asarray(p) for p in parts])
    shape = arrays[0].shape
    acc = np.full(int(np.prod(shape)) if shape else 1, 0x9E3779B9, dtype=np.uint32)
    for part in arrays:
        acc = hash_u32(acc ^ _u32(part))
    return acc.reshape(shape) if shape else acc


def _permute(index: UIntArray, count: UIntArray, pattern: UIntArray) -> UIntArray:
    """Kensler's hash-based permutation of index within [0, count).

    Cycle-walks: hashed values outside [0, count) are hashed again until they
    land inside the range.
    """
    w = count - U32(1)
    w |= w >> U32(1)
    w |= w >> U32(2)
    w |= w >> U32(4)
    w |= w >> U32(8)
    w |= w >> U32(16)

    result = np.empty_like(index)
    current = index.copy()
    pending = np.arange(index.size)
    while pending.size:
        i = current[pending]
        p = pattern[pending]
        mask = w[pending]
        i ^= p
        i *= U32(0xE170893D)
        i ^= p >> U32(16)
        i ^= (i & mask) >> U32(4)
        i ^= p >> U32(8)
        i *= U32(0x0929EB3F)
        i ^= p >> U32(23)
        i ^= (i & mask) >> U32(1)
        i *= U32(1) | (p >> U32(27))
        i *= U32(0x6935FA69)
        i ^= (i & mask) >> U32(11)
        i *= U32(0x74DCB303)
        i ^= (i & mask) >> U32(2)
        i *= U32(0x9E501CC3)
        i ^= (i & mask) >> U32(2)
        i *= U32(0xC860A3DF)
        i &= mask
        i ^= i >> U32(5)

        current[pending] = i
        done = i < count[pending]
        result[pending[done]] = i[done]
        pending = pending[~done]

    return (result + pattern) % count


def _randfloat(index: UIntArray, pattern: UIntArray) -> npt.NDArray[np.float64]:
    """Hashed uniform float in [0, 1)."""
    i = index ^ pattern
    i ^= i >> U32(17)
    i ^= i >> U32(10)
    i *= U32(0xB36534E5)
    i ^= i >> U32(12)
    i ^= i >> U32(21)
    i *= U32(0x93FC4795)
    i ^= U32(0xDF6E307F)
    i ^= i >> U32(17)
    i *= U32(1) | (pattern >> U32(18))
    return i.astype(np.float64) * _INV_2_32


def grid_shape(samples_per_pixel: int) -> tuple[int, int]:
    """Return (m, n) with m * n = spp and m the largest divisor <= sqrt(spp)."""
    m = max(1, math.isqrt(samples_per_pixel))
    while samples_per_pixel % m:
        m -= 1
    return m, samples_per_pixel // m


@dataclass(frozen=True)
class CMJSampler:
    """Stateless correlated multi-jittered sampler.

    Attributes:
        samples_per_pixel: Number of samples per pixel; the stratification
            grid is derived from it.
        seed: Global seed mixed into every pattern.

    Raises:
        ValueError: If samples_per_pixel is not positive.
    """

    samples_per_pixel: int
    seed: int = 0
    grid: tuple[int, int] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.samples_per_pixel < 1:
            raise ValueError(f"samples_per_pixel must be positive, got {self.samples_per_pixel}")
        object.__setattr__(self, "grid", grid_shape(self.samples_per_pixel))

    def _pattern(self, pixel_ids: UIntArray, dimension: UIntArray) -> UIntArray:
        h = hash_u32(self.seed)
        return hash_u32(hash_u32(h ^ pixel_ids) ^ dimension)

    def _prepare(
        self,
        pixel_ids: npt.ArrayLike,
        sample_indices: npt.ArrayLike,
        dimension: npt.ArrayLike,
    ) -> tuple[tuple[int, ...], UIntArray, UIntArray]:
        pixel, sample, dim = np.broadcast_arrays(
            np.asarray(pixel_ids), np.asarray(sample_indices), np.asarray(dimension)
        )
        spp = self.samples_per_pixel
        sample = _u32(sample)
        # Sample indices past spp start a new pass with a rehashed pattern
        passes = sample // U32(spp)
        pattern = self._pattern(_u32(pixel), _u32(dim))
        pattern = np.where(passes > 0, hash_u32(pattern ^ passes), pattern)
        return pixel.shape, sample % U32(spp), pattern

    def sample_2d(
        self,
        pixel_ids: npt.ArrayLike,
        sample_indices: npt.ArrayLike,
        dimension: npt.ArrayLike,
    ) -> npt.NDArray[np.float64]:
        """2D samples in [0, 1)^2, shape (..., 2)."""
        shape, s, p = self._prepare(pixel_ids, sample_indices, dimension)
        m, n = self.grid
        total = np.full_like(s, m * n)
        s = _permute(s, total, p * U32(0x51633E2D))
        sx = _permute(s % U32(m), np.full_like(s, m), p * U32(0xA511E9B3))
        sy = _permute(s // U32(m), np.full_like(s, n), p * U32(0x63D83595))
        jx = _randfloat(s, p * U32(0xA399D265))
        jy = _randfloat(s, p * U32(0x711AD6A5))
        x = ((s % U32(m)).astype(np.float64) + (sy.astype(np.float64) + jx) / n) / m
        y = ((s // U32(m)).astype(np.float64) + (sx.astype(np.float64) + jy) / m) / n
        return np.stack([x, y], axis=-1).reshape(*shape, 2)

    def sample_1d(
        self,
        pixel_ids: npt.ArrayLike,
        sample_indices: npt.ArrayLike,
        dimension: npt.ArrayLike,
    ) -> npt.NDArray[np.float64]:
        """Stratified 1D samples in [0, 1), one per stratum of width 1/spp."""
        shape, s, p = self._prepare(pixel_ids, sample_indices, dimension)
        total = np.full_like(s, self.samples_per_pixel)
        stratum = _permute(s, total, p * U32(0x68BC21EB))
        jitter = _randfloat(s, p * U32(0x02E5BE93))
        return ((stratum.astype(np.float64) + jitter) / self.samples_per_pixel).reshape(shape)

    def generate(self, pixel_id: int, sample_index: int, dimension: int) -> tuple[float, float]:
        """Single 2D sample for one pixel, sample index and dimension."""
        xy = self.sample_2d(pixel_id, sample_index, dimension)
        return float(xy[0]), float(xy[1])
