"""Axis-aligned bounding boxes and the ray/slab test.

Bounds are stored as arrays of shape (..., 2, 3) where index 0 along the
second-to-last axis is the minimum corner and index 1 the maximum corner.
This is the layout used by the primitive table and the BVH node arena.

The slab test follows the Williams et al. formulation with explicit
handling of zero direction components: a ray parallel to a slab either lies
inside it for all t or misses it entirely, so no 0 * inf products are ever
used.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray, as_vec3

# Padding applied to flat bounds (e.g. axis-aligned quads)
BOUNDS_PADDING = 1e-4


@dataclass(frozen=True, eq=False)
class AABB:
    """An axis-aligned bounding box.

    Attributes:
        minimum: The minimum corner.
        maximum: The maximum corner.
    """

    minimum: FloatArray
    maximum: FloatArray

    def __post_init__(self) -> None:
        object.__setattr__(self, "minimum", as_vec3(self.minimum, "minimum"))
        object.__setattr__(self, "maximum", as_vec3(self.maximum, "maximum"))

    def as_array(self) -> FloatArray:
        return np.stack([self.minimum, self.maximum])

    @property
    def centroid(self) -> FloatArray:
        return 0.5 * (self.minimum + self.maximum)

    @property
    def extent(self) -> FloatArray:
        return self.maximum - self.minimum

    def surface_area(self) -> float:
        return float(surface_areas(self.as_array()))

    def surrounding(self, other: AABB) -> AABB:
        """Smallest box enclosing both boxes."""
        return AABB(np.minimum(self.minimum, other.minimum), np.maximum(self.maximum, other.maximum))

    def contains(self, other: AABB) -> bool:
        return bool(np.all(self.minimum <= other.minimum) and np.all(self.maximum >= other.maximum))

    def hit(self, origin: FloatArray, direction: FloatArray, t_min: float, t_max: float) -> bool:
        """Scalar convenience wrapper around slab_intervals."""
        with np.errstate(divide="ignore", over="ignore"):
            inv = 1.0 / np.asarray(direction, dtype=np.float64)
        t_near, t_far = slab_intervals(np.asarray(origin, dtype=np.float64), inv, self.as_array())
        return bool(max(t_near, t_min) <= min(t_far, t_max))


def pad_bounds(bounds: FloatArray, padding: float = BOUNDS_PADDING) -> FloatArray:
    """Widen axes whose extent is below `padding` so no box is flat."""
    bounds = bounds.copy()
    flat = (bounds[..., 1, :] - bounds[..., 0, :]) < padding
    bounds[..., 0, :] = np.where(flat, bounds[..., 0, :] - 0.5 * padding, bounds[..., 0, :])
    bounds[..., 1, :] = np.where(flat, bounds[..., 1, :] + 0.5 * padding, bounds[..., 1, :])
    return bounds


def union_bounds(bounds: FloatArray) -> FloatArray:
    """Bounds enclosing every box in a (K, 2, 3) array."""
    return np.stack([bounds[:, 0, :].min(axis=0), bounds[:, 1, :].max(axis=0)])


def surface_areas(bounds: FloatArray) -> FloatArray:
    """Surface area of each box; empty boxes have area 0."""
    extent = np.maximum(bounds[..., 1, :] - bounds[..., 0, :], 0.0)
    dx, dy, dz = extent[..., 0], extent[..., 1], extent[..., 2]
    return 2.0 * (dx * dy + dy * dz + dz * dx)


def slab_intervals(
    origins: FloatArray,
    inv_directions: FloatArray,
    bounds: FloatArray,
) -> tuple[FloatArray, FloatArray]:
    """Entry and exit distances of rays through boxes.

    Arguments broadcast against each other: origins and inv_directions have
    shape (..., 3) and bounds (..., 2, 3). The directions are passed as
    reciprocals (1 / d, giving +-inf for zero components).

    Returns:
        A tuple (t_near, t_far). The ray overlaps the box where
        t_near <= t_far. Zero direction components give (-inf, inf) on that
        axis when the origin is inside the slab and an empty interval
        otherwise.
    """
    bmin = bounds[..., 0, :]
    bmax = bounds[..., 1, :]
    parallel = np.isinf(inv_directions)
    with np.errstate(invalid="ignore", over="ignore"):
        t0 = (bmin - origins) * inv_directions
        t1 = (bmax - origins) * inv_directions
    t_lo = np.minimum(t0, t1)
    t_hi = np.maximum(t0, t1)
    if np.any(parallel):
        inside = (origins >= bmin) & (origins <= bmax)
        t_lo = np.where(parallel, np.where(inside, -np.inf, np.inf), t_lo)
        t_hi = np.where(parallel, np.where(inside, np.inf, -np.inf), t_hi)
    return t_lo.max(axis=-1), t_hi.min(axis=-1)


def bounds_contain(outer: FloatArray, inner: FloatArray) -> npt.NDArray[np.bool_]:
    """True where each outer box encloses the matching inner box."""
    return np.all(outer[..., 0, :] <= inner[..., 0, :], axis=-1) & np.all(
        outer[..., 1, :] >= inner[..., 1, :], axis=-1
    )
