"""Ray data structures and vector utilities for CPU path tracing.

This module provides the scalar Ray dataclass, the structure-of-arrays
RayBatch used on the hot path, and vectorized vector algebra. Every vector
function operates on the last axis of its arguments, so the same helper works
for a single (3,) vector, an (N, 3) batch, or a broadcast (N, K, 3) grid.

Sampling warps take their uniform random numbers as arguments instead of
drawing them. The caller supplies values from the sampler, which keeps every
path a pure function of (seed, pixel, sample index).

Example:
    >>> ray = Ray(origin=(0.0, 0.0, 0.0), direction=(0.0, 0.0, -1.0))
    >>> ray.at(5.0)
    array([ 0.,  0., -5.])
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import numpy.typing as npt

FloatArray = npt.NDArray[np.float64]

# Default parametric interval for rays
T_MIN = 1e-4
T_MAX = float("inf")

# Offset used to push secondary ray origins off a surface
RAY_EPSILON = 1e-4


def vec3(x: float, y: float, z: float) -> FloatArray:
    """Create a float64 3-vector."""
    return np.array([x, y, z], dtype=np.float64)


def as_vec3(value: Sequence[float] | FloatArray, name: str = "vector") -> FloatArray:
    """Convert a sequence to a float64 3-vector.

    Raises:
        ValueError: If the value does not have exactly three components.
    """
    arr = np.asarray(value, dtype=np.float64)
    if arr.shape != (3,):
        raise ValueError(f"{name} must have 3 components, got shape {arr.shape}")
    return arr


@dataclass(frozen=True, eq=False)
class Ray:
    """A ray with an origin, a direction and a valid parametric interval.

    Attributes:
        origin: The starting point of the ray.
        direction: The direction of the ray. Expected to be unit length; the
            renderer never renormalizes it between queries.
        t_min: Smallest accepted hit distance.
        t_max: Largest accepted hit distance.
        time: Time within the shutter interval, used by moving primitives.
    """

    origin: FloatArray
    direction: FloatArray
    t_min: float = T_MIN
    t_max: float = T_MAX
    time: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "origin", as_vec3(self.origin, "origin"))
        object.__setattr__(self, "direction", as_vec3(self.direction, "direction"))

    def at(self, t: float) -> FloatArray:
        """Return the point origin + t * direction."""
        return self.origin + t * self.direction

    def with_interval(self, t_min: float, t_max: float) -> Ray:
        """Return a copy of the ray restricted to [t_min, t_max]."""
        return dataclasses.replace(self, t_min=t_min, t_max=t_max)

    @property
    def is_degenerate(self) -> bool:
        """True if the ray can never produce a valid intersection."""
        return not bool(valid_ray_mask(self.origin[None], self.direction[None],
                                       np.array([self.t_min]), np.array([self.t_max]))[0])


def make_ray(origin: Sequence[float], direction: Sequence[float], **kwargs: float) -> Ray:
    """Create a ray with a normalized direction.

    Args:
        origin: The starting point of the ray.
        direction: Any non-zero direction; it is normalized here.
        **kwargs: Forwarded to Ray (t_min, t_max, time).

    Returns:
        A Ray with unit-length direction.
    """
    return Ray(origin=as_vec3(origin), direction=normalize(as_vec3(direction)), **kwargs)


@dataclass
class RayBatch:
    """Structure-of-arrays container for N rays.

    Attributes:
        origins: Ray origins, shape (N, 3).
        directions: Ray directions, shape (N, 3).
        t_min: Lower interval bounds, shape (N,).
        t_max: Upper interval bounds, shape (N,).
        times: Ray times, shape (N,).
    """

    origins: FloatArray
    directions: FloatArray
    t_min: FloatArray
    t_max: FloatArray
    times: FloatArray

    @classmethod
    def from_arrays(
        cls,
        origins: npt.ArrayLike,
        directions: npt.ArrayLike,
        t_min: npt.ArrayLike = T_MIN,
        t_max: npt.ArrayLike = T_MAX,
        times: npt.ArrayLike = 0.0,
    ) -> RayBatch:
        """Build a batch, broadcasting scalar interval bounds and times."""
        origins = np.asarray(origins, dtype=np.float64).reshape(-1, 3)
        directions = np.asarray(directions, dtype=np.float64).reshape(-1, 3)
        origins, directions = np.broadcast_arrays(origins, directions)
        n = origins.shape[0]
        return cls(
            origins=np.ascontiguousarray(origins),
            directions=np.ascontiguousarray(directions),
            t_min=np.broadcast_to(np.asarray(t_min, dtype=np.float64), (n,)).copy(),
            t_max=np.broadcast_to(np.asarray(t_max, dtype=np.float64), (n,)).copy(),
            times=np.broadcast_to(np.asarray(times, dtype=np.float64), (n,)).copy(),
        )

    @classmethod
    def from_rays(cls, rays: Sequence[Ray]) -> RayBatch:
        """Pack scalar rays into a batch."""
        if not rays:
            return cls.empty()
        return cls(
            origins=np.array([r.origin for r in rays]),
            directions=np.array([r.direction for r in rays]),
            t_min=np.array([r.t_min for r in rays], dtype=np.float64),
            t_max=np.array([r.t_max for r in rays], dtype=np.float64),
            times=np.array([r.time for r in rays], dtype=np.float64),
        )

    @classmethod
    def empty(cls) -> RayBatch:
        return cls(
            origins=np.zeros((0, 3)),
            directions=np.zeros((0, 3)),
            t_min=np.zeros(0),
            t_max=np.zeros(0),
            times=np.zeros(0),
        )

    def __len__(self) -> int:
        return self.origins.shape[0]

    def at(self, t: FloatArray) -> FloatArray:
        """Points along each ray at the per-ray parameter t, shape (N, 3)."""
        return self.origins + t[:, None] * self.directions

    def take(self, index: npt.ArrayLike) -> RayBatch:
        """Select a subset of rays by integer index array or boolean mask."""
        return RayBatch(
            origins=self.origins[index],
            directions=self.directions[index],
            t_min=self.t_min[index],
            t_max=self.t_max[index],
            times=self.times[index],
        )

    def ray(self, i: int) -> Ray:
        """Return ray i as a scalar Ray."""
        return Ray(
            origin=self.origins[i].copy(),
            direction=self.directions[i].copy(),
            t_min=float(self.t_min[i]),
            t_max=float(self.t_max[i]),
            time=float(self.times[i]),
        )

    def valid_mask(self) -> npt.NDArray[np.bool_]:
        """Rays that may intersect anything, see valid_ray_mask."""
        return valid_ray_mask(self.origins, self.directions, self.t_min, self.t_max)


def valid_ray_mask(
    origins: FloatArray,
    directions: FloatArray,
    t_min: FloatArray,
    t_max: FloatArray,
) -> npt.NDArray[np.bool_]:
    """Mask of rays with a finite origin, a finite non-zero direction and
    a non-empty interval. Everything else misses deterministically.
    """
    finite = np.all(np.isfinite(origins), axis=-1) & np.all(np.isfinite(directions), axis=-1)
    nonzero = np.any(directions != 0.0, axis=-1)
    interval = (t_min <= t_max) & ~np.isnan(t_min) & ~np.isnan(t_max)
    return finite & nonzero & interval


# =============================================================================
# Vector Utility Functions
# =============================================================================


def dot(a: FloatArray, b: FloatArray) -> FloatArray:
    """Dot product along the last axis."""
    return np.sum(a * b, axis=-1)


def cross(a: FloatArray, b: FloatArray) -> FloatArray:
    """Cross product along the last axis."""
    return np.cross(a, b)


def length_squared(v: FloatArray) -> FloatArray:
    return dot(v, v)


def length(v: FloatArray) -> FloatArray:
    return np.sqrt(dot(v, v))


def normalize(v: FloatArray) -> FloatArray:
    """Normalize vectors along the last axis.

    Zero-length vectors are returned unchanged (as zeros) instead of
    producing NaN.
    """
    n = length(v)
    safe = np.where(n > 0.0, n, 1.0)
    return v / np.expand_dims(safe, -1)


def reflect(incident: FloatArray, normal: FloatArray) -> FloatArray:
    """Reflect incident directions about unit normals."""
    return incident - 2.0 * dot(incident, normal)[..., None] * normal


def refract(
    incident: FloatArray,
    normal: FloatArray,
    eta: FloatArray | float,
) -> tuple[FloatArray, npt.NDArray[np.bool_]]:
    """Refract unit incident directions through a surface using Snell's law.

    Args:
        incident: Unit incoming directions.
        normal: Unit normals on the incident side.
        eta: Ratio of refractive indices (n_incident / n_transmitted).

    Returns:
        A tuple (directions, valid). Rows with total internal reflection
        are flagged invalid and hold a zero vector.
    """
    eta = np.asarray(eta, dtype=np.float64)
    cos_i = -dot(incident, normal)
    sin2_t = eta * eta * (1.0 - cos_i * cos_i)
    valid = sin2_t <= 1.0
    cos_t = np.sqrt(np.maximum(1.0 - sin2_t, 0.0))
    result = eta[..., None] * incident + (eta * cos_i - cos_t)[..., None] * normal
    result = np.where(valid[..., None], result, 0.0)
    return result, valid


def schlick_fresnel(cosine: FloatArray, ref_idx: FloatArray | float) -> FloatArray:
    """Fresnel reflectance using Schlick's approximation."""
    r0 = ((1.0 - ref_idx) / (1.0 + ref_idx)) ** 2
    return r0 + (1.0 - r0) * (1.0 - cosine) ** 5


def near_zero(v: FloatArray) -> npt.NDArray[np.bool_]:
    """True where every component is below 1e-8 in magnitude."""
    return np.all(np.abs(v) < 1e-8, axis=-1)


def offset_ray_origin(
    points: FloatArray,
    normals: FloatArray,
    directions: FloatArray,
) -> FloatArray:
    """Push points off a surface, to the side the new direction leaves on."""
    side = np.where(dot(directions, normals) > 0.0, 1.0, -1.0)
    return points + (RAY_EPSILON * side)[:, None] * normals


# =============================================================================
# Sampling Warps for Monte Carlo
# =============================================================================


def build_onb_from_normal(normal: FloatArray) -> tuple[FloatArray, FloatArray, FloatArray]:
    """Build orthonormal bases (tangent, bitangent, normal) from unit normals."""
    a = np.zeros_like(normal)
    use_y = np.abs(normal[..., 0]) > 0.9
    a[..., 0] = np.where(use_y, 0.0, 1.0)
    a[..., 1] = np.where(use_y, 1.0, 0.0)
    tangent = normalize(cross(a, normal))
    bitangent = cross(normal, tangent)
    return tangent, bitangent, normal


def local_to_world(
    local_dir: FloatArray,
    tangent: FloatArray,
    bitangent: FloatArray,
    normal: FloatArray,
) -> FloatArray:
    """Transform directions from a local z-up frame to world space."""
    return (
        local_dir[..., 0:1] * tangent
        + local_dir[..., 1:2] * bitangent
        + local_dir[..., 2:3] * normal
    )


def cosine_direction(u1: FloatArray, u2: FloatArray) -> FloatArray:
    """Cosine-weighted direction in the local z-up hemisphere."""
    r = np.sqrt(u1)
    phi = 2.0 * np.pi * u2
    z = np.sqrt(np.maximum(1.0 - u1, 0.0))
    return np.stack([r * np.cos(phi), r * np.sin(phi), z], axis=-1)


def sample_cosine_hemisphere(
    normal: FloatArray,
    u1: FloatArray,
    u2: FloatArray,
) -> tuple[FloatArray, FloatArray]:
    """Cosine-weighted hemisphere sampling around unit normals.

    Args:
        normal: Unit normals defining the hemispheres, shape (N, 3).
        u1: Uniform numbers in [0, 1), shape (N,).
        u2: Uniform numbers in [0, 1), shape (N,).

    Returns:
        A tuple of (direction, pdf) where pdf = cos(theta) / pi.
    """
    local_dir = cosine_direction(u1, u2)
    tangent, bitangent, n = build_onb_from_normal(normal)
    world_dir = local_to_world(local_dir, tangent, bitangent, n)
    pdf = np.maximum(dot(world_dir, normal), 0.0) / np.pi
    return world_dir, pdf


def sample_uniform_sphere(u1: FloatArray, u2: FloatArray) -> FloatArray:
    """Uniformly distributed unit vectors."""
    z = 1.0 - 2.0 * u1
    r = np.sqrt(np.maximum(1.0 - z * z, 0.0))
    phi = 2.0 * np.pi * u2
    return np.stack([r * np.cos(phi), r * np.sin(phi), z], axis=-1)


def sample_in_unit_ball(u1: FloatArray, u2: FloatArray, u3: FloatArray) -> FloatArray:
    """Uniformly distributed points inside the unit ball."""
    return sample_uniform_sphere(u1, u2) * np.cbrt(u3)[..., None]


def sample_in_unit_disk(u1: FloatArray, u2: FloatArray) -> FloatArray:
    """Uniformly distributed points on the unit disk, shape (N, 2)."""
    r = np.sqrt(u1)
    phi = 2.0 * np.pi * u2
    return np.stack([r * np.cos(phi), r * np.sin(phi)], axis=-1)
