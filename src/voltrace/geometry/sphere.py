"""Sphere primitive with robust ray-sphere intersection.

This module provides the Sphere shape (optionally moving linearly between
two centers over the shutter interval) and its structure-of-arrays form used
by the primitive table.

Intersection uses the robust quadratic formulation from Ray Tracing Gems,
which avoids catastrophic cancellation when b^2 is nearly equal to 4ac:

    q  = -(h + sign(h) * sqrt(disc))
    t0 = q / a
    t1 = c / q

Spheres can also bound a participating medium, in which case the full
[t_enter, t_exit] span is used instead of the first surface hit.

Example:
    >>> sphere = Sphere(center=(0.0, 0.0, -1.0), radius=0.5)
    >>> sphere.bounds()
    array([[-0.5, -0.5, -1.5],
           [ 0.5,  0.5, -0.5]])
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray, as_vec3, dot


@dataclass(frozen=True, eq=False)
class Sphere:
    """A sphere defined by center point and radius.

    Attributes:
        center: Center at time 0.
        radius: The radius of the sphere (positive).
        center1: Center at time 1 for a moving sphere, or None if static.
    """

    center: FloatArray
    radius: float
    center1: FloatArray | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "center", as_vec3(self.center, "center"))
        object.__setattr__(self, "radius", float(self.radius))
        if self.center1 is not None:
            object.__setattr__(self, "center1", as_vec3(self.center1, "center1"))

    @property
    def is_moving(self) -> bool:
        return self.center1 is not None

    def center_at(self, time: float) -> FloatArray:
        """Center of the sphere at the given time in [0, 1]."""
        if self.center1 is None:
            return self.center
        return self.center + time * (self.center1 - self.center)

    def bounds(self) -> FloatArray:
        """Bounds enclosing the sphere over its whole motion, shape (2, 3)."""
        c1 = self.center if self.center1 is None else self.center1
        r = abs(self.radius)
        return np.stack([np.minimum(self.center, c1) - r, np.maximum(self.center, c1) + r])

    @property
    def is_degenerate(self) -> bool:
        c1 = self.center if self.center1 is None else self.center1
        return not (
            self.radius > 0.0
            and np.isfinite(self.radius)
            and np.all(np.isfinite(self.center))
            and np.all(np.isfinite(c1))
        )


@dataclass
class SphereArrays:
    """Structure-of-arrays storage for all spheres of a scene.

    Attributes:
        center0: Centers at time 0, shape (K, 3).
        center1: Centers at time 1, shape (K, 3). Equal to center0 for
            static spheres.
        radius: Radii, shape (K,).
    """

    center0: FloatArray
    center1: FloatArray
    radius: FloatArray

    @classmethod
    def from_shapes(cls, spheres: Sequence[Sphere]) -> SphereArrays:
        if not spheres:
            return cls(np.zeros((0, 3)), np.zeros((0, 3)), np.zeros(0))
        center0 = np.array([s.center for s in spheres])
        center1 = np.array([s.center if s.center1 is None else s.center1 for s in spheres])
        radius = np.array([s.radius for s in spheres], dtype=np.float64)
        return cls(center0, center1, radius)

    def centers(self, kidx: npt.NDArray[np.intp], times: FloatArray) -> FloatArray:
        """Centers of spheres kidx at the given times (broadcasting)."""
        c0 = self.center0[kidx]
        return c0 + times[..., None] * (self.center1[kidx] - c0)

    def span(
        self,
        kidx: npt.NDArray[np.intp],
        origins: FloatArray,
        directions: FloatArray,
        times: FloatArray,
    ) -> tuple[FloatArray, FloatArray]:
        """Entry and exit distances of rays through the spheres.

        Misses return (inf, -inf).
        """
        center = self.centers(kidx, times)
        radius = self.radius[kidx]
        oc = origins - center
        a = dot(directions, directions)
        h = dot(directions, oc)
        c = dot(oc, oc) - radius * radius
        disc = h * h - a * c
        sqrt_d = np.sqrt(np.maximum(disc, 0.0))

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            q = -(h + np.copysign(sqrt_d, h))
            t_a = q / a
            t_b = np.where(q != 0.0, c / q, t_a)

        hit = disc >= 0.0
        t_near = np.where(hit, np.minimum(t_a, t_b), np.inf)
        t_far = np.where(hit, np.maximum(t_a, t_b), -np.inf)
        return t_near, t_far

    def intersect_t(
        self,
        kidx: npt.NDArray[np.intp],
        origins: FloatArray,
        directions: FloatArray,
        t_min: FloatArray,
        t_max: FloatArray,
        times: FloatArray,
    ) -> FloatArray:
        """Nearest surface distance in [t_min, t_max], or inf on a miss."""
        t_near, t_far = self.span(kidx, origins, directions, times)
        near_ok = (t_near >= t_min) & (t_near <= t_max)
        far_ok = (t_far >= t_min) & (t_far <= t_max)
        return np.where(near_ok, t_near, np.where(far_ok, t_far, np.inf))

    def surface(
        self,
        kidx: npt.NDArray[np.intp],
        points: FloatArray,
        times: FloatArray,
    ) -> tuple[FloatArray, FloatArray, FloatArray]:
        """Outward geometric normal, shading normal and UV at hit points.

        UV follows the spherical mapping u = phi / 2pi, v = theta / pi with
        theta measured from -Y and phi around Y from -X.
        """
        center = self.centers(kidx, times)
        normal = (points - center) / self.radius[kidx][:, None]
        theta = np.arccos(np.clip(-normal[:, 1], -1.0, 1.0))
        phi = np.arctan2(-normal[:, 2], normal[:, 0]) + np.pi
        uv = np.stack([phi / (2.0 * np.pi), theta / np.pi], axis=-1)
        return normal, normal, uv
