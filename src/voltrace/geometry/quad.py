"""Quad primitive with ray-quad intersection.

A quad is defined by:
- Q: A corner point of the quad
- u: Edge vector from Q to adjacent corner
- v: Edge vector from Q to other adjacent corner

The quad spans the parallelogram from Q to Q+u+v. The normal is
normalize(cross(u, v)), pointing in the direction given by the right-hand
rule.

Ray-quad intersection uses the parametric plane test:
1. Find where the ray intersects the plane containing the quad
2. Express the hit point in the (u, v) frame using w = n / (n . n) and
   check that both coordinates lie in [0, 1]

Example:
    >>> # Floor quad at y=0, spanning x=[0,1] and z=[0,1]
    >>> quad = Quad(Q=(0, 0, 0), u=(1, 0, 0), v=(0, 0, 1))
    >>> quad.area
    1.0
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray, as_vec3, cross, dot, length

# Rays closer to parallel than this are treated as misses
PARALLEL_EPSILON = 1e-8


@dataclass(frozen=True, eq=False)
class Quad:
    """A quad (parallelogram) defined by a corner point and two edge vectors.

    The quad represents the parallelogram with vertices at:
        Q, Q+u, Q+v, Q+u+v

    Attributes:
        Q: The corner point of the quad.
        u: Edge vector from Q to adjacent corner.
        v: Edge vector from Q to other adjacent corner.
    """

    Q: FloatArray
    u: FloatArray
    v: FloatArray

    def __post_init__(self) -> None:
        object.__setattr__(self, "Q", as_vec3(self.Q, "Q"))
        object.__setattr__(self, "u", as_vec3(self.u, "u"))
        object.__setattr__(self, "v", as_vec3(self.v, "v"))

    @property
    def normal(self) -> FloatArray:
        n = cross(self.u, self.v)
        return n / length(n)

    @property
    def area(self) -> float:
        return float(length(cross(self.u, self.v)))

    @property
    def center(self) -> FloatArray:
        return self.Q + 0.5 * (self.u + self.v)

    def bounds(self) -> FloatArray:
        corners = np.stack([self.Q, self.Q + self.u, self.Q + self.v, self.Q + self.u + self.v])
        return np.stack([corners.min(axis=0), corners.max(axis=0)])

    @property
    def is_degenerate(self) -> bool:
        finite = np.all(np.isfinite(self.Q)) and np.all(np.isfinite(self.u)) and np.all(np.isfinite(self.v))
        return not (finite and self.area > 0.0)


@dataclass
class QuadArrays:
    """Structure-of-arrays storage for all quads of a scene.

    The plane frame (normal, D, w) is precomputed once per quad.
    """

    Q: FloatArray
    u: FloatArray
    v: FloatArray
    normal: FloatArray
    D: FloatArray
    w: FloatArray

    @classmethod
    def from_shapes(cls, quads: Sequence[Quad]) -> QuadArrays:
        if not quads:
            z = np.zeros((0, 3))
            return cls(z, z, z, z, np.zeros(0), z)
        Q = np.array([q.Q for q in quads])
        u = np.array([q.u for q in quads])
        v = np.array([q.v for q in quads])
        n = cross(u, v)
        nn = dot(n, n)
        safe = np.where(nn > 0.0, nn, 1.0)
        normal = n / np.sqrt(safe)[:, None]
        D = dot(normal, Q)
        w = n / safe[:, None]
        return cls(Q, u, v, normal, D, w)

    def _plane_coords(
        self,
        kidx: npt.NDArray[np.intp],
        points: FloatArray,
    ) -> tuple[FloatArray, FloatArray]:
        hp = points - self.Q[kidx]
        w = self.w[kidx]
        alpha = dot(w, cross(hp, self.v[kidx]))
        beta = dot(w, cross(self.u[kidx], hp))
        return alpha, beta

    def intersect_t(
        self,
        kidx: npt.NDArray[np.intp],
        origins: FloatArray,
        directions: FloatArray,
        t_min: FloatArray,
        t_max: FloatArray,
        times: FloatArray,
    ) -> FloatArray:
        """Plane-hit distance inside the quad and [t_min, t_max], else inf."""
        normal = self.normal[kidx]
        denom = dot(normal, directions)
        facing = np.abs(denom) >= PARALLEL_EPSILON
        safe = np.where(facing, denom, 1.0)
        t = (self.D[kidx] - dot(normal, origins)) / safe
        points = origins + t[..., None] * directions
        alpha, beta = self._plane_coords(kidx, points)
        inside = (alpha >= 0.0) & (alpha <= 1.0) & (beta >= 0.0) & (beta <= 1.0)
        hit = facing & inside & (t >= t_min) & (t <= t_max)
        return np.where(hit, t, np.inf)

    def surface(
        self,
        kidx: npt.NDArray[np.intp],
        points: FloatArray,
        times: FloatArray,
    ) -> tuple[FloatArray, FloatArray, FloatArray]:
        alpha, beta = self._plane_coords(kidx, points)
        normal = self.normal[kidx]
        return normal, normal, np.stack([alpha, beta], axis=-1)
