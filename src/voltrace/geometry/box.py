"""Oriented box primitive (axis-aligned block rotated about the Y axis).

A Box is the classic Cornell box block: an axis-aligned block in its local
frame, rotated about Y and translated into place. Rays are transformed into
the local frame and intersected with the slab test, so a single primitive
replaces the six rectangles plus rotate/translate wrappers of a scene graph.

Boxes are convex, so they can also bound a participating medium.

Example:
    >>> tall = Box.from_corners((0, 0, 0), (165, 330, 165), rotate_y=15.0,
    ...                         translate=(265, 0, 295))
    >>> tall.half_extents
    array([ 82.5, 165. ,  82.5])
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray, as_vec3
from voltrace.geometry.aabb import slab_intervals


def rotation_y(degrees: float) -> FloatArray:
    """World-from-local rotation matrix about the Y axis."""
    theta = np.radians(degrees)
    c, s = np.cos(theta), np.sin(theta)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


@dataclass(frozen=True, eq=False)
class Box:
    """A box given by its center, half extents and rotation about Y.

    Attributes:
        center: World-space center of the box.
        half_extents: Half sizes along the local X, Y and Z axes.
        rotate_y: Rotation about the Y axis in degrees.
    """

    center: FloatArray
    half_extents: FloatArray
    rotate_y: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "center", as_vec3(self.center, "center"))
        object.__setattr__(self, "half_extents", as_vec3(self.half_extents, "half_extents"))
        object.__setattr__(self, "rotate_y", float(self.rotate_y))

    @classmethod
    def from_corners(
        cls,
        p_min: Sequence[float],
        p_max: Sequence[float],
        rotate_y: float = 0.0,
        translate: Sequence[float] = (0.0, 0.0, 0.0),
    ) -> Box:
        """Block between two corners, rotated about the origin then translated."""
        p_min = as_vec3(p_min, "p_min")
        p_max = as_vec3(p_max, "p_max")
        center = rotation_y(rotate_y) @ (0.5 * (p_min + p_max)) + as_vec3(translate, "translate")
        return cls(center, 0.5 * (p_max - p_min), rotate_y)

    @property
    def rotation(self) -> FloatArray:
        return rotation_y(self.rotate_y)

    def corners(self) -> FloatArray:
        signs = np.array([[sx, sy, sz] for sx in (-1, 1) for sy in (-1, 1) for sz in (-1, 1)], dtype=np.float64)
        return (signs * self.half_extents) @ self.rotation.T + self.center

    def bounds(self) -> FloatArray:
        corners = self.corners()
        return np.stack([corners.min(axis=0), corners.max(axis=0)])

    def contains(self, point: Sequence[float]) -> bool:
        local = self.rotation.T @ (as_vec3(point) - self.center)
        return bool(np.all(np.abs(local) <= self.half_extents))

    @property
    def is_degenerate(self) -> bool:
        finite = np.all(np.isfinite(self.center)) and np.all(np.isfinite(self.half_extents))
        return not (finite and np.all(self.half_extents > 0.0) and np.isfinite(self.rotate_y))


@dataclass
class BoxArrays:
    """Structure-of-arrays storage for all boxes of a scene.

    Attributes:
        center: Box centers, shape (K, 3).
        half: Half extents, shape (K, 3).
        rotation: World-from-local matrices, shape (K, 3, 3).
    """

    center: FloatArray
    half: FloatArray
    rotation: FloatArray

    @classmethod
    def from_shapes(cls, boxes: Sequence[Box]) -> BoxArrays:
        if not boxes:
            return cls(np.zeros((0, 3)), np.zeros((0, 3)), np.zeros((0, 3, 3)))
        return cls(
            np.array([b.center for b in boxes]),
            np.array([b.half_extents for b in boxes]),
            np.array([b.rotation for b in boxes]),
        )

    def _to_local(self, kidx: npt.NDArray[np.intp], vectors: FloatArray) -> FloatArray:
        inverse = np.swapaxes(self.rotation[kidx], -1, -2)
        return np.matmul(inverse, vectors[..., None])[..., 0]

    def span(
        self,
        kidx: npt.NDArray[np.intp],
        origins: FloatArray,
        directions: FloatArray,
        times: FloatArray,
    ) -> tuple[FloatArray, FloatArray]:
        """Entry and exit distances through the boxes; misses give (inf, -inf)."""
        center = self.center[kidx]
        half = self.half[kidx]
        o_local = self._to_local(kidx, origins - center)
        d_local = self._to_local(kidx, np.broadcast_to(directions, o_local.shape))
        with np.errstate(divide="ignore", over="ignore"):
            inv = 1.0 / d_local
        bounds = np.stack([-half, half], axis=-2)
        t_near, t_far = slab_intervals(o_local, inv, bounds)
        hit = t_near <= t_far
        return np.where(hit, t_near, np.inf), np.where(hit, t_far, -np.inf)

    def intersect_t(
        self,
        kidx: npt.NDArray[np.intp],
        origins: FloatArray,
        directions: FloatArray,
        t_min: FloatArray,
        t_max: FloatArray,
        times: FloatArray,
    ) -> FloatArray:
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
        """Outward face normal and face-local UV at hit points."""
        half = self.half[kidx]
        local = self._to_local(kidx, points - self.center[kidx])
        ratio = np.abs(local) / half
        axis = np.argmax(ratio, axis=-1)
        rows = np.arange(len(axis))

        normal_local = np.zeros_like(local)
        normal_local[rows, axis] = np.where(local[rows, axis] >= 0.0, 1.0, -1.0)
        normal = np.matmul(self.rotation[kidx], normal_local[..., None])[..., 0]

        # The two axes spanning the hit face
        a1 = (axis + 1) % 3
        a2 = (axis + 2) % 3
        u = 0.5 * (local[rows, a1] / half[rows, a1] + 1.0)
        v = 0.5 * (local[rows, a2] / half[rows, a2] + 1.0)
        return normal, normal, np.clip(np.stack([u, v], axis=-1), 0.0, 1.0)
