"""Triangle and triangle-mesh primitives.

Triangles are intersected with the Moller-Trumbore algorithm. Mesh
triangles may carry per-vertex normals, which are interpolated with the
barycentric coordinates of the hit to give a smooth shading normal; the
geometric normal is always the face normal.

A TriangleMesh is a shared vertex array plus an index array. It is expanded
into individual Triangle primitives when added to a scene, so every mesh
face is an independent entry of the primitive table and the BVH.

Example:
    >>> mesh = TriangleMesh(
    ...     vertices=[(0, 0, 0), (1, 0, 0), (0, 1, 0), (1, 1, 0)],
    ...     faces=[(0, 1, 2), (1, 3, 2)],
    ... )
    >>> len(mesh.triangles())
    2
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray, as_vec3, cross, dot, length, normalize
from voltrace.geometry.box import rotation_y

# Determinant threshold below which a ray is parallel to the triangle
DET_EPSILON = 1e-12


@dataclass(frozen=True, eq=False)
class Triangle:
    """A triangle with optional per-vertex shading normals.

    Attributes:
        v0, v1, v2: Vertex positions, counter-clockwise seen from the front.
        normals: Optional (3, 3) array of vertex normals for v0, v1, v2.
    """

    v0: FloatArray
    v1: FloatArray
    v2: FloatArray
    normals: FloatArray | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "v0", as_vec3(self.v0, "v0"))
        object.__setattr__(self, "v1", as_vec3(self.v1, "v1"))
        object.__setattr__(self, "v2", as_vec3(self.v2, "v2"))
        if self.normals is not None:
            normals = np.asarray(self.normals, dtype=np.float64)
            if normals.shape != (3, 3):
                raise ValueError(f"Vertex normals must have shape (3, 3), got {normals.shape}")
            object.__setattr__(self, "normals", normalize(normals))

    @property
    def area(self) -> float:
        return 0.5 * float(length(cross(self.v1 - self.v0, self.v2 - self.v0)))

    @property
    def normal(self) -> FloatArray:
        return normalize(cross(self.v1 - self.v0, self.v2 - self.v0))

    def bounds(self) -> FloatArray:
        verts = np.stack([self.v0, self.v1, self.v2])
        return np.stack([verts.min(axis=0), verts.max(axis=0)])

    @property
    def is_degenerate(self) -> bool:
        verts = np.stack([self.v0, self.v1, self.v2])
        return not (np.all(np.isfinite(verts)) and self.area > 0.0)


@dataclass(frozen=True, eq=False)
class TriangleMesh:
    """An indexed triangle mesh.

    Attributes:
        vertices: Vertex positions, shape (V, 3).
        faces: Vertex indices per face, shape (F, 3).
        normals: Optional per-vertex normals, shape (V, 3).
    """

    vertices: FloatArray
    faces: npt.NDArray[np.int64]
    normals: FloatArray | None = None

    def __post_init__(self) -> None:
        vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)
        if faces.size and (faces.min() < 0 or faces.max() >= len(vertices)):
            raise ValueError("Face index out of range for vertex array")
        object.__setattr__(self, "vertices", vertices)
        object.__setattr__(self, "faces", faces)
        if self.normals is not None:
            normals = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)
            if normals.shape != vertices.shape:
                raise ValueError("Mesh normals must match the vertex array shape")
            object.__setattr__(self, "normals", normals)

    def with_vertex_normals(self) -> TriangleMesh:
        """Return a copy with area-weighted smooth vertex normals."""
        v0 = self.vertices[self.faces[:, 0]]
        v1 = self.vertices[self.faces[:, 1]]
        v2 = self.vertices[self.faces[:, 2]]
        face_normals = cross(v1 - v0, v2 - v0)
        accum = np.zeros_like(self.vertices)
        for corner in range(3):
            np.add.at(accum, self.faces[:, corner], face_normals)
        return TriangleMesh(self.vertices, self.faces, normalize(accum))

    def transformed(
        self,
        rotate_y_degrees: float = 0.0,
        translate: Sequence[float] = (0.0, 0.0, 0.0),
    ) -> TriangleMesh:
        """Rotate about the Y axis, then translate."""
        rot = rotation_y(rotate_y_degrees)
        vertices = self.vertices @ rot.T + as_vec3(translate, "translate")
        normals = None if self.normals is None else self.normals @ rot.T
        return TriangleMesh(vertices, self.faces, normals)

    def triangles(self) -> list[Triangle]:
        result = []
        for face in self.faces:
            normals = None if self.normals is None else self.normals[face]
            result.append(Triangle(*self.vertices[face], normals=normals))
        return result


@dataclass
class TriangleArrays:
    """Structure-of-arrays storage for all triangles of a scene."""

    v0: FloatArray
    e1: FloatArray
    e2: FloatArray
    vertex_normals: FloatArray
    smooth: npt.NDArray[np.bool_]
    face_normal: FloatArray

    @classmethod
    def from_shapes(cls, triangles: Sequence[Triangle]) -> TriangleArrays:
        if not triangles:
            z = np.zeros((0, 3))
            return cls(z, z, z, np.zeros((0, 3, 3)), np.zeros(0, dtype=bool), z)
        v0 = np.array([t.v0 for t in triangles])
        e1 = np.array([t.v1 for t in triangles]) - v0
        e2 = np.array([t.v2 for t in triangles]) - v0
        face_normal = normalize(cross(e1, e2))
        smooth = np.array([t.normals is not None for t in triangles])
        vertex_normals = np.array(
            [t.normals if t.normals is not None else np.tile(n, (3, 1)) for t, n in zip(triangles, face_normal)]
        )
        return cls(v0, e1, e2, vertex_normals, smooth, face_normal)

    def _barycentric(
        self,
        kidx: npt.NDArray[np.intp],
        origins: FloatArray,
        directions: FloatArray,
    ) -> tuple[FloatArray, FloatArray, FloatArray, npt.NDArray[np.bool_]]:
        e1 = self.e1[kidx]
        e2 = self.e2[kidx]
        pvec = cross(directions, e2)
        det = dot(e1, pvec)
        ok = np.abs(det) > DET_EPSILON
        inv_det = 1.0 / np.where(ok, det, 1.0)
        tvec = origins - self.v0[kidx]
        u = dot(tvec, pvec) * inv_det
        qvec = cross(tvec, e1)
        v = dot(directions, qvec) * inv_det
        t = dot(e2, qvec) * inv_det
        return t, u, v, ok

    def intersect_t(
        self,
        kidx: npt.NDArray[np.intp],
        origins: FloatArray,
        directions: FloatArray,
        t_min: FloatArray,
        t_max: FloatArray,
        times: FloatArray,
    ) -> FloatArray:
        t, u, v, ok = self._barycentric(kidx, origins, directions)
        hit = ok & (u >= 0.0) & (v >= 0.0) & (u + v <= 1.0) & (t >= t_min) & (t <= t_max)
        return np.where(hit, t, np.inf)

    def surface(
        self,
        kidx: npt.NDArray[np.intp],
        points: FloatArray,
        times: FloatArray,
    ) -> tuple[FloatArray, FloatArray, FloatArray]:
        """Face normal, interpolated shading normal and barycentric UV."""
        # Barycentrics from the hit point via sub-triangle areas
        v0 = self.v0[kidx]
        e1 = self.e1[kidx]
        e2 = self.e2[kidx]
        d = points - v0
        d00 = dot(e1, e1)
        d01 = dot(e1, e2)
        d11 = dot(e2, e2)
        d20 = dot(d, e1)
        d21 = dot(d, e2)
        denom = d00 * d11 - d01 * d01
        denom = np.where(denom != 0.0, denom, 1.0)
        u = (d11 * d20 - d01 * d21) / denom
        v = (d00 * d21 - d01 * d20) / denom
        w = 1.0 - u - v

        face = self.face_normal[kidx]
        vn = self.vertex_normals[kidx]
        shading = normalize(w[:, None] * vn[:, 0] + u[:, None] * vn[:, 1] + v[:, None] * vn[:, 2])
        usable = self.smooth[kidx] & (length(shading) > 0.0)
        shading = np.where(usable[:, None], shading, face)
        return face, shading, np.stack([u, v], axis=-1)
