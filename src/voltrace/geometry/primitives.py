"""Closed tagged-variant primitive table.

Every primitive of a scene is one row of the PrimitiveTable:

    kind        PrimitiveKind tag (SPHERE, TRIANGLE, QUAD, BOX)
    kind_index  row inside the per-kind structure-of-arrays storage
    material_id surface material, or -1 for medium boundaries
    medium_id   participating medium bounded by the primitive, or -1
    bounds      padded world-space bounds, shape (2, 3)

The row index is the primitive id, i.e. the insertion order, which is also
the tie-break order for equal-distance hits.

Dispatch is a plain lookup on the tag: every per-kind storage class exposes
the same `intersect_t` / `surface` routines, and the convex kinds (spheres and
boxes) also expose `span`, which makes them usable as volume boundaries.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Sequence, Union

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray, dot
from voltrace.geometry.aabb import pad_bounds
from voltrace.geometry.box import Box, BoxArrays
from voltrace.geometry.hit import NO_ID, HitBatch
from voltrace.geometry.quad import Quad, QuadArrays
from voltrace.geometry.sphere import Sphere, SphereArrays
from voltrace.geometry.triangle import Triangle, TriangleArrays

Shape = Union[Sphere, Triangle, Quad, Box]


class PrimitiveKind(IntEnum):
    """Primitive variant tags."""

    SPHERE = 0
    TRIANGLE = 1
    QUAD = 2
    BOX = 3


_KIND_OF_SHAPE: dict[type, PrimitiveKind] = {
    Sphere: PrimitiveKind.SPHERE,
    Triangle: PrimitiveKind.TRIANGLE,
    Quad: PrimitiveKind.QUAD,
    Box: PrimitiveKind.BOX,
}

# Kinds with a well-defined interior, usable as medium boundaries
VOLUME_KINDS = frozenset({PrimitiveKind.SPHERE, PrimitiveKind.BOX})


def kind_of(shape: Shape) -> PrimitiveKind:
    """Return the tag for a shape instance."""
    try:
        return _KIND_OF_SHAPE[type(shape)]
    except KeyError:
        raise ValueError(f"Unsupported primitive type: {type(shape).__name__}") from None


class PrimitiveTable:
    """Owns every primitive of a scene in tagged structure-of-arrays form.

    Args:
        shapes: Shapes in insertion order.
        material_ids: Material index per shape (-1 for volumes).
        medium_ids: Medium index per shape, -1 for plain surfaces.

    Raises:
        ValueError: If the id arrays do not match the shapes, or if a
            non-convex kind is given a medium.
    """

    def __init__(
        self,
        shapes: Sequence[Shape],
        material_ids: Sequence[int],
        medium_ids: Sequence[int] | None = None,
    ) -> None:
        n = len(shapes)
        if medium_ids is None:
            medium_ids = [NO_ID] * n
        if len(material_ids) != n or len(medium_ids) != n:
            raise ValueError(
                f"Expected {n} material and medium ids, got {len(material_ids)} and {len(medium_ids)}"
            )

        self.shapes: tuple[Shape, ...] = tuple(shapes)
        self.kind = np.array([kind_of(s) for s in shapes], dtype=np.int8).reshape(n)
        self.material_id = np.asarray(material_ids, dtype=np.int64).reshape(n)
        self.medium_id = np.asarray(medium_ids, dtype=np.int64).reshape(n)
        self.kind_index = np.zeros(n, dtype=np.int64)

        for i in np.flatnonzero(self.medium_id >= 0):
            if PrimitiveKind(self.kind[i]) not in VOLUME_KINDS:
                raise ValueError(
                    f"Primitive {i} of kind {PrimitiveKind(self.kind[i]).name} cannot bound a medium"
                )

        per_kind: dict[PrimitiveKind, list[Shape]] = {k: [] for k in PrimitiveKind}
        for i, shape in enumerate(shapes):
            k = PrimitiveKind(self.kind[i])
            self.kind_index[i] = len(per_kind[k])
            per_kind[k].append(shape)

        self.spheres = SphereArrays.from_shapes(per_kind[PrimitiveKind.SPHERE])
        self.triangles = TriangleArrays.from_shapes(per_kind[PrimitiveKind.TRIANGLE])
        self.quads = QuadArrays.from_shapes(per_kind[PrimitiveKind.QUAD])
        self.boxes = BoxArrays.from_shapes(per_kind[PrimitiveKind.BOX])
        self._storage = {
            PrimitiveKind.SPHERE: self.spheres,
            PrimitiveKind.TRIANGLE: self.triangles,
            PrimitiveKind.QUAD: self.quads,
            PrimitiveKind.BOX: self.boxes,
        }

        if n:
            raw = np.array([s.bounds() for s in shapes], dtype=np.float64)
        else:
            raw = np.zeros((0, 2, 3))
        finite = np.all(np.isfinite(raw), axis=(1, 2))
        self.degenerate = np.array([s.is_degenerate for s in shapes], dtype=bool).reshape(n) | ~finite
        self.bounds = pad_bounds(np.where(finite[:, None, None], raw, 0.0))
        self.centroids = 0.5 * (self.bounds[:, 0] + self.bounds[:, 1])

    def __len__(self) -> int:
        return len(self.shapes)

    @property
    def is_volume(self) -> npt.NDArray[np.bool_]:
        return self.medium_id >= 0

    @property
    def volume_ids(self) -> npt.NDArray[np.intp]:
        """Primitive ids of the non-degenerate medium boundaries."""
        return np.flatnonzero(self.is_volume & ~self.degenerate)

    def storage(self, kind: PrimitiveKind):
        return self._storage[PrimitiveKind(kind)]

    # =========================================================================
    # Intersection dispatch
    # =========================================================================

    def intersect_t(
        self,
        kind: PrimitiveKind,
        volume: bool,
        kidx: npt.NDArray[np.intp],
        origins: FloatArray,
        directions: FloatArray,
        t_min: FloatArray,
        t_max: FloatArray,
        times: FloatArray,
    ) -> FloatArray:
        """Hit distances of rays against a group of same-kind primitives.

        Arguments broadcast: typically origins (n, 1, 3) and kidx (k,) give an
        (n, k) distance grid with inf for misses. Volume primitives report
        their entry distance clamped to t_min.
        """
        storage = self._storage[kind]
        if not volume:
            return storage.intersect_t(kidx, origins, directions, t_min, t_max, times)
        t_near, t_far = storage.span(kidx, origins, directions, times)
        start = np.maximum(t_near, t_min)
        inside = (t_near <= t_far) & (t_far > t_min) & (start <= t_max)
        return np.where(inside, start, np.inf)

    def span(
        self,
        prim_id: int,
        origins: FloatArray,
        directions: FloatArray,
        times: FloatArray,
    ) -> tuple[FloatArray, FloatArray]:
        """Entry/exit distances of rays through one volume primitive."""
        kind = PrimitiveKind(self.kind[prim_id])
        kidx = np.full(len(origins), self.kind_index[prim_id])
        return self._storage[kind].span(kidx, origins, directions, times)

    def describe_hits(
        self,
        prim_ids: npt.NDArray[np.int64],
        t: FloatArray,
        origins: FloatArray,
        directions: FloatArray,
        times: FloatArray,
    ) -> HitBatch:
        """Build full hit records for the winning primitive of each ray.

        Rows with prim_id -1 are reported as misses.
        """
        n = len(prim_ids)
        hits = HitBatch.misses(n)
        found = prim_ids >= 0
        if not np.any(found):
            return hits

        rows = np.flatnonzero(found)
        pids = prim_ids[rows]
        hits.hit[rows] = True
        hits.t[rows] = t[rows]
        hits.primitive_id[rows] = pids
        hits.material_id[rows] = self.material_id[pids]
        hits.medium_id[rows] = self.medium_id[pids]
        hits.point[rows] = origins[rows] + t[rows, None] * directions[rows]

        kinds = self.kind[pids]
        volumes = self.medium_id[pids] >= 0
        for kind in PrimitiveKind:
            storage = self._storage[kind]
            sel = (kinds == kind) & ~volumes
            if np.any(sel):
                r = rows[sel]
                kidx = self.kind_index[pids[sel]]
                outward, shading, uv = storage.surface(kidx, hits.point[r], times[r])
                front = dot(directions[r], outward) < 0.0
                sign = np.where(front, 1.0, -1.0)[:, None]
                hits.normal[r] = sign * outward
                hits.shading_normal[r] = sign * shading
                hits.front_face[r] = front
                hits.uv[r] = uv

            sel = (kinds == kind) & volumes
            if np.any(sel):
                r = rows[sel]
                kidx = self.kind_index[pids[sel]]
                _, t_far = storage.span(kidx, origins[r], directions[r], times[r])
                hits.t_far[r] = t_far
                hits.front_face[r] = True
                hits.normal[r] = -directions[r]
                hits.shading_normal[r] = -directions[r]
        return hits
