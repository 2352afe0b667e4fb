"""Hit record structures returned by intersection queries.

HitBatch is the structure-of-arrays result of a batched query: one row per
ray, with `hit` false for rays that found nothing. HitRecord is the scalar
view of a single row, used by the single-ray query API and by tests.

Normals are oriented against the incoming ray. `front_face` records whether
the ray arrived from the side the outward normal points to.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray

# Sentinel for "no material" / "no medium" / "no primitive"
NO_ID = -1


@dataclass(frozen=True, eq=False)
class HitRecord:
    """Record of the nearest intersection of a single ray.

    Attributes:
        t: Ray parameter at the intersection.
        point: World-space hit position.
        normal: Geometric normal, facing against the ray.
        shading_normal: Shading normal (interpolated for smooth meshes),
            on the same side as `normal`.
        front_face: True if the ray hit the outward-facing side.
        uv: Surface parameterization at the hit.
        primitive_id: Index of the primitive in the scene's primitive table.
        material_id: Material index, or -1 for medium boundaries.
        medium_id: Medium index for volume primitives, otherwise -1.
        t_far: Exit distance of the ray through a volume primitive.
    """

    t: float
    point: FloatArray
    normal: FloatArray
    shading_normal: FloatArray
    front_face: bool
    uv: FloatArray
    primitive_id: int
    material_id: int
    medium_id: int = NO_ID
    t_far: float = float("inf")

    @property
    def is_volume(self) -> bool:
        return self.medium_id != NO_ID


@dataclass
class HitBatch:
    """Intersection results for a batch of N rays."""

    hit: npt.NDArray[np.bool_]
    t: FloatArray
    point: FloatArray
    normal: FloatArray
    shading_normal: FloatArray
    front_face: npt.NDArray[np.bool_]
    uv: FloatArray
    primitive_id: npt.NDArray[np.int64]
    material_id: npt.NDArray[np.int64]
    medium_id: npt.NDArray[np.int64]
    t_far: FloatArray

    @classmethod
    def misses(cls, n: int) -> HitBatch:
        """A batch where no ray hit anything."""
        return cls(
            hit=np.zeros(n, dtype=bool),
            t=np.full(n, np.inf),
            point=np.zeros((n, 3)),
            normal=np.zeros((n, 3)),
            shading_normal=np.zeros((n, 3)),
            front_face=np.zeros(n, dtype=bool),
            uv=np.zeros((n, 2)),
            primitive_id=np.full(n, NO_ID, dtype=np.int64),
            material_id=np.full(n, NO_ID, dtype=np.int64),
            medium_id=np.full(n, NO_ID, dtype=np.int64),
            t_far=np.full(n, np.inf),
        )

    def __len__(self) -> int:
        return self.hit.shape[0]

    def take(self, index: npt.ArrayLike) -> HitBatch:
        """Select rows by integer index array or boolean mask."""
        return HitBatch(
            hit=self.hit[index],
            t=self.t[index],
            point=self.point[index],
            normal=self.normal[index],
            shading_normal=self.shading_normal[index],
            front_face=self.front_face[index],
            uv=self.uv[index],
            primitive_id=self.primitive_id[index],
            material_id=self.material_id[index],
            medium_id=self.medium_id[index],
            t_far=self.t_far[index],
        )

    @classmethod
    def concatenate(cls, batches: list[HitBatch]) -> HitBatch:
        if not batches:
            return cls.misses(0)
        return cls(
            hit=np.concatenate([b.hit for b in batches]),
            t=np.concatenate([b.t for b in batches]),
            point=np.concatenate([b.point for b in batches]),
            normal=np.concatenate([b.normal for b in batches]),
            shading_normal=np.concatenate([b.shading_normal for b in batches]),
            front_face=np.concatenate([b.front_face for b in batches]),
            uv=np.concatenate([b.uv for b in batches]),
            primitive_id=np.concatenate([b.primitive_id for b in batches]),
            material_id=np.concatenate([b.material_id for b in batches]),
            medium_id=np.concatenate([b.medium_id for b in batches]),
            t_far=np.concatenate([b.t_far for b in batches]),
        )

    def record(self, i: int) -> HitRecord | None:
        """Scalar view of row i, or None if that ray missed."""
        if not self.hit[i]:
            return None
        return HitRecord(
            t=float(self.t[i]),
            point=self.point[i].copy(),
            normal=self.normal[i].copy(),
            shading_normal=self.shading_normal[i].copy(),
            front_face=bool(self.front_face[i]),
            uv=self.uv[i].copy(),
            primitive_id=int(self.primitive_id[i]),
            material_id=int(self.material_id[i]),
            medium_id=int(self.medium_id[i]),
            t_far=float(self.t_far[i]),
        )
