"""Immutable scene used during rendering.

A Scene bundles everything the integrator reads while rendering: the
primitive table, its BVH, the material and medium lists indexed by the ids
stored on primitives, the point lights and the background radiance. Scenes
are produced by SceneManager.build() and are shared read-only by all worker
threads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray, Ray, RayBatch
from voltrace.geometry.bvh import BVH
from voltrace.geometry.hit import HitBatch, HitRecord
from voltrace.geometry.primitives import PrimitiveTable
from voltrace.materials.material import Material
from voltrace.media.medium import Medium
from voltrace.scene.lights import PointLight

# Supplies a UniformDraw for the k-th volume crossed by a batch of shadow rays.
# Row indices passed to the draw refer to the full shadow ray batch.
VolumeDraw = Callable[[int, int, npt.NDArray[np.intp]], tuple[FloatArray, FloatArray]]


@dataclass(frozen=True, eq=False)
class Scene:
    """A built, read-only scene.

    Attributes:
        primitives: All primitives in insertion order.
        materials: Materials indexed by material id.
        media: Participating media indexed by medium id.
        lights: Point lights.
        background: Radiance returned by rays that escape the scene.
        bvh: Acceleration structure over the primitives.
    """

    primitives: PrimitiveTable
    materials: tuple[Material, ...]
    media: tuple[Medium, ...]
    lights: tuple[PointLight, ...]
    background: FloatArray
    bvh: BVH

    @property
    def has_media(self) -> bool:
        return self.primitives.volume_ids.size > 0

    # =========================================================================
    # Intersection queries
    # =========================================================================

    def intersect(self, ray: Ray) -> HitRecord | None:
        return self.bvh.intersect(ray)

    def intersect_any(self, ray: Ray) -> bool:
        return self.bvh.intersect_any(ray)

    def intersect_batch(self, rays: RayBatch, include_volumes: bool = True) -> HitBatch:
        return self.bvh.intersect_batch(rays, include_volumes=include_volumes)

    def occluded_batch(self, rays: RayBatch) -> npt.NDArray[np.bool_]:
        """Surface occlusion only; media are handled by `transmittance`."""
        return self.bvh.occluded_batch(rays, include_volumes=False)

    # =========================================================================
    # Media
    # =========================================================================

    def transmittance(self, rays: RayBatch, draw: VolumeDraw) -> FloatArray:
        """Tracked visibility of every ray through all media in its interval.

        Each volume the ray passes through contributes an independent binary
        delta-tracking estimate, so the result is 0 or 1 per ray.

        Args:
            rays: Shadow rays; only [t_min, t_max] is considered.
            draw: Uniform supplier called as draw(volume_index, step, rows).

        Returns:
            Transmittance estimates, shape (N,).
        """
        n = len(rays)
        result = np.ones(n)
        if n == 0:
            return result
        valid = rays.valid_mask()
        for k, prim_id in enumerate(self.primitives.volume_ids.tolist()):
            with np.errstate(invalid="ignore", divide="ignore"):
                t_near, t_far = self.primitives.span(prim_id, rays.origins, rays.directions, rays.times)
            start = np.maximum(t_near, rays.t_min)
            end = np.minimum(t_far, rays.t_max)
            rows = np.flatnonzero(valid & (end > start) & (result > 0.0))
            if rows.size == 0:
                continue

            medium = self.media[self.primitives.medium_id[prim_id]]
            origins = rays.origins[rows] + start[rows, None] * rays.directions[rows]

            def volume_draw(step: int, local: npt.NDArray[np.intp], k: int = k, rows=rows):
                return draw(k, step, rows[local])

            result[rows] *= medium.transmittance(
                origins, rays.directions[rows], end[rows] - start[rows], volume_draw
            )
        return result
