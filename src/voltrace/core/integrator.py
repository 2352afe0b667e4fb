"""Path tracing integrator for Monte Carlo light transport.

This module implements unbiased path tracing with material-based scattering,
volumetric transport through participating media, next-event estimation to
point lights and Russian roulette termination.

The path tracer solves the rendering equation by tracing rays from the camera
through the scene, bouncing off surfaces according to their material properties,
and accumulating radiance along each path. Paths are traced as batches: every
bounce advances all still-active paths of a tile at once, keeping a running
throughput per path.

Key features:
    - Material dispatch by material id (Lambertian, Metal, Glossy, Dielectric, DiffuseLight)
    - Woodcock (delta) tracking inside volume primitives
    - Next-event estimation to point lights through BSDFs and phase functions
    - Russian roulette termination after a minimum number of bounces
    - Self-intersection avoidance with ray offset

Light sources are never counted twice: area lights (DiffuseLight surfaces)
are only collected when a sampled path hits them, point lights only through
shadow rays.

All random numbers come from the CMJ sampler, keyed by (pixel, sample index,
dimension), so a path does not depend on which thread traces it.

Example:
    >>> integrator = PathIntegrator(max_depth=8)
    >>> sampler = CMJSampler(samples_per_pixel=4, seed=42)
    >>> color = integrator.trace(camera.get_ray(0.5, 0.5), scene, sampler)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from voltrace.camera.perspective import PerspectiveCamera
from voltrace.core.framebuffer import Tile
from voltrace.core.ray import T_MIN, FloatArray, Ray, RayBatch, offset_ray_origin
from voltrace.core.sampler import DIM_LENS, DIM_PIXEL, DIM_TIME, CMJSampler, dimension_key
from voltrace.geometry.hit import HitBatch
from voltrace.media.medium import Medium
from voltrace.scene.scene import Scene

logger = logging.getLogger(__name__)

# =============================================================================
# Rendering Constants
# =============================================================================

# Maximum ray bounces (path length)
MAX_DEPTH = 50

# Minimum bounces before Russian roulette can terminate paths
MIN_BOUNCES_BEFORE_RR = 3

# Russian roulette survival probability cap
MAX_RR_PROBABILITY = 0.95

# Volume boundaries a path may pass through without scattering
MAX_VOLUME_CROSSINGS = 16

# Shadow rays stop this fraction short of the light
SHADOW_EPSILON = 1e-4

# Sampler dimension slots, combined with the bounce number by dimension_key()
SLOT_BSDF = 0
SLOT_BSDF_LOBE = 1
SLOT_PHASE = 2
SLOT_RR = 3
SLOT_TRACK = 4
SLOT_SHADOW_TRACK = 5


@dataclass
class TileResult:
    """Local render buffers of one tile.

    Attributes:
        tile: The rendered tile.
        radiance_sum: Summed radiance, shape (tile.height, tile.width, 3).
        sample_count: Samples per pixel, shape (tile.height, tile.width).
        discarded: Number of non-finite or negative samples replaced by zero.
    """

    tile: Tile
    radiance_sum: FloatArray
    sample_count: npt.NDArray[np.int64]
    discarded: int = 0


@dataclass
class _Paths:
    """Mutable per-path state of a batch being traced."""

    origins: FloatArray
    directions: FloatArray
    t_min: FloatArray
    times: FloatArray
    pixel_ids: npt.NDArray[np.int64]
    sample_indices: npt.NDArray[np.int64]
    radiance: FloatArray
    throughput: FloatArray
    depth: npt.NDArray[np.int64]
    crossings: npt.NDArray[np.int64]
    active: npt.NDArray[np.bool_]


@dataclass(frozen=True)
class PathIntegrator:
    """Unidirectional path tracer with volumetric transport.

    Attributes:
        max_depth: Maximum number of scattering events per path.
        russian_roulette: Enable probabilistic path termination.
        rr_min_depth: Bounces before Russian roulette may terminate a path.
        rr_max_probability: Cap on the survival probability.
        max_volume_crossings: Volume boundaries a path may cross without
            scattering before it is terminated.

    Raises:
        ValueError: If a depth or probability parameter is out of range.
    """

    max_depth: int = MAX_DEPTH
    russian_roulette: bool = True
    rr_min_depth: int = MIN_BOUNCES_BEFORE_RR
    rr_max_probability: float = MAX_RR_PROBABILITY
    max_volume_crossings: int = MAX_VOLUME_CROSSINGS

    def __post_init__(self) -> None:
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be at least 1, got {self.max_depth}")
        if self.rr_min_depth < 0:
            raise ValueError(f"rr_min_depth must be non-negative, got {self.rr_min_depth}")
        if not 0.0 < self.rr_max_probability <= 1.0:
            raise ValueError(f"rr_max_probability must be in (0, 1], got {self.rr_max_probability}")
        if self.max_volume_crossings < 0:
            raise ValueError(f"max_volume_crossings must be non-negative, got {self.max_volume_crossings}")

    # =========================================================================
    # Public API
    # =========================================================================

    def trace(
        self,
        ray: Ray,
        scene: Scene,
        sampler: CMJSampler,
        depth: int | None = None,
        pixel_id: int = 0,
        sample_index: int = 0,
    ) -> FloatArray:
        """Estimate the radiance arriving along a single ray.

        Args:
            ray: The camera ray.
            scene: The scene to render.
            sampler: Source of all random numbers.
            depth: Optional override of max_depth.
            pixel_id: Pixel id used to key the sampler.
            sample_index: Sample index used to key the sampler.

        Returns:
            RGB radiance, shape (3,).
        """
        rays = RayBatch.from_rays([ray])
        radiance = self.trace_batch(
            rays,
            scene,
            sampler,
            np.array([pixel_id]),
            np.array([sample_index]),
            max_depth=depth,
        )
        return radiance[0]

    def trace_batch(
        self,
        rays: RayBatch,
        scene: Scene,
        sampler: CMJSampler,
        pixel_ids: npt.ArrayLike,
        sample_indices: npt.ArrayLike,
        max_depth: int | None = None,
    ) -> FloatArray:
        """Radiance estimates for a batch of rays, shape (N, 3).

        Non-finite or negative estimates are replaced by zero.
        """
        radiance, _ = self._trace(rays, scene, sampler, pixel_ids, sample_indices, max_depth)
        return radiance

    def render_tile(
        self,
        scene: Scene,
        camera: PerspectiveCamera,
        sampler: CMJSampler,
        tile: Tile,
        width: int,
        height: int,
    ) -> TileResult:
        """Render all samples of one tile into local buffers.

        Samples are accumulated in sample-index order, so the result depends
        only on the tile, never on the worker that rendered it.
        """
        px, py = tile.pixel_coords()
        pixel_ids = py * width + px
        sums = np.zeros((tile.height, tile.width, 3))
        counts = np.zeros((tile.height, tile.width), dtype=np.int64)
        discarded = 0

        for s in range(sampler.samples_per_pixel):
            sample_indices = np.full(pixel_ids.shape, s, dtype=np.int64)
            u_pixel = sampler.sample_2d(pixel_ids, sample_indices, DIM_PIXEL)
            u_lens = sampler.sample_2d(pixel_ids, sample_indices, DIM_LENS)
            u_time = sampler.sample_1d(pixel_ids, sample_indices, DIM_TIME)
            rays = camera.generate_rays(px, py, width, height, u_pixel, u_lens, u_time)

            radiance, bad = self._trace(rays, scene, sampler, pixel_ids, sample_indices)
            sums += radiance.reshape(tile.height, tile.width, 3)
            counts += 1
            discarded += bad

        return TileResult(tile, sums, counts, discarded)

    # =========================================================================
    # Path Tracing Core
    # =========================================================================

    def _trace(
        self,
        rays: RayBatch,
        scene: Scene,
        sampler: CMJSampler,
        pixel_ids: npt.ArrayLike,
        sample_indices: npt.ArrayLike,
        max_depth: int | None = None,
    ) -> tuple[FloatArray, int]:
        n = len(rays)
        max_depth = self.max_depth if max_depth is None else max_depth
        paths = _Paths(
            origins=rays.origins.copy(),
            directions=rays.directions.copy(),
            t_min=rays.t_min.copy(),
            times=rays.times.copy(),
            pixel_ids=np.broadcast_to(np.asarray(pixel_ids, dtype=np.int64), (n,)).copy(),
            sample_indices=np.broadcast_to(np.asarray(sample_indices, dtype=np.int64), (n,)).copy(),
            radiance=np.zeros((n, 3)),
            throughput=np.ones((n, 3)),
            depth=np.zeros(n, dtype=np.int64),
            crossings=np.zeros(n, dtype=np.int64),
            active=np.ones(n, dtype=bool),
        )

        with np.errstate(invalid="ignore", over="ignore", divide="ignore"):
            while np.any(paths.active):
                self._step(paths, scene, sampler, max_depth)

        radiance = paths.radiance
        bad = ~np.all(np.isfinite(radiance), axis=1) | np.any(radiance < 0.0, axis=1)
        discarded = int(np.count_nonzero(bad))
        if discarded:
            logger.debug("Discarded %d non-finite or negative radiance samples", discarded)
            radiance[bad] = 0.0
        return radiance, discarded

    def _step(self, paths: _Paths, scene: Scene, sampler: CMJSampler, max_depth: int) -> None:
        """Advance every active path to its next event."""
        idx = np.flatnonzero(paths.active)
        depth_before = paths.depth.copy()
        rays = RayBatch(
            origins=paths.origins[idx],
            directions=paths.directions[idx],
            t_min=paths.t_min[idx],
            t_max=np.full(idx.size, np.inf),
            times=paths.times[idx],
        )
        hits = scene.intersect_batch(rays, include_volumes=True)

        # Miss - add background contribution
        missed = ~hits.hit
        if np.any(missed):
            rows = idx[missed]
            paths.radiance[rows] += paths.throughput[rows] * scene.background
            paths.active[rows] = False

        surface_rows = [idx[hits.hit & (hits.medium_id < 0)]]
        surface_hits = [hits.take(hits.hit & (hits.medium_id < 0))]

        volume = hits.hit & (hits.medium_id >= 0)
        if np.any(volume):
            inner_rows, inner_hits = self._volume_events(
                paths, scene, sampler, idx[volume], hits.take(volume), rays.take(volume)
            )
            surface_rows.append(inner_rows)
            surface_hits.append(inner_hits)

        rows = np.concatenate(surface_rows)
        if rows.size:
            self._shade_surfaces(paths, scene, sampler, rows, HitBatch.concatenate(surface_hits))

        self._terminate(paths, sampler, max_depth, paths.depth > depth_before)

    # =========================================================================
    # Volumes
    # =========================================================================

    def _volume_events(
        self,
        paths: _Paths,
        scene: Scene,
        sampler: CMJSampler,
        rows: npt.NDArray[np.intp],
        hits: HitBatch,
        rays: RayBatch,
    ) -> tuple[npt.NDArray[np.intp], HitBatch]:
        """Delta-track through the volumes hit by `rows`.

        Returns the rows that left the medium at a surface, together with
        their surface hits, for regular shading.
        """
        t_enter = hits.t
        t_exit = hits.t_far

        # Surfaces inside the volume span end the tracked segment
        inner = scene.intersect_batch(
            RayBatch(rays.origins, rays.directions, t_enter, t_exit, rays.times),
            include_volumes=False,
        )
        seg_end = np.where(inner.hit, inner.t, t_exit)
        entry = rays.origins + t_enter[:, None] * rays.directions

        scattered = np.zeros(rows.size, dtype=bool)
        distance = np.zeros(rows.size)
        for medium_id in np.unique(hits.medium_id).tolist():
            sel = np.flatnonzero(hits.medium_id == medium_id)
            medium = scene.media[medium_id]
            global_rows = rows[sel]

            def draw(step: int, local: npt.NDArray[np.intp], global_rows=global_rows):
                r = global_rows[local]
                dim = dimension_key(paths.depth[r], SLOT_TRACK, paths.crossings[r], step)
                u = sampler.sample_2d(paths.pixel_ids[r], paths.sample_indices[r], dim)
                return u[:, 0], u[:, 1]

            events = medium.sample_distances(
                entry[sel], rays.directions[sel], seg_end[sel] - t_enter[sel], draw
            )
            scattered[sel] = events.scattered
            distance[sel] = events.distance

            if np.any(events.scattered):
                s = sel[events.scattered]
                self._scatter_in_medium(
                    paths, scene, sampler, rows[s], medium, entry[s] + distance[s, None] * rays.directions[s]
                )

        # Exit through a surface inside the volume
        at_surface = ~scattered & inner.hit
        # Exit through the far boundary: continue behind it
        passed = ~scattered & ~inner.hit
        if np.any(passed):
            r = rows[passed]
            paths.t_min[r] = np.nextafter(t_exit[passed], np.inf)
            paths.crossings[r] += 1
            capped = paths.crossings[r] > self.max_volume_crossings
            if np.any(capped):
                logger.debug("Terminated %d paths at the volume crossing cap", np.count_nonzero(capped))
                paths.active[r[capped]] = False

        return rows[at_surface], inner.take(at_surface)

    def _scatter_in_medium(
        self,
        paths: _Paths,
        scene: Scene,
        sampler: CMJSampler,
        rows: npt.NDArray[np.intp],
        medium: Medium,
        points: FloatArray,
    ) -> None:
        """Real collision: attenuate by the albedo, add direct light, pick a new direction."""
        wo = paths.directions[rows]
        paths.throughput[rows] *= medium.albedo

        if scene.lights:
            def phase_eval(wi: FloatArray, sub: npt.NDArray[np.intp]) -> FloatArray:
                return medium.phase.evaluate(wo[sub], wi)[:, None] * np.ones(3)

            self._direct_light(paths, scene, sampler, rows, points, None, phase_eval)

        dim = dimension_key(paths.depth[rows], SLOT_PHASE)
        u = sampler.sample_2d(paths.pixel_ids[rows], paths.sample_indices[rows], dim)
        paths.directions[rows] = medium.phase.sample(wo, u)
        paths.origins[rows] = points
        paths.t_min[rows] = 0.0
        paths.depth[rows] += 1

    # =========================================================================
    # Surfaces
    # =========================================================================

    def _shade_surfaces(
        self,
        paths: _Paths,
        scene: Scene,
        sampler: CMJSampler,
        rows: npt.NDArray[np.intp],
        hits: HitBatch,
    ) -> None:
        wo = paths.directions[rows]
        dim_bsdf = dimension_key(paths.depth[rows], SLOT_BSDF)
        dim_lobe = dimension_key(paths.depth[rows], SLOT_BSDF_LOBE)
        u2 = sampler.sample_2d(paths.pixel_ids[rows], paths.sample_indices[rows], dim_bsdf)
        u1 = sampler.sample_1d(paths.pixel_ids[rows], paths.sample_indices[rows], dim_lobe)
        u = np.column_stack([u2, u1])

        for material_id in np.unique(hits.material_id).tolist():
            sel = np.flatnonzero(hits.material_id == material_id)
            material = scene.materials[material_id]
            sub = hits.take(sel)
            r = rows[sel]

            # Add emission from hit surface (if emitter)
            paths.radiance[r] += paths.throughput[r] * material.emitted(sub)

            if scene.lights and not material.is_specular:
                def bsdf_eval(wi: FloatArray, k: npt.NDArray[np.intp], sub=sub, material=material, wo_sel=wo[sel]):
                    return material.evaluate(wo_sel[k], wi, sub.take(k))

                self._direct_light(paths, scene, sampler, r, sub.point, sub.normal, bsdf_eval)

            # Scatter ray according to material
            result = material.scatter(wo[sel], sub, u[sel])
            absorbed = ~result.scattered
            paths.active[r[absorbed]] = False

            keep = result.scattered
            rk = r[keep]
            directions = result.direction[keep]
            paths.throughput[rk] *= result.attenuation[keep]
            paths.origins[rk] = offset_ray_origin(sub.point[keep], sub.normal[keep], directions)
            paths.directions[rk] = directions
            paths.t_min[rk] = T_MIN
            paths.depth[rk] += 1

    # =========================================================================
    # Next-event estimation
    # =========================================================================

    def _direct_light(
        self,
        paths: _Paths,
        scene: Scene,
        sampler: CMJSampler,
        rows: npt.NDArray[np.intp],
        points: FloatArray,
        normals: FloatArray | None,
        evaluate,
    ) -> None:
        """Add the contribution of every point light seen from `points`.

        Shadow rays are blocked by surfaces and attenuated by a tracked
        transmittance estimate through every medium they cross.

        Args:
            rows: Path rows receiving the contribution.
            points: Shading points, shape (M, 3).
            normals: Surface normals for offsetting, or None inside media.
            evaluate: evaluate(wi, k) -> (K, 3) scattering weight for light
                arriving from wi at the shading points indexed by k.
        """
        for light_index, light in enumerate(scene.lights):
            wi, dist, incident = light.illuminate(points)
            k = np.flatnonzero(dist > 0.0)
            if k.size == 0:
                continue
            weight = evaluate(wi[k], k)
            useful = np.any(weight > 0.0, axis=1)
            k = k[useful]
            weight = weight[useful]
            if k.size == 0:
                continue

            origins = points[k]
            if normals is not None:
                origins = offset_ray_origin(origins, normals[k], wi[k])
            t_max = dist[k] * (1.0 - SHADOW_EPSILON)
            shadow = RayBatch.from_arrays(
                origins, wi[k], t_min=T_MIN if normals is not None else 0.0, t_max=t_max,
                times=paths.times[rows[k]],
            )
            visible = ~scene.occluded_batch(shadow)
            if scene.has_media and np.any(visible):
                vis_rows = np.flatnonzero(visible)
                path_rows = rows[k[vis_rows]]

                def draw(volume_index: int, step: int, local: npt.NDArray[np.intp]):
                    r = path_rows[local]
                    dim = dimension_key(
                        paths.depth[r], SLOT_SHADOW_TRACK, light_index, volume_index, step
                    )
                    u = sampler.sample_2d(paths.pixel_ids[r], paths.sample_indices[r], dim)
                    return u[:, 0], u[:, 1]

                transmittance = scene.transmittance(shadow.take(vis_rows), draw)
                visible[vis_rows] = transmittance > 0.0

            contribution = paths.throughput[rows[k]] * weight * incident[k]
            paths.radiance[rows[k]] += np.where(visible[:, None], contribution, 0.0)

    # =========================================================================
    # Termination
    # =========================================================================

    def _terminate(
        self,
        paths: _Paths,
        sampler: CMJSampler,
        max_depth: int,
        bounced: npt.NDArray[np.bool_],
    ) -> None:
        """Depth budget, zero throughput and Russian roulette.

        Roulette is played once per bounce, so paths that only crossed a
        volume boundary this step are left alone.
        """
        active = paths.active
        active &= paths.depth < max_depth
        active &= np.any(paths.throughput > 0.0, axis=1)

        if not self.russian_roulette:
            return
        candidates = np.flatnonzero(active & bounced & (paths.depth >= self.rr_min_depth))
        if candidates.size == 0:
            return
        survival = np.minimum(paths.throughput[candidates].max(axis=1), self.rr_max_probability)
        dim = dimension_key(paths.depth[candidates], SLOT_RR)
        u = sampler.sample_1d(paths.pixel_ids[candidates], paths.sample_indices[candidates], dim)
        survive = u < survival
        paths.active[candidates[~survive]] = False
        kept = candidates[survive]
        paths.throughput[kept] /= survival[survive][:, None]
