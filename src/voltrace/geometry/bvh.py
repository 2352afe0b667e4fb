"""Bounding Volume Hierarchy over the primitive table.

The tree is stored as an arena of flat arrays indexed by node id:

    node_bounds  (M, 2, 3)  node bounding boxes
    node_left    (M,)       left child id, -1 for leaves
    node_right   (M,)       right child id, -1 for leaves
    node_start   (M,)       leaf: first slot in prim_order
    node_count   (M,)       leaf: number of primitives
    node_axis    (M,)       internal: split axis

Construction partitions primitives by centroid along the longest centroid
extent, using either a 12-bucket binned surface area heuristic ("sah") or a
median split ("median"). Primitive ids inside a leaf are kept in ascending
order so that equal-distance hits resolve to the earliest inserted primitive.

Traversal is a packet traversal: a stack of (node, ray subset) pairs, where
each subset is culled by a vectorized slab test against the node bounds and
the per-ray best distance found so far. Children are visited near-first
according to the majority direction sign along the node's split axis.

Example:
    >>> table = PrimitiveTable([Sphere((0, 0, -1), 0.5)], material_ids=[0])
    >>> bvh = BVH.build(table)
    >>> bvh.intersect(make_ray((0, 0, 0), (0, 0, -1))).t
    0.5
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray, Ray, RayBatch
from voltrace.geometry.aabb import bounds_contain, slab_intervals, surface_areas, union_bounds
from voltrace.geometry.hit import NO_ID, HitBatch, HitRecord
from voltrace.geometry.primitives import PrimitiveKind, PrimitiveTable

logger = logging.getLogger(__name__)

SplitMethod = Literal["sah", "median"]

DEFAULT_LEAF_SIZE = 4
NUM_BUCKETS = 12

# Relative outward padding of node bounds against slab-test round-off
NODE_PADDING = 1e-9

# Rays per chunk when testing large primitive groups
LINEAR_CHUNK = 1024


@dataclass(frozen=True)
class LeafGroup:
    """Primitives of one leaf sharing a kind and a surface/volume role."""

    kind: PrimitiveKind
    volume: bool
    prim_ids: npt.NDArray[np.int64]
    kind_index: npt.NDArray[np.int64]


def make_leaf_groups(table: PrimitiveTable, prim_ids: npt.NDArray[np.int64]) -> tuple[LeafGroup, ...]:
    """Split a sorted primitive id list into per-kind dispatch groups."""
    kinds = table.kind[prim_ids]
    volumes = table.medium_id[prim_ids] >= 0
    groups = []
    for kind in PrimitiveKind:
        for volume in (False, True):
            sel = (kinds == kind) & (volumes == volume)
            if np.any(sel):
                ids = prim_ids[sel]
                groups.append(LeafGroup(kind, volume, ids, table.kind_index[ids]))
    return tuple(groups)


class Accelerator:
    """Query interface shared by the BVH and the brute-force oracle."""

    table: PrimitiveTable

    # =========================================================================
    # Single-ray API
    # =========================================================================

    def intersect(
        self,
        ray: Ray,
        t_min: float | None = None,
        t_max: float | None = None,
    ) -> HitRecord | None:
        """Nearest hit within [t_min, t_max], or None.

        The interval defaults to the ray's own interval.
        """
        return self.intersect_batch(self._single(ray, t_min, t_max)).record(0)

    def intersect_any(
        self,
        ray: Ray,
        t_min: float | None = None,
        t_max: float | None = None,
        include_volumes: bool = False,
    ) -> bool:
        """True if anything blocks the ray within [t_min, t_max]."""
        return bool(self.occluded_batch(self._single(ray, t_min, t_max), include_volumes)[0])

    @staticmethod
    def _single(ray: Ray, t_min: float | None, t_max: float | None) -> RayBatch:
        return RayBatch.from_arrays(
            ray.origin[None],
            ray.direction[None],
            ray.t_min if t_min is None else t_min,
            ray.t_max if t_max is None else t_max,
            ray.time,
        )

    # =========================================================================
    # Batch API
    # =========================================================================

    def intersect_batch(self, rays: RayBatch, include_volumes: bool = True) -> HitBatch:
        """Nearest hit for every ray of the batch."""
        best_t, best_prim = self._search(rays, include_volumes, any_hit=False)
        return self.table.describe_hits(best_prim, best_t, rays.origins, rays.directions, rays.times)

    def occluded_batch(self, rays: RayBatch, include_volumes: bool = False) -> npt.NDArray[np.bool_]:
        """Any-hit test for every ray of the batch."""
        _, best_prim = self._search(rays, include_volumes, any_hit=True)
        return best_prim >= 0

    def _search(
        self,
        rays: RayBatch,
        include_volumes: bool,
        any_hit: bool,
    ) -> tuple[FloatArray, npt.NDArray[np.int64]]:
        raise NotImplementedError

    def _test_groups(
        self,
        groups: tuple[LeafGroup, ...],
        idx: npt.NDArray[np.intp],
        rays: RayBatch,
        include_volumes: bool,
        best_t: FloatArray,
        best_prim: npt.NDArray[np.int64],
    ) -> None:
        """Intersect rays idx with every primitive of the groups, in place."""
        origins = rays.origins[idx][:, None, :]
        directions = rays.directions[idx][:, None, :]
        t_min = rays.t_min[idx][:, None]
        times = rays.times[idx][:, None]
        rows = np.arange(idx.size)

        for group in groups:
            if group.volume and not include_volumes:
                continue
            limit = np.minimum(rays.t_max[idx], best_t[idx])[:, None]
            with np.errstate(invalid="ignore", over="ignore", divide="ignore"):
                t = self.table.intersect_t(
                    group.kind, group.volume, group.kind_index, origins, directions, t_min, limit, times
                )
            t = np.where(np.isnan(t), np.inf, t)

            j = np.argmin(t, axis=1)
            tj = t[rows, j]
            pj = group.prim_ids[j]
            cur_t = best_t[idx]
            cur_p = best_prim[idx]
            better = np.isfinite(tj) & (
                (tj < cur_t) | ((tj == cur_t) & ((cur_p == NO_ID) | (pj < cur_p)))
            )
            best_t[idx[better]] = tj[better]
            best_prim[idx[better]] = pj[better]


class BVH(Accelerator):
    """Immutable bounding volume hierarchy.

    Args:
        table: The primitives to index. Degenerate primitives are excluded
            with a warning.
        leaf_size: Maximum number of primitives per leaf.
        split_method: "sah" (binned surface area heuristic) or "median".

    Raises:
        ValueError: If leaf_size < 1 or split_method is unknown.
        RuntimeError: If a node fails to enclose its subtree after build.
    """

    def __init__(
        self,
        table: PrimitiveTable,
        leaf_size: int = DEFAULT_LEAF_SIZE,
        split_method: SplitMethod = "sah",
    ) -> None:
        if leaf_size < 1:
            raise ValueError(f"leaf_size must be at least 1, got {leaf_size}")
        if split_method not in ("sah", "median"):
            raise ValueError(f"Unknown split method: {split_method}")

        self.table = table
        self.leaf_size = leaf_size
        self.split_method = split_method

        excluded = np.flatnonzero(table.degenerate)
        if excluded.size:
            logger.warning(
                "Excluding %d degenerate primitive(s) from BVH: ids %s",
                excluded.size,
                excluded[:32].tolist(),
            )
        self.excluded_ids = excluded

        self._bounds: list[FloatArray] = []
        self._left: list[int] = []
        self._right: list[int] = []
        self._start: list[int] = []
        self._count: list[int] = []
        self._axis: list[int] = []
        self._order: list[int] = []

        ids = np.flatnonzero(~table.degenerate).astype(np.int64)
        if ids.size:
            self._build_node(ids)

        self.node_bounds = np.array(self._bounds).reshape(-1, 2, 3)
        self.node_left = np.array(self._left, dtype=np.int64)
        self.node_right = np.array(self._right, dtype=np.int64)
        self.node_start = np.array(self._start, dtype=np.int64)
        self.node_count = np.array(self._count, dtype=np.int64)
        self.node_axis = np.array(self._axis, dtype=np.int64)
        self.prim_order = np.array(self._order, dtype=np.int64)
        del self._bounds, self._left, self._right, self._start, self._count, self._axis, self._order

        self._leaf_groups: dict[int, tuple[LeafGroup, ...]] = {
            node: make_leaf_groups(self.table, self.leaf_primitives(node))
            for node in np.flatnonzero(self.node_left < 0).tolist()
        }

        self.check_bounds()
        logger.debug(
            "Built BVH (%s) with %d nodes over %d primitives",
            split_method,
            len(self),
            ids.size,
        )

    @classmethod
    def build(
        cls,
        table: PrimitiveTable,
        leaf_size: int = DEFAULT_LEAF_SIZE,
        split_method: SplitMethod = "sah",
    ) -> BVH:
        return cls(table, leaf_size=leaf_size, split_method=split_method)

    def __len__(self) -> int:
        return len(self.node_left)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def leaf_primitives(self, node: int) -> npt.NDArray[np.int64]:
        """Primitive ids stored in a leaf node."""
        start = self.node_start[node]
        return self.prim_order[start : start + self.node_count[node]]

    def depth(self) -> int:
        if self.is_empty:
            return 0
        deepest = 0
        stack = [(0, 1)]
        while stack:
            node, d = stack.pop()
            deepest = max(deepest, d)
            if self.node_left[node] >= 0:
                stack.append((int(self.node_left[node]), d + 1))
                stack.append((int(self.node_right[node]), d + 1))
        return deepest

    # =========================================================================
    # Construction
    # =========================================================================

    def _build_node(self, ids: npt.NDArray[np.int64]) -> int:
        node = len(self._left)
        bounds = union_bounds(self.table.bounds[ids])
        pad = NODE_PADDING * (1.0 + np.abs(bounds))
        self._bounds.append(np.stack([bounds[0] - pad[0], bounds[1] + pad[1]]))
        self._left.append(-1)
        self._right.append(-1)
        self._start.append(0)
        self._count.append(0)
        self._axis.append(0)

        split = None if ids.size <= self.leaf_size else self._split(ids)
        if split is None:
            self._start[node] = len(self._order)
            self._count[node] = int(ids.size)
            self._order.extend(np.sort(ids).tolist())
            return node

        left_ids, right_ids, axis = split
        self._axis[node] = axis
        self._left[node] = self._build_node(left_ids)
        self._right[node] = self._build_node(right_ids)
        return node

    def _split(
        self, ids: npt.NDArray[np.int64]
    ) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.int64], int] | None:
        centroids = self.table.centroids[ids]
        cmin = centroids.min(axis=0)
        extent = centroids.max(axis=0) - cmin
        axis = int(np.argmax(extent))

        if extent[axis] <= 0.0:
            # Coincident centroids: split by id halves
            half = ids.size // 2
            return ids[:half], ids[half:], axis

        if self.split_method == "sah":
            split = self._sah_split(ids, centroids[:, axis], cmin[axis], extent[axis])
            if split is not None:
                return split[0], split[1], axis

        order = ids[np.argsort(centroids[:, axis], kind="stable")]
        mid = ids.size // 2
        return np.sort(order[:mid]), np.sort(order[mid:]), axis

    def _sah_split(
        self,
        ids: npt.NDArray[np.int64],
        centroids: FloatArray,
        cmin: float,
        extent: float,
    ) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.int64]] | None:
        bucket = ((centroids - cmin) / extent * NUM_BUCKETS).astype(np.int64)
        bucket = np.clip(bucket, 0, NUM_BUCKETS - 1)
        counts = np.bincount(bucket, minlength=NUM_BUCKETS)

        prim_bounds = self.table.bounds[ids]
        bucket_bounds = np.empty((NUM_BUCKETS, 2, 3))
        bucket_bounds[:, 0] = np.inf
        bucket_bounds[:, 1] = -np.inf
        for b in np.flatnonzero(counts):
            bucket_bounds[b] = union_bounds(prim_bounds[bucket == b])

        costs = np.full(NUM_BUCKETS - 1, np.inf)
        for i in range(NUM_BUCKETS - 1):
            n_left = counts[: i + 1].sum()
            n_right = counts[i + 1 :].sum()
            if n_left == 0 or n_right == 0:
                continue
            left = union_bounds(bucket_bounds[: i + 1][counts[: i + 1] > 0])
            right = union_bounds(bucket_bounds[i + 1 :][counts[i + 1 :] > 0])
            costs[i] = n_left * surface_areas(left) + n_right * surface_areas(right)

        if not np.any(np.isfinite(costs)):
            return None
        best = int(np.argmin(costs))
        mask = bucket <= best
        return ids[mask], ids[~mask]

    def check_bounds(self) -> None:
        """Verify that every node encloses its subtree.

        Raises:
            RuntimeError: If any node bounds fail to enclose a child or one
                of its primitives.
        """
        internal = np.flatnonzero(self.node_left >= 0)
        if internal.size:
            ok = bounds_contain(self.node_bounds[internal], self.node_bounds[self.node_left[internal]])
            ok &= bounds_contain(self.node_bounds[internal], self.node_bounds[self.node_right[internal]])
            if not np.all(ok):
                raise RuntimeError(f"BVH nodes {internal[~ok].tolist()} do not enclose their children")
        for node in np.flatnonzero(self.node_left < 0):
            prims = self.leaf_primitives(node)
            if not np.all(bounds_contain(self.node_bounds[node], self.table.bounds[prims])):
                raise RuntimeError(f"BVH leaf {node} does not enclose its primitives")

    # =========================================================================
    # Traversal
    # =========================================================================

    def _search(
        self,
        rays: RayBatch,
        include_volumes: bool,
        any_hit: bool,
    ) -> tuple[FloatArray, npt.NDArray[np.int64]]:
        n = len(rays)
        best_t = np.full(n, np.inf)
        best_prim = np.full(n, NO_ID, dtype=np.int64)
        if self.is_empty or n == 0:
            return best_t, best_prim

        with np.errstate(divide="ignore", over="ignore"):
            inv_dir = 1.0 / rays.directions

        stack: list[tuple[int, npt.NDArray[np.intp]]] = [(0, np.flatnonzero(rays.valid_mask()))]
        while stack:
            node, idx = stack.pop()
            if any_hit:
                idx = idx[best_prim[idx] == NO_ID]
            if idx.size == 0:
                continue

            limit = np.minimum(rays.t_max[idx], best_t[idx])
            t_near, t_far = slab_intervals(rays.origins[idx], inv_dir[idx], self.node_bounds[node])
            keep = (t_near <= t_far) & (t_far >= rays.t_min[idx]) & (t_near <= limit)
            idx = idx[keep]
            if idx.size == 0:
                continue

            left = int(self.node_left[node])
            if left < 0:
                self._test_groups(self._leaf_groups[node], idx, rays, include_volumes, best_t, best_prim)
                continue

            right = int(self.node_right[node])
            axis = self.node_axis[node]
            negative = 2 * np.count_nonzero(rays.directions[idx, axis] < 0.0) > idx.size
            near, far = (right, left) if negative else (left, right)
            stack.append((far, idx))
            stack.append((near, idx))

        return best_t, best_prim


class LinearAccelerator(Accelerator):
    """Brute-force scan over every primitive.

    Uses the same per-primitive tests, degenerate-primitive exclusion and
    tie-break rule as the BVH, which makes it the reference oracle for BVH
    correctness tests.
    """

    def __init__(self, table: PrimitiveTable) -> None:
        self.table = table
        ids = np.flatnonzero(~table.degenerate).astype(np.int64)
        self._groups = make_leaf_groups(table, ids)

    def _search(
        self,
        rays: RayBatch,
        include_volumes: bool,
        any_hit: bool,
    ) -> tuple[FloatArray, npt.NDArray[np.int64]]:
        n = len(rays)
        best_t = np.full(n, np.inf)
        best_prim = np.full(n, NO_ID, dtype=np.int64)
        valid = np.flatnonzero(rays.valid_mask())
        for start in range(0, valid.size, LINEAR_CHUNK):
            idx = valid[start : start + LINEAR_CHUNK]
            self._test_groups(self._groups, idx, rays, include_volumes, best_t, best_prim)
        return best_t, best_prim
