"""Tests for the bounding volume hierarchy.

Tests cover:
- Agreement with the brute-force LinearAccelerator on random rays
- Deterministic tie-breaking on coincident primitives
- Volume and surface-only queries
- Empty trees and degenerate primitive exclusion
- Node bounds enclosing their subtrees
- Parameter validation
"""

import logging

import numpy as np
import pytest

from voltrace.core.ray import Ray, RayBatch, normalize
from voltrace.geometry.box import Box
from voltrace.geometry.bvh import BVH, LinearAccelerator
from voltrace.geometry.primitives import PrimitiveTable
from voltrace.geometry.quad import Quad
from voltrace.geometry.sphere import Sphere


def random_rays(rng, n=400):
    origins = rng.uniform(-7.0, 7.0, (n, 3))
    directions = rng.normal(size=(n, 3))
    # Axis-parallel rays exercise the zero-component slab path
    directions[: n // 4, rng.integers(0, 3)] = 0.0
    directions[n // 4 : n // 3, :2] = 0.0
    return RayBatch.from_arrays(origins, normalize(directions), t_min=1e-4, t_max=np.inf)


class TestBVHAgainstLinear:
    """The BVH must return the same nearest hit as a linear scan."""

    @pytest.mark.parametrize("split_method", ["sah", "median"])
    @pytest.mark.parametrize("leaf_size", [1, 4])
    def test_nearest_hit_matches(self, random_primitives, rng, split_method, leaf_size):
        """Test hit mask, distance and primitive id agree for every ray."""
        bvh = BVH(random_primitives, leaf_size=leaf_size, split_method=split_method)
        oracle = LinearAccelerator(random_primitives)
        rays = random_rays(rng)

        expected = oracle.intersect_batch(rays)
        actual = bvh.intersect_batch(rays)

        assert expected.hit.any()
        np.testing.assert_array_equal(actual.hit, expected.hit)
        np.testing.assert_array_equal(actual.primitive_id, expected.primitive_id)
        np.testing.assert_allclose(actual.t[actual.hit], expected.t[expected.hit])

    def test_surface_only_matches(self, random_primitives, rng):
        """Test queries that skip volumes agree as well."""
        bvh = BVH(random_primitives)
        oracle = LinearAccelerator(random_primitives)
        rays = random_rays(rng)
        expected = oracle.intersect_batch(rays, include_volumes=False)
        actual = bvh.intersect_batch(rays, include_volumes=False)
        np.testing.assert_array_equal(actual.primitive_id, expected.primitive_id)
        assert not np.any(actual.medium_id[actual.hit] >= 0)

    def test_occlusion_matches(self, random_primitives, rng):
        """Test any-hit answers agree with the oracle."""
        bvh = BVH(random_primitives)
        oracle = LinearAccelerator(random_primitives)
        rays = random_rays(rng)
        np.testing.assert_array_equal(bvh.occluded_batch(rays), oracle.occluded_batch(rays))

    def test_bounded_interval(self, random_primitives, rng):
        """Test short rays agree, including ones that stop before any hit."""
        bvh = BVH(random_primitives)
        oracle = LinearAccelerator(random_primitives)
        rays = random_rays(rng)
        rays.t_max[:] = 2.0
        np.testing.assert_array_equal(
            bvh.intersect_batch(rays).primitive_id,
            oracle.intersect_batch(rays).primitive_id,
        )

    @pytest.mark.parametrize("accelerator", [BVH, LinearAccelerator])
    def test_hits_inside_interval(self, random_primitives, rng, accelerator):
        """Test every reported distance lies in the ray's own [t_min, t_max]."""
        rays = random_rays(rng, n=2000)
        rays.t_min[:] = rng.uniform(0.0, 3.0, len(rays))
        rays.t_max[:] = rays.t_min + rng.uniform(0.0, 8.0, len(rays))

        hits = accelerator(random_primitives).intersect_batch(rays)

        assert hits.hit.any()
        t = hits.t[hits.hit]
        assert np.all(t >= rays.t_min[hits.hit])
        assert np.all(t <= rays.t_max[hits.hit])
        assert np.all(np.isinf(hits.t[~hits.hit]))

    def test_volume_entry_clamped_to_t_min(self):
        """Test a ray starting inside a volume reports its entry at t_min."""
        rays = RayBatch.from_arrays((0.0, 0.0, -6.0), (0.0, 0.0, -1.0), t_min=0.5, t_max=10.0)
        hits = BVH(small_table()).intersect_batch(rays)
        assert hits.hit[0]
        assert hits.medium_id[0] == 0
        assert hits.t[0] == 0.5
        assert hits.t_far[0] == pytest.approx(1.5)

    @pytest.mark.filterwarnings("error")
    def test_subnormal_direction_component(self):
        """Test tiny direction components neither warn nor change the hit."""
        table = PrimitiveTable(
            [Sphere((0.0, 0.0, 0.0), 1.0), Box((0.0, 0.0, -5.0), (1.0, 1.0, 1.0), 0.0)],
            [0, 0],
            [-1, -1],
        )
        ray = Ray((0.0, 0.0, 5.0), (1e-310, 0.0, -1.0))
        for accelerator in (BVH(table), LinearAccelerator(table)):
            hit = accelerator.intersect(ray)
            assert hit.primitive_id == 0
            assert hit.t == pytest.approx(4.0)


def small_table():
    """Two coincident quads in front of a medium sphere."""
    shapes = [
        Sphere((0.0, 0.0, -6.0), 1.5),
        Quad((-1.0, -1.0, 5.0), (2.0, 0.0, 0.0), (0.0, 2.0, 0.0)),
        Quad((-1.0, -1.0, 5.0), (2.0, 0.0, 0.0), (0.0, 2.0, 0.0)),
        Sphere((4.0, 0.0, 0.0), 0.5),
    ]
    return PrimitiveTable(shapes, [-1, 1, 2, 0], [0, -1, -1, -1])


class TestTieBreaking:
    """Tests for coincident primitives."""

    def test_lower_id_wins(self):
        """Test the lower primitive id is reported for an exact tie."""
        bvh = BVH(small_table(), leaf_size=1)
        hit = bvh.intersect(Ray((0.0, 0.0, 10.0), (0.0, 0.0, -1.0)))
        assert hit.t == pytest.approx(5.0)
        assert hit.primitive_id == 1
        assert hit.material_id == 1

    def test_ties_in_random_scene(self, random_primitives):
        """Test the tie resolves the same way inside a larger tree."""
        ray = Ray((0.2, -0.3, 5.5), (0.0, 0.0, -1.0))
        expected = LinearAccelerator(random_primitives).intersect(ray)
        actual = BVH(random_primitives).intersect(ray)
        assert actual.primitive_id == expected.primitive_id
        assert actual.t == expected.t

    def test_repeatable(self, random_primitives):
        """Test rebuilding the tree gives identical answers."""
        ray = Ray((0.2, -0.3, 10.0), (0.0, 0.0, -1.0))
        first = BVH(random_primitives).intersect(ray)
        second = BVH(random_primitives).intersect(ray)
        assert first.primitive_id == second.primitive_id
        assert first.t == second.t


class TestVolumes:
    """Tests for medium boundaries in the tree."""

    def test_volume_hit_reports_exit(self):
        """Test the volume sphere reports entry and exit distances."""
        hit = BVH(small_table()).intersect(Ray((0.0, 0.0, -2.0), (0.0, 0.0, -1.0)))
        assert hit.is_volume
        assert hit.primitive_id == 0
        assert hit.t == pytest.approx(2.5)
        assert hit.t_far == pytest.approx(5.5)
        np.testing.assert_allclose(hit.normal, [0.0, 0.0, 1.0])

    def test_shadow_rays_pass_volumes(self):
        """Test occlusion ignores volumes unless asked."""
        bvh = BVH(small_table())
        ray = Ray((0.0, 0.0, -2.0), (0.0, 0.0, -1.0), t_max=4.0)
        assert not bvh.intersect_any(ray)
        assert bvh.intersect_any(ray, include_volumes=True)


class TestConstruction:
    """Tests for tree construction."""

    def test_empty(self):
        """Test an empty table yields an empty tree that reports no hits."""
        bvh = BVH(PrimitiveTable([], []))
        assert bvh.is_empty
        assert bvh.depth() == 0
        assert bvh.intersect(Ray((0.0, 0.0, 0.0), (0.0, 0.0, 1.0))) is None

    def test_single_primitive(self):
        """Test a one-primitive tree is a single leaf."""
        bvh = BVH(PrimitiveTable([Sphere((0.0, 0.0, 0.0), 1.0)], [0]))
        assert len(bvh) == 1
        assert bvh.depth() == 1
        assert bvh.intersect(Ray((0.0, 0.0, 5.0), (0.0, 0.0, -1.0))).t == pytest.approx(4.0)

    def test_degenerate_excluded(self, random_primitives, caplog):
        """Test degenerate primitives are logged and left out of the tree."""
        with caplog.at_level(logging.WARNING, logger="voltrace.geometry.bvh"):
            bvh = BVH(random_primitives)
        assert "degenerate" in caplog.text
        np.testing.assert_array_equal(bvh.excluded_ids, [69])
        assert 69 not in bvh.prim_order
        assert len(bvh.prim_order) == len(random_primitives) - 1

    def test_every_primitive_in_one_leaf(self, random_primitives):
        """Test each non-degenerate primitive is referenced exactly once."""
        bvh = BVH(random_primitives, leaf_size=2)
        assert sorted(bvh.prim_order.tolist()) == list(range(len(random_primitives) - 1))
        leaves = np.flatnonzero(bvh.node_left < 0)
        assert np.all(bvh.node_count[leaves] <= 2)

    def test_check_bounds_passes(self, random_primitives):
        """Test every node encloses its children and primitives."""
        BVH(random_primitives).check_bounds()

    def test_build_classmethod(self, random_primitives):
        """Test BVH.build matches the constructor."""
        assert len(BVH.build(random_primitives, leaf_size=4)) == len(BVH(random_primitives, leaf_size=4))

    def test_invalid_leaf_size(self, random_primitives):
        """Test leaf_size below one is rejected."""
        with pytest.raises(ValueError, match="leaf_size"):
            BVH(random_primitives, leaf_size=0)

    def test_unknown_split_method(self, random_primitives):
        """Test unknown split methods are rejected."""
        with pytest.raises(ValueError, match="Unknown split method"):
            BVH(random_primitives, split_method="middle")
