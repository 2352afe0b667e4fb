"""Tests for the path tracing integrator.

Tests cover:
- Background radiance for escaping rays
- Direct lighting of a diffuse sphere against the analytic value
- Depth limits and Russian roulette
- Emission from area lights
- Shadows from occluders and absorbing media
- Paths through participating media
- Non-finite samples replaced by zero, counted and logged
- Tile rendering buffers
- Parameter validation
"""

import logging

import numpy as np
import pytest

from voltrace.config import RenderConfig
from voltrace.core.framebuffer import Tile
from voltrace.core.integrator import PathIntegrator
from voltrace.core.ray import Ray, RayBatch
from voltrace.core.sampler import CMJSampler
from voltrace.core.scheduler import TileScheduler
from voltrace.media.density import ConstantDensity
from voltrace.media.medium import Medium
from voltrace.geometry.sphere import Sphere
from voltrace.scene.cornell_box import create_cornell_box_scene
from voltrace.scene.manager import SceneManager

# Direct light at (0, 0, 1) on the unit sphere from the light at (2, 2, 4)
_TO_LIGHT = np.array([2.0, 2.0, 3.0])
DIRECT = 0.8 / np.pi * (3.0 / np.linalg.norm(_TO_LIGHT)) * 20.0 / 17.0


@pytest.fixture
def sampler():
    return CMJSampler(samples_per_pixel=4, seed=42)


class TestSurfaces:
    """Tests on the diffuse unit sphere scene."""

    def test_trace_returns_rgb(self, unit_sphere_scene, sampler):
        """Test trace returns a single RGB value."""
        color = PathIntegrator().trace(Ray((0.0, 0.0, 4.0), (0.0, 0.0, -1.0)), unit_sphere_scene, sampler)
        assert color.shape == (3,)
        assert np.all(np.isfinite(color))

    def test_miss_returns_background(self, unit_sphere_scene, sampler):
        """Test escaping rays return the background exactly."""
        color = PathIntegrator().trace(Ray((0.0, 0.0, 4.0), (0.0, 1.0, 0.0)), unit_sphere_scene, sampler)
        np.testing.assert_array_equal(color, unit_sphere_scene.background)

    def test_direct_lighting_only(self, unit_sphere_scene, sampler):
        """Test one bounce gives exactly the analytic direct light."""
        ray = Ray((0.0, 0.0, 4.0), (0.0, 0.0, -1.0))
        color = PathIntegrator().trace(ray, unit_sphere_scene, sampler, depth=1)
        np.testing.assert_allclose(color, DIRECT, rtol=1e-6)

    def test_direct_plus_sky(self, unit_sphere_scene, sampler):
        """Test the bounce off a convex diffuse sphere adds albedo times background."""
        ray = Ray((0.0, 0.0, 4.0), (0.0, 0.0, -1.0))
        for s in range(4):
            color = PathIntegrator().trace(ray, unit_sphere_scene, sampler, sample_index=s)
            np.testing.assert_allclose(color, DIRECT + 0.8 * unit_sphere_scene.background, rtol=1e-6)

    def test_corners_see_background(self, unit_sphere_scene, front_camera):
        """Test at 1 spp corner pixels miss the sphere and the center pixel does not."""
        config = RenderConfig(width=9, height=9, samples_per_pixel=1, tile_size=4, thread_count=2, seed=42)
        image = TileScheduler(config).render(unit_sphere_scene, front_camera).get_image_numpy()
        for y, x in ((0, 0), (0, 8), (8, 0), (8, 8)):
            np.testing.assert_allclose(image[y, x], unit_sphere_scene.background, rtol=1e-12)
        assert not np.allclose(image[4, 4], unit_sphere_scene.background)
        np.testing.assert_allclose(image[4, 4], DIRECT + 0.8 * unit_sphere_scene.background, rtol=0.2)

    def test_batch_matches_single(self, unit_sphere_scene, sampler):
        """Test trace_batch agrees with trace row by row."""
        integrator = PathIntegrator()
        rays = RayBatch.from_arrays(
            np.tile([0.0, 0.0, 4.0], (3, 1)),
            np.array([[0.0, 0.0, -1.0], [0.1, 0.0, -1.0], [0.0, 1.0, 0.0]]) / np.array([[1.0], [np.sqrt(1.01)], [1.0]]),
        )
        batch = integrator.trace_batch(rays, unit_sphere_scene, sampler, np.arange(3), 0)
        for i in range(3):
            single = integrator.trace(rays.ray(i), unit_sphere_scene, sampler, pixel_id=i)
            np.testing.assert_allclose(batch[i], single)

    def test_glossy_direct_lighting(self, sampler):
        """Test point lights reach the diffuse part of a glossy surface."""
        manager = SceneManager()
        plastic = manager.add_glossy_material((0.8, 0.8, 0.8), glossiness=0.9)
        manager.add_sphere((0.0, 0.0, 0.0), 1.0, plastic)
        manager.add_point_light((2.0, 2.0, 4.0), (20.0, 20.0, 20.0))
        scene = manager.build()
        r0 = ((1.0 - 1.45) / (1.0 + 1.45)) ** 2
        color = PathIntegrator().trace(Ray((0.0, 0.0, 4.0), (0.0, 0.0, -1.0)), scene, sampler, depth=1)
        np.testing.assert_allclose(color, (1.0 - r0) * DIRECT, rtol=1e-6)

    def test_shadowed_point(self, sampler):
        """Test an occluder between surface and light removes direct light."""
        manager = SceneManager()
        white = manager.add_lambertian_material((0.8, 0.8, 0.8))
        manager.add_quad((-5.0, -5.0, 0.0), (10.0, 0.0, 0.0), (0.0, 10.0, 0.0), white)
        manager.add_sphere((0.0, 0.0, 2.0), 0.5, white)
        manager.add_point_light((0.0, 0.0, 4.0), (10.0, 10.0, 10.0))
        scene = manager.build()
        ray = Ray((0.0, -3.0, 1.0), (0.0, 3.0, -1.0) / np.sqrt(10.0))
        color = PathIntegrator().trace(ray, scene, sampler, depth=1)
        np.testing.assert_allclose(color, 0.0)

    def test_area_light_emission(self, sampler):
        """Test hitting an emitter returns its radiance."""
        manager = SceneManager()
        lamp = manager.add_diffuse_light_material((1.0, 0.5, 0.25), intensity=2.0)
        manager.add_quad((-1.0, -1.0, 0.0), (2.0, 0.0, 0.0), (0.0, 2.0, 0.0), lamp)
        scene = manager.build()
        color = PathIntegrator().trace(Ray((0.0, 0.0, 3.0), (0.0, 0.0, -1.0)), scene, sampler)
        np.testing.assert_allclose(color, [2.0, 1.0, 0.5])

    def test_mirror_sees_background(self, sampler):
        """Test a perfect mirror reflects the background tinted by its albedo."""
        manager = SceneManager()
        mirror = manager.add_metal_material((0.5, 0.5, 0.5))
        manager.add_quad((-1.0, -1.0, 0.0), (2.0, 0.0, 0.0), (0.0, 2.0, 0.0), mirror)
        manager.set_background((1.0, 1.0, 1.0))
        scene = manager.build()
        color = PathIntegrator().trace(Ray((0.0, 0.0, 3.0), (0.0, 0.0, -1.0)), scene, sampler)
        np.testing.assert_allclose(color, 0.5)


class TestTermination:
    """Tests for depth limits and Russian roulette."""

    def test_roulette_preserves_energy(self):
        """Test renders with and without Russian roulette agree on average."""
        manager, camera, _ = create_cornell_box_scene()
        scene = manager.build()
        base = dict(width=16, height=16, samples_per_pixel=16, tile_size=8, thread_count=4, max_depth=10, seed=3)
        with_rr = TileScheduler(RenderConfig(russian_roulette=True, **base)).render(scene, camera)
        without_rr = TileScheduler(RenderConfig(russian_roulette=False, **base)).render(scene, camera)
        mean_rr = with_rr.get_image_numpy().mean()
        mean_plain = without_rr.get_image_numpy().mean()
        assert mean_plain > 0.0
        assert mean_rr == pytest.approx(mean_plain, rel=0.15)

    def test_deeper_paths_add_light(self):
        """Test more bounces never lose energy in a closed-ish scene."""
        manager, camera, _ = create_cornell_box_scene()
        scene = manager.build()
        base = dict(width=8, height=8, samples_per_pixel=4, tile_size=8, thread_count=1, seed=5, russian_roulette=False)
        shallow = TileScheduler(RenderConfig(max_depth=1, **base)).render(scene, camera)
        deep = TileScheduler(RenderConfig(max_depth=4, **base)).render(scene, camera)
        assert deep.get_image_numpy().sum() > shallow.get_image_numpy().sum()

    @pytest.mark.parametrize(
        "kwargs,match",
        [
            ({"max_depth": 0}, "max_depth"),
            ({"rr_min_depth": -1}, "rr_min_depth"),
            ({"rr_max_probability": 0.0}, "rr_max_probability"),
            ({"rr_max_probability": 1.5}, "rr_max_probability"),
            ({"max_volume_crossings": -1}, "max_volume_crossings"),
        ],
    )
    def test_invalid_parameters(self, kwargs, match):
        """Test out-of-range integrator parameters are rejected."""
        with pytest.raises(ValueError, match=match):
            PathIntegrator(**kwargs)


class TestMedia:
    """Tests for paths through participating media."""

    def make_scene(self, density, albedo=(0.0, 0.0, 0.0)):
        manager = SceneManager()
        medium = manager.add_medium(Medium(ConstantDensity(density), sigma_t=1.0, albedo=albedo))
        manager.add_volume(Sphere((0.0, 0.0, 0.0), 1.0), medium)
        manager.set_background((1.0, 1.0, 1.0))
        return manager.build()

    def test_absorbing_medium_transmittance(self):
        """Test the fraction of rays crossing a black medium is exp(-sigma * d)."""
        scene = self.make_scene(0.5)
        sampler = CMJSampler(samples_per_pixel=4096, seed=7)
        n = 4096
        rays = RayBatch.from_arrays(np.tile([0.0, 0.0, 5.0], (n, 1)), (0.0, 0.0, -1.0))
        radiance = PathIntegrator().trace_batch(rays, scene, sampler, 0, np.arange(n))
        assert radiance[:, 0].mean() == pytest.approx(np.exp(-1.0), abs=0.03)

    def test_empty_medium_is_invisible(self, sampler):
        """Test a zero-density volume passes every ray unchanged."""
        scene = self.make_scene(0.0)
        color = PathIntegrator().trace(Ray((0.0, 0.0, 5.0), (0.0, 0.0, -1.0)), scene, sampler)
        np.testing.assert_allclose(color, 1.0)

    def test_scattering_medium_is_finite(self, sampler):
        """Test a dense white medium with a point light gives finite radiance."""
        manager = SceneManager()
        manager.add_constant_medium(Sphere((0.0, 0.0, 0.0), 1.0), density=2.0, albedo=(0.9, 0.9, 0.9), g=0.3)
        manager.add_point_light((0.0, 3.0, 0.0), (5.0, 5.0, 5.0))
        scene = manager.build()
        rays = RayBatch.from_arrays(np.tile([0.0, 0.0, 5.0], (64, 1)), (0.0, 0.0, -1.0))
        radiance = PathIntegrator().trace_batch(rays, scene, sampler, 0, np.arange(64))
        assert np.all(np.isfinite(radiance))
        assert np.all(radiance >= 0.0)
        assert radiance.mean() > 0.0

    def test_shadow_through_black_smoke(self):
        """Test a black medium between surface and light dims direct light."""
        manager = SceneManager()
        white = manager.add_lambertian_material((0.8, 0.8, 0.8))
        manager.add_quad((-5.0, -5.0, 0.0), (10.0, 0.0, 0.0), (0.0, 10.0, 0.0), white)
        manager.add_constant_medium(Sphere((0.0, 0.0, 2.0), 0.5), density=1.0, albedo=(0.0, 0.0, 0.0))
        manager.add_point_light((0.0, 0.0, 4.0), (16.0, 16.0, 16.0))
        scene = manager.build()

        n = 2048
        sampler = CMJSampler(samples_per_pixel=n, seed=1)
        direction = np.array([0.0, 3.0, -1.0]) / np.sqrt(10.0)
        rays = RayBatch.from_arrays(np.tile([0.0, -3.0, 1.0], (n, 1)), direction)
        radiance = PathIntegrator().trace_batch(rays, scene, sampler, 0, np.arange(n), max_depth=1)
        unshadowed = 0.8 / np.pi * 16.0 / 16.0
        assert radiance[:, 0].mean() == pytest.approx(unshadowed * np.exp(-1.0), abs=0.02)


@pytest.fixture
def overexposed_scene():
    """Diffuse sphere under a point light with an infinite red intensity."""
    manager = SceneManager()
    white = manager.add_lambertian_material(albedo=(0.8, 0.8, 0.8))
    manager.add_sphere((0.0, 0.0, 0.0), 1.0, white)
    manager.add_point_light((2.0, 2.0, 4.0), (np.inf, 1.0, 1.0))
    manager.set_background((0.2, 0.3, 0.5))
    return manager.build()


class TestNonFiniteSamples:
    """Samples that overflow are replaced by zero and counted."""

    def test_trace_batch_zeroes_bad_samples(self, overexposed_scene, sampler, caplog):
        """Test a lit hit becomes black while a miss keeps the background."""
        rays = RayBatch.from_arrays((0.0, 0.0, 4.0), [(0.0, 0.0, -1.0), (0.0, 1.0, 0.0)])
        with caplog.at_level(logging.DEBUG, logger="voltrace.core.integrator"):
            radiance = PathIntegrator().trace_batch(rays, overexposed_scene, sampler, [0, 1], [0, 0])

        assert np.all(np.isfinite(radiance))
        np.testing.assert_array_equal(radiance[0], 0.0)
        np.testing.assert_allclose(radiance[1], overexposed_scene.background)
        assert "Discarded 1 non-finite or negative radiance samples" in caplog.text

    def test_render_tile_counts_discarded(self, overexposed_scene, front_camera, caplog):
        """Test the tile result counts discarded samples and its sums stay finite."""
        sampler = CMJSampler(samples_per_pixel=2, seed=0)
        tile = Tile(index=0, x0=0, y0=0, x1=8, y1=8)
        with caplog.at_level(logging.DEBUG, logger="voltrace.core.integrator"):
            result = PathIntegrator().render_tile(overexposed_scene, front_camera, sampler, tile, 8, 8)

        assert result.discarded > 0
        assert np.all(np.isfinite(result.radiance_sum))
        assert np.all(result.radiance_sum >= 0.0)
        np.testing.assert_array_equal(result.sample_count, 2)
        assert "non-finite or negative radiance samples" in caplog.text


class TestRenderTile:
    """Tests for tile rendering."""

    def test_tile_buffers(self, unit_sphere_scene, front_camera):
        """Test local buffers match the tile size and sample count."""
        sampler = CMJSampler(samples_per_pixel=3, seed=0)
        tile = Tile(index=0, x0=2, y0=1, x1=5, y1=3)
        result = PathIntegrator().render_tile(unit_sphere_scene, front_camera, sampler, tile, 8, 8)
        assert result.radiance_sum.shape == (2, 3, 3)
        np.testing.assert_array_equal(result.sample_count, 3)
        assert result.discarded == 0
        assert result.tile is tile

    def test_tile_is_deterministic(self, unit_sphere_scene, front_camera):
        """Test rendering a tile twice gives identical sums."""
        sampler = CMJSampler(samples_per_pixel=2, seed=9)
        tile = Tile(index=0, x0=0, y0=0, x1=4, y1=4)
        integrator = PathIntegrator()
        a = integrator.render_tile(unit_sphere_scene, front_camera, sampler, tile, 4, 4)
        b = integrator.render_tile(unit_sphere_scene, front_camera, sampler, tile, 4, 4)
        np.testing.assert_array_equal(a.radiance_sum, b.radiance_sum)
