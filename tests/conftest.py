"""Pytest configuration for voltrace tests.

This module provides shared fixtures for all test modules: seeded random
generators, small prebuilt scenes and a camera looking at the origin.
"""

import numpy as np
import pytest

from voltrace.camera.perspective import PerspectiveCamera
from voltrace.scene.manager import SceneManager

BACKGROUND = (0.2, 0.3, 0.5)


@pytest.fixture
def rng():
    """Seeded generator so randomized tests are reproducible."""
    return np.random.default_rng(42)


@pytest.fixture
def manager():
    """Create a fresh SceneManager for each test."""
    scene = SceneManager()
    yield scene
    scene.clear()


@pytest.fixture
def unit_sphere_scene():
    """Diffuse unit sphere at the origin lit by one point light."""
    manager = SceneManager()
    white = manager.add_lambertian_material(albedo=(0.8, 0.8, 0.8))
    manager.add_sphere((0.0, 0.0, 0.0), 1.0, white)
    manager.add_point_light((2.0, 2.0, 4.0), (20.0, 20.0, 20.0))
    manager.set_background(BACKGROUND)
    return manager.build()


@pytest.fixture
def front_camera():
    """Camera on the +Z axis looking at the origin."""
    return PerspectiveCamera(
        lookfrom=(0.0, 0.0, 4.0),
        lookat=(0.0, 0.0, 0.0),
        vup=(0.0, 1.0, 0.0),
        vfov=40.0,
        aspect_ratio=1.0,
    )


@pytest.fixture
def random_primitives(rng):
    """Mixed primitive table with volumes, tied quads and a degenerate entry."""
    from voltrace.geometry.box import Box
    from voltrace.geometry.primitives import PrimitiveTable
    from voltrace.geometry.quad import Quad
    from voltrace.geometry.sphere import Sphere
    from voltrace.geometry.triangle import Triangle

    shapes = []
    material_ids = []
    medium_ids = []

    def add(shape, material_id=0, medium_id=-1):
        shapes.append(shape)
        material_ids.append(material_id)
        medium_ids.append(medium_id)

    for _ in range(25):
        add(Sphere(rng.uniform(-4.0, 4.0, 3), rng.uniform(0.1, 0.8)))
    for _ in range(25):
        v0 = rng.uniform(-4.0, 4.0, 3)
        add(Triangle(v0, v0 + rng.uniform(-1.0, 1.0, 3), v0 + rng.uniform(-1.0, 1.0, 3)))
    for _ in range(10):
        add(Quad(rng.uniform(-4.0, 4.0, 3), rng.uniform(-1.0, 1.0, 3), rng.uniform(-1.0, 1.0, 3)))
    for _ in range(5):
        add(Box(rng.uniform(-4.0, 4.0, 3), rng.uniform(0.2, 0.6, 3), rng.uniform(0.0, 90.0)))

    # Two coincident axis-aligned quads: hits tie and must resolve to the lower id
    add(Quad((-1.0, -1.0, 5.0), (2.0, 0.0, 0.0), (0.0, 2.0, 0.0)), material_id=1)
    add(Quad((-1.0, -1.0, 5.0), (2.0, 0.0, 0.0), (0.0, 2.0, 0.0)), material_id=2)

    # Volumes
    add(Sphere((0.0, 0.0, -6.0), 1.5), material_id=-1, medium_id=0)
    add(Box((3.0, 3.0, -6.0), (1.0, 1.0, 1.0), 30.0), material_id=-1, medium_id=0)

    # Degenerate: zero radius
    add(Sphere((0.0, 0.0, 0.0), 0.0))

    return PrimitiveTable(shapes, material_ids, medium_ids)
