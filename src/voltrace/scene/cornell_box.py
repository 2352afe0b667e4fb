"""Cornell box scene configurations.

This module provides factory functions for the classic Cornell box scene, a
standard test scene used in computer graphics for evaluating global
illumination algorithms, and its participating-media variant.

The Cornell box consists of:
- 5 walls forming an open box (left, right, back, floor, ceiling)
- Left wall: red diffuse
- Right wall: green diffuse
- Back, floor, ceiling: white diffuse
- A tall and a short block rotated about the vertical axis
- Area light on the ceiling (emissive quad)

In the smoke variant the two blocks are replaced by volumes of dark smoke
and white fog, optionally with a Perlin-noise density.

The box spans from 0 to 555 in each dimension, with the camera positioned
outside looking in through the open front.

Example:
    >>> manager, camera, light_mat = create_cornell_box_scene()
    >>> manager.get_primitive_count()
    8
    >>> scene = manager.build()
"""

from __future__ import annotations

from dataclasses import dataclass

from voltrace.camera.perspective import PerspectiveCamera
from voltrace.geometry.box import Box
from voltrace.media.density import ConstantDensity, NoiseDensity
from voltrace.media.medium import Medium
from voltrace.scene.manager import SceneManager

# =============================================================================
# Cornell Box Parameters
# =============================================================================


@dataclass
class CornellBoxParams:
    """Parameters for configuring a Cornell box scene.

    All parameters have defaults matching the classic Cornell box
    configuration.

    Attributes:
        light_intensity: The intensity/brightness of the area light.
            Default is 15.0, which provides good illumination for the scene.
        light_color: RGB color of the light (each component in [0, 1]).
            Default is white (1.0, 1.0, 1.0).
        left_wall_color: RGB albedo of the left wall.
            Default is green (0.12, 0.45, 0.15).
        right_wall_color: RGB albedo of the right wall.
            Default is red (0.65, 0.05, 0.05).
        back_wall_color: RGB albedo of the back wall.
            Default is white (0.73, 0.73, 0.73).

    Example:
        >>> params = CornellBoxParams()
        >>> params.light_intensity
        15.0
        >>> custom = CornellBoxParams(
        ...     light_intensity=20.0,
        ...     light_color=(1.0, 0.9, 0.8),  # Warm light
        ... )
    """

    light_intensity: float = 15.0
    light_color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    left_wall_color: tuple[float, float, float] = (0.12, 0.45, 0.15)
    right_wall_color: tuple[float, float, float] = (0.65, 0.05, 0.05)
    back_wall_color: tuple[float, float, float] = (0.73, 0.73, 0.73)


# =============================================================================
# Cornell Box Constants
# =============================================================================

# Classic Cornell box dimensions (555x555x555 units)
BOX_SIZE = 555.0

# Block placement (corner sizes, rotation about Y in degrees, translation)
TALL_BLOCK = ((165.0, 330.0, 165.0), 15.0, (265.0, 0.0, 295.0))
SHORT_BLOCK = ((165.0, 165.0, 165.0), -18.0, (130.0, 0.0, 65.0))

# Smoke variant
SMOKE_DENSITY = 0.01
SMOKE_LIGHT_INTENSITY = 7.0


def _add_walls(manager: SceneManager, box_size: float, params: CornellBoxParams) -> int:
    """Add the five walls and return the white material id."""
    # Note: left_wall uses right_wall_color (red) and right_wall uses left_wall_color (green)
    # because red is on the right as you look in from the camera
    red_mat = manager.add_lambertian_material(albedo=params.right_wall_color)
    green_mat = manager.add_lambertian_material(albedo=params.left_wall_color)
    white_mat = manager.add_lambertian_material(albedo=params.back_wall_color)

    # Left wall (red) - YZ plane at x=0
    manager.add_quad(
        corner=(0.0, 0.0, 0.0),
        edge_u=(0.0, box_size, 0.0),  # Up
        edge_v=(0.0, 0.0, box_size),  # Back
        material_id=red_mat,
    )

    # Right wall (green) - YZ plane at x=box_size
    manager.add_quad(
        corner=(box_size, 0.0, box_size),
        edge_u=(0.0, box_size, 0.0),  # Up
        edge_v=(0.0, 0.0, -box_size),  # Front
        material_id=green_mat,
    )

    # Back wall (white) - XY plane at z=box_size
    manager.add_quad(
        corner=(0.0, 0.0, box_size),
        edge_u=(box_size, 0.0, 0.0),  # Right
        edge_v=(0.0, box_size, 0.0),  # Up
        material_id=white_mat,
    )

    # Floor (white) - XZ plane at y=0
    manager.add_quad(
        corner=(0.0, 0.0, 0.0),
        edge_u=(box_size, 0.0, 0.0),  # Right
        edge_v=(0.0, 0.0, box_size),  # Back
        material_id=white_mat,
    )

    # Ceiling (white) - XZ plane at y=box_size
    manager.add_quad(
        corner=(0.0, box_size, box_size),
        edge_u=(box_size, 0.0, 0.0),  # Right
        edge_v=(0.0, 0.0, -box_size),  # Front
        material_id=white_mat,
    )
    return white_mat


def _add_light(
    manager: SceneManager,
    box_size: float,
    width: float,
    depth: float,
    color: tuple[float, float, float],
    intensity: float,
) -> int:
    light_mat = manager.add_diffuse_light_material(emit=color, intensity=intensity)
    # Light sits just below ceiling to avoid z-fighting
    manager.add_quad(
        corner=((box_size - width) / 2.0, box_size * (1.0 - 1.0 / BOX_SIZE), (box_size - depth) / 2.0),
        edge_u=(width, 0.0, 0.0),
        edge_v=(0.0, 0.0, depth),
        material_id=light_mat,
    )
    return light_mat


def _block(spec: tuple, box_size: float) -> Box:
    size, angle, offset = spec
    scale = box_size / BOX_SIZE
    return Box.from_corners(
        (0.0, 0.0, 0.0),
        tuple(scale * s for s in size),
        rotate_y=angle,
        translate=tuple(scale * o for o in offset),
    )


def _camera(box_size: float) -> PerspectiveCamera:
    # Camera positioned outside the box, looking in through the open front
    return PerspectiveCamera(
        lookfrom=(box_size / 2.0, box_size / 2.0, -800.0 * box_size / BOX_SIZE),
        lookat=(box_size / 2.0, box_size / 2.0, box_size / 2.0),
        vup=(0.0, 1.0, 0.0),
        vfov=40.0,
        aspect_ratio=1.0,
    )


# =============================================================================
# Cornell Box Factories
# =============================================================================


def create_cornell_box_scene(
    box_size: float = BOX_SIZE,
    params: CornellBoxParams | None = None,
) -> tuple[SceneManager, PerspectiveCamera, int]:
    """Create a Cornell box scene with standard configuration.

    The coordinate system places the box origin at (0, 0, 0) with:
    - X-axis: 0 to box_size
    - Y-axis: floor to ceiling (0 to box_size)
    - Z-axis: front to back (0 to box_size), camera looks toward +Z

    Args:
        box_size: The size of the box in each dimension. Default is 555.0
            (classic Cornell box dimensions).
        params: Optional CornellBoxParams for customizing light and wall colors.

    Returns:
        A tuple of (SceneManager, PerspectiveCamera, light_material_id). The
        manager is not built yet, so callers may add further objects.
    """
    if params is None:
        params = CornellBoxParams()

    manager = SceneManager()
    white_mat = _add_walls(manager, box_size, params)
    scale = box_size / BOX_SIZE
    light_mat = _add_light(
        manager, box_size, 130.0 * scale, 105.0 * scale, params.light_color, params.light_intensity
    )

    for size, angle, offset in (TALL_BLOCK, SHORT_BLOCK):
        manager.add_box(
            (0.0, 0.0, 0.0),
            tuple(scale * s for s in size),
            white_mat,
            rotate_y=angle,
            translate=tuple(scale * o for o in offset),
        )

    return manager, _camera(box_size), light_mat


def create_cornell_smoke_scene(
    box_size: float = BOX_SIZE,
    params: CornellBoxParams | None = None,
    noise: bool = False,
    density: float = SMOKE_DENSITY,
) -> tuple[SceneManager, PerspectiveCamera, int]:
    """Create the Cornell box with the two blocks made of smoke and fog.

    The tall block holds black (absorbing) smoke and the short block white
    (scattering) fog, both with constant density `density`. With
    `noise=True` the densities follow Perlin turbulence scaled to the same
    peak value.

    Args:
        box_size: The size of the box in each dimension.
        params: Optional CornellBoxParams; the light intensity defaults to
            7.0 and the light is larger than in the classic scene.
        noise: Use a Perlin-noise density instead of a constant one.
        density: Peak extinction coefficient of both media.

    Returns:
        A tuple of (SceneManager, PerspectiveCamera, light_material_id).
    """
    if params is None:
        params = CornellBoxParams(light_intensity=SMOKE_LIGHT_INTENSITY)

    manager = SceneManager()
    _add_walls(manager, box_size, params)
    scale = box_size / BOX_SIZE
    light_mat = _add_light(
        manager, box_size, 330.0 * scale, 305.0 * scale, params.light_color, params.light_intensity
    )

    for spec, albedo, seed in ((TALL_BLOCK, (0.0, 0.0, 0.0), 1), (SHORT_BLOCK, (1.0, 1.0, 1.0), 2)):
        if noise:
            field = NoiseDensity(scale=1.0, frequency=0.02 / scale, seed=seed)
        else:
            field = ConstantDensity(1.0)
        medium_id = manager.add_medium(Medium(field, sigma_t=density, albedo=albedo))
        manager.add_volume(_block(spec, box_size), medium_id)

    return manager, _camera(box_size), light_mat
