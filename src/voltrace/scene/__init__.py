"""Scene module for scene construction and ray-scene queries.

This module handles scene representation:

Components:
    manager: Scene builder collecting materials, media, primitives and lights
    scene: Immutable scene with its BVH, as consumed by the integrator
    lights: Point lights for next event estimation
    cornell_box: Cornell box presets (classic and smoke)

The scene module manages:
    - Material and medium id assignment and validation
    - Primitive storage in a tagged primitive table
    - Light source enumeration for direct lighting
    - Background radiance for escaping rays
"""

# Cornell box scenes
from .cornell_box import (
    BOX_SIZE,
    CornellBoxParams,
    create_cornell_box_scene,
    create_cornell_smoke_scene,
)
from .lights import PointLight

# Scene manager for coordinating primitives and materials
from .manager import (
    MaterialInfo,
    PrimitiveInfo,
    SceneConfig,
    SceneManager,
)
from .scene import Scene

__all__ = [
    # Scene
    "Scene",
    "PointLight",
    # Manager module
    "SceneManager",
    "MaterialInfo",
    "PrimitiveInfo",
    "SceneConfig",
    # Cornell box module
    "create_cornell_box_scene",
    "create_cornell_smoke_scene",
    "CornellBoxParams",
    "BOX_SIZE",
]
