"""Unified scene manager for coordinating primitives, materials and media.

This module provides a high-level scene building API. Materials, media,
primitives and lights are registered one call at a time and receive dense
integer ids in insertion order; `build()` then freezes everything into an
immutable Scene with a BVH.

The SceneManager maintains:
- A unified material_id space across all material types
- A medium_id space for participating media bounded by volume primitives
- Primitive ids equal to insertion order (the BVH tie-break order)
- Scene serialization/configuration support

Example:
    >>> manager = SceneManager()
    >>> mat_id = manager.add_lambertian_material(albedo=(0.8, 0.3, 0.3))
    >>> manager.add_sphere(center=(0, 0, -1), radius=0.5, material_id=mat_id)
    0
    >>> manager.add_point_light(position=(0, 2, 0), intensity=(10, 10, 10))
    >>> scene = manager.build()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np

from voltrace.core.ray import as_vec3
from voltrace.geometry.box import Box
from voltrace.geometry.bvh import BVH, DEFAULT_LEAF_SIZE, SplitMethod
from voltrace.geometry.hit import NO_ID
from voltrace.geometry.primitives import VOLUME_KINDS, PrimitiveTable, Shape, kind_of
from voltrace.geometry.quad import Quad
from voltrace.geometry.sphere import Sphere
from voltrace.geometry.triangle import Triangle, TriangleMesh
from voltrace.materials.dielectric import Dielectric
from voltrace.materials.emissive import DiffuseLight
from voltrace.materials.glossy import DEFAULT_COAT_IOR, Glossy
from voltrace.materials.lambertian import Lambertian
from voltrace.materials.material import Material
from voltrace.materials.metal import Metal
from voltrace.materials.texture import TextureLike
from voltrace.media.medium import Medium, homogeneous
from voltrace.scene.lights import PointLight
from voltrace.scene.scene import Scene

logger = logging.getLogger(__name__)

Vec3Like = Sequence[float]


@dataclass
class MaterialInfo:
    """Information about a registered material.

    Attributes:
        material_id: The unified material ID.
        material: The material instance.
        params: The material parameters as provided during creation, or None
            for materials added directly with `add_material`.
    """

    material_id: int
    material: Material
    params: dict[str, Any] | None = None


@dataclass
class PrimitiveInfo:
    """Information about a primitive in the scene.

    Attributes:
        primitive_id: The primitive id (insertion order).
        shape: The shape instance.
        material_id: Surface material, -1 for volume boundaries.
        medium_id: Bounded medium, -1 for plain surfaces.
    """

    primitive_id: int
    shape: Shape
    material_id: int
    medium_id: int = NO_ID


@dataclass
class SceneConfig:
    """Configuration for scene serialization.

    Attributes:
        materials: List of material configurations.
        media: List of medium configurations.
        primitives: List of primitive configurations.
        lights: List of point light configurations.
        background: Background radiance.
    """

    materials: list[dict[str, Any]] = field(default_factory=list)
    media: list[dict[str, Any]] = field(default_factory=list)
    primitives: list[dict[str, Any]] = field(default_factory=list)
    lights: list[dict[str, Any]] = field(default_factory=list)
    background: list[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])


class SceneManager:
    """Scene builder coordinating primitives, materials, media and lights.

    Attributes:
        materials: MaterialInfo for all registered materials.
        media: Registered media with their creation parameters.
        primitives: PrimitiveInfo for all primitives in the scene.
        lights: Point lights.
        background: Radiance for rays that escape the scene.

    Example:
        >>> manager = SceneManager()
        >>> red_diffuse = manager.add_lambertian_material(albedo=(0.8, 0.1, 0.1))
        >>> gold_metal = manager.add_metal_material(albedo=(0.8, 0.6, 0.2), roughness=0.3)
        >>> glass = manager.add_dielectric_material(ior=1.5)
        >>> manager.add_sphere((0, 0, -1), 0.5, red_diffuse)
        0
        >>> manager.add_sphere((1, 0, -1), 0.5, gold_metal)
        1
        >>> manager.add_sphere((-1, 0, -1), 0.5, glass)
        2
    """

    def __init__(self) -> None:
        """Initialize an empty scene."""
        self.materials: list[MaterialInfo] = []
        self.media: list[tuple[Medium, dict[str, Any] | None]] = []
        self.primitives: list[PrimitiveInfo] = []
        self.lights: list[PointLight] = []
        self.background = np.zeros(3)

    def clear(self) -> None:
        """Clear the entire scene (primitives, materials, media and lights)."""
        self.materials.clear()
        self.media.clear()
        self.primitives.clear()
        self.lights.clear()
        self.background = np.zeros(3)

    # =========================================================================
    # Material Management
    # =========================================================================

    def add_material(self, material: Material, params: dict[str, Any] | None = None) -> int:
        """Register a material instance and return its material ID."""
        if not isinstance(material, Material):
            raise ValueError(f"Expected a Material, got {type(material).__name__}")
        material_id = len(self.materials)
        self.materials.append(MaterialInfo(material_id, material, params))
        return material_id

    def add_lambertian_material(self, albedo: TextureLike) -> int:
        """Add a Lambertian (diffuse) material to the scene.

        Args:
            albedo: The diffuse reflectance color as (R, G, B) tuple or a
                texture. Each component should be in [0, 1] for energy
                conservation.

        Returns:
            The unified material ID for this material.

        Raises:
            ValueError: If any albedo component is outside [0, 1].
        """
        return self.add_material(Lambertian(albedo), _color_params("lambertian", albedo=albedo))

    def add_metal_material(
        self,
        albedo: TextureLike,
        roughness: float = 0.0,
        emit: TextureLike | None = None,
    ) -> int:
        """Add a metal (specular reflective) material to the scene.

        Args:
            albedo: The reflective color as (R, G, B) tuple or a texture.
                Each component should be in [0, 1].
            roughness: The surface roughness in [0, 1]. Default is 0 (perfect mirror).
            emit: Optional emitted radiance as (R, G, B) tuple or a texture.

        Raises:
            ValueError: If any albedo component or the roughness is outside
                [0, 1], or the emission is negative.
        """
        colors = {"albedo": albedo} if emit is None else {"albedo": albedo, "emit": emit}
        params = _color_params("metal", **colors)
        if params is not None:
            params["roughness"] = roughness
        return self.add_material(Metal(albedo, roughness, emit), params)

    def add_glossy_material(
        self,
        albedo: TextureLike,
        glossiness: float = 0.8,
        specular_albedo: TextureLike = (1.0, 1.0, 1.0),
        ior: float = DEFAULT_COAT_IOR,
    ) -> int:
        """Add a glossy (diffuse with a specular coat) material to the scene.

        Args:
            albedo: The diffuse color as (R, G, B) tuple or a texture.
            glossiness: Highlight sharpness in [0, 1]. 1 is a mirror coat.
            specular_albedo: Tint of the specular highlights.
            ior: Index of refraction of the coat, driving the Fresnel
                weight of the highlights.

        Raises:
            ValueError: If an albedo or the glossiness is outside [0, 1], or
                ior is less than 1.0.
        """
        params = _color_params("glossy", albedo=albedo, specular_albedo=specular_albedo)
        if params is not None:
            params.update(glossiness=glossiness, ior=ior)
        return self.add_material(Glossy(albedo, glossiness, specular_albedo, ior), params)

    def add_dielectric_material(self, ior: float = 1.5) -> int:
        """Add a dielectric (glass/water) material to the scene.

        Args:
            ior: Index of refraction. Default is 1.5 (typical glass).
                Common values: Air=1.0, Water=1.33, Glass=1.5, Diamond=2.4

        Raises:
            ValueError: If IOR is less than 1.0.
        """
        return self.add_material(Dielectric(ior), {"type": "dielectric", "ior": ior})

    def add_diffuse_light_material(self, emit: TextureLike, intensity: float = 1.0) -> int:
        """Add an emissive material; primitives using it become area lights.

        Args:
            emit: The emission color as (R, G, B) tuple or a texture.
            intensity: The emission strength. Must be non-negative.

        Raises:
            ValueError: If any emission component or the intensity is negative.
        """
        params = _color_params("diffuse_light", emit=emit)
        if params is not None:
            params["intensity"] = intensity
        return self.add_material(DiffuseLight(emit, intensity), params)

    def get_material_count(self) -> int:
        """Get the total number of materials in the scene."""
        return len(self.materials)

    def get_material_info(self, material_id: int) -> MaterialInfo | None:
        if 0 <= material_id < len(self.materials):
            return self.materials[material_id]
        return None

    def _check_material(self, material_id: int) -> None:
        if not 0 <= material_id < len(self.materials):
            raise ValueError(f"Invalid material_id: {material_id}")

    # =========================================================================
    # Media
    # =========================================================================

    def add_medium(self, medium: Medium) -> int:
        """Register a participating medium and return its medium ID."""
        if not isinstance(medium, Medium):
            raise ValueError(f"Expected a Medium, got {type(medium).__name__}")
        self.media.append((medium, None))
        return len(self.media) - 1

    def add_homogeneous_medium(
        self,
        density: float,
        albedo: Vec3Like = (1.0, 1.0, 1.0),
        g: float = 0.0,
    ) -> int:
        """Add a constant-density medium.

        Args:
            density: Extinction coefficient (per unit length).
            albedo: Single-scattering albedo per RGB channel, in [0, 1].
            g: Henyey-Greenstein asymmetry, 0 for isotropic scattering.

        Raises:
            ValueError: If the density is negative, the albedo leaves
                [0, 1] or g is outside (-1, 1).
        """
        if density < 0.0:
            raise ValueError(f"Medium density = {density} is negative.")
        medium = homogeneous(density, albedo, g)
        params = {"type": "homogeneous", "density": density, "albedo": list(albedo), "g": g}
        self.media.append((medium, params))
        return len(self.media) - 1

    def get_medium_count(self) -> int:
        return len(self.media)

    # =========================================================================
    # Primitive Management
    # =========================================================================

    def _add_shape(self, shape: Shape, material_id: int, medium_id: int = NO_ID) -> int:
        primitive_id = len(self.primitives)
        self.primitives.append(PrimitiveInfo(primitive_id, shape, material_id, medium_id))
        return primitive_id

    def add_sphere(
        self,
        center: Vec3Like,
        radius: float,
        material_id: int,
        center1: Vec3Like | None = None,
    ) -> int:
        """Add a sphere to the scene.

        Args:
            center: The center point of the sphere as (x, y, z).
            radius: The radius of the sphere (must be positive).
            material_id: The unified material ID to assign to the sphere.
            center1: Center at shutter time 1 for a moving sphere.

        Returns:
            The primitive id of the added sphere.

        Raises:
            ValueError: If the radius is not positive or material_id is invalid.
        """
        if not radius > 0.0:
            raise ValueError(f"Sphere radius = {radius} must be positive.")
        self._check_material(material_id)
        return self._add_shape(Sphere(center, radius, center1), material_id)

    def add_quad(
        self,
        corner: Vec3Like,
        edge_u: Vec3Like,
        edge_v: Vec3Like,
        material_id: int,
    ) -> int:
        """Add a quad (parallelogram) to the scene.

        The quad represents a parallelogram with vertices at:
        corner, corner+edge_u, corner+edge_v, corner+edge_u+edge_v

        Raises:
            ValueError: If material_id is invalid.
        """
        self._check_material(material_id)
        return self._add_shape(Quad(corner, edge_u, edge_v), material_id)

    def add_triangle(
        self,
        v0: Vec3Like,
        v1: Vec3Like,
        v2: Vec3Like,
        material_id: int,
        normals: Sequence[Vec3Like] | None = None,
    ) -> int:
        """Add a single triangle, optionally with per-vertex normals."""
        self._check_material(material_id)
        return self._add_shape(Triangle(v0, v1, v2, normals), material_id)

    def add_mesh(self, mesh: TriangleMesh, material_id: int) -> list[int]:
        """Add every triangle of a mesh and return their primitive ids."""
        self._check_material(material_id)
        return [self._add_shape(tri, material_id) for tri in mesh.triangles()]

    def add_box(
        self,
        p_min: Vec3Like,
        p_max: Vec3Like,
        material_id: int,
        rotate_y: float = 0.0,
        translate: Vec3Like = (0.0, 0.0, 0.0),
    ) -> int:
        """Add a box between two corners, rotated about Y then translated.

        Raises:
            ValueError: If material_id is invalid or p_min is not below p_max.
        """
        self._check_material(material_id)
        if np.any(as_vec3(p_min, "p_min") >= as_vec3(p_max, "p_max")):
            raise ValueError(f"Box corner p_min = {tuple(p_min)} must be below p_max = {tuple(p_max)}.")
        return self._add_shape(Box.from_corners(p_min, p_max, rotate_y, translate), material_id)

    def add_volume(self, boundary: Shape, medium_id: int) -> int:
        """Fill a convex shape (sphere or box) with a participating medium.

        Raises:
            ValueError: If medium_id is invalid or the boundary kind cannot
                enclose a volume.
        """
        if not 0 <= medium_id < len(self.media):
            raise ValueError(f"Invalid medium_id: {medium_id}")
        kind = kind_of(boundary)
        if kind not in VOLUME_KINDS:
            raise ValueError(f"Unsupported volume boundary: {kind.name.lower()}")
        return self._add_shape(boundary, NO_ID, medium_id)

    def add_constant_medium(
        self,
        boundary: Shape,
        density: float,
        albedo: Vec3Like = (1.0, 1.0, 1.0),
        g: float = 0.0,
    ) -> int:
        """Convenience for a homogeneous medium filling a boundary shape."""
        return self.add_volume(boundary, self.add_homogeneous_medium(density, albedo, g))

    def get_primitive_count(self) -> int:
        """Get the total number of primitives in the scene."""
        return len(self.primitives)

    # =========================================================================
    # Lights and Environment
    # =========================================================================

    def add_point_light(self, position: Vec3Like, intensity: Vec3Like) -> None:
        """Add a point light (sampled by next-event estimation only)."""
        self.lights.append(PointLight(position, intensity))

    def set_background(self, color: Vec3Like) -> None:
        """Set the radiance of rays that escape the scene."""
        background = as_vec3(color, "background")
        if np.any(background < 0.0):
            raise ValueError(f"Background color = {tuple(background)} has negative components.")
        self.background = background

    # =========================================================================
    # Build
    # =========================================================================

    def build(
        self,
        leaf_size: int = DEFAULT_LEAF_SIZE,
        split_method: SplitMethod = "sah",
    ) -> Scene:
        """Freeze the scene and build its BVH.

        Returns:
            An immutable Scene.

        Raises:
            ValueError: If the BVH parameters are invalid.
        """
        table = PrimitiveTable(
            [p.shape for p in self.primitives],
            [p.material_id for p in self.primitives],
            [p.medium_id for p in self.primitives],
        )
        bvh = BVH.build(table, leaf_size=leaf_size, split_method=split_method)
        logger.info(
            "Built scene: %d primitives, %d materials, %d media, %d lights, %d BVH nodes",
            len(table),
            len(self.materials),
            len(self.media),
            len(self.lights),
            len(bvh),
        )
        return Scene(
            primitives=table,
            materials=tuple(m.material for m in self.materials),
            media=tuple(m for m, _ in self.media),
            lights=tuple(self.lights),
            background=self.background.copy(),
            bvh=bvh,
        )

    # =========================================================================
    # Scene Serialization
    # =========================================================================

    def to_config(self) -> SceneConfig:
        """Export the scene to a configuration object.

        Raises:
            ValueError: If a material or medium was registered as an
                instance without serializable parameters.
        """
        config = SceneConfig(background=self.background.tolist())
        for info in self.materials:
            if info.params is None:
                raise ValueError(f"Material {info.material_id} cannot be serialized")
            config.materials.append(dict(info.params))
        for medium_id, (_, params) in enumerate(self.media):
            if params is None:
                raise ValueError(f"Medium {medium_id} cannot be serialized")
            config.media.append(dict(params))
        for info in self.primitives:
            config.primitives.append(_shape_config(info))
        for light in self.lights:
            config.lights.append({"position": light.position.tolist(), "intensity": light.intensity.tolist()})
        return config

    def from_config(self, config: SceneConfig) -> None:
        """Load a scene from a configuration object.

        Clears the current scene and loads the configuration.

        Raises:
            ValueError: If the configuration contains invalid data.
        """
        self.clear()

        # Load materials and media first (needed for primitives)
        for mat_config in config.materials:
            mat_type = mat_config.get("type", "").lower()
            if mat_type == "lambertian":
                self.add_lambertian_material(mat_config.get("albedo", [0.5, 0.5, 0.5]))
            elif mat_type == "metal":
                self.add_metal_material(
                    mat_config.get("albedo", [0.8, 0.8, 0.8]),
                    mat_config.get("roughness", 0.0),
                    mat_config.get("emit"),
                )
            elif mat_type == "glossy":
                self.add_glossy_material(
                    mat_config.get("albedo", [0.5, 0.5, 0.5]),
                    mat_config.get("glossiness", 0.8),
                    mat_config.get("specular_albedo", [1.0, 1.0, 1.0]),
                    mat_config.get("ior", DEFAULT_COAT_IOR),
                )
            elif mat_type == "dielectric":
                self.add_dielectric_material(mat_config.get("ior", 1.5))
            elif mat_type == "diffuse_light":
                self.add_diffuse_light_material(
                    mat_config.get("emit", [1.0, 1.0, 1.0]), mat_config.get("intensity", 1.0)
                )
            else:
                raise ValueError(f"Unknown material type: {mat_type}")

        for medium_config in config.media:
            medium_type = medium_config.get("type", "").lower()
            if medium_type != "homogeneous":
                raise ValueError(f"Unknown medium type: {medium_type}")
            self.add_homogeneous_medium(
                medium_config.get("density", 1.0),
                medium_config.get("albedo", [1.0, 1.0, 1.0]),
                medium_config.get("g", 0.0),
            )

        for prim_config in config.primitives:
            self._add_from_config(prim_config)

        for light_config in config.lights:
            self.add_point_light(light_config["position"], light_config["intensity"])
        self.set_background(config.background)

    def _add_from_config(self, prim: dict[str, Any]) -> None:
        kind = prim.get("type", "").lower()
        material_id = prim.get("material_id", NO_ID)
        medium_id = prim.get("medium_id", NO_ID)
        if kind == "sphere":
            shape: Shape = Sphere(prim["center"], prim["radius"], prim.get("center1"))
        elif kind == "quad":
            shape = Quad(prim["corner"], prim["edge_u"], prim["edge_v"])
        elif kind == "triangle":
            shape = Triangle(*prim["vertices"], prim.get("normals"))
        elif kind == "box":
            shape = Box(prim["center"], prim["half_extents"], prim.get("rotate_y", 0.0))
        else:
            raise ValueError(f"Unknown primitive type: {kind}")

        if medium_id != NO_ID:
            self.add_volume(shape, medium_id)
        else:
            self._check_material(material_id)
            if isinstance(shape, Sphere) and not shape.radius > 0.0:
                raise ValueError(f"Sphere radius = {shape.radius} must be positive.")
            self._add_shape(shape, material_id)

    def to_dict(self) -> dict[str, Any]:
        """Export the scene to a dictionary (for JSON serialization)."""
        config = self.to_config()
        return {
            "materials": config.materials,
            "media": config.media,
            "primitives": config.primitives,
            "lights": config.lights,
            "background": config.background,
        }

    def from_dict(self, data: dict[str, Any]) -> None:
        """Load a scene from a dictionary.

        Args:
            data: Dictionary with 'materials', 'media', 'primitives',
                'lights' and 'background' keys; all are optional.
        """
        config = SceneConfig(
            materials=data.get("materials", []),
            media=data.get("media", []),
            primitives=data.get("primitives", []),
            lights=data.get("lights", []),
            background=data.get("background", [0.0, 0.0, 0.0]),
        )
        self.from_config(config)


def _color_params(material_type: str, **colors: TextureLike) -> dict[str, Any] | None:
    """Serializable parameters for materials given plain RGB colors."""
    params: dict[str, Any] = {"type": material_type}
    for name, value in colors.items():
        if hasattr(value, "value"):
            return None
        params[name] = [float(c) for c in value]
    return params


def _shape_config(info: PrimitiveInfo) -> dict[str, Any]:
    shape = info.shape
    if isinstance(shape, Sphere):
        config: dict[str, Any] = {"type": "sphere", "center": shape.center.tolist(), "radius": shape.radius}
        if shape.center1 is not None:
            config["center1"] = shape.center1.tolist()
    elif isinstance(shape, Quad):
        config = {"type": "quad", "corner": shape.Q.tolist(), "edge_u": shape.u.tolist(), "edge_v": shape.v.tolist()}
    elif isinstance(shape, Triangle):
        config = {"type": "triangle", "vertices": [shape.v0.tolist(), shape.v1.tolist(), shape.v2.tolist()]}
        if shape.normals is not None:
            config["normals"] = shape.normals.tolist()
    else:
        config = {
            "type": "box",
            "center": shape.center.tolist(),
            "half_extents": shape.half_extents.tolist(),
            "rotate_y": shape.rotate_y,
        }
    if info.medium_id != NO_ID:
        config["medium_id"] = info.medium_id
    else:
        config["material_id"] = info.material_id
    return config
