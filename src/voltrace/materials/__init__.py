"""Materials module for BRDF/BSDF models.

This module implements physically-based material models for light scattering:

Components:
    material: Base material interface (scatter / evaluate / emitted)
    lambertian: Ideal diffuse (Lambertian) reflection
    metal: Specular reflection with optional roughness and emission
    glossy: Diffuse base under a Fresnel-weighted specular coat
    dielectric: Glass-like materials with refraction (Fresnel equations)
    emissive: Diffuse area lights
    texture: Constant, checker, Perlin noise and image textures

Each material provides:
    - scatter(): Importance sample a scattering direction
    - evaluate(): BSDF times cosine for next-event estimation
    - emitted(): Emitted radiance

Materials follow energy conservation principles and support:
    - Cosine-weighted hemisphere sampling for diffuse
    - Schlick Fresnel approximation for dielectrics

All computations are vectorized with numpy over batches of hits.
"""

from .dielectric import Dielectric
from .emissive import DiffuseLight
from .glossy import Glossy
from .lambertian import Lambertian
from .material import Material, ScatterResult, validate_albedo
from .metal import Metal
from .texture import (
    CheckerTexture,
    ConstantTexture,
    ImageTexture,
    NoiseTexture,
    Texture,
    TextureLike,
    as_texture,
)

__all__ = [
    # Base
    "Material",
    "ScatterResult",
    "validate_albedo",
    # Materials
    "Lambertian",
    "Metal",
    "Glossy",
    "Dielectric",
    "DiffuseLight",
    # Textures
    "Texture",
    "TextureLike",
    "ConstantTexture",
    "CheckerTexture",
    "NoiseTexture",
    "ImageTexture",
    "as_texture",
]
