"""Glossy (coated diffuse) material implementation.

A glossy surface is a diffuse base under a clear coat. Each interaction
picks one of two lobes:

    specular  with probability F, Schlick's reflectance of the coat
    diffuse   otherwise

The specular lobe is a mirror reflection fuzzed by (1 - glossiness) like
Metal, tinted by the specular albedo. The diffuse lobe is cosine-weighted
like Lambertian. Because the lobe is picked with the probability of its
weight, the attenuation is simply the albedo of the chosen lobe.

Next-event estimation sees the diffuse lobe only, scaled by (1 - F).

Example:
    >>> plastic = Glossy((0.8, 0.1, 0.1), glossiness=0.9)
    >>> plastic.is_specular
    False
"""

from __future__ import annotations

import numpy as np

from voltrace.core.ray import (
    FloatArray,
    dot,
    normalize,
    reflect,
    sample_cosine_hemisphere,
    sample_in_unit_ball,
    schlick_fresnel,
)
from voltrace.geometry.hit import HitBatch
from voltrace.materials.material import Material, ScatterResult, validate_albedo
from voltrace.materials.texture import TextureLike, as_texture

# Index of refraction of the clear coat
DEFAULT_COAT_IOR = 1.45


class Glossy(Material):
    """Diffuse base with a Fresnel-weighted specular coat.

    Args:
        albedo: Diffuse color, an RGB triple in [0, 1] or a texture.
        glossiness: Sharpness of the highlights in [0, 1]. 1 = mirror coat,
            0 = maximum fuzz.
        specular_albedo: Tint of the specular lobe.
        ior: Index of refraction of the coat.

    Raises:
        ValueError: If an albedo or the glossiness is outside [0, 1], or
            ior is less than 1.0.
    """

    def __init__(
        self,
        albedo: TextureLike,
        glossiness: float = 0.8,
        specular_albedo: TextureLike = (1.0, 1.0, 1.0),
        ior: float = DEFAULT_COAT_IOR,
    ) -> None:
        validate_albedo(albedo)
        validate_albedo(specular_albedo)
        if glossiness < 0.0 or glossiness > 1.0:
            raise ValueError(
                f"Glossiness = {glossiness} is outside [0, 1]. "
                "Glossiness must be between 0 (maximum fuzz) and 1 (mirror coat)."
            )
        if ior < 1.0:
            raise ValueError(
                f"Index of refraction = {ior} is less than 1.0. "
                "IOR must be >= 1.0 for physically meaningful materials."
            )
        self.albedo = as_texture(albedo)
        self.specular_albedo = as_texture(specular_albedo)
        self.glossiness = float(glossiness)
        self.ior = float(ior)

    def __repr__(self) -> str:
        return (
            f"Glossy(albedo={self.albedo!r}, glossiness={self.glossiness}, "
            f"specular_albedo={self.specular_albedo!r}, ior={self.ior})"
        )

    @property
    def fuzz(self) -> float:
        return 1.0 - self.glossiness

    def reflectance(self, wo: FloatArray, hits: HitBatch) -> FloatArray:
        """Probability of the specular lobe for incoming directions wo."""
        cos_theta = np.clip(-dot(normalize(wo), hits.shading_normal), 0.0, 1.0)
        return schlick_fresnel(cos_theta, self.ior)

    def scatter(self, wo: FloatArray, hits: HitBatch, u: FloatArray) -> ScatterResult:
        """Pick a lobe with u[:, 2], then sample it."""
        incident = normalize(wo)
        normal = hits.shading_normal
        fresnel = self.reflectance(wo, hits)
        specular = u[:, 2] < fresnel

        # Rescale the lobe sample so the specular fuzz stays uniform
        u_fuzz = np.where(specular, u[:, 2] / np.maximum(fresnel, 1e-12), 0.0)
        fuzz = self.fuzz * sample_in_unit_ball(u[:, 0], u[:, 1], np.minimum(u_fuzz, 1.0))
        mirrored = normalize(reflect(incident, normal) + fuzz)

        diffuse, pdf = sample_cosine_hemisphere(normal, u[:, 0], u[:, 1])

        direction = np.where(specular[:, None], mirrored, diffuse)
        scattered = (specular | (pdf > 0.0)) & (dot(direction, hits.normal) > 0.0)
        attenuation = np.where(
            specular[:, None],
            self.specular_albedo.value(hits.uv, hits.point),
            self.albedo.value(hits.uv, hits.point),
        )
        return ScatterResult(direction, attenuation, scattered)

    def evaluate(self, wo: FloatArray, wi: FloatArray, hits: HitBatch) -> FloatArray:
        cos_theta = np.maximum(dot(hits.shading_normal, wi), 0.0)
        above = dot(hits.normal, wi) > 0.0
        weight = np.where(above, (1.0 - self.reflectance(wo, hits)) * cos_theta / np.pi, 0.0)
        return self.albedo.value(hits.uv, hits.point) * weight[:, None]
