"""Lambertian (ideal diffuse) material implementation.

This module implements the Lambertian BRDF, which models ideal diffuse reflection
where incident light is scattered uniformly in all directions weighted by the
cosine of the angle from the surface normal.

The Lambertian BRDF is:
    f_r(wi, wo) = albedo / pi

The probability density function for cosine-weighted hemisphere sampling is:
    pdf(wi) = cos(theta) / pi

where theta is the angle between the sampled direction and the surface normal.
With this pdf, f * cos / pdf reduces to the albedo, which is the attenuation
returned by `scatter`.

Example:
    >>> red = Lambertian((0.65, 0.05, 0.05))
    >>> red.is_specular
    False
"""

from __future__ import annotations

import numpy as np

from voltrace.core.ray import FloatArray, dot, sample_cosine_hemisphere
from voltrace.geometry.hit import HitBatch
from voltrace.materials.material import Material, ScatterResult, validate_albedo
from voltrace.materials.texture import TextureLike, as_texture


class Lambertian(Material):
    """Lambertian (ideal diffuse) material.

    Args:
        albedo: The diffuse reflectance, an RGB triple in [0, 1] or a
            texture.

    Raises:
        ValueError: If any albedo component is outside [0, 1].
    """

    def __init__(self, albedo: TextureLike) -> None:
        validate_albedo(albedo)
        self.albedo = as_texture(albedo)

    def __repr__(self) -> str:
        return f"Lambertian(albedo={self.albedo!r})"

    def scatter(self, wo: FloatArray, hits: HitBatch, u: FloatArray) -> ScatterResult:
        """Cosine-weighted sampling around the shading normal."""
        direction, pdf = sample_cosine_hemisphere(hits.shading_normal, u[:, 0], u[:, 1])
        # Smooth normals can tilt samples below the geometric surface
        scattered = (pdf > 0.0) & (dot(direction, hits.normal) > 0.0)
        attenuation = self.albedo.value(hits.uv, hits.point)
        return ScatterResult(direction, attenuation, scattered)

    def evaluate(self, wo: FloatArray, wi: FloatArray, hits: HitBatch) -> FloatArray:
        cos_theta = np.maximum(dot(hits.shading_normal, wi), 0.0)
        above = dot(hits.normal, wi) > 0.0
        weight = np.where(above, cos_theta / np.pi, 0.0)
        return self.albedo.value(hits.uv, hits.point) * weight[:, None]
