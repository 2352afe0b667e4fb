"""Metal (specular reflective) material implementation.

This module implements the metal BSDF, which models specular reflection with
optional roughness (fuzziness). Perfect metals (roughness=0) produce mirror-like
reflections, while rougher metals scatter reflected rays within a cone.

The reflection formula is:
    R = I - 2(I . N)N

where I is the incident direction and N is the surface normal.

For rough metals, the reflected direction is perturbed by a random offset scaled
by the roughness parameter, modeling microfacet scattering.

A metal may also carry an emission texture, which makes it glow while still
reflecting.
"""

from __future__ import annotations

import numpy as np

from voltrace.core.ray import FloatArray, dot, normalize, reflect, sample_in_unit_ball
from voltrace.geometry.hit import HitBatch
from voltrace.materials.material import Material, ScatterResult, validate_albedo
from voltrace.materials.texture import ConstantTexture, TextureLike, as_texture


class Metal(Material):
    """Metal (specular reflective) material.

    Args:
        albedo: The reflective color, an RGB triple in [0, 1] or a texture.
        roughness: The surface roughness/fuzziness in [0, 1].
            0 = perfect mirror, 1 = maximum fuzziness.
        emit: Optional emitted radiance, an RGB triple or a texture.

    Raises:
        ValueError: If albedo or roughness is outside [0, 1], or the
            emission is negative.
    """

    is_specular = True

    def __init__(self, albedo: TextureLike, roughness: float = 0.0, emit: TextureLike | None = None) -> None:
        validate_albedo(albedo)
        if roughness < 0.0 or roughness > 1.0:
            raise ValueError(
                f"Roughness = {roughness} is outside [0, 1]. "
                "Roughness must be between 0 (perfect mirror) and 1 (maximum fuzz)."
            )
        self.albedo = as_texture(albedo)
        self.roughness = float(roughness)
        self.emit = None if emit is None else as_texture(emit)
        if isinstance(self.emit, ConstantTexture) and np.any(self.emit.color < 0.0):
            raise ValueError(f"Emission = {tuple(self.emit.color)} has negative components.")

    def __repr__(self) -> str:
        return f"Metal(albedo={self.albedo!r}, roughness={self.roughness}, emit={self.emit!r})"

    def scatter(self, wo: FloatArray, hits: HitBatch, u: FloatArray) -> ScatterResult:
        """Reflect about the shading normal, then fuzz within a ball.

        The ray is absorbed if the scattered direction ends up below the
        surface.
        """
        reflected = reflect(normalize(wo), hits.shading_normal)
        fuzz = self.roughness * sample_in_unit_ball(u[:, 0], u[:, 1], u[:, 2])
        direction = normalize(reflected + fuzz)
        scattered = dot(direction, hits.normal) > 0.0
        attenuation = self.albedo.value(hits.uv, hits.point)
        return ScatterResult(direction, attenuation, scattered)

    def emitted(self, hits: HitBatch) -> FloatArray:
        if self.emit is None:
            return super().emitted(hits)
        return self.emit.value(hits.uv, hits.point)
