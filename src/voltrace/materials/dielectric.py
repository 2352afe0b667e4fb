"""Dielectric (glass/water) material implementation.

Dielectrics (glass, water, etc.) both reflect and refract light.
The probability of reflection vs refraction is determined by the
Fresnel equations (using Schlick's approximation).

Total internal reflection occurs when light travels from a denser
medium to a less dense medium at a steep enough angle.

Only one continuation is generated per interaction: the first uniform of
the scatter sample chooses reflection with probability equal to the
Fresnel reflectance, refraction otherwise.

Example:
    >>> glass = Dielectric(1.5)
    >>> glass.is_specular
    True
"""

from __future__ import annotations

import numpy as np

from voltrace.core.ray import FloatArray, dot, normalize, reflect, refract, schlick_fresnel
from voltrace.geometry.hit import HitBatch
from voltrace.materials.material import Material, ScatterResult


class Dielectric(Material):
    """Clear dielectric with a fixed index of refraction.

    Args:
        ior: Index of refraction of the material.

    Raises:
        ValueError: If ior is less than 1.0.
    """

    is_specular = True

    def __init__(self, ior: float) -> None:
        if ior < 1.0:
            raise ValueError(
                f"Index of refraction = {ior} is less than 1.0. "
                "IOR must be >= 1.0 for physically meaningful materials."
            )
        self.ior = float(ior)

    def __repr__(self) -> str:
        return f"Dielectric(ior={self.ior})"

    def refraction_ratio(self, front_face: np.ndarray) -> FloatArray:
        """eta = 1/ior entering the material, ior leaving it."""
        return np.where(front_face, 1.0 / self.ior, self.ior)

    def fresnel_reflectance(self, wo: FloatArray, hits: HitBatch) -> FloatArray:
        cos_theta = np.minimum(-dot(normalize(wo), hits.shading_normal), 1.0)
        return schlick_fresnel(cos_theta, self.refraction_ratio(hits.front_face))

    def scatter(self, wo: FloatArray, hits: HitBatch, u: FloatArray) -> ScatterResult:
        incident = normalize(wo)
        normal = hits.shading_normal
        eta = self.refraction_ratio(hits.front_face)

        cos_theta = np.clip(-dot(incident, normal), 0.0, 1.0)
        refracted, can_refract = refract(incident, normal, eta)
        reflectance = schlick_fresnel(cos_theta, eta)

        # Reflect on total internal reflection or with Fresnel probability
        use_reflect = ~can_refract | (u[:, 0] < reflectance)
        direction = np.where(use_reflect[:, None], reflect(incident, normal), refracted)
        direction = normalize(direction)

        # Dielectrics don't absorb light - attenuation is white
        n = len(hits)
        return ScatterResult(direction, np.ones((n, 3)), np.ones(n, dtype=bool))
