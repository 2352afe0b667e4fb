"""Phase functions for volumetric scattering.

Directions follow the path-tracing convention used across the renderer:
`wo` is the direction the path is travelling (incoming light flows the
other way), so forward scattering means the new direction is close to `wo`.
Phase functions are normalized over the sphere, so the value returned by
`evaluate` is also the pdf of `sample`.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from voltrace.core.ray import (
    FloatArray,
    build_onb_from_normal,
    dot,
    local_to_world,
    sample_uniform_sphere,
)

INV_FOUR_PI = 1.0 / (4.0 * np.pi)


@dataclass(frozen=True)
class IsotropicPhase:
    """Uniform scattering over the sphere."""

    def evaluate(self, wo: FloatArray, wi: FloatArray) -> FloatArray:
        return np.full(wo.shape[:-1], INV_FOUR_PI)

    def sample(self, wo: FloatArray, u: FloatArray) -> FloatArray:
        """New directions from uniforms u of shape (N, 2)."""
        return sample_uniform_sphere(u[..., 0], u[..., 1])


@dataclass(frozen=True)
class HenyeyGreensteinPhase:
    """Henyey-Greenstein phase function.

    Attributes:
        g: Asymmetry parameter in (-1, 1); positive values scatter forward.
    """

    g: float = 0.0

    def __post_init__(self) -> None:
        if not -1.0 < self.g < 1.0:
            raise ValueError(f"Henyey-Greenstein g must be in (-1, 1), got {self.g}")

    def evaluate(self, wo: FloatArray, wi: FloatArray) -> FloatArray:
        cos_theta = dot(wo, wi)
        g = self.g
        denom = 1.0 + g * g - 2.0 * g * cos_theta
        return INV_FOUR_PI * (1.0 - g * g) / (denom * np.sqrt(denom))

    def sample(self, wo: FloatArray, u: FloatArray) -> FloatArray:
        g = self.g
        u1, u2 = u[..., 0], u[..., 1]
        if abs(g) < 1e-3:
            cos_theta = 1.0 - 2.0 * u1
        else:
            sq = (1.0 - g * g) / (1.0 - g + 2.0 * g * u1)
            cos_theta = (1.0 + g * g - sq * sq) / (2.0 * g)
        cos_theta = np.clip(cos_theta, -1.0, 1.0)
        sin_theta = np.sqrt(np.maximum(1.0 - cos_theta * cos_theta, 0.0))
        phi = 2.0 * np.pi * u2
        local = np.stack([sin_theta * np.cos(phi), sin_theta * np.sin(phi), cos_theta], axis=-1)
        tangent, bitangent, n = build_onb_from_normal(wo)
        return local_to_world(local, tangent, bitangent, n)
