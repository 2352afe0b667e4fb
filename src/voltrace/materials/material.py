"""Base material interface shared by all surface materials.

Materials are evaluated for a batch of hits at once. The integrator groups
the surface hits of a bounce by material id and calls, per group:

    scatter(wo, hits, u)   sample a continuation direction
    evaluate(wo, wi, hits) BSDF value times cosine, for next-event estimation
    emitted(hits)          emitted radiance

`wo` is the direction the path was travelling when it hit the surface,
`hits` the rows of the HitBatch belonging to the group and `u` a (N, 3) block
of uniform numbers from the sampler.

The attenuation returned by `scatter` is the throughput factor
f * cos(theta) / pdf, so the integrator never divides by a pdf itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Sequence

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray
from voltrace.geometry.hit import HitBatch
from voltrace.materials.texture import ConstantTexture, Texture, texture_range


@dataclass
class ScatterResult:
    """Outcome of BSDF sampling for a batch of hits.

    Attributes:
        direction: Unit continuation directions, shape (N, 3).
        attenuation: Throughput factor f * cos / pdf, shape (N, 3).
        scattered: False where the path was absorbed, shape (N,).
    """

    direction: FloatArray
    attenuation: FloatArray
    scattered: npt.NDArray[np.bool_]

    @classmethod
    def absorbed(cls, n: int) -> ScatterResult:
        return cls(np.zeros((n, 3)), np.zeros((n, 3)), np.zeros(n, dtype=bool))


class Material:
    """Base class for surface materials.

    Subclasses override `scatter`, and `evaluate` when they are not
    specular. Specular materials are skipped by next-event estimation.
    """

    is_specular: ClassVar[bool] = False

    def scatter(self, wo: FloatArray, hits: HitBatch, u: FloatArray) -> ScatterResult:
        raise NotImplementedError

    def evaluate(self, wo: FloatArray, wi: FloatArray, hits: HitBatch) -> FloatArray:
        """BSDF times cosine for light arriving from wi. Zero by default."""
        return np.zeros((len(hits), 3))

    def emitted(self, hits: HitBatch) -> FloatArray:
        """Radiance emitted towards the incoming ray. Zero by default."""
        return np.zeros((len(hits), 3))


def validate_albedo(albedo: Texture | Sequence[float]) -> None:
    """Check that an albedo stays in [0, 1].

    Raises:
        ValueError: If any albedo component is outside [0, 1].
    """
    if isinstance(albedo, ConstantTexture):
        components = albedo.color
    elif isinstance(albedo, (tuple, list, np.ndarray)):
        components = np.asarray(albedo, dtype=np.float64)
    else:
        lo, hi = texture_range(albedo)
        components = np.array([lo, hi])
    for i, component in enumerate(components):
        if component < 0.0 or component > 1.0:
            raise ValueError(
                f"Albedo component {i} = {component} is outside [0, 1]. "
                "This would violate energy conservation."
            )
