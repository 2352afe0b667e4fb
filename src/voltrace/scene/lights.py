"""Point light sources.

Point lights are sampled only by next-event estimation: paths never hit them,
so their contribution is added once per shading point through a shadow ray.
Radiance arriving from a point light falls off with the squared distance:

    L = intensity / |p_light - x|^2

Area lights are ordinary primitives with a DiffuseLight material and are
collected when BSDF sampling hits them.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from voltrace.core.ray import FloatArray, as_vec3


@dataclass(frozen=True, eq=False)
class PointLight:
    """An isotropic point light.

    Attributes:
        position: World-space position.
        intensity: Radiant intensity per RGB channel.

    Raises:
        ValueError: If any intensity component is negative.
    """

    position: FloatArray
    intensity: FloatArray

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", as_vec3(self.position, "position"))
        intensity = as_vec3(self.intensity, "intensity")
        for i, component in enumerate(intensity):
            if component < 0.0:
                raise ValueError(f"Light intensity component {i} = {component} is negative.")
        object.__setattr__(self, "intensity", intensity)

    def illuminate(self, points: FloatArray) -> tuple[FloatArray, FloatArray, FloatArray]:
        """Light direction, distance and incident radiance at points.

        Returns:
            A tuple (directions, distances, radiance) where directions are
            unit vectors from the points towards the light, shape (N, 3).
        """
        to_light = self.position - points
        distance = np.sqrt(np.sum(to_light * to_light, axis=-1))
        safe = np.where(distance > 0.0, distance, 1.0)
        directions = to_light / safe[:, None]
        radiance = self.intensity[None, :] / (safe * safe)[:, None]
        radiance = np.where((distance > 0.0)[:, None], radiance, 0.0)
        return directions, distance, radiance
