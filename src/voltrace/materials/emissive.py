"""Emissive (area light) material implementation.

A DiffuseLight surface emits constant radiance from both of its sides and
does not scatter. Any primitive given this material becomes an area light;
its emission is collected when a BSDF-sampled path hits it.

Example:
    >>> lamp = DiffuseLight((1.0, 1.0, 1.0), intensity=15.0)
    >>> lamp.intensity
    15.0
"""

from __future__ import annotations

from voltrace.core.ray import FloatArray
from voltrace.geometry.hit import HitBatch
from voltrace.materials.material import Material, ScatterResult
from voltrace.materials.texture import ConstantTexture, TextureLike, as_texture


class DiffuseLight(Material):
    """Diffuse area light.

    Args:
        emit: Emitted color, an RGB triple or a texture.
        intensity: Scale applied to the emitted color.

    Raises:
        ValueError: If the emitted color or intensity is negative.
    """

    def __init__(self, emit: TextureLike, intensity: float = 1.0) -> None:
        texture = as_texture(emit)
        if isinstance(texture, ConstantTexture):
            for i, component in enumerate(texture.color):
                if component < 0.0:
                    raise ValueError(f"Emission component {i} = {component} is negative.")
        if intensity < 0.0:
            raise ValueError(f"Emission intensity = {intensity} is negative.")
        self.emit = texture
        self.intensity = float(intensity)

    def __repr__(self) -> str:
        return f"DiffuseLight(emit={self.emit!r}, intensity={self.intensity})"

    def scatter(self, wo: FloatArray, hits: HitBatch, u: FloatArray) -> ScatterResult:
        return ScatterResult.absorbed(len(hits))

    def emitted(self, hits: HitBatch) -> FloatArray:
        return self.intensity * self.emit.value(hits.uv, hits.point)
