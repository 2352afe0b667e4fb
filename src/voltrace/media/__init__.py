"""Participating media module.

Components:
    noise: Seeded Perlin noise and turbulence
    density: Density fields (constant, voxel grid, noise)
    phase: Isotropic and Henyey-Greenstein phase functions
    medium: Medium definition and Woodcock (delta) tracking

A medium is attached to a convex boundary primitive (sphere or box) in the
scene. The integrator samples free-flight distances inside the boundary and
scatters with the medium's phase function.
"""

from .density import ConstantDensity, DensityField, GridDensity, NoiseDensity, linear_ramp_grid
from .medium import Medium, MediumEvent, MediumEvents, homogeneous
from .noise import Perlin
from .phase import HenyeyGreensteinPhase, IsotropicPhase

__all__ = [
    "DensityField",
    "ConstantDensity",
    "GridDensity",
    "NoiseDensity",
    "linear_ramp_grid",
    "Medium",
    "MediumEvent",
    "MediumEvents",
    "homogeneous",
    "Perlin",
    "IsotropicPhase",
    "HenyeyGreensteinPhase",
]
