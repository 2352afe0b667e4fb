"""Core rendering module.

This module contains the fundamental building blocks for ray tracing:

Components:
    ray: Ray data structures, vector utilities and sampling warps
    sampler: Correlated multi-jittered sampling
    framebuffer: Per-pixel radiance accumulation and image tiles
    integrator: Path tracing with volumetric transport
    scheduler: Multi-threaded tile rendering

The core module handles the rendering equation integration, implementing
Monte Carlo path tracing with Woodcock tracking through participating media,
next event estimation to point lights and Russian roulette termination.

All compute-intensive operations are vectorized numpy array programs over
batches of rays.
"""

from .framebuffer import Framebuffer, Tile, TileFailure
from .ray import (
    RAY_EPSILON,
    T_MAX,
    T_MIN,
    Ray,
    RayBatch,
    as_vec3,
    build_onb_from_normal,
    cross,
    dot,
    length,
    length_squared,
    local_to_world,
    make_ray,
    near_zero,
    normalize,
    offset_ray_origin,
    reflect,
    refract,
    sample_cosine_hemisphere,
    sample_in_unit_ball,
    sample_in_unit_disk,
    sample_uniform_sphere,
    schlick_fresnel,
    vec3,
)
from .sampler import DIM_LENS, DIM_PIXEL, DIM_TIME, CMJSampler, dimension_key

# Note: integrator and scheduler are NOT imported here to avoid circular imports.
# Import directly from voltrace.core.integrator or voltrace.core.scheduler when needed.

__all__ = [
    # Rays
    "Ray",
    "RayBatch",
    "make_ray",
    "T_MIN",
    "T_MAX",
    "RAY_EPSILON",
    # Vectors
    "vec3",
    "as_vec3",
    "length",
    "length_squared",
    "normalize",
    "dot",
    "cross",
    "reflect",
    "refract",
    "schlick_fresnel",
    "near_zero",
    "offset_ray_origin",
    # Sampling warps
    "build_onb_from_normal",
    "local_to_world",
    "sample_cosine_hemisphere",
    "sample_uniform_sphere",
    "sample_in_unit_ball",
    "sample_in_unit_disk",
    # Sampler
    "CMJSampler",
    "dimension_key",
    "DIM_PIXEL",
    "DIM_LENS",
    "DIM_TIME",
    # Framebuffer
    "Framebuffer",
    "Tile",
    "TileFailure",
]
