"""Offline path tracer with participating media.

This package renders images by Monte Carlo path tracing on the CPU, with
support for:
- BVH acceleration over spheres, quads, boxes and triangle meshes
- Nonhomogeneous participating media with Woodcock (delta) tracking
- Correlated multi-jittered sampling
- Multi-threaded tile rendering with deterministic output

Subpackages:
    core: Rays, sampler, integrator, framebuffer and tile scheduler
    geometry: Shape primitives, intersection algorithms and the BVH
    materials: BSDF material models and textures
    media: Density fields, phase functions and participating media
    scene: Scene building, lights and Cornell box presets
    camera: Thin-lens camera with ray generation
    preview: Tone mapping and PNG export
"""

__version__ = "0.1.0"
