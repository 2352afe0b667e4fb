"""Geometry module for shape primitives and spatial acceleration.

This module provides geometric primitives and intersection algorithms:

Components:
    aabb: Axis-Aligned Bounding Box utilities and the vectorized slab test
    sphere: Sphere primitive (optionally moving) with robust intersection
    quad: Arbitrary quad (parallelogram) primitives
    triangle: Triangles and triangle meshes with vertex normals
    box: Boxes rotated about the Y axis
    primitives: Tagged primitive table with per-kind dispatch
    hit: Hit records for single rays and batches
    bvh: Bounding Volume Hierarchy and the brute-force reference scan

All intersection routines are vectorized numpy functions over batches of
rays. The accelerators support both closest-hit and any-hit queries for
shadow rays.
"""

from .aabb import AABB
from .box import Box, rotation_y
from .bvh import BVH, Accelerator, LinearAccelerator
from .hit import NO_ID, HitBatch, HitRecord
from .primitives import PrimitiveKind, PrimitiveTable, Shape
from .quad import Quad
from .sphere import Sphere
from .triangle import Triangle, TriangleMesh

__all__ = [
    # Shapes
    "AABB",
    "Sphere",
    "Quad",
    "Triangle",
    "TriangleMesh",
    "Box",
    "rotation_y",
    # Primitive table
    "Shape",
    "PrimitiveKind",
    "PrimitiveTable",
    # Hits
    "NO_ID",
    "HitRecord",
    "HitBatch",
    # Acceleration
    "Accelerator",
    "BVH",
    "LinearAccelerator",
]
