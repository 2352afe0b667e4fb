"""Thin-lens perspective camera for primary ray generation.

This module implements a perspective camera that generates primary rays for
rendering. The camera supports:
- Look-at positioning (lookfrom, lookat, vup)
- Vertical field of view specification
- Arbitrary aspect ratios
- Depth of field through a thin lens (aperture, focus distance)
- Motion blur through a shutter interval assigning a time to every ray

The camera builds an orthonormal basis (u, v, w) from the view parameters:
- w: points from lookat toward lookfrom (opposite view direction)
- u: points right in the image plane
- v: points up in the image plane

The virtual image plane sits at the focus distance, so every ray through a
given image point converges there regardless of where it leaves the lens.
With aperture 0 the camera is a pinhole.

Example:
    >>> camera = PerspectiveCamera(
    ...     lookfrom=(0.0, 0.0, 3.0),
    ...     lookat=(0.0, 0.0, 0.0),
    ...     vup=(0.0, 1.0, 0.0),
    ...     vfov=60.0,
    ...     aspect_ratio=16.0 / 9.0,
    ... )
    >>> ray = camera.get_ray(0.5, 0.5)  # Ray through image center
    >>> ray.direction
    array([ 0.,  0., -1.])
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray, Ray, RayBatch, as_vec3, cross, normalize, sample_in_unit_disk


@dataclass(frozen=True, eq=False)
class PerspectiveCamera:
    """Configuration and ray generation for a thin-lens perspective camera.

    Attributes:
        lookfrom: Camera position in world space (x, y, z).
        lookat: Point the camera is looking at in world space (x, y, z).
        vup: Up direction vector for camera orientation (typically (0, 1, 0)).
        vfov: Vertical field of view in degrees.
        aspect_ratio: Width divided by height of the output image.
        aperture: Lens diameter; 0 gives a pinhole camera.
        focus_distance: Distance to the plane of perfect focus. Defaults to
            the lookfrom-lookat distance.
        shutter_open: Time at which the shutter opens.
        shutter_close: Time at which the shutter closes.

    Raises:
        ValueError: If the field of view, aspect ratio, aperture, focus
            distance or shutter interval is invalid, or if vup is parallel
            to the view direction.
    """

    lookfrom: Sequence[float]
    lookat: Sequence[float]
    vup: Sequence[float] = (0.0, 1.0, 0.0)
    vfov: float = 40.0
    aspect_ratio: float = 1.0
    aperture: float = 0.0
    focus_distance: float | None = None
    shutter_open: float = 0.0
    shutter_close: float = 0.0

    origin: FloatArray = field(init=False, repr=False)
    u: FloatArray = field(init=False, repr=False)
    v: FloatArray = field(init=False, repr=False)
    w: FloatArray = field(init=False, repr=False)
    horizontal: FloatArray = field(init=False, repr=False)
    vertical: FloatArray = field(init=False, repr=False)
    lower_left: FloatArray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not 0.0 < self.vfov < 180.0:
            raise ValueError(f"vfov = {self.vfov} must be in (0, 180) degrees.")
        if not self.aspect_ratio > 0.0:
            raise ValueError(f"aspect_ratio = {self.aspect_ratio} must be positive.")
        if self.aperture < 0.0:
            raise ValueError(f"aperture = {self.aperture} is negative.")
        if self.shutter_close < self.shutter_open:
            raise ValueError(
                f"shutter_close = {self.shutter_close} is before shutter_open = {self.shutter_open}."
            )

        lookfrom = as_vec3(self.lookfrom, "lookfrom")
        lookat = as_vec3(self.lookat, "lookat")
        vup = as_vec3(self.vup, "vup")

        # w points from lookat toward lookfrom (backward)
        view = lookfrom - lookat
        distance = float(np.linalg.norm(view))
        if distance == 0.0:
            raise ValueError("lookfrom and lookat must differ")
        w = view / distance
        # u points right (perpendicular to w and vup)
        u = cross(vup, w)
        if np.linalg.norm(u) < 1e-12:
            raise ValueError(f"vup = {tuple(vup)} is parallel to the view direction")
        u = normalize(u)
        # v points up in the camera's frame
        v = cross(w, u)

        focus = distance if self.focus_distance is None else float(self.focus_distance)
        if not focus > 0.0:
            raise ValueError(f"focus_distance = {focus} must be positive.")

        # Viewport dimensions at the focus plane
        h = math.tan(math.radians(self.vfov) / 2.0)
        viewport_height = 2.0 * h * focus
        viewport_width = self.aspect_ratio * viewport_height
        horizontal = viewport_width * u
        vertical = viewport_height * v
        lower_left = lookfrom - focus * w - horizontal / 2.0 - vertical / 2.0

        for name, value in (
            ("origin", lookfrom),
            ("u", u),
            ("v", v),
            ("w", w),
            ("horizontal", horizontal),
            ("vertical", vertical),
            ("lower_left", lower_left),
        ):
            object.__setattr__(self, name, value)
        object.__setattr__(self, "focus_distance", focus)

    @property
    def lens_radius(self) -> float:
        return 0.5 * self.aperture

    # =========================================================================
    # Ray Generation
    # =========================================================================

    def rays_at(
        self,
        s: FloatArray,
        t: FloatArray,
        u_lens: FloatArray,
        u_time: FloatArray,
    ) -> RayBatch:
        """Rays through normalized image coordinates (s, t).

        Args:
            s: Horizontal coordinates in [0, 1] (left to right), shape (N,).
            t: Vertical coordinates in [0, 1] (bottom to top), shape (N,).
            u_lens: Uniforms for the lens position, shape (N, 2).
            u_time: Uniforms for the shutter time, shape (N,).

        Returns:
            A RayBatch with unit-length directions.
        """
        disk = self.lens_radius * sample_in_unit_disk(u_lens[:, 0], u_lens[:, 1])
        offset = disk[:, 0:1] * self.u + disk[:, 1:2] * self.v
        origins = self.origin + offset
        targets = self.lower_left + s[:, None] * self.horizontal + t[:, None] * self.vertical
        directions = normalize(targets - origins)
        times = self.shutter_open + u_time * (self.shutter_close - self.shutter_open)
        return RayBatch.from_arrays(origins, directions, times=times)

    def generate_rays(
        self,
        px: npt.ArrayLike,
        py: npt.ArrayLike,
        width: int,
        height: int,
        u_pixel: FloatArray,
        u_lens: FloatArray,
        u_time: FloatArray,
    ) -> RayBatch:
        """Primary rays for pixels with sub-pixel jitter.

        Pixel (0, 0) is the top-left corner of the image.

        Args:
            px: Pixel columns, shape (N,).
            py: Pixel rows (0 = top), shape (N,).
            width: Image width in pixels.
            height: Image height in pixels.
            u_pixel: Jitter within the pixel in [0, 1)^2, shape (N, 2).
            u_lens: Lens sample uniforms, shape (N, 2).
            u_time: Shutter time uniforms, shape (N,).
        """
        px = np.asarray(px, dtype=np.float64)
        py = np.asarray(py, dtype=np.float64)
        s = (px + u_pixel[:, 0]) / width
        t = 1.0 - (py + u_pixel[:, 1]) / height
        return self.rays_at(s, t, u_lens, np.asarray(u_time, dtype=np.float64))

    def get_ray(
        self,
        s: float,
        t: float,
        u_lens: Sequence[float] = (0.0, 0.0),
        u_time: float = 0.0,
    ) -> Ray:
        """Generate a single ray through normalized image coordinates (s, t).

        - s = 0: left edge of image, s = 1: right edge
        - t = 0: bottom edge of image, t = 1: top edge

        The default lens sample is the lens center.
        """
        batch = self.rays_at(
            np.array([s], dtype=np.float64),
            np.array([t], dtype=np.float64),
            np.array([u_lens], dtype=np.float64),
            np.array([u_time], dtype=np.float64),
        )
        return batch.ray(0)

    def get_camera_info(self) -> dict[str, tuple[float, float, float]]:
        """Camera vectors for debugging."""
        return {
            "origin": tuple(self.origin.tolist()),
            "u": tuple(self.u.tolist()),
            "v": tuple(self.v.tolist()),
            "w": tuple(self.w.tolist()),
            "horizontal": tuple(self.horizontal.tolist()),
            "vertical": tuple(self.vertical.tolist()),
            "lower_left": tuple(self.lower_left.tolist()),
        }
