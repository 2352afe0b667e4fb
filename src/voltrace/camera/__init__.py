"""Camera module for view and ray generation.

This module provides the camera model for generating primary rays:

Components:
    perspective: Thin-lens perspective camera with a shutter interval

Camera responsibilities:
    - Transform (s, t) image coordinates to world-space rays
    - Apply anti-aliasing jitter for sub-pixel sampling
    - Support look-at positioning with up vector
    - Sample the lens for depth of field and the shutter for motion blur

Ray generation uses normalized device coordinates:
    s in [0, 1]: left to right across image
    t in [0, 1]: bottom to top across image

Ray generation is vectorized with numpy over whole tiles of pixels.
"""

from .perspective import PerspectiveCamera

__all__ = [
    "PerspectiveCamera",
]
