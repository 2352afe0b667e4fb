"""Preview module for image output.

Components:
    tonemap: Tone mapping operators and gamma correction
    export: PNG export via Pillow and image comparison

Features:
    - Tonemapping for HDR output (Reinhard, exposure-based, ACES)
    - Gamma-correct PNG export (sRGB)
    - RMSE image comparison

Example:
    >>> from voltrace.preview import save_png
    >>> save_png(framebuffer, "output.png", tone_map="reinhard", gamma=2.2)
"""

from .export import compute_rmse, image_to_uint8, save_png, save_png_from_array
from .tonemap import (
    TONE_MAP_METHODS,
    ToneMapMethod,
    apply_gamma,
    process_image_for_display,
    tone_map_aces,
    tone_map_exposure,
    tone_map_reinhard,
)

__all__ = [
    # Tone mapping
    "tone_map_reinhard",
    "tone_map_exposure",
    "tone_map_aces",
    "apply_gamma",
    "process_image_for_display",
    "ToneMapMethod",
    "TONE_MAP_METHODS",
    # Export functions
    "save_png",
    "save_png_from_array",
    "image_to_uint8",
    "compute_rmse",
]
