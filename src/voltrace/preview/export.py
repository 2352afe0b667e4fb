"""Image export utilities for rendered images.

Rendered framebuffers are written as 8-bit sRGB PNG files via Pillow after
tone mapping and gamma correction.

Example:
    >>> framebuffer = render(scene, camera, (256, 256), samples_per_pixel=16, thread_count=8)
    >>> save_png(framebuffer, "output.png", tone_map="reinhard")
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

from voltrace.core.framebuffer import Framebuffer
from voltrace.preview.tonemap import ToneMapMethod, process_image_for_display

logger = logging.getLogger(__name__)


def image_to_uint8(
    image: npt.NDArray[np.floating],
    *,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> npt.NDArray[np.uint8]:
    """Convert a linear float image to uint8 for display or export.

    Args:
        image: Linear HDR image array of shape (H, W, 3).
        tone_map: Tone mapping method.
        gamma: Gamma correction value (default 2.2 for sRGB).
        exposure: Exposure value for exposure tone mapping.

    Returns:
        8-bit image array of shape (H, W, 3) with dtype uint8.
    """
    processed = process_image_for_display(image, tone_map=tone_map, gamma=gamma, exposure=exposure)
    return np.round(processed * 255.0).astype(np.uint8)


def save_png_from_array(
    image: npt.NDArray[np.floating],
    filepath: str | Path,
    *,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> None:
    """Save a linear image array of shape (H, W, 3) as a PNG file.

    Raises:
        ValueError: If the array is not an RGB image.
    """
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Expected an image of shape (H, W, 3), got {image.shape}")
    image_uint8 = image_to_uint8(image, tone_map=tone_map, gamma=gamma, exposure=exposure)
    PILImage.fromarray(image_uint8).save(filepath)
    logger.info("Saved %dx%d image to %s", image.shape[1], image.shape[0], filepath)


def save_png(
    framebuffer: Framebuffer,
    filepath: str | Path,
    *,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> None:
    """Save the mean radiance of a framebuffer as a PNG file.

    Pixels of failed tiles are written black.

    Args:
        framebuffer: The rendered framebuffer.
        filepath: Output file path (should end in .png).
        tone_map: Tone mapping method ("none", "reinhard", "exposure" or "aces").
        gamma: Gamma correction value (default 2.2 for sRGB).
        exposure: Exposure value for exposure tone mapping (default 1.0).
    """
    if framebuffer.failed_tiles:
        logger.warning("Saving image with %d failed tiles", len(framebuffer.failed_tiles))
    save_png_from_array(
        framebuffer.get_image_numpy(),
        filepath,
        tone_map=tone_map,
        gamma=gamma,
        exposure=exposure,
    )


def compute_rmse(
    image_a: npt.NDArray[np.floating],
    image_b: npt.NDArray[np.floating],
) -> float:
    """Compute root mean squared error between two images.

    Raises:
        ValueError: If image shapes don't match.
    """
    if image_a.shape != image_b.shape:
        raise ValueError(f"Image shapes must match: {image_a.shape} vs {image_b.shape}")

    diff = image_a.astype(np.float64) - image_b.astype(np.float64)
    return float(np.sqrt(np.mean(diff**2)))
