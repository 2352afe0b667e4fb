"""Tone mapping and gamma correction for rendered images.

The renderer produces linear HDR radiance. Before it can be written to an
8-bit file it is compressed into [0, 1] by a tone mapping operator and
encoded with a display gamma.

Operators:
    - none: clamp only
    - reinhard: c / (1 + c)
    - exposure: 1 - exp(-c * exposure)
    - aces: Narkowicz fit of the ACES filmic curve

Example:
    >>> image = framebuffer.get_image_numpy()
    >>> display = process_image_for_display(image, tone_map="reinhard")
"""

from __future__ import annotations

from typing import Literal

import numpy as np
import numpy.typing as npt

# Type alias for tone mapping options
ToneMapMethod = Literal["none", "reinhard", "exposure", "aces"]

TONE_MAP_METHODS = ("none", "reinhard", "exposure", "aces")

# ACES input and output matrices (sRGB <-> ACES AP1)
_ACES_INPUT = np.array(
    [
        [0.59719, 0.35458, 0.04823],
        [0.07600, 0.90834, 0.01566],
        [0.02840, 0.13383, 0.83777],
    ]
)
_ACES_OUTPUT = np.array(
    [
        [1.60475, -0.53108, -0.07367],
        [-0.10208, 1.10813, -0.00605],
        [-0.00327, -0.07276, 1.07602],
    ]
)


def tone_map_reinhard(image: npt.NDArray[np.floating]) -> npt.NDArray[np.float32]:
    """Apply Reinhard tone mapping: L / (1 + L).

    Args:
        image: Linear HDR image array of shape (H, W, 3).

    Returns:
        Tone mapped image in [0, 1) range.
    """
    image = np.maximum(image, 0.0)
    return (image / (1.0 + image)).astype(np.float32)


def tone_map_exposure(
    image: npt.NDArray[np.floating],
    exposure: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Apply exposure-based tone mapping: 1 - exp(-c * exposure).

    Args:
        image: Linear HDR image array of shape (H, W, 3).
        exposure: Exposure value. Higher values brighten the image.

    Returns:
        Tone mapped image in [0, 1) range.

    Raises:
        ValueError: If exposure is not positive.
    """
    if exposure <= 0.0:
        raise ValueError(f"Exposure must be positive, got {exposure}")
    image = np.maximum(image, 0.0)
    return (1.0 - np.exp(-image * exposure)).astype(np.float32)


def tone_map_aces(image: npt.NDArray[np.floating]) -> npt.NDArray[np.float32]:
    """ACES filmic tone mapping (Narkowicz RRT + ODT fit)."""
    image = np.maximum(image, 0.0)
    aces = image @ _ACES_INPUT.T
    a = aces * (aces + 0.0245786) - 0.000090537
    b = aces * (0.983729 * aces + 0.4329510) + 0.238081
    out = (a / b) @ _ACES_OUTPUT.T
    return np.clip(out, 0.0, 1.0).astype(np.float32)


def apply_gamma(
    image: npt.NDArray[np.floating],
    gamma: float = 2.2,
) -> npt.NDArray[np.float32]:
    """Apply gamma encoding for display: out = in^(1/gamma).

    Values are clamped to [0, 1] first.

    Raises:
        ValueError: If gamma is not positive.
    """
    if gamma <= 0.0:
        raise ValueError(f"Gamma must be positive, got {gamma}")
    image = np.clip(image, 0.0, 1.0)
    if gamma == 1.0:
        return image.astype(np.float32)
    return np.power(image, 1.0 / gamma).astype(np.float32)


def process_image_for_display(
    image: npt.NDArray[np.floating],
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Tone map, gamma encode and clamp a linear image.

    Non-finite pixels are treated as black.

    Args:
        image: Linear HDR image array of shape (H, W, 3).
        tone_map: Tone mapping method ("none", "reinhard", "exposure" or "aces").
        gamma: Gamma correction value (default 2.2 for sRGB).
        exposure: Exposure value for exposure tone mapping (default 1.0).

    Returns:
        Processed image in [0, 1] range.

    Raises:
        ValueError: If the tone mapping method is unknown.
    """
    result = np.nan_to_num(np.asarray(image, dtype=np.float64), nan=0.0, posinf=0.0, neginf=0.0)

    if tone_map == "reinhard":
        result = tone_map_reinhard(result)
    elif tone_map == "exposure":
        result = tone_map_exposure(result, exposure)
    elif tone_map == "aces":
        result = tone_map_aces(result)
    elif tone_map != "none":
        raise ValueError(f"Unknown tone mapping method: {tone_map}")

    return apply_gamma(result, gamma)
