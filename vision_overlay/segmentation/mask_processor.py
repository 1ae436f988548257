"""
Mask Processing Utilities.

Handles:
- Probability mask to RGBA overlay decoding
- Resampling model masks to a fixed resolution
"""

from __future__ import annotations

from typing import Tuple
import numpy as np
from numpy.typing import NDArray
import cv2

from vision_overlay.core.contracts import ProbabilityMask


# Alpha curve of the person overlay
STRONG_THRESHOLD = 0.9
WEAK_THRESHOLD = 0.2
STRONG_ALPHA = 200
ALPHA_SLOPE = 182.9
ALPHA_INTERCEPT = -36.6

OVERLAY_COLOR: Tuple[int, int, int] = (0, 255, 0)


def mask_alpha(likelihood: NDArray[np.floating]) -> NDArray[np.uint8]:
    """
    Map per-pixel likelihoods to overlay alpha.

    - above 0.9: 200
    - (0.2, 0.9]: linear, 0 at 0.2 and 128 at 0.9, rounded half up
    - 0.2 and below: 0
    """
    values = np.asarray(likelihood, dtype=np.float64)

    ramp = np.floor(ALPHA_SLOPE * values + ALPHA_INTERCEPT + 0.5)
    alpha = np.where(values > WEAK_THRESHOLD, ramp, 0.0)
    alpha = np.where(values > STRONG_THRESHOLD, STRONG_ALPHA, alpha)

    return np.clip(alpha, 0, 255).astype(np.uint8)


def decode_mask(
    mask: ProbabilityMask,
    premultiplied: bool = False,
) -> NDArray[np.uint8]:
    """
    Decode a probability mask into an RGBA bitmap (H x W x 4).

    Pixels with non-zero alpha are green; all others are (0, 0, 0, 0).

    Args:
        mask: Segmentation output
        premultiplied: Scale the colour channels by alpha

    Returns:
        uint8 RGBA array at the mask's native resolution
    """
    alpha = mask_alpha(mask.as_grid())

    rgba = np.zeros((mask.height, mask.width, 4), dtype=np.uint8)
    visible = alpha > 0
    rgba[visible, :3] = OVERLAY_COLOR
    rgba[:, :, 3] = alpha

    if premultiplied:
        color = rgba[:, :, :3].astype(np.uint16) * alpha[:, :, np.newaxis]
        rgba[:, :, :3] = ((color + 127) // 255).astype(np.uint8)

    return rgba


def resample_mask(
    probabilities: NDArray[np.floating],
    width: int = 256,
    height: int = 256,
) -> ProbabilityMask:
    """
    Resize a model's float mask (H x W) to a fixed-size ProbabilityMask.

    Values are clipped to [0, 1].
    """
    grid = np.asarray(probabilities, dtype=np.float32)
    if grid.ndim == 3:
        grid = grid[:, :, 0]

    if grid.shape != (height, width):
        grid = cv2.resize(grid, (width, height), interpolation=cv2.INTER_LINEAR)

    grid = np.clip(grid, 0.0, 1.0)
    return ProbabilityMask(width, height, np.ascontiguousarray(grid).reshape(-1))
