"""
Raster drawing surface for layers.
"""

from __future__ import annotations

from typing import Optional, Tuple
import numpy as np
from numpy.typing import NDArray
import cv2


class Canvas:
    """
    An RGB surface (H x W x 3, uint8) that layers draw onto.

    Supports the two primitives layers need: bitmaps drawn through an
    affine matrix and unfilled rectangles.
    """

    def __init__(
        self,
        width: int,
        height: int,
        pixels: Optional[NDArray[np.uint8]] = None,
    ):
        if pixels is None:
            pixels = np.zeros((height, width, 3), dtype=np.uint8)
        elif pixels.shape[:2] != (height, width):
            raise ValueError(
                f"Canvas pixels {pixels.shape[1]}x{pixels.shape[0]} "
                f"do not match {width}x{height}"
            )
        self.width = width
        self.height = height
        self.pixels = pixels

    def clear(self, color: Tuple[int, int, int] = (0, 0, 0)):
        self.pixels[:] = color

    def draw_bitmap(
        self,
        bitmap: NDArray[np.uint8],
        matrix: NDArray[np.float64],
    ):
        """
        Draw an RGB or RGBA bitmap through a 2x3 affine matrix.

        RGB pixels replace the canvas where the bitmap lands; RGBA pixels
        are alpha-blended (straight alpha). Canvas pixels outside the
        mapped area are untouched.
        """
        dsize = (self.width, self.height)

        if bitmap.ndim == 3 and bitmap.shape[2] == 4:
            warped = cv2.warpAffine(
                bitmap,
                matrix,
                dsize,
                flags=cv2.INTER_LINEAR,
                borderMode=cv2.BORDER_CONSTANT,
                borderValue=(0, 0, 0, 0),
            )
            alpha = warped[:, :, 3:4].astype(np.float32) / 255.0
            if not np.any(alpha):
                return
            blended = (
                warped[:, :, :3].astype(np.float32) * alpha
                + self.pixels.astype(np.float32) * (1.0 - alpha)
            )
            self.pixels[:] = np.clip(blended + 0.5, 0, 255).astype(np.uint8)
            return

        cv2.warpAffine(
            bitmap,
            matrix,
            dsize,
            dst=self.pixels,
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_TRANSPARENT,
        )

    def draw_rect(
        self,
        rect: Tuple[int, int, int, int],
        color: Tuple[int, int, int],
        stroke_width: int,
    ):
        """Draw an unfilled rectangle given as (left, top, right, bottom)."""
        left, top, right, bottom = rect
        cv2.rectangle(
            self.pixels,
            (int(left), int(top)),
            (int(right), int(bottom)),
            color,
            stroke_width,
        )

    def to_bgr(self) -> NDArray[np.uint8]:
        """Copy of the surface in OpenCV's display channel order."""
        return cv2.cvtColor(self.pixels, cv2.COLOR_RGB2BGR)
