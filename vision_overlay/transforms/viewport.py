"""
Viewport Transformation.

Maps frame coordinates onto a display surface:
- Crop-to-fill scaling (aspect ratio preserved, excess cropped)
- Centering offsets
- Horizontal mirror for the front camera
"""

from __future__ import annotations

from typing import Tuple
import numpy as np
from numpy.typing import NDArray

from vision_overlay.core.contracts import BoundingBox, ViewportParams


class ViewportTransformer:
    """
    Computes the frame-to-view affine transform.

    Guarantees:
    - Aspect ratio is preserved (one uniform scale)
    - Identical inputs give bit-identical outputs
    """

    def __init__(self, mirror: bool = True):
        """
        Args:
            mirror: Flip horizontally about the view's vertical center
        """
        self.mirror = mirror

    def compute(
        self,
        frame_width: int,
        frame_height: int,
        view_width: int,
        view_height: int,
    ) -> Tuple[NDArray[np.float64], ViewportParams]:
        """
        Compute the transform for a frame shown on a view.

        Frame dimensions are the displayed ones, i.e. already swapped for
        90/270 degree rotations.

        Returns:
            Tuple of (2x3 affine matrix, ViewportParams)
        """
        if frame_width <= 0 or frame_height <= 0:
            raise ValueError(f"Invalid frame size {frame_width}x{frame_height}")
        if view_width <= 0 or view_height <= 0:
            raise ValueError(f"Invalid view size {view_width}x{view_height}")

        view_aspect = view_width / frame_width
        frame_aspect = frame_width / frame_height
        offset_x = 0.0
        offset_y = 0.0

        if view_aspect < frame_aspect:
            # Vertical crop
            scale = view_width / frame_width
            offset_y = -(view_width / frame_aspect - view_height) / 2
        else:
            # Horizontal crop
            scale = view_height / frame_height
            offset_x = -(view_height * frame_aspect - view_width) / 2

        params = ViewportParams(
            view_width=view_width,
            view_height=view_height,
            scale=scale,
            offset_x=offset_x,
            offset_y=offset_y,
        )
        return self._build_matrix(params), params

    def _build_matrix(self, params: ViewportParams) -> NDArray[np.float64]:
        """Scale, translate, then mirror about x = view_width / 2."""
        matrix = np.array(
            [
                [params.scale, 0.0, params.offset_x],
                [0.0, params.scale, params.offset_y],
            ],
            dtype=np.float64,
        )
        if self.mirror:
            matrix[0] = [-params.scale, 0.0, params.view_width - params.offset_x]
        return matrix

    def map_box(
        self,
        box: BoundingBox,
        params: ViewportParams,
    ) -> Tuple[int, int, int, int]:
        """
        Map a frame box to screen pixels without the matrix.

        The mirror swaps left and right edges, so the result always
        satisfies left <= right.

        Returns:
            (left, top, right, bottom) in view pixels
        """
        box = box.normalized()
        if self.mirror:
            left = _mirror_x(box.right, params)
            right = _mirror_x(box.left, params)
        else:
            left = _map_x(box.left, params)
            right = _map_x(box.right, params)
        return (left, _map_y(box.top, params), right, _map_y(box.bottom, params))


def transform_point(
    matrix: NDArray[np.float64],
    x: float,
    y: float,
) -> Tuple[float, float]:
    """Apply a 2x3 affine matrix to a point."""
    px, py = matrix @ np.array([x, y, 1.0])
    return (float(px), float(py))


def _map_x(value: int, params: ViewportParams) -> int:
    return int(value * params.scale + params.offset_x)


def _mirror_x(value: int, params: ViewportParams) -> int:
    return params.view_width - int(value * params.scale + params.offset_x)


def _map_y(value: int, params: ViewportParams) -> int:
    return int(value * params.scale + params.offset_y)
