"""
Layer rendering.

Layers are a closed set of immutable variants, drawn bottom to top:
1. ImageLayer      - camera frame, through the viewport matrix
2. MaskLayer       - person mask, through the matrix, stretched to the frame
3. FaceBoxesLayer  - face outlines, mapped manually from ViewportParams
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import numpy as np
from numpy.typing import NDArray
from loguru import logger

from vision_overlay.core.contracts import (
    BoundingBox,
    FaceBoxesLayer,
    ImageLayer,
    Layer,
    MaskLayer,
    ProbabilityMask,
    ViewportParams,
)
from vision_overlay.render.canvas import Canvas
from vision_overlay.segmentation.mask_processor import decode_mask
from vision_overlay.transforms.viewport import ViewportTransformer


@dataclass(frozen=True)
class LayerStyle:
    """Fixed drawing style for face outlines."""
    box_color: Tuple[int, int, int] = (255, 0, 0)
    box_stroke_width: int = 5
    mirror: bool = True


DEFAULT_STYLE = LayerStyle()


def compose_layers(
    image: NDArray[np.uint8],
    mask: ProbabilityMask,
    boxes: Sequence[BoundingBox],
    frame_width: int,
    frame_height: int,
) -> Tuple[Layer, ...]:
    """Build the ordered layer list for one frame."""
    return (
        ImageLayer(image),
        MaskLayer(mask, frame_width, frame_height),
        FaceBoxesLayer(tuple(boxes)),
    )


def face_rectangles(
    layer: FaceBoxesLayer,
    params: ViewportParams,
    mirror: bool = True,
) -> List[Tuple[int, int, int, int]]:
    """Screen rectangles (left, top, right, bottom) for every face box."""
    transformer = ViewportTransformer(mirror=mirror)
    return [transformer.map_box(box, params) for box in layer.boxes]


def mask_matrix(
    layer: MaskLayer,
    matrix: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Viewport matrix preceded by a mask-to-frame stretch."""
    stretch = np.array(
        [
            [layer.frame_width / layer.mask.width, 0.0, 0.0],
            [0.0, layer.frame_height / layer.mask.height, 0.0],
            [0.0, 0.0, 1.0],
        ],
        dtype=np.float64,
    )
    return matrix @ stretch


def render_layer(
    layer: Layer,
    canvas: Canvas,
    matrix: NDArray[np.float64],
    params: ViewportParams,
    style: Optional[LayerStyle] = None,
):
    """
    Draw one layer onto the canvas.

    Args:
        layer: Layer variant to draw
        canvas: Destination surface
        matrix: 2x3 frame-to-view affine matrix
        params: Viewport parameters matching ``matrix``
        style: Outline style for face boxes

    Raises:
        TypeError: ``layer`` is not one of the known variants
    """
    style = style or DEFAULT_STYLE

    if isinstance(layer, ImageLayer):
        canvas.draw_bitmap(layer.image, matrix)

    elif isinstance(layer, MaskLayer):
        canvas.draw_bitmap(decode_mask(layer.mask), mask_matrix(layer, matrix))

    elif isinstance(layer, FaceBoxesLayer):
        for rect in face_rectangles(layer, params, mirror=style.mirror):
            canvas.draw_rect(rect, style.box_color, style.box_stroke_width)

    else:
        raise TypeError(f"Unknown layer type: {type(layer).__name__}")


def render_layers(
    layers: Sequence[Layer],
    canvas: Canvas,
    matrix: NDArray[np.float64],
    params: ViewportParams,
    style: Optional[LayerStyle] = None,
):
    """Draw layers in list order, logging out-of-order lists."""
    kinds = [layer.kind for layer in layers]
    if kinds != sorted(kinds, key=lambda kind: kind.value):
        logger.warning(f"Layers out of drawing order: {[k.name for k in kinds]}")

    for layer in layers:
        render_layer(layer, canvas, matrix, params, style)
