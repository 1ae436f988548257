"""
Core data contracts for the overlay pipeline.

All components exchange these types:
- Raw sensor frames and their planes
- Model outputs (probability mask, face boxes)
- Viewport parameters and drawable layers
- The render state snapshot handed to the display side
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Tuple, Union
import numpy as np
from numpy.typing import NDArray

from .errors import MalformedFrameError


# ============================================================
# ENUMERATIONS
# ============================================================

class PipelineStage(Enum):
    """Stages of one analysis cycle."""
    IDLE = auto()
    CONVERTING = auto()
    INFERRING = auto()
    COMPOSING = auto()
    PUBLISHED = auto()


class LayerKind(Enum):
    """Tag of the layer union, in bottom-to-top drawing order."""
    IMAGE = 0
    MASK = 1
    FACE_BOXES = 2


SUPPORTED_ROTATIONS = (0, 90, 180, 270)


# ============================================================
# SENSOR FRAMES
# ============================================================

@dataclass(frozen=True, eq=False)
class ImagePlane:
    """One plane of a planar YUV image."""
    row_stride: int
    pixel_stride: int
    data: bytes | NDArray[np.uint8]

    def as_array(self) -> NDArray[np.uint8]:
        """View the plane bytes as a flat uint8 array (no copy)."""
        if isinstance(self.data, np.ndarray):
            return self.data.reshape(-1).view(np.uint8)
        return np.frombuffer(self.data, dtype=np.uint8)


@dataclass(frozen=True)
class RawFrame:
    """
    A frame as delivered by the capture device.

    Planes are ordered Y, U, V. The frame belongs to the capture device
    and must not be read after it has been released.
    """
    width: int
    height: int
    rotation_degrees: int
    planes: Tuple[ImagePlane, ImagePlane, ImagePlane]
    frame_id: int = 0
    timestamp_ms: float = 0.0

    def __post_init__(self):
        if len(self.planes) != 3:
            raise MalformedFrameError(
                f"Expected 3 planes (Y, U, V), got {len(self.planes)}"
            )

    @property
    def is_transposed(self) -> bool:
        """True when the displayed frame swaps width and height."""
        return self.rotation_degrees in (90, 270)

    @property
    def display_size(self) -> Tuple[int, int]:
        """(width, height) of the frame after rotation."""
        if self.is_transposed:
            return (self.height, self.width)
        return (self.width, self.height)


# ============================================================
# MODEL OUTPUTS
# ============================================================

@dataclass(frozen=True, eq=False)
class ProbabilityMask:
    """
    Segmentation output at model resolution (e.g. 256x256).

    ``buffer`` holds one float32 per pixel in row-major order.
    """
    width: int
    height: int
    buffer: NDArray[np.float32]

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid mask size {self.width}x{self.height}")
        if self.buffer.size != self.width * self.height:
            raise ValueError(
                f"Mask buffer has {self.buffer.size} values, "
                f"expected {self.width}x{self.height}"
            )

    @classmethod
    def from_bytes(cls, width: int, height: int, data: bytes) -> ProbabilityMask:
        """Build a mask from a little-endian float32 byte buffer."""
        return cls(width, height, np.frombuffer(data, dtype="<f4").astype(np.float32))

    @classmethod
    def empty(cls, width: int = 256, height: int = 256) -> ProbabilityMask:
        """All-zero mask; decodes to a fully transparent bitmap."""
        return cls(width, height, np.zeros(width * height, dtype=np.float32))

    def as_grid(self) -> NDArray[np.float32]:
        return self.buffer.reshape(self.height, self.width)


@dataclass(frozen=True)
class BoundingBox:
    """Face bounding box in raw frame pixels. Ordering is not guaranteed."""
    left: int
    top: int
    right: int
    bottom: int

    def normalized(self) -> BoundingBox:
        return BoundingBox(
            left=min(self.left, self.right),
            top=min(self.top, self.bottom),
            right=max(self.left, self.right),
            bottom=max(self.top, self.bottom),
        )

    @property
    def width(self) -> int:
        return abs(self.right - self.left)

    @property
    def height(self) -> int:
        return abs(self.bottom - self.top)


# ============================================================
# VIEWPORT AND LAYERS
# ============================================================

@dataclass(frozen=True)
class ViewportParams:
    """Crop-to-fill parameters for the current frame and view size."""
    view_width: int = 0
    view_height: int = 0
    scale: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0


@dataclass(frozen=True, eq=False)
class ImageLayer:
    """Camera frame (RGB, already rotated upright)."""
    image: NDArray[np.uint8]

    kind = LayerKind.IMAGE


@dataclass(frozen=True, eq=False)
class MaskLayer:
    """Person mask, stretched over the frame it was computed from."""
    mask: ProbabilityMask
    frame_width: int
    frame_height: int

    kind = LayerKind.MASK


@dataclass(frozen=True)
class FaceBoxesLayer:
    """Face outlines drawn on top of everything else."""
    boxes: Tuple[BoundingBox, ...] = ()

    kind = LayerKind.FACE_BOXES


Layer = Union[ImageLayer, MaskLayer, FaceBoxesLayer]


@dataclass(frozen=True)
class RenderState:
    """Last fully composed frame, as seen by the display side."""
    frame_width: int = 0
    frame_height: int = 0
    layers: Tuple[Layer, ...] = ()
    dirty: bool = False


# ============================================================
# RESULT TYPES
# ============================================================

@dataclass
class InferenceOutcome:
    """Result of one model call inside a cycle."""
    model: str
    value: object = None
    inference_time_ms: float = 0.0

    # If the call fails
    success: bool = True
    error_message: Optional[str] = None


@dataclass
class CycleResult:
    """Outcome of a single analysis cycle."""
    frame_id: int
    published: bool = False
    frame_width: int = 0
    frame_height: int = 0
    layer_count: int = 0

    # Performance
    convert_ms: float = 0.0
    inference_ms: float = 0.0
    total_ms: float = 0.0

    # Degraded contributions (model names)
    degraded: Tuple[str, ...] = field(default_factory=tuple)

    # If the cycle aborts
    success: bool = True
    error_message: Optional[str] = None
