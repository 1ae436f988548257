"""
Core data contracts and error kinds for the overlay pipeline.
"""

from .contracts import (
    BoundingBox,
    CycleResult,
    FaceBoxesLayer,
    ImageLayer,
    ImagePlane,
    Layer,
    LayerKind,
    MaskLayer,
    PipelineStage,
    ProbabilityMask,
    RawFrame,
    RenderState,
    ViewportParams,
)
from .errors import (
    InferenceError,
    MalformedFrameError,
    OverlayError,
    UnsupportedRotationError,
)
