"""
Error kinds raised by the overlay core.

Every error is local to a single analysis cycle. None of them may leave
the shared render state half-written.
"""

from __future__ import annotations

from typing import Optional


class OverlayError(Exception):
    """Base class for all overlay errors."""


class MalformedFrameError(OverlayError):
    """Plane geometry is inconsistent with the declared frame size."""


class UnsupportedRotationError(MalformedFrameError):
    """Rotation is not one of 0, 90, 180 or 270 degrees."""

    def __init__(self, degrees: int):
        super().__init__(f"Unsupported rotation: {degrees} degrees")
        self.degrees = degrees


class InferenceError(OverlayError):
    """
    A model call failed or timed out.

    Attributes:
        model: Name of the collaborator that failed ("faces" | "segmentation")
        cause: Original exception, if any
    """

    def __init__(self, model: str, cause: Optional[BaseException] = None):
        message = f"{model} inference failed"
        if cause is not None:
            message = f"{message}: {cause!r}"
        super().__init__(message)
        self.model = model
        self.cause = cause
