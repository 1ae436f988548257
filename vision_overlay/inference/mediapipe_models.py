"""
Inference collaborators backed by MediaPipe.

Provides the two model callables the pipeline expects:
- Face detection: image -> list of BoundingBox (frame pixels)
- Selfie segmentation: image -> ProbabilityMask (fixed resolution)
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, List, Optional
import numpy as np
from numpy.typing import NDArray
from loguru import logger

try:
    import mediapipe as mp
    MEDIAPIPE_AVAILABLE = True
except ImportError:
    MEDIAPIPE_AVAILABLE = False
    logger.warning("MediaPipe not available")

from vision_overlay.core.contracts import BoundingBox, ProbabilityMask
from vision_overlay.segmentation.mask_processor import resample_mask


class _MediaPipeModel(ABC):
    """Lazily created MediaPipe solution, one call at a time."""

    def __init__(self, solution: Optional[Any] = None):
        self._solution = solution
        self._lock = threading.Lock()

    @abstractmethod
    def _create(self) -> Any:
        """Build the MediaPipe solution object."""
        pass

    def _process(self, image: NDArray[np.uint8]) -> Any:
        with self._lock:
            if self._solution is None:
                if not MEDIAPIPE_AVAILABLE:
                    raise RuntimeError("MediaPipe is not installed")
                self._solution = self._create()
            return self._solution.process(image)

    def close(self):
        with self._lock:
            if self._solution is not None and hasattr(self._solution, "close"):
                self._solution.close()
            self._solution = None


class MediaPipeFaceDetector(_MediaPipeModel):
    """Face detector returning boxes in the input image's pixels."""

    def __init__(
        self,
        model_selection: int = 0,  # 0=close-range, 1=full-range
        min_detection_confidence: float = 0.5,
        solution: Optional[Any] = None,
    ):
        super().__init__(solution)
        self.model_selection = model_selection
        self.min_confidence = min_detection_confidence

    def _create(self) -> Any:
        logger.info("Face detection initialized")
        return mp.solutions.face_detection.FaceDetection(
            model_selection=self.model_selection,
            min_detection_confidence=self.min_confidence,
        )

    def __call__(self, image: NDArray[np.uint8]) -> List[BoundingBox]:
        h, w = image.shape[:2]
        results = self._process(image)

        boxes: List[BoundingBox] = []
        for detection in results.detections or []:
            bbox = detection.location_data.relative_bounding_box
            x_min = int(bbox.xmin * w)
            y_min = int(bbox.ymin * h)
            boxes.append(
                BoundingBox(
                    left=x_min,
                    top=y_min,
                    right=x_min + int(bbox.width * w),
                    bottom=y_min + int(bbox.height * h),
                )
            )
        return boxes


class MediaPipeSelfieSegmenter(_MediaPipeModel):
    """Person segmenter resampled to a fixed mask resolution."""

    def __init__(
        self,
        mask_width: int = 256,
        mask_height: int = 256,
        model_selection: int = 0,  # 0=general, 1=landscape
        solution: Optional[Any] = None,
    ):
        super().__init__(solution)
        self.mask_width = mask_width
        self.mask_height = mask_height
        self.model_selection = model_selection

    def _create(self) -> Any:
        logger.info("Selfie segmentation initialized")
        return mp.solutions.selfie_segmentation.SelfieSegmentation(
            model_selection=self.model_selection
        )

    def __call__(self, image: NDArray[np.uint8]) -> ProbabilityMask:
        results = self._process(image)
        if results.segmentation_mask is None:
            return ProbabilityMask.empty(self.mask_width, self.mask_height)
        return resample_mask(results.segmentation_mask, self.mask_width, self.mask_height)
