"""
Model collaborators (MediaPipe face detection and selfie segmentation).
"""

from .mediapipe_models import (
    MEDIAPIPE_AVAILABLE,
    MediaPipeFaceDetector,
    MediaPipeSelfieSegmenter,
)
