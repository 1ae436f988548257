"""
Camera capture.

Responsibilities:
- Webcam acquisition
- BGR to planar YUV frames
- Release-gated frame delivery
"""

from .camera_source import CameraSource, planes_from_bgr
