"""
Pixel format conversion.

Responsibilities:
- Planar YUV 4:2:0 to packed NV21
- NV21 to RGB
- Axis-aligned rotation
"""

from .pixel_format import (
    decode_packed_buffer,
    packed_buffer_length,
    planes_to_rgb,
    rotate,
    to_packed_buffer,
)
