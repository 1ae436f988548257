"""
Segmentation mask handling.

Responsibilities:
- Probability to RGBA overlay decoding
- Resampling to a fixed mask resolution
"""

from .mask_processor import decode_mask, mask_alpha, resample_mask
