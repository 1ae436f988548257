"""
Vision Overlay

Draws person-segmentation masks and face boxes over a live camera feed,
redrawn in step with every analysed frame.

Flow:
1. Capture delivers one planar YUV frame at a time
2. The analysis pipeline converts it and runs both models in parallel
3. Layers are published to the shared render state
4. The display pulls the latest layers and draws them crop-to-fill
"""

__version__ = "0.1.0"
__author__ = "Vision Overlay Team"
