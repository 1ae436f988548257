"""
Rendering.

Responsibilities:
- Layer variants and their drawing
- Shared render state between worker and display
- The pull-based draw entry point
"""

from .canvas import Canvas
from .layers import LayerStyle, compose_layers, render_layer, render_layers
from .render_state import DrawSnapshot, SharedRenderState
from .overlay_view import OverlayView
