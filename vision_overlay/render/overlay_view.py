"""
Overlay view: the display-side entry point.

The host calls ``draw`` whenever it repaints; ``invalidate`` is the
producer-side hook that publishes new layers and asks for a repaint.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional, Sequence

from vision_overlay.core.contracts import Layer
from vision_overlay.render.canvas import Canvas
from vision_overlay.render.layers import LayerStyle, render_layers
from vision_overlay.render.render_state import DrawSnapshot, SharedRenderState
from vision_overlay.transforms.viewport import ViewportTransformer


class OverlayView:
    """
    Multi-layer view of the camera frame and model outputs.

    Redraw requests are coalesced: any number of ``invalidate`` calls
    between two draws results in a single pending repaint.
    """

    def __init__(
        self,
        style: Optional[LayerStyle] = None,
        render_state: Optional[SharedRenderState] = None,
        on_redraw_requested: Optional[Callable[[], None]] = None,
    ):
        self.style = style or LayerStyle()
        self.render_state = render_state or SharedRenderState(
            ViewportTransformer(mirror=self.style.mirror)
        )
        self._on_redraw_requested = on_redraw_requested
        self._redraw_pending = threading.Event()

    def invalidate(self, frame_width: int, frame_height: int, layers: Sequence[Layer]):
        """Publish layers for a frame and request a repaint."""
        self.render_state.publish(frame_width, frame_height, layers)
        self.request_redraw()

    def request_redraw(self):
        self._redraw_pending.set()
        if self._on_redraw_requested is not None:
            self._on_redraw_requested()

    def wait_for_redraw(self, timeout: Optional[float] = None) -> bool:
        """Block until a repaint was requested. Returns False on timeout."""
        return self._redraw_pending.wait(timeout)

    @property
    def redraw_pending(self) -> bool:
        return self._redraw_pending.is_set()

    def draw(
        self,
        surface_width: int,
        surface_height: int,
        canvas: Optional[Canvas] = None,
    ) -> Canvas:
        """
        Repaint the current layers onto a canvas.

        Layers are drawn outside the render-state lock; they are
        immutable snapshots.
        """
        self._redraw_pending.clear()

        if canvas is None:
            canvas = Canvas(surface_width, surface_height)

        snapshot: DrawSnapshot = self.render_state.consume_for_draw(
            surface_width, surface_height
        )
        if snapshot.layers:
            render_layers(
                snapshot.layers, canvas, snapshot.matrix, snapshot.params, self.style
            )
        return canvas
