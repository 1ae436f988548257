"""
Shared render state between the analysis worker and the display.

The producer publishes immutable snapshots; the consumer reads the
latest one and recomputes the viewport only when needed.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple
import numpy as np
from numpy.typing import NDArray
from loguru import logger

from vision_overlay.core.contracts import Layer, RenderState, ViewportParams
from vision_overlay.transforms.viewport import ViewportTransformer


@dataclass(frozen=True, eq=False)
class DrawSnapshot:
    """What the display needs for one repaint."""
    layers: Tuple[Layer, ...]
    matrix: NDArray[np.float64]
    params: ViewportParams
    recomputed: bool = False


class SharedRenderState:
    """
    Lock-guarded cell holding the latest RenderState.

    Guarantees:
    - publish and consume_for_draw are mutually exclusive
    - Published snapshots are never mutated in place
    - The viewport is recomputed only after the frame (or view) size changed
    """

    def __init__(self, transformer: Optional[ViewportTransformer] = None):
        self._transformer = transformer or ViewportTransformer()
        self._lock = threading.Lock()

        self._state = RenderState()

        # Viewport cache, owned by the consumer side
        self._matrix: NDArray[np.float64] = np.array(
            [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]], dtype=np.float64
        )
        self._params = ViewportParams()
        self._recompute_count = 0

    def publish(
        self,
        frame_width: int,
        frame_height: int,
        layers: Sequence[Layer],
    ):
        """
        Replace the current layers and frame size.

        Layers are copied into a tuple; the caller's sequence is not kept.
        """
        layers = tuple(layers)
        with self._lock:
            previous = self._state
            size_changed = (
                previous.frame_width != frame_width
                or previous.frame_height != frame_height
            )
            self._state = RenderState(
                frame_width=frame_width,
                frame_height=frame_height,
                layers=layers,
                dirty=previous.dirty or size_changed,
            )

        if size_changed:
            logger.debug(f"Frame size changed to {frame_width}x{frame_height}")

    def consume_for_draw(self, view_width: int, view_height: int) -> DrawSnapshot:
        """
        Read the current layers and a viewport matching the view size.

        Returns:
            DrawSnapshot; ``recomputed`` is True when the viewport was
            rebuilt during this call
        """
        with self._lock:
            state = self._state
            view_changed = (
                self._params.view_width != view_width
                or self._params.view_height != view_height
            )
            recomputed = False

            if (
                (state.dirty or view_changed)
                and state.frame_width > 0
                and state.frame_height > 0
                and view_width > 0
                and view_height > 0
            ):
                self._matrix, self._params = self._transformer.compute(
                    state.frame_width, state.frame_height, view_width, view_height
                )
                self._state = replace(state, dirty=False)
                self._recompute_count += 1
                recomputed = True

            return DrawSnapshot(
                layers=state.layers,
                matrix=self._matrix,
                params=self._params,
                recomputed=recomputed,
            )

    def snapshot(self) -> RenderState:
        """Current render state (immutable)."""
        with self._lock:
            return self._state

    @property
    def recompute_count(self) -> int:
        with self._lock:
            return self._recompute_count
