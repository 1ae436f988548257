"""Shared fixtures: synthetic planar frames and fake collaborators."""

from __future__ import annotations

import threading
from typing import List

import numpy as np
import pytest

from vision_overlay.config import PipelineConfig
from vision_overlay.core.contracts import ImagePlane, ProbabilityMask, RawFrame
from vision_overlay.render.render_state import SharedRenderState


def make_plane(raster: np.ndarray, row_padding: int = 0, pixel_stride: int = 1) -> ImagePlane:
    """Lay out a 2-D uint8 raster with the given strides (no trailing padding)."""
    rows, cols = raster.shape
    row_stride = cols * pixel_stride + row_padding
    data = np.zeros(rows * row_stride, dtype=np.uint8)
    for r in range(rows):
        start = r * row_stride
        data[start:start + cols * pixel_stride:pixel_stride] = raster[r]
    used = (rows - 1) * row_stride + (cols - 1) * pixel_stride + 1
    return ImagePlane(row_stride=row_stride, pixel_stride=pixel_stride, data=data[:used].tobytes())


def make_frame(
    width: int = 640,
    height: int = 480,
    rotation: int = 0,
    luma: int = 128,
    u: int = 128,
    v: int = 128,
    frame_id: int = 1,
    row_padding: int = 0,
) -> RawFrame:
    """Uniform frame; neutral chroma gives a gray image."""
    cw, ch = (width + 1) // 2, (height + 1) // 2
    planes = (
        make_plane(np.full((height, width), luma, dtype=np.uint8), row_padding),
        make_plane(np.full((ch, cw), u, dtype=np.uint8), row_padding),
        make_plane(np.full((ch, cw), v, dtype=np.uint8), row_padding),
    )
    return RawFrame(width, height, rotation, planes, frame_id=frame_id)


class Recorder:
    """Thread-safe event log for release / redraw / error callbacks."""

    def __init__(self):
        self.lock = threading.Lock()
        self.events: List[tuple] = []
        self.released: List[RawFrame] = []
        self.errors: List[Exception] = []
        self.redraws = 0

    def release(self, frame: RawFrame):
        with self.lock:
            self.released.append(frame)
            self.events.append(("release", frame.frame_id))

    def redraw(self):
        with self.lock:
            self.redraws += 1

    def error(self, error: Exception):
        with self.lock:
            self.errors.append(error)

    def log(self, *event):
        with self.lock:
            self.events.append(event)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def render_state() -> SharedRenderState:
    return SharedRenderState()


@pytest.fixture
def no_faces():
    return lambda image: []


@pytest.fixture
def zero_mask():
    return lambda image: ProbabilityMask.empty(256, 256)


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(inference_timeout_s=5.0)
