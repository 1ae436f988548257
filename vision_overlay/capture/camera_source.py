"""
Camera capture for the overlay demo host.

Handles:
- Webcam acquisition through OpenCV
- BGR to three-plane YUV 4:2:0 conversion (sensor-style RawFrame)
- Withholding the next frame until the previous one is released
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional
import numpy as np
from numpy.typing import NDArray
import cv2
from loguru import logger

from vision_overlay.conversion.pixel_format import chroma_size
from vision_overlay.core.contracts import ImagePlane, RawFrame


def _strided_plane(
    raster: NDArray[np.uint8],
    row_padding: int,
) -> ImagePlane:
    """Lay out a 2-D raster with padding bytes after every row but the last."""
    rows, cols = raster.shape
    row_stride = cols + row_padding
    data = np.zeros((rows, row_stride), dtype=np.uint8)
    data[:, :cols] = raster
    # The last row carries no padding, as camera buffers do
    flat = data.reshape(-1)[: (rows - 1) * row_stride + cols]
    return ImagePlane(row_stride=row_stride, pixel_stride=1, data=flat.tobytes())


def planes_from_bgr(
    bgr: NDArray[np.uint8],
    row_padding: int = 0,
    interleaved_chroma: bool = False,
) -> tuple[ImagePlane, ImagePlane, ImagePlane]:
    """
    Split a BGR image into full-range Y, U, V 4:2:0 planes.

    Chroma is averaged over 2x2 blocks (odd sizes round up).

    Args:
        bgr: OpenCV image (H x W x 3)
        row_padding: Extra bytes at the end of each row
        interleaved_chroma: Store U and V interleaved with pixel stride 2,
            as semi-planar camera buffers do

    Returns:
        (Y, U, V) planes
    """
    height, width = bgr.shape[:2]
    chroma_w, chroma_h = chroma_size(width, height)

    ycrcb = cv2.cvtColor(bgr, cv2.COLOR_BGR2YCrCb)
    y = np.ascontiguousarray(ycrcb[:, :, 0])
    chroma = cv2.resize(
        np.ascontiguousarray(ycrcb[:, :, 1:]),
        (chroma_w, chroma_h),
        interpolation=cv2.INTER_AREA,
    )
    v = chroma[:, :, 0]
    u = chroma[:, :, 1]

    y_plane = _strided_plane(y, row_padding)

    if not interleaved_chroma:
        return (y_plane, _strided_plane(u, row_padding), _strided_plane(v, row_padding))

    # U and V share one buffer: UVUV..., V starts one byte later
    row_stride = chroma_w * 2 + row_padding
    uv = np.zeros((chroma_h, row_stride), dtype=np.uint8)
    uv[:, 0:chroma_w * 2:2] = u
    uv[:, 1:chroma_w * 2:2] = v
    flat = uv.reshape(-1)[: (chroma_h - 1) * row_stride + chroma_w * 2]
    u_plane = ImagePlane(row_stride=row_stride, pixel_stride=2, data=flat[:-1].tobytes())
    v_plane = ImagePlane(row_stride=row_stride, pixel_stride=2, data=flat[1:].tobytes())
    return (y_plane, u_plane, v_plane)


class CameraSource:
    """
    Webcam that delivers one RawFrame at a time.

    Guarantees:
    - A new frame is delivered only after the previous one was released
    - Frames are delivered from a dedicated capture thread
    """

    def __init__(
        self,
        on_frame: Callable[[RawFrame], None],
        device_index: int = 0,
        width: int = 640,
        height: int = 480,
        fps: int = 30,
        rotation_degrees: int = 0,
    ):
        """
        Initialize camera source.

        Args:
            on_frame: Receiver of each frame (the analysis pipeline)
            device_index: Camera device index
            width: Capture width
            height: Capture height
            fps: Target frames per second
            rotation_degrees: Sensor rotation reported with each frame
        """
        self.device_index = device_index
        self.width = width
        self.height = height
        self.fps = fps
        self.rotation_degrees = rotation_degrees
        self._on_frame = on_frame

        self._capture: Optional[cv2.VideoCapture] = None
        self._thread: Optional[threading.Thread] = None
        self._is_running = False
        self._released = threading.Event()
        self._released.set()
        self._frame_count = 0

    def start(self) -> bool:
        """
        Open the camera and start the capture thread.

        Returns:
            True if started successfully
        """
        if self._is_running:
            return True

        try:
            self._capture = cv2.VideoCapture(self.device_index)
            if not self._capture.isOpened():
                logger.error(f"Failed to open camera {self.device_index}")
                return False

            self._capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            self._capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            self._capture.set(cv2.CAP_PROP_FPS, self.fps)

            actual_width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
            actual_height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
            logger.info(f"Camera started: {actual_width}x{actual_height} @ {self.fps}fps")

        except cv2.error as e:
            logger.error(f"Failed to start camera: {e}")
            return False

        self._is_running = True
        self._thread = threading.Thread(
            target=self._capture_loop, name="camera-capture", daemon=True
        )
        self._thread.start()
        return True

    def stop(self):
        """Stop capture and close the camera."""
        self._is_running = False
        self._released.set()

        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None

        if self._capture is not None:
            self._capture.release()
            self._capture = None

        logger.info("Camera stopped")

    def release(self, frame: RawFrame):
        """Return a frame; allows the next one to be delivered."""
        self._released.set()

    def _capture_loop(self):
        while self._is_running:
            # Backpressure: hold the next frame until the last one is back
            if not self._released.wait(timeout=0.5):
                continue
            if not self._is_running:
                break

            ret, bgr = self._capture.read()
            if not ret or bgr is None:
                time.sleep(0.01)
                continue

            self._frame_count += 1
            frame = RawFrame(
                width=bgr.shape[1],
                height=bgr.shape[0],
                rotation_degrees=self.rotation_degrees,
                planes=planes_from_bgr(bgr),
                frame_id=self._frame_count,
                timestamp_ms=time.time() * 1000,
            )

            self._released.clear()
            self._on_frame(frame)

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def frame_count(self) -> int:
        return self._frame_count
