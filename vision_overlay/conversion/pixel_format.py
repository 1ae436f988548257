"""
Pixel format conversion for camera frames.

Handles:
- Three-plane YUV 4:2:0 to packed NV21 (stride-aware)
- NV21 to RGB
- Lossless axis-aligned rotation
"""

from __future__ import annotations

from typing import Sequence, Tuple
import numpy as np
from numpy.typing import NDArray
import cv2

from vision_overlay.core.contracts import ImagePlane, SUPPORTED_ROTATIONS
from vision_overlay.core.errors import MalformedFrameError, UnsupportedRotationError


_ROTATE_CODES = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def chroma_size(width: int, height: int) -> Tuple[int, int]:
    """(width, height) of a 4:2:0 chroma raster."""
    return ((width + 1) // 2, (height + 1) // 2)


def packed_buffer_length(width: int, height: int) -> int:
    """Byte length of an NV21 buffer for the given frame size."""
    chroma_w, chroma_h = chroma_size(width, height)
    return width * height + 2 * chroma_w * chroma_h


def unpack_plane(
    plane: ImagePlane,
    cols: int,
    rows: int,
    clamp_rows: bool = False,
) -> NDArray[np.uint8]:
    """
    Extract a (rows x cols) raster from a strided plane.

    Row padding and pixel gaps are dropped. The plane's own row count is
    derived from its buffer length and row stride, rounding up so a last
    row without trailing padding still counts.

    With ``clamp_rows`` a plane shorter than ``rows`` yields only the rows
    it has; otherwise a short plane is malformed.

    Raises:
        MalformedFrameError: the plane has no rows, has too few rows, or
            its buffer is too small for the declared strides
    """
    data = plane.as_array()

    if plane.row_stride <= 0 or plane.pixel_stride <= 0:
        raise MalformedFrameError(
            f"Invalid plane strides: row={plane.row_stride} pixel={plane.pixel_stride}"
        )

    plane_rows = (data.size + plane.row_stride - 1) // plane.row_stride
    if plane_rows == 0:
        raise MalformedFrameError("Plane has zero rows")

    if plane_rows < rows and not clamp_rows:
        raise MalformedFrameError(
            f"Plane has {plane_rows} rows, expected {rows}"
        )

    rows = min(rows, plane_rows)
    last_index = (rows - 1) * plane.row_stride + (cols - 1) * plane.pixel_stride
    if last_index >= data.size:
        raise MalformedFrameError(
            f"Plane buffer too small: {data.size} bytes for "
            f"{cols}x{rows} at row stride {plane.row_stride}, "
            f"pixel stride {plane.pixel_stride}"
        )

    index = (
        np.arange(rows)[:, np.newaxis] * plane.row_stride
        + np.arange(cols)[np.newaxis, :] * plane.pixel_stride
    )
    return data[index]


def to_packed_buffer(
    planes: Sequence[ImagePlane],
    width: int,
    height: int,
) -> NDArray[np.uint8]:
    """
    Convert Y, U, V planes into a packed NV21 buffer.

    The first ``width * height`` bytes are luma; the tail holds V and U
    interleaved (V first) at the halved chroma raster. Chroma planes are
    always copied sample by sample, even when the source already stores
    them interleaved.

    Args:
        planes: Y, U and V planes
        width: Frame width in pixels
        height: Frame height in pixels

    Returns:
        Flat uint8 array of ``packed_buffer_length(width, height)`` bytes
    """
    if width <= 0 or height <= 0:
        raise MalformedFrameError(f"Invalid frame size {width}x{height}")
    if len(planes) != 3:
        raise MalformedFrameError(f"Expected 3 planes, got {len(planes)}")

    y_plane, u_plane, v_plane = planes
    luma_size = width * height
    chroma_w, chroma_h = chroma_size(width, height)

    out = np.zeros(packed_buffer_length(width, height), dtype=np.uint8)

    luma = unpack_plane(y_plane, width, height)
    out[:luma.size] = luma.ravel()

    # A short chroma plane leaves its missing rows neutral
    vu = out[luma_size:].reshape(chroma_h, chroma_w, 2)
    v = unpack_plane(v_plane, chroma_w, chroma_h, clamp_rows=True)
    u = unpack_plane(u_plane, chroma_w, chroma_h, clamp_rows=True)
    if v.shape[0] < chroma_h or u.shape[0] < chroma_h:
        vu[:] = 128
    vu[:v.shape[0], :, 0] = v
    vu[:u.shape[0], :, 1] = u

    return out


def decode_packed_buffer(
    packed: NDArray[np.uint8],
    width: int,
    height: int,
) -> NDArray[np.uint8]:
    """
    Decode an NV21 buffer into an RGB image (H x W x 3).

    Chroma is upsampled by pixel replication, which also covers odd
    frame sizes that OpenCV's NV21 path rejects.
    """
    expected = packed_buffer_length(width, height)
    if packed.size != expected:
        raise MalformedFrameError(
            f"Packed buffer has {packed.size} bytes, expected {expected}"
        )

    chroma_w, chroma_h = chroma_size(width, height)
    luma = packed[:width * height].reshape(height, width)
    vu = packed[width * height:].reshape(chroma_h, chroma_w, 2)

    vu_full = np.repeat(np.repeat(vu, 2, axis=0), 2, axis=1)[:height, :width]

    # OpenCV's YCrCb ordering is (Y, V, U)
    ycrcb = np.dstack([luma, vu_full[:, :, 0], vu_full[:, :, 1]])
    return cv2.cvtColor(ycrcb, cv2.COLOR_YCrCb2RGB)


def rotate(image: NDArray[np.uint8], degrees: int) -> NDArray[np.uint8]:
    """
    Rotate an image clockwise by a multiple of 90 degrees.

    Returns the input unchanged for 0 degrees, otherwise a new array;
    callers drop their reference to the unrotated image.
    """
    if degrees not in SUPPORTED_ROTATIONS:
        raise UnsupportedRotationError(degrees)
    if degrees == 0:
        return image
    return cv2.rotate(image, _ROTATE_CODES[degrees])


def planes_to_rgb(
    planes: Sequence[ImagePlane],
    width: int,
    height: int,
    rotation_degrees: int = 0,
) -> NDArray[np.uint8]:
    """Full conversion: planes to NV21 to RGB, then rotated upright."""
    if rotation_degrees not in SUPPORTED_ROTATIONS:
        raise UnsupportedRotationError(rotation_degrees)

    packed = to_packed_buffer(planes, width, height)
    rgb = decode_packed_buffer(packed, width, height)
    del packed
    return rotate(rgb, rotation_degrees)
