"""
Planar sensor data -> RGB.

Frames arrive as a luma plane plus optional half-resolution chroma planes
(I420 / NV12 / NV21 style, described by row and pixel strides). The output is
an (H, W, 3) uint8 RGB array.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .errors import ConversionError
from .types import FramePlanes, PlaneLike


# Fixed-point BT.601 coefficients (scaled by 1024).
_Y_SCALE = 1192
_V_TO_R = 1634
_V_TO_G = 833
_U_TO_G = 400
_U_TO_B = 2066
# Largest pre-shift value that still maps to 255 after `>> 10`.
_PRE_SHIFT_MAX = 262143


def _as_plane(plane: PlaneLike, name: str) -> np.ndarray:
    if isinstance(plane, np.ndarray):
        arr = plane.reshape(-1)
        if arr.dtype.itemsize != 1:
            raise ConversionError(f"{name} plane must hold 8-bit samples, got dtype {arr.dtype}")
        return arr.view(np.uint8)
    try:
        return np.frombuffer(plane, dtype=np.uint8)
    except TypeError as e:
        raise ConversionError(f"{name} plane is not a bytes-like object: {type(plane).__name__}") from e


def _check_dims(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise ConversionError(f"Invalid frame size {width}x{height}")


def _read_luma(y: np.ndarray, width: int, height: int, row_stride: int) -> np.ndarray:
    if row_stride < width:
        raise ConversionError(f"Luma row stride {row_stride} is smaller than width {width}")
    needed = (height - 1) * row_stride + width
    if y.size < needed:
        raise ConversionError(f"Luma plane too short: need {needed} bytes for {width}x{height}, got {y.size}")
    if row_stride == width:
        return y[: width * height].reshape(height, width)
    idx = np.arange(height)[:, None] * row_stride + np.arange(width)[None, :]
    return y[idx]


def luma_to_rgb(y: PlaneLike, width: int, height: int, row_stride: Optional[int] = None) -> np.ndarray:
    """
    Grayscale fallback: R = G = B = Y.
    """

    _check_dims(width, height)
    luma = _read_luma(_as_plane(y, "Y"), width, height, width if row_stride is None else int(row_stride))
    try:
        return np.repeat(luma[:, :, None], 3, axis=2)
    except MemoryError as e:
        raise ConversionError("Could not allocate RGB buffer") from e


def planes_to_rgb(
    y: PlaneLike,
    u: PlaneLike,
    v: PlaneLike,
    width: int,
    height: int,
    uv_row_stride: int,
    uv_pixel_stride: int,
    y_row_stride: Optional[int] = None,
) -> np.ndarray:
    """
    Full YUV -> RGB using the integer BT.601 transform.

    Chroma is sampled at (row >> 1, col >> 1) through the strides. Indices past
    the end of a chroma plane are clamped to its last sample, so short planes
    (cropped last row, NV21 interleave) never read out of bounds.
    """

    _check_dims(width, height)
    if uv_row_stride <= 0 or uv_pixel_stride <= 0:
        raise ConversionError(f"Invalid chroma strides row={uv_row_stride} pixel={uv_pixel_stride}")

    luma = _read_luma(_as_plane(y, "Y"), width, height, width if y_row_stride is None else int(y_row_stride))
    u_plane = _as_plane(u, "U")
    v_plane = _as_plane(v, "V")
    if u_plane.size == 0 or v_plane.size == 0:
        raise ConversionError("Chroma plane is empty")

    try:
        uv_index = (np.arange(height, dtype=np.int64)[:, None] >> 1) * uv_row_stride + (
            np.arange(width, dtype=np.int64)[None, :] >> 1
        ) * uv_pixel_stride
        u_val = u_plane[np.minimum(uv_index, u_plane.size - 1)].astype(np.int32) - 128
        v_val = v_plane[np.minimum(uv_index, v_plane.size - 1)].astype(np.int32) - 128

        y1192 = _Y_SCALE * (luma.astype(np.int32) - 16)
        r = y1192 + _V_TO_R * v_val
        g = y1192 - _V_TO_G * v_val - _U_TO_G * u_val
        b = y1192 + _U_TO_B * u_val

        rgb = np.empty((height, width, 3), dtype=np.uint8)
        for c, chan in enumerate((r, g, b)):
            rgb[:, :, c] = np.clip(chan, 0, _PRE_SHIFT_MAX) >> 10
    except MemoryError as e:
        raise ConversionError("Could not allocate RGB buffer") from e
    return rgb


def yuv_to_rgb(frame: FramePlanes) -> np.ndarray:
    if frame.has_chroma:
        return planes_to_rgb(
            frame.y,
            frame.u,
            frame.v,
            frame.width,
            frame.height,
            uv_row_stride=int(frame.uv_row_stride),
            uv_pixel_stride=int(frame.uv_pixel_stride),
            y_row_stride=frame.y_row_stride,
        )
    return luma_to_rgb(frame.y, frame.width, frame.height, row_stride=frame.y_row_stride)


def to_argb(rgb: np.ndarray) -> np.ndarray:
    """
    Pack an (H, W, 3) RGB array into opaque 0xFFRRGGBB uint32 pixels.
    """

    rgb = rgb.astype(np.uint32)
    return np.uint32(0xFF000000) | (rgb[:, :, 0] << 16) | (rgb[:, :, 1] << 8) | rgb[:, :, 2]
