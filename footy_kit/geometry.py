from __future__ import annotations

import logging
from typing import Tuple

import numpy as np


logger = logging.getLogger(__name__)

ROTATIONS = (0, 90, 180, 270)


def _cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for geometry normalization. Install with `pip install opencv-python`.") from e
    return cv2


def _interp_flag(interpolation: str) -> int:
    cv2 = _cv2()
    flags = {"nearest": cv2.INTER_NEAREST, "linear": cv2.INTER_LINEAR}
    if interpolation not in flags:
        raise ValueError(f"Unsupported interpolation: {interpolation!r} (expected one of {sorted(flags)})")
    return flags[interpolation]


def rotate_scale_matrix(src_size: Tuple[int, int], rotation: int, target_size: Tuple[int, int]) -> np.ndarray:
    """
    3x3 matrix mapping source pixel centers to target pixel centers.

    Composition is S @ R: rotate the source clockwise by `rotation` degrees,
    then scale the rotated image to exactly `target_size` (width, height).
    """

    w, h = src_size
    if rotation == 0:
        rot = np.eye(3)
        rw, rh = w, h
    elif rotation == 90:
        rot = np.array([[0.0, -1.0, h - 1.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
        rw, rh = h, w
    elif rotation == 180:
        rot = np.array([[-1.0, 0.0, w - 1.0], [0.0, -1.0, h - 1.0], [0.0, 0.0, 1.0]])
        rw, rh = w, h
    elif rotation == 270:
        rot = np.array([[0.0, 1.0, 0.0], [-1.0, 0.0, w - 1.0], [0.0, 0.0, 1.0]])
        rw, rh = h, w
    else:
        raise ValueError(f"rotation must be one of {ROTATIONS}, got {rotation!r}")

    tw, th = target_size
    sx, sy = tw / rw, th / rh
    # Pixel-center aligned scale: x' = (x + 0.5) * s - 0.5
    scale = np.array([[sx, 0.0, 0.5 * sx - 0.5], [0.0, sy, 0.5 * sy - 0.5], [0.0, 0.0, 1.0]])
    return scale @ rot


def _rotate_and_scale(rgb: np.ndarray, rotation: int, target_size: Tuple[int, int], flag: int) -> np.ndarray:
    cv2 = _cv2()
    h, w = rgb.shape[:2]
    m = rotate_scale_matrix((w, h), rotation, target_size)
    return cv2.warpAffine(rgb, m[:2], target_size, flags=flag, borderMode=cv2.BORDER_REPLICATE)


def _scale(rgb: np.ndarray, target_size: Tuple[int, int], flag: int) -> np.ndarray:
    cv2 = _cv2()
    h, w = rgb.shape[:2]
    if (w, h) == tuple(target_size):
        return rgb
    return cv2.resize(rgb, target_size, interpolation=flag)


def _is_out_of_memory(exc: BaseException) -> bool:
    if isinstance(exc, MemoryError):
        return True
    cv2 = _cv2()
    return isinstance(exc, cv2.error) and getattr(exc, "code", None) == cv2.Error.StsNoMem


def normalize_geometry(
    rgb: np.ndarray,
    rotation: int,
    target_size: Tuple[int, int],
    interpolation: str = "linear",
) -> np.ndarray:
    """
    Rotate (clockwise) then scale an RGB frame to the model input size.

    Args:
        rgb: (H, W, 3) uint8 array
        rotation: 0, 90, 180 or 270
        target_size: (width, height) of the model input

    Returns the input object unchanged when no work is needed. If the
    rotate+scale allocation fails under memory pressure, the frame is scaled
    without rotation and a warning is logged.
    """

    if rotation not in ROTATIONS:
        raise ValueError(f"rotation must be one of {ROTATIONS}, got {rotation!r}")
    if rgb.ndim != 3 or rgb.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(rgb, 'shape', None)}")

    tw, th = int(target_size[0]), int(target_size[1])
    h, w = rgb.shape[:2]
    if rotation == 0 and (w, h) == (tw, th):
        return rgb

    flag = _interp_flag(interpolation)
    if rotation == 0:
        return _scale(rgb, (tw, th), flag)

    try:
        return _rotate_and_scale(rgb, rotation, (tw, th), flag)
    except Exception as e:
        if not _is_out_of_memory(e):
            raise
        logger.warning("Rotate+scale to %dx%d failed under memory pressure (%s); scaling without rotation", tw, th, e)
    return _scale(rgb, (tw, th), flag)
