from __future__ import annotations

import numpy as np

from .errors import ModelConfigurationError
from .types import InputSpec


SUPPORTED_INPUT_DTYPES = (np.dtype(np.uint8), np.dtype(np.int8), np.dtype(np.float32))


def validate_input_spec(spec: InputSpec) -> None:
    """
    Load-time contract check for NHWC RGB inputs. Raises ModelConfigurationError.
    """

    if len(spec.shape) != 4:
        raise ModelConfigurationError(f"Expected NHWC input shape, got {tuple(spec.shape)}")
    if spec.batch != 1:
        raise ModelConfigurationError(f"Only batch size 1 is supported, model declares {spec.batch}")
    if spec.channels != 3:
        raise ModelConfigurationError(f"Model declares {spec.channels} input channels, RGB packing needs 3")
    if spec.height <= 0 or spec.width <= 0:
        raise ModelConfigurationError(f"Model declares a dynamic or empty input size {tuple(spec.shape)}")
    if np.dtype(spec.dtype) not in SUPPORTED_INPUT_DTYPES:
        raise ModelConfigurationError(f"Unsupported input element type {np.dtype(spec.dtype)}")


def pack_tensor(rgb: np.ndarray, spec: InputSpec) -> np.ndarray:
    """
    Pack an RGB frame at model resolution into the model's input layout.

    - quantized (uint8/int8): R, G, B bytes, row-major, no normalization
    - float32: R, G, B divided by 255.0, row-major

    The result is C-contiguous NHWC in native byte order, so `tobytes()` is
    the exact input buffer (`spec.nbytes` long).
    """

    expected = (spec.height, spec.width, spec.channels)
    if rgb.shape != expected:
        raise ValueError(f"RGB buffer shape {rgb.shape} does not match model input {expected}")

    dtype = np.dtype(spec.dtype)
    pixels = np.ascontiguousarray(rgb, dtype=np.uint8)
    if dtype == np.uint8:
        packed = pixels
    elif dtype == np.int8:
        packed = pixels.view(np.int8)
    elif dtype == np.float32:
        packed = pixels.astype(np.float32) / np.float32(255.0)
    else:
        raise ModelConfigurationError(f"Unsupported input element type {dtype}")
    return packed.reshape(spec.shape)
