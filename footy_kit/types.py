from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np


PlaneLike = Union[bytes, bytearray, memoryview, np.ndarray]
Box = Tuple[float, float, float, float]


@dataclass
class FramePlanes:
    """
    One camera frame as delivered by the sensor: a mandatory luma plane and
    optional chroma planes with their strides.

    If either chroma plane is missing the frame is treated as luma-only.
    Strides default to the values a tightly packed I420 frame would have for
    the U/V row stride (`width`) and pixel stride (1), matching what the
    frame messages assume when the keys are absent.
    """

    y: PlaneLike
    width: int
    height: int
    u: Optional[PlaneLike] = None
    v: Optional[PlaneLike] = None
    y_row_stride: Optional[int] = None
    uv_row_stride: Optional[int] = None
    uv_pixel_stride: int = 1

    def __post_init__(self) -> None:
        if self.y_row_stride is None:
            self.y_row_stride = self.width
        if self.uv_row_stride is None:
            self.uv_row_stride = self.width

    @property
    def has_chroma(self) -> bool:
        return self.u is not None and self.v is not None

    @classmethod
    def from_mapping(cls, args: Mapping[str, Any]) -> "FramePlanes":
        """
        Build from a frame message (`imageBytes`, `uPlane`, `vPlane`, `width`,
        `height`, `uvRowStride`, `uvPixelStride`).
        """

        if "imageBytes" not in args:
            raise ValueError("Frame message is missing 'imageBytes'")
        width = int(args["width"])
        return cls(
            y=args["imageBytes"],
            u=args.get("uPlane"),
            v=args.get("vPlane"),
            width=width,
            height=int(args["height"]),
            uv_row_stride=int(args.get("uvRowStride", width)),
            uv_pixel_stride=int(args.get("uvPixelStride", 1)),
        )


@dataclass(frozen=True)
class InputSpec:
    """
    Declared model input: NHWC shape and element type.
    """

    shape: Tuple[int, ...]
    dtype: np.dtype

    @property
    def batch(self) -> int:
        return int(self.shape[0])

    @property
    def height(self) -> int:
        return int(self.shape[1])

    @property
    def width(self) -> int:
        return int(self.shape[2])

    @property
    def channels(self) -> int:
        return int(self.shape[3])

    @property
    def is_quantized(self) -> bool:
        return np.dtype(self.dtype).kind in ("u", "i")

    @property
    def nbytes(self) -> int:
        n = 1
        for d in self.shape:
            n *= int(d)
        return n * np.dtype(self.dtype).itemsize


@dataclass
class Detection:
    """
    Object detection with a normalized [0, 1] corner box.
    """

    tag: str
    confidence: float
    box: Box

    def to_dict(self) -> Dict[str, Any]:
        return {"tag": self.tag, "confidence": self.confidence, "box": list(self.box)}


@dataclass
class Keypoint:
    name: str
    x: float
    y: float
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "x": self.x, "y": self.y, "score": self.score}


@dataclass
class PoseDetection:
    keypoints: List[Keypoint]
    box: Optional[Box] = None
    tag: str = "person"
    confidence: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "tag": self.tag,
            "confidence": self.confidence,
            "keypoints": [kp.to_dict() for kp in self.keypoints],
        }
        if self.box is not None:
            out["box"] = list(self.box)
        return out


@dataclass
class BallResult:
    detections: List[Detection] = field(default_factory=list)
    processing_time_ms: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "detections": [d.to_dict() for d in self.detections],
            "processingTimeMs": self.processing_time_ms,
        }
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class PoseResult:
    detections: List[PoseDetection] = field(default_factory=list)
    processing_time_ms: float = 0.0
    inference_time_ms: float = 0.0
    # Per-frame diagnostic payload: all 17 keypoints, even when no person is reported.
    keypoints: List[Keypoint] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "detections": [d.to_dict() for d in self.detections],
            "processingTimeMs": self.processing_time_ms,
            "inferenceTimeMs": self.inference_time_ms,
            "keypoints": [kp.to_dict() for kp in self.keypoints],
        }
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class LoadResult:
    ok: bool
    reason: Optional[str] = None
    tier: Optional[str] = None
