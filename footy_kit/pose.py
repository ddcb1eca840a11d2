"""
Decoder for single-person 17-keypoint pose output (MoveNet layout).

The model emits (1, 1, 17, 3) with each row (y, x, score) in normalized
coordinates, in the COCO keypoint order below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

import numpy as np

from .postprocess import clip_box
from .types import Keypoint, PoseDetection


logger = logging.getLogger(__name__)


KEYPOINT_NAMES = (
    "nose",
    "left_eye",
    "right_eye",
    "left_ear",
    "right_ear",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
)

NUM_KEYPOINTS = len(KEYPOINT_NAMES)


@dataclass
class PosePostConfig:
    # Keypoints at or below this score do not contribute to the person box.
    visibility_threshold: float = 0.20
    box_padding: float = 0.05


@dataclass
class PoseDecodeResult:
    keypoints: List[Keypoint] = field(default_factory=list)
    detections: List[PoseDetection] = field(default_factory=list)


class PosePostprocessor:
    def __init__(self, cfg: PosePostConfig):
        self.cfg = cfg

    def process(self, preds: np.ndarray, is_front_camera: bool = False) -> PoseDecodeResult:
        p = np.asarray(preds, dtype=np.float32)
        if p.size != NUM_KEYPOINTS * 3:
            raise ValueError(f"Expected {NUM_KEYPOINTS}x3 pose output, got shape {p.shape}")
        rows = p.reshape(NUM_KEYPOINTS, 3)

        # Thresholding and box math stay in float32, the model's precision.
        ys = rows[:, 0]
        xs = np.float32(1.0) - rows[:, 1] if is_front_camera else rows[:, 1]
        scores = rows[:, 2]
        visible = scores > np.float32(self.cfg.visibility_threshold)

        keypoints = [
            Keypoint(name=name, x=x, y=y, score=score)
            for name, x, y, score in zip(KEYPOINT_NAMES, xs.tolist(), ys.tolist(), scores.tolist())
        ]
        result = PoseDecodeResult(keypoints=keypoints)
        if not visible.any():
            return result

        pad = np.float32(self.cfg.box_padding)
        vx, vy = xs[visible], ys[visible]
        box = clip_box((vx.min() - pad, vy.min() - pad, vx.max() + pad, vy.max() + pad))
        result.detections.append(PoseDetection(keypoints=keypoints, box=box))
        logger.debug("Person box %s from %d visible keypoints", box, int(visible.sum()))
        return result
