from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .types import Box, Detection


logger = logging.getLogger(__name__)


@dataclass
class BallPostConfig:
    """
    Post-processing config for the single-class ball detector.
    """

    conf_threshold: float = 0.10
    tag: str = "soccer_ball"


def mirror_box(box: Box) -> Box:
    """
    Horizontal flip of a normalized corner box (front camera preview).
    """

    x1, y1, x2, y2 = box
    return 1.0 - x2, y1, 1.0 - x1, y2


def clip_box(box: Box) -> Box:
    x1, y1, x2, y2 = (min(1.0, max(0.0, float(v))) for v in box)
    return x1, y1, x2, y2


class BallPostprocessor:
    """
    Decoder for YOLOv8-style detector output, layout (4 + C, N) per image:
    rows 0..3 are cx, cy, w, h (normalized), rows 4.. are class scores.

    Only the ball class row is looked at. Candidates are scanned in index order
    and the first one whose score is strictly above `conf_threshold` is the
    result; later candidates are ignored even if they score higher. There is
    no NMS.
    """

    def __init__(self, cfg: BallPostConfig):
        self.cfg = cfg

    def process(self, preds: np.ndarray, target_class: Optional[int], is_front_camera: bool = False) -> List[Detection]:
        """
        Args:
            preds: model output for a single image, (1, 4 + C, N) or (4 + C, N)
            target_class: index of the ball class in the label list, None if unknown
            is_front_camera: mirror the box horizontally

        Returns an empty list or a list with exactly one Detection.
        """

        p = self._squeeze(preds)
        num_classes = p.shape[0] - 4
        if target_class is None or target_class < 0 or target_class >= num_classes:
            return []

        scores = p[4 + target_class, :]
        hits = np.flatnonzero(scores > np.float32(self.cfg.conf_threshold))
        if hits.size == 0:
            return []

        i = int(hits[0])
        cx, cy, w, h = (float(v) for v in p[0:4, i])
        box: Box = (cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2)
        if is_front_camera:
            box = mirror_box(box)
        box = clip_box(box)

        det = Detection(tag=self.cfg.tag, confidence=float(scores[i]), box=box)
        logger.debug("Ball at candidate %d: conf=%.2f box=[%.2f, %.2f, %.2f, %.2f]", i, det.confidence, *box)
        return [det]

    @staticmethod
    def _squeeze(preds: np.ndarray) -> np.ndarray:
        p = np.asarray(preds)
        if p.ndim == 3:
            if p.shape[0] != 1:
                raise ValueError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
            p = p[0]
        if p.ndim != 2 or p.shape[0] < 4:
            raise ValueError(f"Unsupported detector output shape: {np.asarray(preds).shape}")
        return p
