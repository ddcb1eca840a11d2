from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .color import yuv_to_rgb
from .config import BallConfig, PoseConfig
from .geometry import normalize_geometry
from .latency import LatencyTracker
from .lifecycle import ModelHandle
from .pose import PoseDecodeResult, PosePostConfig, PosePostprocessor
from .postprocess import BallPostConfig, BallPostprocessor
from .tensor import pack_tensor
from .types import Detection, FramePlanes


PathLike = Union[str, Path]

logger = logging.getLogger(__name__)

ASSET_PREFIX = "assets/"


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery, used to resolve relative model paths.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_model_path(path: PathLike, root: Optional[PathLike] = None) -> Path:
    """
    Resolve a model or label path as the app passes it.

    App asset paths come prefixed with `assets/`; the prefix is dropped and the
    rest resolved against `root` (or the project root when None). Absolute
    paths are returned as-is.
    """

    raw = str(path)
    if raw.startswith(ASSET_PREFIX):
        raw = raw[len(ASSET_PREFIX):]
    p = Path(raw)
    if p.is_absolute():
        return p
    base = find_project_root() if root is None else Path(root).resolve()
    return (base / p).resolve()


def elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


@dataclass(frozen=True)
class PreprocessResult:
    tensor: np.ndarray
    preprocess_ms: float


class _FramePipeline:
    """
    convert -> rotate/scale -> pack -> infer. Subclasses decode the outputs.

    Every completed engine call is recorded in `latency` before decoding, and
    `last_inference_ms` holds the current frame's engine time (0.0 until the
    engine returns).
    """

    def __init__(self, handle: ModelHandle, interpolation: str, latency: Optional[LatencyTracker] = None):
        self.handle = handle
        self.interpolation = interpolation
        self.latency = latency
        self.last_inference_ms = 0.0

    def preprocess(self, frame: FramePlanes, rotation: int = 0) -> PreprocessResult:
        start = time.perf_counter()
        spec = self.handle.input_spec
        rgb = yuv_to_rgb(frame)
        rgb = normalize_geometry(rgb, rotation, (spec.width, spec.height), interpolation=self.interpolation)
        tensor = pack_tensor(rgb, spec)
        return PreprocessResult(tensor=tensor, preprocess_ms=elapsed_ms(start))

    def infer(self, tensor: np.ndarray) -> Tuple[List[np.ndarray], float]:
        start = time.perf_counter()
        outputs = self.handle.infer(tensor)
        elapsed = elapsed_ms(start)
        self.last_inference_ms = elapsed
        if self.latency is not None:
            self.latency.record(elapsed)
        logger.debug("Inference on %s took %.1f ms", self.handle.model_path, elapsed)
        return outputs, elapsed

    def _run(self, frame: FramePlanes, rotation: int) -> Tuple[List[np.ndarray], float]:
        self.last_inference_ms = 0.0
        prep = self.preprocess(frame, rotation)
        logger.debug("Preprocess %dx%d frame took %.1f ms", frame.width, frame.height, prep.preprocess_ms)
        return self.infer(prep.tensor)


class BallPipeline(_FramePipeline):
    """
    Ball detection for one frame. Returns ([Detection] (0 or 1), inference_ms).
    """

    def __init__(
        self,
        handle: ModelHandle,
        target_class: Optional[int],
        cfg: BallConfig = BallConfig(),
        latency: Optional[LatencyTracker] = None,
    ):
        super().__init__(handle, cfg.interpolation, latency)
        self.target_class = target_class
        self.post = BallPostprocessor(BallPostConfig(conf_threshold=cfg.conf_threshold, tag=cfg.tag))

    def __call__(self, frame: FramePlanes, rotation: int = 0, is_front_camera: bool = False) -> Tuple[List[Detection], float]:
        outputs, inference_ms = self._run(frame, rotation)
        return self.post.process(outputs[0], self.target_class, is_front_camera), inference_ms


class PosePipeline(_FramePipeline):
    """
    Single-person pose for one frame. Returns (PoseDecodeResult, inference_ms).
    """

    def __init__(self, handle: ModelHandle, cfg: PoseConfig = PoseConfig(), latency: Optional[LatencyTracker] = None):
        super().__init__(handle, cfg.interpolation, latency)
        self.post = PosePostprocessor(
            PosePostConfig(visibility_threshold=cfg.visibility_threshold, box_padding=cfg.box_padding)
        )

    def __call__(self, frame: FramePlanes, rotation: int = 0, is_front_camera: bool = False) -> Tuple[PoseDecodeResult, float]:
        outputs, inference_ms = self._run(frame, rotation)
        return self.post.process(outputs[0], is_front_camera), inference_ms
