"""
Role services: one owner per model role (ball detector, pose).

Each service owns its ModelHandle, pipeline and LatencyTracker and runs load,
detect and dispose under one lock, so calls on the same role never overlap.
The two roles share nothing and may run concurrently.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

import numpy as np

from .config import BallConfig, PipelineConfig, PoseConfig, RuntimeConfig
from .errors import ConversionError, InferenceError, ModelConfigurationError, ModelLoadError, ModelNotLoadedError
from .labels import find_target_class, load_labels
from .latency import LatencyTracker
from .lifecycle import EngineFactory, ModelHandle, build_load_tiers, load_model
from .pose import NUM_KEYPOINTS
from .runtime import BallPipeline, PosePipeline, elapsed_ms, resolve_model_path
from .types import BallResult, FramePlanes, LoadResult, PoseResult


logger = logging.getLogger(__name__)


def _int_dims(shape) -> Optional[list]:
    dims = list(shape)
    if not all(isinstance(d, (int, np.integer)) for d in dims):
        return None
    return [int(d) for d in dims]


def validate_detector_outputs(handle: ModelHandle) -> None:
    if not handle.output_shapes:
        raise ModelConfigurationError("Detector model has no outputs")
    shape = handle.output_shapes[0]
    if len(shape) != 3:
        raise ModelConfigurationError(f"Detector output must be (1, 4 + C, N), got {shape}")
    dims = _int_dims(shape)
    if dims is not None and dims[1] < 5:
        raise ModelConfigurationError(f"Detector output needs at least one class row, got {shape}")


def validate_pose_outputs(handle: ModelHandle) -> None:
    if not handle.output_shapes:
        raise ModelConfigurationError("Pose model has no outputs")
    dims = _int_dims(handle.output_shapes[0])
    if dims is not None and int(np.prod(dims)) != NUM_KEYPOINTS * 3:
        raise ModelConfigurationError(f"Pose output must be (1, 1, {NUM_KEYPOINTS}, 3), got {handle.output_shapes[0]}")


class _RoleService:
    role = "model"

    def __init__(self, runtime: RuntimeConfig, engine_factory: Optional[EngineFactory]):
        self.runtime = runtime
        self.engine_factory = engine_factory
        self.latency = LatencyTracker()
        self._handle: Optional[ModelHandle] = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._handle is not None and self._handle.loaded

    def _open(self, model_path, use_accelerator: bool, validate) -> ModelHandle:
        path = resolve_model_path(model_path, self.runtime.model_root)
        logger.info("Loading %s model: %s", self.role, path)
        return load_model(
            path,
            build_load_tiers(use_accelerator, self.runtime),
            engine_factory=self.engine_factory,
            validate=validate,
        )

    def _release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()

    def dispose(self) -> None:
        with self._lock:
            self._release()
        logger.info("%s model disposed", self.role)

    def _require_handle(self) -> ModelHandle:
        if not self.loaded:
            raise ModelNotLoadedError(f"{self.role} model not loaded")
        return self._handle


class BallDetectionService(_RoleService):
    role = "detector"

    def __init__(
        self,
        cfg: BallConfig = BallConfig(),
        runtime: RuntimeConfig = RuntimeConfig(),
        engine_factory: Optional[EngineFactory] = None,
    ):
        super().__init__(runtime, engine_factory)
        self.cfg = cfg
        self.target_class: Optional[int] = None
        self._pipeline: Optional[BallPipeline] = None

    def load(self, model_path, labels_path, use_accelerator: bool = False) -> LoadResult:
        with self._lock:
            self._release()
            self._pipeline = None
            self.target_class = None
            self.latency.reset()
            try:
                labels = load_labels(resolve_model_path(labels_path, self.runtime.model_root))
                handle = self._open(model_path, use_accelerator, validate_detector_outputs)
            except (OSError, ModelConfigurationError, ModelLoadError, ValueError) as e:
                logger.error("Loading detector failed: %s", e)
                return LoadResult(ok=False, reason=str(e))
            self.target_class = find_target_class(labels, self.cfg.label_keywords, self.cfg.label_exact)
            self._handle = handle
            self._pipeline = BallPipeline(handle, self.target_class, self.cfg, latency=self.latency)
            return LoadResult(ok=True, tier=handle.tier)

    def detect(self, frame: FramePlanes, rotation: int = 0, is_front_camera: bool = False) -> BallResult:
        with self._lock:
            self._require_handle()
            start = time.perf_counter()
            logger.debug("Ball detection %dx%d, front camera: %s", frame.width, frame.height, is_front_camera)
            try:
                detections, _ = self._pipeline(frame, rotation, is_front_camera)
            except ConversionError as e:
                logger.error("Frame conversion failed: %s", e)
                return BallResult(processing_time_ms=elapsed_ms(start), error=str(e))
            except (InferenceError, ValueError) as e:
                logger.exception("Ball detection failed for this frame")
                return BallResult(processing_time_ms=elapsed_ms(start), error=str(e))
            return BallResult(detections=detections, processing_time_ms=elapsed_ms(start))


class PoseDetectionService(_RoleService):
    role = "pose"

    def __init__(
        self,
        cfg: PoseConfig = PoseConfig(),
        runtime: RuntimeConfig = RuntimeConfig(),
        engine_factory: Optional[EngineFactory] = None,
    ):
        super().__init__(runtime, engine_factory)
        self.cfg = cfg
        self._pipeline: Optional[PosePipeline] = None

    def load(self, model_path, use_accelerator: bool = False) -> LoadResult:
        with self._lock:
            self._release()
            self._pipeline = None
            self.latency.reset()
            if model_path is None:
                return LoadResult(ok=False, reason="Pose model path cannot be None")
            try:
                handle = self._open(model_path, use_accelerator, validate_pose_outputs)
            except (OSError, ModelConfigurationError, ModelLoadError, ValueError) as e:
                logger.error("Loading pose model failed: %s", e)
                return LoadResult(ok=False, reason=str(e))
            self._handle = handle
            self._pipeline = PosePipeline(handle, self.cfg, latency=self.latency)
            return LoadResult(ok=True, tier=handle.tier)

    def detect(self, frame: FramePlanes, rotation: int = 0, is_front_camera: bool = False) -> PoseResult:
        with self._lock:
            self._require_handle()
            start = time.perf_counter()
            try:
                decoded, inference_ms = self._pipeline(frame, rotation, is_front_camera)
            except ConversionError as e:
                logger.error("Frame conversion failed: %s", e)
                return PoseResult(processing_time_ms=elapsed_ms(start), error=str(e))
            except (InferenceError, ValueError) as e:
                logger.exception("Pose detection failed for this frame")
                return PoseResult(
                    processing_time_ms=elapsed_ms(start),
                    inference_time_ms=self._pipeline.last_inference_ms,
                    error=str(e),
                )
            total = elapsed_ms(start)
            logger.debug(
                "Pose done in %.1f ms (inference %.1f ms), %d person(s)", total, inference_ms, len(decoded.detections)
            )
            return PoseResult(
                detections=decoded.detections,
                processing_time_ms=total,
                inference_time_ms=inference_ms,
                keypoints=decoded.keypoints,
            )


class FootyDetector:
    """
    Boundary facade with one service per role.
    """

    def __init__(self, cfg: PipelineConfig = PipelineConfig(), engine_factory: Optional[EngineFactory] = None):
        self.cfg = cfg
        self.ball = BallDetectionService(cfg.ball, cfg.runtime, engine_factory)
        self.pose = PoseDetectionService(cfg.pose, cfg.runtime, engine_factory)

    def load_detector(self, model_path, labels_path, use_accelerator: bool = False) -> LoadResult:
        return self.ball.load(model_path, labels_path, use_accelerator)

    def load_pose(self, model_path, use_accelerator: bool = False) -> LoadResult:
        return self.pose.load(model_path, use_accelerator)

    def detect_ball(self, frame: FramePlanes, rotation: int = 0, is_front_camera: bool = False) -> BallResult:
        return self.ball.detect(frame, rotation, is_front_camera)

    def detect_pose(self, frame: FramePlanes, rotation: int = 0, is_front_camera: bool = False) -> PoseResult:
        return self.pose.detect(frame, rotation, is_front_camera)

    def dispose_detector(self) -> None:
        self.ball.dispose()

    def dispose_pose(self) -> None:
        self.pose.dispose()

    def close(self) -> None:
        self.dispose_detector()
        self.dispose_pose()

    def __enter__(self) -> "FootyDetector":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
