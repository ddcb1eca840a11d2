"""
Frame-to-detection pipeline for the ball and pose models.

Camera planes -> RGB -> rotate/scale -> packed input tensor -> inference ->
ball box or 17 body keypoints, all in normalized display coordinates. Only
NumPy is needed for the core; OpenCV does the geometry and ONNX Runtime is
the default inference engine.
"""

from .types import (
    BallResult,
    Detection,
    FramePlanes,
    InputSpec,
    Keypoint,
    LoadResult,
    PoseDetection,
    PoseResult,
)
from .errors import (
    ConversionError,
    FootyKitError,
    InferenceError,
    ModelConfigurationError,
    ModelLoadError,
    ModelNotLoadedError,
)
from .color import luma_to_rgb, planes_to_rgb, to_argb, yuv_to_rgb
from .geometry import normalize_geometry
from .tensor import pack_tensor, validate_input_spec
from .postprocess import BallPostConfig, BallPostprocessor, clip_box, mirror_box
from .pose import KEYPOINT_NAMES, PoseDecodeResult, PosePostConfig, PosePostprocessor
from .latency import LatencyTracker
from .labels import find_target_class, load_labels
from .config import BallConfig, PipelineConfig, PoseConfig, RuntimeConfig, load_pipeline_config
from .lifecycle import ModelHandle, build_load_tiers, load_model
from .runtime import BallPipeline, PosePipeline, find_project_root, resolve_model_path
from .service import BallDetectionService, FootyDetector, PoseDetectionService

__all__ = [
    "BallResult",
    "Detection",
    "FramePlanes",
    "InputSpec",
    "Keypoint",
    "LoadResult",
    "PoseDetection",
    "PoseResult",
    "ConversionError",
    "FootyKitError",
    "InferenceError",
    "ModelConfigurationError",
    "ModelLoadError",
    "ModelNotLoadedError",
    "luma_to_rgb",
    "planes_to_rgb",
    "to_argb",
    "yuv_to_rgb",
    "normalize_geometry",
    "pack_tensor",
    "validate_input_spec",
    "BallPostConfig",
    "BallPostprocessor",
    "clip_box",
    "mirror_box",
    "KEYPOINT_NAMES",
    "PoseDecodeResult",
    "PosePostConfig",
    "PosePostprocessor",
    "LatencyTracker",
    "find_target_class",
    "load_labels",
    "BallConfig",
    "PipelineConfig",
    "PoseConfig",
    "RuntimeConfig",
    "load_pipeline_config",
    "ModelHandle",
    "build_load_tiers",
    "load_model",
    "BallPipeline",
    "PosePipeline",
    "find_project_root",
    "resolve_model_path",
    "BallDetectionService",
    "FootyDetector",
    "PoseDetectionService",
]
