from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from .labels import BALL_EXACT, BALL_KEYWORDS


_INTERPOLATIONS = ("nearest", "linear")


@dataclass(frozen=True)
class BallConfig:
    conf_threshold: float = 0.10
    tag: str = "soccer_ball"
    label_keywords: Tuple[str, ...] = BALL_KEYWORDS
    label_exact: Tuple[str, ...] = BALL_EXACT
    interpolation: str = "linear"

    def __post_init__(self) -> None:
        if not 0.0 <= self.conf_threshold < 1.0:
            raise ValueError("conf_threshold must be in [0, 1)")
        if self.interpolation not in _INTERPOLATIONS:
            raise ValueError(f"interpolation must be one of {_INTERPOLATIONS}")


@dataclass(frozen=True)
class PoseConfig:
    visibility_threshold: float = 0.20
    box_padding: float = 0.05
    interpolation: str = "nearest"

    def __post_init__(self) -> None:
        if not 0.0 <= self.visibility_threshold < 1.0:
            raise ValueError("visibility_threshold must be in [0, 1)")
        if self.box_padding < 0:
            raise ValueError("box_padding must be >= 0")
        if self.interpolation not in _INTERPOLATIONS:
            raise ValueError(f"interpolation must be one of {_INTERPOLATIONS}")


@dataclass(frozen=True)
class RuntimeConfig:
    """
    Engine settings for the load tiers.

    - accelerated_providers: tried first when the caller asks for the accelerator
    - platform_providers: OS-assisted fast path (Android NNAPI, Apple CoreML)
    - num_threads: intra-op threads for the first two tiers; the minimal tier uses 1
    - model_root: base directory for relative model/label paths (None: project root)
    """

    accelerated_providers: Tuple[str, ...] = ("TensorrtExecutionProvider", "CUDAExecutionProvider")
    platform_providers: Tuple[str, ...] = ("NnapiExecutionProvider", "CoreMLExecutionProvider")
    num_threads: int = 4
    model_root: Optional[str] = None

    def __post_init__(self) -> None:
        if self.num_threads < 1:
            raise ValueError("num_threads must be >= 1")


@dataclass(frozen=True)
class PipelineConfig:
    ball: BallConfig = field(default_factory=BallConfig)
    pose: PoseConfig = field(default_factory=PoseConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)


def _require_number(payload: Dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_str_tuple(payload: Dict[str, Any], key: str) -> Tuple[str, ...]:
    value = payload[key]
    if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
        raise ValueError(f"{key} must be a list of non-empty strings")
    return tuple(v.strip() for v in value)


def _section(payload: Dict[str, Any], name: str, allowed: Sequence[str]) -> Dict[str, Any]:
    section = payload.get(name, {})
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' must be a JSON object")
    unknown = sorted(set(section.keys()) - set(allowed))
    if unknown:
        raise ValueError(f"Unknown {name} config keys: {unknown}")
    return section


def _parse_ball(section: Dict[str, Any]) -> BallConfig:
    kwargs: Dict[str, Any] = {}
    if "conf_threshold" in section:
        kwargs["conf_threshold"] = _require_number(section, "conf_threshold")
    if "tag" in section:
        if not isinstance(section["tag"], str) or not section["tag"]:
            raise ValueError("tag must be a non-empty string")
        kwargs["tag"] = section["tag"]
    if "label_keywords" in section:
        kwargs["label_keywords"] = _require_str_tuple(section, "label_keywords")
    if "label_exact" in section:
        kwargs["label_exact"] = _require_str_tuple(section, "label_exact")
    if "interpolation" in section:
        kwargs["interpolation"] = section["interpolation"]
    return BallConfig(**kwargs)


def _parse_pose(section: Dict[str, Any]) -> PoseConfig:
    kwargs: Dict[str, Any] = {}
    for key in ("visibility_threshold", "box_padding"):
        if key in section:
            kwargs[key] = _require_number(section, key)
    if "interpolation" in section:
        kwargs["interpolation"] = section["interpolation"]
    return PoseConfig(**kwargs)


def _parse_runtime(section: Dict[str, Any]) -> RuntimeConfig:
    kwargs: Dict[str, Any] = {}
    for key in ("accelerated_providers", "platform_providers"):
        if key in section:
            kwargs[key] = _require_str_tuple(section, key)
    if "num_threads" in section:
        value = section["num_threads"]
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("num_threads must be an integer")
        kwargs["num_threads"] = value
    if "model_root" in section:
        value = section["model_root"]
        if value is not None and not isinstance(value, str):
            raise ValueError("model_root must be a string or null")
        kwargs["model_root"] = value
    return RuntimeConfig(**kwargs)


def load_pipeline_config(path: Path) -> PipelineConfig:
    """
    Load a JSON pipeline config. Sections (`ball`, `pose`, `runtime`) and keys
    are optional; omitted values keep their defaults, unknown keys are rejected.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid pipeline config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Pipeline config must be a JSON object")

    unknown = sorted(set(payload.keys()) - {"ball", "pose", "runtime"})
    if unknown:
        raise ValueError(f"Unknown pipeline config keys: {unknown}")

    return PipelineConfig(
        ball=_parse_ball(_section(payload, "ball", BallConfig.__dataclass_fields__.keys())),
        pose=_parse_pose(_section(payload, "pose", PoseConfig.__dataclass_fields__.keys())),
        runtime=_parse_runtime(_section(payload, "runtime", RuntimeConfig.__dataclass_fields__.keys())),
    )
