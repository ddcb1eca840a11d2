"""
Model loading with ordered fallback tiers, and the owning handle type.

A tier is one engine configuration. `load_model` walks the tiers lazily and
keeps the first one that opens; the resulting `ModelHandle` is the only owner
of the engine session and its execution-provider state, and `close()` releases
them exactly once.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, Union

import numpy as np

from .backends.onnxruntime_backend import OnnxRuntimeBackendConfig
from .config import RuntimeConfig
from .errors import InferenceError, ModelConfigurationError, ModelLoadError, ModelNotLoadedError
from .tensor import validate_input_spec


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
# (model_path, tier) -> backend exposing `input_spec`, `output_shapes`, `infer(tensor)`, `close()`
EngineFactory = Callable[[Path, OnnxRuntimeBackendConfig], object]

CPU_PROVIDER = "CPUExecutionProvider"


def default_engine_factory(model_path: Path, cfg: OnnxRuntimeBackendConfig) -> object:
    from .backends.onnxruntime_backend import OnnxRuntimeBackend

    return OnnxRuntimeBackend(model_path, cfg)


def build_load_tiers(use_accelerator: bool, runtime: RuntimeConfig = RuntimeConfig()) -> List[OnnxRuntimeBackendConfig]:
    """
    accelerated (only if requested) -> platform-assisted -> minimal single-thread CPU.
    """

    tiers: List[OnnxRuntimeBackendConfig] = []
    if use_accelerator:
        tiers.append(
            OnnxRuntimeBackendConfig(
                name="accelerated",
                providers=tuple(runtime.accelerated_providers),
                fallback_providers=(CPU_PROVIDER,),
                num_threads=runtime.num_threads,
            )
        )
    tiers.append(
        OnnxRuntimeBackendConfig(
            name="platform",
            providers=tuple(runtime.platform_providers),
            fallback_providers=(CPU_PROVIDER,),
            num_threads=runtime.num_threads,
        )
    )
    tiers.append(OnnxRuntimeBackendConfig(name="minimal", providers=(CPU_PROVIDER,), num_threads=1))
    return tiers


class ModelHandle:
    """
    Loaded model plus its declared I/O contract.

    Use as a context manager or call `close()`; closing twice is a no-op and
    any `infer` after close raises ModelNotLoadedError.
    """

    def __init__(self, backend: object, tier: str, model_path: Optional[Path] = None):
        self._backend: Optional[object] = backend
        self.tier = tier
        self.model_path = model_path
        self.input_spec = backend.input_spec
        self.output_shapes: List[Tuple[object, ...]] = [tuple(s) for s in backend.output_shapes]

    @property
    def loaded(self) -> bool:
        return self._backend is not None

    def infer(self, tensor: np.ndarray) -> List[np.ndarray]:
        backend = self._backend
        if backend is None:
            raise ModelNotLoadedError("Model not loaded")
        try:
            outputs = backend.infer(tensor)
        except Exception as e:
            raise InferenceError(f"Inference failed: {e}") from e
        return [np.asarray(o) for o in outputs]

    def close(self) -> None:
        backend, self._backend = self._backend, None
        if backend is None:
            return
        backend.close()
        logger.info("Released model %s (%s tier)", self.model_path, self.tier)

    def __enter__(self) -> "ModelHandle":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def load_model(
    model_path: PathLike,
    tiers: Iterable[OnnxRuntimeBackendConfig],
    engine_factory: Optional[EngineFactory] = None,
    validate: Optional[Callable[[ModelHandle], None]] = None,
) -> ModelHandle:
    """
    Open `model_path` with the first tier that succeeds.

    Tier failures are logged and the next tier is tried. A contract mismatch
    (ModelConfigurationError from input validation or `validate`) is not a tier
    failure: the handle is closed and the error raised at once, since another
    engine configuration would load the same model.
    """

    path = Path(model_path)
    if not path.exists():
        raise FileNotFoundError(f"Model file not found: {path}")
    factory = engine_factory or default_engine_factory

    failures: List[Tuple[str, BaseException]] = []
    for tier in tiers:
        try:
            backend = factory(path, tier)
        except Exception as e:
            logger.warning("Loading %s with %s tier failed: %s", path.name, tier.name, e)
            failures.append((tier.name, e))
            continue

        handle = ModelHandle(backend, tier=tier.name, model_path=path)
        try:
            validate_input_spec(handle.input_spec)
            if validate is not None:
                validate(handle)
        except ModelConfigurationError:
            handle.close()
            raise
        logger.info(
            "Loaded %s with %s tier: input %s %s, outputs %s",
            path.name,
            tier.name,
            tuple(handle.input_spec.shape),
            np.dtype(handle.input_spec.dtype),
            handle.output_shapes,
        )
        return handle

    summary = "; ".join(f"{name}: {err}" for name, err in failures) or "no load tiers given"
    raise ModelLoadError(f"Could not load {path.name} ({summary})", failures)
