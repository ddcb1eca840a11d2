from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..types import InputSpec


PathLike = Union[str, Path]

logger = logging.getLogger(__name__)

_ORT_DTYPES: Dict[str, np.dtype] = {
    "tensor(uint8)": np.dtype(np.uint8),
    "tensor(int8)": np.dtype(np.int8),
    "tensor(float)": np.dtype(np.float32),
    "tensor(float16)": np.dtype(np.float16),
}


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    One engine configuration (a load tier).

    - name: tier label used in logs and load results
    - providers: ORT execution providers in priority order; one of them must be
      available and end up as the session's primary provider for the tier to
      count as loaded
    - fallback_providers: appended after `providers` for ops they cannot run
    - num_threads: intra-op thread count
    """

    name: str = "minimal"
    providers: Sequence[str] = ("CPUExecutionProvider",)
    fallback_providers: Sequence[str] = ()
    num_threads: int = 1


def _dim(value: object, fallback: int) -> int:
    return int(value) if isinstance(value, int) else fallback


class OnnxRuntimeBackend:
    """
    Minimal ONNX Runtime backend for NHWC image models.

    Accepts the packed input tensor and returns all outputs as NumPy arrays.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))
        if not cfg.providers:
            raise ValueError("At least one execution provider is required.")

        available = set(ort.get_available_providers())
        wanted = [p for p in cfg.providers if p in available]
        if not wanted:
            raise RuntimeError(
                f"None of the execution providers {list(cfg.providers)} is available (have {sorted(available)})"
            )

        sess_opts = ort.SessionOptions()
        sess_opts.intra_op_num_threads = int(cfg.num_threads)
        providers = wanted + [p for p in cfg.fallback_providers if p in available and p not in wanted]
        self.session: Optional[object] = ort.InferenceSession(
            str(self.model_path), sess_options=sess_opts, providers=providers
        )
        active = tuple(self.session.get_providers())
        if not active or active[0] not in wanted:
            self.session = None
            raise RuntimeError(f"Execution providers {wanted} did not activate (session uses {active})")

        self.cfg = cfg
        inp = self.session.get_inputs()[0]
        self.input_name = inp.name
        self.output_names = [o.name for o in self.session.get_outputs()]
        if inp.type not in _ORT_DTYPES:
            self.close()
            raise ValueError(f"Unsupported model input type {inp.type}")
        shape = list(inp.shape)
        # Dynamic batch is fed one frame at a time; other dynamic dims stay unresolved.
        dims = [_dim(shape[0], 1)] + [_dim(d, -1) for d in shape[1:]]
        self.input_spec = InputSpec(shape=tuple(dims), dtype=_ORT_DTYPES[inp.type])
        self.output_shapes: List[Tuple[object, ...]] = [tuple(o.shape) for o in self.session.get_outputs()]
        logger.debug("ORT session %s: input %s %s, outputs %s", self.model_path.name, dims, inp.type, self.output_shapes)

    @property
    def providers_in_use(self) -> Sequence[str]:
        if self.session is None:
            return ()
        return tuple(self.session.get_providers())

    def infer(self, tensor: np.ndarray) -> List[np.ndarray]:
        if self.session is None:
            raise RuntimeError("ONNX Runtime session is closed.")
        return list(self.session.run(self.output_names, {self.input_name: tensor}))

    def close(self) -> None:
        # Dropping the session releases the execution provider resources with it.
        self.session = None
