from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass
class LatencyTracker:
    """
    All-time running mean of inference time for one model role.

    No window or decay; `reset()` is called when the role's model is reloaded.
    """

    frame_count: int = 0
    total_ms: float = 0.0

    @property
    def mean_ms(self) -> float:
        if self.frame_count == 0:
            return 0.0
        return self.total_ms / self.frame_count

    def record(self, elapsed_ms: float) -> float:
        if elapsed_ms < 0:
            raise ValueError("elapsed_ms must be >= 0")
        self.frame_count += 1
        self.total_ms += float(elapsed_ms)
        return self.mean_ms

    def reset(self) -> None:
        self.frame_count = 0
        self.total_ms = 0.0

    def snapshot(self) -> Dict[str, float]:
        return {"frameCount": self.frame_count, "totalMs": self.total_ms, "meanMs": self.mean_ms}
