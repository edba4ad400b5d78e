from __future__ import annotations

import math
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Sequence


def iso_now_ms() -> str:
    """UTC ISO-8601 timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def stamp_now() -> str:
    """Local wall-clock stamp for directory names, e.g. 20260101_120000."""
    return datetime.now().strftime("%Y%m%d_%H%M%S")


@dataclass(slots=True)
class RateTimer:
    """
    Simple rate tracker for loop diagnostics.

    Usage:
        rt = RateTimer(window=30)
        while True:
            # work...
            hz = rt.tick()
    """
    window: int = 30
    _times: Deque[float] = field(default_factory=deque)

    def __post_init__(self) -> None:
        self._times = deque(maxlen=max(2, self.window))

    def tick(self) -> float:
        t = time.perf_counter()
        self._times.append(t)
        if len(self._times) < 2:
            return 0.0
        dt = (self._times[-1] - self._times[0]) / (len(self._times) - 1)
        return 0.0 if dt <= 0 else 1.0 / dt


def distance(p: Sequence[float], q: Sequence[float]) -> float:
    """Euclidean distance between two 2D points."""
    return math.hypot(float(p[0]) - float(q[0]), float(p[1]) - float(q[1]))


def as_color(v, name: str = "color") -> tuple:
    """Validate a 3-channel 0..255 color (list/tuple from YAML) and return an int tuple."""
    if v is None or len(v) != 3:
        raise ValueError(f"{name} must have 3 channels")
    out = tuple(int(c) for c in v)
    if any(c < 0 or c > 255 for c in out):
        raise ValueError(f"{name} channels must be within 0..255")
    return out
