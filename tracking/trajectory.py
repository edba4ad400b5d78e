from __future__ import annotations

from typing import List, Optional

from common.types import MapPoint
from common.utils import distance


class TrajectoryTracker:
    """Append-only observer path in map pixels; near-duplicate samples are dropped."""

    def __init__(self) -> None:
        self._samples: List[MapPoint] = []

    def append_if_far(self, point: MapPoint, min_movement: float) -> bool:
        """Append when empty or farther than `min_movement` from the last sample."""
        p = (int(point[0]), int(point[1]))
        if self._samples and distance(self._samples[-1], p) <= min_movement:
            return False
        self._samples.append(p)
        return True

    def samples(self) -> List[MapPoint]:
        return list(self._samples)

    def last(self) -> Optional[MapPoint]:
        return self._samples[-1] if self._samples else None

    def path_length(self) -> float:
        return sum(distance(a, b) for a, b in zip(self._samples, self._samples[1:]))

    def __len__(self) -> int:
        return len(self._samples)

    def reset(self) -> None:
        self._samples.clear()
