from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np


IsoTime = str
# Integer pixel position on the map canvas (world coordinates floored to pixels).
MapPoint = Tuple[int, int]
# Floating-point position in the shared metric space (meters on the floor plane).
WorldPoint = Tuple[float, float]
Color = Tuple[int, int, int]


def _as_float_tuple(x) -> Tuple[float, float, float]:
    return (float(x[0]), float(x[1]), float(x[2]))


@dataclass(slots=True)
class ImageFrame:
    """
    A single camera image handed to the marker detector.

    Attributes:
        ts: ISO-8601 (UTC) timestamp string.
        width, height: image dimensions in pixels.
        frame: np.ndarray of shape (H,W) or (H,W,3), dtype uint8 (BGR).
        source: logical name of the producing device or file.
        index: running frame counter assigned by the source.
    """
    ts: IsoTime
    width: int
    height: int
    frame: np.ndarray
    source: str = "cam0"
    index: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.frame, np.ndarray):
            raise TypeError("frame must be a numpy ndarray")
        if self.frame.ndim not in (2, 3):
            raise ValueError("frame must be 2D (gray) or 3D (BGR)")
        if self.frame.shape[0] != self.height or self.frame.shape[1] != self.width:
            raise ValueError("width/height do not match frame shape")
        if self.frame.dtype != np.uint8:
            self.frame = self.frame.astype(np.uint8, copy=False)

    def to_meta(self) -> Dict[str, Any]:
        """Metadata without image bytes (safe to log/serialize)."""
        return {
            "ts": self.ts,
            "width": self.width,
            "height": self.height,
            "channels": None if self.frame.ndim == 2 else self.frame.shape[2],
            "source": self.source,
            "index": self.index,
        }


@dataclass(slots=True)
class Detection:
    """
    One fiducial marker seen in one frame, as reported by the pose estimator.

    Attributes:
        marker_id: dictionary id decoded from the marker pattern.
        translation: (x, y, z) of the marker relative to the camera, meters.
            x is lateral, y vertical, z depth along the optical axis.
        corners: 4x2 float32 image corners in detector order, if available.
        rotation: Rodrigues vector from the estimator; carried but never interpreted.
    """
    marker_id: int
    translation: Tuple[float, float, float]
    corners: Optional[np.ndarray] = None
    rotation: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        self.marker_id = int(self.marker_id)
        if len(self.translation) != 3:
            raise ValueError("translation must have 3 components")
        self.translation = _as_float_tuple(self.translation)
        if self.corners is not None:
            c = np.asarray(self.corners, dtype=np.float32).reshape(-1, 2)
            if c.shape != (4, 2):
                raise ValueError("corners must be 4 image points")
            self.corners = c

    @property
    def depth(self) -> float:
        return self.translation[2]

    def to_meta(self) -> Dict[str, Any]:
        x, y, z = self.translation
        return {"id": self.marker_id, "x": round(x, 4), "y": round(y, 4), "z": round(z, 4)}
