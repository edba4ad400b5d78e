from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional

import cv2
import numpy as np

from common.logging_setup import get_logger
from common.types import ImageFrame
from common.utils import iso_now_ms


log = get_logger("capture.camera")


def open_first_device(indices: List[int], width: int = 640, height: int = 480) -> tuple[cv2.VideoCapture, int]:
    """
    Open the first camera index that responds. Raises RuntimeError when none does.
    """
    for idx in indices:
        cap = cv2.VideoCapture(int(idx))
        if cap.isOpened():
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
            log.info("Camera opened", extra={"extra": {"index": idx, "width": width, "height": height}})
            return cap, int(idx)
        cap.release()
        log.warning("Camera index unavailable", extra={"extra": {"index": idx}})
    raise RuntimeError(f"No camera could be opened (tried {list(indices)})")


@dataclass
class CameraFrameSource:
    """
    Frames from a video file or, when `path` is None, a live camera.

    Args:
        path: video file to replay; None selects a device from `device_indices`
        device_indices: camera indices tried in order
        size: requested capture (width, height); files keep their native size
        max_fps: if set, throttles output to this FPS
        max_frames: stop after this many frames (None = until end of stream)
    """
    path: Optional[str] = None
    device_indices: List[int] = field(default_factory=lambda: [0, 1, 2])
    size: tuple[int, int] = (640, 480)
    max_fps: Optional[float] = None
    max_frames: Optional[int] = None

    def _open(self) -> tuple[cv2.VideoCapture, str]:
        if self.path is not None:
            if not Path(self.path).exists():
                raise FileNotFoundError(f"Video not found: {self.path}")
            cap = cv2.VideoCapture(self.path)
            if not cap.isOpened():
                raise RuntimeError(f"Cannot open video: {self.path}")
            return cap, Path(self.path).name
        cap, idx = open_first_device(self.device_indices, *self.size)
        return cap, f"cam{idx}"

    def frames(self) -> Iterator[ImageFrame]:
        cap, name = self._open()
        dt_target = None if not self.max_fps or self.max_fps <= 0 else (1.0 / self.max_fps)
        n = 0
        try:
            while self.max_frames is None or n < self.max_frames:
                t_start = time.perf_counter()
                ok, img = cap.read()
                if not ok or img is None or img.size == 0:
                    break
                H, W = img.shape[:2]
                yield ImageFrame(ts=iso_now_ms(), width=W, height=H, frame=img, source=name, index=n)
                n += 1

                if dt_target:
                    sleep_s = dt_target - (time.perf_counter() - t_start)
                    if sleep_s > 0:
                        time.sleep(sleep_s)
        finally:
            cap.release()
            log.info("Frame source closed", extra={"extra": {"source": name, "frames": n}})


def annotate_frame(img: np.ndarray, text: str) -> np.ndarray:
    """Overlay a status line on a copy of the frame (for preview/debug dumps)."""
    out = img.copy()
    if out.ndim == 2:
        out = cv2.cvtColor(out, cv2.COLOR_GRAY2BGR)
    cv2.rectangle(out, (5, 5), (460, 40), (0, 0, 0), thickness=-1)
    cv2.putText(out, text, (12, 32), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (0, 255, 255), 2, cv2.LINE_AA)
    return out
