from __future__ import annotations

from typing import List, Optional, Sequence

import cv2
import numpy as np

from common.config import CameraSettings
from common.logging_setup import get_logger
from common.types import Detection, ImageFrame


log = get_logger("capture.detector")


def camera_matrix(fx: float, fy: float, cx: float, cy: float) -> np.ndarray:
    return np.array([[fx, 0.0, cx], [0.0, fy, cy], [0.0, 0.0, 1.0]], dtype=np.float64)


def marker_object_points(length_m: float) -> np.ndarray:
    """Marker corners in the marker frame, in the order SOLVEPNP_IPPE_SQUARE expects."""
    h = length_m / 2.0
    return np.array([[-h, h, 0.0], [h, h, 0.0], [h, -h, 0.0], [-h, -h, 0.0]], dtype=np.float32)


class ArucoDetector:
    """
    ArUco detection plus single-marker pose, producing `Detection`s.

    Pose is solved per marker with IPPE_SQUARE against the configured edge
    length; translation is in meters in the camera frame (z forward).
    """

    def __init__(self, settings: Optional[CameraSettings] = None):
        s = settings or CameraSettings()
        dict_id = getattr(cv2.aruco, s.dictionary, None)
        if dict_id is None:
            raise ValueError(f"Unknown ArUco dictionary: {s.dictionary}")
        self.dictionary = cv2.aruco.getPredefinedDictionary(dict_id)
        params = cv2.aruco.DetectorParameters()
        params.cornerRefinementMethod = cv2.aruco.CORNER_REFINE_SUBPIX
        self._detector = cv2.aruco.ArucoDetector(self.dictionary, params)
        self.K = camera_matrix(s.fx, s.fy, s.cx, s.cy)
        self.D = np.asarray(s.dist, dtype=np.float64).reshape(1, -1)
        self.marker_length = float(s.marker_length_m)
        self._obj = marker_object_points(self.marker_length)

    def detect(self, image: ImageFrame | np.ndarray) -> List[Detection]:
        img = image.frame if isinstance(image, ImageFrame) else image
        gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY) if img.ndim == 3 else img
        corners, ids, _rejected = self._detector.detectMarkers(gray)
        if ids is None or len(ids) == 0:
            return []

        out: List[Detection] = []
        for c, mid in zip(corners, ids.ravel()):
            pts = np.asarray(c, dtype=np.float32).reshape(4, 2)
            ok, rvec, tvec = cv2.solvePnP(self._obj, pts, self.K, self.D, flags=cv2.SOLVEPNP_IPPE_SQUARE)
            if not ok:
                log.debug("Pose solve failed", extra={"extra": {"id": int(mid)}})
                continue
            out.append(Detection(marker_id=int(mid), translation=tvec.ravel(), corners=pts, rotation=rvec.ravel()))
        return out


def annotate_detections(img: np.ndarray, detections: Sequence[Detection]) -> np.ndarray:
    """Outline, corner dots and id label for each detection on a copy of `img`."""
    out = img.copy()
    if out.ndim == 2:
        out = cv2.cvtColor(out, cv2.COLOR_GRAY2BGR)
    for det in detections:
        if det.corners is None:
            continue
        pts = det.corners.astype(np.int32)
        cv2.polylines(out, [pts], True, (0, 255, 0), 2)
        for p in pts:
            cv2.circle(out, (int(p[0]), int(p[1])), 4, (0, 0, 255), -1)
        cx, cy = det.corners.mean(axis=0)
        cv2.putText(out, str(det.marker_id), (int(cx), int(cy) - 20),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 0, 0), 2)
    return out
