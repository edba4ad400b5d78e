"""
Unit tests for ArUco detection adapter, frame sources and the service loop
"""

import json
import logging
import os
import sys

import cv2
import numpy as np
import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from capture.camera import CameraFrameSource, annotate_frame
from capture.detector import ArucoDetector, annotate_detections, marker_object_points
from capture.service import build_pipeline, run, write_overview
from common.config import AppConfig
from common.logging_setup import JsonFormatter
from common.types import Detection, ImageFrame


def _marker_scene(marker_id=7, side=200):
    dictionary = cv2.aruco.getPredefinedDictionary(cv2.aruco.DICT_4X4_100)
    marker = cv2.aruco.generateImageMarker(dictionary, marker_id, side)
    scene = np.full((480, 640), 255, dtype=np.uint8)
    y0, x0 = (480 - side) // 2, (640 - side) // 2
    scene[y0:y0 + side, x0:x0 + side] = marker
    return cv2.cvtColor(scene, cv2.COLOR_GRAY2BGR)


class TestArucoDetector:
    """Detection + pose against a synthetic marker"""

    def test_detects_marker_in_front_of_camera(self):
        """Test detection and pose of a marker placed in front of the camera"""
        img = _marker_scene(7)
        frame = ImageFrame(ts="2026-01-01T00:00:00.000Z", width=640, height=480, frame=img)
        dets = ArucoDetector().detect(frame)
        assert [d.marker_id for d in dets] == [7]
        d = dets[0]
        assert d.corners.shape == (4, 2)
        # 0.15 m marker imaged at ~200 px with f=800 sits roughly 0.6 m away
        assert 0.3 < d.depth < 1.2
        assert abs(d.translation[0]) < 0.1

    def test_blank_frame_has_no_detections(self):
        """Test that a blank frame yields no detections"""
        assert ArucoDetector().detect(np.full((480, 640, 3), 255, np.uint8)) == []

    def test_unknown_dictionary(self):
        """Test rejection of an unknown ArUco dictionary name"""
        from common.config import CameraSettings
        with pytest.raises(ValueError):
            ArucoDetector(CameraSettings(dictionary="DICT_NOPE"))

    def test_object_points_square(self):
        """Test marker object points form a centred square"""
        pts = marker_object_points(0.2)
        assert pts.shape == (4, 3)
        assert np.allclose(np.abs(pts[:, :2]), 0.1)

    def test_annotate_detections_draws_on_copy(self):
        """Test detection overlay is drawn on a copy of the frame"""
        img = np.full((100, 100, 3), 255, np.uint8)
        corners = np.array([[20, 20], [80, 20], [80, 80], [20, 80]], np.float32)
        det = Detection(marker_id=3, translation=(0.0, 0.0, 1.0), corners=corners)
        out = annotate_detections(img, [det])
        assert (img == 255).all()
        assert tuple(out[50, 20]) == (0, 255, 0)
        assert tuple(out[20, 20]) == (0, 0, 255)


class TestCamera:
    """Frame sources"""

    def test_missing_video(self, tmp_path):
        """Test missing video file raises FileNotFoundError"""
        src = CameraFrameSource(path=str(tmp_path / "none.mp4"))
        with pytest.raises(FileNotFoundError):
            next(src.frames())

    def test_frame_meta_has_no_pixels(self):
        """Test that frame metadata carries shape and origin but not the image"""
        frame = ImageFrame(ts="t0", width=6, height=4, frame=np.zeros((4, 6), np.uint8), source="vid", index=12)
        assert frame.to_meta() == {
            "ts": "t0", "width": 6, "height": 4, "channels": None, "source": "vid", "index": 12,
        }

    def test_annotate_frame_gray_input(self):
        """Test frame annotation converts grayscale input to BGR"""
        out = annotate_frame(np.zeros((60, 480), np.uint8), "hello")
        assert out.shape == (60, 480, 3)


class _ScriptedDetector:
    def __init__(self, script):
        self.script = list(script)

    def detect(self, frame):
        return self.script.pop(0)


class TestServiceLoop:
    """Capture → detect → localize wiring"""

    def _frames(self, n):
        for i in range(n):
            yield ImageFrame(ts="t", width=8, height=8, frame=np.zeros((8, 8, 3), np.uint8), index=i)

    def test_run_feeds_localizer(self, tmp_path):
        """Test service loop feeds detections to the localizer and writes debug frames"""
        store, loc = build_pipeline(AppConfig())
        script = [
            [Detection(marker_id=1, translation=(0.0, 0.0, 0.5))],
            [],
            [Detection(marker_id=1, translation=(0.0, 0.0, 0.25)),
             Detection(marker_id=2, translation=(0.1, 0.0, 0.8))],
        ]
        n = run(self._frames(3), _ScriptedDetector(script), loc, debug_dir=tmp_path, log_every=0)
        assert n == 3
        assert loc.trajectory.samples() == [(300, 150), (300, 225)]
        assert [m.marker_id for m in loc.registry.all()] == [1, 2]
        assert sorted(p.name for p in tmp_path.iterdir()) == ["frame_000000.png", "frame_000002.png"]

    def test_run_logs_frame_meta_for_changed_frames(self, caplog):
        """Test that only frames that change the map are logged, with frame metadata"""
        _, loc = build_pipeline(AppConfig())
        script = [
            [Detection(marker_id=1, translation=(0.0, 0.0, 0.5))],
            [Detection(marker_id=1, translation=(0.001, 0.0, 0.5))],
        ]
        with caplog.at_level(logging.DEBUG, logger="capture.service"):
            run(self._frames(2), _ScriptedDetector(script), loc, log_every=0)
        recs = [r for r in caplog.records if r.getMessage() == "Map updated"]
        assert len(recs) == 1
        assert recs[0].extra["frame"] == {
            "ts": "t", "width": 8, "height": 8, "channels": 3, "source": "cam0", "index": 0,
        }
        assert recs[0].extra["position"] == (300, 150)

    def test_write_overview(self, tmp_path):
        """Test overview image is written under a new directory"""
        store, loc = build_pipeline(AppConfig())
        loc.process([Detection(marker_id=1, translation=(0.0, 0.0, 0.5))])
        path = tmp_path / "sub" / "overview.png"
        assert write_overview(path, store, loc, 50) is True
        assert cv2.imread(str(path)) is not None


class TestJsonFormatter:
    """Structured log lines"""

    def test_extra_and_level(self):
        """Test JSON log line carries level, logger name and extra fields"""
        rec = logging.LogRecord("mapping.tile_store", logging.WARNING, __file__, 1, "Tile write failed", None, None)
        rec.extra = {"tile": "1_0"}
        payload = json.loads(JsonFormatter().format(rec))
        assert payload["lvl"] == "WARNING"
        assert payload["name"] == "mapping.tile_store"
        assert payload["msg"] == "Tile write failed"
        assert payload["extra"] == {"tile": "1_0"}
