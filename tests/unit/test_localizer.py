"""
Unit tests for the per-frame localizer
"""

import logging
import os
import sys

import numpy as np
import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.config import LocalizationSettings
from common.types import Detection
from mapping.coords import TileKey
from mapping.tile_store import TileStore
from tracking.localizer import FrameLocalizer, LocalizerConfig
from tracking.markers import UpdateOutcome


def _det(mid, x, z, y=0.0):
    return Detection(marker_id=mid, translation=(x, y, z))


@pytest.fixture
def localizer():
    return FrameLocalizer(TileStore(256), LocalizerConfig())


class TestTransforms:
    """Pose -> map coordinates"""

    def test_to_map_scenario(self, localizer):
        """Test pose to map pixel transform"""
        assert localizer.to_map((0.5, 0.0, 1.0)) == (450, 0)
        assert localizer.to_map((0.6, 0.0, 1.0)) == (480, 0)

    def test_to_world_inverts_depth(self, localizer):
        """Test world position uses negated depth"""
        assert localizer.to_world((0.5, 0.2, 1.5)) == (0.5, -1.5)

    def test_from_settings(self):
        """Test localizer config built from localization settings"""
        cfg = LocalizerConfig.from_settings(LocalizationSettings(map_scale=100, hysteresis_distance=2))
        assert cfg.map_scale == 100.0
        assert cfg.hysteresis_distance == 2.0
        assert cfg.movement_threshold == 5.0


class TestProxySelection:
    """Nearest valid marker stands in for the observer"""

    def test_nearest_positive_depth(self, localizer):
        """Test nearest detection with positive depth is chosen"""
        dets = [_det(1, 0.0, 2.0), _det(2, 0.0, 0.8), _det(3, 0.0, 1.2)]
        assert localizer.select_proxy(dets).marker_id == 2

    def test_excludes_non_positive_and_too_deep(self, localizer):
        """Test non-positive and too-deep detections are never chosen"""
        dets = [_det(1, 0.0, -0.5), _det(2, 0.0, 0.0), _det(3, 0.0, 5.0), _det(4, 0.0, 7.0)]
        assert localizer.select_proxy(dets) is None

    def test_first_wins_ties(self, localizer):
        """Test first detection wins a depth tie"""
        dets = [_det(1, 0.1, 1.0), _det(2, 0.2, 1.0)]
        assert localizer.select_proxy(dets).marker_id == 1


class TestProcess:
    """Per-frame state changes"""

    def test_empty_batch_changes_nothing(self, localizer):
        """Test empty detection batch changes nothing"""
        res = localizer.process([])
        assert res.changed is False
        assert len(localizer.registry) == 0
        assert len(localizer.trajectory) == 0
        assert len(localizer.store) == 0

    def test_hysteresis_scenario(self, localizer):
        """Test marker position only moves past the hysteresis distance"""
        assert localizer.process([_det(7, 0.5, 1.0)]).outcomes[7] is UpdateOutcome.INSERTED
        assert localizer.process([_det(7, 0.51, 1.0)]).outcomes[7] is UpdateOutcome.UNCHANGED
        assert localizer.registry.get(7).map_position == (450, 0)
        assert localizer.process([_det(7, 0.6, 1.0)]).outcomes[7] is UpdateOutcome.UPDATED
        rec = localizer.registry.get(7)
        assert rec.map_position == (480, 0)
        assert rec.world_position == pytest.approx((0.6, -1.0))

    def test_first_frame_starts_trajectory_and_annotates(self, localizer):
        """Test first frame starts the trajectory and draws the marker"""
        res = localizer.process([_det(7, 0.5, 1.0)])
        assert res.appended
        assert res.proxy_id == 7
        assert res.position == (450, 0)
        assert localizer.trajectory.samples() == [(450, 0)]
        tile = localizer.store.get_tile(TileKey(1, 0))
        # marker disk is drawn after the trajectory point
        assert tuple(tile[0, 450 - 256]) == localizer.config.marker_color

    def test_trajectory_segment_drawn_between_samples(self):
        """Test path segment drawn between consecutive samples"""
        store = TileStore(600)
        loc = FrameLocalizer(store, LocalizerConfig())
        loc.process([_det(1, 0.0, 0.5)])     # (300, 150)
        res = loc.process([_det(1, 0.0, 0.25)])  # (300, 225)
        assert res.appended
        assert loc.trajectory.samples() == [(300, 150), (300, 225)]
        tile = store.get_tile(TileKey(0, 0))
        assert tuple(tile[190, 300]) == loc.config.path_color

    def test_small_observer_motion_not_sampled(self, localizer):
        """Test small observer motion adds no trajectory sample"""
        localizer.process([_det(1, 0.0, 0.5)])
        res = localizer.process([_det(1, 0.005, 0.5)])  # 1.5 px
        assert res.appended is False
        assert res.position == (300, 150)
        assert len(localizer.trajectory) == 1

    def test_changed_reflects_new_marker_or_sample(self, localizer):
        """Test changed flag follows new markers and samples"""
        assert localizer.process([_det(1, 0.0, 0.5)]).changed is True
        assert localizer.process([_det(1, 0.001, 0.5)]).changed is False

    def test_no_proxy_logs_detection_meta(self, localizer, caplog):
        """Test frame without an observer proxy logs detection metadata"""
        with caplog.at_level(logging.DEBUG, logger="tracking.localizer"):
            localizer.process([_det(4, 0.25, -1.0)])
        recs = [r for r in caplog.records if r.getMessage() == "No detection usable as observer proxy"]
        assert len(recs) == 1
        assert recs[0].extra == {"detections": [{"id": 4, "x": 0.25, "y": 0.0, "z": -1.0}]}

    def test_invalid_depth_still_tracked_as_marker(self, localizer):
        """Test detections with invalid depth are still registered"""
        res = localizer.process([_det(4, 0.0, -1.0), _det(5, 0.0, 9.0)])
        assert res.proxy_id is None
        assert res.appended is False
        assert len(localizer.trajectory) == 0
        assert res.outcomes == {4: UpdateOutcome.INSERTED, 5: UpdateOutcome.INSERTED}
        assert localizer.registry.get(5).map_position == (300, -2400)

    def test_all_detections_registered_not_only_proxy(self, localizer):
        """Test every detection is registered, not only the proxy"""
        res = localizer.process([_det(1, 0.0, 1.0), _det(2, 0.3, 0.4)])
        assert res.proxy_id == 2
        assert [r.marker_id for r in localizer.registry.all()] == [1, 2]

    def test_updated_marker_redrawn_at_new_spot(self):
        """Test updated marker is redrawn at its new position"""
        store = TileStore(600)
        loc = FrameLocalizer(store, LocalizerConfig(max_valid_depth=0.1))
        loc.process([_det(3, 0.0, 0.5)])   # (300, 150)
        loc.process([_det(3, 0.2, 0.5)])   # (360, 150)
        tile = store.get_tile(TileKey(0, 0))
        assert tuple(tile[150, 360]) == loc.config.marker_color
        # old disk is not erased
        assert tuple(tile[150, 300]) == loc.config.marker_color

    def test_reset_keeps_tiles(self, localizer):
        """Test reset clears tracking state but keeps tiles"""
        localizer.process([_det(1, 0.0, 1.0)])
        localizer.reset()
        assert len(localizer.registry) == 0
        assert len(localizer.trajectory) == 0
        assert len(localizer.store) > 0


class TestDetectionType:
    """Input validation on Detection"""

    def test_translation_coerced_to_floats(self):
        """Test translation and id are coerced to plain Python types"""
        d = Detection(marker_id=np.int32(3), translation=np.array([1, 2, 3]))
        assert d.marker_id == 3
        assert d.translation == (1.0, 2.0, 3.0)
        assert d.depth == 3.0

    def test_to_meta_rounds_translation(self):
        """Test detection metadata rounds the translation"""
        d = Detection(marker_id=9, translation=(0.123456, -0.5, 1.99999))
        assert d.to_meta() == {"id": 9, "x": 0.1235, "y": -0.5, "z": 2.0}

    def test_bad_translation(self):
        """Test translation with the wrong length is rejected"""
        with pytest.raises(ValueError):
            Detection(marker_id=1, translation=(1.0, 2.0))

    def test_bad_corners(self):
        """Test corners that are not four points are rejected"""
        with pytest.raises(ValueError):
            Detection(marker_id=1, translation=(0.0, 0.0, 1.0), corners=np.zeros((3, 2)))
