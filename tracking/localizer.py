from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Sequence

from common.config import LocalizationSettings
from common.logging_setup import get_logger
from common.types import Color, Detection, MapPoint, WorldPoint
from mapping.tile_store import TileStore
from tracking.markers import MarkerRegistry, UpdateOutcome
from tracking.trajectory import TrajectoryTracker


log = get_logger("tracking.localizer")


@dataclass
class LocalizerConfig:
    """
    Pose → map transform and jitter thresholds.

    map_scale: map pixels per meter.
    map_origin_x / map_origin_y: map pixel of the camera itself.
    max_valid_depth: detections at or beyond this depth (m) never act as observer proxy.
    movement_threshold: pixels the observer must move before a new trajectory sample.
    hysteresis_distance: pixels a marker must move before its record is overwritten.
    """
    map_scale: float = 300.0
    map_origin_x: float = 300.0
    map_origin_y: float = 300.0
    max_valid_depth: float = 5.0
    movement_threshold: float = 5.0
    hysteresis_distance: float = 8.0

    trajectory_color: Color = (255, 100, 100)
    trajectory_radius: int = 5
    path_color: Color = (0, 200, 0)
    path_thickness: int = 3
    marker_color: Color = (0, 0, 255)
    marker_radius: int = 7
    outline_color: Optional[Color] = (0, 0, 0)

    @classmethod
    def from_settings(cls, s: LocalizationSettings) -> "LocalizerConfig":
        return cls(
            map_scale=s.map_scale,
            map_origin_x=s.map_origin_x,
            map_origin_y=s.map_origin_y,
            max_valid_depth=s.max_valid_depth,
            movement_threshold=s.movement_threshold,
            hysteresis_distance=s.hysteresis_distance,
        )


@dataclass
class FrameResult:
    """What one call to FrameLocalizer.process changed."""
    proxy_id: Optional[int] = None
    position: Optional[MapPoint] = None
    appended: bool = False
    outcomes: Dict[int, UpdateOutcome] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return self.appended or any(o is not UpdateOutcome.UNCHANGED for o in self.outcomes.values())


class FrameLocalizer:
    """
    Turns one frame's detections into trajectory samples, marker records and
    map annotations.

    The nearest valid marker stands in for the observer's position. Every
    detection, valid depth or not, still feeds marker identity tracking.
    Owned by a single frame worker; the registry and tracker are not locked.
    """

    def __init__(
        self,
        store: TileStore,
        config: Optional[LocalizerConfig] = None,
        registry: Optional[MarkerRegistry] = None,
        trajectory: Optional[TrajectoryTracker] = None,
    ):
        self.store = store
        self.config = config or LocalizerConfig()
        self.registry = registry or MarkerRegistry()
        self.trajectory = trajectory or TrajectoryTracker()

    # -------- transforms --------

    def to_map(self, translation: Sequence[float]) -> MapPoint:
        """(x, y, z) meters → integer map pixel; depth grows towards map-up."""
        c = self.config
        x, z = float(translation[0]), float(translation[2])
        return (int(x * c.map_scale + c.map_origin_x), int(-z * c.map_scale + c.map_origin_y))

    @staticmethod
    def to_world(translation: Sequence[float]) -> WorldPoint:
        return (float(translation[0]), -float(translation[2]))

    def select_proxy(self, detections: Iterable[Detection]) -> Optional[Detection]:
        """Nearest detection with 0 < z < max_valid_depth; the first one wins ties."""
        best: Optional[Detection] = None
        for det in detections:
            z = det.depth
            if z <= 0 or z >= self.config.max_valid_depth:
                continue
            if best is None or abs(z) < abs(best.depth):
                best = det
        return best

    # -------- per-frame driver --------

    def process(self, detections: Sequence[Detection]) -> FrameResult:
        res = FrameResult()
        if not detections:
            return res

        c = self.config
        proxy = self.select_proxy(detections)
        if proxy is not None:
            res.proxy_id = proxy.marker_id
            pos = self.to_map(proxy.translation)
            prev = self.trajectory.last()
            if self.trajectory.append_if_far(pos, c.movement_threshold):
                res.appended = True
                res.position = pos
                self.store.draw_point(pos[0], pos[1], c.trajectory_color, c.trajectory_radius, c.outline_color)
                if prev is not None:
                    self.store.draw_line(prev, pos, c.path_color, c.path_thickness)
            else:
                res.position = self.trajectory.last()
        else:
            log.debug(
                "No detection usable as observer proxy",
                extra={"extra": {"detections": [d.to_meta() for d in detections]}},
            )

        for det in detections:
            mp = self.to_map(det.translation)
            outcome = self.registry.upsert(det.marker_id, mp, self.to_world(det.translation), c.hysteresis_distance)
            res.outcomes[det.marker_id] = outcome
            if outcome is UpdateOutcome.UNCHANGED:
                continue
            # Updated markers are redrawn at the new spot; the old disk stays on the tile.
            self.store.draw_point(mp[0], mp[1], c.marker_color, c.marker_radius, c.outline_color)
            if outcome is UpdateOutcome.INSERTED:
                log.info("New marker", extra={"extra": {"id": det.marker_id, "map": list(mp)}})
        return res

    def reset(self) -> None:
        self.registry.reset()
        self.trajectory.reset()
