"""
Tracking — marker identity, observer path, per-frame localization

Entry point for callers:
    from tracking import FrameLocalizer
    res = localizer.process(detections)
"""
from .localizer import FrameLocalizer, FrameResult, LocalizerConfig
from .markers import MarkerRecord, MarkerRegistry, UpdateOutcome
from .trajectory import TrajectoryTracker

__all__ = [
    "FrameLocalizer",
    "FrameResult",
    "LocalizerConfig",
    "MarkerRecord",
    "MarkerRegistry",
    "UpdateOutcome",
    "TrajectoryTracker",
]
