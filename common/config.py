from __future__ import annotations

"""
YAML-backed settings for the mapper.

A missing file yields the built-in defaults; unknown keys are ignored so one
params.yaml can be shared between deployments with different tile sizes.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from common.utils import as_color


DEFAULT_CONFIG_PATH = "config/params.yaml"


@dataclass
class LoggingSettings:
    level: str = "INFO"
    format: str = "json"
    file: Optional[str] = None


@dataclass
class MapSettings:
    tile_size: int = 256
    background: Tuple[int, int, int] = (255, 255, 255)
    grid_px: int = 50

    def __post_init__(self) -> None:
        self.tile_size = int(self.tile_size)
        if self.tile_size <= 0:
            raise ValueError("map.tile_size must be > 0")
        self.background = as_color(self.background, "map.background")
        self.grid_px = int(self.grid_px)


@dataclass
class LocalizationSettings:
    map_scale: float = 300.0
    map_origin_x: float = 300.0
    map_origin_y: float = 300.0
    max_valid_depth: float = 5.0
    movement_threshold: float = 5.0
    hysteresis_distance: float = 8.0

    def __post_init__(self) -> None:
        for name in ("map_scale", "map_origin_x", "map_origin_y",
                     "max_valid_depth", "movement_threshold", "hysteresis_distance"):
            setattr(self, name, float(getattr(self, name)))
        if self.map_scale <= 0:
            raise ValueError("localization.map_scale must be > 0")
        if self.movement_threshold < 0 or self.hysteresis_distance < 0:
            raise ValueError("localization thresholds must be >= 0")


@dataclass
class CameraSettings:
    """Intrinsics and marker geometry; only the pose estimator reads these."""
    fx: float = 800.0
    fy: float = 800.0
    cx: float = 320.0
    cy: float = 240.0
    dist: List[float] = field(default_factory=lambda: [0.05, -0.1, 0.001, 0.001, 0.0])
    marker_length_m: float = 0.15
    dictionary: str = "DICT_4X4_100"

    def __post_init__(self) -> None:
        if float(self.marker_length_m) <= 0:
            raise ValueError("camera.marker_length_m must be > 0")
        self.dist = [float(d) for d in self.dist]


@dataclass
class CaptureSettings:
    device_indices: List[int] = field(default_factory=lambda: [0, 1, 2])
    width: int = 640
    height: int = 480
    fps: float = 30.0


@dataclass
class ExportSettings:
    root_dir: str = "maps"
    autosave_s: float = 0.0


@dataclass
class AppConfig:
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    map: MapSettings = field(default_factory=MapSettings)
    localization: LocalizationSettings = field(default_factory=LocalizationSettings)
    camera: CameraSettings = field(default_factory=CameraSettings)
    capture: CaptureSettings = field(default_factory=CaptureSettings)
    export: ExportSettings = field(default_factory=ExportSettings)


_SECTIONS = {
    "logging": LoggingSettings,
    "map": MapSettings,
    "localization": LocalizationSettings,
    "camera": CameraSettings,
    "capture": CaptureSettings,
    "export": ExportSettings,
}


def _section(cls, raw: Any):
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ValueError(f"config section for {cls.__name__} must be a mapping")
    known = set(cls.__dataclass_fields__)
    return cls(**{k: v for k, v in raw.items() if k in known})


def config_from_dict(raw: Optional[Dict]) -> AppConfig:
    raw = raw or {}
    return AppConfig(**{name: _section(cls, raw.get(name)) for name, cls in _SECTIONS.items()})


def load_config(path: str = DEFAULT_CONFIG_PATH) -> AppConfig:
    if not Path(path).exists():
        return AppConfig()
    with open(path, "r") as f:
        return config_from_dict(yaml.safe_load(f))
