from __future__ import annotations

"""
Plain-text session report and the one-shot "save map" action.

Layout of a saved session:
    <root>/map_YYYYmmdd_HHMMSS/
        tile_{x}_{y}.png   (one per materialized tile)
        markers_info.txt   (format_report output)
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from common.logging_setup import get_logger
from common.types import MapPoint
from common.utils import stamp_now
from mapping.tile_store import ExportResult, TileStore
from tracking.localizer import FrameLocalizer
from tracking.markers import MarkerRecord


log = get_logger("tracking.report")

REPORT_NAME = "markers_info.txt"


def format_report(
    markers: Iterable[MarkerRecord],
    trajectory: List[MapPoint],
    meta: Optional[Dict[str, object]] = None,
) -> str:
    markers = list(markers)
    lines = ["Marker report:", "==============", f"Total markers: {len(markers)}"]
    for k, v in (meta or {}).items():
        lines.append(f"{k}: {v}")
    lines.append("")

    for m in markers:
        lines.append(f"ID: {m.marker_id}")
        lines.append(f"Map coordinates: ({m.map_position[0]}, {m.map_position[1]})")
        lines.append(f"World coordinates: ({m.world_position[0]:.3f}, {m.world_position[1]:.3f})")
        lines.append("---")

    lines.append("")
    lines.append("Trajectory:")
    lines.append("===========")
    for i, (x, y) in enumerate(trajectory, start=1):
        lines.append(f"Point {i}: ({x}, {y})")
    return "\n".join(lines) + "\n"


def write_report(
    path: str | Path,
    markers: Iterable[MarkerRecord],
    trajectory: List[MapPoint],
    meta: Optional[Dict[str, object]] = None,
) -> bool:
    """Write the report; a failure is logged and reported as False."""
    p = Path(path)
    try:
        p.write_text(format_report(markers, trajectory, meta), encoding="utf-8")
    except OSError:
        log.exception("Failed to write marker report", extra={"extra": {"path": str(p)}})
        return False
    return True


@dataclass
class SessionResult:
    directory: Path
    tiles: ExportResult
    report_written: bool

    @property
    def ok(self) -> bool:
        return self.tiles.ok and self.report_written


def save_session(
    root: str | Path,
    store: TileStore,
    localizer: FrameLocalizer,
    meta: Optional[Dict[str, object]] = None,
    *,
    name: Optional[str] = None,
) -> SessionResult:
    """Export tiles and the marker report into a fresh timestamped directory under `root`."""
    out_dir = Path(root) / (name or f"map_{stamp_now()}")
    tiles = store.export_all(out_dir)
    if not tiles.ok:
        return SessionResult(directory=out_dir, tiles=tiles, report_written=False)

    written = write_report(
        out_dir / REPORT_NAME,
        localizer.registry.all(),
        localizer.trajectory.samples(),
        meta,
    )
    log.info(
        "Map saved",
        extra={"extra": {
            "dir": str(out_dir),
            "tiles": len(tiles.written),
            "skipped": len(tiles.skipped),
            "markers": len(localizer.registry),
            "samples": len(localizer.trajectory),
            "path_px": round(localizer.trajectory.path_length(), 1),
        }},
    )
    return SessionResult(directory=out_dir, tiles=tiles, report_written=written)
