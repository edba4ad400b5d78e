from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from common.logging_setup import get_logger
from common.types import Color
from mapping.coords import TileGrid, TileKey


log = get_logger("mapping.tile_store")

# Size of the blank canvas returned by composite() when nothing was drawn yet.
EMPTY_COMPOSITE_PX = 100

_TILE_NAME = re.compile(r"^tile_(-?\d+)_(-?\d+)\.png$")


def tile_filename(key: TileKey) -> str:
    return f"tile_{key.tile_x}_{key.tile_y}.png"


def parse_tile_filename(name: str) -> Optional[TileKey]:
    """TileKey from an exported file name, or None when the name is not ours."""
    m = _TILE_NAME.match(name)
    if not m:
        return None
    return TileKey(int(m.group(1)), int(m.group(2)))


@dataclass
class ExportResult:
    ok: bool
    directory: Path
    written: List[Path] = field(default_factory=list)
    skipped: List[TileKey] = field(default_factory=list)
    error: Optional[str] = None


class TileStore:
    """
    Unbounded 2D canvas split into S x S BGR tiles that exist only once drawn on.

    World coordinates are pixels of the full map; tile (0,0) covers [0,S) x [0,S)
    and negative coordinates fall into negative tile indices. Every public method
    takes the same lock, so a display/export thread may read while the frame
    worker draws.

    Tiles are never evicted; a long session grows the store without bound.
    """

    def __init__(self, tile_size: int = 256, background: Color = (255, 255, 255)):
        self.grid = TileGrid(tile_size)
        self.background: Color = tuple(int(c) for c in background)  # type: ignore[assignment]
        self._tiles: Dict[TileKey, np.ndarray] = {}
        self._lock = threading.Lock()

    @property
    def tile_size(self) -> int:
        return self.grid.tile_size

    # -------- public API --------

    def ensure_tile(self, key: TileKey) -> bool:
        """Create a background tile at `key` if absent. Returns True if it was created."""
        with self._lock:
            return self._ensure(key)

    def draw_point(
        self,
        world_x: float,
        world_y: float,
        color: Color,
        radius: int = 3,
        outline: Optional[Color] = None,
    ) -> TileKey:
        """
        Filled disk centred on the world point, clipped to that point's tile.
        With `outline`, a 1 px ring is drawn at radius+1. A negative radius is
        treated as 0.
        """
        r = max(0, int(radius))
        with self._lock:
            key, (lx, ly) = self.grid.pixel_of(world_x, world_y)
            self._ensure(key)
            tile = self._tiles[key]
            cv2.circle(tile, (lx, ly), r, color, -1)
            if outline is not None:
                cv2.circle(tile, (lx, ly), r + 1, outline, 1)
            return key

    def draw_line(
        self,
        start: Sequence[float],
        end: Sequence[float],
        color: Color,
        thickness: int = 2,
    ) -> TileKey:
        """
        Segment drawn on the start point's tile only. The end point is taken as
        its local offset inside its own tile, so a segment that crosses a tile
        border is drawn with the wrapped end position, not split across tiles.
        """
        with self._lock:
            key, p0 = self.grid.pixel_of(start[0], start[1])
            _, p1 = self.grid.pixel_of(end[0], end[1])
            self._ensure(key)
            cv2.line(self._tiles[key], p0, p1, color, int(thickness))
            return key

    def paste_image(self, world_x: float, world_y: float, image: np.ndarray) -> Optional[TileKey]:
        """
        Copy a BGR patch with its top-left at the world point. The patch is
        shifted back inside the tile when it would overhang the right/bottom edge
        and cropped when it is larger than the tile.
        """
        if image is None or image.size == 0:
            return None
        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        S = self.tile_size
        with self._lock:
            key, (lx, ly) = self.grid.pixel_of(world_x, world_y)
            self._ensure(key)
            h, w = image.shape[:2]
            px = max(0, min(lx, S - w))
            py = max(0, min(ly, S - h))
            rw = min(w, S - px)
            rh = min(h, S - py)
            if rw <= 0 or rh <= 0:
                return key
            self._tiles[key][py:py + rh, px:px + rw] = image[:rh, :rw]
            return key

    def get_tile(self, key: TileKey) -> Optional[np.ndarray]:
        with self._lock:
            tile = self._tiles.get(key)
            return None if tile is None else tile.copy()

    def tiles(self) -> List[Tuple[TileKey, np.ndarray]]:
        """Copies of every tile, ordered by (tile_x, tile_y)."""
        with self._lock:
            return [(k, self._tiles[k].copy()) for k in sorted(self._tiles)]

    def keys(self) -> List[TileKey]:
        with self._lock:
            return sorted(self._tiles)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tiles)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._tiles

    def bounds(self) -> Optional[Tuple[TileKey, TileKey]]:
        """(min corner, max corner) over all tile keys, or None when empty."""
        with self._lock:
            return self._bounds()

    def composite(self) -> np.ndarray:
        return self.composite_with_origin()[0]

    def composite_with_origin(self) -> Tuple[np.ndarray, Tuple[int, int]]:
        """
        Stitch all tiles into one canvas covering their bounding rectangle.
        Returns the canvas and the world coordinate of its top-left pixel.
        Cells without a tile stay background.
        """
        S = self.tile_size
        with self._lock:
            b = self._bounds()
            if b is None:
                return self._blank(EMPTY_COMPOSITE_PX, EMPTY_COMPOSITE_PX), (0, 0)
            lo, hi = b
            width = (hi.tile_x - lo.tile_x + 1) * S
            height = (hi.tile_y - lo.tile_y + 1) * S
            out = self._blank(height, width)
            for key, tile in self._tiles.items():
                x = (key.tile_x - lo.tile_x) * S
                y = (key.tile_y - lo.tile_y) * S
                out[y:y + S, x:x + S] = tile
            return out, self.grid.tile_origin(lo)

    def export_all(self, directory: str | Path) -> ExportResult:
        """
        Write every tile as tile_{x}_{y}.png. A tile that fails to write is
        logged and listed in `skipped`; only a directory failure aborts the call,
        and it is reported through `ok=False`, not raised.
        """
        out_dir = Path(directory)
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.error("Cannot create export directory", extra={"extra": {"dir": str(out_dir), "err": str(e)}})
            return ExportResult(ok=False, directory=out_dir, error=str(e))

        result = ExportResult(ok=True, directory=out_dir)
        with self._lock:
            for key in sorted(self._tiles):
                path = out_dir / tile_filename(key)
                try:
                    ok = cv2.imwrite(str(path), self._tiles[key])
                except (cv2.error, OSError) as e:
                    log.warning("Tile write failed", extra={"extra": {"tile": str(key), "err": str(e)}})
                    ok = False
                if ok:
                    result.written.append(path)
                else:
                    result.skipped.append(key)
        log.info(
            "Exported tiles",
            extra={"extra": {"dir": str(out_dir), "written": len(result.written), "skipped": len(result.skipped)}},
        )
        return result

    def load_dir(self, directory: str | Path) -> int:
        """
        Re-materialize tiles from a previous export. Files with foreign names,
        unreadable images and images of another tile size are skipped.
        Existing tiles with the same key are replaced. Returns tiles loaded.
        """
        src = Path(directory)
        if not src.is_dir():
            raise FileNotFoundError(f"Tile directory not found: {src}")
        loaded = 0
        for path in sorted(src.glob("tile_*.png")):
            key = parse_tile_filename(path.name)
            if key is None:
                log.warning("Skipping unrecognized tile file", extra={"extra": {"file": path.name}})
                continue
            img = cv2.imread(str(path), cv2.IMREAD_COLOR)
            if img is None or img.shape[:2] != (self.tile_size, self.tile_size):
                log.warning("Skipping unreadable or mis-sized tile", extra={"extra": {"file": path.name}})
                continue
            with self._lock:
                self._tiles[key] = img
            loaded += 1
        return loaded

    def clear(self) -> None:
        with self._lock:
            self._tiles.clear()

    # -------- internals (caller holds the lock) --------

    def _blank(self, height: int, width: int) -> np.ndarray:
        out = np.empty((height, width, 3), dtype=np.uint8)
        out[:] = self.background
        return out

    def _ensure(self, key: TileKey) -> bool:
        if key in self._tiles:
            return False
        self._tiles[key] = self._blank(self.tile_size, self.tile_size)
        log.debug("Tile created", extra={"extra": {"tile": str(key)}})
        return True

    def _bounds(self) -> Optional[Tuple[TileKey, TileKey]]:
        if not self._tiles:
            return None
        xs = [k.tile_x for k in self._tiles]
        ys = [k.tile_y for k in self._tiles]
        return TileKey(min(xs), min(ys)), TileKey(max(xs), max(ys))
