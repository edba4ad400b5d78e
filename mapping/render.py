from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

import cv2
import numpy as np

from common.types import Color, MapPoint
from mapping.tile_store import TileStore


GRID_COLOR: Color = (200, 200, 200)
MARKER_COLOR: Color = (0, 0, 255)
PATH_COLOR: Color = (0, 200, 0)
OBSERVER_COLOR: Color = (255, 100, 100)
INK: Color = (0, 0, 0)


def draw_grid(img: np.ndarray, spacing: int = 50, color: Color = GRID_COLOR) -> np.ndarray:
    """Thin reference grid every `spacing` pixels, drawn in place."""
    if spacing <= 0:
        return img
    h, w = img.shape[:2]
    for x in range(0, w, spacing):
        cv2.line(img, (x, 0), (x, h), color, 1)
    for y in range(0, h, spacing):
        cv2.line(img, (0, y), (w, y), color, 1)
    return img


def draw_observer(img: np.ndarray, p: Tuple[int, int], color: Color = OBSERVER_COLOR) -> None:
    """Upward triangle at the current observer position."""
    x, y = p
    tri = np.array([[x, y - 10], [x - 8, y + 8], [x + 8, y + 8]], dtype=np.int32)
    cv2.fillConvexPoly(img, tri, color)
    cv2.polylines(img, [tri], True, INK, 2)


def render_overview(
    store: TileStore,
    markers: Iterable,
    trajectory: Sequence[MapPoint],
    *,
    grid_px: int = 50,
) -> np.ndarray:
    """
    Display image of the whole map: stitched tiles, grid, marker labels, the
    full path and the observer glyph. The store itself is not modified.
    """
    img, (ox, oy) = store.composite_with_origin()
    draw_grid(img, grid_px)

    def rel(p) -> Tuple[int, int]:
        return (int(p[0] - ox), int(p[1] - oy))

    for m in markers:
        c = rel(m.map_position)
        cv2.circle(img, c, 10, MARKER_COLOR, -1)
        cv2.circle(img, c, 12, INK, 2)
        cv2.putText(img, str(m.marker_id), (c[0] + 15, c[1] - 15),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.7, INK, 2, cv2.LINE_AA)

    pts: List[Tuple[int, int]] = [rel(p) for p in trajectory]
    if len(pts) > 1:
        cv2.polylines(img, [np.array(pts, dtype=np.int32)], False, PATH_COLOR, 3)
    if pts:
        draw_observer(img, pts[-1])
    return img
