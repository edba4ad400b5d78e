"""
Mapping — sparse tile canvas

Provides:
- coords: world point -> (TileKey, local offset) and back, floor-based tiling
- tile_store.TileStore: lazily created S x S tiles behind one lock,
  point/line/image drawing, composite stitching, PNG export/import
- render: overview image (grid, marker labels, path, observer glyph)
"""
from .coords import TileGrid, TileKey
from .tile_store import ExportResult, TileStore

__all__ = ["TileGrid", "TileKey", "TileStore", "ExportResult"]
