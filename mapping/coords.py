from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True, order=True)
class TileKey:
    """Integer index of a square tile; (0,0) covers world [0,S) x [0,S)."""
    tile_x: int
    tile_y: int

    def __str__(self) -> str:
        return f"{self.tile_x}_{self.tile_y}"


# -------------------------
# World <-> tile helpers
# -------------------------
def tile_index_of(world_x: float, world_y: float, tile_size: int) -> TileKey:
    """
    Tile containing the world point. Floor division, so -0.5 lands in tile -1,
    not tile 0.
    """
    return TileKey(int(math.floor(world_x / tile_size)), int(math.floor(world_y / tile_size)))


def local_offset_of(world_x: float, world_y: float, tile_size: int) -> Tuple[float, float]:
    """Offset of the world point inside its tile, normalized into [0, S)."""
    lx = math.fmod(world_x, tile_size)
    ly = math.fmod(world_y, tile_size)
    if lx < 0:
        lx += tile_size
    if ly < 0:
        ly += tile_size
    # A tiny negative remainder plus S rounds to exactly S; keep it inside the tile.
    if lx >= tile_size:
        lx = math.nextafter(tile_size, 0)
    if ly >= tile_size:
        ly = math.nextafter(tile_size, 0)
    return (lx, ly)


def world_of(key: TileKey, local_x: float, local_y: float, tile_size: int) -> Tuple[float, float]:
    """Inverse of (tile_index_of, local_offset_of)."""
    return (key.tile_x * tile_size + local_x, key.tile_y * tile_size + local_y)


@dataclass(frozen=True)
class TileGrid:
    """The helpers above with S bound once. S never changes for a grid."""
    tile_size: int

    def __post_init__(self) -> None:
        if int(self.tile_size) <= 0:
            raise ValueError("tile_size must be > 0")
        object.__setattr__(self, "tile_size", int(self.tile_size))

    def tile_index_of(self, world_x: float, world_y: float) -> TileKey:
        return tile_index_of(world_x, world_y, self.tile_size)

    def local_offset_of(self, world_x: float, world_y: float) -> Tuple[float, float]:
        return local_offset_of(world_x, world_y, self.tile_size)

    def world_of(self, key: TileKey, local_x: float, local_y: float) -> Tuple[float, float]:
        return world_of(key, local_x, local_y, self.tile_size)

    def tile_origin(self, key: TileKey) -> Tuple[int, int]:
        return (key.tile_x * self.tile_size, key.tile_y * self.tile_size)

    def pixel_of(self, world_x: float, world_y: float) -> Tuple[TileKey, Tuple[int, int]]:
        """Tile and integer pixel for a world point; pixels lie in [0, S-1]."""
        key = self.tile_index_of(world_x, world_y)
        lx, ly = self.local_offset_of(world_x, world_y)
        return key, (int(lx), int(ly))
