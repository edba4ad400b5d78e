from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from common.types import MapPoint, WorldPoint
from common.utils import distance


class UpdateOutcome(Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(slots=True)
class MarkerRecord:
    """
    Last accepted position of one physical marker.

    Attributes:
        marker_id: detector id; one record per id for the whole session.
        map_position: integer map pixel where the marker is annotated.
        world_position: (x, -z) in meters on the floor plane.
        last_update_distance: map-pixel jump that caused the latest overwrite.
        observations: frames in which the id was seen, accepted or not.
    """
    marker_id: int
    map_position: MapPoint
    world_position: WorldPoint
    last_update_distance: float = 0.0
    observations: int = 1


class MarkerRegistry:
    """
    Distinct markers seen so far, in order of first sighting.

    A known marker only moves when the new map position is more than
    `hysteresis_distance` pixels away from the stored one, which keeps a static
    marker from jittering with per-frame pose noise.
    """

    def __init__(self) -> None:
        self._records: Dict[int, MarkerRecord] = {}

    def upsert(
        self,
        marker_id: int,
        map_position: MapPoint,
        world_position: WorldPoint,
        hysteresis_distance: float,
    ) -> UpdateOutcome:
        mid = int(marker_id)
        rec = self._records.get(mid)
        if rec is None:
            self._records[mid] = MarkerRecord(
                marker_id=mid,
                map_position=(int(map_position[0]), int(map_position[1])),
                world_position=(float(world_position[0]), float(world_position[1])),
            )
            return UpdateOutcome.INSERTED

        rec.observations += 1
        d = distance(rec.map_position, map_position)
        if d > hysteresis_distance:
            rec.map_position = (int(map_position[0]), int(map_position[1]))
            rec.world_position = (float(world_position[0]), float(world_position[1]))
            rec.last_update_distance = d
            return UpdateOutcome.UPDATED
        return UpdateOutcome.UNCHANGED

    def get(self, marker_id: int) -> Optional[MarkerRecord]:
        return self._records.get(int(marker_id))

    def all(self) -> List[MarkerRecord]:
        return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, marker_id: object) -> bool:
        return marker_id in self._records

    def reset(self) -> None:
        self._records.clear()
