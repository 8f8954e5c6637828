from dataclasses import dataclass
from typing import Iterable, Optional

from grocery_optimizer.services.distance.matrix_client import DistanceResult
from grocery_optimizer.services.geo.distance import (
    AVG_SPEED_KMH,
    HasLocation,
    estimate_travel_time,
    point_distance,
)
from grocery_optimizer.services.optimization.types import DISTANCE_FALLBACK, DISTANCE_REAL

_COORD_PRECISION = 6


@dataclass(frozen=True)
class Leg:
    distance_km: float
    travel_time_min: float
    source: str


def _key(point: HasLocation) -> tuple[float, float]:
    return (round(point.lat, _COORD_PRECISION), round(point.lon, _COORD_PRECISION))


class DistanceLookup:
    """Index of provider results by (from, to) coordinates, with haversine for anything missing."""

    def __init__(self, results: Iterable[DistanceResult] = (), speed_kmh: float = AVG_SPEED_KMH) -> None:
        self._speed_kmh = speed_kmh
        self._by_pair: dict[tuple, DistanceResult] = {}
        for result in results:
            self._by_pair[(_key(result.origin), _key(result.destination))] = result

    def __len__(self) -> int:
        return len(self._by_pair)

    def get(self, start: HasLocation, end: HasLocation) -> Optional[DistanceResult]:
        return self._by_pair.get((_key(start), _key(end)))

    def leg(self, start: HasLocation, end: HasLocation) -> Leg:
        result = self.get(start, end)
        if result is not None and result.source == DISTANCE_REAL:
            return Leg(result.distance_km, result.duration_min, DISTANCE_REAL)
        distance_km = point_distance(start, end)
        return Leg(distance_km, estimate_travel_time(distance_km, self._speed_kmh), DISTANCE_FALLBACK)
