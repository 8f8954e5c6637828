"""
Geographic helpers for distance, travel time and visit order.
Pure functions: anything with .lat/.lon attributes can be passed as a point.
"""

import math
from dataclasses import dataclass
from typing import Protocol, Sequence, TypeVar

EARTH_RADIUS_KM = 6371.0
AVG_SPEED_KMH = 30.0
INSTORE_BASE_MIN = 5.0  # park, enter, checkout
INSTORE_PER_ITEM_MIN = 1.5  # find and grab one item


class HasLocation(Protocol):
    lat: float
    lon: float


P = TypeVar("P", bound=HasLocation)


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def point_distance(a: HasLocation, b: HasLocation) -> float:
    return haversine_distance(a.lat, a.lon, b.lat, b.lon)


def estimate_travel_time(distance_km: float, speed_kmh: float = AVG_SPEED_KMH) -> float:
    """Minutes of urban driving at a flat average speed (traffic and lights included)."""
    return distance_km / speed_kmh * 60


def estimate_instore_time(
    item_count: int,
    base_min: float = INSTORE_BASE_MIN,
    per_item_min: float = INSTORE_PER_ITEM_MIN,
) -> float:
    return base_min + item_count * per_item_min


def nearest_neighbor_order(origin: HasLocation, stores: Sequence[P]) -> list[P]:
    """
    Greedy visit order: from the current position always go to the closest unvisited store.
    On equal distance the store that comes first in the input wins.
    """
    remaining = list(stores)
    ordered: list[P] = []
    current: HasLocation = origin
    while remaining:
        nearest_index = 0
        nearest_distance = math.inf
        for i, store in enumerate(remaining):
            dist = point_distance(current, store)
            if dist < nearest_distance:
                nearest_distance = dist
                nearest_index = i
        current = remaining.pop(nearest_index)
        ordered.append(current)
    return ordered


def calculate_route_distance(origin: HasLocation, ordered_stores: Sequence[HasLocation]) -> float:
    total = 0.0
    previous = origin
    for store in ordered_stores:
        total += point_distance(previous, store)
        previous = store
    return total
