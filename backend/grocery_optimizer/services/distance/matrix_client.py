"""
Google Distance Matrix client with automatic haversine fallback.

Provider trouble (no key, network error, quota, bad status, ZERO_RESULTS) never raises:
the affected pairs get an estimated element tagged source=fallback with the reason attached.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from grocery_optimizer.config import settings
from grocery_optimizer.logging import get_logger
from grocery_optimizer.services.geo.distance import (
    GeoPoint,
    HasLocation,
    estimate_travel_time,
    point_distance,
)
from grocery_optimizer.services.optimization.types import DISTANCE_FALLBACK, DISTANCE_REAL

logger = get_logger(__name__)

STATUS_OK = "ok"
STATUS_ZERO_RESULTS = "zero_results"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class DistanceResult:
    origin: GeoPoint
    destination: GeoPoint
    distance_meters: int
    duration_seconds: int
    distance_text: str
    duration_text: str
    source: str  # real | fallback
    status: str  # ok | zero_results | error
    error_message: Optional[str] = None

    @property
    def distance_km(self) -> float:
        return self.distance_meters / 1000

    @property
    def duration_min(self) -> float:
        return self.duration_seconds / 60


@dataclass(frozen=True)
class _Batch:
    origin_start: int
    origin_count: int
    dest_start: int
    dest_count: int

    @property
    def elements(self) -> int:
        return self.origin_count * self.dest_count


def fallback_result(
    origin: GeoPoint,
    destination: GeoPoint,
    status: str = STATUS_ERROR,
    error_message: Optional[str] = None,
    speed_kmh: Optional[float] = None,
) -> DistanceResult:
    distance_km = point_distance(origin, destination)
    duration_min = estimate_travel_time(distance_km, speed_kmh or settings.average_speed_kmh)
    return DistanceResult(
        origin=origin,
        destination=destination,
        distance_meters=round(distance_km * 1000),
        duration_seconds=round(duration_min * 60),
        distance_text=f"{distance_km:.1f} km",
        duration_text=f"{round(duration_min)} mins",
        source=DISTANCE_FALLBACK,
        status=status,
        error_message=error_message,
    )


def plan_batches(
    origin_count: int,
    dest_count: int,
    max_origins: int,
    max_destinations: int,
    max_elements: int,
) -> list[_Batch]:
    """Split an origins x destinations matrix into requests that stay inside the provider limits."""
    origin_step = max(1, min(max_origins, max_elements))
    batches: list[_Batch] = []
    for i in range(0, origin_count, origin_step):
        o_count = min(origin_step, origin_count - i)
        dest_step = max(1, min(max_destinations, max_elements // o_count))
        for j in range(0, dest_count, dest_step):
            batches.append(_Batch(i, o_count, j, min(dest_step, dest_count - j)))
    return batches


def _format_latlng(point: GeoPoint) -> str:
    return f"{point.lat},{point.lon}"


def _as_points(points: Sequence[HasLocation]) -> list[GeoPoint]:
    return [GeoPoint(p.lat, p.lon) for p in points]


class DistanceMatrixClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_origins: Optional[int] = None,
        max_destinations: Optional[int] = None,
        max_elements: Optional[int] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self._api_key = settings.google_maps_api_key if api_key is None else api_key
        self._base_url = base_url or settings.distance_matrix_url
        self._timeout = timeout or settings.distance_timeout_s
        self._max_origins = max_origins or settings.distance_max_origins
        self._max_destinations = max_destinations or settings.distance_max_destinations
        self._max_elements = max_elements or settings.distance_max_elements
        self._max_workers = max_workers or settings.distance_max_workers

    @property
    def configured(self) -> bool:
        return bool((self._api_key or "").strip())

    def get_distance_matrix(
        self,
        origins: Sequence[HasLocation],
        destinations: Sequence[HasLocation],
        mode: Optional[str] = None,
    ) -> list[DistanceResult]:
        """Return one result per (origin, destination) pair, row-major."""
        origin_points = _as_points(origins)
        dest_points = _as_points(destinations)
        if not origin_points or not dest_points:
            return []
        mode = mode or settings.distance_mode
        total = len(origin_points) * len(dest_points)

        if not self.configured:
            logger.warning("distance_matrix.no_api_key pairs=%s using fallback", total)
            return [
                fallback_result(o, d, STATUS_ERROR, "API key not configured")
                for o in origin_points
                for d in dest_points
            ]

        batches = plan_batches(
            len(origin_points),
            len(dest_points),
            self._max_origins,
            self._max_destinations,
            self._max_elements,
        )
        logger.info(
            "distance_matrix.start origins=%s destinations=%s elements=%s batches=%s mode=%s",
            len(origin_points),
            len(dest_points),
            total,
            len(batches),
            mode,
        )
        workers = max(1, min(self._max_workers, len(batches)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            batch_results = list(
                pool.map(lambda b: self._run_batch(origin_points, dest_points, b, mode), batches)
            )

        grid: dict[tuple[int, int], DistanceResult] = {}
        for cells in batch_results:
            grid.update(cells)
        results = [
            grid[(i, j)] for i in range(len(origin_points)) for j in range(len(dest_points))
        ]
        real = sum(1 for r in results if r.source == DISTANCE_REAL)
        logger.info("distance_matrix.end real=%s fallback=%s", real, len(results) - real)
        return results

    def get_distances_from_origin(
        self, origin: HasLocation, destinations: Sequence[HasLocation], mode: Optional[str] = None
    ) -> list[DistanceResult]:
        return self.get_distance_matrix([origin], destinations, mode)

    def get_route_distances(
        self, origin: HasLocation, stops: Sequence[HasLocation], mode: Optional[str] = None
    ) -> list[DistanceResult]:
        """Only the legs actually driven: origin -> first stop, then stop -> next stop."""
        points = _as_points([origin, *stops])
        legs = list(zip(points, points[1:]))
        if not legs:
            return []
        workers = max(1, min(self._max_workers, len(legs)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            per_leg = list(pool.map(lambda leg: self.get_distance_matrix([leg[0]], [leg[1]], mode), legs))
        return [cells[0] for cells in per_leg]

    def _run_batch(
        self,
        origins: list[GeoPoint],
        destinations: list[GeoPoint],
        batch: _Batch,
        mode: str,
    ) -> dict[tuple[int, int], DistanceResult]:
        batch_origins = origins[batch.origin_start:batch.origin_start + batch.origin_count]
        batch_dests = destinations[batch.dest_start:batch.dest_start + batch.dest_count]
        data, error = self._fetch(batch_origins, batch_dests, mode)

        cells: dict[tuple[int, int], DistanceResult] = {}
        if data is None:
            logger.warning(
                "distance_matrix.batch_failed pairs=%s reason=%s using fallback",
                batch.elements,
                error,
            )
            for bi, origin in enumerate(batch_origins):
                for bj, dest in enumerate(batch_dests):
                    cells[(batch.origin_start + bi, batch.dest_start + bj)] = fallback_result(
                        origin, dest, STATUS_ERROR, error
                    )
            return cells

        rows = data.get("rows") or []
        for bi, origin in enumerate(batch_origins):
            row = rows[bi] if bi < len(rows) else None
            elements = (row or {}).get("elements") or []
            for bj, dest in enumerate(batch_dests):
                key = (batch.origin_start + bi, batch.dest_start + bj)
                if row is None:
                    cells[key] = fallback_result(origin, dest, STATUS_ERROR, "Missing row in API response")
                    continue
                element = elements[bj] if bj < len(elements) else None
                cells[key] = self._parse_element(origin, dest, element)
        return cells

    def _parse_element(self, origin: GeoPoint, dest: GeoPoint, element: Optional[dict]) -> DistanceResult:
        if not element:
            return fallback_result(origin, dest, STATUS_ERROR, "Missing element in API response")
        status = element.get("status")
        distance = element.get("distance") or {}
        duration = element.get("duration") or {}
        if status == "OK" and "value" in distance and "value" in duration:
            return DistanceResult(
                origin=origin,
                destination=dest,
                distance_meters=int(distance["value"]),
                duration_seconds=int(duration["value"]),
                distance_text=distance.get("text", ""),
                duration_text=duration.get("text", ""),
                source=DISTANCE_REAL,
                status=STATUS_OK,
            )
        if status == "ZERO_RESULTS":
            return fallback_result(origin, dest, STATUS_ZERO_RESULTS, "No route found by provider")
        return fallback_result(origin, dest, STATUS_ERROR, f"Element status: {status}")

    def _fetch(
        self, origins: list[GeoPoint], destinations: list[GeoPoint], mode: str
    ) -> tuple[Optional[dict], Optional[str]]:
        params = {
            "origins": "|".join(_format_latlng(p) for p in origins),
            "destinations": "|".join(_format_latlng(p) for p in destinations),
            "key": self._api_key,
            "mode": mode,
            "units": settings.distance_units,
        }
        try:
            resp = httpx.get(
                self._base_url,
                params=params,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            return None, f"Distance Matrix request failed: {e.__class__.__name__}"
        if resp.status_code != 200:
            return None, f"Distance Matrix HTTP error: {resp.status_code}"
        try:
            data = resp.json()
        except ValueError:
            return None, "Distance Matrix returned invalid JSON"
        status = data.get("status")
        if status != "OK":
            detail = data.get("error_message")
            return None, f"Distance Matrix API error: {status}" + (f" - {detail}" if detail else "")
        return data, None


distance_matrix_client = DistanceMatrixClient()
