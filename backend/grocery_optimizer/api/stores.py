"""Store listing, optionally filtered to a radius around a point."""

from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from grocery_optimizer.logging import get_logger
from grocery_optimizer.schemas.trip import StoreListItem, StoreListResponse
from grocery_optimizer.services.geo.distance import GeoPoint, point_distance
from grocery_optimizer.services.optimization.errors import InvalidRequest
from grocery_optimizer.storage import db
from grocery_optimizer.storage.repositories import SqlCatalog

router = APIRouter()
logger = get_logger(__name__)

DEFAULT_LIST_RADIUS_KM = 50.0


def _location(lat: Optional[float], lon: Optional[float]) -> Optional[GeoPoint]:
    if lat is None and lon is None:
        return None
    if lat is None or lon is None:
        raise InvalidRequest("lat and lon must be supplied together", field="lat" if lat is None else "lon")
    if not -90 <= lat <= 90:
        raise InvalidRequest("lat must be between -90 and 90", field="lat")
    if not -180 <= lon <= 180:
        raise InvalidRequest("lon must be between -180 and 180", field="lon")
    return GeoPoint(lat=lat, lon=lon)


@router.get("/stores", response_model=StoreListResponse)
def list_stores(
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    radius_km: Optional[float] = Query(default=None, alias="radiusKm"),
    chain: Optional[str] = None,
):
    """
    All stores, or those within radiusKm (default 50) of lat/lon sorted nearest first.
    chain filters to one chain, case-insensitive.
    """
    try:
        point = _location(lat, lon)
        if radius_km is not None and radius_km <= 0:
            raise InvalidRequest("radiusKm must be a positive number", field="radiusKm")
    except InvalidRequest as e:
        return JSONResponse(e.to_payload(), status_code=e.status_code)

    chains = [chain.strip()] if chain and chain.strip() else None
    with db.get_session() as session:
        stores = SqlCatalog(session).find_stores(include_chains=chains)

    if point is None:
        items = [
            StoreListItem(id=s.id, name=s.name, chain=s.chain, address=s.address, lat=s.lat, lon=s.lon)
            for s in stores
        ]
        return StoreListResponse(stores=items)

    radius = DEFAULT_LIST_RADIUS_KM if radius_km is None else radius_km
    with_distance = [(point_distance(point, s), s) for s in stores]
    nearby = sorted(((d, s) for d, s in with_distance if d <= radius), key=lambda pair: (pair[0], pair[1].id))
    logger.info("stores.list lat=%s lon=%s radius_km=%s found=%s", lat, lon, radius, len(nearby))
    return StoreListResponse(
        stores=[
            StoreListItem(
                id=s.id,
                name=s.name,
                chain=s.chain,
                address=s.address,
                lat=s.lat,
                lon=s.lon,
                distance_km=round(d, 2),
            )
            for d, s in nearby
        ]
    )
