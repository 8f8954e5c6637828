from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from grocery_optimizer.services.optimization.types import StrategyMode


class CamelModel(BaseModel):
    # Wire format is camelCase (rawQuery, maxStores); Python code uses snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False)


# --- request ---


class OriginIn(CamelModel):
    lat: Optional[float] = None
    lon: Optional[float] = None
    zip: Optional[str] = None


class ItemConstraints(CamelModel):
    brand_strict: Optional[bool] = None
    allow_substitutions: Optional[bool] = None


class TripItemIn(CamelModel):
    raw_query: str = ""
    quantity: Optional[float] = None  # defaults to 1
    constraints: Optional[ItemConstraints] = None


class TripPreferences(CamelModel):
    max_stores: Optional[int] = None
    max_radius_km: Optional[float] = None
    strategy: StrategyMode = StrategyMode.ALL
    include_chains: Optional[list[str]] = None  # e.g. ["WALMART", "TARGET"]
    exclude_chains: Optional[list[str]] = None


class TripRequest(CamelModel):
    origin: Optional[OriginIn] = None
    items: list[TripItemIn] = []
    preferences: Optional[TripPreferences] = None


# --- response ---


class OriginOut(CamelModel):
    lat: float
    lon: float
    zip: Optional[str] = None


class MatchedProductOut(CamelModel):
    id: int
    name: str
    brand: Optional[str] = None
    category: Optional[str] = None


class TripItemOut(CamelModel):
    id: Optional[int] = None
    raw_query: str
    quantity: float
    matched_product: Optional[MatchedProductOut] = None
    match_score: Optional[float] = None


class StoreOut(CamelModel):
    id: int
    name: str
    chain: str
    address: str
    lat: float
    lon: float


class PlanItemOut(CamelModel):
    product_id: int
    product_name: str
    quantity: float
    unit_price: float
    line_total: float


class PlanStoreOut(CamelModel):
    store: StoreOut
    order_index: int
    distance_from_prev_km: float
    travel_time_from_prev_min: int
    distance_source: str
    items: list[PlanItemOut] = []


class PlanResponse(CamelModel):
    id: Optional[int] = None
    label: str
    strategy: str
    total_price: float
    total_distance_km: float
    total_travel_time_min: int
    estimated_instore_time_min: int
    estimated_total_time_min: int
    savings_vs_walmart: Optional[float] = None  # None when the chain cannot supply the whole list
    savings_vs_target: Optional[float] = None
    savings_vs_costco: Optional[float] = None
    distance_source: str
    stores: list[PlanStoreOut] = []


class TripResponse(CamelModel):
    trip_id: int
    origin: OriginOut
    items: list[TripItemOut] = []
    plans: list[PlanResponse] = []
    distance_source: str  # real | fallback | mixed
    baselines: dict[str, Optional[float]] = {}  # chain -> single-chain total
    created_at: Optional[datetime] = None


class StoreListItem(StoreOut):
    distance_km: Optional[float] = None


class StoreListResponse(CamelModel):
    stores: list[StoreListItem] = []


class ProductOut(CamelModel):
    id: int
    name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    size_value: Optional[float] = None
    size_unit: Optional[str] = None


class ProductSearchResponse(CamelModel):
    products: list[ProductOut] = []
