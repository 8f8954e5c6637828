from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Strategy(str, Enum):
    CHEAPEST = "CHEAPEST"
    FASTEST = "FASTEST"
    BALANCED = "BALANCED"


class StrategyMode(str, Enum):
    ALL = "ALL"
    CHEAPEST = "CHEAPEST"
    FASTEST = "FASTEST"
    BALANCED = "BALANCED"

    def strategies(self) -> List[Strategy]:
        if self is StrategyMode.ALL:
            return list(Strategy)
        return [Strategy(self.value)]


DISTANCE_REAL = "real"
DISTANCE_FALLBACK = "fallback"
DISTANCE_MIXED = "mixed"


@dataclass(frozen=True)
class Origin:
    lat: float
    lon: float
    zip: Optional[str] = None


@dataclass(frozen=True)
class Store:
    id: int
    name: str
    chain: str
    lat: float
    lon: float
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None

    @property
    def address(self) -> str:
        parts = [self.address_line1, self.city, self.state, self.postal_code]
        return ", ".join(p for p in parts if p)


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    size_value: Optional[float] = None
    size_unit: Optional[str] = None
    upc: Optional[str] = None


@dataclass(frozen=True)
class PriceEntry:
    store_id: int
    product_id: int
    price: float
    in_stock: bool


@dataclass(frozen=True)
class PriceQuote:
    price: float
    in_stock: bool


# (store_id, product_id) -> quote; a missing key means the store does not sell the product
PriceMap = Dict[Tuple[int, int], PriceQuote]


@dataclass(frozen=True)
class ShoppingItem:
    raw_query: str
    quantity: float = 1
    constraints: Optional[dict] = None


@dataclass(frozen=True)
class MatchedItem:
    raw_query: str
    quantity: float
    product: Product
    match_score: float
    trip_item_id: Optional[int] = None


@dataclass(frozen=True)
class ItemAssignment:
    item: MatchedItem
    product_id: int
    store_id: int
    unit_price: float
    quantity: float

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class StoreVisit:
    store: Store
    order_index: int
    distance_from_prev_km: float
    travel_time_from_prev_min: float
    item_count: int
    distance_source: str = DISTANCE_FALLBACK


@dataclass(frozen=True)
class PlanResult:
    label: str
    strategy: Strategy
    total_price: float
    total_distance_km: float
    total_travel_time_min: int
    estimated_instore_time_min: int
    estimated_total_time_min: int
    visits: List[StoreVisit] = field(default_factory=list)
    assignments: List[ItemAssignment] = field(default_factory=list)

    @property
    def distance_source(self) -> str:
        return combine_distance_sources(v.distance_source for v in self.visits)


@dataclass(frozen=True)
class TripSettings:
    max_stores: int
    radius_km: float
    strategy: StrategyMode
    include_chains: List[str] = field(default_factory=list)
    exclude_chains: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "max_stores": self.max_stores,
            "radius_km": self.radius_km,
            "strategy": self.strategy.value,
            "include_chains": list(self.include_chains),
            "exclude_chains": list(self.exclude_chains),
        }


def combine_distance_sources(sources) -> str:
    seen = set(sources)
    if seen == {DISTANCE_REAL}:
        return DISTANCE_REAL
    if seen == {DISTANCE_FALLBACK} or not seen:
        return DISTANCE_FALLBACK
    return DISTANCE_MIXED
