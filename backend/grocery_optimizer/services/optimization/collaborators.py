"""
Narrow interfaces the optimizer talks to. The SQL implementations live in
grocery_optimizer.storage.repositories; tests can pass in-memory fakes.
"""

from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from grocery_optimizer.services.distance.matrix_client import DistanceResult
from grocery_optimizer.services.geo.distance import HasLocation
from grocery_optimizer.services.optimization.types import (
    ItemAssignment,
    MatchedItem,
    Origin,
    PlanResult,
    PriceEntry,
    Product,
    ShoppingItem,
    Store,
    StoreVisit,
    TripSettings,
)


class StoreDirectory(Protocol):
    def find_stores(
        self,
        include_chains: Optional[Sequence[str]] = None,
        exclude_chains: Optional[Sequence[str]] = None,
    ) -> List[Store]: ...


class ProductCatalog(Protocol):
    def search_products_by_name(self, pattern: str, limit: Optional[int] = None) -> List[Product]: ...

    def get_products_by_category(self, category: str, limit: Optional[int] = None) -> List[Product]: ...


class PriceStore(Protocol):
    def get_prices(self, product_ids: Iterable[int], store_ids: Iterable[int]) -> List[PriceEntry]: ...

    def get_min_price_across_stores(self, product_ids: Iterable[int]) -> Dict[int, float]: ...


class TripStore(Protocol):
    def create_trip(self, origin: Origin, trip_settings: TripSettings, user_id: Optional[str] = None) -> int: ...

    def create_trip_items(
        self, trip_id: int, matched: Sequence[MatchedItem], unmatched: Sequence[ShoppingItem]
    ) -> List[int]: ...

    def save_plan(
        self,
        trip_id: int,
        plan: PlanResult,
        savings: Dict[str, Optional[float]],
        baselines: Dict[str, Optional[float]],
    ) -> int: ...

    def save_store_visits(self, plan_id: int, visits: Sequence[StoreVisit]) -> None: ...

    def save_item_assignments(self, plan_id: int, assignments: Sequence[ItemAssignment]) -> None: ...

    def get_trip(self, trip_id: int) -> Optional[dict]:
        """Saved trip in TripResponse shape (snake_case keys), or None."""
        ...


class DistanceProvider(Protocol):
    def get_distance_matrix(
        self,
        origins: Sequence[HasLocation],
        destinations: Sequence[HasLocation],
        mode: Optional[str] = None,
    ) -> List[DistanceResult]: ...


class AnalyticsSink(Protocol):
    def record(self, trip_id: int, item_count: int, selected_strategy: str) -> None: ...
