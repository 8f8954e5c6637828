"""
Trip optimizer: stores -> distances -> matching -> prices -> strategies -> persistence -> response.

The optimizer only talks to the collaborators it is given. Persistence is flushed, not
committed; the caller owns the unit of work and commits once optimize_trip returns.
"""

import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from grocery_optimizer.config import Settings, settings as default_settings
from grocery_optimizer.logging import get_logger
from grocery_optimizer.schemas.trip import (
    MatchedProductOut,
    OriginOut,
    PlanItemOut,
    PlanResponse,
    PlanStoreOut,
    StoreOut,
    TripItemOut,
    TripPreferences,
    TripRequest,
    TripResponse,
)
from grocery_optimizer.services.distance.lookup import DistanceLookup
from grocery_optimizer.services.geo.distance import point_distance
from grocery_optimizer.services.matching.product_matcher import ProductMatcher
from grocery_optimizer.services.optimization.collaborators import (
    DistanceProvider,
    PriceStore,
    ProductCatalog,
    StoreDirectory,
    TripStore,
)
from grocery_optimizer.services.optimization.errors import (
    InvalidRequest,
    NoPlansGenerated,
    NoProductsMatched,
    NoStoresFound,
    TripNotFound,
)
from grocery_optimizer.services.optimization.prices import get_prices_for_products
from grocery_optimizer.services.optimization.strategies import (
    STRATEGIES,
    StrategyInput,
    StrategyTuning,
    calculate_single_chain_total,
)
from grocery_optimizer.services.optimization.types import (
    MatchedItem,
    Origin,
    PlanResult,
    ShoppingItem,
    Store,
    TripSettings,
    combine_distance_sources,
)
from grocery_optimizer.utils.timing import time_span

logger = get_logger(__name__)


def savings_vs_baselines(plan: PlanResult, baselines: Dict[str, Optional[float]]) -> Dict[str, Optional[float]]:
    return {
        chain: round(total - plan.total_price, 2) if total is not None else None
        for chain, total in baselines.items()
    }


def plan_to_response(
    plan_id: Optional[int], plan: PlanResult, savings: Dict[str, Optional[float]]
) -> PlanResponse:
    stores = []
    for visit in plan.visits:
        store = visit.store
        items = [
            PlanItemOut(
                product_id=a.product_id,
                product_name=a.item.product.name,
                quantity=a.quantity,
                unit_price=a.unit_price,
                line_total=round(a.line_total, 2),
            )
            for a in plan.assignments
            if a.store_id == store.id
        ]
        stores.append(
            PlanStoreOut(
                store=StoreOut(
                    id=store.id,
                    name=store.name,
                    chain=store.chain,
                    address=store.address,
                    lat=store.lat,
                    lon=store.lon,
                ),
                order_index=visit.order_index,
                distance_from_prev_km=visit.distance_from_prev_km,
                travel_time_from_prev_min=visit.travel_time_from_prev_min,
                distance_source=visit.distance_source,
                items=items,
            )
        )
    return PlanResponse(
        id=plan_id,
        label=plan.label,
        strategy=plan.strategy.value,
        total_price=plan.total_price,
        total_distance_km=plan.total_distance_km,
        total_travel_time_min=plan.total_travel_time_min,
        estimated_instore_time_min=plan.estimated_instore_time_min,
        estimated_total_time_min=plan.estimated_total_time_min,
        savings_vs_walmart=savings.get("WALMART"),
        savings_vs_target=savings.get("TARGET"),
        savings_vs_costco=savings.get("COSTCO"),
        distance_source=plan.distance_source,
        stores=stores,
    )


def _item_out(item_id: Optional[int], raw_query: str, quantity: float, matched: Optional[MatchedItem]) -> TripItemOut:
    product = matched.product if matched else None
    return TripItemOut(
        id=item_id,
        raw_query=raw_query,
        quantity=quantity,
        matched_product=MatchedProductOut(
            id=product.id, name=product.name, brand=product.brand, category=product.category
        )
        if product
        else None,
        match_score=matched.match_score if matched else None,
    )


class TripOptimizer:
    def __init__(
        self,
        stores: StoreDirectory,
        catalog: ProductCatalog,
        prices: PriceStore,
        trips: TripStore,
        distances: DistanceProvider,
        config: Settings = default_settings,
    ) -> None:
        self._stores = stores
        self._prices = prices
        self._trips = trips
        self._distances = distances
        self._config = config
        self._matcher = ProductMatcher(catalog, prices)

    def optimize_trip(self, request: TripRequest, user_id: Optional[str] = None) -> TripResponse:
        origin, items, trip_settings = self.validate_request(request)
        with time_span("trip.optimize.total", items=len(items), strategy=trip_settings.strategy.value):
            logger.info(
                "trip.optimize.start lat=%s lon=%s items=%s radius_km=%s max_stores=%s strategy=%s",
                origin.lat,
                origin.lon,
                len(items),
                trip_settings.radius_km,
                trip_settings.max_stores,
                trip_settings.strategy.value,
            )

            stores = self.find_nearby_stores(origin, trip_settings)
            if not stores:
                raise NoStoresFound(f"No stores found within {trip_settings.radius_km:g} km of the origin")

            distances = self.fetch_distance_data(origin, stores)

            with time_span("trip.match", items=len(items)):
                match = self._matcher.match_products(items)
            if not match.matched:
                raise NoProductsMatched("Could not match any items to products in our catalog")

            prices = get_prices_for_products(
                self._prices,
                [m.product.id for m in match.matched],
                [s.id for s in stores],
            )

            trip_id = self._trips.create_trip(origin, trip_settings, user_id)
            item_ids = self._trips.create_trip_items(trip_id, match.matched, match.unmatched)
            matched = [replace(m, trip_item_id=item_ids[i]) for i, m in enumerate(match.matched)]

            strategy_input = StrategyInput(
                origin=origin,
                items=matched,
                stores=stores,
                prices=prices,
                max_stores=trip_settings.max_stores,
                distances=distances,
                tuning=StrategyTuning.from_settings(self._config),
            )
            plans: List[PlanResult] = []
            for strategy in trip_settings.strategy.strategies():
                plan = STRATEGIES[strategy](strategy_input)
                if plan is None:
                    logger.info("trip.strategy.no_plan trip_id=%s strategy=%s", trip_id, strategy.value)
                    continue
                plans.append(plan)
            if not plans:
                raise NoPlansGenerated("Could not generate any valid trip plans")

            baselines = {
                chain.upper(): calculate_single_chain_total(chain, matched, stores, prices)
                for chain in self._config.baseline_chains
            }

            plan_responses = []
            for plan in plans:
                savings = savings_vs_baselines(plan, baselines)
                plan_id = self._trips.save_plan(trip_id, plan, savings, baselines)
                self._trips.save_store_visits(plan_id, plan.visits)
                self._trips.save_item_assignments(plan_id, plan.assignments)
                plan_responses.append(plan_to_response(plan_id, plan, savings))

            unmatched_ids = item_ids[len(matched):]
            items_out = [_item_out(m.trip_item_id, m.raw_query, m.quantity, m) for m in matched] + [
                _item_out(unmatched_ids[i], u.raw_query, u.quantity, None)
                for i, u in enumerate(match.unmatched)
            ]
            distance_source = combine_distance_sources(
                visit.distance_source for plan in plans for visit in plan.visits
            )
            logger.info(
                "trip.optimize.end trip_id=%s plans=%s matched=%s unmatched=%s distance_source=%s",
                trip_id,
                len(plans),
                len(matched),
                len(match.unmatched),
                distance_source,
            )
            return TripResponse(
                trip_id=trip_id,
                origin=OriginOut(lat=origin.lat, lon=origin.lon, zip=origin.zip),
                items=items_out,
                plans=plan_responses,
                distance_source=distance_source,
                baselines=baselines,
            )

    def validate_request(self, request: TripRequest) -> tuple[Origin, List[ShoppingItem], TripSettings]:
        origin = request.origin
        if origin is None or origin.lat is None or origin.lon is None:
            raise InvalidRequest("Origin latitude and longitude are required", field="origin")
        if not -90 <= origin.lat <= 90:
            raise InvalidRequest("Origin latitude must be between -90 and 90", field="origin.lat")
        if not -180 <= origin.lon <= 180:
            raise InvalidRequest("Origin longitude must be between -180 and 180", field="origin.lon")

        if not request.items:
            raise InvalidRequest("At least one item is required", field="items")
        items: List[ShoppingItem] = []
        for i, item in enumerate(request.items):
            raw_query = (item.raw_query or "").strip()
            if not raw_query:
                raise InvalidRequest(f"Item at index {i} must have a rawQuery string", field=f"items[{i}].rawQuery")
            quantity = 1 if item.quantity is None else item.quantity
            if not math.isfinite(quantity) or quantity <= 0:
                raise InvalidRequest(
                    f"Item at index {i} quantity must be a positive number", field=f"items[{i}].quantity"
                )
            constraints = item.constraints.model_dump(exclude_none=True) if item.constraints else None
            items.append(ShoppingItem(raw_query=raw_query, quantity=quantity, constraints=constraints or None))

        prefs = request.preferences or TripPreferences()
        max_stores = self._config.default_max_stores if prefs.max_stores is None else prefs.max_stores
        if max_stores < 1:
            raise InvalidRequest("maxStores must be a positive number", field="preferences.maxStores")
        radius_km = self._config.default_radius_km if prefs.max_radius_km is None else prefs.max_radius_km
        if not math.isfinite(radius_km) or radius_km <= 0:
            raise InvalidRequest("maxRadiusKm must be a positive number", field="preferences.maxRadiusKm")

        trip_settings = TripSettings(
            max_stores=max_stores,
            radius_km=radius_km,
            strategy=prefs.strategy,
            include_chains=_normalize_chains(prefs.include_chains),
            exclude_chains=_normalize_chains(prefs.exclude_chains),
        )
        return Origin(lat=origin.lat, lon=origin.lon, zip=origin.zip), items, trip_settings

    def find_nearby_stores(self, origin: Origin, trip_settings: TripSettings) -> List[Store]:
        candidates = self._stores.find_stores(
            include_chains=trip_settings.include_chains or None,
            exclude_chains=trip_settings.exclude_chains or None,
        )
        nearby = [s for s in candidates if point_distance(origin, s) <= trip_settings.radius_km]
        logger.info(
            "trip.stores candidates=%s within_radius=%s radius_km=%s",
            len(candidates),
            len(nearby),
            trip_settings.radius_km,
        )
        return nearby

    def fetch_distance_data(self, origin: Origin, stores: Sequence[Store]) -> DistanceLookup:
        """Origin -> stores and stores -> stores, requested side by side. Never fails the trip."""
        speed = self._config.average_speed_kmh
        if not stores:
            return DistanceLookup(speed_kmh=speed)
        mode = self._config.distance_mode
        with time_span("trip.distances", stores=len(stores)):
            try:
                with ThreadPoolExecutor(max_workers=2) as pool:
                    from_origin = pool.submit(self._distances.get_distance_matrix, [origin], stores, mode)
                    between = (
                        pool.submit(self._distances.get_distance_matrix, stores, stores, mode)
                        if len(stores) > 1
                        else None
                    )
                    results = list(from_origin.result())
                    if between is not None:
                        results.extend(between.result())
            except Exception as e:
                logger.warning("trip.distances_failed stores=%s error=%s", len(stores), e)
                return DistanceLookup(speed_kmh=speed)
        return DistanceLookup(results, speed_kmh=speed)

    def load_trip(self, trip_id: int) -> TripResponse:
        data = self._trips.get_trip(trip_id)
        if data is None:
            raise TripNotFound(f"Trip {trip_id} not found")
        return TripResponse.model_validate(data)


def _normalize_chains(chains: Optional[Sequence[str]]) -> List[str]:
    return [c.strip().upper() for c in (chains or []) if c and c.strip()]
