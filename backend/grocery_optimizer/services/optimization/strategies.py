"""
Trip planning strategies: Cheapest, Fastest, Balanced.

Each takes a StrategyInput and returns a PlanResult, or None when no store stocks any item.
Legs use provider distances when the lookup has them and haversine otherwise. Rounding is
applied once, in _finalize_plan.
"""

from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence

from grocery_optimizer.config import Settings
from grocery_optimizer.logging import get_logger
from grocery_optimizer.services.distance.lookup import DistanceLookup
from grocery_optimizer.services.geo.distance import estimate_instore_time, nearest_neighbor_order
from grocery_optimizer.services.optimization.prices import in_stock_price
from grocery_optimizer.services.optimization.types import (
    ItemAssignment,
    MatchedItem,
    Origin,
    PlanResult,
    PriceMap,
    Store,
    StoreVisit,
    Strategy,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class StrategyTuning:
    availability_weight: float = 1000.0
    distance_floor_km: float = 0.5
    balanced_max_stores: int = 2
    instore_base_min: float = 5.0
    instore_per_item_min: float = 1.5

    @classmethod
    def from_settings(cls, s: Settings) -> "StrategyTuning":
        return cls(
            availability_weight=s.fastest_availability_weight,
            distance_floor_km=s.balanced_distance_floor_km,
            balanced_max_stores=s.balanced_max_stores,
            instore_base_min=s.instore_base_min,
            instore_per_item_min=s.instore_per_item_min,
        )


@dataclass
class StrategyInput:
    origin: Origin
    items: List[MatchedItem]
    stores: List[Store]
    prices: PriceMap
    max_stores: int = 5
    distances: DistanceLookup = field(default_factory=DistanceLookup)
    tuning: StrategyTuning = field(default_factory=StrategyTuning)


def _cheapest_store(product_id: int, stores: Sequence[Store], prices: PriceMap) -> Optional[tuple[Store, float]]:
    """Lowest in-stock price; the first store seen wins a tie."""
    best: Optional[tuple[Store, float]] = None
    for store in stores:
        price = in_stock_price(prices, store.id, product_id)
        if price is not None and (best is None or price < best[1]):
            best = (store, price)
    return best


def _assign_cheapest(items: Sequence[MatchedItem], stores: Sequence[Store], prices: PriceMap) -> list[ItemAssignment]:
    assignments = []
    for item in items:
        choice = _cheapest_store(item.product.id, stores, prices)
        if choice is None:
            continue
        store, price = choice
        assignments.append(
            ItemAssignment(
                item=item,
                product_id=item.product.id,
                store_id=store.id,
                unit_price=price,
                quantity=item.quantity,
            )
        )
    return assignments


def _stores_used(stores: Sequence[Store], assignments: Sequence[ItemAssignment]) -> list[Store]:
    used_ids = {a.store_id for a in assignments}
    return [s for s in stores if s.id in used_ids]


def _finalize_plan(
    label: str,
    strategy: Strategy,
    inp: StrategyInput,
    ordered_stores: Sequence[Store],
    assignments: List[ItemAssignment],
) -> PlanResult:
    counts = Counter(a.store_id for a in assignments)
    visits: list[StoreVisit] = []
    total_km = 0.0
    travel_min = 0.0
    instore_min = 0.0
    previous = inp.origin
    for index, store in enumerate(ordered_stores):
        leg = inp.distances.leg(previous, store)
        item_count = counts[store.id]
        visits.append(
            StoreVisit(
                store=store,
                order_index=index,
                distance_from_prev_km=round(leg.distance_km, 2),
                travel_time_from_prev_min=round(leg.travel_time_min),
                item_count=item_count,
                distance_source=leg.source,
            )
        )
        total_km += leg.distance_km
        travel_min += leg.travel_time_min
        instore_min += estimate_instore_time(
            item_count,
            base_min=inp.tuning.instore_base_min,
            per_item_min=inp.tuning.instore_per_item_min,
        )
        previous = store

    total_price = sum(a.line_total for a in assignments)
    return PlanResult(
        label=label,
        strategy=strategy,
        total_price=round(total_price, 2),
        total_distance_km=round(total_km, 2),
        total_travel_time_min=round(travel_min),
        estimated_instore_time_min=round(instore_min),
        estimated_total_time_min=round(travel_min + instore_min),
        visits=visits,
        assignments=assignments,
    )


def compute_cheapest_plan(inp: StrategyInput) -> Optional[PlanResult]:
    """
    Every item goes to its cheapest in-stock store. Over the store cap, keep the stores that
    supply the most items and move the rest to the cheapest retained store, even if that costs more.
    """
    if not inp.items or not inp.stores:
        return None
    assignments = _assign_cheapest(inp.items, inp.stores, inp.prices)
    if not assignments:
        return None

    counts = Counter(a.store_id for a in assignments)
    used_ids = list(dict.fromkeys(a.store_id for a in assignments))
    if len(used_ids) > inp.max_stores:
        retained_ids = sorted(used_ids, key=lambda sid: -counts[sid])[: inp.max_stores]
        retained = [s for s in inp.stores if s.id in retained_ids]
        pruned: list[ItemAssignment] = []
        for assignment in assignments:
            if assignment.store_id in retained_ids:
                pruned.append(assignment)
                continue
            choice = _cheapest_store(assignment.product_id, retained, inp.prices)
            if choice is None:
                logger.info(
                    "strategy.cheapest.dropped product_id=%s no retained store stocks it",
                    assignment.product_id,
                )
                continue
            store, price = choice
            pruned.append(replace(assignment, store_id=store.id, unit_price=price))
        logger.info(
            "strategy.cheapest.pruned stores=%s -> %s",
            len(used_ids),
            len(retained_ids),
        )
        assignments = pruned

    ordered = nearest_neighbor_order(inp.origin, _stores_used(inp.stores, assignments))
    return _finalize_plan("Cheapest", Strategy.CHEAPEST, inp, ordered, assignments)


def compute_fastest_plan(inp: StrategyInput) -> Optional[PlanResult]:
    """One stop: the store with the most items in stock, nearest first among equals."""
    if not inp.items or not inp.stores:
        return None

    best_store: Optional[Store] = None
    best_score = 0.0
    for store in inp.stores:
        available = sum(
            1 for item in inp.items if in_stock_price(inp.prices, store.id, item.product.id) is not None
        )
        if available == 0:
            continue
        distance_km = inp.distances.leg(inp.origin, store).distance_km
        score = available * inp.tuning.availability_weight - distance_km
        if best_store is None or score > best_score:
            best_store, best_score = store, score

    if best_store is None:
        return None
    assignments = _assign_cheapest(inp.items, [best_store], inp.prices)
    return _finalize_plan("Fastest", Strategy.FASTEST, inp, [best_store], assignments)


def compute_balanced_plan(inp: StrategyInput) -> Optional[PlanResult]:
    """
    Rank stores by average savings against the priciest observed price, per km from home
    (distance floored), keep the best few and buy each item at the cheapest of those.
    """
    if not inp.items or not inp.stores:
        return None
    cap = max(1, min(inp.max_stores, inp.tuning.balanced_max_stores))

    ceilings: Dict[int, float] = {}
    for item in inp.items:
        quotes = [inp.prices.get((store.id, item.product.id)) for store in inp.stores]
        ceilings[item.product.id] = max((q.price for q in quotes if q is not None), default=0.0)

    ranked: list[tuple[float, Store]] = []
    for store in inp.stores:
        savings = 0.0
        in_stock = 0
        for item in inp.items:
            price = in_stock_price(inp.prices, store.id, item.product.id)
            if price is None:
                continue
            savings += ceilings[item.product.id] - price
            in_stock += 1
        if in_stock == 0:
            continue
        distance_km = inp.distances.leg(inp.origin, store).distance_km
        value_score = (savings / in_stock) / max(distance_km, inp.tuning.distance_floor_km)
        ranked.append((value_score, store))
    if not ranked:
        return None

    ranked.sort(key=lambda entry: -entry[0])
    selected = [store for _, store in ranked[:cap]]
    assignments = _assign_cheapest(inp.items, selected, inp.prices)
    if not assignments:
        return None
    ordered = nearest_neighbor_order(inp.origin, _stores_used(selected, assignments))
    return _finalize_plan("Balanced", Strategy.BALANCED, inp, ordered, assignments)


def calculate_single_chain_total(
    chain: str,
    items: Sequence[MatchedItem],
    stores: Sequence[Store],
    prices: PriceMap,
) -> Optional[float]:
    """
    Cost of buying everything at one chain (cheapest location per item). None when the chain
    has no candidate store or cannot supply every item, so no comparison is shown.
    """
    chain_stores = [s for s in stores if s.chain.upper() == chain.upper()]
    if not chain_stores:
        return None
    total = 0.0
    for item in items:
        choice = _cheapest_store(item.product.id, chain_stores, prices)
        if choice is None:
            return None
        total += choice[1] * item.quantity
    return round(total, 2)


STRATEGIES: Dict[Strategy, Callable[[StrategyInput], Optional[PlanResult]]] = {
    Strategy.CHEAPEST: compute_cheapest_plan,
    Strategy.FASTEST: compute_fastest_plan,
    Strategy.BALANCED: compute_balanced_plan,
}
