from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from grocery_optimizer.logging import get_logger
from grocery_optimizer.services.optimization.errors import PersistenceFailure
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
    combine_distance_sources,
)
from grocery_optimizer.storage import db
from grocery_optimizer.storage import models

logger = get_logger(__name__)


def _escape_like(pattern: str) -> str:
    return pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def store_from_row(row: models.Store) -> Store:
    return Store(
        id=row.id,
        name=row.name,
        chain=row.chain,
        lat=row.lat,
        lon=row.lon,
        address_line1=row.address_line1,
        city=row.city,
        state=row.state,
        postal_code=row.postal_code,
    )


def product_from_row(row: models.Product) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        brand=row.brand,
        category=row.category,
        size_value=row.size_value,
        size_unit=row.size_unit,
        upc=row.upc,
    )


def create_store(session: Session, store: models.Store) -> models.Store:
    store.chain = store.chain.strip().upper()
    session.add(store)
    session.commit()
    session.refresh(store)
    logger.info("store.created id=%s name=%s chain=%s", store.id, store.name, store.chain)
    return store


def create_product(session: Session, product: models.Product) -> models.Product:
    session.add(product)
    session.commit()
    session.refresh(product)
    logger.info("product.created id=%s name=%s category=%s", product.id, product.name, product.category)
    return product


def set_price(session: Session, store_id: int, product_id: int, price: float, in_stock: bool = True) -> models.StoreProductPrice:
    row = session.get(models.StoreProductPrice, (store_id, product_id))
    if row is None:
        row = models.StoreProductPrice(store_id=store_id, product_id=product_id, price=price, in_stock=in_stock)
    else:
        row.price = price
        row.in_stock = in_stock
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


class SqlCatalog:
    """Stores, products and prices read from the relational store. Read-only."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def find_stores(
        self,
        include_chains: Optional[Sequence[str]] = None,
        exclude_chains: Optional[Sequence[str]] = None,
    ) -> List[Store]:
        stmt = select(models.Store)
        if include_chains:
            stmt = stmt.where(col(models.Store.chain).in_([c.upper() for c in include_chains]))
        if exclude_chains:
            stmt = stmt.where(col(models.Store.chain).not_in([c.upper() for c in exclude_chains]))
        stmt = stmt.order_by(models.Store.id)
        return [store_from_row(row) for row in self._session.exec(stmt)]

    def search_products_by_name(self, pattern: str, limit: Optional[int] = None) -> List[Product]:
        stmt = (
            select(models.Product)
            .where(col(models.Product.name).ilike(f"%{_escape_like(pattern)}%", escape="\\"))
            .order_by(func.length(models.Product.name), models.Product.id)
        )
        if limit:
            stmt = stmt.limit(limit)
        return [product_from_row(row) for row in self._session.exec(stmt)]

    def get_products_by_category(self, category: str, limit: Optional[int] = None) -> List[Product]:
        stmt = (
            select(models.Product)
            .where(func.lower(models.Product.category) == category.lower())
            .order_by(models.Product.id)
        )
        if limit:
            stmt = stmt.limit(limit)
        return [product_from_row(row) for row in self._session.exec(stmt)]

    def get_prices(self, product_ids: Iterable[int], store_ids: Iterable[int]) -> List[PriceEntry]:
        product_ids = list(product_ids)
        store_ids = list(store_ids)
        if not product_ids or not store_ids:
            return []
        stmt = select(models.StoreProductPrice).where(
            col(models.StoreProductPrice.product_id).in_(product_ids),
            col(models.StoreProductPrice.store_id).in_(store_ids),
        )
        return [
            PriceEntry(store_id=row.store_id, product_id=row.product_id, price=row.price, in_stock=row.in_stock)
            for row in self._session.exec(stmt)
        ]

    def get_min_price_across_stores(self, product_ids: Iterable[int]) -> Dict[int, float]:
        product_ids = list(product_ids)
        if not product_ids:
            return {}
        stmt = (
            select(models.StoreProductPrice.product_id, func.min(models.StoreProductPrice.price))
            .where(
                col(models.StoreProductPrice.product_id).in_(product_ids),
                col(models.StoreProductPrice.in_stock).is_(True),
            )
            .group_by(models.StoreProductPrice.product_id)
        )
        return {product_id: price for product_id, price in self._session.exec(stmt)}


class SqlTripStore:
    """
    Trip, plan, visit and assignment writes. Rows are flushed to get ids but not committed;
    the request handler commits once the whole trip is built.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def _flush(self, what: str, rows: list) -> None:
        try:
            self._session.add_all(rows)
            self._session.flush()
        except SQLAlchemyError as e:
            logger.error("trip_store.write_failed what=%s error=%s", what, e)
            raise PersistenceFailure(f"Failed to save {what}") from e

    def create_trip(self, origin: Origin, trip_settings: TripSettings, user_id: Optional[str] = None) -> int:
        trip = models.Trip(
            user_id=user_id,
            origin_lat=origin.lat,
            origin_lon=origin.lon,
            origin_zip=origin.zip,
            settings=trip_settings.as_dict(),
        )
        self._flush("trip", [trip])
        logger.info("trip.created id=%s user_id=%s", trip.id, user_id)
        return trip.id

    def create_trip_items(
        self, trip_id: int, matched: Sequence[MatchedItem], unmatched: Sequence[ShoppingItem]
    ) -> List[int]:
        """Matched lines first, then unmatched; ids come back in the same order."""
        rows = [
            models.TripItem(
                trip_id=trip_id,
                product_id=m.product.id,
                raw_query=m.raw_query,
                quantity=m.quantity,
                match_score=m.match_score,
            )
            for m in matched
        ] + [
            models.TripItem(
                trip_id=trip_id,
                product_id=None,
                raw_query=u.raw_query,
                quantity=u.quantity,
                constraints=u.constraints,
            )
            for u in unmatched
        ]
        self._flush("trip items", rows)
        logger.info("trip_items.created trip_id=%s matched=%s unmatched=%s", trip_id, len(matched), len(unmatched))
        return [row.id for row in rows]

    def save_plan(
        self,
        trip_id: int,
        plan: PlanResult,
        savings: Dict[str, Optional[float]],
        baselines: Dict[str, Optional[float]],
    ) -> int:
        items_by_store = Counter()
        for visit in plan.visits:
            items_by_store[visit.store.name] += visit.item_count
        row = models.TripPlan(
            trip_id=trip_id,
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
            summary={
                "num_stores": len(plan.visits),
                "items_by_store": dict(items_by_store),
                "baselines": dict(baselines),
            },
        )
        self._flush("plan", [row])
        logger.info(
            "trip_plan.created id=%s trip_id=%s strategy=%s total_price=%s stores=%s",
            row.id,
            trip_id,
            row.strategy,
            row.total_price,
            len(plan.visits),
        )
        return row.id

    def save_store_visits(self, plan_id: int, visits: Sequence[StoreVisit]) -> None:
        self._flush(
            "store visits",
            [
                models.TripPlanStore(
                    trip_plan_id=plan_id,
                    store_id=v.store.id,
                    order_index=v.order_index,
                    distance_from_prev_km=v.distance_from_prev_km,
                    travel_time_from_prev_min=v.travel_time_from_prev_min,
                    distance_source=v.distance_source,
                )
                for v in visits
            ],
        )

    def save_item_assignments(self, plan_id: int, assignments: Sequence[ItemAssignment]) -> None:
        self._flush(
            "item assignments",
            [
                models.TripPlanItemAssignment(
                    trip_plan_id=plan_id,
                    trip_item_id=a.item.trip_item_id,
                    store_id=a.store_id,
                    product_id=a.product_id,
                    unit_price=a.unit_price,
                    quantity=a.quantity,
                    line_total_price=round(a.line_total, 2),
                )
                for a in assignments
            ],
        )

    def get_trip(self, trip_id: int) -> Optional[dict]:
        trip = self._session.get(models.Trip, trip_id)
        if trip is None:
            return None
        items = list(
            self._session.exec(
                select(models.TripItem).where(models.TripItem.trip_id == trip_id).order_by(models.TripItem.id)
            )
        )
        plans = list(
            self._session.exec(
                select(models.TripPlan).where(models.TripPlan.trip_id == trip_id).order_by(models.TripPlan.id)
            )
        )
        plan_ids = [p.id for p in plans]
        visits = list(
            self._session.exec(
                select(models.TripPlanStore)
                .where(col(models.TripPlanStore.trip_plan_id).in_(plan_ids))
                .order_by(models.TripPlanStore.trip_plan_id, models.TripPlanStore.order_index)
            )
        ) if plan_ids else []
        assignments = list(
            self._session.exec(
                select(models.TripPlanItemAssignment)
                .where(col(models.TripPlanItemAssignment.trip_plan_id).in_(plan_ids))
                .order_by(models.TripPlanItemAssignment.id)
            )
        ) if plan_ids else []

        product_ids = {i.product_id for i in items if i.product_id} | {a.product_id for a in assignments}
        products = {
            p.id: p
            for p in self._session.exec(select(models.Product).where(col(models.Product.id).in_(product_ids)))
        } if product_ids else {}
        store_ids = {v.store_id for v in visits}
        stores = {
            s.id: store_from_row(s)
            for s in self._session.exec(select(models.Store).where(col(models.Store.id).in_(store_ids)))
        } if store_ids else {}

        plans_out = []
        all_sources = []
        for plan in plans:
            plan_visits = [v for v in visits if v.trip_plan_id == plan.id]
            plan_assignments = [a for a in assignments if a.trip_plan_id == plan.id]
            stores_out = []
            for v in plan_visits:
                store = stores[v.store_id]
                all_sources.append(v.distance_source)
                stores_out.append({
                    "store": {
                        "id": store.id,
                        "name": store.name,
                        "chain": store.chain,
                        "address": store.address,
                        "lat": store.lat,
                        "lon": store.lon,
                    },
                    "order_index": v.order_index,
                    "distance_from_prev_km": v.distance_from_prev_km,
                    "travel_time_from_prev_min": v.travel_time_from_prev_min,
                    "distance_source": v.distance_source,
                    "items": [
                        {
                            "product_id": a.product_id,
                            "product_name": products[a.product_id].name if a.product_id in products else "Unknown",
                            "quantity": a.quantity,
                            "unit_price": a.unit_price,
                            "line_total": a.line_total_price,
                        }
                        for a in plan_assignments
                        if a.store_id == v.store_id
                    ],
                })
            plans_out.append({
                "id": plan.id,
                "label": plan.label,
                "strategy": plan.strategy,
                "total_price": plan.total_price,
                "total_distance_km": plan.total_distance_km,
                "total_travel_time_min": plan.total_travel_time_min,
                "estimated_instore_time_min": plan.estimated_instore_time_min,
                "estimated_total_time_min": plan.estimated_total_time_min,
                "savings_vs_walmart": plan.savings_vs_walmart,
                "savings_vs_target": plan.savings_vs_target,
                "savings_vs_costco": plan.savings_vs_costco,
                "distance_source": combine_distance_sources(v.distance_source for v in plan_visits),
                "stores": stores_out,
            })

        baselines = ((plans[0].summary or {}).get("baselines") or {}) if plans else {}
        return {
            "trip_id": trip.id,
            "origin": {"lat": trip.origin_lat, "lon": trip.origin_lon, "zip": trip.origin_zip},
            "items": [
                {
                    "id": i.id,
                    "raw_query": i.raw_query,
                    "quantity": i.quantity,
                    "match_score": i.match_score,
                    "matched_product": {
                        "id": products[i.product_id].id,
                        "name": products[i.product_id].name,
                        "brand": products[i.product_id].brand,
                        "category": products[i.product_id].category,
                    }
                    if i.product_id in products
                    else None,
                }
                for i in items
            ],
            "plans": plans_out,
            "distance_source": combine_distance_sources(all_sources),
            "baselines": baselines,
            "created_at": trip.created_at,
        }


class SqlAnalyticsSink:
    """Writes TripEvent rows in a session of its own, outside the trip's unit of work."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None) -> None:
        self._session_factory = session_factory

    def record(self, trip_id: int, item_count: int, selected_strategy: str) -> None:
        factory = self._session_factory or db.get_session
        with factory() as session:
            session.add(
                models.TripEvent(
                    trip_id=trip_id,
                    number_of_items=item_count,
                    selected_strategy=selected_strategy,
                )
            )
            session.commit()
