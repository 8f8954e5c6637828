import pytest
from pydantic import ValidationError

from grocery_optimizer.config import Settings
from grocery_optimizer.schemas.trip import OriginIn, TripItemIn, TripPreferences, TripRequest
from grocery_optimizer.services.distance.matrix_client import DistanceMatrixClient, DistanceResult
from grocery_optimizer.services.geo.distance import GeoPoint, point_distance
from grocery_optimizer.services.optimization.errors import (
    InvalidRequest,
    NoPlansGenerated,
    NoProductsMatched,
    NoStoresFound,
    TripNotFound,
)
from grocery_optimizer.services.optimization.optimizer import TripOptimizer
from grocery_optimizer.services.optimization.types import PriceEntry, Product, Store, StrategyMode


STORES = [
    Store(id=1, name="Walmart", chain="WALMART", lat=0.0, lon=0.02),
    Store(id=2, name="Target", chain="TARGET", lat=0.0, lon=0.04),
    Store(id=3, name="Far Away Foods", chain="FARAWAY", lat=1.0, lon=1.0),
]
PRODUCTS = [
    Product(id=10, name="Spaghetti", category="Pasta"),
    Product(id=11, name="Whole Milk", category="Dairy"),
]
PRICES = [
    PriceEntry(store_id=1, product_id=10, price=1.00, in_stock=True),
    PriceEntry(store_id=1, product_id=11, price=3.50, in_stock=True),
    PriceEntry(store_id=2, product_id=10, price=1.50, in_stock=True),
    PriceEntry(store_id=2, product_id=11, price=3.00, in_stock=True),
]


class FakeCatalog:
    """Stores, products and prices in memory."""

    def __init__(self, stores=STORES, products=PRODUCTS, prices=PRICES):
        self.stores = list(stores)
        self.products = list(products)
        self.prices = list(prices)

    def find_stores(self, include_chains=None, exclude_chains=None):
        stores = self.stores
        if include_chains:
            stores = [s for s in stores if s.chain in include_chains]
        if exclude_chains:
            stores = [s for s in stores if s.chain not in exclude_chains]
        return stores

    def search_products_by_name(self, pattern, limit=None):
        return [p for p in self.products if pattern.lower() in p.name.lower()]

    def get_products_by_category(self, category, limit=None):
        return [p for p in self.products if p.category == category]

    def get_prices(self, product_ids, store_ids):
        return [e for e in self.prices if e.product_id in product_ids and e.store_id in store_ids]

    def get_min_price_across_stores(self, product_ids):
        result = {}
        for e in self.prices:
            if e.product_id in product_ids and e.in_stock:
                result[e.product_id] = min(e.price, result.get(e.product_id, e.price))
        return result


class FakeTripStore:
    def __init__(self):
        self.trips = {}
        self.items = {}
        self.plans = {}
        self.visits = {}
        self.assignments = {}
        self._next_id = 1

    def _id(self):
        self._next_id += 1
        return self._next_id - 1

    def create_trip(self, origin, trip_settings, user_id=None):
        trip_id = self._id()
        self.trips[trip_id] = (origin, trip_settings, user_id)
        return trip_id

    def create_trip_items(self, trip_id, matched, unmatched):
        ids = [self._id() for _ in [*matched, *unmatched]]
        self.items[trip_id] = ids
        return ids

    def save_plan(self, trip_id, plan, savings, baselines):
        plan_id = self._id()
        self.plans[plan_id] = (trip_id, plan, savings, baselines)
        return plan_id

    def save_store_visits(self, plan_id, visits):
        self.visits[plan_id] = list(visits)

    def save_item_assignments(self, plan_id, assignments):
        self.assignments[plan_id] = list(assignments)

    def get_trip(self, trip_id):
        return None


class FakeDistances:
    """Every pair answered as a real result at 1.5x the straight-line distance."""

    def __init__(self):
        self.calls = []

    def get_distance_matrix(self, origins, destinations, mode=None):
        self.calls.append((len(origins), len(destinations), mode))
        results = []
        for o in origins:
            for d in destinations:
                km = point_distance(o, d) * 1.5
                results.append(
                    DistanceResult(
                        origin=GeoPoint(o.lat, o.lon),
                        destination=GeoPoint(d.lat, d.lon),
                        distance_meters=round(km * 1000),
                        duration_seconds=round(km * 120),
                        distance_text="",
                        duration_text="",
                        source="real",
                        status="ok",
                    )
                )
        return results


class BrokenDistances:
    def get_distance_matrix(self, origins, destinations, mode=None):
        raise RuntimeError("provider exploded")


def _optimizer(catalog=None, trips=None, distances=None, config=None):
    catalog = catalog or FakeCatalog()
    return TripOptimizer(
        stores=catalog,
        catalog=catalog,
        prices=catalog,
        trips=trips or FakeTripStore(),
        distances=distances or DistanceMatrixClient(api_key=""),
        config=config or Settings(),
    )


def _request(**overrides):
    body = {
        "origin": {"lat": 0.0, "lon": 0.0},
        "items": [{"rawQuery": "spaghetti", "quantity": 2}, {"rawQuery": "whole milk"}],
        "preferences": {"maxRadiusKm": 10},
    }
    body.update(overrides)
    return TripRequest.model_validate(body)


def test_optimize_trip_builds_all_plans():
    trips = FakeTripStore()
    response = _optimizer(trips=trips).optimize_trip(_request(), user_id="u1")

    assert [p.strategy for p in response.plans] == ["CHEAPEST", "FASTEST", "BALANCED"]
    assert all(p.id in trips.plans for p in response.plans)
    assert trips.trips[response.trip_id][2] == "u1"
    assert response.distance_source == "fallback"

    cheapest = response.plans[0]
    assert cheapest.total_price == 5.00  # spaghetti 2 x 1.00 at Walmart, milk 3.00 at Target
    assert response.baselines == {"WALMART": 5.50, "TARGET": 6.00, "COSTCO": None}
    assert cheapest.savings_vs_walmart == 0.50
    assert cheapest.savings_vs_target == 1.00
    assert cheapest.savings_vs_costco is None


def test_optimize_trip_persists_visits_and_assignments():
    trips = FakeTripStore()
    response = _optimizer(trips=trips).optimize_trip(_request())
    item_ids = trips.items[response.trip_id]
    for plan in response.plans:
        assignments = trips.assignments[plan.id]
        assert {a.item.trip_item_id for a in assignments} <= set(item_ids)
        assert len(trips.visits[plan.id]) == len(plan.stores)
        assert trips.plans[plan.id][3] == response.baselines


def test_radius_filters_out_far_stores():
    optimizer = _optimizer()
    _, _, trip_settings = optimizer.validate_request(_request())
    stores = optimizer.find_nearby_stores(GeoPoint(0.0, 0.0), trip_settings)
    assert [s.id for s in stores] == [1, 2]


def test_no_stores_found():
    with pytest.raises(NoStoresFound):
        _optimizer().optimize_trip(_request(preferences={"maxRadiusKm": 1}))


def test_chain_filters():
    response = _optimizer().optimize_trip(
        _request(preferences={"maxRadiusKm": 10, "excludeChains": ["walmart"], "strategy": "CHEAPEST"})
    )
    assert [s.store.chain for s in response.plans[0].stores] == ["TARGET"]
    with pytest.raises(NoStoresFound):
        _optimizer().optimize_trip(_request(preferences={"maxRadiusKm": 10, "includeChains": ["aldi"]}))


def test_no_products_matched():
    with pytest.raises(NoProductsMatched):
        _optimizer().optimize_trip(_request(items=[{"rawQuery": "xyzzy"}]))


def test_no_plans_when_nothing_in_stock():
    prices = [PriceEntry(store_id=1, product_id=10, price=1.0, in_stock=False)]
    with pytest.raises(NoPlansGenerated):
        _optimizer(catalog=FakeCatalog(prices=prices)).optimize_trip(_request())


def test_unmatched_items_listed_after_matched():
    response = _optimizer().optimize_trip(
        _request(items=[{"rawQuery": "xyzzy"}, {"rawQuery": "spaghetti"}])
    )
    assert [i.raw_query for i in response.items] == ["spaghetti", "xyzzy"]
    assert response.items[1].matched_product is None
    assert all(i.id is not None for i in response.items)


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"origin": None}, "origin"),
        ({"origin": {"lat": 0.0}}, "origin"),
        ({"origin": {"lat": -91, "lon": 0}}, "origin.lat"),
        ({"origin": {"lat": 0, "lon": 180.5}}, "origin.lon"),
        ({"items": []}, "items"),
        ({"items": [{"rawQuery": "  "}]}, "items[0].rawQuery"),
        ({"items": [{"rawQuery": "milk", "quantity": -1}]}, "items[0].quantity"),
        ({"preferences": {"maxStores": 0}}, "preferences.maxStores"),
        ({"preferences": {"maxRadiusKm": 0}}, "preferences.maxRadiusKm"),
    ],
)
def test_validation_errors_name_the_field(overrides, field):
    with pytest.raises(InvalidRequest) as excinfo:
        _optimizer().validate_request(_request(**overrides))
    assert excinfo.value.field == field
    assert excinfo.value.to_payload()["field"] == field


def test_validation_defaults():
    config = Settings(default_radius_km=12.5, default_max_stores=4)
    origin, items, trip_settings = _optimizer(config=config).validate_request(
        _request(items=[{"rawQuery": " milk "}], preferences=None)
    )
    assert (origin.lat, origin.lon) == (0.0, 0.0)
    assert items[0].raw_query == "milk"
    assert items[0].quantity == 1
    assert trip_settings.radius_km == 12.5
    assert trip_settings.max_stores == 4
    assert trip_settings.strategy.value == "ALL"


def test_real_distances_are_used():
    distances = FakeDistances()
    response = _optimizer(distances=distances).optimize_trip(_request())
    assert response.distance_source == "real"
    # origin -> stores and stores -> stores
    assert sorted(distances.calls) == [(1, 2, "driving"), (2, 2, "driving")]
    fastest = response.plans[1]
    expected = round(point_distance(GeoPoint(0, 0), GeoPoint(0, 0.02)) * 1.5, 2)
    assert fastest.stores[0].distance_from_prev_km == pytest.approx(expected, abs=0.01)


def test_single_store_skips_store_to_store_matrix():
    distances = FakeDistances()
    _optimizer(distances=distances).optimize_trip(_request(preferences={"maxRadiusKm": 3}))
    assert distances.calls == [(1, 1, "driving")]


def test_provider_failure_falls_back():
    response = _optimizer(distances=BrokenDistances()).optimize_trip(_request())
    assert response.distance_source == "fallback"
    assert len(response.plans) == 3


def test_load_trip_not_found():
    with pytest.raises(TripNotFound):
        _optimizer().load_trip(42)


@pytest.mark.parametrize("value", [float("nan"), float("inf")])
def test_validation_rejects_non_finite_numbers(value):
    origin = OriginIn(lat=0.0, lon=0.0)
    bad_quantity = TripRequest.model_construct(
        origin=origin,
        items=[TripItemIn.model_construct(raw_query="milk", quantity=value, constraints=None)],
        preferences=None,
    )
    with pytest.raises(InvalidRequest) as excinfo:
        _optimizer().validate_request(bad_quantity)
    assert excinfo.value.field == "items[0].quantity"

    bad_radius = TripRequest.model_construct(
        origin=origin,
        items=[TripItemIn.model_construct(raw_query="milk", quantity=1.0, constraints=None)],
        preferences=TripPreferences.model_construct(
            max_stores=None,
            max_radius_km=value,
            strategy=StrategyMode.ALL,
            include_chains=None,
            exclude_chains=None,
        ),
    )
    with pytest.raises(InvalidRequest) as excinfo:
        _optimizer().validate_request(bad_radius)
    assert excinfo.value.field == "preferences.maxRadiusKm"


def test_schema_rejects_non_finite_numbers():
    with pytest.raises(ValidationError):
        TripRequest.model_validate({"origin": {"lat": 0, "lon": 0}, "items": [{"rawQuery": "milk", "quantity": float("nan")}]})
