from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, JSON
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Store(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    chain: str = Field(index=True)  # upper case, e.g. WALMART
    lat: float
    lon: float
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "US"
    store_metadata: Optional[dict] = Field(default=None, sa_column=Column(JSON, default=None))  # hours, type, membership_required


class Product(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    brand: Optional[str] = None
    category: Optional[str] = Field(default=None, index=True)
    size_value: Optional[float] = None
    size_unit: Optional[str] = None
    upc: Optional[str] = None
    product_metadata: Optional[dict] = Field(default=None, sa_column=Column(JSON, default=None))  # organic, vegan, ...


class StoreProductPrice(SQLModel, table=True):
    store_id: int = Field(foreign_key="store.id", primary_key=True)
    product_id: int = Field(foreign_key="product.id", primary_key=True)
    price: float
    currency: str = "USD"
    in_stock: bool = True
    last_updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class Trip(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[str] = None
    origin_lat: float
    origin_lon: float
    origin_zip: Optional[str] = None
    settings: Optional[dict] = Field(default=None, sa_column=Column(JSON, default=None))  # TripSettings dump
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TripItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    trip_id: int = Field(foreign_key="trip.id", index=True)
    product_id: Optional[int] = Field(default=None, foreign_key="product.id")  # None when unmatched
    raw_query: str
    quantity: float = 1
    match_score: Optional[float] = None
    constraints: Optional[dict] = Field(default=None, sa_column=Column(JSON, default=None))


class TripPlan(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    trip_id: int = Field(foreign_key="trip.id", index=True)
    label: str
    strategy: str  # CHEAPEST | FASTEST | BALANCED
    total_price: float
    total_distance_km: float
    total_travel_time_min: int
    estimated_instore_time_min: int
    estimated_total_time_min: int
    savings_vs_walmart: Optional[float] = None
    savings_vs_target: Optional[float] = None
    savings_vs_costco: Optional[float] = None
    summary: Optional[dict] = Field(default=None, sa_column=Column(JSON, default=None))  # num_stores, items_by_store
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TripPlanStore(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    trip_plan_id: int = Field(foreign_key="tripplan.id", index=True)
    store_id: int = Field(foreign_key="store.id")
    order_index: int
    distance_from_prev_km: float
    travel_time_from_prev_min: int
    distance_source: str = "fallback"  # real | fallback


class TripPlanItemAssignment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    trip_plan_id: int = Field(foreign_key="tripplan.id", index=True)
    trip_item_id: Optional[int] = Field(default=None, foreign_key="tripitem.id")
    store_id: int = Field(foreign_key="store.id")
    product_id: int = Field(foreign_key="product.id")
    unit_price: float
    quantity: float
    line_total_price: float


class TripEvent(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    trip_id: int = Field(foreign_key="trip.id")
    number_of_items: int
    selected_strategy: str
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
