import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from grocery_optimizer import main
from grocery_optimizer.services.distance.matrix_client import distance_matrix_client
from grocery_optimizer.storage import db as db_module
from grocery_optimizer.storage import models
from grocery_optimizer.storage.repositories import create_product, create_store, set_price


@pytest.fixture(autouse=True)
def no_distance_api_key(monkeypatch):
    """Never call the real Distance Matrix API from tests; individual tests opt in with respx."""
    monkeypatch.setattr(distance_matrix_client, "_api_key", "")


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(monkeypatch, engine):
    def _get_session_override():
        return Session(engine)

    monkeypatch.setattr(db_module, "engine", engine)
    monkeypatch.setattr(db_module, "get_session", _get_session_override)

    client = TestClient(main.app)
    return client


@pytest.fixture(name="catalog")
def catalog_fixture(session):
    """Four stores around the origin, four products, every product priced at every store."""
    stores = {
        "WALMART": create_store(session, models.Store(
            name="Walmart Supercenter", chain="walmart", lat=37.4150, lon=-122.0950,
            address_line1="600 Showers Dr", city="Mountain View", state="CA", postal_code="94040",
        )),
        "TARGET": create_store(session, models.Store(
            name="Target", chain="TARGET", lat=37.3940, lon=-122.0790,
            address_line1="555 Showers Dr", city="Mountain View", state="CA", postal_code="94040",
        )),
        "COSTCO": create_store(session, models.Store(
            name="Costco Wholesale", chain="COSTCO", lat=37.4210, lon=-122.0960,
            address_line1="1000 N Rengstorff Ave", city="Mountain View", state="CA", postal_code="94043",
        )),
        "SAFEWAY": create_store(session, models.Store(
            name="Safeway", chain="SAFEWAY", lat=37.3990, lon=-122.1100,
            address_line1="645 San Antonio Rd", city="Mountain View", state="CA", postal_code="94040",
        )),
    }
    products = {
        "spaghetti": create_product(session, models.Product(name="Spaghetti", brand="Barilla", category="Pasta")),
        "marinara": create_product(session, models.Product(name="Marinara Sauce", brand="Rao's", category="Pasta")),
        "whole_milk": create_product(session, models.Product(
            name="Whole Milk", brand="Clover", category="Dairy", size_value=1, size_unit="gal",
        )),
        "two_percent": create_product(session, models.Product(name="2% Milk", brand="Clover", category="Dairy")),
        "squash": create_product(session, models.Product(name="Spaghetti Squash", category="Produce")),
    }
    price_table = {
        "spaghetti": {"WALMART": 1.00, "TARGET": 1.29, "COSTCO": 0.98, "SAFEWAY": 1.79},
        "marinara": {"WALMART": 2.48, "TARGET": 2.29, "COSTCO": 3.00, "SAFEWAY": 3.49},
        "whole_milk": {"WALMART": 3.12, "TARGET": 3.29, "COSTCO": 2.99, "SAFEWAY": 4.19},
        "two_percent": {"WALMART": 3.02, "SAFEWAY": 3.99},
        "squash": {"SAFEWAY": 2.49},
    }
    for product_key, by_chain in price_table.items():
        for chain, price in by_chain.items():
            set_price(session, stores[chain].id, products[product_key].id, price)
    return {"stores": stores, "products": products}
