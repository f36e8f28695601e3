"""
Shared fixtures.

The service reads its database URL at import time, so a throwaway SQLite
file is configured here before anything from `sweetshop` is imported.
"""
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="sweets-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'sweets.db')}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("STOCK_LOCK_TIMEOUT", None)

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from sweetshop import main, models
from sweetshop.access import Principal, Role
from sweetshop.auth import create_access_token
from sweetshop.catalog import CatalogService
from sweetshop.database import SessionLocal, engine
from sweetshop.stock import StockTransactionManager
from sweetshop.store import SweetStore


@pytest.fixture(autouse=True)
def tables():
    models.Base.metadata.create_all(bind=engine)
    yield
    models.Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store():
    return SweetStore(SessionLocal)


@pytest.fixture
def catalog(store):
    return CatalogService(store)


@pytest.fixture
def stock(store):
    return StockTransactionManager(store, lock_timeout=None)


@pytest.fixture
def make_sweet(catalog):
    def _make(name="Lemon Drop", category="candy", price="2.50", quantity=10):
        return catalog.create({"name": name, "category": category, "price": Decimal(price), "quantity": quantity})
    return _make


@pytest.fixture
def client():
    return TestClient(main.app)


def _headers(role: Role, user_id: int) -> dict:
    principal = Principal(id=user_id, role=role, email=f"{role.value}@sweetshop.io")
    return {"Authorization": f"Bearer {create_access_token(principal)}"}


@pytest.fixture
def admin_headers():
    return _headers(Role.ADMIN, 1)


@pytest.fixture
def customer_headers():
    return _headers(Role.CUSTOMER, 2)
