"""
Shared test fixtures.

Master data (employees, orders, size categories, lines) comes from a
mock Supabase client; production tables live in an in-memory SQLite
database created fresh for every test.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings require these at import time
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from unittest.mock import patch
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from models.auth import Actor, MANAGE_CUTTING
from tables import Base
from tests.factories import (
    EmployeeFactory,
    OrderFactory,
    SizeCategoryFactory,
    LineFactory,
)


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data=None, count: int = None):
        self.data = data if data is not None else []
        self.count = count if count is not None else (len(self.data) if isinstance(self.data, list) else 1)


def _matches(value, expected) -> bool:
    return str(value) == str(expected)


class MockSupabaseQuery:
    """
    Mock Supabase query builder with chainable methods.

    eq, neq, in_ and ilike filter the configured rows; or_ is accepted
    and ignored.
    """

    def __init__(self, data: list = None, count: int = None):
        self._data = list(data or [])
        self._count = count
        self._is_single = False
        self._limit = None
        self._range = None

    def select(self, *args, **kwargs):
        return self

    def eq(self, column, value):
        self._data = [row for row in self._data if _matches(row.get(column), value)]
        return self

    def neq(self, column, value):
        self._data = [row for row in self._data if not _matches(row.get(column), value)]
        return self

    def in_(self, column, values):
        wanted = {str(v) for v in values}
        self._data = [row for row in self._data if str(row.get(column)) in wanted]
        return self

    def ilike(self, column, pattern):
        needle = pattern.strip("%").lower()
        self._data = [row for row in self._data if needle in str(row.get(column) or "").lower()]
        return self

    def or_(self, filters):
        return self

    def single(self):
        self._is_single = True
        return self

    def order(self, column, desc: bool = False, **kwargs):
        def key(row):
            value = row.get(column)
            return (value is None, value if value is not None else 0)

        self._data.sort(key=key, reverse=desc)
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def execute(self) -> MockSupabaseResponse:
        total = self._count if self._count is not None else len(self._data)
        rows = self._data
        if self._range is not None:
            start, end = self._range
            rows = rows[start:end + 1]
        if self._limit is not None:
            rows = rows[:self._limit]

        if self._is_single:
            data = rows[0] if rows else None
            return MockSupabaseResponse(data=data, count=1 if data else 0)
        return MockSupabaseResponse(data=rows, count=total)


class MockSupabaseTable:
    """Mock Supabase table with configurable responses."""

    def __init__(self, data: list = None, count: int = None):
        self._data = data or []
        self._count = count

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self._data.copy(), self._count)


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables = {}

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Configure mock data for a table."""
        self._tables[table_name] = {"data": data, "count": count}

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        config = self._tables.get(name, {"data": [], "count": None})
        return MockSupabaseTable(config["data"], config["count"])


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("orders", [OrderFactory.create()])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the Supabase client with the mock in every master-data service.
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.size_category_service.get_supabase_client", return_value=mock_supabase):
            with patch("services.employee_service.get_supabase_client", return_value=mock_supabase):
                with patch("services.order_service.get_supabase_client", return_value=mock_supabase):
                    yield mock_supabase


@pytest.fixture
def master_data(mock_db) -> MockSupabaseClient:
    """
    Standard factory setup.

    - Category 1 "MEN TOP": S, M, L, XL
    - Order 1001 and 1002: style ST-100 colour BLK; order 1003: ST-100 RED
    - Orders have 100 pieces per size
    - Employees: E1 production lvl 6, E2 production lvl 8, E3 production lvl 4,
      E4 QA lvl 3, E5 supermarket lvl 5, E9 inactive
    """
    category = SizeCategoryFactory.create(size_category_id=1, size_category_name="MEN TOP", sizes="S,M,L,XL")
    mock_db.set_table_data("size_categories", [category])

    orders = [
        OrderFactory.create(order_id=1001, style_id="ST-100", colour_code="BLK", category=category),
        OrderFactory.create(order_id=1002, style_id="ST-100", colour_code="BLK", category=category),
        OrderFactory.create(order_id=1003, style_id="ST-100", colour_code="RED", category=category),
    ]
    mock_db.set_table_data("orders", orders)
    mock_db.set_table_data("order_size_quantities", [
        {"order_id": order["order_id"], "size": size, "qty": 100}
        for order in orders
        for size in ["S", "M", "L", "XL"]
    ])

    mock_db.set_table_data("employees", [
        EmployeeFactory.create(emp_id="E1", department_id=1, department_name="Production", designation_level=6),
        EmployeeFactory.create(emp_id="E2", department_id=1, department_name="Production", designation_level=8),
        EmployeeFactory.create(emp_id="E3", department_id=1, department_name="Production", designation_level=4),
        EmployeeFactory.create(emp_id="E4", department_id=3, department_name="QA", designation_level=3),
        EmployeeFactory.create(emp_id="E5", department_id=10, department_name="Supermarket", designation_level=5),
        EmployeeFactory.create(emp_id="E9", department_id=1, department_name="Production", status="INACTIVE"),
    ])
    mock_db.set_table_data("lines", [
        LineFactory.create(line_no=1),
        LineFactory.create(line_no=2),
        LineFactory.create(line_no=3, status="INACTIVE"),
    ])
    return mock_db


@pytest.fixture
def session_factory() -> Generator:
    """In-memory SQLite database with all production tables."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def cutter() -> Actor:
    """Actor allowed to record cutting and manage bundles."""
    return Actor(user_id="cutter-1", employee_id="E1", permissions=frozenset({MANAGE_CUTTING}))


@pytest.fixture
def viewer() -> Actor:
    """Actor without cutting permissions."""
    return Actor(user_id="viewer-1", employee_id="E5", permissions=frozenset())


# ===================
# SERVICES
# ===================

@pytest.fixture
def order_service(master_data):
    from services.order_service import OrderService
    return OrderService()


@pytest.fixture
def cutting_service(session_factory, order_service):
    from services.cutting_service import CuttingService
    return CuttingService(session_factory=session_factory, orders=order_service)


@pytest.fixture
def bundle_service(session_factory, order_service):
    from services.bundle_service import BundleService
    return BundleService(session_factory=session_factory, orders=order_service)


@pytest.fixture
def loading_service(session_factory, master_data, order_service, bundle_service):
    from services.employee_service import EmployeeService
    from services.size_category_service import SizeCategoryService
    from services.loading_service import LoadingService
    return LoadingService(
        session_factory=session_factory,
        employees=EmployeeService(),
        categories=SizeCategoryService(),
        orders=order_service,
        bundles=bundle_service,
    )


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_services(cutting_service, bundle_service, loading_service, order_service):
    """
    FastAPI test client whose routers use the test services.

    Usage:
        def test_endpoint(test_client_with_services):
            response = test_client_with_services.get("/api/loading/lines", headers=ACTOR_HEADERS)
    """
    from fastapi.testclient import TestClient
    from main import app

    with patch("routes.bundles.get_bundle_service", return_value=bundle_service), \
            patch("routes.orders.get_bundle_service", return_value=bundle_service), \
            patch("routes.orders.get_cutting_service", return_value=cutting_service), \
            patch("routes.orders.get_order_service", return_value=order_service), \
            patch("routes.loading.get_loading_service", return_value=loading_service), \
            patch("main.check_connection", return_value={"status": "healthy"}):
        yield TestClient(app)
