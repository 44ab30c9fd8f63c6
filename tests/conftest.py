"""
Shared test fixtures.

Mock Supabase client plus in-memory stand-ins for the inventory and
directory collaborators.
"""

import sys
from pathlib import Path

# Add project root to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import pytest
from unittest.mock import patch
from datetime import datetime
from typing import Generator

from models.import_resolution import ResolvedUser
from tests.factories import FakeDirectory, FakeInventory

# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable methods."""

    def __init__(self, data: list = None, count: int = None):
        self._data = data or []
        self._count = count

    def select(self, *args, **kwargs):
        return self

    def insert(self, data):
        # Simulate insert - add id and timestamps
        if isinstance(data, dict):
            data = [data]
        rows = []
        for item in data:
            row = dict(item)
            row.setdefault("id", "test-uuid-123")
            row["created_at"] = datetime.utcnow().isoformat() + "Z"
            rows.append(row)
        self._data = rows
        return self

    def update(self, data):
        # Simulate update - merge with existing data
        self._data = [{**item, **data} for item in self._data]
        return self

    def eq(self, column, value):
        self._data = [row for row in self._data if row.get(column) == value]
        return self

    def in_(self, column, values):
        wanted = set(values)
        self._data = [row for row in self._data if row.get(column) in wanted]
        return self

    def order(self, column, **kwargs):
        self._data = sorted(self._data, key=lambda row: row.get(column) or 0)
        return self

    def limit(self, count):
        self._data = self._data[:count]
        return self

    def execute(self) -> MockSupabaseResponse:
        return MockSupabaseResponse(
            data=self._data,
            count=self._count if self._count is not None else len(self._data)
        )


class MockSupabaseTable:
    """Mock Supabase table with configurable responses."""

    def __init__(self, data: list = None, count: int = None):
        self._data = data or []
        self._count = count

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(list(self._data), self._count)

    def insert(self, data):
        return MockSupabaseQuery(list(self._data), self._count).insert(data)

    def update(self, data):
        return MockSupabaseQuery(list(self._data), self._count).update(data)


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
            mock_supabase.set_table_data("assets", [
                {"id": "1", "serial_number": "SN1", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Any service calling get_supabase_client() gets the mock.
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.inventory_service.get_supabase_client", return_value=mock_supabase):
            with patch("services.directory_service.get_supabase_client", return_value=mock_supabase):
                with patch("services.classification_service.get_supabase_client", return_value=mock_supabase):
                    yield mock_supabase


@pytest.fixture
def sample_locations() -> list:
    """Active office locations."""
    return [
        {"id": "loc-cal", "name": "Calgary Office", "city": "Calgary", "province": "AB"},
        {"id": "loc-van", "name": "Vancouver Office", "city": "Vancouver", "province": "BC"},
        {"id": "loc-tor", "name": "Toronto Office", "city": "Toronto", "province": "ON"},
    ]


@pytest.fixture
def sample_users() -> dict:
    """Directory users keyed by lookup name."""
    return {
        "jsmith": ResolvedUser(id="aad-jsmith", display_name="John Smith", office_location="Calgary"),
        "Jane Doe": ResolvedUser(id="aad-jdoe", display_name="Jane Doe", office_location="Vancouver"),
    }


@pytest.fixture
def fake_directory(sample_users, sample_locations) -> FakeDirectory:
    return FakeDirectory(users=sample_users, locations=sample_locations)


@pytest.fixture
def fake_inventory() -> FakeInventory:
    return FakeInventory()


@pytest.fixture
def ninjaone_row() -> dict:
    """One NinjaOne endpoint export row."""
    return {
        "Display Name": "4315",
        "Role": "WINDOWS_LAPTOP",
        "Serial Number": "5CG1234XYZ",
        "Manufacturer": "HP",
        "Model": "EliteBook 840 G8",
        "RAM": "15.7",
        "Volumes": 'Type: "Local Disk" Name: "C:" (476.3 GiB)',
        "OS Name": "Windows 11 Enterprise",
        "Last LoggedIn User": "BGC\\jsmith",
        "Last Online": "2025-06-01T10:00:00Z",
    }


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client():
    """
    Create FastAPI test client.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/api/import/sources")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)
