"""
Shared test fixtures.

FakeSupabaseClient keeps real per-table state and honours the filters the
services use, so imports can be asserted on what ends up stored.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are validated at import time
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import copy
import uuid
from datetime import datetime, timedelta

import pytest

TENANT_ID = "tenant-1"
OTHER_TENANT_ID = "tenant-2"


# ===================
# FAKE SUPABASE CLIENT
# ===================

class FakeSupabaseResponse:
    """Query response with .data and .count like postgrest's APIResponse."""

    def __init__(self, data: list, count: int = None):
        self.data = data
        self.count = count if count is not None else len(data)


class FakeSupabaseQuery:
    """Chainable query over one table of a FakeSupabaseClient."""

    def __init__(self, client: "FakeSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._action = "select"
        self._payload = None
        self._filters = []
        self._order = None
        self._limit = None
        self._range = None

    # Actions

    def select(self, *args, **kwargs):
        self._action = "select"
        return self

    def insert(self, data):
        self._action = "insert"
        self._payload = data
        return self

    def update(self, data):
        self._action = "update"
        self._payload = data
        return self

    def delete(self):
        self._action = "delete"
        return self

    # Filters and modifiers

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        allowed = set(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column, desc=False, **kwargs):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def execute(self) -> FakeSupabaseResponse:
        self._client.calls.append((self._action, self._table))
        if (self._action, self._table) in self._client.fail_on:
            raise RuntimeError(f"simulated {self._action} failure on {self._table}")

        rows = self._client.tables.setdefault(self._table, [])

        if self._action == "insert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            stored = [self._client.stamp(dict(item)) for item in payload]
            rows.extend(stored)
            return FakeSupabaseResponse(copy.deepcopy(stored))

        matched = [row for row in rows if all(f(row) for f in self._filters)]

        if self._action == "delete":
            removed = {id(row) for row in matched}
            self._client.tables[self._table] = [row for row in rows if id(row) not in removed]
            return FakeSupabaseResponse(copy.deepcopy(matched))

        if self._action == "update":
            for row in matched:
                row.update(self._payload)
            return FakeSupabaseResponse(copy.deepcopy(matched))

        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda row: (row.get(column) is None, row.get(column) or ""), reverse=desc)
        if self._range:
            start, end = self._range
            matched = matched[start:end + 1]
        if self._limit is not None:
            matched = matched[:self._limit]
        return FakeSupabaseResponse(copy.deepcopy(matched))


class FakeSupabaseClient:
    """
    In-memory stand-in for the Supabase client.

    Usage:
        fake_db.seed("suppliers", [{"tenant_id": TENANT_ID, "name": "Acme"}])
        fake_db.fail_on.add(("insert", "price_entries"))
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.fail_on: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, str]] = []
        self._clock = datetime(2026, 1, 1)

    def table(self, name: str) -> FakeSupabaseQuery:
        return FakeSupabaseQuery(self, name)

    def stamp(self, row: dict) -> dict:
        """Fill id and a strictly increasing created_at like the database defaults."""
        self._clock += timedelta(seconds=1)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", self._clock.isoformat())
        return row

    def seed(self, table: str, rows: list[dict]) -> list[dict]:
        stored = [self.stamp(dict(row)) for row in rows]
        self.tables.setdefault(table, []).extend(stored)
        return stored

    def rows(self, table: str, tenant_id: str = TENANT_ID) -> list[dict]:
        return [row for row in self.tables.get(table, []) if row.get("tenant_id") == tenant_id]

    def count(self, table: str, tenant_id: str = TENANT_ID) -> int:
        return len(self.rows(table, tenant_id))


# ===================
# FIXTURES
# ===================

@pytest.fixture
def fake_db() -> FakeSupabaseClient:
    """
    Empty in-memory database.

    Usage:
        def test_something(fake_db):
            service = ImportApplyService(client=fake_db)
    """
    return FakeSupabaseClient()


@pytest.fixture(autouse=True)
def clear_parse_cache():
    """Parsed uploads never leak between tests."""
    from services import source_cache_service

    source_cache_service.clear_cache()
    yield
    source_cache_service.clear_cache()


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client():
    """
    Create FastAPI test client.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/api/import/template")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)
