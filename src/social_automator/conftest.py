"""
Shared test fixtures.

``FakeSupabase`` is an in-memory stand-in for the supabase-py client covering
the query builder calls the services make. ``FakeSession`` replaces
``aiohttp.ClientSession`` for platform and billing HTTP calls.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("OAUTH_STATE_SECRET", "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff")

import copy
import json
import itertools
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from postgrest.exceptions import APIError


class FakeResult:
    def __init__(self, data):
        self.data = data


def _matches(left, right) -> bool:
    return left == right or (left is not None and right is not None and str(left) == str(right))


def _compare(value, op, other) -> bool:
    if value is None:
        return False
    return {
        "lt": value < other,
        "lte": value <= other,
        "gt": value > other,
        "gte": value >= other,
    }[op]


class FakeQuery:
    """Chainable query mirroring the postgrest builder."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.operation = "select"
        self.columns = "*"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.filters: List = []
        self.order_by: List = []
        self.limit_count: Optional[int] = None
        self.range_bounds: Optional[tuple] = None

    # operations
    def select(self, columns: str = "*", **kwargs):
        if self.operation == "select":
            self.columns = columns
        return self

    def insert(self, payload):
        self.operation, self.payload = "insert", payload
        return self

    def upsert(self, payload, on_conflict: str = "", **kwargs):
        self.operation, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def update(self, payload):
        self.operation, self.payload = "update", payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    # filters
    def eq(self, column, value):
        self.filters.append(lambda row: _matches(row.get(column), value))
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: not _matches(row.get(column), value))
        return self

    def lt(self, column, value):
        self.filters.append(lambda row: _compare(row.get(column), "lt", value))
        return self

    def lte(self, column, value):
        self.filters.append(lambda row: _compare(row.get(column), "lte", value))
        return self

    def gt(self, column, value):
        self.filters.append(lambda row: _compare(row.get(column), "gt", value))
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: _compare(row.get(column), "gte", value))
        return self

    def in_(self, column, values):
        self.filters.append(lambda row: any(_matches(row.get(column), v) for v in values))
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self.order_by.append((column, desc))
        return self

    def limit(self, count):
        self.limit_count = count
        return self

    def range(self, start, end):
        self.range_bounds = (start, end)
        return self

    def _project(self, row):
        if self.columns.strip() == "*":
            return copy.deepcopy(row)
        names = [c.strip() for c in self.columns.split(",")]
        return {name: copy.deepcopy(row.get(name)) for name in names}

    def execute(self):
        self.db.queries.append((self.table_name, self.operation))
        if self.table_name in self.db.failing_tables:
            raise APIError({"message": "relation unavailable", "code": "PGRST301", "hint": None, "details": None})

        rows = self.db.tables.setdefault(self.table_name, [])
        matching = [row for row in rows if all(f(row) for f in self.filters)]

        if self.operation == "insert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.db.add_row(self.table_name, item) for item in items]
            return FakeResult(copy.deepcopy(inserted))

        if self.operation == "upsert":
            keys = [k.strip() for k in (self.on_conflict or "id").split(",")]
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            saved = []
            for item in items:
                existing = next(
                    (r for r in rows if all(_matches(r.get(k), item.get(k)) for k in keys)),
                    None,
                )
                if existing is not None:
                    existing.update(copy.deepcopy(item))
                    saved.append(existing)
                else:
                    saved.append(self.db.add_row(self.table_name, item))
            return FakeResult(copy.deepcopy(saved))

        if self.operation == "update":
            for row in matching:
                row.update(copy.deepcopy(self.payload))
            return FakeResult(copy.deepcopy(matching))

        if self.operation == "delete":
            self.db.tables[self.table_name] = [row for row in rows if row not in matching]
            return FakeResult(copy.deepcopy(matching))

        for column, desc in reversed(self.order_by):
            matching.sort(key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
        if self.range_bounds:
            start, end = self.range_bounds
            matching = matching[start:end + 1]
        if self.limit_count is not None:
            matching = matching[: self.limit_count]
        return FakeResult([self._project(row) for row in matching])


class FakeAdminAuth:
    def __init__(self, db: "FakeSupabase"):
        self.db = db

    def list_users(self, page=None, per_page=None):
        self.db.queries.append(("auth.users", page))
        if page is None or per_page is None:
            return list(self.db.auth_users[:50])
        start = (page - 1) * per_page
        return list(self.db.auth_users[start:start + per_page])


class FakeAuth:
    def __init__(self, db: "FakeSupabase"):
        self.db = db
        self.admin = FakeAdminAuth(db)

    def get_user(self, token):
        user = self.db.tokens.get(token)
        if user is None:
            raise Exception("invalid JWT")
        return SimpleNamespace(user=user)


class FakeSupabase:
    """In-memory Supabase client."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.tokens: Dict[str, Any] = {}
        self.auth_users: List[Any] = []
        self.failing_tables: set = set()
        self.queries: List = []
        self._ids = itertools.count(1)
        self.auth = FakeAuth(self)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def add_row(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        stored = copy.deepcopy(row)
        stored.setdefault("id", next(self._ids))
        self.tables.setdefault(table, []).append(stored)
        return stored

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])

    def add_user(self, token: str, user_id: str, email: str, **extra):
        user = SimpleNamespace(
            id=user_id,
            email=email,
            user_metadata={},
            app_metadata={"provider": "email"},
            created_at=extra.get("created_at", "2025-01-01T00:00:00+00:00"),
            last_sign_in_at=extra.get("last_sign_in_at"),
            confirmed_at=extra.get("confirmed_at", "2025-01-01T00:00:00+00:00"),
            email_confirmed_at=extra.get("confirmed_at", "2025-01-01T00:00:00+00:00"),
        )
        self.tokens[token] = user
        self.auth_users.append(user)
        return user


class FakeResponse:
    """aiohttp response stand-in usable as an async context manager."""

    def __init__(
        self,
        status: int = 200,
        json_data: Any = None,
        text: Optional[str] = None,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
    ):
        self.status = status
        self._json = json_data
        self._text = text
        self._body = body
        self.headers = headers or {}

    async def read(self):
        return self._body

    async def json(self, content_type=None):
        if self._json is None and self._text is not None:
            return json.loads(self._text)
        return self._json

    async def text(self):
        if self._text is not None:
            return self._text
        return json.dumps(self._json) if self._json is not None else ""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """
    aiohttp.ClientSession stand-in.

    ``routes`` maps a URL substring to a FakeResponse, or to a list of responses
    returned in order. Unmatched URLs get a 404.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes = routes or {}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def _request(self, method: str, url: str, **kwargs) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        for fragment, response in self.routes.items():
            if fragment in url:
                if isinstance(response, list):
                    return response.pop(0) if len(response) > 1 else response[0]
                return response
        return FakeResponse(404, {"error": "not found"})

    def get(self, url, **kwargs):
        return self._request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._request("POST", url, **kwargs)

    def delete(self, url, **kwargs):
        return self._request("DELETE", url, **kwargs)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def app_client(fake_supabase):
    """TestClient with Supabase dependencies pointed at the in-memory fake."""
    from fastapi.testclient import TestClient
    from .api.main import app
    from .database.client import get_supabase_admin, get_supabase_client

    fake_supabase.add_user("user-token", "user-1", "user@example.com")
    fake_supabase.add_user("admin-token", "admin-1", "Admin@Example.com")

    app.dependency_overrides[get_supabase_client] = lambda: fake_supabase
    app.dependency_overrides[get_supabase_admin] = lambda: fake_supabase
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer user-token"}


@pytest.fixture
def admin_headers(monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", " admin@example.com ")
    return {"Authorization": "Bearer admin-token"}
