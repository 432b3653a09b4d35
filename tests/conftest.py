"""Shared fixtures: an in-memory stand-in for the Supabase table API."""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from taxidispatch.auth.service import AuthService
from taxidispatch.config import DispatchSettings
from taxidispatch.data.analytics import AnalyticsStore
from taxidispatch.data.driver_store import DriverStore
from taxidispatch.data.operator_store import OperatorStore
from taxidispatch.data.trip_store import TripStore
from taxidispatch.data.user_store import UserStore


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and len(value) >= 10 and value[4:5] == "-":
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _comparable(value: Any) -> Any:
    parsed = _parse_datetime(value)
    return parsed if parsed is not None else value


def _lookup(row: Dict[str, Any], column: str) -> Any:
    """Resolve plain and embedded ('users.active') columns."""
    value: Any = row
    for part in column.split("."):
        if isinstance(value, list):
            value = value[0] if value else None
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _matches(op: str, actual: Any, expected: Any) -> bool:
    if op == "is":
        return actual is None if expected in ("null", None) else actual is expected
    if op == "in":
        return actual in expected
    if op == "eq":
        return _comparable(actual) == _comparable(expected)
    if op == "neq":
        return _comparable(actual) != _comparable(expected)
    if actual is None:
        return False
    left, right = _comparable(actual), _comparable(expected)
    if op == "gt":
        return left > right
    if op == "gte":
        return left >= right
    if op == "lt":
        return left < right
    if op == "lte":
        return left <= right
    raise ValueError(f"Unsupported filter: {op}")


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Subset of the postgrest fluent builder used by the stores."""

    def __init__(self, db: "FakeSupabaseClient", table: str):
        self.db = db
        self.table_name = table
        self.action = "select"
        self.payload: Any = None
        self.count_mode: Optional[str] = None
        self.filters: List[tuple] = []
        self._negate = False
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None

    # Actions

    def select(self, columns: str = "*", count: Optional[str] = None):
        self.action = "select"
        self.count_mode = count
        return self

    def insert(self, rows):
        self.action = "insert"
        self.payload = rows
        return self

    def update(self, values):
        self.action = "update"
        self.payload = values
        return self

    def delete(self):
        self.action = "delete"
        return self

    # Filters

    def _add(self, op: str, column: str, value: Any):
        self.filters.append((op, column, value, self._negate))
        self._negate = False
        return self

    @property
    def not_(self):
        self._negate = True
        return self

    def eq(self, column, value):
        return self._add("eq", column, value)

    def neq(self, column, value):
        return self._add("neq", column, value)

    def gt(self, column, value):
        return self._add("gt", column, value)

    def gte(self, column, value):
        return self._add("gte", column, value)

    def lt(self, column, value):
        return self._add("lt", column, value)

    def lte(self, column, value):
        return self._add("lte", column, value)

    def in_(self, column, values):
        return self._add("in", column, list(values))

    def is_(self, column, value):
        return self._add("is", column, value)

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, size):
        self._limit = size
        return self

    # Execution

    def _selected(self, rows):
        return [
            row for row in rows
            if all(_matches(op, _lookup(row, column), value) != negate
                   for op, column, value, negate in self.filters)
        ]

    def execute(self) -> FakeResponse:
        self.db.queries.append(self)
        failure = self.db.failures.get((self.action, self.table_name))
        if failure is not None:
            raise failure

        rows = self.db.tables.setdefault(self.table_name, [])

        if self.action == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.db.with_defaults(self.table_name, row) for row in payload]
            rows.extend(inserted)
            return FakeResponse(copy.deepcopy(inserted))

        selected = self._selected(rows)

        if self.action == "update":
            for row in selected:
                row.update(copy.deepcopy(self.payload))
            return FakeResponse(copy.deepcopy(selected))

        if self.action == "delete":
            self.db.tables[self.table_name] = [row for row in rows if row not in selected]
            return FakeResponse(copy.deepcopy(selected))

        if self._order is not None:
            column, desc = self._order
            present = [row for row in selected if _lookup(row, column) is not None]
            missing = [row for row in selected if _lookup(row, column) is None]
            present.sort(key=lambda row: _comparable(_lookup(row, column)), reverse=desc)
            selected = present + missing

        count = len(selected) if self.count_mode else None
        if self._limit is not None:
            selected = selected[:self._limit]
        return FakeResponse(copy.deepcopy(selected), count)


class FakeRpc:
    def __init__(self, db: "FakeSupabaseClient", name: str, params: Dict[str, Any]):
        self.db = db
        self.name = name
        self.params = params

    def execute(self) -> FakeResponse:
        self.db.rpc_calls.append((self.name, self.params))
        handler = self.db.rpc_handlers.get(self.name)
        if handler is None:
            raise RuntimeError(f"No RPC handler for {self.name}")
        return FakeResponse(handler(self.params))


class FakeSupabaseClient:
    """In-memory tables behind the supabase-py table()/rpc() interface."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.queries: List[FakeQuery] = []
        self.rpc_calls: List[tuple] = []
        self.failures: Dict[tuple, Exception] = {}
        self.rpc_handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "increment_driver_balance": self._increment_balance,
        }

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)

    def with_defaults(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        defaults: Dict[str, Any] = {"id": str(uuid.uuid4()), "created_at": now.isoformat()}
        if table == "users":
            defaults["active"] = True
        elif table == "driver_profiles":
            defaults.update({"balance": 0.0, "is_on_duty": False})
        elif table == "trip_requests":
            defaults.update({
                "notified_drivers": [],
                "current_radius": row.get("search_radius"),
                "expires_at": (now + timedelta(minutes=5)).isoformat(),
            })
        return {**defaults, **copy.deepcopy(row)}

    def seed(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row directly, returning the stored copy."""
        stored = self.with_defaults(table, row)
        self.tables.setdefault(table, []).append(stored)
        return stored

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])

    def _increment_balance(self, params):
        for row in self.rows("driver_profiles"):
            if row["id"] == params["driver_id"]:
                row["balance"] = float(row.get("balance") or 0) + params["amount"]
        return None


@pytest.fixture
def fake_client():
    return FakeSupabaseClient()


@pytest.fixture
def auth_service():
    """Create auth service with test secret key."""
    return AuthService(secret_key="test-secret-key-32-characters-long!")


@pytest.fixture
def user_store(fake_client, auth_service):
    return UserStore(fake_client, auth_service)


@pytest.fixture
def driver_store(fake_client, user_store):
    return DriverStore(fake_client, user_store)


@pytest.fixture
def operator_store(fake_client, user_store):
    return OperatorStore(fake_client, user_store)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def trip_store(fake_client, sleeps):
    return TripStore(fake_client, DispatchSettings(), sleep=sleeps.append)


@pytest.fixture
def analytics_store(fake_client):
    return AnalyticsStore(fake_client)


@pytest.fixture
def seed_driver(fake_client, auth_service):
    """Create a driver user and profile directly in the fake tables."""

    def _seed(
        phone_number: str = "5550001",
        pin: str = "1234",
        active: bool = True,
        **profile: Any
    ) -> Dict[str, Any]:
        user = fake_client.seed("users", {
            "phone_number": phone_number,
            "pin": auth_service.hash_pin(pin),
            "role": "chofer",
            "active": active,
        })
        row = {
            "id": user["id"],
            "first_name": "Ana",
            "last_name": "Pérez",
            "phone_number": phone_number,
            "vehicle_type": "4_ruedas",
            "users": {"active": active, "phone_number": phone_number},
        }
        row.update(profile)
        return fake_client.seed("driver_profiles", row)

    return _seed
