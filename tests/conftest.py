"""
Shared test fixtures.

The Supabase fake below keeps rows per table in memory and really applies
filters, ordering, paging and unique keys, so services can be exercised
end to end without a database.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are read at import time
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ["RISK_SCHEDULER_ENABLED"] = "false"

import copy
import pytest
from unittest.mock import patch
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generator, Optional
from uuid import uuid4

from models.cargoes_flow import CargoesFlowResult, DocumentUploadResult

# ===================
# MOCK SUPABASE CLIENT
# ===================

UNIQUE_KEYS = {
    "shipments": ("reference_number",),
    "missing_mbl_shipments": ("shipment_reference",),
}


class MockUniqueViolation(Exception):
    """Raised like PostgREST does on a duplicate key."""


class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


def _ilike(value: Any, pattern: str) -> bool:
    if value is None:
        return False
    return pattern.strip("%").lower() in str(value).lower()


def _split_or_expression(expression: str) -> list[str]:
    """Split on commas outside double quotes, as PostgREST does."""
    parts, current, quoted, escaped = [], [], False, False
    for char in expression:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            current.append(char)
            escaped = True
        elif char == '"':
            current.append(char)
            quoted = not quoted
        elif char == "," and not quoted:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    if quoted:
        raise ValueError(f"unterminated quote in filter: {expression}")
    parts.append("".join(current))
    return parts


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1]
        result, escaped = [], False
        for char in value:
            if escaped:
                result.append(char)
                escaped = False
            elif char == "\\":
                escaped = True
            else:
                result.append(char)
        return "".join(result)
    if any(char in value for char in ',()"'):
        raise ValueError(f"reserved character in unquoted filter value: {value}")
    return value


class MockSupabaseQuery:
    """Chainable query builder that runs against MockSupabaseClient's rows."""

    def __init__(self, client: "MockSupabaseClient", table_name: str):
        self._client = client
        self._table = table_name
        self._action = "select"
        self._payload: Any = None
        self._filters: list[Callable[[dict], bool]] = []
        self._order: Optional[tuple[str, bool]] = None
        self._range: Optional[tuple[int, int]] = None
        self._limit: Optional[int] = None
        self._count_requested = False

    # Actions

    def select(self, *columns, count: Optional[str] = None):
        self._action = "select"
        self._count_requested = count is not None
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

    # Filters

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def contains(self, column, values):
        def match(row):
            current = row.get(column)
            return current is not None and all(v in current for v in values)
        self._filters.append(match)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def or_(self, expression: str):
        conditions = []
        for part in _split_or_expression(expression):
            column, operator, pattern = part.split(".", 2)
            conditions.append((column, operator, _unquote(pattern)))

        def match(row):
            return any(
                _ilike(row.get(column), pattern)
                for column, operator, pattern in conditions
                if operator == "ilike"
            )
        self._filters.append(match)
        return self

    # Shaping

    def order(self, column, desc: bool = False):
        self._order = (column, desc)
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def execute(self) -> MockSupabaseResponse:
        rows = self._client.rows(self._table)

        if self._action == "insert":
            items = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = [self._client.insert_row(self._table, item) for item in items]
            return MockSupabaseResponse(data=copy.deepcopy(inserted))

        matched = [row for row in rows if all(f(row) for f in self._filters)]

        if self._action == "update":
            for row in matched:
                row.update(copy.deepcopy(self._payload))
            return MockSupabaseResponse(data=copy.deepcopy(matched))

        if self._action == "delete":
            for row in matched:
                rows.remove(row)
            return MockSupabaseResponse(data=copy.deepcopy(matched))

        total = len(matched)
        if self._order:
            column, desc = self._order
            matched = sorted(
                matched,
                key=lambda row: (row.get(column) is None, str(row.get(column))),
                reverse=desc
            )
        if self._range:
            start, end = self._range
            matched = matched[start:end + 1]
        if self._limit is not None:
            matched = matched[:self._limit]

        return MockSupabaseResponse(
            data=copy.deepcopy(matched),
            count=total if self._count_requested else None
        )


class MockSupabaseClient:
    """In-memory Supabase client."""

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._tick = 0

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Seed a table with rows (ids are kept as given)."""
        self._tables[table_name] = [copy.deepcopy(row) for row in data]

    def rows(self, table_name: str) -> list[dict]:
        """Live row list for a table."""
        return self._tables.setdefault(table_name, [])

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self, name)

    def _timestamp(self) -> str:
        # Strictly increasing, so "newest first" ordering is deterministic
        self._tick += 1
        return (datetime.now(timezone.utc) + timedelta(microseconds=self._tick)).isoformat()

    def insert_row(self, table_name: str, item: dict) -> dict:
        rows = self.rows(table_name)
        for column in UNIQUE_KEYS.get(table_name, ()):
            value = item.get(column)
            if value is not None and any(row.get(column) == value for row in rows):
                raise MockUniqueViolation(
                    f'duplicate key value violates unique constraint "{table_name}_{column}_key"'
                )

        row = copy.deepcopy(item)
        now = self._timestamp()
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", now)
        row.setdefault("updated_at", now)
        if table_name == "webhook_logs":
            row.setdefault("received_at", now)
        rows.append(row)
        return row


# ===================
# FAKE CARGOES FLOW CLIENT
# ===================

class FakeCargoesFlowClient:
    """Records calls; results are set per test."""

    def __init__(self):
        self.is_configured = True
        self.create_calls: list[str] = []
        self.update_calls: list[tuple[str, dict]] = []
        self.upload_calls: list[tuple[str, list]] = []
        self.carrier_list_calls = 0

        self.create_result = CargoesFlowResult(success=True, response={"result": "SUCCESS"})
        self.update_result = CargoesFlowResult(success=True, response={"result": "SUCCESS"})
        self.upload_result = DocumentUploadResult(success=True, results=[])
        self.carriers: list[dict] = []
        self.carrier_error: Optional[Exception] = None

    def create_shipment(self, mbl_number: str) -> CargoesFlowResult:
        self.create_calls.append(mbl_number)
        return self.create_result

    def update_shipment(self, shipment_number: str, update_data: dict) -> CargoesFlowResult:
        self.update_calls.append((shipment_number, update_data))
        return self.update_result

    def upload_documents(self, shipment_number: str, files: list) -> DocumentUploadResult:
        self.upload_calls.append((shipment_number, files))
        return self.upload_result

    def get_carrier_list(self) -> list[dict]:
        self.carrier_list_calls += 1
        if self.carrier_error:
            raise self.carrier_error
        return self.carriers

    def carrier_list_request(self) -> str:
        return "GET https://cargoes.test/carrierList"


# ===================
# FIXTURES
# ===================

SERVICE_MODULES = [
    "services.shipment_service",
    "services.milestone_service",
    "services.webhook_log_service",
    "services.cargoes_flow_service",
]

SINGLETONS = [
    ("services.shipment_service", "_shipment_service"),
    ("services.milestone_service", "_milestone_service"),
    ("services.webhook_log_service", "_webhook_log_service"),
    ("services.cargoes_flow_service", "_cargoes_flow_service"),
    ("services.cargoes_flow_forwarder", "_forwarder"),
    ("services.tms_webhook_service", "_tms_webhook_service"),
    ("services.risk_assessment_service", "_risk_assessment_service"),
    ("services.carrier_sync_service", "_carrier_sync_service"),
    ("integrations.cargoes_flow", "_cargoes_flow_client"),
]


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch):
    """Fresh service instances (and no webhook secret) for every test."""
    import importlib
    from config import settings

    for module_name, attribute in SINGLETONS:
        monkeypatch.setattr(importlib.import_module(module_name), attribute, None)

    monkeypatch.setattr(settings, "tms_webhook_secret", None)


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create an in-memory Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("shipments", [ShipmentFactory.create()])
    """
    return MockSupabaseClient()


@pytest.fixture
def fake_cargoes_flow() -> FakeCargoesFlowClient:
    return FakeCargoesFlowClient()


@pytest.fixture
def mock_db(mock_supabase, fake_cargoes_flow) -> Generator:
    """
    Patch the database client and the Cargoes Flow client.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("shipments", [...])
            # Any service built now uses the in-memory client
    """
    patches = [
        patch(f"{module}.get_supabase_client", return_value=mock_supabase)
        for module in SERVICE_MODULES
    ]
    patches.append(patch("config.database.get_supabase_client", return_value=mock_supabase))
    patches.append(patch(
        "services.cargoes_flow_forwarder.get_cargoes_flow_client",
        return_value=fake_cargoes_flow
    ))
    patches.append(patch(
        "services.carrier_sync_service.get_cargoes_flow_client",
        return_value=fake_cargoes_flow
    ))

    for p in patches:
        p.start()
    try:
        yield mock_supabase
    finally:
        for p in reversed(patches):
            p.stop()


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    Create FastAPI test client with the in-memory database.

    The lifespan is not entered, so the risk scheduler never starts.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_supabase):
            response = test_client_with_mock_db.get("/api/shipments")
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)
