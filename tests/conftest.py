"""
Shared test fixtures.

The Supabase client is replaced by an in-memory fake that keeps table rows
and applies filters, so services can be exercised end to end without a
database.
"""

import os
import sys
from pathlib import Path

# Add project root to Python path
root_dir = Path(__file__).parent.parent
sys.path.insert(0, str(root_dir))

# Settings require these at import time
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import copy
import threading
import pytest
from unittest.mock import patch
from typing import Any, Generator, Optional

from models.pricing import PricingConfig


# ===================
# MOCK SUPABASE CLIENT
# ===================

# Unique keys enforced on insert, mirroring the migrations
UNIQUE_KEYS = {
    "products": ("sku",),
    "categories": ("slug",),
    "product_categories": ("product_id", "category_id"),
    "product_images": ("product_id", "url"),
    "staging_products": ("import_batch_id", "row_number"),
    "schema_migrations": ("version",),
}


class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: Any = None, count: Optional[int] = None):
        self.data = data if data is not None else []
        self.count = count


class MockSupabaseQuery:
    """
    Chainable query builder over the mock client's tables.

    Supports the subset the services use: select/insert/upsert/update/
    delete with eq/neq/in_ filters, order, range, limit and single.
    """

    def __init__(self, client: "MockSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._columns: Optional[list[str]] = None
        self._count: Optional[str] = None
        self._filters: list = []
        self._order: list[tuple[str, bool]] = []
        self._range: Optional[tuple[int, int]] = None
        self._limit: Optional[int] = None
        self._single = False
        self._on_conflict: Optional[str] = None
        self._ignore_duplicates = False

    # Operations

    def select(self, columns: str = "*", count: Optional[str] = None):
        self._op = "select"
        cols = [c.strip() for c in columns.split(",")]
        self._columns = None if "*" in cols else cols
        self._count = count
        return self

    def insert(self, data):
        self._op = "insert"
        self._payload = data
        return self

    def upsert(self, data, on_conflict: str = "", ignore_duplicates: bool = False, **kwargs):
        self._op = "upsert"
        self._payload = data
        self._on_conflict = on_conflict
        self._ignore_duplicates = ignore_duplicates
        return self

    def update(self, data):
        self._op = "update"
        self._payload = data
        return self

    def delete(self):
        self._op = "delete"
        return self

    # Filters and modifiers

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        # SQL semantics: NULL <> x is not true
        self._filters.append(lambda row: row.get(column) is not None and row.get(column) != value)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self._order.append((column, desc))
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def single(self):
        self._single = True
        return self

    # Execution

    def execute(self) -> MockSupabaseResponse:
        self._client.calls.append((self._table, self._op))
        failure = self._client.failures.get((self._table, self._op))
        if failure:
            raise failure

        with self._client.lock:
            rows = self._client.tables.setdefault(self._table, [])
            handler = getattr(self, f"_exec_{self._op}")
            return handler(rows)

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def _exec_select(self, rows: list[dict]) -> MockSupabaseResponse:
        found = [copy.deepcopy(r) for r in rows if self._matches(r)]
        for column, desc in reversed(self._order):
            found.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        total = len(found)
        if self._range:
            found = found[self._range[0]:self._range[1] + 1]
        if self._limit is not None:
            found = found[:self._limit]
        if self._columns:
            found = [{c: r.get(c) for c in self._columns} for r in found]
        if self._single:
            return MockSupabaseResponse(data=found[0] if found else None, count=total)
        return MockSupabaseResponse(data=found, count=total if self._count else None)

    def _items(self) -> list[dict]:
        payload = self._payload
        items = payload if isinstance(payload, list) else [payload]
        return [copy.deepcopy(i) for i in items]

    def _exec_insert(self, rows: list[dict]) -> MockSupabaseResponse:
        inserted = []
        for item in self._items():
            self._check_unique(rows, item)
            inserted.append(self._client.add_row(self._table, item))
        return MockSupabaseResponse(data=copy.deepcopy(inserted))

    def _exec_upsert(self, rows: list[dict]) -> MockSupabaseResponse:
        keys = [k.strip() for k in (self._on_conflict or "").split(",") if k.strip()]
        if not keys:
            keys = list(UNIQUE_KEYS.get(self._table, ("id",)))
        written = []
        for item in self._items():
            existing = next(
                (r for r in rows if all(r.get(k) == item.get(k) for k in keys)),
                None
            )
            if existing is None:
                written.append(self._client.add_row(self._table, item))
            elif not self._ignore_duplicates:
                existing.update(item)
                written.append(existing)
        return MockSupabaseResponse(data=copy.deepcopy(written))

    def _exec_update(self, rows: list[dict]) -> MockSupabaseResponse:
        updated = []
        for row in rows:
            if self._matches(row):
                row.update(copy.deepcopy(self._payload))
                updated.append(row)
        return MockSupabaseResponse(data=copy.deepcopy(updated))

    def _exec_delete(self, rows: list[dict]) -> MockSupabaseResponse:
        removed = [r for r in rows if self._matches(r)]
        rows[:] = [r for r in rows if not self._matches(r)]
        return MockSupabaseResponse(data=removed)

    def _check_unique(self, rows: list[dict], item: dict) -> None:
        keys = UNIQUE_KEYS.get(self._table)
        if not keys:
            return
        for row in rows:
            if all(row.get(k) == item.get(k) for k in keys):
                raise Exception(
                    f'duplicate key value violates unique constraint on {self._table} {keys}'
                )


class MockRpcCall:
    """Result of client.rpc(); executes lazily like the real client."""

    def __init__(self, client: "MockSupabaseClient", name: str, params: dict):
        self._client = client
        self._name = name
        self._params = params

    def execute(self) -> MockSupabaseResponse:
        self._client.rpc_calls.append((self._name, self._params))
        failure = self._client.failures.get(("rpc", self._name))
        if failure:
            raise failure
        handler = getattr(self._client, f"_rpc_{self._name}", None)
        if handler is None:
            return MockSupabaseResponse(data=None)
        with self._client.lock:
            return MockSupabaseResponse(data=handler(copy.deepcopy(self._params)))


def _check_product_columns(record: dict) -> None:
    """Raise like Postgres when a value does not fit the products columns."""
    if not record.get("sku"):
        raise Exception('null value in column "sku" violates not-null constraint')
    currency = record.get("currency")
    if currency is not None and len(currency) > 3:
        raise Exception("value too long for type character(3)")
    stock = record.get("stock")
    if stock is not None and not -2 ** 31 <= stock <= 2 ** 31 - 1:
        raise Exception("integer out of range")
    price = record.get("price")
    if price is not None and abs(price) >= 10 ** 10:
        raise Exception("numeric field overflow")


class MockStorageBucket:
    def __init__(self, storage: "MockStorage", bucket: str):
        self._storage = storage
        self._bucket = bucket

    def upload(self, path: str, file: bytes, file_options: Optional[dict] = None):
        if self._storage.failure:
            raise self._storage.failure
        self._storage.files[(self._bucket, path)] = file
        return {"path": path}

    def get_public_url(self, path: str) -> str:
        return f"https://storage.test/{self._bucket}/{path}"


class MockStorage:
    """In-memory object storage keyed by (bucket, path)."""

    def __init__(self):
        self.files: dict[tuple[str, str], bytes] = {}
        self.failure: Optional[Exception] = None

    def from_(self, bucket: str) -> MockStorageBucket:
        return MockStorageBucket(self, bucket)


class MockSupabaseClient:
    """
    Mock Supabase client with in-memory tables.

    Attributes:
        tables: table name → list of row dicts
        calls: (table, operation) per executed query
        rpc_calls: (function, params) per executed rpc
        failures: (table, op) or ("rpc", name) → exception to raise
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.rpc_calls: list[tuple[str, dict]] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self.storage = MockStorage()
        self.lock = threading.RLock()
        self._next_id: dict[str, int] = {}

    def set_table_data(self, table_name: str, data: list):
        """Configure rows for a table (ids are kept if given)."""
        self.tables[table_name] = [copy.deepcopy(r) for r in data]
        ids = [r["id"] for r in data if isinstance(r.get("id"), int)]
        self._next_id[table_name] = max(ids, default=0) + 1

    def rows(self, table_name: str) -> list[dict]:
        """Copy of the current rows of a table."""
        return copy.deepcopy(self.tables.get(table_name, []))

    def add_row(self, table_name: str, item: dict) -> dict:
        next_id = self._next_id.get(table_name, 1)
        row = {"id": next_id, **item}
        self._next_id[table_name] = next_id + 1
        self.tables.setdefault(table_name, []).append(row)
        return row

    def fail(self, table_name: str, op: str, error: Optional[Exception] = None):
        """Make every matching query raise."""
        self.failures[(table_name, op)] = error or Exception(f"{table_name} {op} failed")

    def count_calls(self, table_name: str, op: str) -> int:
        return sum(1 for c in self.calls if c == (table_name, op))

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self, name)

    def rpc(self, name: str, params: Optional[dict] = None) -> MockRpcCall:
        return MockRpcCall(self, name, params or {})

    def _rpc_upsert_products(self, params: dict) -> list[dict]:
        """Same rules as the upsert_products function in migrations/0005."""
        records = params.get("p_rows") or []
        # One statement: a bad record rejects the whole call
        for record in records:
            _check_product_columns(record)

        rows = self.tables.setdefault("products", [])
        returned = []
        for r in records:
            price = r.get("price")
            valid_price = price is not None and price > 0
            product = next((p for p in rows if p.get("sku") == r["sku"]), None)
            if product is None:
                product = self.add_row("products", {
                    "sku": r["sku"],
                    "name": r["name"] if r.get("name") is not None else r["sku"],
                    "description": r.get("description"),
                    "price": price if valid_price else params.get("p_min_price", 0),
                    "currency": r.get("currency") or params.get("p_currency", "UAH"),
                    "stock": r["stock"] if r.get("stock") is not None else 0,
                    "attributes": r.get("attributes") or {},
                    "pricing_method": r.get("pricing_method"),
                    "pricing": r.get("pricing"),
                    "image_url": r.get("image_url"),
                })
            else:
                for column in ("name", "description", "currency", "stock", "image_url"):
                    if r.get(column) is not None:
                        product[column] = r[column]
                if valid_price:
                    product["price"] = price
                product["attributes"] = {
                    **(product.get("attributes") or {}),
                    **(r.get("attributes") or {}),
                }
                product["pricing_method"] = r.get("pricing_method")
                product["pricing"] = r.get("pricing")
            returned.append({"product_id": product["id"], "product_sku": product["sku"]})
        return returned


# ===================
# FIXTURES
# ===================

SERVICE_MODULES = (
    "config.database",
    "services.staging_service",
    "services.pricing_service",
    "services.catalog_merge_service",
    "services.media_sync_service",
    "services.report_service",
    "services.schema_service",
)


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("products", [
                {"id": 1, "sku": "MUG-1", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock in every service module.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("products", [...])
            # Now any service using get_supabase_client() gets the mock
    """
    patchers = [
        patch(f"{module}.get_supabase_client", return_value=mock_supabase)
        for module in SERVICE_MODULES
    ]
    patchers.append(patch("services.schema_service.get_admin_client", return_value=None))

    for p in patchers:
        p.start()
    try:
        yield mock_supabase
    finally:
        for p in reversed(patchers):
            p.stop()


@pytest.fixture
def pricing_config() -> PricingConfig:
    """
    Pricing configuration with round numbers.

    A 50 g PLA item printed for 120 min costs:
        material 30 + energy 1 + machine 20 + labor 30 = 81
        overhead 10% → 89.1, margin 30% → 115.83, fees 8% → 125.90
    """
    return PricingConfig.model_validate({
        "currency": "UAH",
        "energy": {"kwh_rate": 5.0, "printer_power_w": 100},
        "labor": {"hourly_rate": 120, "prepare_min": 10, "postprocess_min_default": 5},
        "machine": {"hourly_rate": 10},
        "materials": {"PLA_kg": 600, "PETG_kg": 800, "RESIN_L": 2000},
        "overhead": {"percent_of_cost": 0.1},
        "profit": {"target_margin_pct": 0.3},
        "fees": {
            "acquiring_pct": 0.02,
            "marketplace_pct": 0.0,
            "single_tax_pct": 0.05,
            "war_tax_pct": 0.01,
            "vat_pct": 0.2,
            "include_vat_in_price": False,
        },
        "rounding": {"strategy": "up_5", "min_price": 10},
    })


@pytest.fixture
def job_queue():
    """Fresh job queue (not the process-wide one)."""
    from jobs.queue import JobQueue
    return JobQueue()


@pytest.fixture
def media_root(tmp_path) -> Path:
    """Empty media directory inside the test's tmp dir."""
    root = tmp_path / "media"
    root.mkdir()
    return root


MEDIA_BASE_URL = "http://cdn.test/uploads"


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db, pricing_config, job_queue):
    """
    Create FastAPI test client with mocked database and a fresh queue.

    The lifespan is not run, so no migrations or worker threads start.
    """
    from fastapi.testclient import TestClient
    from main import app
    from services.pricing_service import PricingService

    pricing_service = PricingService(pricing_config)

    with patch("routes.imports.get_job_queue", return_value=job_queue), \
         patch("routes.jobs.get_job_queue", return_value=job_queue), \
         patch("routes.media.get_job_queue", return_value=job_queue), \
         patch("routes.pricing.get_pricing_service", return_value=pricing_service):
        yield TestClient(app)
