import itertools
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from models import LoanStatus
from state import AppState
from store import Collection, Store

NOW = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)


class MemoryCollection(Collection):
    """
    Collection kept in a list. Operations named in ``fail`` raise the same
    StoreError the MySQL adapter would; ``calls`` records what was attempted.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.rows = []
        self.fail = set()
        self.calls = []
        self._ids = itertools.count(1)

    def _attempt(self, operation):
        self.calls.append(operation)
        if operation in self.fail:
            raise self.error(operation, RuntimeError(f"{self.table} {operation} unavailable"))

    def add(self, **fields):
        row = {c: None for c in self.writable}
        row.update(fields)
        row["id"] = next(self._ids)
        self.rows.append(row)
        return row["id"]

    def row(self, record_id):
        return next((r for r in self.rows if r["id"] == record_id), None)

    def fetch_all(self):
        self._attempt("fetch")
        rows = sorted(
            self.rows,
            key=lambda r: (r.get(self.order_by) is None, r.get(self.order_by), r["id"]),
            reverse=self.descending,
        )
        return self.decode([dict(r) for r in rows])

    def insert(self, records):
        if isinstance(records, dict):
            records = [records]
        records = [dict(r) for r in records]
        if not records:
            return []
        for r in records:
            self.check_fields(r)
        self._attempt("insert")
        return [self.add(**r) for r in records]

    def update(self, record_id, fields):
        self.check_fields(fields)
        self._attempt("update")
        row = self.row(record_id)
        if row is not None:
            row.update(fields)

    def delete(self, record_id):
        self._attempt("delete")
        self.rows = [r for r in self.rows if r["id"] != record_id]


class MemoryStore(Store):
    collection_class = MemoryCollection

    def __init__(self):
        super().__init__(conn_factory=self._no_connection)

    @staticmethod
    def _no_connection():
        raise AssertionError("the memory store never opens a connection")

    def ensure_schema(self):
        pass

    def all_calls(self):
        return [c for coll in (self.categories, self.items, self.units, self.users, self.admins, self.loans)
                for c in coll.calls]


@pytest.fixture
def empty_store():
    return MemoryStore()


@pytest.fixture
def store():
    s = MemoryStore()
    s.categories.add(name="Laptop")                    # 1
    s.categories.add(name="Monitor")                   # 2
    s.categories.add(name="Lainnya")                   # 3
    s.units.add(name="IT Development")                 # 1
    s.units.add(name="Finance")                        # 2
    s.users.add(name="Budi", unit_id=1)                # 1
    s.users.add(name="Sari", unit_id=2)                # 2
    s.admins.add(username="admin", password="password")  # 1
    s.admins.add(username="operator", password="rahasia")  # 2
    s.items.add(name="MacBook Pro M1", description="Laptop untuk tim desain",
                image_url="https://img.example/mbp.jpg", purchase_date=date(2023, 1, 15),
                category_id=1, quantity=2)             # 1
    s.items.add(name="Dell UltraSharp 27", description="Monitor 4K USB-C",
                image_url="https://img.example/dell.jpg", purchase_date=date(2022, 11, 20),
                category_id=2, quantity=0)             # 2
    s.items.add(name="Logitech MX Master 3", description="Mouse wireless ergonomis",
                image_url=None, purchase_date=date(2023, 3, 10),
                category_id=1, quantity=10)            # 3
    return s


def add_loan(store, item_id, borrower_id=1, days_ago=1, expected=7, returned=False, now=NOW, **extra):
    item = store.items.row(item_id)
    user = store.users.row(borrower_id)
    borrowed = now - timedelta(days=days_ago)
    fields = dict(
        item_id=item_id,
        item_name=item["name"] if item else "Barang lama",
        item_image=item["image_url"] if item else None,
        borrower_id=borrower_id,
        borrower_name=user["name"] if user else "Unknown",
        borrow_date=borrowed,
        return_date=now if returned else None,
        status=LoanStatus.returned if returned else LoanStatus.borrowed,
        purpose="Meeting klien",
        expected_duration=expected,
    )
    fields.update(extra)
    return store.loans.add(**fields)


@pytest.fixture
def state(store):
    s = AppState(store)
    s.refresh()
    for coll in (store.categories, store.items, store.units, store.users, store.admins, store.loans):
        coll.calls.clear()
    return s


@pytest.fixture
def client(state):
    from api import app
    app.state.lendify = state
    yield TestClient(app)
    del app.state.lendify


@pytest.fixture
def auth_headers(client):
    r = client.post("/auth/login", data={"username": "admin", "password": "password"})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}
