# store.py
import os
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Union

import mysql.connector
from pydantic import ValidationError

from db import get_conn, ensure_schema
from errors import DecodeError, StoreError
from models import Admin, Category, Item, LoanRecord, Snapshot, Unit, User
from security import hash_password

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------
# Seed set (inserted when categories and items are both empty)
# --------------------------------------------------------------------------
SEED_CATEGORIES = [
    {"name": "Laptop"},
    {"name": "Peripherals"},
    {"name": "Kabel & Adaptor"},
    {"name": "Monitor"},
    {"name": "Lainnya"},
]

SEED_UNITS = [
    {"name": "IT Development"},
    {"name": "Human Resources"},
    {"name": "Finance"},
    {"name": "Marketing"},
]

SEED_ADMIN_USERNAME = os.getenv("SEED_ADMIN_USERNAME", "admin")
SEED_ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD", "password")

OPERATION_LABELS = {
    "fetch": "memuat",
    "insert": "menyimpan",
    "update": "memperbarui",
    "delete": "menghapus",
    "schema": "menyiapkan",
}


def _to_db(value: Any) -> Any:
    # DATETIME columns hold naive UTC
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    if isinstance(value, Enum):
        return value.value
    return value


class Collection:
    def __init__(self, table: str, model, order_by: str = "name", descending: bool = False):
        self.table = table
        self.model = model
        self.order_by = order_by
        self.descending = descending
        self.columns: List[str] = list(model.model_fields)
        self.store: "Store" = None

    @property
    def writable(self) -> List[str]:
        return [c for c in self.columns if c != "id"]

    def check_fields(self, fields: Iterable[str]) -> None:
        unknown = set(fields) - set(self.writable)
        if unknown:
            raise ValueError(f"unknown column(s) for {self.table}: {', '.join(sorted(unknown))}")

    def error(self, operation: str, exc: BaseException) -> StoreError:
        logger.error("%s.%s failed: %r", self.table, operation, exc)
        label = OPERATION_LABELS.get(operation, operation)
        return StoreError(self.table, operation, f"Gagal {label} data {self.table}.", cause=exc)

    def decode(self, rows: Iterable[Dict[str, Any]]) -> list:
        out = []
        for r in rows:
            try:
                out.append(self.model.model_validate(r))
            except ValidationError as e:
                logger.error("%s row id=%s does not decode: %s", self.table, r.get("id"), e)
                raise DecodeError(
                    self.table, "fetch",
                    f"Data {self.table} tidak valid (id={r.get('id')}).", cause=e,
                ) from e
        return out

    @contextmanager
    def _cursor(self, operation: str, dictionary: bool = False):
        try:
            conn = self.store.connect()
        except mysql.connector.Error as e:
            raise self.error(operation, e) from e
        cur = None
        try:
            cur = conn.cursor(dictionary=dictionary)
            yield conn, cur
        except mysql.connector.Error as e:
            raise self.error(operation, e) from e
        finally:
            if cur is not None:
                cur.close()
            conn.close()

    # ----------------------------------------------------------------------
    # Operations
    # ----------------------------------------------------------------------
    def fetch_all(self) -> list:
        direction = "DESC" if self.descending else "ASC"
        sql = (
            f"SELECT {', '.join(self.columns)} FROM {self.table} "
            f"ORDER BY {self.order_by} {direction}, id {direction}"
        )
        with self._cursor("fetch", dictionary=True) as (conn, cur):
            cur.execute(sql)
            rows = cur.fetchall()
        return self.decode(rows)

    def insert(self, records: Union[Dict[str, Any], List[Dict[str, Any]]]) -> List[int]:
        if isinstance(records, dict):
            records = [records]
        records = [dict(r) for r in records]
        if not records:
            return []
        for r in records:
            self.check_fields(r)
        ids: List[int] = []
        with self._cursor("insert") as (conn, cur):
            for r in records:
                cols = list(r)
                placeholders = ", ".join(["%s"] * len(cols))
                cur.execute(
                    f"INSERT INTO {self.table} ({', '.join(cols)}) VALUES ({placeholders})",
                    tuple(_to_db(r[c]) for c in cols),
                )
                ids.append(int(cur.lastrowid))
            conn.commit()
        return ids

    def update(self, record_id: int, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        self.check_fields(fields)
        cols = list(fields)
        assignments = ", ".join(f"{c}=%s" for c in cols)
        with self._cursor("update") as (conn, cur):
            cur.execute(
                f"UPDATE {self.table} SET {assignments} WHERE id=%s",
                tuple(_to_db(fields[c]) for c in cols) + (record_id,),
            )
            conn.commit()

    def delete(self, record_id: int) -> None:
        with self._cursor("delete") as (conn, cur):
            cur.execute(f"DELETE FROM {self.table} WHERE id=%s", (record_id,))
            conn.commit()


class Store:
    collection_class = Collection

    def __init__(self, conn_factory: Callable = get_conn):
        self.conn_factory = conn_factory
        self.categories = self._collection("categories", Category)
        self.items = self._collection("items", Item)
        self.units = self._collection("units", Unit)
        self.users = self._collection("users", User)
        self.admins = self._collection("admins", Admin, order_by="id")
        self.loans = self._collection("loan_records", LoanRecord, order_by="borrow_date", descending=True)

    def _collection(self, table: str, model, **kwargs) -> Collection:
        coll = self.collection_class(table, model, **kwargs)
        coll.store = self
        return coll

    def connect(self):
        return self.conn_factory()

    def ensure_schema(self) -> None:
        try:
            conn = self.connect()
        except mysql.connector.Error as e:
            logger.error("schema bootstrap failed: %r", e)
            raise StoreError("*", "schema", "Gagal menyiapkan database.", cause=e) from e
        try:
            ensure_schema(conn)
        except mysql.connector.Error as e:
            logger.error("schema bootstrap failed: %r", e)
            raise StoreError("*", "schema", "Gagal menyiapkan database.", cause=e) from e
        finally:
            conn.close()

    def fetch_snapshot(self) -> Snapshot:
        return Snapshot(
            categories=self.categories.fetch_all(),
            items=self.items.fetch_all(),
            units=self.units.fetch_all(),
            users=self.users.fetch_all(),
            admins=self.admins.fetch_all(),
            loans=self.loans.fetch_all(),
            fetched_at=datetime.now(timezone.utc),
        )

    def seed(self) -> None:
        logger.info("empty database, seeding categories, units and default admin")
        self.categories.insert(SEED_CATEGORIES)
        self.units.insert(SEED_UNITS)
        if not self.admins.fetch_all():
            self.admins.insert({
                "username": SEED_ADMIN_USERNAME,
                "password": hash_password(SEED_ADMIN_PASSWORD),
            })
