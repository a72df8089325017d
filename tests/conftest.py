"""
Shared test fixtures: an in-memory stand-in for the Supabase client.

Implements only the query-builder calls the push store makes:
table().select().not_.is_().eq().limit().execute(), table().upsert(),
and rpc().execute(). Rows live in plain lists so tests can assert on
what the scheduler wrote.
"""

from types import SimpleNamespace
from typing import Any, Callable

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._filters: list[Callable[[dict], bool]] = []
        self._negate_next = False
        self._limit: int | None = None
        self._upsert: tuple[dict, list[str], bool] | None = None

    def select(self, *columns: str) -> "FakeQuery":
        return self

    @property
    def not_(self) -> "FakeQuery":
        self._negate_next = True
        return self

    def _add_filter(self, predicate: Callable[[dict], bool]) -> "FakeQuery":
        if self._negate_next:
            self._negate_next = False
            self._filters.append(lambda row: not predicate(row))
        else:
            self._filters.append(predicate)
        return self

    def is_(self, column: str, value: str) -> "FakeQuery":
        assert value == "null"
        return self._add_filter(lambda row: row.get(column) is None)

    def eq(self, column: str, value: Any) -> "FakeQuery":
        return self._add_filter(lambda row: row.get(column) == value)

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def upsert(
        self,
        row: dict,
        *,
        on_conflict: str = "",
        ignore_duplicates: bool = False,
    ) -> "FakeQuery":
        keys = [k.strip() for k in on_conflict.split(",") if k.strip()]
        self._upsert = (row, keys, ignore_duplicates)
        return self

    def execute(self) -> SimpleNamespace:
        self._db.calls.append(self._table)
        if self._table in self._db.failing_tables:
            raise Exception(f"connection reset while querying {self._table}")

        rows = self._db.tables.setdefault(self._table, [])

        if self._upsert is not None:
            row, keys, ignore_duplicates = self._upsert
            for existing in rows:
                if keys and all(existing.get(k) == row.get(k) for k in keys):
                    if not ignore_duplicates:
                        existing.update(row)
                    return SimpleNamespace(data=[])
            new_row = {"id": f"row-{len(rows) + 1}", **row}
            rows.append(new_row)
            return SimpleNamespace(data=[new_row])

        matched = [r for r in rows if all(f(r) for f in self._filters)]
        if self._limit is not None:
            matched = matched[: self._limit]
        return SimpleNamespace(data=[dict(r) for r in matched])


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: dict):
        self._db = db
        self._name = name
        self._params = params

    def execute(self) -> SimpleNamespace:
        self._db.rpc_calls.append((self._name, self._params))
        handler = self._db.rpc_handlers[self._name]
        return SimpleNamespace(data=handler(**self._params))


class FakeSupabase:
    """In-memory Supabase client double."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.rpc_handlers: dict[str, Callable[..., Any]] = {
            "has_answered_today": lambda p_user_id, p_tz: False,
        }
        self.failing_tables: set[str] = set()
        self.calls: list[str] = []
        self.rpc_calls: list[tuple[str, dict]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict) -> FakeRpc:
        return FakeRpc(self, name, params)

    def add_subscriber(
        self,
        user_id: str,
        timezone: str | None,
        status: str | None = "inactive",
        entitlement_status: str | None = None,
    ) -> None:
        self.tables.setdefault("user_subscriptions", []).append({
            "user_id": user_id,
            "timezone": timezone,
            "status": status,
            "entitlement_status": entitlement_status,
        })

    def delivery_log(self) -> list[dict]:
        return self.tables.get("user_push_delivery_log", [])


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture(scope="session")
def es256_private_key_pem() -> str:
    """A freshly generated P-256 key in PKCS#8 PEM, like an APNs .p8 file."""
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
