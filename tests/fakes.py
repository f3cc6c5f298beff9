"""In-memory stand-in for the subset of the Supabase client the services use.

Each execute() runs under one lock, mirroring a single SQL statement, so a
conditional update either matches a row or it does not, even when called
from several threads.
"""

import copy
import hashlib
import hmac
import json
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable


@dataclass
class FakeResponse:
    """Mimics postgrest's APIResponse."""

    data: Any
    count: int | None = None


class FakeQuery:
    """Chainable query builder over a list of row dicts."""

    def __init__(self, db: "FakeSupabaseClient", table: str) -> None:
        self.db = db
        self.table_name = table
        self.action = "select"
        self.columns = "*"
        self.payload: Any = None
        self.on_conflict: str | None = None
        self.filters: list[Callable[[dict[str, Any]], bool]] = []
        self.count_mode: str | None = None
        self.single = False
        self.order_by: tuple[str, bool] | None = None
        self.limit_n: int | None = None

    # Actions
    def select(self, columns: str = "*", count: str | None = None) -> "FakeQuery":
        self.action = "select"
        self.columns = columns
        self.count_mode = count
        return self

    def insert(self, payload: dict[str, Any] | list[dict[str, Any]]) -> "FakeQuery":
        self.action = "insert"
        self.payload = payload
        return self

    def upsert(self, payload: dict[str, Any], on_conflict: str = "id") -> "FakeQuery":
        self.action = "upsert"
        self.payload = payload
        self.on_conflict = on_conflict
        return self

    def update(self, payload: dict[str, Any]) -> "FakeQuery":
        self.action = "update"
        self.payload = payload
        return self

    # Filters
    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: str(row.get(column)) == str(value))
        return self

    def neq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: str(row.get(column)) != str(value))
        return self

    def in_(self, column: str, values: list[Any]) -> "FakeQuery":
        allowed = {str(v) for v in values}
        self.filters.append(lambda row: str(row.get(column)) in allowed)
        return self

    def is_(self, column: str, value: str) -> "FakeQuery":
        assert value == "null"
        self.filters.append(lambda row: row.get(column) is None)
        return self

    # Modifiers
    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.order_by = (column, desc)
        return self

    def limit(self, n: int) -> "FakeQuery":
        self.limit_n = n
        return self

    def maybe_single(self) -> "FakeQuery":
        self.single = True
        return self

    def _matches(self) -> list[dict[str, Any]]:
        rows = self.db.tables.setdefault(self.table_name, [])
        return [row for row in rows if all(f(row) for f in self.filters)]

    def _project(self, row: dict[str, Any]) -> dict[str, Any]:
        if self.columns.strip() == "*":
            return copy.deepcopy(row)
        cols = [c.strip() for c in self.columns.split(",")]
        return {c: copy.deepcopy(row.get(c)) for c in cols}

    def execute(self) -> FakeResponse:
        with self.db.lock:
            self.db.statements.append((self.action, self.table_name))
            return getattr(self, f"_execute_{self.action}")()

    def _execute_select(self) -> FakeResponse:
        rows = self._matches()
        if self.order_by:
            column, desc = self.order_by
            rows = sorted(rows, key=lambda r: str(r.get(column) or ""), reverse=desc)
        if self.limit_n is not None:
            rows = rows[: self.limit_n]
        data = [self._project(r) for r in rows]
        count = len(data) if self.count_mode else None
        if self.single:
            return FakeResponse(data=data[0] if data else None, count=count)
        return FakeResponse(data=data, count=count)

    def _execute_insert(self) -> FakeResponse:
        payloads = self.payload if isinstance(self.payload, list) else [self.payload]
        created = [self.db.add(self.table_name, p) for p in payloads]
        return FakeResponse(data=[copy.deepcopy(r) for r in created])

    def _execute_upsert(self) -> FakeResponse:
        key = self.on_conflict
        rows = self.db.tables.setdefault(self.table_name, [])
        for row in rows:
            if row.get(key) == self.payload.get(key):
                row.update(copy.deepcopy(self.payload))
                row["updated_at"] = self.db.now()
                return FakeResponse(data=[copy.deepcopy(row)])
        return FakeResponse(data=[copy.deepcopy(self.db.add(self.table_name, self.payload))])

    def _execute_update(self) -> FakeResponse:
        updated = []
        for row in self._matches():
            row.update(copy.deepcopy(self.payload))
            updated.append(copy.deepcopy(row))
        return FakeResponse(data=updated)


class FakeRpc:
    """Pending call to a database function."""

    def __init__(self, db: "FakeSupabaseClient", name: str, params: dict[str, Any]) -> None:
        self.db = db
        self.name = name
        self.params = params

    def execute(self) -> FakeResponse:
        with self.db.lock:
            self.db.statements.append(("rpc", self.name))
            if self.db.rpc_error is not None:
                raise self.db.rpc_error
            return FakeResponse(data=getattr(self.db, f"_rpc_{self.name}")(**self.params))


class FakeSupabaseClient:
    """Dict-of-lists database with the table()/rpc() entry points."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.lock = threading.Lock()
        self.statements: list[tuple[str, str]] = []
        self.rpc_error: Exception | None = None

    @staticmethod
    def now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)

    def add(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert a row directly (also used to seed fixtures)."""
        stored = copy.deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        stored.setdefault("created_at", self.now())
        stored.setdefault("updated_at", self.now())
        self.tables.setdefault(table, []).append(stored)
        return stored

    def get(self, table: str, row_id: str) -> dict[str, Any] | None:
        """Read a row by id without going through the query builder."""
        for row in self.tables.get(table, []):
            if str(row["id"]) == str(row_id):
                return row
        return None

    def _rpc_record_coupon_usage(
        self,
        p_coupon_id: str,
        p_order_type: str,
        p_order_id: str,
        p_customer_id: str | None,
        p_discount_amount: int,
    ) -> int:
        coupon = self.get("coupons", p_coupon_id)
        usage = self.tables.setdefault("coupon_usage", [])
        duplicate = any(
            u["coupon_id"] == p_coupon_id
            and u["order_type"] == p_order_type
            and u["order_id"] == p_order_id
            for u in usage
        )
        if not duplicate:
            self.add(
                "coupon_usage",
                {
                    "coupon_id": p_coupon_id,
                    "order_type": p_order_type,
                    "order_id": p_order_id,
                    "customer_id": p_customer_id,
                    "discount_amount": p_discount_amount,
                },
            )
            coupon["usage_count"] += 1
        return coupon["usage_count"]


WEBHOOK_SECRET = "whsec_test_webhook_secret"
ADMIN_PASSWORD = "test-admin-password"

WORKSHOP_ID = "550e8400-e29b-41d4-a716-446655440000"
CUSTOMER_ID = "770e8400-e29b-41d4-a716-446655440000"
COUPON_ID = "880e8400-e29b-41d4-a716-446655440000"
BOOKING_ID = "660e8400-e29b-41d4-a716-446655440000"


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict[str, Any], event_id: str = "evt_123") -> dict[str, Any]:
    """Build a Stripe event envelope."""
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


def encode_event(event: dict[str, Any]) -> bytes:
    return json.dumps(event).encode("utf-8")


def completed_session(
    order_id: str = BOOKING_ID,
    order_type: str = "workshop_booking",
    coupon_id: str | None = COUPON_ID,
    discount_amount: int = 500,
    payment_status: str = "paid",
) -> dict[str, Any]:
    """A completed Checkout Session object as Stripe sends it."""
    metadata = {"order_id": order_id, "type": order_type}
    if coupon_id:
        metadata["coupon_id"] = coupon_id
        metadata["discount_amount"] = str(discount_amount)
    return {
        "id": "cs_test_123",
        "object": "checkout.session",
        "payment_status": payment_status,
        "payment_intent": "pi_test_123",
        "customer": "cus_test_123",
        "customer_email": "taro@example.com",
        "metadata": metadata,
    }
