import os
import sys

import pandas as pd
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from palm_console.transforms import build_frames

NOW = pd.Timestamp("2026-10-17 12:00", tz="UTC")


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Records a PostgREST-style builder chain and answers execute()."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []

    def _chain(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        return self

    def select(self, *a, **k): return self._chain("select", *a, **k)
    def insert(self, *a, **k): return self._chain("insert", *a, **k)
    def update(self, *a, **k): return self._chain("update", *a, **k)
    def delete(self, *a, **k): return self._chain("delete", *a, **k)
    def eq(self, *a, **k): return self._chain("eq", *a, **k)
    def in_(self, *a, **k): return self._chain("in_", *a, **k)
    def gte(self, *a, **k): return self._chain("gte", *a, **k)
    def lt(self, *a, **k): return self._chain("lt", *a, **k)
    def order(self, *a, **k): return self._chain("order", *a, **k)

    def first(self, name):
        for call in self.calls:
            if call[0] == name:
                return call
        return None

    def execute(self):
        self.client.executed.append(self)
        if self.table in self.client.fail_tables:
            raise RuntimeError(f"{self.table} unavailable")
        action = self.calls[0][0] if self.calls else "select"
        if action == "insert":
            payload = self.calls[0][1][0]
            rows = payload if isinstance(payload, list) else [payload]
            return FakeResponse([{"id": f"{self.table}-{i + 1}", **r} for i, r in enumerate(rows)])
        if action in ("update", "delete"):
            return FakeResponse([{"id": "updated", **(self.calls[0][1][0] if action == "update" else {})}])
        return FakeResponse(list(self.client.tables.get(self.table, [])))


class FakeRpc:
    def __init__(self, client, name, params):
        self.client = client
        self.name = name
        self.params = params

    def execute(self):
        self.client.executed.append(self)
        if isinstance(self.client.rpc_result, Exception):
            raise self.client.rpc_result
        return FakeResponse(self.client.rpc_result)


class FakeClient:
    """Stand-in for a supabase Client: table data in, recorded queries out."""

    def __init__(self, tables=None, fail_tables=(), rpc_result=None):
        self.tables = tables or {}
        self.fail_tables = set(fail_tables)
        self.rpc_result = rpc_result if rpc_result is not None else RuntimeError("function not found")
        self.queries = []
        self.rpcs = []
        self.executed = []

    def table(self, name):
        query = FakeQuery(self, name)
        self.queries.append(query)
        return query

    def rpc(self, name, params=None):
        call = FakeRpc(self, name, params)
        self.rpcs.append(call)
        return call


@pytest.fixture
def fake_client():
    return FakeClient


@pytest.fixture
def now():
    return NOW


def days_ago(n, now=NOW):
    return (now - pd.Timedelta(days=n)).isoformat()


@pytest.fixture
def sample_rows():
    """Two agents plus one with no activity; orders in every delivery state."""
    return {
        "agents": [
            {"id": "a1", "full_name": "Ama Owusu", "status": "ACTIVE"},
            {"id": "a2", "full_name": "Kofi Boateng", "status": "ACTIVE"},
            {"id": "a3", "full_name": "Yaw Asante", "status": "INACTIVE"},
        ],
        "advances": [
            {"id": "v1", "agent_id": "a1", "advance_date": days_ago(2), "amount": "500.00"},
            {"id": "v2", "agent_id": "a2", "advance_date": days_ago(20), "amount": 300},
            {"id": "v3", "agent_id": None, "advance_date": days_ago(1), "amount": "50"},
        ],
        "expenses": [
            {"id": "e1", "agent_id": "a1", "expense_date": days_ago(2), "expense_type": "Transport", "amount": "120"},
        ],
        "collections": [
            {
                "id": "c1", "agent_id": "a1", "collection_date": days_ago(30),
                "total_amount_spent": 0, "driver_name": "Musah",
                "fruit_collection_items": [
                    {"id": "i1", "collection_id": "c1", "weight_kg": 2, "price_per_kg": 10},
                    {"id": "i2", "collection_id": "c1", "weight_kg": 3, "price_per_kg": 12},
                    {"id": "i3", "collection_id": "c1", "weight_kg": 0, "price_per_kg": 5},
                ],
            },
            {
                "id": "c2", "agent_id": "a2", "collection_date": days_ago(25),
                "total_amount_spent": "100.00", "driver_name": None,
                "fruit_collection_items": [
                    {"id": "i4", "collection_id": "c2", "weight_kg": "40", "price_per_kg": "2"},
                ],
            },
        ],
        "orders": [
            {"id": "o1", "order_date": days_ago(1), "delivery_status": "PENDING",
             "total_amount": "200", "amount_paid": "50", "balance_due": "150",
             "customers": {"full_name": "Golden Palm", "delivery_address": "Tema"}},
            {"id": "o2", "order_date": days_ago(3), "delivery_status": "PARTIALLY_DELIVERED",
             "total_amount": "90", "amount_paid": "90", "balance_due": "0", "customers": None},
            {"id": "o3", "order_date": days_ago(4), "delivery_status": "DELIVERED",
             "total_amount": "60", "amount_paid": "60", "balance_due": "0"},
            {"id": "o4", "order_date": days_ago(5), "delivery_status": "CANCELLED",
             "total_amount": "10", "amount_paid": "0", "balance_due": "10"},
        ],
        "payments": [
            {"id": "p1", "order_id": "o1", "payment_date": days_ago(1), "amount": "50"},
            {"id": "p2", "order_id": "o2", "payment_date": days_ago(3), "amount": "90"},
            {"id": "p3", "order_id": "o3", "payment_date": days_ago(4), "amount": "60"},
        ],
    }


@pytest.fixture
def sample_frames(sample_rows):
    return build_frames(sample_rows)


@pytest.fixture
def table_data(sample_rows):
    """sample_rows keyed by backend table name."""
    return {
        "agents": sample_rows["agents"],
        "cash_advances": sample_rows["advances"],
        "agent_expenses": sample_rows["expenses"],
        "fruit_collections": sample_rows["collections"],
        "orders": sample_rows["orders"],
        "payments": sample_rows["payments"],
    }
