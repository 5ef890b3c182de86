from decimal import Decimal

import pandas as pd
import pytest

from palm_console.dashboard import (
    LOAD_ERROR_MESSAGE,
    ROLE_DENIED_MESSAGE,
    alerts_table,
    build_cards,
    load_admin_dashboard,
    outstanding_table,
    pending_orders_table,
    route_for_row,
)
from palm_console.formatting import format_currency, format_date, format_text, format_weight
from palm_console.kpis import aggregate_dashboard, pending_orders
from palm_console.transforms import build_frames


class Notifier:
    def __init__(self):
        self.messages = []

    def __call__(self, message, level):
        self.messages.append((level, message))


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("amount, expected", [
    (Decimal("1234.5"), "GH₵ 1,234.50"),
    ("0", "GH₵ 0.00"),
    (-36, "-GH₵ 36.00"),
    ("junk", "GH₵ 0.00"),
])
def test_format_currency(amount, expected):
    assert format_currency(amount) == expected


def test_format_weight():
    assert format_weight("1234.567") == "1,234.57 kg"


def test_format_date():
    assert format_date(pd.Timestamp("2026-10-07", tz="UTC")) == "Oct 7, 2026"
    assert format_date("2026-10-17T10:00:00Z") == "Oct 17, 2026"
    assert format_date(None) == "Never"
    assert format_date(pd.NaT) == "Never"
    assert format_date(None, missing="-") == "-"


def test_format_text():
    assert format_text(" Musah ") == "Musah"
    assert format_text(None) == "-"
    assert format_text(float("nan")) == "-"
    assert format_text("  ", missing="Unknown") == "Unknown"


# ---------------------------------------------------------------------------
# Cards and tables
# ---------------------------------------------------------------------------
def test_build_cards(sample_frames, now):
    sections = build_cards(aggregate_dashboard(sample_frames, now=now))
    assert [s["title"] for s in sections] == ["Orders & Receipts", "Operations Overview"]

    cards = {c["title"]: c for s in sections for c in s["cards"]}
    assert cards["Outstanding Deliveries"]["value"] == "2"
    assert cards["Outstanding Deliveries"]["route"] == "/orders?status=OUTSTANDING"
    assert cards["Total Received (All Time)"]["value"] == "GH₵ 200.00"
    assert cards["Cash Balance (All Time)"]["value"] == "GH₵ 574.00"
    assert cards["Cash Balance (All Time)"]["tone"] == "good"
    assert cards["Total Weight (All Time)"]["value"] == "45.00 kg"
    assert cards["Active Agents"]["value"] == "2"


def test_negative_balance_card_is_flagged():
    summary = {
        "totals": {
            "total_advances": Decimal("10"), "total_expenses": Decimal("20"),
            "total_fruit_spend": Decimal("0"), "total_weight": Decimal("0"),
            "cash_balance": Decimal("-10"),
        },
        "deliveries": {"outstanding_deliveries": 0, "delivered": 0, "total_received": Decimal("0")},
        "active_agents": 0,
        "agents_with_outstanding": 0,
    }
    cards = {c["title"]: c for s in build_cards(summary, "This Month") for c in s["cards"]}
    assert cards["Cash Balance (This Month)"]["tone"] == "bad"
    assert cards["Cash Balance (This Month)"]["value"] == "-GH₵ 10.00"


def test_tables_carry_routes(sample_frames, now):
    result = aggregate_dashboard(sample_frames, now=now)

    outstanding = outstanding_table(result["outstanding_agents"])
    assert outstanding.loc[0, "agent"] == "Ama Owusu"
    assert outstanding.loc[0, "total_advances"] == "GH₵ 500.00"
    assert outstanding.loc[0, "route"] == "/agents/a1/report"
    assert outstanding.loc[2, "last_activity"] == "Never"

    alerts = alerts_table(result["alerts"])
    assert alerts["route"].tolist() == ["/agents/a1/report", "/agents/a2/report"]

    pending = pending_orders_table(result["pending_orders"])
    assert pending["customer"].tolist() == ["Golden Palm", "Unknown"]
    assert pending.loc[1, "status"] == "PARTIALLY DELIVERED"
    assert pending.loc[0, "route"] == "/orders/o1"


def test_pending_order_without_category_shows_dash():
    frames = build_frames({
        "orders": [
            {"id": "o1", "order_date": "2026-10-02", "order_category": "CEMENT", "delivery_status": "PENDING"},
            {"id": "o2", "order_date": "2026-10-01", "delivery_status": "PENDING"},
        ],
    })
    pending = pending_orders_table(pending_orders(frames["orders"]))
    assert pending["category"].tolist() == ["CEMENT", "-"]
    assert pending["customer"].tolist() == ["Unknown", "Unknown"]


def test_route_for_unknown_kind():
    with pytest.raises(ValueError):
        route_for_row("vendor", "x")


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------
def test_load_admin_dashboard(fake_client, table_data, now):
    notify = Notifier()
    result = load_admin_dashboard(fake_client(table_data), notify=notify, now=now)
    assert result["source"] == "rows"
    assert result["totals"]["cash_balance"] == Decimal("574")
    assert result["range_label"] == "All time"
    assert notify.messages == []


def test_failed_load_notifies_once_and_shows_nothing(fake_client, table_data, now):
    notify = Notifier()
    client = fake_client(table_data, fail_tables={"cash_advances", "orders"})
    assert load_admin_dashboard(client, notify=notify, now=now) is None
    assert notify.messages == [("error", LOAD_ERROR_MESSAGE)]


def test_result_dropped_after_teardown(fake_client, table_data, now):
    notify = Notifier()
    result = load_admin_dashboard(fake_client(table_data), notify=notify, is_alive=lambda: False, now=now)
    assert result is None
    assert notify.messages == []


def test_non_admin_role_gets_nothing(fake_client, table_data):
    notify = Notifier()
    client = fake_client(table_data)
    assert load_admin_dashboard(client, notify=notify, role="AGENT") is None
    assert client.queries == []
    assert notify.messages == [("info", ROLE_DENIED_MESSAGE)]
