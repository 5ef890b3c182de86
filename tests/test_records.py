import pandas as pd
import pytest

from palm_console import records
from palm_console.errors import BackendError, ValidationError


def _calls(client):
    return [(q.table, q.calls[0][0]) for q in client.executed]


# ---------------------------------------------------------------------------
# Validation issues no request
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("kwargs, field", [
    ({"agent_id": "", "advance_date": "2026-10-01", "amount": 100}, "agent_id"),
    ({"agent_id": "a1", "advance_date": None, "amount": 100}, "advance_date"),
    ({"agent_id": "a1", "advance_date": "2026-10-01", "amount": 0}, "amount"),
    ({"agent_id": "a1", "advance_date": "2026-10-01", "amount": "-5"}, "amount"),
    ({"agent_id": "a1", "advance_date": "2026-10-01", "amount": "lots"}, "amount"),
    ({"agent_id": "a1", "advance_date": "2026-10-01", "amount": 10, "payment_method": "CHEQUE"}, "payment_method"),
])
def test_invalid_advance_is_rejected_locally(fake_client, kwargs, field):
    client = fake_client()
    with pytest.raises(ValidationError) as exc:
        records.create_advance(client, **kwargs)
    assert exc.value.field == field
    assert client.queries == []


def test_invalid_collection_rows_are_rejected_locally(fake_client):
    client = fake_client()
    with pytest.raises(ValidationError):
        records.create_collection(client, "a1", "2026-10-01", [(5, 2), (0, 2)])
    with pytest.raises(ValidationError) as exc:
        records.create_collection(client, "a1", "2026-10-01", [])
    assert exc.value.field == "items"
    assert client.queries == []


def test_invalid_expense_line_is_rejected_locally(fake_client):
    client = fake_client()
    with pytest.raises(ValidationError) as exc:
        records.create_expenses(client, "a1", "2026-10-01", [
            {"expense_type": "Fuel", "amount": 20},
            {"expense_type": " ", "amount": 10},
        ])
    assert exc.value.field == "expense_type"
    assert client.queries == []


def test_non_positive_payment_is_rejected_locally(fake_client):
    client = fake_client()
    with pytest.raises(ValidationError):
        records.record_payment(client, {"id": "o1", "total_amount": "100", "amount_paid": "0"}, 0)
    assert client.queries == []


# ---------------------------------------------------------------------------
# Inserts and updates
# ---------------------------------------------------------------------------
def test_create_advance(fake_client):
    client = fake_client()
    row = records.create_advance(client, "a1", "2026-10-01", "250.50", "momo", signed_by=" Ops ")
    payload = client.queries[0].calls[0][1][0]
    assert payload == {
        "agent_id": "a1",
        "advance_date": "2026-10-01",
        "amount": "250.50",
        "payment_method": "MOMO",
        "signed_by": "Ops",
        "notes": None,
    }
    assert row["id"] == "cash_advances-1"


def test_update_advance_targets_row(fake_client):
    client = fake_client()
    records.update_advance(client, "v9", "a1", "2026-10-02", 90)
    query = client.queries[0]
    assert query.calls[0][0] == "update"
    assert query.first("eq")[1] == ("id", "v9")


def test_create_expenses_is_one_batch(fake_client):
    client = fake_client()
    rows = records.create_expenses(client, "a1", "2026-10-01", [
        {"expense_type": "Fuel", "amount": "20"},
        {"expense_type": "Loading", "amount": 15},
    ])
    assert len(client.queries) == 1
    assert [r["expense_type"] for r in rows] == ["Fuel", "Loading"]


def test_create_collection_stores_totals_from_items(fake_client):
    client = fake_client()
    created = records.create_collection(
        client, "a1", pd.Timestamp("2026-10-01", tz="UTC"), [(2, 10), {"weight_kg": "3", "price_per_kg": "12"}],
    )
    header = client.queries[0].calls[0][1][0]
    items = client.queries[1].calls[0][1][0]

    assert header["total_weight_kg"] == "5"
    assert header["total_amount_spent"] == "56"
    assert header["has_price_breakdown"] is True
    assert [i["line_total"] for i in items] == ["20", "36"]
    assert all(i["collection_id"] == created["id"] for i in items)
    assert len(created["items"]) == 2


def test_collection_header_removed_when_items_fail(fake_client):
    client = fake_client(fail_tables={"fruit_collection_items"})
    with pytest.raises(BackendError):
        records.create_collection(client, "a1", "2026-10-01", [(2, 10)])
    assert _calls(client) == [
        ("fruit_collections", "insert"),
        ("fruit_collection_items", "insert"),
        ("fruit_collections", "delete"),
    ]


def test_record_payment_updates_order_balance(fake_client):
    client = fake_client()
    order = {"id": "o1", "total_amount": "200", "amount_paid": "50"}
    update = records.record_payment(client, order, "30", "cash")
    assert update == {"amount_paid": "80", "balance_due": "120"}
    assert _calls(client) == [("payments", "insert"), ("orders", "update")]


def test_backend_error_keeps_message(fake_client):
    client = fake_client(fail_tables={"cash_advances"})
    with pytest.raises(BackendError) as exc:
        records.create_advance(client, "a1", "2026-10-01", 10)
    assert exc.value.table == "cash_advances"
    assert "cash_advances unavailable" in str(exc.value)


# ---------------------------------------------------------------------------
# Confirmed deletes
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("fn", [records.delete_advance, records.delete_expense, records.delete_collection])
def test_declined_delete_sends_nothing(fake_client, fn):
    client = fake_client()
    prompts = []

    def decline(message):
        prompts.append(message)
        return False

    assert fn(client, "x1", decline) is False
    assert len(prompts) == 1
    assert client.queries == []


def test_delete_collection_removes_items_first(fake_client):
    client = fake_client()
    assert records.delete_collection(client, "c1", lambda m: True) is True
    assert _calls(client) == [("fruit_collection_items", "delete"), ("fruit_collections", "delete")]
    assert client.queries[0].first("eq")[1] == ("collection_id", "c1")


def test_archive_agent(fake_client, now):
    client = fake_client()
    assert records.archive_agent(client, "a1", lambda m: True, now=now) is True
    payload = client.queries[0].calls[0][1][0]
    assert payload == {"status": "INACTIVE", "archived_at": "2026-10-17T12:00:00+00:00"}


def test_declined_archive_sends_nothing(fake_client):
    client = fake_client()
    assert records.archive_agent(client, "a1", lambda m: False) is False
    assert client.queries == []


def test_delete_payment_restores_order_balance(fake_client):
    client = fake_client()
    order = {"id": "o1", "total_amount": "200", "amount_paid": "80"}
    assert records.delete_payment(client, order, {"id": "p1", "amount": "30"}, lambda m: True)
    update = client.queries[1].calls[0][1][0]
    assert update == {"amount_paid": "50", "balance_due": "150"}


# ---------------------------------------------------------------------------
# Agents and expense edits
# ---------------------------------------------------------------------------
def test_create_agent(fake_client):
    client = fake_client()
    row = records.create_agent(client, "  Ama Owusu ", phone="0244000000", location=" Kade ")
    payload = client.queries[0].calls[0][1][0]
    assert payload == {"full_name": "Ama Owusu", "phone": "0244000000", "location": "Kade", "status": "ACTIVE"}
    assert row["id"] == "agents-1"


@pytest.mark.parametrize("kwargs, field", [
    ({"full_name": "  "}, "full_name"),
    ({"full_name": "Ama", "status": "RETIRED"}, "status"),
])
def test_invalid_agent_is_rejected_locally(fake_client, kwargs, field):
    client = fake_client()
    with pytest.raises(ValidationError) as exc:
        records.create_agent(client, **kwargs)
    assert exc.value.field == field
    assert client.queries == []


def test_update_agent_targets_row(fake_client):
    client = fake_client()
    records.update_agent(client, "a7", "Kofi", status="inactive")
    query = client.queries[0]
    assert query.calls[0][1][0]["status"] == "INACTIVE"
    assert query.first("eq")[1] == ("id", "a7")


def test_update_expense(fake_client):
    client = fake_client()
    records.update_expense(client, "e3", " Fuel ", "42.50", "2026-10-05")
    query = client.queries[0]
    assert query.calls[0] == ("update", ({"expense_type": "Fuel", "amount": "42.50", "expense_date": "2026-10-05"},), {})
    assert query.first("eq")[1] == ("id", "e3")


@pytest.mark.parametrize("expense_type, amount, field", [("", 10, "expense_type"), ("Fuel", 0, "amount")])
def test_invalid_expense_edit_is_rejected_locally(fake_client, expense_type, amount, field):
    client = fake_client()
    with pytest.raises(ValidationError) as exc:
        records.update_expense(client, "e3", expense_type, amount, "2026-10-05")
    assert exc.value.field == field
    assert client.queries == []


# ---------------------------------------------------------------------------
# Orders and deliveries
# ---------------------------------------------------------------------------
def test_create_order_with_new_customer_and_payment(fake_client, now):
    client = fake_client()
    created = records.create_order(
        client,
        "cement",
        items=[
            {"item_type": "CEMENT", "description": "50kg bags", "quantity": 10, "unit_price": 80},
            {"item_type": "CEMENT", "quantity": 0, "unit_price": 80},
        ],
        new_customer={"full_name": " Golden Palm ", "delivery_address": "Kade"},
        discount=50,
        payments=[
            {"amount": 300, "method": "momo", "payment_date": "2026-10-17", "reference": "TX1"},
            {"amount": 0},
        ],
        now=now,
    )

    assert _calls(client) == [
        ("customers", "insert"),
        ("orders", "insert"),
        ("order_items", "insert"),
        ("payments", "insert"),
    ]
    header = client.queries[1].calls[0][1][0]
    assert header["customer_id"] == "customers-1"
    assert header["order_category"] == "CEMENT"
    assert header["delivery_status"] == "PENDING"
    assert (header["subtotal"], header["discount"], header["total_amount"]) == ("800", "50", "750")
    assert (header["amount_paid"], header["balance_due"]) == ("300", "450")

    [item] = client.queries[2].calls[0][1][0]
    assert item["order_id"] == "orders-1"
    assert item["line_total"] == "800"
    assert item["weight_kg"] is None

    [payment] = client.queries[3].calls[0][1][0]
    assert payment["method"] == "MOMO"
    assert payment["amount"] == "300"
    assert payment["payment_date"] == "2026-10-17"
    assert len(created["items"]) == 1 and len(created["payments"]) == 1


def test_order_priced_by_weight_and_discount_floors_total(fake_client, now):
    client = fake_client()
    records.create_order(
        client,
        "PALM_FRUIT",
        items=[{"item_type": "PALM_FRUIT_BUNCHES", "weight_kg": "2.5", "unit_price": 4}],
        customer_id="cu1",
        discount=20,
        now=now,
    )
    assert _calls(client) == [("orders", "insert"), ("order_items", "insert")]
    header = client.queries[0].calls[0][1][0]
    assert header["total_amount"] == "0"
    assert header["balance_due"] == "0"
    [item] = client.queries[1].calls[0][1][0]
    assert item["line_total"] == "10.0"
    assert item["weight_kg"] == "2.5"


@pytest.mark.parametrize("kwargs, field", [
    ({"order_category": "TIMBER", "customer_id": "cu1"}, "order_category"),
    ({"order_category": "BLOCKS"}, "customer_id"),
    ({"order_category": "BLOCKS", "new_customer": {"full_name": ""}}, "customer_name"),
    ({"order_category": "BLOCKS", "customer_id": "cu1", "items": [{"quantity": 5, "unit_price": 0}]}, "items"),
    ({"order_category": "BLOCKS", "customer_id": "cu1", "discount": -1}, "discount"),
    ({"order_category": "BLOCKS", "customer_id": "cu1", "payments": [{"amount": 5, "method": "CHEQUE"}]}, "payment_method"),
])
def test_invalid_order_is_rejected_locally(fake_client, kwargs, field):
    client = fake_client()
    kwargs.setdefault("items", [{"item_type": "BLOCKS", "quantity": 100, "unit_price": 5}])
    with pytest.raises(ValidationError) as exc:
        records.create_order(client, **kwargs)
    assert exc.value.field == field
    assert client.queries == []


def test_order_removed_when_items_fail(fake_client, now):
    client = fake_client(fail_tables={"order_items"})
    with pytest.raises(BackendError):
        records.create_order(
            client, "BLOCKS", [{"item_type": "BLOCKS", "quantity": 100, "unit_price": 5}], customer_id="cu1", now=now,
        )
    assert _calls(client) == [("orders", "insert"), ("order_items", "insert"), ("orders", "delete")]
    assert client.queries[2].first("eq")[1] == ("id", "orders-1")


def test_delivered_status_needs_a_date(fake_client):
    client = fake_client()
    with pytest.raises(ValidationError) as exc:
        records.update_delivery_status(client, "o1", "DELIVERED")
    assert exc.value.field == "delivery_date"
    assert client.queries == []


def test_delivery_status_change_is_logged(fake_client, now):
    client = fake_client()
    event = records.update_delivery_status(
        client, "o1", "delivered", delivery_date="2026-10-16", delivered_by=" Musah ", notes="Gate 2", now=now,
    )
    assert _calls(client) == [("orders", "update"), ("delivery_events", "insert")]
    assert client.queries[0].calls[0][1][0] == {
        "delivery_status": "DELIVERED",
        "delivery_date": "2026-10-16",
        "delivered_by": "Musah",
        "delivery_notes": "Gate 2",
    }
    assert event["status"] == "DELIVERED"
    assert event["event_date"] == "2026-10-17T12:00:00+00:00"


def test_other_statuses_clear_delivery_fields(fake_client, now):
    client = fake_client()
    records.update_delivery_status(
        client, "o1", "PARTIALLY_DELIVERED", delivery_date="2026-10-16", delivered_by="Musah", now=now,
    )
    update = client.queries[0].calls[0][1][0]
    assert update["delivery_date"] is None
    assert update["delivered_by"] is None
    with pytest.raises(ValidationError):
        records.update_delivery_status(client, "o1", "LOST")
