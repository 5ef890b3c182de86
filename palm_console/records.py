"""
Record maintenance: validated inserts, updates and confirmed deletes.

Validation runs before any backend request, so a rejected form never
touches the network. Deletes and archives take a `confirm` callable that is
asked once; when it declines nothing is sent and the function returns False.
Backend failures are raised as BackendError carrying the backend's message.
"""

import logging
from decimal import Decimal
from typing import Callable, Iterable

import pandas as pd

from .config import (
    AGENT_STATUSES,
    COLLECTION_ITEMS_TABLE,
    CUSTOMERS_TABLE,
    DELIVERY_EVENTS_TABLE,
    DELIVERY_STATUSES,
    ORDER_CATEGORIES,
    ORDER_ITEMS_TABLE,
    PAYMENT_METHODS,
    TABLES,
)
from .errors import AmountParseError, BackendError, ValidationError
from .loaders.utils import ZERO, coerce_amount, normalise_date, parse_amount, utc_now

logger = logging.getLogger(__name__)

Confirm = Callable[[str], bool]

AGENTS = TABLES["agents"]["table"]
ADVANCES = TABLES["advances"]["table"]
EXPENSES = TABLES["expenses"]["table"]
COLLECTIONS = TABLES["collections"]["table"]
ORDERS = TABLES["orders"]["table"]
PAYMENTS = TABLES["payments"]["table"]


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------
def _positive(raw, field: str, label: str) -> Decimal:
    try:
        value = parse_amount(raw)
    except AmountParseError:
        raise ValidationError(f"{label} must be a number", field=field) from None
    if value <= 0:
        raise ValidationError(f"{label} must be greater than 0", field=field)
    return value


def _required_agent(agent_id) -> str:
    if not agent_id or not str(agent_id).strip():
        raise ValidationError("Please select an agent", field="agent_id")
    return str(agent_id).strip()


def _required_date(raw, field: str) -> str:
    ts = normalise_date(raw)
    if ts is None:
        raise ValidationError("Please choose a date", field=field)
    return ts.date().isoformat()


def _payment_method(method: str | None) -> str:
    method = (method or "").strip().upper()
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Payment method must be one of {', '.join(PAYMENT_METHODS)}", field="payment_method",
        )
    return method


def _num(value: Decimal) -> str:
    """Decimal as a JSON-safe numeric string."""
    return str(value)


# ---------------------------------------------------------------------------
# Backend calls
# ---------------------------------------------------------------------------
def _execute(query, table: str, action: str):
    try:
        response = query.execute()
    except Exception as exc:
        logger.exception("Failed to %s in %s", action, table)
        raise BackendError(str(exc) or f"Failed to {action}", table=table) from exc
    return response.data or []


def _first(rows: list[dict], table: str, action: str) -> dict:
    if not rows:
        raise BackendError(f"Failed to {action}: no row returned", table=table)
    return rows[0]


def _confirmed(confirm: Confirm, message: str) -> bool:
    if confirm(message):
        return True
    logger.info("Declined: %s", message)
    return False


# ---------------------------------------------------------------------------
# Cash advances
# ---------------------------------------------------------------------------
def _advance_payload(agent_id, advance_date, amount, payment_method, signed_by, notes) -> dict:
    return {
        "agent_id": _required_agent(agent_id),
        "advance_date": _required_date(advance_date, "advance_date"),
        "amount": _num(_positive(amount, "amount", "Amount")),
        "payment_method": _payment_method(payment_method),
        "signed_by": (signed_by or "").strip() or None,
        "notes": (notes or "").strip() or None,
    }


def create_advance(
    client,
    agent_id: str,
    advance_date,
    amount,
    payment_method: str = "CASH",
    signed_by: str | None = None,
    notes: str | None = None,
) -> dict:
    """Insert one cash advance and return the stored row."""
    payload = _advance_payload(agent_id, advance_date, amount, payment_method, signed_by, notes)
    rows = _execute(client.table(ADVANCES).insert(payload), ADVANCES, "create advance")
    logger.info("Created advance of %s for agent %s", payload["amount"], payload["agent_id"])
    return _first(rows, ADVANCES, "create advance")


def update_advance(
    client,
    advance_id: str,
    agent_id: str,
    advance_date,
    amount,
    payment_method: str = "CASH",
    signed_by: str | None = None,
    notes: str | None = None,
) -> dict:
    payload = _advance_payload(agent_id, advance_date, amount, payment_method, signed_by, notes)
    query = client.table(ADVANCES).update(payload).eq("id", advance_id)
    rows = _execute(query, ADVANCES, "update advance")
    logger.info("Updated advance %s", advance_id)
    return _first(rows, ADVANCES, "update advance")


def delete_advance(client, advance_id: str, confirm: Confirm) -> bool:
    if not _confirmed(confirm, "Delete this cash advance? This cannot be undone."):
        return False
    _execute(client.table(ADVANCES).delete().eq("id", advance_id), ADVANCES, "delete advance")
    logger.info("Deleted advance %s", advance_id)
    return True


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------
def create_expenses(client, agent_id: str, expense_date, lines: Iterable[dict]) -> list[dict]:
    """Insert a batch of expenses for one agent and date.

    Parameters
    ----------
    lines : Dicts with "expense_type" and "amount". Every line is validated
        before the single batch insert is sent.
    """
    agent_id = _required_agent(agent_id)
    date = _required_date(expense_date, "expense_date")

    payload = []
    for i, line in enumerate(lines):
        expense_type = (line.get("expense_type") or "").strip()
        if not expense_type:
            raise ValidationError(f"Line {i + 1}: expense type is required", field="expense_type")
        amount = _positive(line.get("amount"), "amount", f"Line {i + 1}: amount")
        payload.append({
            "agent_id": agent_id,
            "expense_date": date,
            "expense_type": expense_type,
            "amount": _num(amount),
        })

    if not payload:
        raise ValidationError("Add at least one expense line", field="lines")

    rows = _execute(client.table(EXPENSES).insert(payload), EXPENSES, "create expenses")
    logger.info("Created %d expenses for agent %s", len(payload), agent_id)
    return rows


def update_expense(client, expense_id: str, expense_type: str, amount, expense_date) -> dict:
    expense_type = (expense_type or "").strip()
    if not expense_type:
        raise ValidationError("Expense type is required", field="expense_type")
    payload = {
        "expense_type": expense_type,
        "amount": _num(_positive(amount, "amount", "Amount")),
        "expense_date": _required_date(expense_date, "expense_date"),
    }
    query = client.table(EXPENSES).update(payload).eq("id", expense_id)
    rows = _execute(query, EXPENSES, "update expense")
    logger.info("Updated expense %s", expense_id)
    return _first(rows, EXPENSES, "update expense")


def delete_expense(client, expense_id: str, confirm: Confirm) -> bool:
    if not _confirmed(confirm, "Delete this expense? This cannot be undone."):
        return False
    _execute(client.table(EXPENSES).delete().eq("id", expense_id), EXPENSES, "delete expense")
    logger.info("Deleted expense %s", expense_id)
    return True


# ---------------------------------------------------------------------------
# Fruit collections
# ---------------------------------------------------------------------------
def _collection_items(items: Iterable) -> list[tuple[Decimal, Decimal]]:
    pairs = []
    for i, item in enumerate(items):
        if isinstance(item, dict):
            weight, price = item.get("weight_kg"), item.get("price_per_kg")
        else:
            weight, price = item
        pairs.append((
            _positive(weight, "weight_kg", f"Row {i + 1}: weight"),
            _positive(price, "price_per_kg", f"Row {i + 1}: price per kg"),
        ))
    if not pairs:
        raise ValidationError("Add at least one weight and price row", field="items")
    return pairs


def create_collection(
    client,
    agent_id: str,
    collection_date,
    items: Iterable,
    driver_name: str | None = None,
    notes: str | None = None,
) -> dict:
    """Insert a collection header and its weight/price items.

    Parameters
    ----------
    items : (weight_kg, price_per_kg) pairs or dicts with those keys.

    The header stores the weight and spend totals computed from the items.
    If the item insert fails the header is removed again and BackendError
    is raised.
    """
    agent_id = _required_agent(agent_id)
    date = _required_date(collection_date, "collection_date")
    pairs = _collection_items(items)

    total_weight = sum((w for w, _ in pairs), ZERO)
    total_spent = sum((w * p for w, p in pairs), ZERO)

    header = {
        "agent_id": agent_id,
        "collection_date": date,
        "driver_name": (driver_name or "").strip() or None,
        "notes": (notes or "").strip() or None,
        "total_weight_kg": _num(total_weight),
        "total_amount_spent": _num(total_spent),
        "has_price_breakdown": len(pairs) > 1,
    }
    created = _first(
        _execute(client.table(COLLECTIONS).insert(header), COLLECTIONS, "create collection"),
        COLLECTIONS, "create collection",
    )

    item_rows = [
        {
            "collection_id": created["id"],
            "weight_kg": _num(w),
            "price_per_kg": _num(p),
            "line_total": _num(w * p),
        }
        for w, p in pairs
    ]
    try:
        stored_items = _execute(
            client.table(COLLECTION_ITEMS_TABLE).insert(item_rows),
            COLLECTION_ITEMS_TABLE, "create collection items",
        )
    except BackendError:
        logger.error("Removing collection %s after item insert failed", created["id"])
        _execute(
            client.table(COLLECTIONS).delete().eq("id", created["id"]),
            COLLECTIONS, "remove incomplete collection",
        )
        raise

    logger.info(
        "Created collection %s for agent %s: %s kg, %s spent",
        created["id"], agent_id, total_weight, total_spent,
    )
    return {**created, "items": stored_items}


def delete_collection(client, collection_id: str, confirm: Confirm) -> bool:
    """Delete a collection and its items (items first)."""
    if not _confirmed(confirm, "Delete this collection and all its items? This cannot be undone."):
        return False
    _execute(
        client.table(COLLECTION_ITEMS_TABLE).delete().eq("collection_id", collection_id),
        COLLECTION_ITEMS_TABLE, "delete collection items",
    )
    _execute(
        client.table(COLLECTIONS).delete().eq("id", collection_id),
        COLLECTIONS, "delete collection",
    )
    logger.info("Deleted collection %s", collection_id)
    return True


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------
def _agent_payload(full_name, phone, location, status) -> dict:
    full_name = (full_name or "").strip()
    if not full_name:
        raise ValidationError("Full name is required", field="full_name")
    status = (status or "").strip().upper()
    if status not in AGENT_STATUSES:
        raise ValidationError(f"Status must be one of {', '.join(AGENT_STATUSES)}", field="status")
    return {
        "full_name": full_name,
        "phone": (phone or "").strip() or None,
        "location": (location or "").strip() or None,
        "status": status,
    }


def create_agent(
    client,
    full_name: str,
    phone: str | None = None,
    location: str | None = None,
    status: str = "ACTIVE",
) -> dict:
    payload = _agent_payload(full_name, phone, location, status)
    rows = _execute(client.table(AGENTS).insert(payload), AGENTS, "create agent")
    logger.info("Created agent %s", payload["full_name"])
    return _first(rows, AGENTS, "create agent")


def update_agent(
    client,
    agent_id: str,
    full_name: str,
    phone: str | None = None,
    location: str | None = None,
    status: str = "ACTIVE",
) -> dict:
    payload = _agent_payload(full_name, phone, location, status)
    query = client.table(AGENTS).update(payload).eq("id", agent_id)
    rows = _execute(query, AGENTS, "update agent")
    logger.info("Updated agent %s", agent_id)
    return _first(rows, AGENTS, "update agent")


def archive_agent(client, agent_id: str, confirm: Confirm, now: pd.Timestamp | None = None) -> bool:
    """Mark an agent INACTIVE with an archive timestamp. Agents are never deleted."""
    if not _confirmed(confirm, "Archive this agent? Their history is kept."):
        return False
    archived_at = normalise_date(now) if now is not None else utc_now()
    payload = {"status": "INACTIVE", "archived_at": archived_at.isoformat()}
    _execute(client.table(AGENTS).update(payload).eq("id", agent_id), AGENTS, "archive agent")
    logger.info("Archived agent %s", agent_id)
    return True


# ---------------------------------------------------------------------------
# Orders and deliveries
# ---------------------------------------------------------------------------
def _order_items(items: Iterable[dict]) -> list[dict]:
    """Priced order lines; lines without a positive quantity (or weight) and price are dropped.

    A line with weight_kg is priced per kg, otherwise per unit of quantity.
    """
    lines = []
    for item in items:
        price = coerce_amount(item.get("unit_price"))
        weight = coerce_amount(item.get("weight_kg"))
        by_weight = item.get("weight_kg") is not None
        qty = coerce_amount(item.get("quantity"))
        measure = weight if by_weight else qty
        if measure <= 0 or price <= 0:
            continue
        lines.append({
            "item_type": (item.get("item_type") or "").strip() or None,
            "description": (item.get("description") or "").strip() or None,
            "quantity": _num(qty),
            "unit_price": _num(price),
            "weight_kg": _num(weight) if by_weight else None,
            "line_total": measure * price,
        })
    if not lines:
        raise ValidationError(
            "Please add at least one valid item (qty/price or weight/price)", field="items",
        )
    return lines


def _order_payments(payments: Iterable[dict], default_date: str) -> list[dict]:
    rows = []
    for p in payments:
        amount = coerce_amount(p.get("amount"))
        if amount <= 0:
            continue
        rows.append({
            "amount": amount,
            "method": _payment_method(p.get("method") or "CASH"),
            "payment_date": (
                _required_date(p["payment_date"], "payment_date")
                if p.get("payment_date") is not None else default_date
            ),
            "received_by": (p.get("received_by") or "").strip() or None,
            "reference": (p.get("reference") or "").strip() or None,
        })
    return rows


def create_order(
    client,
    order_category: str,
    items: Iterable[dict],
    customer_id: str | None = None,
    new_customer: dict | None = None,
    discount=0,
    payments: Iterable[dict] = (),
    now: pd.Timestamp | None = None,
) -> dict:
    """Create an order with its items and any payments taken up front.

    Parameters
    ----------
    items : Dicts with item_type, description, quantity, unit_price and,
        for goods sold by weight, weight_kg.
    customer_id / new_customer : An existing customer, or a dict with
        full_name (required), phone, delivery_address and notes to insert.
    payments : Dicts with amount, method, payment_date, received_by and
        reference. Payments of zero are skipped.

    The order stores subtotal, discount, total (never below zero),
    amount_paid and balance_due. If the item or payment insert fails the
    order is removed again (its children cascade) and BackendError is raised.
    """
    category = (order_category or "").strip().upper()
    if category not in ORDER_CATEGORIES:
        raise ValidationError("Please select an order category", field="order_category")

    customer = None
    if new_customer is not None:
        name = (new_customer.get("full_name") or "").strip()
        if not name:
            raise ValidationError("Please enter customer name", field="customer_name")
        customer = {
            "full_name": name,
            "phone": (new_customer.get("phone") or "").strip() or None,
            "delivery_address": (new_customer.get("delivery_address") or "").strip() or None,
            "notes": (new_customer.get("notes") or "").strip() or None,
        }
    elif not customer_id:
        raise ValidationError("Please select a customer", field="customer_id")

    lines = _order_items(items)
    try:
        discount = parse_amount(discount)
    except AmountParseError:
        raise ValidationError("Discount must be a number", field="discount") from None
    if discount < 0:
        raise ValidationError("Discount cannot be negative", field="discount")

    ordered_at = normalise_date(now) if now is not None else utc_now()
    payment_rows = _order_payments(payments, ordered_at.date().isoformat())

    subtotal = sum((line["line_total"] for line in lines), ZERO)
    total = max(ZERO, subtotal - discount)
    paid = sum((p["amount"] for p in payment_rows), ZERO)

    if customer is not None:
        created_customer = _first(
            _execute(client.table(CUSTOMERS_TABLE).insert(customer), CUSTOMERS_TABLE, "create customer"),
            CUSTOMERS_TABLE, "create customer",
        )
        customer_id = created_customer["id"]

    header = {
        "order_category": category,
        "customer_id": customer_id,
        "order_date": ordered_at.isoformat(),
        "delivery_status": "PENDING",
        "subtotal": _num(subtotal),
        "discount": _num(discount),
        "total_amount": _num(total),
        "amount_paid": _num(paid),
        "balance_due": _num(total - paid),
    }
    order = _first(_execute(client.table(ORDERS).insert(header), ORDERS, "create order"), ORDERS, "create order")

    item_rows = [{**line, "order_id": order["id"], "line_total": _num(line["line_total"])} for line in lines]
    pay_rows = [{**p, "order_id": order["id"], "amount": _num(p["amount"])} for p in payment_rows]
    try:
        stored_items = _execute(
            client.table(ORDER_ITEMS_TABLE).insert(item_rows), ORDER_ITEMS_TABLE, "create order items",
        )
        stored_payments = []
        if pay_rows:
            stored_payments = _execute(client.table(PAYMENTS).insert(pay_rows), PAYMENTS, "record payments")
    except BackendError:
        logger.error("Removing order %s after a child insert failed", order["id"])
        _execute(client.table(ORDERS).delete().eq("id", order["id"]), ORDERS, "remove incomplete order")
        raise

    logger.info(
        "Created %s order %s: total %s, paid %s", category, order["id"], header["total_amount"], header["amount_paid"],
    )
    return {**order, "items": stored_items, "payments": stored_payments}


def update_delivery_status(
    client,
    order_id: str,
    status: str,
    delivery_date=None,
    delivered_by: str | None = None,
    notes: str | None = None,
    now: pd.Timestamp | None = None,
) -> dict:
    """Move an order to a new delivery status and log a delivery event.

    DELIVERED requires a delivery date; the date and delivered_by are
    cleared for every other status. Returns the logged event.
    """
    status = (status or "").strip().upper()
    if status not in DELIVERY_STATUSES:
        raise ValidationError(
            f"Delivery status must be one of {', '.join(DELIVERY_STATUSES)}", field="delivery_status",
        )
    delivered = status == "DELIVERED"
    if delivered and normalise_date(delivery_date) is None:
        raise ValidationError("Please enter delivery date", field="delivery_date")

    delivered_by = ((delivered_by or "").strip() or None) if delivered else None
    notes = (notes or "").strip() or None
    update = {
        "delivery_status": status,
        "delivery_date": _required_date(delivery_date, "delivery_date") if delivered else None,
        "delivered_by": delivered_by,
        "delivery_notes": notes,
    }
    _execute(client.table(ORDERS).update(update).eq("id", order_id), ORDERS, "update delivery status")

    event_date = normalise_date(now) if now is not None else utc_now()
    event = {
        "order_id": order_id,
        "status": status,
        "event_date": event_date.isoformat(),
        "delivered_by": delivered_by,
        "notes": notes,
    }
    rows = _execute(
        client.table(DELIVERY_EVENTS_TABLE).insert(event), DELIVERY_EVENTS_TABLE, "log delivery event",
    )
    logger.info("Order %s delivery status set to %s", order_id, status)
    return _first(rows, DELIVERY_EVENTS_TABLE, "log delivery event")


# ---------------------------------------------------------------------------
# Order payments
# ---------------------------------------------------------------------------
def _order_amounts(order: dict, amount_paid: Decimal) -> dict:
    total = parse_amount(order.get("total_amount"))
    return {"amount_paid": _num(amount_paid), "balance_due": _num(total - amount_paid)}


def record_payment(client, order: dict, amount, method: str = "CASH", payment_date=None) -> dict:
    """Insert a payment and move the order's amount_paid / balance_due.

    Returns the order fields written ({"amount_paid", "balance_due"}).
    """
    value = _positive(amount, "amount", "Payment amount")
    method = _payment_method(method)

    payment = {"order_id": order["id"], "amount": _num(value), "method": method}
    if payment_date is not None:
        payment["payment_date"] = _required_date(payment_date, "payment_date")
    _execute(client.table(PAYMENTS).insert(payment), PAYMENTS, "record payment")

    update = _order_amounts(order, parse_amount(order.get("amount_paid")) + value)
    _execute(client.table(ORDERS).update(update).eq("id", order["id"]), ORDERS, "update order balance")
    logger.info("Recorded payment of %s on order %s", value, order["id"])
    return update


def delete_payment(client, order: dict, payment: dict, confirm: Confirm) -> bool:
    """Remove a payment and take its amount back off the order."""
    if not _confirmed(confirm, "Delete this payment? The order balance will be restored."):
        return False
    _execute(client.table(PAYMENTS).delete().eq("id", payment["id"]), PAYMENTS, "delete payment")

    paid = parse_amount(order.get("amount_paid")) - parse_amount(payment.get("amount"))
    update = _order_amounts(order, paid)
    _execute(client.table(ORDERS).update(update).eq("id", order["id"]), ORDERS, "update order balance")
    logger.info("Deleted payment %s from order %s", payment["id"], order["id"])
    return True
