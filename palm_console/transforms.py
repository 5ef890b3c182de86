"""
Data transforms: turn raw backend rows into typed fact and dimension frames.

Amounts become Decimal (object columns), dates become UTC datetimes and
embedded relations (collection items, order customers) are flattened into
their own frames or columns.
"""

import logging

import pandas as pd

from .loaders.utils import coerce_amount, normalise_date

logger = logging.getLogger(__name__)

AGENT_COLUMNS = ["id", "full_name", "status", "phone", "region", "community"]
ADVANCE_COLUMNS = ["id", "agent_id", "advance_date", "amount", "payment_method", "signed_by"]
EXPENSE_COLUMNS = ["id", "agent_id", "expense_date", "expense_type", "amount"]
COLLECTION_COLUMNS = ["id", "agent_id", "collection_date", "stored_total", "driver_name"]
ITEM_COLUMNS = ["id", "collection_id", "weight_kg", "price_per_kg"]
ORDER_COLUMNS = [
    "id", "customer_id", "customer_name", "delivery_address", "order_date",
    "order_category", "delivery_status", "subtotal", "discount",
    "total_amount", "amount_paid", "balance_due",
]
PAYMENT_COLUMNS = ["id", "order_id", "payment_date", "amount", "method"]


def _ref(val) -> str | None:
    """Foreign-key value as a string, None when missing."""
    if val is None:
        return None
    s = str(val).strip()
    return s or None


def _text(val) -> str | None:
    return val.strip() if isinstance(val, str) and val.strip() else None


def _dates(values) -> pd.Series:
    return pd.Series(
        pd.to_datetime([normalise_date(v) for v in values], utc=True),
        dtype="datetime64[ns, UTC]",
    )


def _frame(records: list[dict], columns: list[str], date_col: str | None = None) -> pd.DataFrame:
    """Frame with object columns where missing values are None, never NaN."""
    df = pd.DataFrame(records, columns=columns)
    for col in columns:
        if col == date_col:
            continue
        values = df[col].astype(object)
        df[col] = values.where(values.notna(), None)
    if date_col is not None:
        df[date_col] = _dates(df[date_col].tolist())
    return df



def build_dim_agent(rows: list[dict]) -> pd.DataFrame:
    """Agent dimension: id, full_name, status, phone, region, community."""
    records = [
        {
            "id": _ref(r.get("id")),
            "full_name": _text(r.get("full_name")) or "",
            "status": (_text(r.get("status")) or "ACTIVE").upper(),
            "phone": _text(r.get("phone")),
            "region": _text(r.get("region")),
            "community": _text(r.get("community")),
        }
        for r in rows
    ]
    df = _frame(records, AGENT_COLUMNS)
    logger.info("Built dim_agent with %d rows", len(df))
    return df


def build_fact_advance(rows: list[dict]) -> pd.DataFrame:
    records = [
        {
            "id": _ref(r.get("id")),
            "agent_id": _ref(r.get("agent_id")),
            "advance_date": r.get("advance_date"),
            "amount": coerce_amount(r.get("amount")),
            "payment_method": _text(r.get("payment_method")),
            "signed_by": _text(r.get("signed_by")),
        }
        for r in rows
    ]
    df = _frame(records, ADVANCE_COLUMNS, "advance_date")
    logger.info("Built fact_advance with %d rows", len(df))
    return df


def build_fact_expense(rows: list[dict]) -> pd.DataFrame:
    records = [
        {
            "id": _ref(r.get("id")),
            "agent_id": _ref(r.get("agent_id")),
            "expense_date": r.get("expense_date"),
            "expense_type": _text(r.get("expense_type")) or "",
            "amount": coerce_amount(r.get("amount")),
        }
        for r in rows
    ]
    df = _frame(records, EXPENSE_COLUMNS, "expense_date")
    logger.info("Built fact_expense with %d rows", len(df))
    return df


def build_fact_collection(rows: list[dict]) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Split collection rows into (fact_collection, fact_collection_item).

    Items may arrive embedded under "fruit_collection_items" or "items".
    A stored total of None is kept as 0, which means "derive from items".
    """
    collections = []
    items = []
    for r in rows:
        collection_id = _ref(r.get("id"))
        collections.append({
            "id": collection_id,
            "agent_id": _ref(r.get("agent_id")),
            "collection_date": r.get("collection_date"),
            "stored_total": coerce_amount(r.get("total_amount_spent")),
            "driver_name": _text(r.get("driver_name")),
        })
        embedded = r.get("fruit_collection_items")
        if embedded is None:
            embedded = r.get("items") or []
        for it in embedded:
            items.append({
                "id": _ref(it.get("id")),
                "collection_id": _ref(it.get("collection_id")) or collection_id,
                "weight_kg": coerce_amount(it.get("weight_kg")),
                "price_per_kg": coerce_amount(it.get("price_per_kg")),
            })

    fact_collection = _frame(collections, COLLECTION_COLUMNS, "collection_date")
    fact_item = build_fact_collection_item(items)
    logger.info(
        "Built fact_collection with %d rows (%d items)",
        len(fact_collection), len(fact_item),
    )
    return fact_collection, fact_item


def build_fact_collection_item(rows: list[dict]) -> pd.DataFrame:
    records = [
        {
            "id": _ref(r.get("id")),
            "collection_id": _ref(r.get("collection_id")),
            "weight_kg": coerce_amount(r.get("weight_kg")),
            "price_per_kg": coerce_amount(r.get("price_per_kg")),
        }
        for r in rows
    ]
    return _frame(records, ITEM_COLUMNS)


def build_fact_order(rows: list[dict]) -> pd.DataFrame:
    records = []
    for r in rows:
        customer = r.get("customers") or {}
        if isinstance(customer, list):
            customer = customer[0] if customer else {}
        records.append({
            "id": _ref(r.get("id")),
            "customer_id": _ref(r.get("customer_id")),
            "customer_name": _text(customer.get("full_name")),
            "delivery_address": _text(customer.get("delivery_address")),
            "order_date": r.get("order_date"),
            "order_category": _text(r.get("order_category")),
            "delivery_status": (_text(r.get("delivery_status")) or "PENDING").upper(),
            "subtotal": coerce_amount(r.get("subtotal")),
            "discount": coerce_amount(r.get("discount")),
            "total_amount": coerce_amount(r.get("total_amount")),
            "amount_paid": coerce_amount(r.get("amount_paid")),
            "balance_due": coerce_amount(r.get("balance_due")),
        })
    df = _frame(records, ORDER_COLUMNS, "order_date")
    logger.info("Built fact_order with %d rows", len(df))
    return df


def build_fact_payment(rows: list[dict]) -> pd.DataFrame:
    records = [
        {
            "id": _ref(r.get("id")),
            "order_id": _ref(r.get("order_id")),
            "payment_date": r.get("payment_date"),
            "amount": coerce_amount(r.get("amount")),
            "method": _text(r.get("method")),
        }
        for r in rows
    ]
    df = _frame(records, PAYMENT_COLUMNS, "payment_date")
    logger.info("Built fact_payment with %d rows", len(df))
    return df


def build_frames(rows: dict[str, list[dict]]) -> dict[str, pd.DataFrame]:
    """Build every frame the aggregator needs from a loader result.

    Missing entities produce empty frames with the correct schema.
    """
    collections, items = build_fact_collection(rows.get("collections") or [])
    return {
        "agents": build_dim_agent(rows.get("agents") or []),
        "advances": build_fact_advance(rows.get("advances") or []),
        "expenses": build_fact_expense(rows.get("expenses") or []),
        "collections": collections,
        "items": items,
        "orders": build_fact_order(rows.get("orders") or []),
        "payments": build_fact_payment(rows.get("payments") or []),
    }
