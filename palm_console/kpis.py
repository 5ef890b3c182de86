"""
KPI computation functions. Pure functions with no side effects.

Provides effective collection spend, the cash-balance formula, per-agent
outstanding advances, activity alerts, delivery KPIs and the single
dashboard aggregation used for every date range.
"""

import logging
import math
from decimal import Decimal
from typing import Iterable

import pandas as pd

from .config import (
    OUTSTANDING_DELIVERY_STATUSES,
    OUTSTANDING_TOP_N,
    PENDING_ORDERS_LIMIT,
    RECENT_ADVANCE_WINDOW_DAYS,
    STALE_ACTIVITY_DAYS,
    UNKNOWN_NAME,
)
from .loaders.utils import ZERO, coerce_amount, normalise_date, utc_now

logger = logging.getLogger(__name__)

ALERT_ADVANCE_WITHOUT_COLLECTION = "ADVANCE_WITHOUT_COLLECTION"
ALERT_STALE_OUTSTANDING = "STALE_OUTSTANDING"

ALERT_COLUMNS = ["agent_id", "agent_name", "kind", "reason", "severity"]
OUTSTANDING_COLUMNS = [
    "id", "full_name", "status", "total_advances", "total_weight", "last_activity",
]
BALANCE_COLUMNS = [
    "agent_id", "full_name", "status", "total_advances", "total_expenses",
    "total_fruit_spend", "total_weight", "cash_balance",
]

# RPC payload keys -> totals keys
_SUMMARY_KEYS = {
    "totalAdvances": "total_advances",
    "totalExpenses": "total_expenses",
    "totalFruitSpend": "total_fruit_spend",
    "totalWeight": "total_weight",
}


def sum_amounts(values: Iterable) -> Decimal:
    """Decimal sum; an empty input sums to 0."""
    return sum((coerce_amount(v) for v in values), ZERO)


def line_total(weight_kg, price_per_kg) -> Decimal:
    return coerce_amount(weight_kg) * coerce_amount(price_per_kg)


def effective_spend(stored_total, items: Iterable[tuple]) -> Decimal:
    """Authoritative cash spent on one collection.

    The stored total wins when it is greater than zero; otherwise the spend
    is Σ(weight_kg × price_per_kg) over the collection's (weight, price)
    item pairs. No items means zero spend.
    """
    stored = coerce_amount(stored_total)
    if stored > 0:
        return stored
    return sum((line_total(w, p) for w, p in items), ZERO)


def cash_balance(total_advances, total_expenses, total_fruit_spend) -> Decimal:
    """advances − (expenses + fruit spend). Positive = surplus, negative = deficit."""
    return coerce_amount(total_advances) - (
        coerce_amount(total_expenses) + coerce_amount(total_fruit_spend)
    )


def _items_by_collection(items: pd.DataFrame) -> dict[str, list[tuple]]:
    grouped: dict[str, list[tuple]] = {}
    for it in items.itertuples(index=False):
        grouped.setdefault(it.collection_id, []).append((it.weight_kg, it.price_per_kg))
    return grouped


def collection_spend_table(collections: pd.DataFrame, items: pd.DataFrame) -> pd.DataFrame:
    """Per-collection weight and effective spend.

    Returns
    -------
    The collections frame plus columns:
        items (list of (weight, price) pairs), item_count,
        total_weight_kg, effective_spend
    """
    grouped = _items_by_collection(items)
    df = collections.copy()
    pairs = [grouped.get(cid, []) for cid in df["id"]]

    df["items"] = pd.Series(pairs, index=df.index, dtype=object)
    df["item_count"] = [len(p) for p in pairs]
    df["total_weight_kg"] = [sum_amounts(w for w, _ in p) for p in pairs]
    df["effective_spend"] = [
        effective_spend(stored, p) for stored, p in zip(df["stored_total"], pairs)
    ]
    return df


def price_breakdown(items: Iterable[tuple]) -> pd.DataFrame:
    """Group (weight, price) pairs by price point, highest price first."""
    groups: dict[Decimal, dict] = {}
    for w, p in items:
        price = coerce_amount(p)
        g = groups.setdefault(price, {"price_per_kg": price, "weight_kg": ZERO, "amount": ZERO})
        g["weight_kg"] += coerce_amount(w)
        g["amount"] += line_total(w, p)

    rows = sorted(groups.values(), key=lambda g: g["price_per_kg"], reverse=True)
    return pd.DataFrame(rows, columns=["price_per_kg", "weight_kg", "amount"])


def compute_totals(frames: dict[str, pd.DataFrame]) -> dict:
    """Financial totals from raw frames.

    Returns
    -------
    {"total_advances", "total_expenses", "total_fruit_spend",
     "total_weight", "cash_balance"}, all Decimal.
    """
    spend = collection_spend_table(frames["collections"], frames["items"])

    total_advances = sum_amounts(frames["advances"]["amount"])
    total_expenses = sum_amounts(frames["expenses"]["amount"])
    total_fruit_spend = sum_amounts(spend["effective_spend"])
    total_weight = sum_amounts(frames["items"]["weight_kg"])

    return {
        "total_advances": total_advances,
        "total_expenses": total_expenses,
        "total_fruit_spend": total_fruit_spend,
        "total_weight": total_weight,
        "cash_balance": cash_balance(total_advances, total_expenses, total_fruit_spend),
    }


def delivery_kpis(orders: pd.DataFrame, payments: pd.DataFrame) -> dict:
    """Outstanding / delivered order counts and Σ payments received."""
    statuses = orders["delivery_status"]
    return {
        "outstanding_deliveries": int(statuses.isin(OUTSTANDING_DELIVERY_STATUSES).sum()),
        "delivered": int((statuses == "DELIVERED").sum()),
        "total_received": sum_amounts(payments["amount"]),
    }


def totals_from_summary(summary: dict) -> tuple[dict, dict]:
    """Map the summary RPC payload onto (totals, delivery_kpis).

    The cash balance is always re-derived with cash_balance() so the fast
    path and the row fallback cannot disagree on the formula.
    """
    totals = {key: coerce_amount(summary.get(rpc_key)) for rpc_key, key in _SUMMARY_KEYS.items()}
    totals["cash_balance"] = cash_balance(
        totals["total_advances"], totals["total_expenses"], totals["total_fruit_spend"],
    )

    reported = summary.get("cashBalance")
    if reported is not None and coerce_amount(reported) != totals["cash_balance"]:
        logger.warning(
            "Summary cashBalance %s disagrees with derived balance %s; using derived",
            reported, totals["cash_balance"],
        )

    deliveries = {
        "outstanding_deliveries": int(coerce_amount(summary.get("outstandingDeliveries"))),
        "delivered": int(coerce_amount(summary.get("deliveredAllTime"))),
        "total_received": coerce_amount(summary.get("totalReceivedAllTime")),
    }
    return totals, deliveries


def _latest(a: pd.Timestamp | None, b: pd.Timestamp | None) -> pd.Timestamp | None:
    a = None if a is None or pd.isna(a) else a
    b = None if b is None or pd.isna(b) else b
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def outstanding_agents(
    agents: pd.DataFrame,
    advances: pd.DataFrame,
    collections: pd.DataFrame,
    items: pd.DataFrame,
    top_n: int | None = None,
) -> pd.DataFrame:
    """Per-agent advance totals, collected weight and last activity.

    Rows without an agent reference are left out. Sorted by total advances
    descending; agents with equal totals keep their original order.
    """
    adv = advances[advances["agent_id"].notna()]
    adv_total: dict[str, Decimal] = {}
    adv_last: dict[str, pd.Timestamp] = {}
    for row in adv.itertuples(index=False):
        adv_total[row.agent_id] = adv_total.get(row.agent_id, ZERO) + row.amount
        adv_last[row.agent_id] = _latest(adv_last.get(row.agent_id), row.advance_date)

    spend = collection_spend_table(collections, items)
    spend = spend[spend["agent_id"].notna()]
    col_weight: dict[str, Decimal] = {}
    col_last: dict[str, pd.Timestamp] = {}
    for row in spend.itertuples(index=False):
        col_weight[row.agent_id] = col_weight.get(row.agent_id, ZERO) + row.total_weight_kg
        col_last[row.agent_id] = _latest(col_last.get(row.agent_id), row.collection_date)

    records = []
    for agent in agents.itertuples(index=False):
        records.append({
            "id": agent.id,
            "full_name": agent.full_name,
            "status": agent.status,
            "total_advances": adv_total.get(agent.id, ZERO),
            "total_weight": col_weight.get(agent.id, ZERO),
            "last_activity": _latest(adv_last.get(agent.id), col_last.get(agent.id)),
        })

    # sorted() with reverse=True is stable
    records = sorted(records, key=lambda r: r["total_advances"], reverse=True)
    if top_n is not None:
        records = records[:top_n]

    df = pd.DataFrame(records, columns=OUTSTANDING_COLUMNS)
    df["last_activity"] = pd.to_datetime(df["last_activity"], utc=True)
    return df


def detect_alerts(
    agents: pd.DataFrame,
    advances: pd.DataFrame,
    collections: pd.DataFrame,
    outstanding: pd.DataFrame,
    now: pd.Timestamp | None = None,
) -> pd.DataFrame:
    """Agent activity alerts.

    - ADVANCE_WITHOUT_COLLECTION (warning): an advance dated within
      [now − 7 days, now] and no collection for that agent in the same window.
    - STALE_OUTSTANDING (error): last activity at least 14 days before now
      while total advances are above zero.

    `outstanding` is the full (untruncated) outstanding_agents() frame.
    """
    now = normalise_date(now) if now is not None else utc_now()
    window_start = now - pd.Timedelta(days=RECENT_ADVANCE_WINDOW_DAYS)

    def in_window(dates: pd.Series) -> pd.Series:
        return (dates >= window_start) & (dates <= now)

    recent_adv_agents = set(advances.loc[in_window(advances["advance_date"]), "agent_id"].dropna())
    recent_col_agents = set(collections.loc[in_window(collections["collection_date"]), "agent_id"].dropna())

    by_id = {row.id: row for row in outstanding.itertuples(index=False)}

    alerts = []
    for agent in agents.itertuples(index=False):
        if agent.id in recent_adv_agents and agent.id not in recent_col_agents:
            alerts.append({
                "agent_id": agent.id,
                "agent_name": agent.full_name,
                "kind": ALERT_ADVANCE_WITHOUT_COLLECTION,
                "reason": (
                    f"Received advance in last {RECENT_ADVANCE_WINDOW_DAYS} days "
                    "but no collections recorded"
                ),
                "severity": "warning",
            })

        row = by_id.get(agent.id)
        if row is None or row.total_advances <= 0 or pd.isna(row.last_activity):
            continue
        days_idle = (now - row.last_activity) / pd.Timedelta(days=1)
        if days_idle >= STALE_ACTIVITY_DAYS:
            alerts.append({
                "agent_id": agent.id,
                "agent_name": agent.full_name,
                "kind": ALERT_STALE_OUTSTANDING,
                "reason": f"No activity for {math.floor(days_idle)} days with outstanding advances",
                "severity": "error",
            })

    logger.info("Detected %d agent alerts", len(alerts))
    return pd.DataFrame(alerts, columns=ALERT_COLUMNS)


def pending_orders(orders: pd.DataFrame, limit: int = PENDING_ORDERS_LIMIT) -> pd.DataFrame:
    """Newest orders still awaiting (full) delivery."""
    df = orders[orders["delivery_status"].isin(OUTSTANDING_DELIVERY_STATUSES)].copy()
    df = df.sort_values("order_date", ascending=False, kind="stable").head(limit)
    df["customer_name"] = df["customer_name"].fillna(UNKNOWN_NAME)
    return df.reset_index(drop=True)


def agent_balances(frames: dict[str, pd.DataFrame]) -> pd.DataFrame:
    """Per-agent statement lines using the same formulas as the dashboard.

    Returns
    -------
    DataFrame with columns:
        agent_id, full_name, status, total_advances, total_expenses,
        total_fruit_spend, total_weight, cash_balance
    """
    spend = collection_spend_table(frames["collections"], frames["items"])

    def per_agent(df: pd.DataFrame, value_col: str) -> dict[str, Decimal]:
        out: dict[str, Decimal] = {}
        for agent_id, value in zip(df["agent_id"], df[value_col]):
            if not isinstance(agent_id, str):
                continue
            out[agent_id] = out.get(agent_id, ZERO) + value
        return out

    adv = per_agent(frames["advances"], "amount")
    exp = per_agent(frames["expenses"], "amount")
    fruit = per_agent(spend, "effective_spend")
    weight = per_agent(spend, "total_weight_kg")

    records = []
    for agent in frames["agents"].itertuples(index=False):
        a, e, f = adv.get(agent.id, ZERO), exp.get(agent.id, ZERO), fruit.get(agent.id, ZERO)
        records.append({
            "agent_id": agent.id,
            "full_name": agent.full_name,
            "status": agent.status,
            "total_advances": a,
            "total_expenses": e,
            "total_fruit_spend": f,
            "total_weight": weight.get(agent.id, ZERO),
            "cash_balance": cash_balance(a, e, f),
        })

    records.sort(key=lambda r: r["full_name"].lower())
    return pd.DataFrame(records, columns=BALANCE_COLUMNS)


def aggregate_dashboard(
    frames: dict[str, pd.DataFrame],
    summary: dict | None = None,
    now: pd.Timestamp | None = None,
    top_n: int = OUTSTANDING_TOP_N,
    pending_limit: int = PENDING_ORDERS_LIMIT,
) -> dict:
    """The admin dashboard aggregation, for any date range.

    Parameters
    ----------
    frames : From transforms.build_frames().
    summary : Optional summary RPC payload; when present its totals and
        delivery KPIs are used instead of the row reductions.
    now : Reference time for alerts. Defaults to the current wall clock.

    Returns
    -------
    Dict with structure:
    {
        "source": "summary" | "rows",
        "totals": {"total_advances", "total_expenses", "total_fruit_spend",
                   "total_weight", "cash_balance"},
        "deliveries": {"outstanding_deliveries", "delivered", "total_received"},
        "active_agents": int,
        "agents_with_outstanding": int,
        "outstanding_agents": DataFrame (top_n rows),
        "alerts": DataFrame,
        "pending_orders": DataFrame,
        "generated_at": Timestamp,
    }
    """
    now = normalise_date(now) if now is not None else utc_now()

    if summary is not None:
        totals, deliveries = totals_from_summary(summary)
        source = "summary"
    else:
        totals = compute_totals(frames)
        deliveries = delivery_kpis(frames["orders"], frames["payments"])
        source = "rows"

    agents = frames["agents"]
    outstanding = outstanding_agents(
        agents, frames["advances"], frames["collections"], frames["items"],
    )
    alerts = detect_alerts(
        agents, frames["advances"], frames["collections"], outstanding, now,
    )

    result = {
        "source": source,
        "totals": totals,
        "deliveries": deliveries,
        "active_agents": int((agents["status"] == "ACTIVE").sum()),
        "agents_with_outstanding": int(sum(1 for v in outstanding["total_advances"] if v > 0)),
        "outstanding_agents": outstanding.head(top_n).reset_index(drop=True),
        "alerts": alerts,
        "pending_orders": pending_orders(frames["orders"], pending_limit),
        "generated_at": now,
    }
    logger.info(
        "Aggregated dashboard from %s: balance %s, %d alerts",
        source, totals["cash_balance"], len(alerts),
    )
    return result
