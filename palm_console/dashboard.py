"""
Dashboard-ready output functions.

These are the entry points for the Streamlit front end. Each function
returns plain dicts or DataFrames suitable for rendering cards and tables;
no figure is computed here that kpis.aggregate_dashboard() did not produce.
"""

import logging
from typing import Callable

import pandas as pd

from .config import ADMIN_ROLE
from .errors import DataLoadError
from .formatting import format_count, format_currency, format_date, format_text, format_weight
from .kpis import aggregate_dashboard
from .loaders.fetch import load_dashboard
from .loaders.utils import DateRange, all_time
from .transforms import build_frames

logger = logging.getLogger(__name__)

LOAD_ERROR_MESSAGE = "Could not load dashboard data. Reload to try again."
ROLE_DENIED_MESSAGE = "Dashboard not available for your role"

# Row kind -> navigation target
ROUTES = {
    "agent": "/agents/{id}/report",
    "alert": "/agents/{id}/report",
    "order": "/orders/{id}",
}


def route_for_row(kind: str, row_id: str) -> str:
    """Navigation target for a selected table row."""
    try:
        template = ROUTES[kind]
    except KeyError:
        raise ValueError(f"Unknown row kind '{kind}'") from None
    return template.format(id=row_id)


def _card(title: str, value: str, route: str, subtext: str | None = None, tone: str = "neutral") -> dict:
    return {"title": title, "value": value, "subtext": subtext, "route": route, "tone": tone}


def build_cards(summary: dict, range_label: str = "All Time") -> list[dict]:
    """Card sections for the admin dashboard.

    Parameters
    ----------
    summary : kpis.aggregate_dashboard() output.
    range_label : Shown in each card title, e.g. "All Time" or "This Month".

    Returns
    -------
    List of {"title", "description", "cards"} sections. Each card is
    {"title", "value", "subtext", "route", "tone"}.
    """
    totals = summary["totals"]
    deliveries = summary["deliveries"]
    balance = totals["cash_balance"]

    orders = [
        _card(
            "Outstanding Deliveries",
            format_count(deliveries["outstanding_deliveries"]),
            "/orders?status=OUTSTANDING",
            subtext="Pending + Partially Delivered",
            tone="warning",
        ),
        _card(
            f"Delivered ({range_label})",
            format_count(deliveries["delivered"]),
            "/orders?status=DELIVERED",
            tone="good",
        ),
        _card(
            f"Total Received ({range_label})",
            format_currency(deliveries["total_received"]),
            "/orders",
            subtext="From all payments",
        ),
    ]

    operations = [
        _card(f"Total Advances ({range_label})", format_currency(totals["total_advances"]), "/cash-advances"),
        _card(f"Total Expenses ({range_label})", format_currency(totals["total_expenses"]), "/expenses", tone="bad"),
        _card(
            f"Cash Balance ({range_label})",
            format_currency(balance),
            "/cash-balance/details",
            subtext="Advances − (Expenses + Total Amount Spent on fruit)",
            tone="good" if balance >= 0 else "bad",
        ),
        _card(
            f"Amount Spent on Fruit ({range_label})",
            format_currency(totals["total_fruit_spend"]),
            "/fruit-spend/details",
            tone="good",
        ),
        _card(f"Total Weight ({range_label})", format_weight(totals["total_weight"]), "/fruit-collections"),
        _card("Active Agents", format_count(summary["active_agents"]), "/agents?status=ACTIVE"),
        _card(
            "Agents with Outstanding",
            format_count(summary["agents_with_outstanding"]),
            "/agents?filter=outstanding",
            tone="warning",
        ),
    ]

    return [
        {
            "title": "Orders & Receipts",
            "description": "Customer orders, deliveries and money received.",
            "cards": orders,
        },
        {
            "title": "Operations Overview",
            "description": "Cash movement, expenses, fruit buying, collections and agent performance.",
            "cards": operations,
        },
    ]


def outstanding_table(outstanding: pd.DataFrame) -> pd.DataFrame:
    """Top outstanding agents, formatted for display.

    Returns
    -------
    DataFrame with columns:
        agent, total_advances, total_weight, last_activity, route
    """
    return pd.DataFrame(
        {
            "agent": [format_text(name, missing="Unknown") for name in outstanding["full_name"]],
            "total_advances": [format_currency(v) for v in outstanding["total_advances"]],
            "total_weight": [format_weight(v) for v in outstanding["total_weight"]],
            "last_activity": [format_date(v) for v in outstanding["last_activity"]],
            "route": [route_for_row("agent", i) for i in outstanding["id"]],
        },
        columns=["agent", "total_advances", "total_weight", "last_activity", "route"],
    )


def alerts_table(alerts: pd.DataFrame) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "agent": [format_text(name, missing="Unknown") for name in alerts["agent_name"]],
            "reason": list(alerts["reason"]),
            "severity": list(alerts["severity"]),
            "route": [route_for_row("alert", i) for i in alerts["agent_id"]],
        },
        columns=["agent", "reason", "severity", "route"],
    )


def pending_orders_table(orders: pd.DataFrame) -> pd.DataFrame:
    """Pending deliveries: customer, category, date, total, balance due, status."""
    return pd.DataFrame(
        {
            "customer": list(orders["customer_name"]),
            "category": [format_text(c) for c in orders["order_category"]],
            "order_date": [format_date(v, missing="-") for v in orders["order_date"]],
            "total": [format_currency(v) for v in orders["total_amount"]],
            "balance_due": [format_currency(v) for v in orders["balance_due"]],
            "status": [s.replace("_", " ") for s in orders["delivery_status"]],
            "route": [route_for_row("order", i) for i in orders["id"]],
        },
        columns=["customer", "category", "order_date", "total", "balance_due", "status", "route"],
    )


def dashboard_from_rows(
    rows: dict[str, list[dict]],
    summary: dict | None = None,
    now: pd.Timestamp | None = None,
) -> dict:
    """Raw loader rows -> aggregated dashboard dict."""
    return aggregate_dashboard(build_frames(rows), summary=summary, now=now)


def load_admin_dashboard(
    client,
    date_range: DateRange | None = None,
    notify: Callable[[str, str], None] | None = None,
    is_alive: Callable[[], bool] = lambda: True,
    role: str = ADMIN_ROLE,
    now: pd.Timestamp | None = None,
    use_summary: bool = True,
) -> dict | None:
    """Fetch, aggregate and hand back the admin dashboard.

    Parameters
    ----------
    client : Supabase client.
    date_range : Defaults to all time.
    notify : Sink for user-visible messages, called as notify(message, level).
        A failed load produces exactly one "error" message.
    is_alive : Checked after the load settles; when it returns False the
        result is dropped (the view was torn down while fetching).
    role : Only ADMIN sees the dashboard.
    now : Alert reference time.

    Returns
    -------
    aggregate_dashboard() output, or None when nothing should be shown.
    """
    notify = notify or (lambda message, level: None)
    date_range = date_range or all_time()

    if role != ADMIN_ROLE:
        logger.info("Dashboard requested by role %s; not shown", role)
        notify(ROLE_DENIED_MESSAGE, "info")
        return None

    try:
        rows, summary = load_dashboard(client, date_range, use_summary=use_summary)
    except DataLoadError as exc:
        logger.error("Dashboard load failed for %s: %s", date_range.label, exc)
        if is_alive():
            notify(LOAD_ERROR_MESSAGE, "error")
        return None

    if not is_alive():
        logger.info("Dashboard view gone before load finished; dropping result")
        return None

    result = dashboard_from_rows(rows, summary=summary, now=now)
    result["range_label"] = date_range.label
    return result
