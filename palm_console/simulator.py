"""
Simulated data generator for the palm fruit console.

Produces rows shaped exactly like the backend responses (collections with
embedded items, orders with embedded customer) so demo mode runs through the
same transforms and aggregation as a live load. All values are synthetic.
"""

import logging
import uuid

import numpy as np
import pandas as pd

from .config import DELIVERY_STATUSES, ORDER_CATEGORIES, PAYMENT_METHODS, TABLES
from .loaders.utils import normalise_date, utc_now

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typical operating parameters
# ---------------------------------------------------------------------------
_AGENTS = [
    ("Kwame Mensah", "Ashanti", "Juaso"),
    ("Ama Owusu", "Eastern", "Kade"),
    ("Kofi Boateng", "Western", "Tarkwa"),
    ("Akosua Darko", "Central", "Twifo Praso"),
    ("Yaw Asante", "Ashanti", "Konongo"),
    ("Efua Quaye", "Eastern", "Akim Oda"),
    ("Kojo Appiah", "Western", "Mpohor"),
    ("Abena Sarpong", "Central", "Assin Fosu"),
]

_CUSTOMERS = [
    ("Asamoah Oil Mills", "Plot 12, Kumasi Industrial Area"),
    ("Golden Palm Processors", "Tema Heavy Industrial Area"),
    ("Mama Esi Enterprise", "Kade Market Road"),
    ("Nkwanta Builders", "Nkawkaw Station Road"),
]

_EXPENSE_TYPES = ["Transport", "Loading", "Fuel", "Feeding", "Tools"]
_DRIVERS = ["Ato", "Musah", "Fiifi", "Sule", None]

_PRICE_POINTS = [1.8, 2.0, 2.2, 2.5]     # GH₵ per kg
_ADVANCE_RANGE = (300, 2500)             # GH₵
_CATEGORY_PRICES = {"BLOCKS": 6.5, "CEMENT": 95.0, "PALM_FRUIT": 2.8}


def _uid() -> str:
    return str(uuid.uuid4())


def _day(now: pd.Timestamp, days_ago: float) -> str:
    return (now - pd.Timedelta(days=float(days_ago))).date().isoformat()


def generate_agents(rng: np.random.Generator) -> list[dict]:
    """One row per agent; the last agent is archived."""
    rows = []
    for i, (name, region, community) in enumerate(_AGENTS):
        rows.append({
            "id": _uid(),
            "full_name": name,
            "status": "INACTIVE" if i == len(_AGENTS) - 1 else "ACTIVE",
            "phone": f"024{rng.integers(1_000_000, 9_999_999)}",
            "region": region,
            "community": community,
        })
    return rows


def generate_advances(agents: list[dict], now: pd.Timestamp, rng: np.random.Generator, days: int) -> list[dict]:
    rows = []
    for agent in agents:
        for _ in range(rng.integers(1, 6)):
            rows.append({
                "id": _uid(),
                "agent_id": agent["id"],
                "advance_date": _day(now, rng.integers(0, days)),
                "amount": f"{int(rng.integers(*_ADVANCE_RANGE)) // 50 * 50:.2f}",
                "payment_method": str(rng.choice(PAYMENT_METHODS)),
                "signed_by": "Operations Manager",
            })
    return rows


def generate_expenses(agents: list[dict], now: pd.Timestamp, rng: np.random.Generator, days: int) -> list[dict]:
    rows = []
    for agent in agents:
        for _ in range(rng.integers(0, 4)):
            rows.append({
                "id": _uid(),
                "agent_id": agent["id"],
                "expense_date": _day(now, rng.integers(0, days)),
                "expense_type": str(rng.choice(_EXPENSE_TYPES)),
                "amount": f"{rng.uniform(20, 150):.2f}",
            })
    return rows


def generate_collections(agents: list[dict], now: pd.Timestamp, rng: np.random.Generator, days: int) -> list[dict]:
    """Collections with embedded items.

    About a third carry a stored total; the rest rely on the item breakdown.
    """
    rows = []
    for agent in agents:
        for _ in range(rng.integers(0, 5)):
            collection_id = _uid()
            items = []
            for price in rng.choice(_PRICE_POINTS, size=rng.integers(1, 4), replace=False):
                items.append({
                    "id": _uid(),
                    "collection_id": collection_id,
                    "weight_kg": f"{rng.uniform(50, 400):.2f}",
                    "price_per_kg": f"{price:.2f}",
                })
            stored = None
            if rng.random() < 0.33:
                stored = f"{sum(float(i['weight_kg']) * float(i['price_per_kg']) for i in items):.2f}"
            rows.append({
                "id": collection_id,
                "agent_id": agent["id"],
                "collection_date": _day(now, rng.integers(0, days)),
                "total_amount_spent": stored,
                "driver_name": rng.choice(_DRIVERS),
                "fruit_collection_items": items,
            })
    return rows


def generate_orders(now: pd.Timestamp, rng: np.random.Generator, days: int, n_orders: int = 14) -> tuple[list[dict], list[dict]]:
    """Orders with embedded customer, plus the payments made against them."""
    customers = [
        {"id": _uid(), "full_name": name, "delivery_address": address}
        for name, address in _CUSTOMERS
    ]
    orders, payments = [], []
    for _ in range(n_orders):
        customer = customers[rng.integers(0, len(customers))]
        category = str(rng.choice(ORDER_CATEGORIES))
        subtotal = round(_CATEGORY_PRICES[category] * rng.integers(20, 400), 2)
        discount = round(subtotal * float(rng.choice([0, 0, 0.05])), 2)
        total = round(subtotal - discount, 2)
        paid = round(total * float(rng.choice([0, 0.5, 1.0])), 2)
        order_id = _uid()
        order_day = int(rng.integers(0, days))
        orders.append({
            "id": order_id,
            "customer_id": customer["id"],
            "order_date": _day(now, order_day),
            "order_category": category,
            "delivery_status": str(rng.choice(DELIVERY_STATUSES, p=[0.35, 0.2, 0.4, 0.05])),
            "subtotal": f"{subtotal:.2f}",
            "discount": f"{discount:.2f}",
            "total_amount": f"{total:.2f}",
            "amount_paid": f"{paid:.2f}",
            "balance_due": f"{total - paid:.2f}",
            "customers": {"full_name": customer["full_name"], "delivery_address": customer["delivery_address"]},
        })
        if paid > 0:
            payments.append({
                "id": _uid(),
                "order_id": order_id,
                "payment_date": _day(now, max(order_day - 1, 0)),
                "amount": f"{paid:.2f}",
                "method": str(rng.choice(PAYMENT_METHODS)),
            })
    return orders, payments


def generate_dataset(now: pd.Timestamp | None = None, days: int = 60, seed: int = 42) -> dict[str, list[dict]]:
    """Rows for every dashboard entity, keyed like loaders.fetch.load_dashboard_rows()."""
    now = now if now is not None else utc_now()
    rng = np.random.default_rng(seed)

    agents = generate_agents(rng)
    orders, payments = generate_orders(now, rng, days)
    rows = {
        "agents": agents,
        "advances": generate_advances(agents, now, rng, days),
        "expenses": generate_expenses(agents, now, rng, days),
        "collections": generate_collections(agents, now, rng, days),
        "orders": orders,
        "payments": payments,
    }
    logger.info(
        "Generated demo dataset: %s",
        ", ".join(f"{k}={len(v)}" for k, v in rows.items()),
    )
    return rows


def filter_rows(rows: dict[str, list[dict]], date_range, agent_id: str | None = None) -> dict[str, list[dict]]:
    """Apply a DateRange (and optional agent) to simulated rows the way the backend would."""
    out = {}
    for entity, entity_rows in rows.items():
        date_col = TABLES[entity]["date_column"]
        kept = []
        for r in entity_rows:
            if date_col and not date_range.is_all_time and not date_range.contains(normalise_date(r.get(date_col))):
                continue
            if agent_id is not None:
                if entity == "agents" and r["id"] != agent_id:
                    continue
                if entity in ("advances", "expenses", "collections") and r.get("agent_id") != agent_id:
                    continue
            kept.append(r)
        out[entity] = kept
    return out
