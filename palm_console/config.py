"""
Configuration: table registry, status sets, alert windows, settings.

TABLES maps each entity to its backend table, its date column and the
columns the dashboard selects. Settings are read from the environment.
"""

import os
from dataclasses import dataclass, field

from .errors import ConfigurationError

# ---------------------------------------------------------------------------
# Company identity (printed on reports)
# ---------------------------------------------------------------------------
COMPANY_NAME = "Edical Palm Fruit Company LTD"
COMPANY_TAGLINE = "Palm Fruit Operations & Accounting Report"
CURRENCY_SYMBOL = "GH₵"

# ---------------------------------------------------------------------------
# Backend tables
# ---------------------------------------------------------------------------
# date_column: None for tables that are not range-filtered.
# Rows are ordered by date_column descending unless order_column is given.
TABLES: dict[str, dict] = {
    "agents": {
        "table": "agents",
        "date_column": None,
        "order_column": "full_name",
        "descending": False,
        "columns": "id, full_name, status, phone, region, community",
    },
    "advances": {
        "table": "cash_advances",
        "date_column": "advance_date",
        "columns": "id, agent_id, advance_date, amount, payment_method, signed_by",
    },
    "expenses": {
        "table": "agent_expenses",
        "date_column": "expense_date",
        "columns": "id, agent_id, expense_date, expense_type, amount",
    },
    "collections": {
        "table": "fruit_collections",
        "date_column": "collection_date",
        "columns": (
            "id, agent_id, collection_date, total_amount_spent, driver_name, "
            "fruit_collection_items(id, collection_id, weight_kg, price_per_kg)"
        ),
    },
    "orders": {
        "table": "orders",
        "date_column": "order_date",
        "columns": (
            "id, customer_id, order_date, order_category, delivery_status, "
            "subtotal, discount, total_amount, amount_paid, balance_due, "
            "customers(full_name, delivery_address)"
        ),
    },
    "payments": {
        "table": "payments",
        "date_column": "payment_date",
        "columns": "id, order_id, payment_date, amount, method",
    },
}

COLLECTION_ITEMS_TABLE = "fruit_collection_items"
CUSTOMERS_TABLE = "customers"
ORDER_ITEMS_TABLE = "order_items"
DELIVERY_EVENTS_TABLE = "delivery_events"

# Optional server-side aggregate; see sql/dashboard_admin_summary.sql
SUMMARY_RPC = "dashboard_admin_summary"

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------
AGENT_STATUSES = ("ACTIVE", "INACTIVE")
PAYMENT_METHODS = ("CASH", "MOMO", "BANK")
ORDER_CATEGORIES = ("BLOCKS", "CEMENT", "PALM_FRUIT")
DELIVERY_STATUSES = ("PENDING", "PARTIALLY_DELIVERED", "DELIVERED", "CANCELLED")
OUTSTANDING_DELIVERY_STATUSES = {"PENDING", "PARTIALLY_DELIVERED"}

ADMIN_ROLE = "ADMIN"
UNKNOWN_NAME = "Unknown"

# ---------------------------------------------------------------------------
# Aggregation constants
# ---------------------------------------------------------------------------
RECENT_ADVANCE_WINDOW_DAYS = 7
STALE_ACTIVITY_DAYS = 14
OUTSTANDING_TOP_N = 5
PENDING_ORDERS_LIMIT = 10
FETCH_MAX_WORKERS = 8

BALANCE_SURPLUS_LABEL = "CASH BALANCE (SURPLUS)"
BALANCE_DEFICIT_LABEL = "DEFICIT (OVERDRAWN)"

# Browser activity that resets the idle-logout timer
IDLE_ACTIVITY_EVENTS = frozenset(
    {"mousemove", "mousedown", "keydown", "touchstart", "scroll"}
)

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


@dataclass(frozen=True)
class Settings:
    """Runtime settings: backend endpoint/credential and idle-logout policy."""

    supabase_url: str = ""
    supabase_key: str = ""
    idle_timeout_minutes: float = 10.0
    idle_exclude_paths: tuple[str, ...] = field(default=("/login",))
    log_level: str = "INFO"
    demo_mode: bool = False

    @property
    def backend_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def _env_bool(val: str | None) -> bool:
    return (val or "").strip().lower() in {"1", "true", "yes", "on"}


def load_settings(environ: dict | None = None) -> Settings:
    """Build Settings from environment variables.

    Raises ConfigurationError if the idle timeout is not a positive number.
    """
    env = os.environ if environ is None else environ

    raw_timeout = env.get("PALM_IDLE_TIMEOUT_MINUTES", "10")
    try:
        timeout = float(raw_timeout)
    except ValueError:
        raise ConfigurationError(
            f"PALM_IDLE_TIMEOUT_MINUTES must be a number, got {raw_timeout!r}"
        ) from None
    if timeout <= 0:
        raise ConfigurationError("PALM_IDLE_TIMEOUT_MINUTES must be greater than 0")

    raw_paths = env.get("PALM_IDLE_EXCLUDE_PATHS", "/login")
    exclude = tuple(p.strip() for p in raw_paths.split(",") if p.strip())

    return Settings(
        supabase_url=env.get("SUPABASE_URL", ""),
        supabase_key=env.get("SUPABASE_KEY", ""),
        idle_timeout_minutes=timeout,
        idle_exclude_paths=exclude,
        log_level=env.get("PALM_LOG_LEVEL", "INFO").upper(),
        demo_mode=_env_bool(env.get("PALM_DEMO_MODE")),
    )
