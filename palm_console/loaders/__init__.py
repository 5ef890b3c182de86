"""Backend loaders for the palm fruit console."""

from .backend import get_client
from .fetch import fetch_rows, load_dashboard, load_dashboard_rows
from .fetch import load_agent_report_rows, try_load_summary
from .utils import DateRange, all_time, this_month, last_month, last_n_days
from .utils import custom_range, parse_amount, coerce_amount, normalise_date

__all__ = [
    "get_client",
    "fetch_rows",
    "load_dashboard",
    "load_dashboard_rows",
    "load_agent_report_rows",
    "try_load_summary",
    "DateRange",
    "all_time",
    "this_month",
    "last_month",
    "last_n_days",
    "custom_range",
    "parse_amount",
    "coerce_amount",
    "normalise_date",
]
