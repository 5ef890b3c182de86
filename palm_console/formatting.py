"""Display formatting for currency, weights and dates."""

import pandas as pd

from .config import CURRENCY_SYMBOL
from .loaders.utils import coerce_amount, normalise_date


def format_currency(amount, symbol: str = CURRENCY_SYMBOL) -> str:
    """1234.5 -> 'GH₵ 1,234.50'; negatives carry a leading minus."""
    value = coerce_amount(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol} {abs(value):,.2f}"


def format_weight(weight_kg) -> str:
    return f"{coerce_amount(weight_kg):,.2f} kg"


def format_date(val, missing: str = "Never") -> str:
    """'Oct 17, 2026'. Missing or unparseable dates render as `missing`."""
    ts = val if isinstance(val, pd.Timestamp) else normalise_date(val)
    if ts is None or pd.isna(ts):
        return missing
    return ts.strftime("%b %d, %Y").replace(" 0", " ")


def format_count(n) -> str:
    return f"{int(n):,}"


def format_text(val, missing: str = "-") -> str:
    """Free text for display; None, NaN and blank strings render as `missing`."""
    if val is None or (not isinstance(val, str) and pd.isna(val)):
        return missing
    return str(val).strip() or missing
