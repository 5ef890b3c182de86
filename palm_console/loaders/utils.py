"""
Shared utilities for row ingestion: amount parsing, date normalisation,
date-range presets.
"""

import logging
import math
import numbers
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

import pandas as pd

from ..errors import AmountParseError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def parse_amount(raw: Any) -> Decimal:
    """Read a numeric-or-string backend value as a Decimal.

    None and blank strings read as zero (the backend's numeric defaults).
    Raises AmountParseError for text, booleans and non-finite values.
    """
    if raw is None:
        return ZERO
    if isinstance(raw, bool):
        raise AmountParseError(raw)
    if isinstance(raw, Decimal):
        if not raw.is_finite():
            raise AmountParseError(raw)
        return raw
    if isinstance(raw, numbers.Integral):
        return Decimal(int(raw))
    if isinstance(raw, numbers.Real):
        raw = float(raw)
        if not math.isfinite(raw):
            raise AmountParseError(raw)
        # repr round-trips the shortest form, so 0.1 reads as 0.1
        return Decimal(repr(raw))
    if isinstance(raw, str):
        s = raw.strip().replace(",", "")
        if not s:
            return ZERO
        try:
            val = Decimal(s)
        except InvalidOperation:
            raise AmountParseError(raw) from None
        if not val.is_finite():
            raise AmountParseError(raw)
        return val
    raise AmountParseError(raw)


def coerce_amount(raw: Any) -> Decimal:
    """parse_amount, but non-numeric values count as zero."""
    try:
        return parse_amount(raw)
    except AmountParseError:
        logger.warning("Non-numeric amount %r treated as 0", raw)
        return ZERO


def normalise_date(val: Any) -> pd.Timestamp | None:
    """Convert a backend date/timestamp to a UTC pd.Timestamp.

    Naive values are taken as UTC. Returns None for missing or
    unparseable values.
    """
    if val is None or val == "":
        return None
    try:
        ts = pd.Timestamp(val)
    except (ValueError, TypeError):
        logger.warning("Could not parse date value: %s", val)
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def utc_now() -> pd.Timestamp:
    return pd.Timestamp.now(tz="UTC")


@dataclass(frozen=True)
class DateRange:
    """Half-open [start, end) range. A None bound is open."""

    start: pd.Timestamp | None = None
    end: pd.Timestamp | None = None
    label: str = "All time"

    def __post_init__(self):
        if self.start is not None and self.end is not None and self.start >= self.end:
            raise ValueError(f"Invalid date range: {self.start} to {self.end}")

    @property
    def is_all_time(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, ts: pd.Timestamp | None) -> bool:
        if ts is None:
            return False
        if self.start is not None and ts < self.start:
            return False
        if self.end is not None and ts >= self.end:
            return False
        return True

    def params(self) -> dict[str, str | None]:
        """ISO bounds for backend filters and the summary RPC."""
        return {
            "p_from": self.start.isoformat() if self.start is not None else None,
            "p_to": self.end.isoformat() if self.end is not None else None,
        }


def all_time() -> DateRange:
    return DateRange(label="All time")


def month_range(now: pd.Timestamp | None = None, offset: int = 0) -> DateRange:
    """Calendar month containing `now`, shifted by `offset` months."""
    now = now if now is not None else utc_now()
    start = now.normalize().replace(day=1) + pd.DateOffset(months=offset)
    end = start + pd.DateOffset(months=1)
    return DateRange(start, end, label=start.strftime("%B %Y"))


def this_month(now: pd.Timestamp | None = None) -> DateRange:
    return month_range(now, 0)


def last_month(now: pd.Timestamp | None = None) -> DateRange:
    return month_range(now, -1)


def last_n_days(n: int, now: pd.Timestamp | None = None) -> DateRange:
    """The n days up to and including today."""
    now = now if now is not None else utc_now()
    end = now.normalize() + pd.Timedelta(days=1)
    return DateRange(end - pd.Timedelta(days=n), end, label=f"Last {n} days")


def custom_range(start, end) -> DateRange:
    """Inclusive calendar dates from a date picker -> half-open range."""
    s = normalise_date(start)
    e = normalise_date(end)
    if e is not None:
        e = e.normalize() + pd.Timedelta(days=1)
    if s is not None:
        s = s.normalize()
    label = f"{s:%d %b %Y} to {e - pd.Timedelta(days=1):%d %b %Y}" if s is not None and e is not None else "Custom"
    return DateRange(s, e, label=label)
