"""Timeframe labels (1D, 1M, YTD, …) ↔ lookback days."""
from datetime import datetime
from typing import Callable, List, Optional

import pytz

import config

_FIXED_DAYS = {
    "1D": 1,
    "5D": 5,
    "1M": 30,
    "3M": 90,
    "6M": 180,
    "1Y": 365,
    "5Y": 1825,
    "MAX": 3650,
}

_DESCRIPTIONS = {
    "1D": "1 Day",
    "5D": "5 Days",
    "1M": "1 Month",
    "3M": "3 Months",
    "6M": "6 Months",
    "YTD": "Year To Date",
    "1Y": "1 Year",
    "5Y": "5 Years",
    "MAX": "Maximum (10 Years)",
}

# Ascending upper bounds used to label an arbitrary day count.
_LABEL_BOUNDS = ((1, "1D"), (5, "5D"), (30, "1M"), (90, "3M"), (180, "6M"), (365, "1Y"), (1825, "5Y"))


def available_timeframes() -> List[str]:
    return list(_DESCRIPTIONS)


def is_valid_timeframe(label: str) -> bool:
    return (label or "").upper() in _DESCRIPTIONS


def ytd_days(now: Optional[datetime] = None) -> int:
    now = now or datetime.now(pytz.UTC)
    start = now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return max(1, (now - start).days)


def timeframe_to_days(label: str, now_fn: Callable[[], datetime] = lambda: datetime.now(pytz.UTC)) -> int:
    """Days for *label*; unknown labels fall back to DEFAULT_DAYS."""
    key = (label or "").strip().upper()
    if key == "YTD":
        return ytd_days(now_fn())
    return _FIXED_DAYS.get(key, config.DEFAULT_DAYS)


def days_to_timeframe(days: int) -> str:
    for bound, label in _LABEL_BOUNDS:
        if days <= bound:
            return label
    return "MAX"


def describe_timeframe(label: str) -> str:
    return _DESCRIPTIONS.get((label or "").upper(), label)
