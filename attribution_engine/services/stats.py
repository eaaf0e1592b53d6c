"""
Division-guarded numeric helpers shared by the analysis services.

Every ratio the engine reports goes through `safe_divide`, so a zero
denominator (empty touch list, zero total pipeline, zero spend) yields 0
instead of NaN or Infinity.
"""

from datetime import date, datetime, timezone
from typing import Iterable, Sequence, Union

import numpy as np


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Return numerator / denominator, or `default` when the denominator is 0."""
    if denominator == 0:
        return default
    result = numerator / denominator
    if not np.isfinite(result):
        return default
    return float(result)


def mean(values: Iterable[float]) -> float:
    """Arithmetic mean; 0.0 for an empty sequence."""
    arr = np.asarray(list(values), dtype=np.float64)
    if arr.size == 0:
        return 0.0
    return float(np.mean(arr))


def median(values: Sequence[float]) -> float:
    """Median; 0.0 for an empty sequence."""
    arr = np.asarray(list(values), dtype=np.float64)
    if arr.size == 0:
        return 0.0
    return float(np.median(arr))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (2.5 -> 3)."""
    return int(np.floor(value + 0.5))


def pct(part: float, whole: float, digits: int = 1) -> float:
    """Percentage of `whole`, rounded; 0 when whole is 0."""
    return round(safe_divide(part, whole) * 100.0, digits)


def to_datetime(value: Union[date, datetime]) -> datetime:
    """Naive datetime for a date or datetime; aware values are converted to UTC."""
    if isinstance(value, datetime):
        return naive_utc(value)
    return datetime.combine(value, datetime.min.time())


def naive_utc(value: datetime) -> datetime:
    """Drop the offset of an aware datetime after converting it to UTC."""
    if value.tzinfo is None or value.utcoffset() is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def days_between(start: Union[date, datetime], end: Union[date, datetime]) -> float:
    """Fractional days from start to end (negative if end precedes start)."""
    return (to_datetime(end) - to_datetime(start)).total_seconds() / 86400.0
