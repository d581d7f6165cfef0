from __future__ import annotations
from typing import Any, Iterable, Optional
from datetime import datetime
import pandas as pd
import pytz


def parse_any_datetime(
    s: Any,
    formats: Iterable[str] = ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y/%m/%d"),
) -> Optional[datetime]:
    if s is None or s == "":
        return None
    if isinstance(s, datetime):
        return s
    if isinstance(s, (int, float)) and not isinstance(s, bool):
        # epoch milliseconds
        try:
            return datetime.fromtimestamp(float(s) / 1000.0, tz=pytz.UTC)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(s).strip()
    for f in formats:
        try:
            return datetime.strptime(text, f)
        except ValueError:
            continue
    # pandas as fallback (ISO with offsets, 'Z', etc.)
    try:
        dt = pd.to_datetime(text, errors="raise")
        if pd.isna(dt):
            return None
        return dt.to_pydatetime()
    except (ValueError, TypeError, OverflowError):
        return None


def to_timezone(dt: datetime, tz: str) -> datetime:
    tzinfo = pytz.timezone(tz)
    if dt.tzinfo is None:
        return tzinfo.localize(dt)
    return dt.astimezone(tzinfo)


def to_naive_utc(dt: datetime) -> datetime:
    """Comparable sort key: aware datetimes go to UTC, naive ones are taken as UTC."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(pytz.UTC).replace(tzinfo=None)


def date_label(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d")


def bucket_label(value: Any, granularity: str) -> Optional[str]:
    """
    Map a date-ish value to its bucket label for 'day' | 'week' | 'month'.
    Returns None when the value does not parse; 'none' returns the raw string.
    """
    g = (granularity or "none").lower()
    if g not in ("day", "week", "month"):
        return None if value is None or value == "" else str(value)
    dt = parse_any_datetime(value)
    if dt is None:
        return None
    ts = pd.Timestamp(to_naive_utc(dt))
    if g == "day":
        return ts.strftime("%Y-%m-%d")
    if g == "week":
        return ts.to_period("W-SUN").start_time.strftime("%Y-%m-%d")
    return ts.strftime("%Y-%m")
