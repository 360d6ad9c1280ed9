from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


PERIOD_FILTERS = ("all", "today", "week", "month")


def period_start(period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Lower bound for the transaction list filters.

    - all   -> None (no bound)
    - today -> midnight of the current UTC day
    - week  -> now minus 7 days
    - month -> same day of the previous month (clamped to that month's last day)
    """
    if period not in PERIOD_FILTERS:
        raise ValueError(f"invalid period filter: {period}")

    now = now or utcnow()
    if period == "all":
        return None
    if period == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        return now - timedelta(days=7)

    year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
    first_of_this_month = now.replace(day=1)
    last_day_prev = (first_of_this_month - timedelta(days=1)).day
    return now.replace(year=year, month=month, day=min(now.day, last_day_prev))


def stamp_for_number(dt: Optional[datetime] = None) -> str:
    """YYYYMMDD-HHMM stamp used in human-readable billing numbers."""
    dt = dt or utcnow()
    return dt.strftime("%Y%m%d-%H%M")
