from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


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


def vat_period(dt: Optional[datetime]) -> str:
    """Reporting period 'YYYY-MM' for an event timestamp."""
    dt = dt or utcnow()
    return f"{dt.year:04d}-{dt.month:02d}"


def month_bounds(dt: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """[start, next_start) of the calendar month containing dt."""
    dt = dt or utcnow()
    start = datetime(dt.year, dt.month, 1)
    if dt.month == 12:
        nxt = datetime(dt.year + 1, 1, 1)
    else:
        nxt = datetime(dt.year, dt.month + 1, 1)
    return start, nxt
