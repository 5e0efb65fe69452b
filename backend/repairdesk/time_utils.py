from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def days_from_now(days: int, *, now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) + timedelta(days=days)


def _as_aware_utc(dt: datetime) -> datetime:
    # stored datetimes are naive UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime into a naive UTC datetime.

    A bare "YYYY-MM-DD" (how quote expiration dates arrive) is midnight UTC.
    Offsets, including a trailing "Z", are converted to UTC.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    return _as_aware_utc(datetime.fromisoformat(text)).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a trailing 'Z'; None passes through."""
    if dt is None:
        return None
    stamp = _as_aware_utc(dt).replace(microsecond=0, tzinfo=None)
    return stamp.isoformat() + "Z"
