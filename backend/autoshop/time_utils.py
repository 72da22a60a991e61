# Overview: UTC clock, API timestamp serialization and date filter parsing.

from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Optional

from .errors import ValidationError


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Naive values are stored UTC; the API always answers with a trailing 'Z'."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def parse_filter_datetime(value: Optional[str], field: str, *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse a listing filter into a UTC-naive datetime.

    Accepts "YYYY-MM-DD" or a full ISO-8601 timestamp ("Z" or an offset is
    converted to UTC). A bare date means the start of that day, or its last
    second when end_of_day is set, so end_date=2026-03-01 includes March 1st.
    """
    if value is None or not value.strip():
        return None
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime")

    if len(s) == 10 and end_of_day:
        dt = datetime.combine(dt.date(), time(23, 59, 59))
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
