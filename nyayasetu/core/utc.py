"""
UTC helpers.

Every timestamp NyayaSetu stores or returns is timezone-aware UTC.
SQLite drops tzinfo on the way back out, so values read from the database
go through to_utc() before they are compared or serialized.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    """ISO 8601 string with Z suffix, or None."""
    if dt is None:
        return None
    return to_utc(dt).isoformat().replace("+00:00", "Z")


def financial_year(now: Optional[datetime] = None) -> str:
    """
    Financial year label in the "2024-25" form used on sanction orders.

    Follows the calendar-year convention of the sanction register: the
    label starts at the current year.
    """
    year = (now or utc_now()).year
    return f"{year}-{str(year + 1)[2:]}"
