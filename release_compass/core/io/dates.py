from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional


DAY = timedelta(days=1)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Coerce a file/wire value into an aware UTC datetime.

    Accepts datetime, date (UTC midnight) and ISO-8601 strings (a trailing Z is
    allowed). Returns None when the value is not a recognizable date.
    """

    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return as_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def to_iso(value: datetime) -> str:
    return as_utc(value).isoformat().replace("+00:00", "Z")


def days_between(a: datetime, b: datetime) -> float:
    return (b - a) / DAY


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
