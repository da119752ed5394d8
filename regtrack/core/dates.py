"""Timestamp coercion and whole-day arithmetic shared by the deadline and SLA code."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

DAY = timedelta(days=1)
_DAY_US = DAY // timedelta(microseconds=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_now(now: Any = None) -> datetime:
    """Caller-supplied clock as aware UTC; naive values are taken as UTC."""
    if now is None:
        return utcnow()
    resolved = coerce_datetime(now)
    if resolved is None:
        raise ValueError(f"Not a timestamp: {now!r}")
    return resolved


def coerce_datetime(value: Any) -> datetime | None:
    """Turn any stored timestamp shape into an aware UTC datetime.

    Accepts datetimes, dates, ISO-8601 strings, epoch milliseconds and
    exported Firestore timestamps (``{"_seconds": ..., "_nanoseconds": ...}``).
    Empty values give ``None``; anything else raises ``ValueError``.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, dict):
        seconds = value.get("_seconds", value.get("seconds"))
        if seconds is None:
            raise ValueError(f"Unrecognised timestamp mapping: {value!r}")
        nanos = value.get("_nanoseconds", value.get("nanoseconds", 0)) or 0
        parsed = datetime.fromtimestamp(int(seconds) + int(nanos) / 1e9, tz=timezone.utc)
    elif isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Not a timestamp: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def ceil_days(delta: timedelta) -> int:
    """Whole days in ``delta``, rounded towards positive infinity."""
    micros = delta // timedelta(microseconds=1)
    return -(-micros // _DAY_US)
