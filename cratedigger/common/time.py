"""Common time utilities."""

from __future__ import annotations

import datetime as dt

SECONDS_PER_DAY = 86_400


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp."""
    return dt.datetime.now(dt.UTC)


def to_unix(value: dt.datetime) -> int:
    """Return whole seconds since the epoch for an aware datetime."""
    if value.tzinfo is None:
        msg = "datetime must be timezone aware"
        raise ValueError(msg)
    return int(value.timestamp())


def from_unix(seconds: int) -> dt.datetime:
    """Return the aware UTC datetime for a Unix timestamp."""
    return dt.datetime.fromtimestamp(seconds, dt.UTC)


def days_before(now: dt.datetime, days: int) -> int:
    """Return the Unix timestamp ``days`` whole days before ``now``."""
    return to_unix(now) - days * SECONDS_PER_DAY


def year_bounds(year: int) -> tuple[int, int]:
    """Return the ``[start, end)`` Unix range of a UTC calendar year."""
    start = dt.datetime(year, 1, 1, tzinfo=dt.UTC)
    end = dt.datetime(year + 1, 1, 1, tzinfo=dt.UTC)
    return to_unix(start), to_unix(end)
