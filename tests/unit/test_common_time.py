"""Tests for the Unix timestamp helpers."""

from __future__ import annotations

import datetime as dt

import pytest

from cratedigger.common.time import days_before, from_unix, to_unix, year_bounds


def test_round_trip_is_utc() -> None:
    """Timestamps convert to aware UTC datetimes and back."""
    moment = from_unix(1_672_531_200)

    assert moment == dt.datetime(2023, 1, 1, tzinfo=dt.UTC)
    assert to_unix(moment) == 1_672_531_200


def test_naive_datetimes_are_rejected() -> None:
    """Windows are never computed from naive datetimes."""
    with pytest.raises(ValueError, match="timezone aware"):
        to_unix(dt.datetime(2024, 1, 1))  # noqa: DTZ001 - intentional naive value


def test_days_before() -> None:
    """Windows step back in whole days."""
    now = dt.datetime(2024, 7, 1, tzinfo=dt.UTC)

    assert days_before(now, 30) == to_unix(dt.datetime(2024, 6, 1, tzinfo=dt.UTC))


def test_year_bounds_cover_leap_years() -> None:
    """A calendar year spans from its first second to the next year's."""
    start, end = year_bounds(2024)

    assert start == 1_704_067_200
    assert end - start == 366 * 86_400
