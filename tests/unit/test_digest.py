"""Unit tests for digest generation over the event store."""

from __future__ import annotations

import datetime as dt
import typing as typ

import msgspec
import pytest

from cratedigger.common.encoding import encode_json
from cratedigger.common.time import SECONDS_PER_DAY, year_bounds
from cratedigger.digest import (
    SIGNATURE_YEARLY_CUTOFF,
    DigestOptions,
    DigestOptionsError,
    DigestService,
    format_played_at,
    rank_signature_artists,
)
from cratedigger.store import ArtistPlays, ScrobbleEnvelope

if typ.TYPE_CHECKING:
    from cratedigger.store import EventStore

NOW = dt.datetime(2024, 7, 1, tzinfo=dt.UTC)
NOW_UTS = 1_719_792_000
JAN_1 = 1_672_531_200  # 2023-01-01T00:00:00Z
ALL_TIME = DigestOptions(long_window_days=100_000)


def _days_ago(days: float, *, offset: int = 0) -> int:
    return NOW_UTS - int(days * SECONDS_PER_DAY) + offset


async def _play(
    store: EventStore, uts: int, artist: str, track: str, album: str = ""
) -> None:
    await store.insert(
        ScrobbleEnvelope(played_at=uts, artist=artist, track=track, album=album)
    )


async def _plays(
    store: EventStore,
    count: int,
    *,
    days_ago: float,
    artist: str,
    track: str,
    album: str = "",
) -> None:
    for offset in range(count):
        await _play(store, _days_ago(days_ago, offset=offset), artist, track, album)


def test_format_played_at() -> None:
    """Timestamps render as RFC 3339 in UTC."""
    assert format_played_at(JAN_1) == "2023-01-01T00:00:00Z"


@pytest.mark.asyncio
async def test_end_to_end_top_artists(event_store: EventStore) -> None:
    """Three plays over two artists rank A:2 then B:1; reinsertion changes nothing."""
    events = [
        (JAN_1, "A", "x"),
        (JAN_1 + 86_400, "A", "x"),
        (JAN_1 + 172_800, "B", "y"),
    ]
    service = DigestService(event_store, options=ALL_TIME)

    for _ in range(2):
        for uts, artist, track in events:
            await _play(event_store, uts, artist, track)
        digest = await service.build(now=NOW)

        assert [(a.rank, a.artist, a.plays) for a in digest.top.artists_365d] == [
            (1, "A", 2),
            (2, "B", 1),
        ]
        assert digest.meta.scrobbles_total == len(events)


@pytest.mark.asyncio
async def test_windows_only_count_their_plays(event_store: EventStore) -> None:
    """The 30-day list holds only recent plays; the 365-day list holds both."""
    await _plays(event_store, 2, days_ago=5, artist="C", track="z", album="Zed")
    await _plays(event_store, 3, days_ago=100, artist="D", track="w")
    await _plays(event_store, 9, days_ago=400, artist="E", track="v")

    digest = await DigestService(event_store).build(now=NOW)

    assert [(a.artist, a.plays) for a in digest.top.artists_30d] == [("C", 2)]
    assert [(a.artist, a.plays) for a in digest.top.artists_365d] == [
        ("D", 3),
        ("C", 2),
    ]
    [track] = digest.top.tracks_30d
    assert (track.artist, track.track, track.plays) == ("C", "z", 2)
    assert track.last_played_uts == _days_ago(5, offset=1)
    [album] = digest.top.albums_30d
    assert (album.artist, album.album, album.plays) == ("C", "Zed", 2)


@pytest.mark.asyncio
async def test_window_lists_are_non_increasing(event_store: EventStore) -> None:
    """Every top list is sorted by play count, highest first."""
    for index, count in enumerate([1, 4, 2, 4, 3]):
        await _plays(
            event_store, count, days_ago=3 + index, artist=f"A{index}", track="t"
        )

    digest = await DigestService(event_store).build(now=NOW)

    plays = [a.plays for a in digest.top.artists_30d]
    assert plays == sorted(plays, reverse=True)
    assert [a.rank for a in digest.top.artists_30d] == [1, 2, 3, 4, 5]
    assert [a.artist for a in digest.top.artists_30d[:2]] == ["A1", "A3"]


@pytest.mark.asyncio
async def test_resurface_excludes_recently_played(event_store: EventStore) -> None:
    """A track played inside the staleness window never resurfaces."""
    await _plays(event_store, 5, days_ago=300, artist="Old", track="fave", album="LP")
    await _plays(event_store, 10, days_ago=300, artist="Hot", track="hit", album="Hits")
    await _play(event_store, _days_ago(10), "Hot", "hit", "Hits")
    await _plays(event_store, 1, days_ago=200, artist="Old", track="deep cut")

    digest = await DigestService(event_store).build(now=NOW)

    assert [(t.track, t.plays) for t in digest.resurface.tracks_180d] == [
        ("fave", 5),
        ("deep cut", 1),
    ]
    assert [(a.album, a.plays) for a in digest.resurface.albums_180d] == [("LP", 5)]


@pytest.mark.asyncio
async def test_recent_is_newest_first_and_skips_suspect(
    event_store: EventStore,
) -> None:
    """Recent entries are dated, newest first, and capped by the limit."""
    await _play(event_store, 1_000, "Ghost", "1970s", "")
    await _play(event_store, JAN_1, "A", "first", "Debut")
    await _play(event_store, JAN_1 + 60, "A", "second")
    await _play(event_store, JAN_1 + 120, "B", "third")

    digest = await DigestService(event_store).build(
        DigestOptions(recent_limit=2), now=NOW
    )

    assert [e.track for e in digest.recent] == ["third", "second"]
    assert digest.recent[0].played_at == format_played_at(JAN_1 + 120)
    assert digest.meta.scrobbles_total == 4
    assert digest.meta.scrobbles_dated == 3
    assert digest.meta.scrobbles_suspect == 1
    assert digest.meta.dated_min_uts == JAN_1
    assert digest.meta.dated_max_uts == JAN_1 + 120

    document = msgspec.json.decode(encode_json(digest))
    assert "album" not in document["recent"][0]


@pytest.mark.asyncio
async def test_yearly_and_signature_rankings(event_store: EventStore) -> None:
    """Yearly tops are per calendar year; signatures need enough years."""
    years = range(2017, 2024)
    for year in years:
        start, _ = year_bounds(year)
        await _play(event_store, start + 3_600, "Stalwart", f"song {year}")
    for offset in range(2):
        start, _ = year_bounds(2017)
        await _play(event_store, start + 7_200 + offset, "Fling", "summer")

    options = DigestOptions(yearly_top_artists_per_year=1, signature_min_years=5)
    digest = await DigestService(event_store, options=options).build(now=NOW)

    assert [(y.year, y.rank, y.artist) for y in digest.yearly.top_artists] == [
        (2017, 1, "Fling"),
        *[(year, 1, "Stalwart") for year in years if year != 2017],
    ]
    [signature] = digest.signature.artists
    assert signature.artist == "Stalwart"
    assert signature.years_in_top == len(years)
    assert (signature.first_year, signature.last_year) == (2017, 2023)
    assert signature.plays_in_top_years == len(years)


@pytest.mark.asyncio
async def test_empty_store_digest(event_store: EventStore) -> None:
    """An empty store yields empty sections and zeroed meta."""
    digest = await DigestService(event_store).build(now=NOW)

    assert digest.meta.scrobbles_total == 0
    assert digest.recent == ()
    assert digest.top.artists_30d == ()
    assert digest.yearly.top_artists == ()
    assert digest.signature.artists == ()


@pytest.mark.asyncio
async def test_digest_is_deterministic_for_fixed_now(event_store: EventStore) -> None:
    """Two builds with the same ``now`` encode identically."""
    await _plays(event_store, 3, days_ago=20, artist="A", track="x", album="LP")
    await _plays(event_store, 2, days_ago=250, artist="B", track="y")
    service = DigestService(event_store)

    first = encode_json(await service.build(now=NOW))
    second = encode_json(await service.build(now=NOW))

    assert first == second


@pytest.mark.asyncio
async def test_pretty_document_layout(event_store: EventStore) -> None:
    """Pretty output is indented and carries every section."""
    await _play(event_store, JAN_1, "A", "x")

    encoded = encode_json(await DigestService(event_store).build(now=NOW), pretty=True)

    assert encoded.startswith(b"{\n  ")
    document = msgspec.json.decode(encoded)
    assert list(document) == [
        "meta",
        "recent",
        "top",
        "resurface",
        "yearly",
        "signature",
    ]
    assert document["meta"]["generated_at"] == "2024-07-01T00:00:00Z"


def test_signature_ranking_order() -> None:
    """Years first, then plays within those years, then name."""
    yearly = {
        2020: [ArtistPlays("B", 10), ArtistPlays("A", 5), ArtistPlays("C", 5)],
        2021: [ArtistPlays("A", 7), ArtistPlays("C", 7)],
        2022: [ArtistPlays("A", 1), ArtistPlays("C", 1), ArtistPlays("B", 90)],
    }

    ranked = rank_signature_artists(yearly, min_years=2, limit=10)

    assert [(s.rank, s.artist, s.years_in_top) for s in ranked] == [
        (1, "A", 3),
        (2, "C", 3),
        (3, "B", 2),
    ]
    assert rank_signature_artists(yearly, min_years=2, limit=1)[0].artist == "A"
    assert rank_signature_artists(yearly, min_years=4, limit=10) == ()


def test_signature_cutoff_is_fixed() -> None:
    """The per-year cutoff does not follow the yearly output size."""
    assert SIGNATURE_YEARLY_CUTOFF == 20


@pytest.mark.parametrize(
    "changes",
    [
        {"recent_limit": 0},
        {"recent_limit": 1001},
        {"top_artists_limit": 0},
        {"resurface_after_days": -1},
    ],
)
def test_invalid_options_are_rejected(changes: dict[str, int]) -> None:
    """Out-of-range limits and windows raise DigestOptionsError."""
    with pytest.raises(DigestOptionsError):
        DigestOptions().with_overrides(**changes)


def test_option_defaults() -> None:
    """Defaults cover every knob."""
    options = DigestOptions()

    assert (options.recent_limit, options.top_artists_limit) == (150, 25)
    assert (options.short_window_days, options.long_window_days) == (30, 365)
    assert options.resurface_after_days == 180
    assert options.with_overrides(recent_limit=1000).recent_limit == 1000
