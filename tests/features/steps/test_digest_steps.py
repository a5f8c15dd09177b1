"""Behavioural coverage for the listening digest."""

from __future__ import annotations

import asyncio
import datetime as dt
import typing as typ

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from cratedigger.common.time import SECONDS_PER_DAY, to_unix
from cratedigger.digest import Digest, DigestOptions, DigestService
from cratedigger.store import ScrobbleEnvelope, open_event_store

if typ.TYPE_CHECKING:
    from pathlib import Path

NOW = dt.datetime(2024, 7, 1, tzinfo=dt.UTC)
JAN_1 = 1_672_531_200


class DigestContext(typ.TypedDict, total=False):
    """Shared mutable scenario state."""

    data_dir: Path
    inserted: list[ScrobbleEnvelope]
    digest: Digest


@scenario("../digest.feature", "All-time top artists survive reinsertion")
def test_all_time_top_artists() -> None:
    """Wrap the pytest-bdd scenario."""


@scenario("../digest.feature", "Recently played favourites are not resurfaced")
def test_resurface_skips_recent_plays() -> None:
    """Wrap the pytest-bdd scenario."""


@pytest.fixture
def digest_context(data_dir: Path) -> DigestContext:
    """Start each scenario with an empty store."""
    return {"data_dir": data_dir, "inserted": []}


def _insert(context: DigestContext, envelopes: list[ScrobbleEnvelope]) -> None:
    async def _write() -> None:
        async with open_event_store(context["data_dir"]) as store:
            for envelope in envelopes:
                await store.insert(envelope)

    asyncio.run(_write())
    context["inserted"].extend(envelopes)


def _plays(
    artist: str, track: str, count: int, *, days_ago: int
) -> list[ScrobbleEnvelope]:
    start = to_unix(NOW) - days_ago * SECONDS_PER_DAY
    return [
        ScrobbleEnvelope(played_at=start + offset, artist=artist, track=track)
        for offset in range(count)
    ]


@given(
    "the store holds A/x on 2023-01-01, A/x on 2023-01-02 and B/y on 2023-01-03"
)
def example_history(digest_context: DigestContext) -> None:
    """Insert the three-scrobble example history."""
    _insert(
        digest_context,
        [
            ScrobbleEnvelope(played_at=JAN_1, artist="A", track="x"),
            ScrobbleEnvelope(played_at=JAN_1 + SECONDS_PER_DAY, artist="A", track="x"),
            ScrobbleEnvelope(
                played_at=JAN_1 + 2 * SECONDS_PER_DAY, artist="B", track="y"
            ),
        ],
    )


@given(parsers.parse("a track played {count:d} times 300 days ago"))
def stale_favourite(digest_context: DigestContext, count: int) -> None:
    """Insert a favourite nobody has played lately."""
    _insert(digest_context, _plays("Old", "favourite", count, days_ago=300))


@given(
    parsers.parse("a track played {count:d} times 300 days ago and once last week")
)
def current_favourite(digest_context: DigestContext, count: int) -> None:
    """Insert a favourite that is still in rotation."""
    _insert(
        digest_context,
        [
            *_plays("Hot", "anthem", count, days_ago=300),
            *_plays("Hot", "anthem", 1, days_ago=7),
        ],
    )


@when("the same scrobbles are inserted again")
def reinsert(digest_context: DigestContext) -> None:
    """Replay every scrobble inserted so far."""
    _insert(digest_context, list(digest_context["inserted"]))


@when("I build an all-time digest")
def build_digest(digest_context: DigestContext) -> None:
    """Build a digest whose long window covers every scrobble."""

    async def _build() -> Digest:
        async with open_event_store(digest_context["data_dir"]) as store:
            service = DigestService(
                store, options=DigestOptions(long_window_days=100_000)
            )
            return await service.build(now=NOW)

    digest_context["digest"] = asyncio.run(_build())


@then(parsers.parse('the top artists are "{expected}"'))
def top_artists(digest_context: DigestContext, expected: str) -> None:
    """Compare the long-window artist list with ``artist:plays`` pairs."""
    actual = ", ".join(
        f"{row.artist}:{row.plays}" for row in digest_context["digest"].top.artists_365d
    )
    assert actual == expected


@then(parsers.parse("the digest counts {count:d} scrobbles"))
def digest_counts(digest_context: DigestContext, count: int) -> None:
    """Check the total in the digest meta section."""
    assert digest_context["digest"].meta.scrobbles_total == count


@then("only the first track is resurfaced")
def only_stale_track(digest_context: DigestContext) -> None:
    """The still-played favourite never appears in the resurface list."""
    digest = digest_context["digest"]
    resurfaced = [(row.artist, row.track) for row in digest.resurface.tracks_180d]
    assert resurfaced == [("Old", "favourite")]
