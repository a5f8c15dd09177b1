"""Recommendation document structures; field names are the JSON keys."""

from __future__ import annotations

import datetime as dt  # noqa: TC003

import msgspec

ALGORITHM = "seed-artists->similar-artists->top-tracks"


class RecommendMeta(msgspec.Struct, kw_only=True, frozen=True):
    """Generation time and algorithm identifier."""

    generated_at: dt.datetime
    algo: str = ALGORITHM


class SeedArtist(msgspec.Struct, kw_only=True, frozen=True):
    """Seed artist with its plays inside the seed window."""

    artist: str
    plays: int


class ArtistCandidate(msgspec.Struct, kw_only=True, frozen=True):
    """Candidate artist with its summed match score and nominating seeds."""

    rank: int
    artist: str
    score: float
    from_seed_artists: tuple[str, ...] = ()


class TrackCandidate(msgspec.Struct, kw_only=True, frozen=True):
    """Candidate track annotated with local history.

    ``local_last_played_uts`` is 0 for tracks never played locally.
    """

    rank: int
    artist: str
    track: str
    score: float
    local_plays: int = 0
    local_last_played_uts: int = 0


class Recommendations(msgspec.Struct, kw_only=True, frozen=True):
    """The complete recommendation document."""

    meta: RecommendMeta
    seeds: tuple[SeedArtist, ...] = ()
    artists: tuple[ArtistCandidate, ...] = ()
    tracks: tuple[TrackCandidate, ...] = ()
