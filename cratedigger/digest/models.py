"""Digest document structures; field names are the JSON keys."""

from __future__ import annotations

import datetime as dt  # noqa: TC003

import msgspec


class DigestMeta(msgspec.Struct, kw_only=True, frozen=True):
    """Store-wide counts and the generation time."""

    generated_at: dt.datetime
    scrobbles_total: int
    scrobbles_dated: int
    scrobbles_suspect: int
    dated_min_uts: int
    dated_max_uts: int


class RecentEntry(msgspec.Struct, kw_only=True, frozen=True, omit_defaults=True):
    """A recent scrobble; ``album`` is omitted when unknown."""

    played_at_uts: int
    played_at: str
    artist: str
    track: str
    album: str = ""


class RankedArtist(msgspec.Struct, kw_only=True, frozen=True):
    """Artist with a 1-based rank within its list."""

    rank: int
    artist: str
    plays: int


class RankedTrack(msgspec.Struct, kw_only=True, frozen=True):
    """Track with a 1-based rank and its last play."""

    rank: int
    artist: str
    track: str
    plays: int
    last_played_uts: int


class RankedAlbum(msgspec.Struct, kw_only=True, frozen=True):
    """Album with a 1-based rank and its last play."""

    rank: int
    artist: str
    album: str
    plays: int
    last_played_uts: int


class YearlyArtist(msgspec.Struct, kw_only=True, frozen=True):
    """Artist rank within one UTC calendar year."""

    year: int
    rank: int
    artist: str
    plays: int


class SignatureArtist(msgspec.Struct, kw_only=True, frozen=True):
    """Artist that recurs in yearly top rankings."""

    rank: int
    artist: str
    years_in_top: int
    first_year: int
    last_year: int
    plays_in_top_years: int


class TopSection(msgspec.Struct, kw_only=True, frozen=True):
    """Windowed top lists."""

    artists_30d: tuple[RankedArtist, ...] = ()
    artists_365d: tuple[RankedArtist, ...] = ()
    tracks_30d: tuple[RankedTrack, ...] = ()
    albums_30d: tuple[RankedAlbum, ...] = ()


class ResurfaceSection(msgspec.Struct, kw_only=True, frozen=True):
    """Past favourites not played within the staleness window."""

    tracks_180d: tuple[RankedTrack, ...] = ()
    albums_180d: tuple[RankedAlbum, ...] = ()


class YearlySection(msgspec.Struct, kw_only=True, frozen=True):
    """Per-year artist rankings, by year then rank."""

    top_artists: tuple[YearlyArtist, ...] = ()


class SignatureSection(msgspec.Struct, kw_only=True, frozen=True):
    """Long-term signature artists."""

    artists: tuple[SignatureArtist, ...] = ()


class Digest(msgspec.Struct, kw_only=True, frozen=True):
    """The complete digest document."""

    meta: DigestMeta
    recent: tuple[RecentEntry, ...] = ()
    top: TopSection
    resurface: ResurfaceSection
    yearly: YearlySection
    signature: SignatureSection
