"""Wire structures and typed domain models for the Last.fm web service.

Last.fm's JSON flavour has a few quirks handled here: text values live under
``#text``, attributes under ``@attr``, numbers often arrive as strings, and a
list holding one entry may be sent as a bare object.
"""

from __future__ import annotations

import dataclasses
import typing as typ

import msgspec

from .errors import DecodeError


class WireNamed(msgspec.Struct, kw_only=True):
    """``{"#text": ..., "mbid": ...}`` reference used by recent tracks."""

    text: str = msgspec.field(name="#text", default="")
    mbid: str = ""


class WireDate(msgspec.Struct, kw_only=True):
    """Scrobble timestamp; absent on the now-playing entry."""

    uts: str | int = ""
    text: str = msgspec.field(name="#text", default="")


class WireTrackAttr(msgspec.Struct, kw_only=True):
    """``@attr`` block of a recent track."""

    nowplaying: str = ""


class WireRecentTrack(msgspec.Struct, kw_only=True):
    """Entry of ``recenttracks.track``."""

    name: str = ""
    mbid: str = ""
    url: str = ""
    artist: WireNamed = msgspec.field(default_factory=WireNamed)
    album: WireNamed = msgspec.field(default_factory=WireNamed)
    date: WireDate | None = None
    attr: WireTrackAttr | None = msgspec.field(name="@attr", default=None)


class WireSimilarArtist(msgspec.Struct, kw_only=True):
    """Entry of ``similarartists.artist``."""

    name: str = ""
    match: str | float = "0"
    mbid: str = ""
    url: str = ""


class WireTopTrackArtist(msgspec.Struct, kw_only=True):
    """Artist reference of a top track."""

    name: str = ""
    mbid: str = ""


class WireTopTrack(msgspec.Struct, kw_only=True):
    """Entry of ``toptracks.track``."""

    name: str = ""
    mbid: str = ""
    url: str = ""
    artist: WireTopTrackArtist = msgspec.field(default_factory=WireTopTrackArtist)


@dataclasses.dataclass(frozen=True, slots=True)
class ListenEvent:
    """One entry of the recent-tracks feed together with its original payload."""

    track: str
    artist: str
    album: str
    played_at: str | int | None
    track_mbid: str = ""
    artist_mbid: str = ""
    album_mbid: str = ""
    url: str = ""
    now_playing: bool = False
    payload: dict[str, typ.Any] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True, slots=True)
class EventsPage:
    """A page of the recent-tracks feed, newest first."""

    events: tuple[ListenEvent, ...]
    page: int
    total_pages: int
    total: int


@dataclasses.dataclass(frozen=True, slots=True)
class SimilarArtist:
    """An artist Last.fm considers similar, with a match score in ``[0, 1]``."""

    name: str
    match: float
    mbid: str = ""
    url: str = ""


@dataclasses.dataclass(frozen=True, slots=True)
class TopTrack:
    """One of an artist's most played tracks."""

    name: str
    artist: str
    mbid: str = ""
    url: str = ""


def _as_list(value: object) -> list[typ.Any]:
    """Normalize Last.fm's single-object-or-list encoding to a list."""
    match value:
        case None:
            return []
        case list():
            return value
        case _:
            return [value]


def _as_int(value: object) -> int:
    """Read a numeric metadata field; unparsable values read as 0."""
    try:
        return int(typ.cast("typ.Any", value))
    except (TypeError, ValueError):
        return 0


def _as_float(value: object) -> float:
    try:
        return float(typ.cast("typ.Any", value))
    except (TypeError, ValueError):
        return 0.0


def _section(data: dict[str, typ.Any], method: str, key: str) -> dict[str, typ.Any]:
    section = data.get(key)
    if not isinstance(section, dict):
        raise DecodeError.unexpected_shape(method, f"missing object {key!r}")
    return typ.cast("dict[str, typ.Any]", section)


T = typ.TypeVar("T")


def _convert(raw: object, wire_type: type[T], method: str) -> T:
    try:
        return msgspec.convert(raw, wire_type, strict=False)
    except msgspec.ValidationError as exc:
        raise DecodeError.unexpected_shape(method, str(exc)) from exc


def parse_events_page(data: dict[str, typ.Any]) -> EventsPage:
    """Build an :class:`EventsPage` from a ``user.getrecenttracks`` body.

    Raises
    ------
    DecodeError
        If the body lacks ``recenttracks`` or an entry has the wrong shape.

    """
    method = "user.getrecenttracks"
    section = _section(data, method, "recenttracks")
    raw_attr = section.get("@attr")
    attr = raw_attr if isinstance(raw_attr, dict) else {}

    events: list[ListenEvent] = []
    for raw_track in _as_list(section.get("track")):
        wire = _convert(raw_track, WireRecentTrack, method)
        events.append(
            ListenEvent(
                track=wire.name,
                artist=wire.artist.text,
                album=wire.album.text,
                played_at=wire.date.uts if wire.date is not None else None,
                track_mbid=wire.mbid,
                artist_mbid=wire.artist.mbid,
                album_mbid=wire.album.mbid,
                url=wire.url,
                now_playing=wire.attr is not None
                and wire.attr.nowplaying.lower() == "true",
                payload=raw_track,
            )
        )

    return EventsPage(
        events=tuple(events),
        page=_as_int(attr.get("page")),
        total_pages=_as_int(attr.get("totalPages")),
        total=_as_int(attr.get("total")),
    )


def parse_similar_artists(data: dict[str, typ.Any]) -> list[SimilarArtist]:
    """Build the similar-artist list from an ``artist.getSimilar`` body."""
    method = "artist.getSimilar"
    section = _section(data, method, "similarartists")
    return [
        SimilarArtist(
            name=wire.name,
            match=_as_float(wire.match),
            mbid=wire.mbid,
            url=wire.url,
        )
        for wire in (
            _convert(raw, WireSimilarArtist, method)
            for raw in _as_list(section.get("artist"))
        )
    ]


def parse_top_tracks(data: dict[str, typ.Any]) -> list[TopTrack]:
    """Build the top-track list from an ``artist.getTopTracks`` body."""
    method = "artist.getTopTracks"
    section = _section(data, method, "toptracks")
    return [
        TopTrack(
            name=wire.name,
            artist=wire.artist.name,
            mbid=wire.mbid,
            url=wire.url,
        )
        for wire in (
            _convert(raw, WireTopTrack, method)
            for raw in _as_list(section.get("track"))
        )
    ]
