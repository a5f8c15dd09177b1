"""Deduplicating scrobble store and the query primitives the engines read.

Every scrobble is keyed by a SHA-256 digest of ``(played_at, artist, track,
album)``. Inserts are insert-if-absent, one transaction per scrobble, so a
rerun of any ingestion leaves existing rows untouched and a cancelled run
leaves the store valid.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses as dc
import hashlib
import typing as typ

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from .errors import InvalidTimestampError, StorageError
from .raw_log import RAW_LOG_FILENAME, RawLogWriter
from .storage import (
    CASEFOLD_FUNCTION,
    DATABASE_FILENAME,
    SANE_EPOCH_UTS,
    Scrobble,
    enable_casefold,
    enable_wal,
    init_storage,
    sqlite_url,
)

if typ.TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql import ColumnElement, Select

    SessionFactory: typ.TypeAlias = async_sessionmaker[AsyncSession]


def make_dedupe_key(played_at: int, artist: str, track: str, album: str) -> str:
    """Return the stable dedupe key for a scrobble.

    The material is ``"{played_at}|{artist}|{track}|{album}"`` encoded as
    UTF-8, so keys stay identical across runs, processes and releases.
    """
    material = f"{played_at}|{artist}|{track}|{album}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def parse_played_at(raw: str | int | None) -> int | None:
    """Return the integer timestamp of a wire value, or None when absent.

    Raises
    ------
    InvalidTimestampError
        If a value is present but is not an integer.

    """
    match raw:
        case None | "":
            return None
        case bool():
            raise InvalidTimestampError(raw)
        case int():
            return raw
        case str():
            try:
                return int(raw.strip())
            except ValueError as exc:
                raise InvalidTimestampError(raw) from exc
        case _:
            raise InvalidTimestampError(raw)


def _none_if_empty(value: str | None) -> str | None:
    return value or None


@dc.dataclass(frozen=True, slots=True)
class ScrobbleEnvelope:
    """Structured input for :meth:`EventStore.insert`.

    ``played_at`` is the wire value; None or an empty string marks a
    now-playing entry that is never stored.
    """

    played_at: str | int | None
    artist: str
    track: str
    album: str = ""
    track_mbid: str = ""
    artist_mbid: str = ""
    album_mbid: str = ""
    url: str = ""


@dc.dataclass(frozen=True, slots=True)
class InsertResult:
    """Outcome of a single insert-if-absent."""

    inserted: int = 0
    ignored: int = 0
    played_at: int | None = None


@dc.dataclass(frozen=True, slots=True)
class StoreStats:
    """Row count and timestamp span over every stored scrobble."""

    total: int
    min_uts: int
    max_uts: int


@dc.dataclass(frozen=True, slots=True)
class VerifyReport:
    """Counts split by the sane-epoch threshold; ``dated + suspect == total``."""

    total: int
    dated: int
    suspect: int
    dated_min_uts: int
    dated_max_uts: int


@dc.dataclass(frozen=True, slots=True)
class ArtistPlays:
    """Play count for one artist."""

    artist: str
    plays: int


@dc.dataclass(frozen=True, slots=True)
class TrackPlays:
    """Play count and last play for one artist/track pair."""

    artist: str
    track: str
    plays: int
    last_played_uts: int


@dc.dataclass(frozen=True, slots=True)
class AlbumPlays:
    """Play count and last play for one artist/album pair."""

    artist: str
    album: str
    plays: int
    last_played_uts: int


@dc.dataclass(frozen=True, slots=True)
class RecentScrobble:
    """A stored scrobble as returned by :meth:`EventStore.recent`."""

    played_at_uts: int
    artist: str
    track: str
    album: str | None


@dc.dataclass(frozen=True, slots=True)
class LocalPlayStats:
    """Local history for one artist/track pair; zeros when never played."""

    plays: int = 0
    last_played_uts: int = 0


def _casefold(column: ColumnElement[str]) -> ColumnElement[str]:
    return getattr(func, CASEFOLD_FUNCTION)(column)


def _dated_window(
    since: int | None = None, until: int | None = None
) -> list[ColumnElement[bool]]:
    """Return filters selecting dated scrobbles in ``[since, until)``."""
    clauses: list[ColumnElement[bool]] = [Scrobble.played_at_uts >= SANE_EPOCH_UTS]
    if since is not None:
        clauses.append(Scrobble.played_at_uts >= since)
    if until is not None:
        clauses.append(Scrobble.played_at_uts < until)
    return clauses


def _has_album() -> list[ColumnElement[bool]]:
    return [Scrobble.album_name.is_not(None), Scrobble.album_name != ""]


class EventStore:
    """Sole owner of stored scrobbles and the raw payload log."""

    def __init__(self, session_factory: SessionFactory, raw_log: RawLogWriter) -> None:
        """Bind the store to a session factory and an open raw log."""
        self._session_factory = session_factory
        self._raw_log = raw_log

    async def insert(self, envelope: ScrobbleEnvelope) -> InsertResult:
        """Store ``envelope`` unless its dedupe key already exists.

        Now-playing entries (no timestamp) are reported as ignored and never
        reach the database. A dedupe collision is reported as ignored as well.

        Raises
        ------
        InvalidTimestampError
            If the wire timestamp is present but unparsable.
        StorageError
            If the database rejects the insert for any other reason.

        """
        played_at = parse_played_at(envelope.played_at)
        if played_at is None:
            return InsertResult(ignored=1)

        dedupe_key = make_dedupe_key(
            played_at, envelope.artist, envelope.track, envelope.album
        )
        async with self._session_factory() as session:
            session.add(
                Scrobble(
                    played_at_uts=played_at,
                    track_name=envelope.track,
                    artist_name=envelope.artist,
                    album_name=_none_if_empty(envelope.album),
                    track_mbid=_none_if_empty(envelope.track_mbid),
                    artist_mbid=_none_if_empty(envelope.artist_mbid),
                    album_mbid=_none_if_empty(envelope.album_mbid),
                    lastfm_url=_none_if_empty(envelope.url),
                    source_hash=dedupe_key,
                )
            )
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if not await self._exists(session, dedupe_key):
                    raise StorageError.insert_failed(str(exc)) from exc
                return InsertResult(ignored=1, played_at=played_at)
            except SQLAlchemyError as exc:
                await session.rollback()
                raise StorageError.insert_failed(str(exc)) from exc

        return InsertResult(inserted=1, played_at=played_at)

    @staticmethod
    async def _exists(session: AsyncSession, dedupe_key: str) -> bool:
        found = await session.scalar(
            select(Scrobble.id).where(Scrobble.source_hash == dedupe_key)
        )
        return found is not None

    def append_raw(self, payload: dict[str, typ.Any]) -> None:
        """Buffer the original payload of a newly inserted scrobble."""
        self._raw_log.append(payload)

    async def flush_raw(self) -> None:
        """Write buffered raw payloads to disk."""
        await self._raw_log.flush()

    async def _rows(self, stmt: Select[typ.Any]) -> list[typ.Any]:
        try:
            async with self._session_factory() as session:
                return list((await session.execute(stmt)).all())
        except SQLAlchemyError as exc:
            raise StorageError.query_failed(str(exc)) from exc

    async def max_played_at(self) -> int:
        """Return the newest stored timestamp, or 0 for an empty store."""
        rows = await self._rows(select(func.max(Scrobble.played_at_uts)))
        value = rows[0][0]
        return int(value) if value is not None else 0

    async def stats(self) -> StoreStats:
        """Return the row count and the overall timestamp span."""
        rows = await self._rows(
            select(
                func.count(),
                func.min(Scrobble.played_at_uts),
                func.max(Scrobble.played_at_uts),
            ).select_from(Scrobble)
        )
        total, min_uts, max_uts = rows[0]
        return StoreStats(total=int(total), min_uts=min_uts or 0, max_uts=max_uts or 0)

    async def verify(self) -> VerifyReport:
        """Split the stored rows into dated and suspect timestamps."""
        is_dated = Scrobble.played_at_uts >= SANE_EPOCH_UTS
        dated_uts = case((is_dated, Scrobble.played_at_uts), else_=None)
        rows = await self._rows(
            select(
                func.count(),
                func.coalesce(func.sum(case((is_dated, 1), else_=0)), 0),
                func.min(dated_uts),
                func.max(dated_uts),
            ).select_from(Scrobble)
        )
        total, dated, dated_min, dated_max = rows[0]
        return VerifyReport(
            total=int(total),
            dated=int(dated),
            suspect=int(total) - int(dated),
            dated_min_uts=dated_min or 0,
            dated_max_uts=dated_max or 0,
        )

    async def recent(self, limit: int) -> list[RecentScrobble]:
        """Return the newest ``limit`` dated scrobbles, newest first."""
        rows = await self._rows(
            select(
                Scrobble.played_at_uts,
                Scrobble.artist_name,
                Scrobble.track_name,
                Scrobble.album_name,
            )
            .where(*_dated_window())
            .order_by(Scrobble.played_at_uts.desc(), Scrobble.id.desc())
            .limit(limit)
        )
        return [
            RecentScrobble(played_at_uts=uts, artist=artist, track=track, album=album)
            for uts, artist, track, album in rows
        ]

    async def top_artists(
        self, since: int | None, limit: int, *, until: int | None = None
    ) -> list[ArtistPlays]:
        """Count dated plays per artist in ``[since, until)``, most played first."""
        plays = func.count().label("plays")
        rows = await self._rows(
            select(Scrobble.artist_name, plays)
            .where(*_dated_window(since, until))
            .group_by(Scrobble.artist_name)
            .order_by(plays.desc(), Scrobble.artist_name.asc())
            .limit(limit)
        )
        return [ArtistPlays(artist=artist, plays=int(n)) for artist, n in rows]

    async def top_tracks(self, since: int | None, limit: int) -> list[TrackPlays]:
        """Count dated plays per track since ``since``, most played first."""
        plays = func.count().label("plays")
        last_played = func.max(Scrobble.played_at_uts).label("last_played")
        rows = await self._rows(
            select(Scrobble.artist_name, Scrobble.track_name, plays, last_played)
            .where(*_dated_window(since))
            .group_by(Scrobble.artist_name, Scrobble.track_name)
            .order_by(
                plays.desc(), Scrobble.artist_name.asc(), Scrobble.track_name.asc()
            )
            .limit(limit)
        )
        return [_track_plays(row) for row in rows]

    async def top_albums(self, since: int | None, limit: int) -> list[AlbumPlays]:
        """Count dated plays per named album since ``since``, most played first."""
        plays = func.count().label("plays")
        last_played = func.max(Scrobble.played_at_uts).label("last_played")
        rows = await self._rows(
            select(Scrobble.artist_name, Scrobble.album_name, plays, last_played)
            .where(*_dated_window(since), *_has_album())
            .group_by(Scrobble.artist_name, Scrobble.album_name)
            .order_by(
                plays.desc(), Scrobble.artist_name.asc(), Scrobble.album_name.asc()
            )
            .limit(limit)
        )
        return [_album_plays(row) for row in rows]

    async def stale_tracks(self, cutoff: int, limit: int) -> list[TrackPlays]:
        """Return tracks last played before ``cutoff``, by all-time plays."""
        plays = func.count().label("plays")
        last_played = func.max(Scrobble.played_at_uts).label("last_played")
        rows = await self._rows(
            select(Scrobble.artist_name, Scrobble.track_name, plays, last_played)
            .where(*_dated_window())
            .group_by(Scrobble.artist_name, Scrobble.track_name)
            .having(last_played < cutoff)
            .order_by(
                plays.desc(), Scrobble.artist_name.asc(), Scrobble.track_name.asc()
            )
            .limit(limit)
        )
        return [_track_plays(row) for row in rows]

    async def stale_albums(self, cutoff: int, limit: int) -> list[AlbumPlays]:
        """Return albums last played before ``cutoff``, by all-time plays."""
        plays = func.count().label("plays")
        last_played = func.max(Scrobble.played_at_uts).label("last_played")
        rows = await self._rows(
            select(Scrobble.artist_name, Scrobble.album_name, plays, last_played)
            .where(*_dated_window(), *_has_album())
            .group_by(Scrobble.artist_name, Scrobble.album_name)
            .having(last_played < cutoff)
            .order_by(
                plays.desc(), Scrobble.artist_name.asc(), Scrobble.album_name.asc()
            )
            .limit(limit)
        )
        return [_album_plays(row) for row in rows]

    async def local_play_stats(self, artist: str, track: str) -> LocalPlayStats:
        """Return dated plays and last play for a track, matched case-insensitively."""
        rows = await self._rows(
            select(
                func.count(),
                func.coalesce(func.max(Scrobble.played_at_uts), 0),
            ).where(
                *_dated_window(),
                _casefold(Scrobble.artist_name) == artist.casefold(),
                _casefold(Scrobble.track_name) == track.casefold(),
            )
        )
        plays, last_played = rows[0]
        return LocalPlayStats(plays=int(plays), last_played_uts=int(last_played))


def _track_plays(row: typ.Any) -> TrackPlays:  # noqa: ANN401
    artist, track, plays, last_played = row
    return TrackPlays(
        artist=artist, track=track, plays=int(plays), last_played_uts=int(last_played)
    )


def _album_plays(row: typ.Any) -> AlbumPlays:  # noqa: ANN401
    artist, album, plays, last_played = row
    return AlbumPlays(
        artist=artist, album=album, plays=int(plays), last_played_uts=int(last_played)
    )


@contextlib.asynccontextmanager
async def open_event_store(data_dir: Path) -> typ.AsyncIterator[EventStore]:
    """Open the store under ``data_dir``, creating files and schema as needed.

    On exit the raw log is flushed and closed and the engine disposed, also
    when the body raised or was cancelled.
    """
    await asyncio.to_thread(data_dir.mkdir, parents=True, exist_ok=True)
    engine = create_async_engine(sqlite_url(str(data_dir / DATABASE_FILENAME)))
    enable_wal(engine)
    enable_casefold(engine)
    try:
        await init_storage(engine)
        raw_log = RawLogWriter(data_dir / RAW_LOG_FILENAME)
    except BaseException:
        await engine.dispose()
        raise

    store = EventStore(async_sessionmaker(engine, expire_on_commit=False), raw_log)
    try:
        yield store
    finally:
        try:
            await raw_log.aclose()
        finally:
            await engine.dispose()
