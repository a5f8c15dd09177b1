"""Persistence model for mirrored scrobbles."""

from __future__ import annotations

import typing as typ

from sqlalchemy import BigInteger, Index, String, Text, event
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

# 2000-01-01T00:00:00Z; Last.fm reports 1970 placeholders for unknown times.
SANE_EPOCH_UTS = 946_684_800

DATABASE_FILENAME = "lastfm.sqlite"

# SQLite's built-in lower() folds ASCII only.
CASEFOLD_FUNCTION = "unicode_casefold"


class Base(DeclarativeBase):
    """Base declarative class for store models."""


class Scrobble(Base):
    """One immutable listening occurrence, unique by ``source_hash``."""

    __tablename__ = "scrobbles"
    __table_args__ = (Index("idx_scrobbles_played_at_uts", "played_at_uts"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    played_at_uts: Mapped[int] = mapped_column(BigInteger)
    track_name: Mapped[str] = mapped_column(Text())
    artist_name: Mapped[str] = mapped_column(Text())
    album_name: Mapped[str | None] = mapped_column(Text(), default=None)
    track_mbid: Mapped[str | None] = mapped_column(String(64), default=None)
    artist_mbid: Mapped[str | None] = mapped_column(String(64), default=None)
    album_mbid: Mapped[str | None] = mapped_column(String(64), default=None)
    lastfm_url: Mapped[str | None] = mapped_column(Text(), default=None)
    source_hash: Mapped[str] = mapped_column(String(64), unique=True)


def sqlite_url(path: str) -> str:
    """Return the aiosqlite URL for a database file path."""
    return f"sqlite+aiosqlite:///{path}"


def enable_wal(engine: AsyncEngine) -> None:
    """Switch every new SQLite connection to WAL journaling."""

    @event.listens_for(engine.sync_engine, "connect")
    def _set_journal_mode(
        dbapi_connection: typ.Any,  # noqa: ANN401
        _record: typ.Any,  # noqa: ANN401
    ) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def _casefold(value: str | None) -> str | None:
    return None if value is None else value.casefold()


def enable_casefold(engine: AsyncEngine) -> None:
    """Register a Unicode-aware case fold on every new SQLite connection."""

    @event.listens_for(engine.sync_engine, "connect")
    def _register_casefold(
        dbapi_connection: typ.Any,  # noqa: ANN401
        _record: typ.Any,  # noqa: ANN401
    ) -> None:
        dbapi_connection.create_function(
            CASEFOLD_FUNCTION, 1, _casefold, deterministic=True
        )


async def init_storage(engine: AsyncEngine) -> None:
    """Create the scrobble table and index if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
