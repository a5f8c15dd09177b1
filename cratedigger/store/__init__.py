"""Event store: deduplicated scrobble storage and the raw payload log."""

from __future__ import annotations

from .errors import InvalidTimestampError, StorageError
from .raw_log import RAW_LOG_FILENAME, RawEnvelope, RawLogWriter
from .services import (
    AlbumPlays,
    ArtistPlays,
    EventStore,
    InsertResult,
    LocalPlayStats,
    RecentScrobble,
    ScrobbleEnvelope,
    StoreStats,
    TrackPlays,
    VerifyReport,
    make_dedupe_key,
    open_event_store,
    parse_played_at,
)
from .storage import DATABASE_FILENAME, SANE_EPOCH_UTS, Scrobble, init_storage

__all__ = [
    "DATABASE_FILENAME",
    "RAW_LOG_FILENAME",
    "SANE_EPOCH_UTS",
    "AlbumPlays",
    "ArtistPlays",
    "EventStore",
    "InsertResult",
    "InvalidTimestampError",
    "LocalPlayStats",
    "RawEnvelope",
    "RawLogWriter",
    "RecentScrobble",
    "Scrobble",
    "ScrobbleEnvelope",
    "StorageError",
    "StoreStats",
    "TrackPlays",
    "VerifyReport",
    "init_storage",
    "make_dedupe_key",
    "open_event_store",
    "parse_played_at",
]
