"""Listening digest: recent plays, windowed tops, resurfacing and yearly rankings."""

from __future__ import annotations

from .config import SIGNATURE_YEARLY_CUTOFF, DigestOptions, DigestOptionsError
from .models import (
    Digest,
    DigestMeta,
    RankedAlbum,
    RankedArtist,
    RankedTrack,
    RecentEntry,
    SignatureArtist,
    YearlyArtist,
)
from .service import DigestService, format_played_at, rank_signature_artists

__all__ = [
    "SIGNATURE_YEARLY_CUTOFF",
    "Digest",
    "DigestMeta",
    "DigestOptions",
    "DigestOptionsError",
    "DigestService",
    "RankedAlbum",
    "RankedArtist",
    "RankedTrack",
    "RecentEntry",
    "SignatureArtist",
    "YearlyArtist",
    "format_played_at",
    "rank_signature_artists",
]
