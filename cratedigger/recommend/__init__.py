"""Discovery recommendations via seed, similar-artist and top-track expansion."""

from __future__ import annotations

from .config import RecommendOptions, RecommendOptionsError
from .encode import encode_json, encode_tsv
from .models import (
    ALGORITHM,
    ArtistCandidate,
    RecommendMeta,
    Recommendations,
    SeedArtist,
    TrackCandidate,
)
from .service import RecommendService, merge_similar_artists, rank_track_rows

__all__ = [
    "ALGORITHM",
    "ArtistCandidate",
    "RecommendMeta",
    "RecommendOptions",
    "RecommendOptionsError",
    "RecommendService",
    "Recommendations",
    "SeedArtist",
    "TrackCandidate",
    "encode_json",
    "encode_tsv",
    "merge_similar_artists",
    "rank_track_rows",
]
