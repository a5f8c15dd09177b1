"""Options for discovery recommendations."""

from __future__ import annotations

import dataclasses

_POSITIVE_FIELDS = (
    "seed_artists_limit",
    "seed_window_days",
    "similar_per_seed_artist",
    "similar_artists_limit",
    "top_tracks_per_artist",
    "candidate_tracks_limit",
)


class RecommendOptionsError(ValueError):
    """Raised when recommendation options are out of range."""

    @classmethod
    def not_positive(cls, name: str, value: float) -> RecommendOptionsError:
        """Return an error for a limit or window that must be positive."""
        return cls(f"{name} must be positive, got {value}")


@dataclasses.dataclass(frozen=True, slots=True)
class RecommendOptions:
    """Knobs for seed selection, expansion and final ranking.

    Attributes
    ----------
    seed_artists_limit
        Number of seed artists taken from recent local history.
    seed_window_days
        Trailing window the seeds are counted in.
    similar_per_seed_artist
        Similar artists requested per seed.
    similar_artists_limit
        Candidate artists kept after merging.
    top_tracks_per_artist
        Top tracks requested per candidate artist.
    candidate_tracks_limit
        Global cap on candidate tracks.
    exclude_seed_artists
        Drop candidates that are themselves seeds.
    include_played_tracks
        Keep tracks that already have local plays.
    prefer_unplayed
        Sort unplayed tracks before played ones.
    call_delay_s
        Pause between successive remote lookups.

    """

    seed_artists_limit: int = 8
    seed_window_days: int = 90
    similar_per_seed_artist: int = 15
    similar_artists_limit: int = 25
    top_tracks_per_artist: int = 6
    candidate_tracks_limit: int = 120
    exclude_seed_artists: bool = True
    include_played_tracks: bool = True
    prefer_unplayed: bool = True
    call_delay_s: float = 0.2

    def __post_init__(self) -> None:
        """Reject limits that would make every list empty."""
        for name in _POSITIVE_FIELDS:
            value = getattr(self, name)
            if value <= 0:
                raise RecommendOptionsError.not_positive(name, value)
        if self.call_delay_s < 0:
            raise RecommendOptionsError.not_positive("call_delay_s", self.call_delay_s)

    def with_overrides(self, **changes: object) -> RecommendOptions:
        """Return a copy with ``changes`` applied and validated."""
        return dataclasses.replace(self, **changes)  # type: ignore[arg-type]
