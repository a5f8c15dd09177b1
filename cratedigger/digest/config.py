"""Options for digest generation."""

from __future__ import annotations

import dataclasses

MAX_RECENT_LIMIT = 1000

# Per-year rank an artist must reach to count towards its signature years.
SIGNATURE_YEARLY_CUTOFF = 20


class DigestOptionsError(ValueError):
    """Raised when digest options are out of range."""

    @classmethod
    def invalid_recent_limit(cls, value: int) -> DigestOptionsError:
        """Return an error for a recent limit outside ``1..1000``."""
        return cls(f"invalid recent_limit: {value} (expected 1..{MAX_RECENT_LIMIT})")

    @classmethod
    def not_positive(cls, name: str, value: int) -> DigestOptionsError:
        """Return an error for a limit or window that must be positive."""
        return cls(f"{name} must be positive, got {value}")


@dataclasses.dataclass(frozen=True, slots=True)
class DigestOptions:
    """Limits and windows for a digest; every field has a working default.

    Attributes
    ----------
    recent_limit
        Number of most recent scrobbles to include (1..1000).
    top_artists_limit
        Artists per top window.
    top_tracks_limit
        Tracks in the short-window top list and in resurfaced tracks.
    top_albums_limit
        Albums in the short-window top list and in resurfaced albums.
    yearly_top_artists_per_year
        Artists kept per calendar year.
    signature_limit
        Maximum number of signature artists.
    signature_min_years
        Distinct top-20 years an artist needs to qualify as a signature.
    short_window_days, long_window_days
        Trailing windows for the top lists.
    resurface_after_days
        Staleness cutoff for resurfacing candidates.

    """

    recent_limit: int = 150
    top_artists_limit: int = 25
    top_tracks_limit: int = 50
    top_albums_limit: int = 40
    yearly_top_artists_per_year: int = 10
    signature_limit: int = 50
    signature_min_years: int = 5
    short_window_days: int = 30
    long_window_days: int = 365
    resurface_after_days: int = 180

    def __post_init__(self) -> None:
        """Reject options no query could satisfy."""
        if not 1 <= self.recent_limit <= MAX_RECENT_LIMIT:
            raise DigestOptionsError.invalid_recent_limit(self.recent_limit)
        for field in dataclasses.fields(self):
            value = getattr(self, field.name)
            if field.name != "recent_limit" and value <= 0:
                raise DigestOptionsError.not_positive(field.name, value)

    def with_overrides(self, **changes: int) -> DigestOptions:
        """Return a copy with ``changes`` applied and validated."""
        return dataclasses.replace(self, **changes)
