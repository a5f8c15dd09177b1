"""Compute the listening digest from the event store.

The digest is read-only. Every window is measured back from ``now``, so two
digests built with the same ``now`` over an unchanged store are identical.
Scrobbles with suspect timestamps are counted in ``meta`` only.
"""

from __future__ import annotations

import collections
import dataclasses
import typing as typ

from cratedigger.common.time import days_before, from_unix, utcnow, year_bounds
from cratedigger.logging import get_logger, log_debug

from .config import SIGNATURE_YEARLY_CUTOFF, DigestOptions
from .models import (
    Digest,
    DigestMeta,
    RankedAlbum,
    RankedArtist,
    RankedTrack,
    RecentEntry,
    ResurfaceSection,
    SignatureArtist,
    SignatureSection,
    TopSection,
    YearlyArtist,
    YearlySection,
)

if typ.TYPE_CHECKING:
    import datetime as dt

    from cratedigger.store.services import (
        AlbumPlays,
        ArtistPlays,
        EventStore,
        RecentScrobble,
        TrackPlays,
    )

logger = get_logger(__name__)


def format_played_at(uts: int) -> str:
    """Render a timestamp as RFC 3339 in UTC, e.g. ``2023-01-01T00:00:00Z``."""
    return from_unix(uts).strftime("%Y-%m-%dT%H:%M:%SZ")


def rank_artists(rows: typ.Iterable[ArtistPlays]) -> tuple[RankedArtist, ...]:
    """Assign ranks 1, 2, 3, ... in row order."""
    return tuple(
        RankedArtist(rank=rank, artist=row.artist, plays=row.plays)
        for rank, row in enumerate(rows, start=1)
    )


def rank_tracks(rows: typ.Iterable[TrackPlays]) -> tuple[RankedTrack, ...]:
    """Assign ranks 1, 2, 3, ... in row order."""
    return tuple(
        RankedTrack(
            rank=rank,
            artist=row.artist,
            track=row.track,
            plays=row.plays,
            last_played_uts=row.last_played_uts,
        )
        for rank, row in enumerate(rows, start=1)
    )


def rank_albums(rows: typ.Iterable[AlbumPlays]) -> tuple[RankedAlbum, ...]:
    """Assign ranks 1, 2, 3, ... in row order."""
    return tuple(
        RankedAlbum(
            rank=rank,
            artist=row.artist,
            album=row.album,
            plays=row.plays,
            last_played_uts=row.last_played_uts,
        )
        for rank, row in enumerate(rows, start=1)
    )


def _recent_entry(row: RecentScrobble) -> RecentEntry:
    return RecentEntry(
        played_at_uts=row.played_at_uts,
        played_at=format_played_at(row.played_at_uts),
        artist=row.artist,
        track=row.track,
        album=row.album or "",
    )


@dataclasses.dataclass(slots=True)
class _SignatureTally:
    years: set[int] = dataclasses.field(default_factory=set)
    plays: int = 0

    def add(self, year: int, plays: int) -> None:
        self.years.add(year)
        self.plays += plays


def rank_signature_artists(
    yearly_top: typ.Mapping[int, typ.Sequence[ArtistPlays]],
    *,
    min_years: int,
    limit: int,
) -> tuple[SignatureArtist, ...]:
    """Rank artists by how many years they made the per-year top list.

    Parameters
    ----------
    yearly_top
        Each year's top artists, already cut to the per-year threshold.
    min_years
        Minimum number of distinct years an artist must appear in.
    limit
        Maximum number of artists returned.

    Returns
    -------
    tuple[SignatureArtist, ...]
        Ordered by distinct years descending, then by plays within those
        years descending, then by artist name.

    """
    tallies: dict[str, _SignatureTally] = collections.defaultdict(_SignatureTally)
    for year, rows in yearly_top.items():
        for row in rows:
            tallies[row.artist].add(year, row.plays)

    qualified = sorted(
        (
            (artist, tally)
            for artist, tally in tallies.items()
            if len(tally.years) >= min_years
        ),
        key=lambda item: (-len(item[1].years), -item[1].plays, item[0]),
    )
    return tuple(
        SignatureArtist(
            rank=rank,
            artist=artist,
            years_in_top=len(tally.years),
            first_year=min(tally.years),
            last_year=max(tally.years),
            plays_in_top_years=tally.plays,
        )
        for rank, (artist, tally) in enumerate(qualified[:limit], start=1)
    )


class DigestService:
    """Build digests over an :class:`EventStore`."""

    def __init__(
        self,
        store: EventStore,
        *,
        options: DigestOptions | None = None,
        clock: typ.Callable[[], dt.datetime] = utcnow,
    ) -> None:
        """Bind the service to a store, default options and a clock."""
        self._store = store
        self._options = options or DigestOptions()
        self._clock = clock

    async def build(
        self,
        options: DigestOptions | None = None,
        *,
        now: dt.datetime | None = None,
    ) -> Digest:
        """Compute every digest section.

        ``options`` overrides the service defaults for this call; ``now``
        overrides the clock.
        """
        opts = options or self._options
        generated_at = now or self._clock()
        store = self._store

        report = await store.verify()
        meta = DigestMeta(
            generated_at=generated_at,
            scrobbles_total=report.total,
            scrobbles_dated=report.dated,
            scrobbles_suspect=report.suspect,
            dated_min_uts=report.dated_min_uts,
            dated_max_uts=report.dated_max_uts,
        )

        short_since = days_before(generated_at, opts.short_window_days)
        long_since = days_before(generated_at, opts.long_window_days)
        stale_cutoff = days_before(generated_at, opts.resurface_after_days)

        recent = tuple(
            _recent_entry(row) for row in await store.recent(opts.recent_limit)
        )
        top = TopSection(
            artists_30d=rank_artists(
                await store.top_artists(short_since, opts.top_artists_limit)
            ),
            artists_365d=rank_artists(
                await store.top_artists(long_since, opts.top_artists_limit)
            ),
            tracks_30d=rank_tracks(
                await store.top_tracks(short_since, opts.top_tracks_limit)
            ),
            albums_30d=rank_albums(
                await store.top_albums(short_since, opts.top_albums_limit)
            ),
        )
        resurface = ResurfaceSection(
            tracks_180d=rank_tracks(
                await store.stale_tracks(stale_cutoff, opts.top_tracks_limit)
            ),
            albums_180d=rank_albums(
                await store.stale_albums(stale_cutoff, opts.top_albums_limit)
            ),
        )

        yearly_top = await self._yearly_top_artists(
            report.dated_min_uts,
            report.dated_max_uts,
            limit=max(opts.yearly_top_artists_per_year, SIGNATURE_YEARLY_CUTOFF),
            empty=report.dated == 0,
        )
        yearly = YearlySection(
            top_artists=tuple(
                YearlyArtist(year=year, rank=rank, artist=row.artist, plays=row.plays)
                for year in sorted(yearly_top)
                for rank, row in enumerate(
                    yearly_top[year][: opts.yearly_top_artists_per_year], start=1
                )
            )
        )
        signature = SignatureSection(
            artists=rank_signature_artists(
                {
                    year: rows[:SIGNATURE_YEARLY_CUTOFF]
                    for year, rows in yearly_top.items()
                },
                min_years=opts.signature_min_years,
                limit=opts.signature_limit,
            )
        )

        log_debug(
            logger,
            "digest built: total=%d dated=%d years=%d",
            report.total,
            report.dated,
            len(yearly_top),
        )
        return Digest(
            meta=meta,
            recent=recent,
            top=top,
            resurface=resurface,
            yearly=yearly,
            signature=signature,
        )

    async def _yearly_top_artists(
        self, min_uts: int, max_uts: int, *, limit: int, empty: bool
    ) -> dict[int, list[ArtistPlays]]:
        """Return each UTC calendar year's top artists between two timestamps."""
        if empty:
            return {}
        first_year = from_unix(min_uts).year
        last_year = from_unix(max_uts).year
        yearly: dict[int, list[ArtistPlays]] = {}
        for year in range(first_year, last_year + 1):
            start, end = year_bounds(year)
            rows = await self._store.top_artists(start, limit, until=end)
            if rows:
                yearly[year] = rows
        return yearly
