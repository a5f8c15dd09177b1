"""Discovery candidates from seed artists, similar artists and their top tracks.

1. Seeds are the most played local artists within a trailing window.
2. Each seed's similar artists are merged by lowercase name; a candidate's
   score is the sum of its match scores across the seeds that nominated it.
3. Each surviving candidate's top tracks are collected, deduplicated by
   lowercase ``(artist, track)`` and annotated with local play history until
   the global track cap is reached.
4. Tracks are ranked unplayed first (optional), then by score descending,
   then by local last play ascending. Both sorts are stable.
"""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import typing as typ

from cratedigger.common.time import days_before, utcnow
from cratedigger.lastfm.retry import RetryPolicy
from cratedigger.logging import get_logger, log_debug, log_info

from .config import RecommendOptions
from .models import (
    ArtistCandidate,
    RecommendMeta,
    Recommendations,
    SeedArtist,
    TrackCandidate,
)

if typ.TYPE_CHECKING:
    import datetime as dt

    from cratedigger.lastfm.client import LastfmSource
    from cratedigger.lastfm.models import SimilarArtist
    from cratedigger.lastfm.retry import SleepFn
    from cratedigger.store.services import EventStore

T = typ.TypeVar("T")

logger = get_logger(__name__)


@dataclasses.dataclass(slots=True)
class MergedArtist:
    """Merge state for one candidate, keyed by lowercase name."""

    display_name: str
    score: float = 0.0
    seeds: set[str] = dataclasses.field(default_factory=set)


@dataclasses.dataclass(frozen=True, slots=True)
class TrackRow:
    artist: str
    track: str
    score: float
    local_plays: int
    local_last_played_uts: int


def merge_similar_artists(
    nominations: typ.Iterable[tuple[str, typ.Sequence[SimilarArtist]]],
    *,
    exclude: typ.Collection[str] = (),
) -> dict[str, MergedArtist]:
    """Merge per-seed similar-artist lists by lowercase artist name.

    ``exclude`` holds lowercase names that must not become candidates. The
    returned mapping preserves first-nomination order.
    """
    merged: dict[str, MergedArtist] = {}
    for seed, similar in nominations:
        for entry in similar:
            name = entry.name.strip()
            if not name:
                continue
            key = name.lower()
            if key in exclude:
                continue
            candidate = merged.get(key)
            if candidate is None:
                candidate = merged[key] = MergedArtist(display_name=name)
            candidate.score += entry.match
            candidate.seeds.add(seed)
    return merged


def rank_track_rows(
    rows: typ.Sequence[TrackRow], *, prefer_unplayed: bool
) -> list[TrackRow]:
    """Order candidate tracks for output without reordering equal rows."""
    ordered = sorted(rows, key=lambda row: (-row.score, row.local_last_played_uts))
    if prefer_unplayed:
        ordered.sort(key=lambda row: row.local_plays != 0)
    return ordered


class RecommendService:
    """Build recommendations from the event store and the remote source."""

    def __init__(  # noqa: PLR0913
        self,
        store: EventStore,
        source: LastfmSource,
        *,
        options: RecommendOptions | None = None,
        retry: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: typ.Callable[[], dt.datetime] = utcnow,
    ) -> None:
        """Bind the service to its collaborators and default options."""
        self._store = store
        self._source = source
        self._options = options or RecommendOptions()
        self._retry = retry or RetryPolicy.for_lookups(sleep=sleep)
        self._sleep = sleep
        self._clock = clock
        self._calls_made = 0

    async def build(
        self,
        options: RecommendOptions | None = None,
        *,
        now: dt.datetime | None = None,
    ) -> Recommendations:
        """Run seed selection, both expansions and the final ranking."""
        opts = options or self._options
        generated_at = now or self._clock()
        self._calls_made = 0

        seed_rows = await self._store.top_artists(
            days_before(generated_at, opts.seed_window_days), opts.seed_artists_limit
        )
        seeds = tuple(
            SeedArtist(artist=row.artist, plays=row.plays) for row in seed_rows
        )
        log_info(logger, "recommend: %d seed artists", len(seeds))

        nominations: list[tuple[str, list[SimilarArtist]]] = []
        for seed in seeds:
            similar = await self._remote_call(
                functools.partial(
                    self._source.fetch_similar_artists,
                    seed.artist,
                    opts.similar_per_seed_artist,
                ),
                label=f"artist.getSimilar artist={seed.artist!r}",
                delay_s=opts.call_delay_s,
            )
            nominations.append((seed.artist, similar))

        exclude: set[str] = set()
        if opts.exclude_seed_artists:
            exclude = {seed.artist.lower() for seed in seeds}
        merged = merge_similar_artists(nominations, exclude=exclude)
        # Stable on first-nomination order for equal scores.
        candidates = sorted(merged.values(), key=lambda c: -c.score)[
            : opts.similar_artists_limit
        ]

        rows = await self._expand_tracks(candidates, opts)
        ranked = rank_track_rows(rows, prefer_unplayed=opts.prefer_unplayed)
        if not opts.include_played_tracks:
            ranked = [row for row in ranked if row.local_plays == 0]

        log_debug(
            logger,
            "recommend: candidates=%d tracks=%d",
            len(candidates),
            len(ranked),
        )
        return Recommendations(
            meta=RecommendMeta(generated_at=generated_at),
            seeds=seeds,
            artists=tuple(
                ArtistCandidate(
                    rank=rank,
                    artist=candidate.display_name,
                    score=candidate.score,
                    from_seed_artists=tuple(sorted(candidate.seeds)),
                )
                for rank, candidate in enumerate(candidates, start=1)
            ),
            tracks=tuple(
                TrackCandidate(
                    rank=rank,
                    artist=row.artist,
                    track=row.track,
                    score=row.score,
                    local_plays=row.local_plays,
                    local_last_played_uts=row.local_last_played_uts,
                )
                for rank, row in enumerate(ranked, start=1)
            ),
        )

    async def _expand_tracks(
        self, candidates: typ.Sequence[MergedArtist], opts: RecommendOptions
    ) -> list[TrackRow]:
        """Collect annotated top tracks until ``candidate_tracks_limit``."""
        rows: list[TrackRow] = []
        seen: set[tuple[str, str]] = set()
        for candidate in candidates:
            if len(rows) >= opts.candidate_tracks_limit:
                break
            top_tracks = await self._remote_call(
                functools.partial(
                    self._source.fetch_artist_top_tracks,
                    candidate.display_name,
                    opts.top_tracks_per_artist,
                ),
                label=f"artist.getTopTracks artist={candidate.display_name!r}",
                delay_s=opts.call_delay_s,
            )
            resolved = next(
                (t.artist.strip() for t in top_tracks if t.artist.strip()), ""
            )
            if resolved.lower() == candidate.display_name.lower():
                candidate.display_name = resolved

            for top_track in top_tracks:
                track = top_track.name.strip()
                if not track:
                    continue
                key = (candidate.display_name.lower(), track.lower())
                if key in seen:
                    continue
                seen.add(key)
                local = await self._store.local_play_stats(
                    candidate.display_name, track
                )
                rows.append(
                    TrackRow(
                        artist=candidate.display_name,
                        track=track,
                        score=candidate.score,
                        local_plays=local.plays,
                        local_last_played_uts=local.last_played_uts,
                    )
                )
                if len(rows) >= opts.candidate_tracks_limit:
                    break
        return rows

    async def _remote_call(
        self,
        fn: typ.Callable[[], typ.Awaitable[T]],
        *,
        label: str,
        delay_s: float,
    ) -> T:
        """Pace successive lookups and run each through the retry policy."""
        if self._calls_made:
            await self._sleep(delay_s)
        self._calls_made += 1
        return await self._retry.call(fn, label=label)
