"""Mirror the Last.fm recent-tracks feed into the event store.

Two entry points share one page walk:

``backfill``
    Walks every page from 1 to ``totalPages``, stopping early on an empty
    page.

``sync``
    Reads the store's watermark (newest stored timestamp) and walks from
    page 1, stopping after the page that contains an event at or below the
    watermark. The rest of that page is still inserted; inserts are
    idempotent so the overlap costs nothing.

Every insert is its own transaction, so a cancelled or failed run leaves the
store valid and a later ``sync`` resumes where it stopped.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import functools
import time
import typing as typ

from cratedigger.common.time import utcnow
from cratedigger.store.services import ScrobbleEnvelope

from .observability import IngestionEventLogger, IngestionRunContext
from .retry import RetryPolicy

if typ.TYPE_CHECKING:
    import datetime as dt

    from cratedigger.store.services import EventStore

    from .client import LastfmSource
    from .models import ListenEvent
    from .retry import SleepFn


class IngestionMode(enum.StrEnum):
    """Page walk strategies."""

    BACKFILL = "backfill"
    SYNC = "sync"


@dataclasses.dataclass(frozen=True, slots=True)
class IngestionConfig:
    """Runtime knobs for page walks."""

    page_size: int = 200
    page_delay_s: float = 0.25
    progress_interval_s: float = 15.0
    verbose: bool = False


@dataclasses.dataclass(frozen=True, slots=True)
class IngestionResult:
    """Summary of a single ingestion run."""

    mode: IngestionMode
    pages_fetched: int = 0
    inserted: int = 0
    ignored: int = 0
    total_pages: int = 0
    watermark: int = 0


def envelope_for(event: ListenEvent) -> ScrobbleEnvelope:
    """Return the store input for a feed entry."""
    return ScrobbleEnvelope(
        played_at=event.played_at,
        artist=event.artist,
        track=event.track,
        album=event.album,
        track_mbid=event.track_mbid,
        artist_mbid=event.artist_mbid,
        album_mbid=event.album_mbid,
        url=event.url,
    )


class _ProgressReporter:
    """Emit a DEBUG line per page and, unless verbose, a throttled INFO line."""

    def __init__(
        self,
        event_logger: IngestionEventLogger,
        context: IngestionRunContext,
        *,
        interval_s: float,
        monotonic: typ.Callable[[], float],
        verbose: bool = False,
    ) -> None:
        self._event_logger = event_logger
        self._context = context
        self._interval_s = interval_s
        self._monotonic = monotonic
        self._verbose = verbose
        self._last_reported = monotonic()

    def report(
        self, *, page: int, total_pages: int, inserted: int, ignored: int
    ) -> None:
        self._event_logger.log_page_progress(
            self._context,
            page=page,
            total_pages=total_pages,
            inserted=inserted,
            ignored=ignored,
            detailed=True,
        )
        if self._verbose:
            return
        now = self._monotonic()
        if now - self._last_reported < self._interval_s:
            return
        self._last_reported = now
        self._event_logger.log_page_progress(
            self._context,
            page=page,
            total_pages=total_pages,
            inserted=inserted,
            ignored=ignored,
            detailed=False,
        )


@dataclasses.dataclass(slots=True)
class _WalkState:
    page: int = 1
    pages_fetched: int = 0
    total_pages: int = 0
    inserted: int = 0
    ignored: int = 0


class IngestionEngine:
    """Walk Last.fm pages and write them through the event store."""

    def __init__(  # noqa: PLR0913
        self,
        store: EventStore,
        source: LastfmSource,
        *,
        username: str = "",
        config: IngestionConfig | None = None,
        retry: RetryPolicy | None = None,
        event_logger: IngestionEventLogger | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: typ.Callable[[], dt.datetime] = utcnow,
        monotonic: typ.Callable[[], float] = time.monotonic,
    ) -> None:
        """Bind the engine to a store, a remote source and its pacing."""
        self._store = store
        self._source = source
        self._username = username
        self._config = config or IngestionConfig()
        self._retry = retry or RetryPolicy.for_pages(sleep=sleep)
        self._event_logger = event_logger or IngestionEventLogger()
        self._sleep = sleep
        self._clock = clock
        self._monotonic = monotonic

    async def backfill(self) -> IngestionResult:
        """Walk the whole feed from page 1 to the last page."""
        return await self._run(IngestionMode.BACKFILL, watermark=0)

    async def sync(self) -> IngestionResult:
        """Walk from the newest page until the stored watermark is reached."""
        watermark = await self._store.max_played_at()
        return await self._run(IngestionMode.SYNC, watermark=watermark)

    async def _run(self, mode: IngestionMode, *, watermark: int) -> IngestionResult:
        started_at = self._clock()
        context = IngestionRunContext(
            mode=mode, username=self._username, started_at=started_at
        )
        self._event_logger.log_run_started(context, watermark)

        try:
            result = await self._walk(mode, watermark, context)
        except BaseException as exc:
            self._event_logger.log_run_failed(context, exc, self._clock() - started_at)
            raise

        duration = self._clock() - started_at
        self._event_logger.log_run_completed(context, result, duration)
        return result

    async def _walk(
        self, mode: IngestionMode, watermark: int, context: IngestionRunContext
    ) -> IngestionResult:
        state = _WalkState()
        progress = _ProgressReporter(
            self._event_logger,
            context,
            interval_s=self._config.progress_interval_s,
            monotonic=self._monotonic,
            verbose=self._config.verbose,
        )
        stop_at_watermark = mode is IngestionMode.SYNC and watermark != 0

        while True:
            events_page = await self._retry.call(
                functools.partial(
                    self._source.fetch_events_page, state.page, self._config.page_size
                ),
                label=f"user.getrecenttracks page={state.page}",
            )
            state.pages_fetched += 1
            if state.pages_fetched == 1:
                state.total_pages = max(events_page.total_pages, 1)

            if not events_page.events:
                break

            reached_watermark = await self._apply_page(
                events_page.events,
                state,
                watermark=watermark if stop_at_watermark else None,
            )
            progress.report(
                page=state.page,
                total_pages=state.total_pages,
                inserted=state.inserted,
                ignored=state.ignored,
            )

            if reached_watermark or state.page >= state.total_pages:
                break
            state.page += 1
            await self._sleep(self._config.page_delay_s)

        return IngestionResult(
            mode=mode,
            pages_fetched=state.pages_fetched,
            inserted=state.inserted,
            ignored=state.ignored,
            total_pages=state.total_pages,
            watermark=watermark,
        )

    async def _apply_page(
        self,
        events: typ.Sequence[ListenEvent],
        state: _WalkState,
        *,
        watermark: int | None,
    ) -> bool:
        """Insert a whole page and report whether it reached ``watermark``."""
        reached = False
        for event in events:
            outcome = await self._store.insert(envelope_for(event))
            state.inserted += outcome.inserted
            state.ignored += outcome.ignored
            if outcome.inserted:
                self._store.append_raw(event.payload)
            if (
                watermark is not None
                and outcome.played_at is not None
                and outcome.played_at <= watermark
            ):
                reached = True
        await self._store.flush_raw()
        return reached
