"""Command-line entry point.

Usage::

    cratedigger backfill --user rj           # mirror the whole history
    cratedigger sync                         # fetch scrobbles newer than the store
    cratedigger verify                       # print store counts
    cratedigger digest --pretty              # JSON digest on stdout
    cratedigger recommend --format tsv       # artist<TAB>track lines on stdout

Credentials come from ``--api-key``/``--user``, ``LASTFM_API_KEY``/
``LASTFM_USERNAME`` or an env file (``--env-file`` or ``LASTFM_ENV_FILE``).
Documents go to stdout; logs go to stderr. ``CRATEDIGGER_LOG_LEVEL`` sets the
log level when ``--verbose`` is not given.
"""

from __future__ import annotations

import asyncio
import dataclasses
import os
import sys
import typing as typ
from pathlib import Path  # noqa: TC003

from cyclopts import App, Parameter

from cratedigger import __version__
from cratedigger.common.encoding import encode_json
from cratedigger.config import (
    INGESTION_REQUIREMENTS,
    OFFLINE_REQUIREMENTS,
    RECOMMEND_REQUIREMENTS,
    AppConfig,
    ConfigError,
    ConfigRequirements,
)
from cratedigger.digest import DigestOptionsError, DigestService
from cratedigger.lastfm import (
    IngestionConfig,
    IngestionEngine,
    IngestionMode,
    LastfmClient,
    LastfmClientConfig,
    LastfmError,
)
from cratedigger.logging import (
    configure_logging,
    get_logger,
    level_for_verbosity,
    log_error,
    log_exception,
    log_info,
    log_warning,
)
from cratedigger.recommend import RecommendOptionsError, RecommendService, encode_tsv
from cratedigger.store import StorageError, open_event_store

if typ.TYPE_CHECKING:
    from cratedigger.store import StoreStats, VerifyReport

LOG_LEVEL_ENV = "CRATEDIGGER_LOG_LEVEL"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

logger = get_logger(__name__)

app = App(
    name="cratedigger",
    help="Mirror a Last.fm listening history and dig through it.",
    version=__version__,
)

Action: typ.TypeAlias = typ.Callable[[AppConfig], typ.Awaitable[str | None]]

_RUN_FAILURES: tuple[type[Exception], ...] = (
    LastfmError,
    StorageError,
    DigestOptionsError,
    RecommendOptionsError,
    OSError,
)


@Parameter(name="*")
@dataclasses.dataclass(frozen=True, slots=True)
class CommonOptions:
    """Flags shared by every command.

    Attributes
    ----------
    api_key
        Last.fm API key (or set LASTFM_API_KEY).
    shared_secret
        Last.fm shared secret (or set LASTFM_SHARED_SECRET).
    user
        Last.fm username (or set LASTFM_USERNAME).
    data_dir
        Data directory (default: XDG data dir).
    env_file
        Load variables from a file of KEY=VALUE lines.
    verbose
        Log per-page progress.
    user_agent
        HTTP User-Agent sent to Last.fm.

    """

    api_key: str | None = None
    shared_secret: str | None = None
    user: str | None = None
    data_dir: Path | None = None
    env_file: Path | None = None
    verbose: bool = False
    user_agent: str | None = None


def _configure_logging(*, verbose: bool) -> None:
    if verbose:
        configure_logging(level_for_verbosity(verbose=True))
        return
    raw_level = os.environ.get(LOG_LEVEL_ENV)
    if raw_level is None:
        configure_logging(level_for_verbosity(verbose=False))
        return
    normalized, invalid = configure_logging(raw_level)
    if invalid:
        log_warning(
            logger,
            "Invalid %s %r, falling back to %s",
            LOG_LEVEL_ENV,
            raw_level,
            normalized,
        )


def _resolve_config(
    options: CommonOptions, requirements: ConfigRequirements
) -> AppConfig:
    return AppConfig.from_env(
        requirements,
        env_file=options.env_file,
        api_key=options.api_key,
        shared_secret=options.shared_secret,
        username=options.user,
        data_dir=options.data_dir,
        verbose=options.verbose,
        user_agent=options.user_agent,
    )


def _execute(
    command: str,
    options: CommonOptions,
    requirements: ConfigRequirements,
    action: Action,
) -> int:
    """Resolve configuration, run ``action`` and map failures to exit codes."""
    _configure_logging(verbose=options.verbose)
    try:
        config = _resolve_config(options, requirements)
    except ConfigError as exc:
        log_error(logger, "%s: %s", command, exc)
        return EXIT_USAGE

    try:
        output = asyncio.run(action(config))
    except KeyboardInterrupt:
        log_error(logger, "%s: interrupted", command)
        return EXIT_FAILURE
    except _RUN_FAILURES as exc:
        log_exception(logger, f"{command} failed: {exc}", exc)
        return EXIT_FAILURE

    if output is not None:
        print(output)
    return EXIT_OK


def _client_for(config: AppConfig) -> LastfmClient:
    return LastfmClient(
        LastfmClientConfig(
            api_key=config.api_key,
            username=config.username,
            user_agent=config.user_agent,
        )
    )


def format_verify_line(stats: StoreStats, report: VerifyReport) -> str:
    """Render store counts as one ``key=value`` line."""
    return (
        f"scrobbles_total={report.total} scrobbles_dated={report.dated} "
        f"scrobbles_suspect={report.suspect} min_uts={stats.min_uts} "
        f"max_uts={stats.max_uts} dated_min_uts={report.dated_min_uts} "
        f"dated_max_uts={report.dated_max_uts}"
    )


async def run_ingestion(config: AppConfig, mode: IngestionMode) -> None:
    """Run a backfill or sync against the configured store."""
    async with (
        open_event_store(config.data_dir) as store,
        _client_for(config) as client,
    ):
        engine = IngestionEngine(
            store,
            client,
            username=config.username,
            config=IngestionConfig(verbose=config.verbose),
        )
        if mode is IngestionMode.BACKFILL:
            result = await engine.backfill()
        else:
            result = await engine.sync()
        stats = await store.stats()
    log_info(
        logger,
        "%s done: pages=%d inserted=%d ignored=%d total=%d min_uts=%d max_uts=%d",
        result.mode,
        result.pages_fetched,
        result.inserted,
        result.ignored,
        stats.total,
        stats.min_uts,
        stats.max_uts,
    )


async def run_verify(config: AppConfig) -> str:
    """Return the verify line for the configured store."""
    async with open_event_store(config.data_dir) as store:
        stats = await store.stats()
        report = await store.verify()
    return format_verify_line(stats, report)


async def run_digest(config: AppConfig, *, pretty: bool) -> str:
    """Return the digest document as JSON text."""
    async with open_event_store(config.data_dir) as store:
        digest = await DigestService(store).build()
    return encode_json(digest, pretty=pretty).decode("utf-8")


async def run_recommend(
    config: AppConfig, *, pretty: bool, output_format: str
) -> str:
    """Return the recommendation document as JSON or TSV text."""
    async with (
        open_event_store(config.data_dir) as store,
        _client_for(config) as client,
    ):
        recommendations = await RecommendService(store, client).build()
    if output_format == "tsv":
        return encode_tsv(recommendations).rstrip("\n")
    return encode_json(recommendations, pretty=pretty).decode("utf-8")


@app.command
def backfill(*, common: CommonOptions = CommonOptions()) -> int:  # noqa: B008
    """Mirror the full listening history, oldest pages included.

    Returns:
        Exit code (0 for success, 1 for a failed run, 2 for bad configuration).

    """

    async def action(config: AppConfig) -> None:
        await run_ingestion(config, IngestionMode.BACKFILL)

    return _execute("backfill", common, INGESTION_REQUIREMENTS, action)


@app.command
def sync(*, common: CommonOptions = CommonOptions()) -> int:  # noqa: B008
    """Fetch scrobbles newer than the newest stored one.

    Returns:
        Exit code (0 for success, 1 for a failed run, 2 for bad configuration).

    """

    async def action(config: AppConfig) -> None:
        await run_ingestion(config, IngestionMode.SYNC)

    return _execute("sync", common, INGESTION_REQUIREMENTS, action)


@app.command
def verify(*, common: CommonOptions = CommonOptions()) -> int:  # noqa: B008
    """Print stored scrobble counts and timestamp ranges."""
    return _execute("verify", common, OFFLINE_REQUIREMENTS, run_verify)


@app.command
def digest(
    *,
    pretty: bool = False,
    common: CommonOptions = CommonOptions(),  # noqa: B008
) -> int:
    """Print the listening digest as JSON.

    Args:
        pretty: Indent the JSON document.
        common: Shared flags.

    """

    async def action(config: AppConfig) -> str:
        return await run_digest(config, pretty=pretty)

    return _execute("digest", common, OFFLINE_REQUIREMENTS, action)


@app.command
def recommend(
    *,
    pretty: bool = False,
    output_format: typ.Annotated[
        typ.Literal["json", "tsv"], Parameter(name="--format")
    ] = "json",
    common: CommonOptions = CommonOptions(),  # noqa: B008
) -> int:
    """Print discovery candidates as JSON or artist/track TSV.

    Args:
        pretty: Indent the JSON document.
        output_format: ``json`` for the full document, ``tsv`` for
            ``artist<TAB>track`` lines.
        common: Shared flags.

    """

    async def action(config: AppConfig) -> str:
        return await run_recommend(
            config, pretty=pretty, output_format=output_format
        )

    return _execute("recommend", common, RECOMMEND_REQUIREMENTS, action)


def main() -> int:
    """Entry point for the CLI."""
    return app()


if __name__ == "__main__":
    sys.exit(main())
