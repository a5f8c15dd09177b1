"""Structured logging and error categorization for ingestion runs.

Events are emitted as ``[event.type] key=value ...`` lines so they stay easy
to grep in a terminal and to parse with a log aggregator.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import typing as typ

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from cratedigger.logging import get_logger, log_debug, log_error, log_info
from cratedigger.store.errors import InvalidTimestampError, StorageError

from .errors import DecodeError, LastfmConfigError, RemoteAPIError, TransportError
from .retry import is_retryable

if typ.TYPE_CHECKING:
    import datetime as dt

    from cratedigger.logging import SupportsLog

    from .ingestion import IngestionResult


class IngestionEventType(enum.StrEnum):
    """Structured log event types for ingestion observability."""

    RUN_STARTED = "ingestion.run.started"
    RUN_COMPLETED = "ingestion.run.completed"
    RUN_FAILED = "ingestion.run.failed"
    PAGE_PROGRESS = "ingestion.page.progress"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in failure logs."""

    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    SCHEMA_DRIFT = "schema_drift"
    CONFIGURATION = "configuration"
    DATA_INTEGRITY = "data_integrity"
    DATABASE_ERROR = "database_error"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


@dataclasses.dataclass(frozen=True, slots=True)
class IngestionRunContext:
    """Shared context for a single ingestion run."""

    mode: str
    username: str
    started_at: dt.datetime


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (asyncio.CancelledError, ErrorCategory.CANCELLED),
    (DecodeError, ErrorCategory.SCHEMA_DRIFT),
    (LastfmConfigError, ErrorCategory.CONFIGURATION),
    (InvalidTimestampError, ErrorCategory.DATA_INTEGRITY),
    (IntegrityError, ErrorCategory.DATA_INTEGRITY),
    (StorageError, ErrorCategory.DATABASE_ERROR),
    (SQLAlchemyError, ErrorCategory.DATABASE_ERROR),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize an exception for failure reporting."""
    if isinstance(exc, TransportError | RemoteAPIError):
        if is_retryable(exc):
            return ErrorCategory.TRANSIENT
        return ErrorCategory.CLIENT_ERROR

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    return ErrorCategory.UNKNOWN


class IngestionEventLogger:
    """Emit structured ingestion events through femtologging.

    Successful runs log at INFO, per-page detail at DEBUG and failures at
    ERROR.
    """

    def __init__(self, logger: SupportsLog | None = None) -> None:
        """Use ``logger`` or the module logger."""
        self._logger = logger or get_logger(__name__)

    def log_run_started(self, context: IngestionRunContext, watermark: int) -> None:
        """Log ingestion run start."""
        log_info(
            self._logger,
            "[%s] mode=%s user=%s watermark=%d started_at=%s",
            IngestionEventType.RUN_STARTED,
            context.mode,
            context.username,
            watermark,
            context.started_at.isoformat(),
        )

    def log_run_completed(
        self,
        context: IngestionRunContext,
        result: IngestionResult,
        duration: dt.timedelta,
    ) -> None:
        """Log successful ingestion run completion with counters."""
        log_info(
            self._logger,
            "[%s] mode=%s user=%s duration_seconds=%.3f pages_fetched=%d "
            "total_pages=%d inserted=%d ignored=%d",
            IngestionEventType.RUN_COMPLETED,
            context.mode,
            context.username,
            duration.total_seconds(),
            result.pages_fetched,
            result.total_pages,
            result.inserted,
            result.ignored,
        )

    def log_run_failed(
        self,
        context: IngestionRunContext,
        error: BaseException,
        duration: dt.timedelta,
    ) -> None:
        """Log failed ingestion run with error categorization."""
        log_error(
            self._logger,
            "[%s] mode=%s user=%s duration_seconds=%.3f "
            "error_type=%s error_category=%s error_message=%s",
            IngestionEventType.RUN_FAILED,
            context.mode,
            context.username,
            duration.total_seconds(),
            type(error).__name__,
            categorize_error(error),
            str(error),
            exc_info=error,
        )

    def log_page_progress(  # noqa: PLR0913
        self,
        context: IngestionRunContext,
        *,
        page: int,
        total_pages: int,
        inserted: int,
        ignored: int,
        detailed: bool,
    ) -> None:
        """Log walk progress; ``detailed`` lines go to DEBUG, others to INFO."""
        emit = log_debug if detailed else log_info
        emit(
            self._logger,
            "[%s] mode=%s page=%d total_pages=%d inserted=%d ignored=%d",
            IngestionEventType.PAGE_PROGRESS,
            context.mode,
            page,
            total_pages,
            inserted,
            ignored,
        )
