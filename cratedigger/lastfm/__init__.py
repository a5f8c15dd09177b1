"""Last.fm remote source, retry policy and ingestion engine."""

from __future__ import annotations

from .client import LastfmClient, LastfmClientConfig, LastfmSource
from .errors import (
    DecodeError,
    LastfmConfigError,
    LastfmError,
    RemoteAPIError,
    TransportError,
)
from .ingestion import (
    IngestionConfig,
    IngestionEngine,
    IngestionMode,
    IngestionResult,
)
from .models import EventsPage, ListenEvent, SimilarArtist, TopTrack
from .observability import (
    ErrorCategory,
    IngestionEventLogger,
    IngestionEventType,
    IngestionRunContext,
    categorize_error,
)
from .retry import RetryPolicy, is_retryable

__all__ = [
    "DecodeError",
    "ErrorCategory",
    "EventsPage",
    "IngestionConfig",
    "IngestionEngine",
    "IngestionEventLogger",
    "IngestionEventType",
    "IngestionMode",
    "IngestionResult",
    "IngestionRunContext",
    "LastfmClient",
    "LastfmClientConfig",
    "LastfmConfigError",
    "LastfmError",
    "LastfmSource",
    "ListenEvent",
    "RemoteAPIError",
    "RetryPolicy",
    "SimilarArtist",
    "TopTrack",
    "TransportError",
    "categorize_error",
    "is_retryable",
]
