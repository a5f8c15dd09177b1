"""Read-only client for the Last.fm web service.

The client performs exactly one HTTP request per call and never retries;
callers wrap calls in :class:`cratedigger.lastfm.retry.RetryPolicy`.
"""

from __future__ import annotations

import dataclasses
import typing as typ

import httpx
import msgspec

from .errors import DecodeError, LastfmConfigError, RemoteAPIError, TransportError
from .models import (
    EventsPage,
    SimilarArtist,
    TopTrack,
    parse_events_page,
    parse_similar_artists,
    parse_top_tracks,
)

_HTTP_SUCCESS_MIN = 200
_HTTP_SUCCESS_MAX = 300


def _error_code(value: object) -> int:
    """Return the integer error code of an in-band error payload."""
    try:
        return int(typ.cast("typ.Any", value))
    except (TypeError, ValueError):
        return 0


class LastfmSource(typ.Protocol):
    """Interface for the remote calls the engines depend on."""

    async def fetch_events_page(self, page: int, page_size: int) -> EventsPage:
        """Return one page of the user's listening history, newest first."""
        ...

    async def fetch_similar_artists(
        self, artist: str, limit: int
    ) -> list[SimilarArtist]:
        """Return artists similar to ``artist``, best match first."""
        ...

    async def fetch_artist_top_tracks(self, artist: str, limit: int) -> list[TopTrack]:
        """Return ``artist``'s most played tracks."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class LastfmClientConfig:
    """Configuration for :class:`LastfmClient`."""

    api_key: str
    username: str = ""
    endpoint: str = "https://ws.audioscrobbler.com/2.0/"
    timeout_s: float = 30.0
    user_agent: str = "cratedigger/0.1"


class LastfmClient:
    """httpx-backed implementation of :class:`LastfmSource`.

    Parameters
    ----------
    config
        Credentials and transport settings.
    http_client
        Optional ``httpx.AsyncClient``, typically built around an
        ``httpx.MockTransport`` in tests. When omitted the client creates and
        owns one.

    """

    def __init__(
        self,
        config: LastfmClientConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client with configuration."""
        if not config.api_key.strip():
            raise LastfmConfigError.empty_api_key()

        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            headers={"User-Agent": config.user_agent},
        )

    @property
    def config(self) -> LastfmClientConfig:
        """Read-only access to the client configuration."""
        return self._config

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> LastfmClient:
        """Return the client for use as an async context manager."""
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        """Close owned resources on exit."""
        await self.aclose()

    async def fetch_events_page(self, page: int, page_size: int) -> EventsPage:
        """Fetch one page of ``user.getrecenttracks``."""
        username = self._config.username.strip()
        if not username:
            raise LastfmConfigError.empty_username()
        data = await self._call(
            "user.getrecenttracks",
            {"user": username, "limit": str(page_size), "page": str(page)},
        )
        return parse_events_page(data)

    async def fetch_similar_artists(
        self, artist: str, limit: int
    ) -> list[SimilarArtist]:
        """Fetch ``artist.getSimilar`` with autocorrection enabled."""
        data = await self._call(
            "artist.getSimilar",
            {"artist": artist, "limit": str(limit), "autocorrect": "1"},
        )
        return parse_similar_artists(data)

    async def fetch_artist_top_tracks(self, artist: str, limit: int) -> list[TopTrack]:
        """Fetch ``artist.getTopTracks`` with autocorrection enabled."""
        data = await self._call(
            "artist.getTopTracks",
            {"artist": artist, "limit": str(limit), "autocorrect": "1"},
        )
        return parse_top_tracks(data)

    async def _call(self, method: str, params: dict[str, str]) -> dict[str, typ.Any]:
        query = {
            "method": method,
            "api_key": self._config.api_key,
            "format": "json",
            **params,
        }
        try:
            response = await self._client.get(self._config.endpoint, params=query)
        except httpx.RequestError as exc:
            raise TransportError.connection_failed(str(exc)) from exc

        if not _HTTP_SUCCESS_MIN <= response.status_code < _HTTP_SUCCESS_MAX:
            raise TransportError.http_error(response.status_code, response.text)

        return self._decode(response.content)

    @staticmethod
    def _decode(body: bytes) -> dict[str, typ.Any]:
        """Decode a 2xx body, surfacing in-band ``error`` payloads."""
        try:
            data = msgspec.json.decode(body)
        except msgspec.DecodeError as exc:
            raise DecodeError.invalid_json(str(exc)) from exc

        if not isinstance(data, dict):
            raise DecodeError.invalid_json("top-level value is not an object")

        payload = typ.cast("dict[str, typ.Any]", data)
        if "error" in payload:
            raise RemoteAPIError(
                _error_code(payload.get("error")),
                str(payload.get("message", "")),
            )
        return payload
