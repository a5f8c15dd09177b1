"""Unit tests for the Last.fm HTTP client."""

from __future__ import annotations

import typing as typ

import httpx
import pytest

from cratedigger.lastfm import (
    DecodeError,
    LastfmClient,
    LastfmClientConfig,
    LastfmConfigError,
    RemoteAPIError,
    TransportError,
)
from tests.helpers.lastfm_fakes import recent_tracks_body, track_payload

_API_KEY = "test-api-key"
_ENDPOINT = "https://example.test/2.0/"
_HTTP_SERVER_ERROR = 503
_RATE_LIMIT_CODE = 29
_TOTAL_PAGES = 12
_MATCH = 0.87


def _make_client(
    responses: list[httpx.Response],
    *,
    username: str = "rj",
) -> tuple[LastfmClient, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responses[len(requests) - 1]

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    client = LastfmClient(
        LastfmClientConfig(
            api_key=_API_KEY,
            username=username,
            endpoint=_ENDPOINT,
            user_agent="cratedigger-tests",
        ),
        http_client=http_client,
    )
    return client, requests


def test_client_rejects_blank_api_key() -> None:
    """A whitespace key is a configuration error."""
    with pytest.raises(LastfmConfigError, match="API key"):
        LastfmClient(LastfmClientConfig(api_key="  "))


@pytest.mark.asyncio
async def test_fetch_events_page_sends_query_and_parses_page() -> None:
    """Recent tracks are requested by page and decoded newest first."""
    body = recent_tracks_body(
        [
            track_payload(None, "A", "live", now_playing=True),
            track_payload(1_700_000_100, "A", "x", "LP"),
            track_payload(1_700_000_000, "B", "y"),
        ],
        page=2,
        total_pages=_TOTAL_PAGES,
        total=2400,
    )
    client, requests = _make_client([httpx.Response(200, json=body)])

    page = await client.fetch_events_page(2, 200)

    params = requests[0].url.params
    assert params["method"] == "user.getrecenttracks"
    assert params["user"] == "rj"
    assert params["page"] == "2"
    assert params["limit"] == "200"
    assert params["api_key"] == _API_KEY
    assert params["format"] == "json"
    assert (page.page, page.total_pages, page.total) == (2, _TOTAL_PAGES, 2400)
    assert [event.played_at for event in page.events] == [
        None,
        "1700000100",
        "1700000000",
    ]
    assert page.events[0].now_playing is True
    assert page.events[1].album == "LP"
    assert page.events[1].payload == body["recenttracks"]["track"][1]


@pytest.mark.asyncio
async def test_fetch_events_page_accepts_single_object() -> None:
    """A lone track sent as an object is treated as a one-element list."""
    body = recent_tracks_body([], page=1, total_pages=1)
    body["recenttracks"]["track"] = track_payload(1_700_000_000, "A", "x")
    client, _ = _make_client([httpx.Response(200, json=body)])

    page = await client.fetch_events_page(1, 200)

    assert [event.track for event in page.events] == ["x"]


@pytest.mark.asyncio
async def test_unparsable_page_metadata_reads_as_zero() -> None:
    """Garbage in ``@attr`` does not fail the page."""
    body = recent_tracks_body([], page=1, total_pages=1)
    body["recenttracks"]["@attr"] = {"page": "?", "totalPages": "", "total": None}
    client, _ = _make_client([httpx.Response(200, json=body)])

    page = await client.fetch_events_page(1, 200)

    assert (page.page, page.total_pages, page.total) == (0, 0, 0)


@pytest.mark.asyncio
async def test_user_agent_header_is_sent() -> None:
    """Requests carry the configured User-Agent."""
    client = LastfmClient(
        LastfmClientConfig(api_key=_API_KEY, user_agent="digger/9"),
        http_client=None,
    )
    try:
        assert client._client.headers["User-Agent"] == "digger/9"
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_non_2xx_raises_transport_error() -> None:
    """HTTP failures keep their status and body."""
    client, _ = _make_client([httpx.Response(_HTTP_SERVER_ERROR, text="busy")])

    with pytest.raises(TransportError) as excinfo:
        await client.fetch_events_page(1, 200)

    assert excinfo.value.status_code == _HTTP_SERVER_ERROR
    assert excinfo.value.body == "busy"


@pytest.mark.asyncio
async def test_in_band_error_raises_remote_api_error() -> None:
    """An error object on HTTP 200 becomes RemoteAPIError."""
    client, _ = _make_client(
        [
            httpx.Response(
                200,
                json={"error": _RATE_LIMIT_CODE, "message": "Rate Limit Exceeded"},
            )
        ]
    )

    with pytest.raises(RemoteAPIError) as excinfo:
        await client.fetch_similar_artists("A", 5)

    assert excinfo.value.code == _RATE_LIMIT_CODE
    assert excinfo.value.message == "Rate Limit Exceeded"
    assert excinfo.value.is_rate_limited


@pytest.mark.asyncio
async def test_malformed_body_raises_decode_error() -> None:
    """Bodies that are not JSON objects of the right shape are decode errors."""
    client, _ = _make_client(
        [
            httpx.Response(200, text="<html>oops</html>"),
            httpx.Response(200, json={"unexpected": {}}),
            httpx.Response(200, json=[1, 2]),
        ]
    )

    with pytest.raises(DecodeError):
        await client.fetch_events_page(1, 200)
    with pytest.raises(DecodeError, match="recenttracks"):
        await client.fetch_events_page(1, 200)
    with pytest.raises(DecodeError):
        await client.fetch_events_page(1, 200)


@pytest.mark.asyncio
async def test_connection_failure_has_no_status() -> None:
    """Requests that never got a response raise TransportError without status."""

    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = LastfmClient(
        LastfmClientConfig(api_key=_API_KEY, username="rj"),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(_handler)),
    )

    with pytest.raises(TransportError) as excinfo:
        await client.fetch_events_page(1, 200)

    assert excinfo.value.status_code is None


@pytest.mark.asyncio
async def test_fetch_events_page_requires_username() -> None:
    """User-scoped calls fail fast without a username."""
    client, requests = _make_client([], username="")

    with pytest.raises(LastfmConfigError, match="username"):
        await client.fetch_events_page(1, 200)

    assert requests == []


@pytest.mark.asyncio
async def test_fetch_similar_artists_parses_match_scores() -> None:
    """Match scores arrive as strings and unparsable ones read as zero."""
    body = {
        "similarartists": {
            "artist": [
                {"name": "Plaid", "match": str(_MATCH), "mbid": "m1", "url": "u"},
                {"name": "Oddity", "match": "n/a"},
            ],
            "@attr": {"artist": "Autechre"},
        }
    }
    client, requests = _make_client([httpx.Response(200, json=body)])

    similar = await client.fetch_similar_artists("Autechre", 15)

    params = requests[0].url.params
    assert params["method"] == "artist.getSimilar"
    assert params["artist"] == "Autechre"
    assert params["autocorrect"] == "1"
    assert [(s.name, s.match) for s in similar] == [("Plaid", _MATCH), ("Oddity", 0.0)]


@pytest.mark.asyncio
async def test_fetch_artist_top_tracks_parses_artist_names() -> None:
    """Top tracks carry the artist name Last.fm resolved."""
    body: dict[str, typ.Any] = {
        "toptracks": {
            "track": [
                {"name": "Eutow", "url": "u1", "artist": {"name": "Autechre"}},
                {"name": "Bike", "mbid": "m2", "artist": {"name": "Autechre"}},
            ]
        }
    }
    client, requests = _make_client([httpx.Response(200, json=body)])

    tracks = await client.fetch_artist_top_tracks("autechre", 6)

    assert requests[0].url.params["method"] == "artist.getTopTracks"
    assert [(t.name, t.artist) for t in tracks] == [
        ("Eutow", "Autechre"),
        ("Bike", "Autechre"),
    ]


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open() -> None:
    """Injected HTTP clients are owned by the caller."""
    client, _ = _make_client([])
    http_client = client._client

    await client.aclose()

    assert not http_client.is_closed
    await http_client.aclose()
