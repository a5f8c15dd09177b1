"""Last.fm remote source errors."""

from __future__ import annotations

# Last.fm application error code for "Rate Limit Exceeded".
RATE_LIMIT_ERROR_CODE = 29


class LastfmError(RuntimeError):
    """Base class for failures talking to the Last.fm web service."""


class TransportError(LastfmError):
    """Raised when a request fails below the application protocol.

    ``status_code`` is None when no HTTP response was received at all.
    """

    def __init__(
        self, message: str, *, status_code: int | None = None, body: str = ""
    ) -> None:
        """Initialise with a message, optional HTTP status and response body."""
        self.status_code = status_code
        self.body = body
        super().__init__(message)

    @classmethod
    def http_error(cls, status_code: int, body: str) -> TransportError:
        """Return an error for non-2xx HTTP responses."""
        return cls(
            f"Last.fm HTTP {status_code}: {body[:200]}",
            status_code=status_code,
            body=body,
        )

    @classmethod
    def connection_failed(cls, detail: str) -> TransportError:
        """Return an error for requests that produced no HTTP response."""
        return cls(f"Last.fm request failed: {detail}")


class RemoteAPIError(LastfmError):
    """Raised when Last.fm reports ``{"error": code, "message": ...}``."""

    def __init__(self, code: int, message: str) -> None:
        """Initialise with the remote error code and message."""
        self.code = code
        self.message = message
        super().__init__(f"Last.fm API error {code}: {message}")

    @property
    def is_rate_limited(self) -> bool:
        """Return True when the remote asked the caller to slow down."""
        return self.code == RATE_LIMIT_ERROR_CODE


class DecodeError(LastfmError):
    """Raised when a response body is not the JSON shape we expect."""

    @classmethod
    def invalid_json(cls, detail: str) -> DecodeError:
        """Return an error for bodies that do not decode."""
        return cls(f"Last.fm response is not valid JSON: {detail}")

    @classmethod
    def unexpected_shape(cls, method: str, detail: str) -> DecodeError:
        """Return an error for bodies that decode to the wrong structure."""
        return cls(f"Last.fm {method} response has unexpected shape: {detail}")


class LastfmConfigError(LastfmError):
    """Raised when the Last.fm client configuration is invalid."""

    @classmethod
    def empty_api_key(cls) -> LastfmConfigError:
        """Return an error when the API key is blank."""
        return cls("Last.fm API key must be non-empty")

    @classmethod
    def empty_username(cls) -> LastfmConfigError:
        """Return an error when a user-scoped call has no username."""
        return cls("Last.fm username must be non-empty")
