"""Event store error types."""

from __future__ import annotations


class StorageError(RuntimeError):
    """Raised when the event store cannot persist or read scrobbles."""

    @classmethod
    def insert_failed(cls, detail: str) -> StorageError:
        """Return an error for a failed scrobble insert."""
        return cls(f"scrobble insert failed: {detail}")

    @classmethod
    def query_failed(cls, detail: str) -> StorageError:
        """Return an error for a failed store query."""
        return cls(f"scrobble query failed: {detail}")


class InvalidTimestampError(StorageError):
    """Raised when a scrobble carries a timestamp that is not an integer."""

    def __init__(self, raw: object) -> None:
        """Record the offending wire value for diagnostics."""
        self.raw = raw
        super().__init__(f"invalid uts: {raw!r}")
