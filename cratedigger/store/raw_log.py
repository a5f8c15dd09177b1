"""Append-only JSONL log of original scrobble payloads.

One line is written per newly stored scrobble::

    {"fetched_at": "2024-07-01T12:00:00Z", "track": {...original payload...}}

Lines are buffered in memory and written on :meth:`RawLogWriter.flush`, which
the ingestion engine calls at every page boundary. Closing the writer flushes
whatever is still buffered.
"""

from __future__ import annotations

import asyncio
import datetime as dt  # noqa: TC003
import typing as typ

import msgspec

from cratedigger.common.time import utcnow

if typ.TYPE_CHECKING:
    from pathlib import Path

RAW_LOG_FILENAME = "scrobbles.raw.jsonl"


class RawEnvelope(msgspec.Struct, kw_only=True, frozen=True):
    """A wire payload stamped with the time it was fetched."""

    fetched_at: dt.datetime
    track: dict[str, typ.Any]


class RawLogWriter:
    """Buffered writer for the raw scrobble log."""

    def __init__(
        self,
        path: Path,
        *,
        clock: typ.Callable[[], dt.datetime] = utcnow,
    ) -> None:
        """Open ``path`` for appending; the file is created when missing."""
        self._path = path
        self._clock = clock
        self._encoder = msgspec.json.Encoder()
        self._buffer: list[bytes] = []
        self._handle: typ.BinaryIO | None = path.open("ab")

    @property
    def path(self) -> Path:
        """Location of the log file."""
        return self._path

    @property
    def pending(self) -> int:
        """Number of envelopes buffered but not yet written."""
        return len(self._buffer)

    def append(self, payload: dict[str, typ.Any]) -> None:
        """Buffer one envelope for ``payload``."""
        if self._handle is None:
            msg = "raw log is closed"
            raise ValueError(msg)
        envelope = RawEnvelope(fetched_at=self._clock(), track=payload)
        self._buffer.append(self._encoder.encode(envelope) + b"\n")

    async def flush(self) -> None:
        """Write buffered envelopes to disk."""
        if not self._buffer or self._handle is None:
            return
        chunk = b"".join(self._buffer)
        self._buffer.clear()
        await asyncio.to_thread(self._write, chunk)

    def _write(self, chunk: bytes) -> None:
        handle = self._handle
        if handle is None:
            return
        handle.write(chunk)
        handle.flush()

    async def aclose(self) -> None:
        """Flush any buffered envelopes and close the file."""
        try:
            await self.flush()
        finally:
            handle, self._handle = self._handle, None
            if handle is not None:
                handle.close()
