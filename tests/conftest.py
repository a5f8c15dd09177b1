"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import pytest_asyncio

from cratedigger.store import EventStore, open_event_store

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest_asyncio.fixture
async def event_store(tmp_path: Path) -> typ.AsyncIterator[EventStore]:
    """Yield an event store backed by a fresh SQLite file and raw log."""
    async with open_event_store(tmp_path / "data") as store:
        yield store
