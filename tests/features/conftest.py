"""Shared fixtures for behavioural scenarios."""

from __future__ import annotations

import typing as typ

import pytest

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Return a fresh data directory; the store is created on first open."""
    return tmp_path / "cratedigger"
