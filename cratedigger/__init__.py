"""Mirror a Last.fm listening history locally and mine it for rollups and discovery."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
