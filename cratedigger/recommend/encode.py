"""Serializations of a recommendation document."""

from __future__ import annotations

import csv
import io
import typing as typ

from cratedigger.common.encoding import encode_json

if typ.TYPE_CHECKING:
    from .models import Recommendations


def encode_tsv(recommendations: Recommendations) -> str:
    """Render the ranked tracks as ``artist<TAB>track`` lines, best first."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter="\t", lineterminator="\n")
    for candidate in recommendations.tracks:
        writer.writerow([candidate.artist, candidate.track])
    return buffer.getvalue()


__all__ = ["encode_json", "encode_tsv"]
