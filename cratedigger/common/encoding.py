"""JSON encoding shared by the digest and recommendation documents."""

from __future__ import annotations

import msgspec

_encoder = msgspec.json.Encoder()


def encode_json(document: object, *, pretty: bool = False) -> bytes:
    """Encode ``document`` as JSON, indented by two spaces when ``pretty``."""
    encoded = _encoder.encode(document)
    if pretty:
        return msgspec.json.format(encoded, indent=2)
    return encoded
