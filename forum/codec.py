# forum/codec.py
"""
URL-safe encoding of AT URIs and reaction record keys.

Route tokens let a full `at://` URI travel inside a single path segment:

    at://did:plc:abc/app.echosky.board.thread/3kx  ->  YXQ6Ly9kaWQ6cGxjOmFiYy9h...

Reaction keys use the same alphabet so that a (subject, kind, actor) triple
always maps to the same record key, which turns "react" into an upsert.
"""

from __future__ import annotations

import base64
import binascii
import re

from forum.errors import DecodeError

_TOKEN_PATTERN = re.compile(r"[A-Za-z0-9_-]*")


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def encode_route_token(uri: str) -> str:
    """Encode a URI as unpadded base64url of its UTF-8 bytes."""
    return _b64url(uri.encode("utf-8"))


def decode_route_token(token: str) -> str:
    """
    Inverse of `encode_route_token`.

    Padding is rebuilt from `len(token) % 4`. Anything outside the base64url
    alphabet, an impossible length, or bytes that are not UTF-8 raise
    DecodeError.
    """
    if not isinstance(token, str) or not _TOKEN_PATTERN.fullmatch(token):
        raise DecodeError(f"Route token contains non-base64url characters: {token!r}")

    remainder = len(token) % 4
    if remainder == 1:
        raise DecodeError(f"Route token has an impossible length ({len(token)}): {token!r}")

    padded = token + "=" * ((4 - remainder) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise DecodeError(f"Route token could not be decoded: {token!r} ({e})") from e


def build_reaction_key(subject_uri: str, kind: str, actor_id: str) -> str:
    """Deterministic record key for the (subject, kind, actor) triple."""
    return _b64url(f"{subject_uri}|{kind}|{actor_id}".encode("utf-8"))
