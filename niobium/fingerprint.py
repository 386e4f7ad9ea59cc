"""
Content fingerprints for snapshotted responses.

A fingerprint covers the body and the two response headers that are
uploaded with it, so a header-only change still triggers an upload.
"""

from __future__ import annotations

import hashlib

REV_HASH_LENGTH = 10

# Rendering for an absent header. Changing it changes every fingerprint.
_MISSING = "undefined"


def rev_hash(data: bytes | str) -> str:
    """Return the first 10 hex characters of the MD5 digest of ``data``."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.md5(data).hexdigest()[:REV_HASH_LENGTH]


def compute_fingerprint(
    body: bytes,
    *,
    cache_control: str | None,
    content_type: str | None,
    version: str = "v1",
) -> str:
    """Compute the fingerprint stored as object metadata.

    Args:
        body: Raw response body.
        cache_control: ``Cache-Control`` header value, if any.
        content_type: ``Content-Type`` header value, if any.
        version: Format tag; bumping it republishes everything.

    Returns:
        A short opaque hash string.
    """
    cache_part = _MISSING if cache_control is None else cache_control
    type_part = _MISSING if content_type is None else content_type
    return rev_hash(f"{version}-{cache_part}-{type_part}-{rev_hash(body)}")
