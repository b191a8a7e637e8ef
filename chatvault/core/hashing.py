"""Content digests used as the image deduplication key."""

from __future__ import annotations

import hashlib

DIGEST_LENGTH = 64


def compute_digest(data: bytes) -> str:
    """Compute the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()
