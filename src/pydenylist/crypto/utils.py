from __future__ import annotations

from cryptography.hazmat.primitives import hashes


def sha256(data: bytes) -> bytes:
    """SHA-256 digest of 'data'."""
    h = hashes.Hash(hashes.SHA256())
    h.update(data)
    return h.finalize()
