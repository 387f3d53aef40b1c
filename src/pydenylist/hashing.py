"""Canonical 64-bit hashing of keys and edges.

The filter universe is built from XXH64 (seed 0) digests of raw key bytes.
This choice is part of the artifact format: a reimplementation must use the
same algorithm and seed to produce filters that agree with existing ones.
"""
from __future__ import annotations

import xxhash

from .keys import PublicKey

KEY_HASH_SEED = 0


def key_hash(key: PublicKey) -> int:
    """XXH64 of the raw key bytes as an unsigned 64-bit integer."""
    return xxhash.xxh64_intdigest(key.raw, seed=KEY_HASH_SEED)


def edge_order(a: PublicKey, b: PublicKey) -> tuple[PublicKey, PublicKey]:
    """Return (min, max) of two keys by raw byte order."""
    if b.raw < a.raw:
        return b, a
    return a, b


def edge_hash(a: PublicKey, b: PublicKey) -> int:
    """XXH64 over the canonically ordered concatenation of both keys.

    edge_hash(a, b) == edge_hash(b, a) for any pair.
    """
    source, target = edge_order(a, b)
    h = xxhash.xxh64(seed=KEY_HASH_SEED)
    h.update(source.raw)
    h.update(target.raw)
    return h.intdigest()
