"""Shared 64-bit mixing primitives for the XOR-family filters.

Python integers are unbounded, so every arithmetic step that would wrap in
C is masked back to 64 bits explicitly.
"""
from __future__ import annotations

MASK32 = 0xFFFFFFFF
MASK64 = 0xFFFFFFFFFFFFFFFF

DEFAULT_MAX_ATTEMPTS = 100


def splitmix64(state: int) -> tuple[int, int]:
    """Advance a splitmix64 generator.

    Returns:
        Tuple of (next output, new state).
    """
    state = (state + 0x9E3779B97F4A7C15) & MASK64
    z = state
    z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & MASK64
    z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & MASK64
    return z ^ (z >> 31), state


def murmur64(h: int) -> int:
    """MurmurHash3 64-bit finalizer."""
    h ^= h >> 33
    h = (h * 0xFF51AFD7ED558CCD) & MASK64
    h ^= h >> 33
    h = (h * 0xC4CEB9FE1A85EC53) & MASK64
    h ^= h >> 33
    return h


def mix(key: int, seed: int) -> int:
    return murmur64((key + seed) & MASK64)


def fingerprint32(h: int) -> int:
    return (h ^ (h >> 32)) & MASK32


def rotl64(n: int, c: int) -> int:
    return ((n << c) | (n >> (64 - c))) & MASK64


def reduce32(h: int, n: int) -> int:
    """Map a 32-bit value into [0, n) without division."""
    return ((h & MASK32) * n) >> 32


def mulhi(a: int, b: int) -> int:
    """High 64 bits of the 128-bit product a * b."""
    return (a * b) >> 64
