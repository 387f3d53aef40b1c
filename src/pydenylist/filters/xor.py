"""XOR filter with 32-bit fingerprints.

Classic three-hash XOR filter (Graf & Lemire): the table is split into three
blocks and each key maps to one slot per block. Construction peels keys that
own a slot alone; fingerprints are then assigned in reverse peel order so the
XOR of a key's three slots equals its fingerprint.

Seeds come from a splitmix64 stream started at a fixed state, so the same key
set always yields the same filter bytes.

Binary layout (bincode-compatible): u64 seed, u64 block_length,
u64 count, count * u32 fingerprints.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from ..codec.binary import read_uint32_array, read_uint64, write_uint32_array, write_uint64
from ..exceptions import DecodeError, FilterBuildError
from .common import DEFAULT_MAX_ATTEMPTS, fingerprint32, mix, reduce32, rotl64, splitmix64

logger = logging.getLogger(__name__)

XOR_SEED_STATE = 1


def _slots(h: int, block_length: int) -> tuple[int, int, int]:
    return (
        reduce32(h, block_length),
        reduce32(rotl64(h, 21), block_length) + block_length,
        reduce32(rotl64(h, 42), block_length) + 2 * block_length,
    )


def _peel(keys: Sequence[int], seed: int, block_length: int) -> Optional[list[tuple[int, int]]]:
    """Try to peel every key for one seed; None when a 2-core remains."""
    capacity = 3 * block_length
    xormask = [0] * capacity
    count = [0] * capacity
    for key in keys:
        h = mix(key, seed)
        for i in _slots(h, block_length):
            xormask[i] ^= h
            count[i] += 1

    queue = [i for i in range(capacity) if count[i] == 1]
    stack: list[tuple[int, int]] = []
    while queue:
        i = queue.pop()
        if count[i] != 1:
            continue
        h = xormask[i]
        stack.append((h, i))
        for j in _slots(h, block_length):
            xormask[j] ^= h
            count[j] -= 1
            if count[j] == 1:
                queue.append(j)
    if len(stack) != len(keys):
        return None
    return stack


@dataclass(frozen=True)
class Xor32:
    seed: int
    block_length: int
    fingerprints: tuple[int, ...]

    @classmethod
    def from_keys(cls, keys: Sequence[int], max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> "Xor32":
        """Build a filter over distinct 64-bit keys.

        Raises:
            FilterBuildError: If 'keys' is empty, contains duplicates, or no
                seed peels within 'max_attempts' tries.
        """
        size = len(keys)
        if size == 0:
            raise FilterBuildError("cannot build a filter from an empty key set")
        if len(set(keys)) != size:
            raise FilterBuildError("xor filter keys must be distinct")

        capacity = 32 + math.ceil(1.23 * size)
        block_length = (capacity // 3 * 3) // 3

        state = XOR_SEED_STATE
        stack = None
        for attempt in range(1, max_attempts + 1):
            seed, state = splitmix64(state)
            stack = _peel(keys, seed, block_length)
            if stack is not None:
                break
            logger.debug("xor filter peel failed (attempt %d/%d)", attempt, max_attempts)
        if stack is None:
            raise FilterBuildError(f"xor filter construction failed after {max_attempts} attempts")

        fingerprints = [0] * (3 * block_length)
        for h, i in reversed(stack):
            h0, h1, h2 = _slots(h, block_length)
            fingerprints[i] = fingerprint32(h) ^ fingerprints[h0] ^ fingerprints[h1] ^ fingerprints[h2]
        logger.debug("built xor filter: %d keys, %d slots", size, len(fingerprints))
        return cls(seed=seed, block_length=block_length, fingerprints=tuple(fingerprints))

    def contains(self, key: int) -> bool:
        h = mix(key, self.seed)
        h0, h1, h2 = _slots(h, self.block_length)
        f = self.fingerprints
        return fingerprint32(h) == f[h0] ^ f[h1] ^ f[h2]

    def __len__(self) -> int:
        return len(self.fingerprints)

    def serialize(self) -> bytes:
        return write_uint64(self.seed) + write_uint64(self.block_length) + write_uint32_array(self.fingerprints)

    @classmethod
    def deserialize(cls, data: bytes, offset: int = 0) -> tuple["Xor32", int]:
        seed, offset = read_uint64(data, offset)
        block_length, offset = read_uint64(data, offset)
        fingerprints, offset = read_uint32_array(data, offset)
        if block_length == 0 or len(fingerprints) != 3 * block_length:
            raise DecodeError(
                f"xor filter has {len(fingerprints)} fingerprints for block length {block_length}"
            )
        return cls(seed=seed, block_length=block_length, fingerprints=tuple(fingerprints)), offset
