"""Binary fuse filter with 32-bit fingerprints (arity 3).

Binary fuse filters (Graf & Lemire, 2022) place a key's three slots in
consecutive segments of a segmented table, which lowers the space overhead
to roughly 1.13x for large sets. Construction mirrors the reference
``binary_fuse_populate``: keys are bucketed by their top hash bits, slot
occupancy is tracked in a packed count/index byte per slot, and peeling
proceeds from a LIFO queue of singleton slots.

Binary layout (bincode-compatible): u64 seed, u32 segment_length,
u32 segment_length_mask, u32 segment_count_length, u64 count,
count * u32 fingerprints.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from ..codec.binary import read_uint32, read_uint32_array, read_uint64, write_uint32, write_uint32_array, write_uint64
from ..exceptions import DecodeError, FilterBuildError
from .common import DEFAULT_MAX_ATTEMPTS, fingerprint32, mix, mulhi, splitmix64

logger = logging.getLogger(__name__)

ARITY = 3
FUSE_SEED_STATE = 0x726B2B9D438B9D4D
MAX_SEGMENT_LENGTH = 262144


def _segment_length(size: int) -> int:
    if size == 0:
        return 4
    length = 1 << int(math.floor(math.log(size) / math.log(3.33) + 2.25))
    return min(length, MAX_SEGMENT_LENGTH)


def _size_factor(size: int) -> float:
    if size <= 1:
        return 0.0
    return max(1.125, 0.875 + 0.25 * math.log(1000000.0) / math.log(size))


def _mod3(x: int) -> int:
    return x - 3 if x > 2 else x


@dataclass(frozen=True)
class _Layout:
    segment_length: int
    segment_length_mask: int
    segment_count: int
    segment_count_length: int
    array_length: int

    @classmethod
    def for_size(cls, size: int) -> "_Layout":
        segment_length = _segment_length(size)
        # Round half away from zero, as C's round() does.
        capacity = int(math.floor(size * _size_factor(size) + 0.5)) if size > 1 else 0
        init_segment_count = (capacity + segment_length - 1) // segment_length - (ARITY - 1)
        array_length = max(init_segment_count + ARITY - 1, 0) * segment_length
        segment_count = (array_length + segment_length - 1) // segment_length
        segment_count = 1 if segment_count <= ARITY - 1 else segment_count - (ARITY - 1)
        return cls(
            segment_length=segment_length,
            segment_length_mask=segment_length - 1,
            segment_count=segment_count,
            segment_count_length=segment_count * segment_length,
            array_length=(segment_count + ARITY - 1) * segment_length,
        )


def _slots(h: int, segment_length: int, mask: int, segment_count_length: int) -> tuple[int, int, int]:
    h0 = mulhi(h, segment_count_length)
    h1 = (h0 + segment_length) ^ ((h >> 18) & mask)
    h2 = (h0 + 2 * segment_length) ^ (h & mask)
    return h0, h1, h2


def _populate(keys: Sequence[int], seed: int, layout: _Layout) -> Optional[tuple[list[int], list[int], int]]:
    """One construction attempt.

    Returns:
        (stack of hashes, stack of slot positions, duplicates) on success,
        None when this seed must be rejected.
    """
    size = len(keys)
    capacity = layout.array_length
    sl, mask, scl = layout.segment_length, layout.segment_length_mask, layout.segment_count_length

    block_bits = 1
    while (1 << block_bits) < layout.segment_count:
        block_bits += 1
    block = 1 << block_bits
    mask_block = block - 1
    start_pos = [(i * size) >> block_bits for i in range(block)]

    # Bucket hashes by their top bits; a zero entry marks a free position.
    ordered = [0] * (size + 1)
    ordered[size] = 1
    for key in keys:
        h = mix(key, seed)
        segment_index = h >> (64 - block_bits)
        while ordered[start_pos[segment_index]] != 0:
            segment_index = (segment_index + 1) & mask_block
        ordered[start_pos[segment_index]] = h
        start_pos[segment_index] += 1

    t2count = [0] * capacity
    t2hash = [0] * capacity
    duplicates = 0
    for i in range(size):
        h = ordered[i]
        h0, h1, h2 = _slots(h, sl, mask, scl)
        t2count[h0] = (t2count[h0] + 4) & 0xFF
        t2hash[h0] ^= h
        t2count[h1] = ((t2count[h1] + 4) & 0xFF) ^ 1
        t2hash[h1] ^= h
        t2count[h2] = ((t2count[h2] + 4) & 0xFF) ^ 2
        t2hash[h2] ^= h
        if (t2hash[h0] & t2hash[h1] & t2hash[h2]) == 0:
            if (
                (t2hash[h0] == 0 and t2count[h0] == 8)
                or (t2hash[h1] == 0 and t2count[h1] == 8)
                or (t2hash[h2] == 0 and t2count[h2] == 8)
            ):
                duplicates += 1
                t2count[h0] = (t2count[h0] - 4) & 0xFF
                t2hash[h0] ^= h
                t2count[h1] = ((t2count[h1] - 4) & 0xFF) ^ 1
                t2hash[h1] ^= h
                t2count[h2] = ((t2count[h2] - 4) & 0xFF) ^ 2
                t2hash[h2] ^= h
        if t2count[h0] < 4 or t2count[h1] < 4 or t2count[h2] < 4:
            # uint8 slot counter overflowed
            return None

    alone = [i for i in range(capacity) if (t2count[i] >> 2) == 1]
    stack_hash: list[int] = []
    stack_found: list[int] = []
    while alone:
        index = alone.pop()
        if (t2count[index] >> 2) != 1:
            continue
        h = t2hash[index]
        found = t2count[index] & 3
        stack_hash.append(h)
        stack_found.append(found)
        h0, h1, h2 = _slots(h, sl, mask, scl)
        h012 = (h0, h1, h2, h0, h1)
        for step in (1, 2):
            other = h012[found + step]
            if (t2count[other] >> 2) == 2:
                alone.append(other)
            t2count[other] = ((t2count[other] - 4) & 0xFF) ^ _mod3(found + step)
            t2hash[other] ^= h

    if len(stack_hash) + duplicates != size:
        return None
    return stack_hash, stack_found, duplicates


@dataclass(frozen=True)
class BinaryFuse32:
    seed: int
    segment_length: int
    segment_length_mask: int
    segment_count_length: int
    fingerprints: tuple[int, ...]

    @classmethod
    def from_keys(cls, keys: Sequence[int], max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> "BinaryFuse32":
        """Build a filter over distinct 64-bit keys.

        Raises:
            FilterBuildError: If 'keys' is empty, contains duplicates, or no
                seed succeeds within 'max_attempts' tries.
        """
        size = len(keys)
        if size == 0:
            raise FilterBuildError("cannot build a filter from an empty key set")
        if len(set(keys)) != size:
            raise FilterBuildError("binary fuse filter keys must be distinct")

        layout = _Layout.for_size(size)
        state = FUSE_SEED_STATE
        result = None
        for attempt in range(1, max_attempts + 1):
            seed, state = splitmix64(state)
            result = _populate(keys, seed, layout)
            if result is not None:
                break
            logger.debug("binary fuse construction failed (attempt %d/%d)", attempt, max_attempts)
        if result is None:
            raise FilterBuildError(f"binary fuse construction failed after {max_attempts} attempts")

        stack_hash, stack_found, _ = result
        sl, mask, scl = layout.segment_length, layout.segment_length_mask, layout.segment_count_length
        fingerprints = [0] * layout.array_length
        for h, found in zip(reversed(stack_hash), reversed(stack_found)):
            h0, h1, h2 = _slots(h, sl, mask, scl)
            h012 = (h0, h1, h2, h0, h1)
            fingerprints[h012[found]] = (
                fingerprint32(h) ^ fingerprints[h012[found + 1]] ^ fingerprints[h012[found + 2]]
            )
        logger.debug("built binary fuse filter: %d keys, %d slots", size, len(fingerprints))
        return cls(
            seed=seed,
            segment_length=sl,
            segment_length_mask=mask,
            segment_count_length=scl,
            fingerprints=tuple(fingerprints),
        )

    def contains(self, key: int) -> bool:
        h = mix(key, self.seed)
        h0, h1, h2 = _slots(h, self.segment_length, self.segment_length_mask, self.segment_count_length)
        f = self.fingerprints
        return fingerprint32(h) ^ f[h0] ^ f[h1] ^ f[h2] == 0

    def __len__(self) -> int:
        return len(self.fingerprints)

    def serialize(self) -> bytes:
        return (
            write_uint64(self.seed)
            + write_uint32(self.segment_length)
            + write_uint32(self.segment_length_mask)
            + write_uint32(self.segment_count_length)
            + write_uint32_array(self.fingerprints)
        )

    @classmethod
    def deserialize(cls, data: bytes, offset: int = 0) -> tuple["BinaryFuse32", int]:
        seed, offset = read_uint64(data, offset)
        segment_length, offset = read_uint32(data, offset)
        segment_length_mask, offset = read_uint32(data, offset)
        segment_count_length, offset = read_uint32(data, offset)
        fingerprints, offset = read_uint32_array(data, offset)
        if (
            segment_length == 0
            or segment_length & (segment_length - 1)
            or segment_length_mask != segment_length - 1
            or segment_count_length == 0
            or segment_count_length % segment_length
            or len(fingerprints) != segment_count_length + 2 * segment_length
        ):
            raise DecodeError("inconsistent binary fuse filter layout")
        return (
            cls(
                seed=seed,
                segment_length=segment_length,
                segment_length_mask=segment_length_mask,
                segment_count_length=segment_count_length,
                fingerprints=tuple(fingerprints),
            ),
            offset,
        )
