import random
import unittest

from pydenylist.codec.binary import write_uint32, write_uint32_array, write_uint64
from pydenylist.exceptions import DecodeError, FilterBuildError
from pydenylist.filters.fuse import BinaryFuse32, _Layout


def _keys(count, seed=1):
    rng = random.Random(seed)
    return sorted({rng.getrandbits(64) for _ in range(count)})


class TestBinaryFuseFilter(unittest.TestCase):
    def test_no_false_negatives(self):
        for count in (1, 2, 3, 10, 1000, 20000):
            keys = _keys(count, seed=count)
            f = BinaryFuse32.from_keys(keys)
            self.assertTrue(all(f.contains(k) for k in keys), count)

    def test_false_positive_rate_is_small(self):
        keys = _keys(5000)
        f = BinaryFuse32.from_keys(keys)
        members = set(keys)
        probes = [k for k in _keys(5000, seed=77) if k not in members]
        self.assertLess(sum(1 for k in probes if f.contains(k)), 5)

    def test_layout(self):
        layout = _Layout.for_size(1000)
        self.assertEqual(layout.segment_length, 128)
        self.assertEqual(layout.segment_length_mask, 127)
        self.assertEqual(layout.array_length, layout.segment_count_length + 2 * layout.segment_length)
        f = BinaryFuse32.from_keys(_keys(1000))
        self.assertEqual(len(f), layout.array_length)

    def test_smaller_than_xor_for_large_sets(self):
        from pydenylist.filters.xor import Xor32

        keys = _keys(20000)
        self.assertLess(len(BinaryFuse32.from_keys(keys)), len(Xor32.from_keys(keys)))

    def test_deterministic(self):
        keys = _keys(300)
        self.assertEqual(BinaryFuse32.from_keys(keys), BinaryFuse32.from_keys(list(reversed(keys))))

    def test_serialize_roundtrip(self):
        f = BinaryFuse32.from_keys(_keys(64))
        data = f.serialize()
        self.assertEqual(len(data), 8 + 4 + 4 + 4 + 8 + 4 * len(f))
        self.assertEqual(BinaryFuse32.deserialize(data), (f, len(data)))

    def test_empty_and_duplicate_keys(self):
        with self.assertRaises(FilterBuildError):
            BinaryFuse32.from_keys([])
        with self.assertRaises(FilterBuildError):
            BinaryFuse32.from_keys([1, 2, 2])

    def test_deserialize_validates_layout(self):
        f = BinaryFuse32.from_keys(_keys(64))
        good = f.serialize()
        bad_mask = bytearray(good)
        bad_mask[12] ^= 1  # segment_length_mask
        bad_count = bytearray(good)
        bad_count[16] += 4  # segment_count_length
        for data in (bytes(bad_mask), bytes(bad_count), good[:-4]):
            with self.assertRaises(DecodeError):
                BinaryFuse32.deserialize(data)

    def test_deserialize_rejects_misaligned_segment_count(self):
        data = (
            write_uint64(7)
            + write_uint32(4)  # segment_length
            + write_uint32(3)  # segment_length_mask
            + write_uint32(5)  # segment_count_length, not a multiple of 4
            + write_uint32_array([0] * 13)
        )
        with self.assertRaises(DecodeError):
            BinaryFuse32.deserialize(data)
        aligned = write_uint64(7) + write_uint32(4) + write_uint32(3) + write_uint32(8) + write_uint32_array([0] * 16)
        f, _ = BinaryFuse32.deserialize(aligned)
        for key in _keys(200):
            f.contains(key)


if __name__ == "__main__":
    unittest.main()
