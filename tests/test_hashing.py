import unittest

import xxhash

from pydenylist.hashing import edge_hash, edge_order, key_hash

from tests.helpers import make_keys


class TestHashing(unittest.TestCase):
    def test_key_hash_is_xxh64_seed_zero(self):
        key = make_keys(1)[0]
        self.assertEqual(key_hash(key), xxhash.xxh64(key.raw, seed=0).intdigest())
        self.assertEqual(key_hash(key), key_hash(key))

    def test_edge_order(self):
        a, b = sorted(make_keys(2))
        self.assertEqual(edge_order(a, b), (a, b))
        self.assertEqual(edge_order(b, a), (a, b))

    def test_edge_hash_symmetric(self):
        a, b, c = make_keys(3)
        self.assertEqual(edge_hash(a, b), edge_hash(b, a))
        self.assertNotEqual(edge_hash(a, b), edge_hash(a, c))

    def test_edge_hash_over_canonical_concatenation(self):
        a, b = sorted(make_keys(2))
        self.assertEqual(edge_hash(b, a), xxhash.xxh64(a.raw + b.raw, seed=0).intdigest())


if __name__ == "__main__":
    unittest.main()
