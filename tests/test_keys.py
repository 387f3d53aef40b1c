import unittest

from pydenylist.exceptions import DecodeError
from pydenylist.keys import KeyType, Network, PublicKey

from tests.helpers import make_key


class TestPublicKey(unittest.TestCase):
    def test_address_roundtrip(self):
        key = make_key(7)
        self.assertEqual(PublicKey.from_string(key.to_string()), key)
        self.assertEqual(str(key), key.to_string())

    def test_tag_and_material(self):
        key = PublicKey.from_ed25519(b"\x01" * 32, Network.TESTNET)
        self.assertEqual(key.raw[0], 0x11)
        self.assertEqual(key.key_type, KeyType.ED25519)
        self.assertEqual(key.network, Network.TESTNET)
        self.assertEqual(key.key_bytes, b"\x01" * 32)

    def test_ordering_by_raw_bytes(self):
        a = PublicKey.from_ed25519(b"\x01" * 32)
        b = PublicKey.from_ed25519(b"\x02" * 32)
        self.assertLess(a, b)
        self.assertEqual(sorted([b, a]), [a, b])

    def test_rejects_bad_length(self):
        with self.assertRaises(DecodeError):
            PublicKey(b"\x01" + b"\x00" * 31)

    def test_rejects_unknown_tag(self):
        with self.assertRaises(DecodeError):
            PublicKey(b"\x0f" + b"\x00" * 32)

    def test_rejects_bad_checksum(self):
        address = make_key(3).to_string()
        corrupted = address[:-1] + ("1" if address[-1] != "1" else "2")
        with self.assertRaises(DecodeError):
            PublicKey.from_string(corrupted)
        with self.assertRaises(DecodeError):
            PublicKey.from_string("not-a-key")


if __name__ == "__main__":
    unittest.main()
