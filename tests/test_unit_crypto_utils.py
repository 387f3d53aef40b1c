import unittest
from unittest import mock

from pydenylist.crypto.utils import sha256
from pydenylist.descriptor import Descriptor
from pydenylist.filter import Filter

from tests.helpers import make_keys, node_rows


class TestCryptoUtils(unittest.TestCase):
    def test_sha256_known_vectors(self):
        self.assertEqual(
            sha256(b"abc").hex(),
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad",
        )
        self.assertEqual(
            sha256(b"").hex(),
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855",
        )

    def test_filter_hash_uses_crypto_backend(self):
        f = Filter.from_descriptor(3, Descriptor.from_rows(node_rows(make_keys(4))))
        with mock.patch("pydenylist.filter.sha256", wraps=sha256) as digest:
            value = f.hash()
        digest.assert_called_once_with(f.to_signing_bytes())
        self.assertEqual(value, sha256(f.to_signing_bytes()))


if __name__ == "__main__":
    unittest.main()
