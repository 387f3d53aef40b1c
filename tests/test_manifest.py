import base64
import json
import os
import tempfile
import unittest

from pydenylist.descriptor import Descriptor
from pydenylist.exceptions import DecodeError, InsufficientSignaturesError, IoError
from pydenylist.filter import Filter
from pydenylist.manifest import Manifest, ManifestSignature, PublicKeyManifest, verify

from tests.helpers import make_key_manifest, make_keys, make_signers, sign_manifest


class TestPublicKeyManifest(unittest.TestCase):
    def setUp(self):
        self.signers = make_signers(3)
        self.key_manifest = make_key_manifest(self.signers, 2)

    def test_dict_roundtrip(self):
        doc = self.key_manifest.to_dict()
        self.assertEqual(doc["required"], 2)
        self.assertEqual(len(doc["public_keys"]), 3)
        self.assertEqual(PublicKeyManifest.from_dict(doc), self.key_manifest)

    def test_bounds(self):
        keys = tuple(s.public_key for s in self.signers)
        for required in (0, 4):
            with self.assertRaises(DecodeError):
                PublicKeyManifest(public_keys=keys, required=required)
        with self.assertRaises(DecodeError):
            PublicKeyManifest(public_keys=(), required=1)
        with self.assertRaises(DecodeError):
            PublicKeyManifest(public_keys=keys + keys[:1], required=1)

    def test_malformed_documents(self):
        with self.assertRaises(DecodeError):
            PublicKeyManifest.from_dict({"public_keys": ["bogus"], "required": 1})
        with self.assertRaises(DecodeError):
            PublicKeyManifest.from_dict({"required": 1})
        with self.assertRaises(DecodeError):
            PublicKeyManifest.from_dict({"public_keys": self.key_manifest.to_dict()["public_keys"], "required": "2"})

    def test_info(self):
        info = self.key_manifest.info()
        self.assertEqual(info["address"], str(self.key_manifest.public_key()))
        self.assertEqual((info["keys"], info["required"]), (3, 2))

    def test_files(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "public_key.json")
            self.key_manifest.to_path(path)
            self.assertEqual(PublicKeyManifest.from_path(path), self.key_manifest)
            with open(path, "w") as f:
                f.write("{")
            with self.assertRaises(DecodeError):
                PublicKeyManifest.from_path(path)
            with self.assertRaises(IoError):
                PublicKeyManifest.from_path(os.path.join(tmp, "missing.json"))


class TestManifest(unittest.TestCase):
    def setUp(self):
        self.signers = make_signers(3)
        self.key_manifest = make_key_manifest(self.signers, 2)
        self.filter = Filter.from_descriptor(11, Descriptor.from_rows([[str(k)] for k in make_keys(5)]))
        self.manifest = Manifest.for_filter(self.filter, self.key_manifest)

    def test_placeholders(self):
        self.assertEqual(self.manifest.serial, 11)
        self.assertEqual(self.manifest.hash_bytes(), self.filter.hash())
        self.assertEqual([s.address for s in self.manifest.signatures], list(self.key_manifest.public_keys))
        self.assertTrue(all(s.signature == b"" for s in self.manifest.signatures))
        self.assertTrue(all(s["signature"] == "" for s in self.manifest.to_dict()["signatures"]))

    def test_json_roundtrip(self):
        signed = sign_manifest(self.manifest, self.filter, self.signers[:1])
        doc = json.loads(json.dumps(signed.to_dict()))
        self.assertEqual(Manifest.from_dict(doc), signed)
        self.assertEqual(base64.b64decode(doc["signatures"][0]["signature"]), signed.signatures[0].signature)

    def test_add_signature_fills_entry(self):
        key = self.signers[1].public_key
        updated = self.manifest.add_signature(key, b"\x01" * 64)
        self.assertEqual(len(updated.signatures), 3)
        self.assertEqual(updated.signatures[1], ManifestSignature(key, b"\x01" * 64))
        self.assertEqual(self.manifest.signatures[1].signature, b"")

    def test_sign_and_verify(self):
        signed = sign_manifest(self.manifest, self.filter, self.signers[:2])
        signature = signed.sign(self.key_manifest)
        self.assertTrue(verify(self.key_manifest.public_key(), self.filter.hash(), signature))
        self.assertFalse(verify(self.key_manifest.public_key(), b"\x00" * 32, signature))

    def test_sign_ignores_placeholders(self):
        signed = sign_manifest(self.manifest, self.filter, self.signers[:1])
        with self.assertRaises(InsufficientSignaturesError):
            signed.sign(self.key_manifest)

    def test_verify_each(self):
        signed = sign_manifest(self.manifest, self.filter, self.signers[:1])
        signed = signed.add_signature(self.signers[2].public_key, b"\x00" * 64)
        with self.assertLogs("pydenylist.manifest", level="WARNING"):
            report = signed.verify_each(self.filter.hash())
        self.assertEqual([r.verified for r in report], [True, False, False])
        doc = report[0].to_dict()
        self.assertEqual(set(doc), {"address", "signature", "verified"})

    def test_malformed_manifest(self):
        doc = self.manifest.to_dict()
        doc["signatures"][0]["signature"] = "not base64!"
        with self.assertRaises(DecodeError):
            Manifest.from_dict(doc)
        with self.assertRaises(DecodeError):
            Manifest.from_dict({"hash": "", "signatures": []})
        with self.assertRaises(DecodeError):
            Manifest.from_dict({"serial": -1, "hash": "", "signatures": []})


if __name__ == "__main__":
    unittest.main()
