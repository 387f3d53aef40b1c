from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from pydenylist import DefaultMultisigProvider, Filter, Manifest, PublicKey, PublicKeyManifest
from pydenylist.keys import Network


@dataclass
class Signer:
    private_key: bytes
    public_key: PublicKey


def _ed25519_keypair(seed: Optional[int] = None) -> tuple[bytes, bytes]:
    if seed is None:
        sk = Ed25519PrivateKey.generate()
    else:
        sk = Ed25519PrivateKey.from_private_bytes(seed.to_bytes(32, "big"))
    pk = sk.public_key()
    return sk.private_bytes_raw(), pk.public_bytes_raw()


def make_signer(seed: Optional[int] = None, network: Network = Network.MAINNET) -> Signer:
    sk, pk = _ed25519_keypair(seed)
    return Signer(private_key=sk, public_key=PublicKey.from_ed25519(pk, network))


def make_key(seed: Optional[int] = None) -> PublicKey:
    return make_signer(seed).public_key


def make_keys(count: int, start: int = 1) -> list[PublicKey]:
    """Distinct, reproducible Ed25519 public keys."""
    return [make_key(start + i) for i in range(count)]


def make_signers(count: int, start: int = 1000) -> list[Signer]:
    return [make_signer(start + i) for i in range(count)]


def make_key_manifest(signers: Sequence[Signer], required: int) -> PublicKeyManifest:
    return PublicKeyManifest(public_keys=tuple(s.public_key for s in signers), required=required)


def sign_manifest(
    manifest: Manifest,
    flt: Filter,
    signers: Sequence[Signer],
    crypto: Optional[DefaultMultisigProvider] = None,
) -> Manifest:
    """Fill in the manifest entries of 'signers' with signatures over the filter hash."""
    crypto = crypto or DefaultMultisigProvider()
    message = flt.hash()
    for signer in signers:
        manifest = manifest.add_signature(signer.public_key, crypto.sign(signer.private_key, message))
    return manifest


def node_rows(keys: Sequence[PublicKey]) -> list[list[str]]:
    return [[str(k)] for k in keys]
