"""Concrete MultisigProvider using Ed25519 member keys from 'cryptography'.

Aggregate key (after the tag byte):

    uint8 m || uint8 n || multihash(sha2-256, SHA-256(k1.raw || ... || kn.raw))

Aggregate signature:

    uint8 n, n * opaque8(member raw key),
    uint8 k, k * (uint8 member index, opaque8 signature)

The member list travels with the signature so a verifier only needs the
aggregate key: the embedded keys are rehashed and must reproduce the key's
digest before any partial signature is checked.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from ..codec.binary import read_opaque8, read_uint8, require_consumed, write_opaque8, write_uint8
from ..exceptions import CryptoError, DecodeError, InsufficientSignaturesError, InvalidSignatureError
from ..keys import KeyType, Network, PublicKey, make_tag
from .multisig_provider import MultisigProvider
from .utils import sha256

logger = logging.getLogger(__name__)

MULTIHASH_SHA2_256 = 0x12
SHA256_DIGEST_LEN = 32
ED25519_SIGNATURE_LEN = 64
MAX_MEMBERS = 255


def parse_aggregate_key(key: PublicKey) -> tuple[int, int, bytes]:
    """Split an aggregate key into (required, members, members digest).

    Raises:
        CryptoError: If 'key' is not a well-formed sha2-256 multisig key.
    """
    if key.key_type != KeyType.MULTISIG:
        raise CryptoError(f"not a multisig key: {key}")
    body = key.key_bytes
    if len(body) != 4 + SHA256_DIGEST_LEN or body[2] != MULTIHASH_SHA2_256 or body[3] != SHA256_DIGEST_LEN:
        raise CryptoError("malformed multisig key")
    return body[0], body[1], body[4:]

def encode_aggregate_signature(members: Sequence[PublicKey], partials: Sequence[tuple[int, bytes]]) -> bytes:
    out = bytearray(write_uint8(len(members)))
    for key in members:
        out += write_opaque8(key.raw)
    out += write_uint8(len(partials))
    for index, signature in partials:
        out += write_uint8(index)
        out += write_opaque8(signature)
    return bytes(out)

def decode_aggregate_signature(data: bytes) -> tuple[list[PublicKey], list[tuple[int, bytes]]]:
    n, off = read_uint8(data, 0)
    members = []
    for _ in range(n):
        raw, off = read_opaque8(data, off)
        members.append(PublicKey.from_bytes(raw))
    k, off = read_uint8(data, off)
    partials = []
    for _ in range(k):
        index, off = read_uint8(data, off)
        signature, off = read_opaque8(data, off)
        partials.append((index, signature))
    require_consumed(data, off)
    return members, partials

class DefaultMultisigProvider(MultisigProvider):
    """M-of-N multisig where every member signs with its own Ed25519 key."""

    @property
    def hash_code(self) -> int:
        return MULTIHASH_SHA2_256

    def derive_public_key(
        self,
        public_keys: Sequence[PublicKey],
        required: int,
        network: Optional[Network] = None,
    ) -> PublicKey:
        """Derive the aggregate key; raises CryptoError on invalid m/n or member keys."""
        n = len(public_keys)
        if not 1 <= n <= MAX_MEMBERS:
            raise CryptoError(f"multisig needs 1 to {MAX_MEMBERS} members, got {n}")
        if not 1 <= required <= n:
            raise CryptoError(f"required must be between 1 and {n}, got {required}")
        for key in public_keys:
            if key.key_type != KeyType.ED25519:
                raise CryptoError(f"multisig member must be an ed25519 key: {key}")
        if network is None:
            network = public_keys[0].network
        digest = sha256(b"".join(k.raw for k in public_keys))
        raw = bytes((make_tag(network, KeyType.MULTISIG), required, n, MULTIHASH_SHA2_256, SHA256_DIGEST_LEN))
        return PublicKey(raw + digest)

    def combine(
        self,
        aggregate_key: PublicKey,
        public_keys: Sequence[PublicKey],
        partials: Sequence[tuple[PublicKey, bytes]],
    ) -> bytes:
        """Assemble an aggregate signature from member partials.

        Raises:
            CryptoError: The members do not derive 'aggregate_key'.
            InvalidSignatureError: A partial is from a non-member, repeats a
                member, or is not a 64-byte Ed25519 signature.
            InsufficientSignaturesError: Fewer than the threshold remain.
        """
        required, _, _ = parse_aggregate_key(aggregate_key)
        derived = self.derive_public_key(public_keys, required, aggregate_key.network)
        if derived != aggregate_key:
            raise CryptoError("member keys do not derive the aggregate key")

        index_of = {key: i for i, key in enumerate(public_keys)}
        entries: dict[int, bytes] = {}
        for key, signature in partials:
            index = index_of.get(key)
            if index is None:
                raise InvalidSignatureError(f"{key} is not a multisig member")
            if index in entries:
                raise InvalidSignatureError(f"duplicate signature from {key}")
            if len(signature) != ED25519_SIGNATURE_LEN:
                raise InvalidSignatureError(
                    f"malformed signature from {key}: {len(signature)} bytes"
                )
            entries[index] = bytes(signature)
        if len(entries) < required:
            raise InsufficientSignaturesError(len(entries), required)
        return encode_aggregate_signature(public_keys, sorted(entries.items()))

    def verify(self, aggregate_key: PublicKey, message: bytes, signature: bytes) -> bool:
        required, n, digest = parse_aggregate_key(aggregate_key)
        try:
            members, partials = decode_aggregate_signature(signature)
        except DecodeError as e:
            logger.debug("undecodable aggregate signature: %s", e)
            return False
        if len(members) != n or any(k.key_type != KeyType.ED25519 for k in members):
            return False
        if sha256(b"".join(k.raw for k in members)) != digest:
            return False
        valid: set[int] = set()
        for index, partial in partials:
            if index < n and index not in valid and self.verify_single(members[index], message, partial):
                valid.add(index)
        logger.debug("aggregate signature: %d of %d required partials valid", len(valid), required)
        return len(valid) >= required

    def verify_single(self, public_key: PublicKey, message: bytes, signature: bytes) -> bool:
        if public_key.key_type != KeyType.ED25519:
            raise CryptoError(f"expected an ed25519 key: {public_key}")
        if len(signature) != ED25519_SIGNATURE_LEN:
            return False
        pk = Ed25519PublicKey.from_public_bytes(public_key.key_bytes)
        try:
            pk.verify(signature, message)
        except InvalidSignature:
            return False
        return True

    def sign(self, private_key: bytes, message: bytes) -> bytes:
        try:
            sk = Ed25519PrivateKey.from_private_bytes(private_key)
        except ValueError as e:
            raise CryptoError("invalid ed25519 private key") from e
        return sk.sign(message)
