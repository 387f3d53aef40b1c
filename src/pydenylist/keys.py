"""Tagged public keys and their text address form.

A PublicKey is the raw key bytes as they are hashed, sorted and embedded in
artifacts: one tag byte (network | key type) followed by the key material.

    Ed25519:  tag(0x01) || 32-byte public key
    MultiSig: tag(0x02) || uint8 m || uint8 n || multihash

The text form is base58check over ``0x00 || raw``.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

import base58

from .exceptions import DecodeError

ADDRESS_VERSION = 0x00
ED25519_KEY_LEN = 32


class Network(IntEnum):
    """Network nibble of the key tag."""

    MAINNET = 0x00
    TESTNET = 0x10


class KeyType(IntEnum):
    """Key type nibble of the key tag."""

    ED25519 = 0x01
    MULTISIG = 0x02


def make_tag(network: Network, key_type: KeyType) -> int:
    return int(network) | int(key_type)


@dataclass(frozen=True, order=True)
class PublicKey:
    """Immutable tagged public key, ordered and compared by raw bytes."""

    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, (bytes, bytearray)):
            raise TypeError("PublicKey.raw must be bytes")
        object.__setattr__(self, "raw", bytes(self.raw))
        if len(self.raw) < 2:
            raise DecodeError("public key too short")
        try:
            KeyType(self.raw[0] & 0x0F)
            Network(self.raw[0] & 0xF0)
        except ValueError as e:
            raise DecodeError(f"unknown key tag 0x{self.raw[0]:02x}") from e
        if self.key_type == KeyType.ED25519 and len(self.raw) != 1 + ED25519_KEY_LEN:
            raise DecodeError(f"invalid ed25519 key length {len(self.raw) - 1}")

    @property
    def key_type(self) -> KeyType:
        return KeyType(self.raw[0] & 0x0F)

    @property
    def network(self) -> Network:
        return Network(self.raw[0] & 0xF0)

    @property
    def key_bytes(self) -> bytes:
        """Key material without the tag byte."""
        return self.raw[1:]

    @classmethod
    def from_ed25519(cls, public_bytes: bytes, network: Network = Network.MAINNET) -> "PublicKey":
        """Wrap a raw 32-byte Ed25519 public key."""
        return cls(bytes((make_tag(network, KeyType.ED25519),)) + bytes(public_bytes))

    @classmethod
    def from_bytes(cls, data: bytes) -> "PublicKey":
        return cls(bytes(data))

    @classmethod
    def from_string(cls, address: str) -> "PublicKey":
        """Parse a base58check address.

        Raises:
            DecodeError: If the address is not valid base58check or has an
                unexpected version byte or key tag.
        """
        try:
            payload = base58.b58decode_check(address.strip())
        except ValueError as e:
            raise DecodeError(f"invalid public key: \"{address}\"") from e
        if not payload or payload[0] != ADDRESS_VERSION:
            raise DecodeError(f"invalid public key version: \"{address}\"")
        return cls(payload[1:])

    def to_string(self) -> str:
        return base58.b58encode_check(bytes((ADDRESS_VERSION,)) + self.raw).decode("ascii")

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"PublicKey({self.to_string()!r})"
