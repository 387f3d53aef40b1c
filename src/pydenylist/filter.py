"""Versioned, signable membership filter over a Descriptor.

Two byte layers are defined here:

Signing bytes (what is hashed and signed)
    uint32 serial, then
    v1: bare Xor32 structure
    v2: uint32 variant tag (0 = Xor, 1 = BinaryFuse) + structure

Envelope (the on-disk artifact)
    uint8 version, uint16 signature_length, signature, signing bytes

Both layers dispatch on the version through the flat _SIGNING_CODECS table;
adding a format version means adding one entry there.
"""
from __future__ import annotations

import base64
import dataclasses
import logging
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, ClassVar, Optional, Union

from .codec.binary import (
    read_opaque16,
    read_uint8,
    read_uint32,
    require_consumed,
    write_opaque16,
    write_uint8,
    write_uint32,
)
from .crypto.utils import sha256
from .descriptor import Descriptor
from .exceptions import DecodeError, IoError, UnsupportedVersionError
from .filters.common import DEFAULT_MAX_ATTEMPTS
from .filters.fuse import BinaryFuse32
from .filters.xor import Xor32
from .hashing import edge_hash, key_hash
from .keys import KeyType, PublicKey

if TYPE_CHECKING:
    from .crypto.multisig_provider import MultisigProvider
    from .manifest import PublicKeyManifest

logger = logging.getLogger(__name__)

FILTER_VERSION = 2
MAX_SIGNATURE_LEN = 0xFFFF


class FilterKind(IntEnum):
    """Variant tag written into version 2 signing bytes."""

    XOR = 0
    FUSE = 1


@dataclass(frozen=True)
class XorVariant:
    kind: ClassVar[FilterKind] = FilterKind.XOR
    filter: Xor32

    def contains(self, h: int) -> bool:
        return self.filter.contains(h)

    def serialize(self) -> bytes:
        return self.filter.serialize()

    @classmethod
    def deserialize(cls, data: bytes, offset: int) -> tuple["XorVariant", int]:
        f, offset = Xor32.deserialize(data, offset)
        return cls(f), offset


@dataclass(frozen=True)
class FuseVariant:
    kind: ClassVar[FilterKind] = FilterKind.FUSE
    filter: BinaryFuse32

    def contains(self, h: int) -> bool:
        return self.filter.contains(h)

    def serialize(self) -> bytes:
        return self.filter.serialize()

    @classmethod
    def deserialize(cls, data: bytes, offset: int) -> tuple["FuseVariant", int]:
        f, offset = BinaryFuse32.deserialize(data, offset)
        return cls(f), offset


FilterData = Union[XorVariant, FuseVariant]

_VARIANTS: dict[int, Callable[[bytes, int], tuple[FilterData, int]]] = {
    FilterKind.XOR: XorVariant.deserialize,
    FilterKind.FUSE: FuseVariant.deserialize,
}


# --- Version-specific payload codecs ---
def _encode_v1(data: FilterData) -> bytes:
    if not isinstance(data, XorVariant):
        raise UnsupportedVersionError("filter version 1 only supports the xor variant")
    return data.serialize()


def _decode_v1(buf: bytes, offset: int) -> tuple[FilterData, int]:
    return XorVariant.deserialize(buf, offset)


def _encode_v2(data: FilterData) -> bytes:
    return write_uint32(int(data.kind)) + data.serialize()


def _decode_v2(buf: bytes, offset: int) -> tuple[FilterData, int]:
    tag, offset = read_uint32(buf, offset)
    decode = _VARIANTS.get(tag)
    if decode is None:
        raise DecodeError(f"unknown filter variant tag {tag}")
    return decode(buf, offset)


_SIGNING_CODECS: dict[
    int,
    tuple[Callable[[FilterData], bytes], Callable[[bytes, int], tuple[FilterData, int]]],
] = {
    1: (_encode_v1, _decode_v1),
    2: (_encode_v2, _decode_v2),
}

SUPPORTED_VERSIONS = tuple(sorted(_SIGNING_CODECS))


def _codec_for(version: int):
    codec = _SIGNING_CODECS.get(version)
    if codec is None:
        raise UnsupportedVersionError(f"unsupported filter version {version}")
    return codec


def default_kind(version: int) -> FilterKind:
    """Variant used when none is requested: fuse where the format allows it."""
    return FilterKind.XOR if version == 1 else FilterKind.FUSE


@dataclass(frozen=True)
class Filter:
    """A membership filter artifact.

    The signature is empty until an aggregate signature is embedded with
    with_signature(). Instances are immutable.
    """

    version: int
    signature: bytes
    serial: int
    data: FilterData

    def __post_init__(self) -> None:
        _codec_for(self.version)
        if self.version == 1 and not isinstance(self.data, XorVariant):
            raise UnsupportedVersionError("filter version 1 only supports the xor variant")
        if not 0 <= self.serial <= 0xFFFFFFFF:
            raise ValueError(f"serial {self.serial} does not fit in uint32")
        if len(self.signature) > MAX_SIGNATURE_LEN:
            raise ValueError(f"signature of {len(self.signature)} bytes exceeds {MAX_SIGNATURE_LEN}")

    # --- Construction ---
    @classmethod
    def from_descriptor(
        cls,
        serial: int,
        descriptor: Descriptor,
        version: int = FILTER_VERSION,
        kind: Optional[FilterKind] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> "Filter":
        """Build an unsigned filter over every node and edge of 'descriptor'.

        Raises:
            UnsupportedVersionError: Unknown version, or fuse requested for v1.
            FilterBuildError: The hash set is empty or construction failed.
        """
        _codec_for(version)
        kind = default_kind(version) if kind is None else FilterKind(kind)
        if version == 1 and kind != FilterKind.XOR:
            raise UnsupportedVersionError("filter version 1 only supports the xor variant")

        hashes = {key_hash(node.key) for node in descriptor.nodes}
        hashes.update(edge_hash(e.source, e.target) for e in descriptor.edges.resolve())
        keys = sorted(hashes)

        data: FilterData
        if kind == FilterKind.XOR:
            data = XorVariant(Xor32.from_keys(keys, max_attempts))
        else:
            data = FuseVariant(BinaryFuse32.from_keys(keys, max_attempts))
        logger.info(
            "built v%d %s filter: serial %d, %d hashes, %d fingerprints",
            version,
            kind.name.lower(),
            serial,
            len(keys),
            len(data.filter),
        )
        return cls(version=version, signature=b"", serial=serial, data=data)

    # --- Membership ---
    @property
    def kind(self) -> FilterKind:
        return self.data.kind

    def contains_hash(self, h: int) -> bool:
        return self.data.contains(h)

    def contains(self, key: PublicKey) -> bool:
        return self.contains_hash(key_hash(key))

    def contains_edge(self, a: PublicKey, b: PublicKey) -> bool:
        return self.contains_hash(edge_hash(a, b))

    # --- Signing bytes ---
    def to_signing_bytes(self) -> bytes:
        encode, _ = _codec_for(self.version)
        return write_uint32(self.serial) + encode(self.data)

    @classmethod
    def from_signing_bytes(cls, data: bytes, version: int = FILTER_VERSION) -> "Filter":
        """Decode unsigned signing bytes of the given format version."""
        _, decode = _codec_for(version)
        serial, offset = read_uint32(data, 0)
        filter_data, offset = decode(data, offset)
        require_consumed(data, offset)
        return cls(version=version, signature=b"", serial=serial, data=filter_data)

    def hash(self) -> bytes:
        """SHA-256 of the signing bytes; the value members sign."""
        return sha256(self.to_signing_bytes())

    def hash_b64(self) -> str:
        return base64.b64encode(self.hash()).decode("ascii")

    # --- Envelope ---
    def to_bytes(self) -> bytes:
        return write_uint8(self.version) + write_opaque16(self.signature) + self.to_signing_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> "Filter":
        """Decode an envelope, dispatching on its leading version byte.

        Raises:
            UnsupportedVersionError: The version byte is not in the table.
            DecodeError: The envelope is truncated or has trailing bytes.
        """
        version, offset = read_uint8(data, 0)
        _, decode = _codec_for(version)
        logger.debug("decoding filter envelope version %d (%d bytes)", version, len(data))
        signature, offset = read_opaque16(data, offset)
        serial, offset = read_uint32(data, offset)
        filter_data, offset = decode(data, offset)
        require_consumed(data, offset)
        return cls(version=version, signature=signature, serial=serial, data=filter_data)

    def with_signature(self, signature: bytes) -> "Filter":
        return dataclasses.replace(self, signature=bytes(signature))

    # --- Verification ---
    def verify(
        self,
        key: Union[PublicKey, "PublicKeyManifest"],
        provider: Optional["MultisigProvider"] = None,
    ) -> bool:
        """Check the embedded aggregate signature over hash().

        'key' is either the aggregate public key or the key manifest it is
        derived from. An unsigned filter never verifies.
        """
        from .crypto.default_multisig_provider import DefaultMultisigProvider

        provider = provider or DefaultMultisigProvider()
        if not self.signature:
            return False
        if not isinstance(key, PublicKey):
            key = key.public_key(provider)
        if key.key_type != KeyType.MULTISIG:
            return provider.verify_single(key, self.hash(), self.signature)
        return provider.verify(key, self.hash(), self.signature)

    def info(self) -> dict[str, object]:
        return {
            "version": self.version,
            "serial": self.serial,
            "kind": self.kind.name.lower(),
            "fingerprints": len(self.data.filter),
            "signed": bool(self.signature),
            "signature_length": len(self.signature),
            "hash": self.hash_b64(),
        }

    # --- Files ---
    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "Filter":
        return cls.from_bytes(_read_file(path, "filter"))

    def to_path(self, path: Union[str, Path], create_new: bool = False) -> None:
        _write_file(path, self.to_bytes(), create_new, "filter")

    @classmethod
    def from_signing_path(cls, path: Union[str, Path], version: int = FILTER_VERSION) -> "Filter":
        return cls.from_signing_bytes(_read_file(path, "signing data"), version)

    def to_signing_path(self, path: Union[str, Path], create_new: bool = False) -> None:
        _write_file(path, self.to_signing_bytes(), create_new, "signing data")


def _read_file(path: Union[str, Path], what: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise IoError(f"reading {what} {path}: {e}") from e


def _write_file(path: Union[str, Path], payload: bytes, create_new: bool, what: str) -> None:
    try:
        with open(path, "xb" if create_new else "wb") as f:
            f.write(payload)
    except OSError as e:
        raise IoError(f"writing {what} {path}: {e}") from e
    logger.debug("wrote %s %s (%d bytes)", what, path, len(payload))
