"""Signer set and signature collection documents.

PublicKeyManifest (``public_key.json``)::

    {"public_keys": ["<address>", ...], "required": 2}

Manifest (``manifest.json``), created with one empty entry per member and
filled in by the signers out of band::

    {"serial": 7, "hash": "<base64 sha256>",
     "signatures": [{"address": "<address>", "signature": "<base64 or empty>"}]}
"""
from __future__ import annotations

import base64
import binascii
import dataclasses
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

from .crypto.default_multisig_provider import DefaultMultisigProvider
from .crypto.multisig_provider import MultisigProvider
from .exceptions import CryptoError, DecodeError, IoError
from .keys import PublicKey

if TYPE_CHECKING:
    from .filter import Filter

logger = logging.getLogger(__name__)

MAX_MEMBERS = 255


def _read_json(path: Union[str, Path], what: str) -> Any:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise IoError(f"reading {what} {path}: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid {what} JSON in {path}: {e}") from e


def _write_json(path: Union[str, Path], doc: Any, create_new: bool, what: str) -> None:
    try:
        with open(path, "x" if create_new else "w", encoding="utf-8") as f:
            json.dump(doc, f, indent=2)
            f.write("\n")
    except OSError as e:
        raise IoError(f"writing {what} {path}: {e}") from e


def _b64decode(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid base64 value: {value!r}") from e


@dataclass(frozen=True)
class PublicKeyManifest:
    """Ordered member keys plus the signature threshold M."""

    public_keys: tuple[PublicKey, ...]
    required: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "public_keys", tuple(self.public_keys))
        n = len(self.public_keys)
        if not 1 <= n <= MAX_MEMBERS:
            raise DecodeError(f"key manifest needs 1 to {MAX_MEMBERS} keys, got {n}")
        if not 1 <= self.required <= n:
            raise DecodeError(f"required must be between 1 and {n}, got {self.required}")
        if len(set(self.public_keys)) != n:
            raise DecodeError("duplicate keys in key manifest")

    @classmethod
    def from_dict(cls, doc: Any) -> "PublicKeyManifest":
        try:
            keys = tuple(PublicKey.from_string(k) for k in doc["public_keys"])
            required = doc["required"]
        except (KeyError, TypeError, AttributeError) as e:
            raise DecodeError(f"malformed key manifest: {e}") from e
        if isinstance(required, bool) or not isinstance(required, int):
            raise DecodeError(f"required must be an integer, got {required!r}")
        return cls(public_keys=keys, required=required)

    def to_dict(self) -> dict[str, Any]:
        return {"public_keys": [str(k) for k in self.public_keys], "required": self.required}

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "PublicKeyManifest":
        return cls.from_dict(_read_json(path, "key manifest"))

    def to_path(self, path: Union[str, Path], create_new: bool = False) -> None:
        _write_json(path, self.to_dict(), create_new, "key manifest")

    def public_key(self, provider: Optional[MultisigProvider] = None) -> PublicKey:
        """The aggregate key; depends on member order and the threshold."""
        provider = provider or DefaultMultisigProvider()
        return provider.derive_public_key(self.public_keys, self.required)

    def info(self, provider: Optional[MultisigProvider] = None) -> dict[str, Any]:
        return {
            "address": str(self.public_key(provider)),
            "keys": len(self.public_keys),
            "required": self.required,
        }


@dataclass(frozen=True)
class ManifestSignature:
    """One member entry; an empty signature is an unfilled placeholder."""

    address: PublicKey
    signature: bytes = b""

    @classmethod
    def from_dict(cls, doc: Any) -> "ManifestSignature":
        try:
            address = PublicKey.from_string(doc["address"])
            signature = doc.get("signature") or ""
        except (KeyError, TypeError, AttributeError) as e:
            raise DecodeError(f"malformed manifest signature: {e}") from e
        if not isinstance(signature, str):
            raise DecodeError(f"signature must be a base64 string, got {signature!r}")
        return cls(address=address, signature=_b64decode(signature))

    def to_dict(self) -> dict[str, str]:
        return {
            "address": str(self.address),
            "signature": base64.b64encode(self.signature).decode("ascii"),
        }

    def verify(self, message: bytes, provider: Optional[MultisigProvider] = None) -> "ManifestSignatureVerify":
        provider = provider or DefaultMultisigProvider()
        verified = False
        if self.signature:
            try:
                verified = provider.verify_single(self.address, message, self.signature)
            except CryptoError as e:
                logger.debug("cannot verify signature from %s: %s", self.address, e)
        return ManifestSignatureVerify(signature=self, verified=verified)


@dataclass(frozen=True)
class ManifestSignatureVerify:
    signature: ManifestSignature
    verified: bool

    def to_dict(self) -> dict[str, Any]:
        doc: dict[str, Any] = self.signature.to_dict()
        doc["verified"] = self.verified
        return doc


@dataclass(frozen=True)
class Manifest:
    """Serial, content hash and the partial signatures collected so far."""

    serial: int
    hash: str
    signatures: tuple[ManifestSignature, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "signatures", tuple(self.signatures))
        if not 0 <= self.serial <= 0xFFFFFFFF:
            raise DecodeError(f"manifest serial out of range: {self.serial}")

    # --- Construction ---
    @classmethod
    def for_filter(cls, filter: "Filter", key_manifest: PublicKeyManifest) -> "Manifest":
        """A fresh manifest with an empty entry for every member."""
        return cls(
            serial=filter.serial,
            hash=filter.hash_b64(),
            signatures=tuple(ManifestSignature(address=k) for k in key_manifest.public_keys),
        )

    @classmethod
    def from_dict(cls, doc: Any) -> "Manifest":
        try:
            serial = doc["serial"]
            digest = doc["hash"]
            entries = doc.get("signatures", [])
            signatures = tuple(ManifestSignature.from_dict(s) for s in entries)
        except (KeyError, TypeError, AttributeError) as e:
            raise DecodeError(f"malformed manifest: {e}") from e
        if isinstance(serial, bool) or not isinstance(serial, int):
            raise DecodeError(f"serial must be an integer, got {serial!r}")
        if not isinstance(digest, str):
            raise DecodeError(f"hash must be a base64 string, got {digest!r}")
        return cls(serial=serial, hash=digest, signatures=signatures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "serial": self.serial,
            "hash": self.hash,
            "signatures": [s.to_dict() for s in self.signatures],
        }

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "Manifest":
        return cls.from_dict(_read_json(path, "manifest"))

    def to_path(self, path: Union[str, Path], create_new: bool = False) -> None:
        _write_json(path, self.to_dict(), create_new, "manifest")

    def hash_bytes(self) -> bytes:
        return _b64decode(self.hash)

    def add_signature(self, address: PublicKey, signature: bytes) -> "Manifest":
        """Return a copy with the entry for 'address' filled in (or appended)."""
        entry = ManifestSignature(address=address, signature=bytes(signature))
        signatures = list(self.signatures)
        for i, existing in enumerate(signatures):
            if existing.address == address:
                signatures[i] = entry
                break
        else:
            signatures.append(entry)
        return dataclasses.replace(self, signatures=tuple(signatures))

    # --- Signatures ---
    def sign(self, key_manifest: PublicKeyManifest, provider: Optional[MultisigProvider] = None) -> bytes:
        """Combine the filled-in entries into an aggregate signature.

        Raises:
            InvalidSignatureError: An entry is malformed or from a non-member.
            InsufficientSignaturesError: Fewer than 'required' entries are filled.
        """
        provider = provider or DefaultMultisigProvider()
        aggregate_key = key_manifest.public_key(provider)
        partials = [(s.address, s.signature) for s in self.signatures if s.signature]
        signature = provider.combine(aggregate_key, key_manifest.public_keys, partials)
        logger.info(
            "combined %d partial signatures (%d required) for serial %d",
            len(partials),
            key_manifest.required,
            self.serial,
        )
        return signature

    def verify_each(self, message: bytes, provider: Optional[MultisigProvider] = None) -> list[ManifestSignatureVerify]:
        """Check every entry against its own member key; diagnostic only."""
        provider = provider or DefaultMultisigProvider()
        report = [s.verify(message, provider) for s in self.signatures]
        for item in report:
            if item.signature.signature and not item.verified:
                logger.warning("signature from %s does not verify", item.signature.address)
        return report


def verify(
    aggregate_key: PublicKey,
    message: bytes,
    signature: bytes,
    provider: Optional[MultisigProvider] = None,
) -> bool:
    provider = provider or DefaultMultisigProvider()
    return provider.verify(aggregate_key, message, signature)
