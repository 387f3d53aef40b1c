"""Cross-checks between a filter, its manifest and the signer set.

Every flow here compares serial and content hash first and only then looks at
signatures: a signature over different content says nothing about this filter.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .crypto.default_multisig_provider import DefaultMultisigProvider
from .crypto.multisig_provider import MultisigProvider
from .descriptor import Descriptor
from .exceptions import HashMismatchError, InvalidSignatureError, ManifestMismatchError, SerialMismatchError
from .filter import Filter
from .manifest import Manifest, ManifestSignatureVerify, PublicKeyManifest
from .policy import GeneratorPolicy

logger = logging.getLogger(__name__)


class FilterState(Enum):
    """Lifecycle of a filter artifact; VERIFIED and REJECTED are terminal."""

    UNSIGNED = "unsigned"
    HASHED = "hashed"
    PARTIALLY_SIGNED = "partially_signed"
    SIGNED = "signed"
    VERIFIED = "verified"
    REJECTED = "rejected"


def check_manifest(filter: Filter, manifest: Manifest) -> None:
    """Fail fast when 'filter' is not the content 'manifest' describes.

    Raises:
        SerialMismatchError: Serials differ.
        HashMismatchError: The recomputed content hash differs.
        DecodeError: The manifest hash is not valid base64.
    """
    if filter.serial != manifest.serial:
        raise SerialMismatchError(manifest.serial, filter.serial)
    if filter.hash() != manifest.hash_bytes():
        raise HashMismatchError(manifest.hash, filter.hash_b64())


@dataclass(frozen=True)
class ManifestReport:
    serial: int
    hash: str
    signatures: tuple[ManifestSignatureVerify, ...]

    @property
    def valid_signatures(self) -> int:
        return sum(1 for s in self.signatures if s.verified)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": {"serial": self.serial, "hash": self.hash, "verified": True},
            "signatures": [s.to_dict() for s in self.signatures],
        }


def verify_manifest(
    filter: Filter,
    manifest: Manifest,
    provider: Optional[MultisigProvider] = None,
) -> ManifestReport:
    """Per-member signature report for a manifest that matches 'filter'."""
    check_manifest(filter, manifest)
    signatures = tuple(manifest.verify_each(filter.hash(), provider))
    report = ManifestReport(serial=manifest.serial, hash=manifest.hash, signatures=signatures)
    logger.info(
        "manifest serial %d: %d of %d signatures verify",
        manifest.serial,
        report.valid_signatures,
        len(signatures),
    )
    return report


def sign_filter(
    filter: Filter,
    manifest: Manifest,
    key_manifest: PublicKeyManifest,
    provider: Optional[MultisigProvider] = None,
) -> Filter:
    """Embed the aggregate of the manifest's signatures into 'filter'."""
    check_manifest(filter, manifest)
    return filter.with_signature(manifest.sign(key_manifest, provider))


def verify_filter(
    filter: Filter,
    key_manifest: PublicKeyManifest,
    provider: Optional[MultisigProvider] = None,
) -> bool:
    verified = filter.verify(key_manifest, provider)
    logger.info("filter serial %d %s", filter.serial, "verifies" if verified else "does not verify")
    return verified


def rebuild_and_verify(
    descriptor: Descriptor,
    manifest: Manifest,
    key_manifest: PublicKeyManifest,
    policy: Optional[GeneratorPolicy] = None,
    provider: Optional[MultisigProvider] = None,
) -> Filter:
    """Rebuild the filter from 'descriptor', sign it and check the result.

    Raises:
        HashMismatchError: The rebuilt content differs from what was signed.
        InsufficientSignaturesError, InvalidSignatureError: Combining failed,
            or the combined signature does not verify.
    """
    policy = policy or GeneratorPolicy.recommended()
    provider = provider or DefaultMultisigProvider()
    filter = Filter.from_descriptor(
        manifest.serial,
        descriptor,
        version=policy.filter_version,
        kind=policy.resolved_kind(),
        max_attempts=policy.max_build_attempts,
    )
    signed = sign_filter(filter, manifest, key_manifest, provider)
    if not verify_filter(signed, key_manifest, provider):
        raise InvalidSignatureError(
            f"aggregate signature does not verify with {key_manifest.public_key(provider)}"
        )
    return signed


def assess_filter(
    filter: Filter,
    manifest: Optional[Manifest] = None,
    key_manifest: Optional[PublicKeyManifest] = None,
    provider: Optional[MultisigProvider] = None,
) -> FilterState:
    """Classify 'filter' given whatever companion documents are available."""
    provider = provider or DefaultMultisigProvider()
    if manifest is not None:
        try:
            check_manifest(filter, manifest)
        except ManifestMismatchError as e:
            logger.info("filter rejected: %s", e)
            return FilterState.REJECTED

    if filter.signature:
        if key_manifest is None:
            return FilterState.SIGNED
        return FilterState.VERIFIED if filter.verify(key_manifest, provider) else FilterState.REJECTED

    if manifest is None:
        return FilterState.UNSIGNED
    members = set(key_manifest.public_keys) if key_manifest is not None else None
    valid = sum(
        1
        for item in manifest.verify_each(filter.hash(), provider)
        if item.verified and (members is None or item.signature.address in members)
    )
    return FilterState.PARTIALLY_SIGNED if valid else FilterState.HASHED
