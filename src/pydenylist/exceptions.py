"""Exception hierarchy for pydenylist.

Every failure caused by external input (files, rows, JSON documents, binary
artifacts, signatures) derives from DenylistError so callers can handle the
whole family at a boundary. InvariantViolation is deliberately outside that
family: it marks a defect in this package, not bad input.
"""
from __future__ import annotations


class DenylistError(Exception):
    """Base class for all recoverable pydenylist errors."""


class IoError(DenylistError):
    """Reading or writing an artifact on disk failed."""


class DecodeError(DenylistError):
    """Malformed row, JSON document or binary structure."""


class UnsupportedVersionError(DecodeError):
    """Envelope or signing bytes carry a version this build cannot handle."""


class FilterBuildError(DenylistError):
    """A membership filter could not be constructed from the given hashes."""


class ConfigurationError(DenylistError):
    """Invalid generator policy or environment configuration."""


class CryptoError(DenylistError):
    """Malformed key or signature, or a failure in a signature primitive."""


class InvalidSignatureError(CryptoError):
    """A partial or aggregate signature was rejected."""


class InsufficientSignaturesError(CryptoError):
    """Fewer partial signatures than the manifest threshold requires."""

    def __init__(self, have: int, required: int):
        super().__init__(f"insufficient signatures: have {have}, require {required}")
        self.have = have
        self.required = required


class ManifestMismatchError(DenylistError):
    """A filter does not match the manifest it is checked against."""


class HashMismatchError(ManifestMismatchError):
    """The recomputed content hash differs from the manifest hash."""

    def __init__(self, expected: str, actual: str):
        super().__init__(f"filter hash {actual} does not match manifest hash {expected}")
        self.expected = expected
        self.actual = actual


class SerialMismatchError(ManifestMismatchError):
    """The filter serial differs from the manifest serial."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"filter serial {actual} does not match manifest serial {expected}")
        self.expected = expected
        self.actual = actual


class InvariantViolation(RuntimeError):
    """Internal structure is inconsistent; indicates a bug, not bad input."""
