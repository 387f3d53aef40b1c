from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .exceptions import ConfigurationError
from .filter import FILTER_VERSION, SUPPORTED_VERSIONS, FilterKind, default_kind
from .filters.common import DEFAULT_MAX_ATTEMPTS

ENV_PREFIX = "PYDENYLIST_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class GeneratorPolicy:
    """Build settings for descriptors and filters."""

    filter_version: int = FILTER_VERSION
    filter_kind: Optional[FilterKind] = None
    max_build_attempts: int = DEFAULT_MAX_ATTEMPTS
    compress_descriptor: bool = True

    @classmethod
    def recommended(cls) -> "GeneratorPolicy":
        """Current format: version 2 binary fuse filters."""
        return cls(
            filter_version=2,
            filter_kind=FilterKind.FUSE,
            max_build_attempts=DEFAULT_MAX_ATTEMPTS,
            compress_descriptor=True,
        )

    @classmethod
    def legacy(cls) -> "GeneratorPolicy":
        """Version 1 artifacts for readers that predate the tagged format."""
        return cls(filter_version=1, filter_kind=FilterKind.XOR)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GeneratorPolicy":
        """Recommended settings overridden by PYDENYLIST_* variables.

        Raises:
            ConfigurationError: A variable is set to an unparsable value.
        """
        env = os.environ if environ is None else environ
        policy = cls.recommended()
        version = env.get(ENV_PREFIX + "FILTER_VERSION")
        if version:
            policy.filter_version = _parse_int("FILTER_VERSION", version)
            policy.filter_kind = None
        kind = env.get(ENV_PREFIX + "FILTER_KIND")
        if kind:
            policy.filter_kind = parse_kind(kind)
        attempts = env.get(ENV_PREFIX + "MAX_BUILD_ATTEMPTS")
        if attempts:
            policy.max_build_attempts = _parse_int("MAX_BUILD_ATTEMPTS", attempts)
        compress = env.get(ENV_PREFIX + "COMPRESS_DESCRIPTOR")
        if compress:
            policy.compress_descriptor = _parse_bool("COMPRESS_DESCRIPTOR", compress)
        policy.validate()
        return policy

    def resolved_kind(self) -> FilterKind:
        if self.filter_kind is None:
            return default_kind(self.filter_version)
        return self.filter_kind

    def validate(self) -> None:
        if self.filter_version not in SUPPORTED_VERSIONS:
            raise ConfigurationError(
                f"filter version must be one of {list(SUPPORTED_VERSIONS)}, got {self.filter_version}"
            )
        if self.filter_version == 1 and self.resolved_kind() != FilterKind.XOR:
            raise ConfigurationError("filter version 1 only supports xor filters")
        if self.max_build_attempts < 1:
            raise ConfigurationError(f"max_build_attempts must be positive, got {self.max_build_attempts}")

    def as_dict(self) -> dict[str, object]:
        return {
            "filter_version": self.filter_version,
            "filter_kind": self.resolved_kind().name.lower(),
            "max_build_attempts": self.max_build_attempts,
            "compress_descriptor": self.compress_descriptor,
        }


def parse_kind(value: str) -> FilterKind:
    try:
        return FilterKind[value.strip().upper()]
    except KeyError as e:
        raise ConfigurationError(f"unknown filter kind {value!r} (expected xor or fuse)") from e


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value.strip())
    except ValueError as e:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {value!r}") from e


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"{ENV_PREFIX}{name} must be a boolean, got {value!r}")
