from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from ..keys import Network, PublicKey


class MultisigProvider(ABC):
    """Threshold (M-of-N) signature scheme over member public keys.

    Implementations must be deterministic: the same members, in the same
    order, with the same threshold always derive the same aggregate key.
    """

    @property
    @abstractmethod
    def hash_code(self) -> int:
        """Multihash code of the digest embedded in aggregate keys."""
        pass

    @abstractmethod
    def derive_public_key(
        self,
        public_keys: Sequence[PublicKey],
        required: int,
        network: Optional[Network] = None,
    ) -> PublicKey:
        """
        Derive the aggregate key for 'required' of 'public_keys'. Member order is significant.
        """
        pass

    @abstractmethod
    def combine(
        self,
        aggregate_key: PublicKey,
        public_keys: Sequence[PublicKey],
        partials: Sequence[tuple[PublicKey, bytes]],
    ) -> bytes:
        """
        Combine (member key, partial signature) pairs into one aggregate signature.
        """
        pass

    @abstractmethod
    def verify(self, aggregate_key: PublicKey, message: bytes, signature: bytes) -> bool:
        pass

    @abstractmethod
    def verify_single(self, public_key: PublicKey, message: bytes, signature: bytes) -> bool:
        pass

    @abstractmethod
    def sign(self, private_key: bytes, message: bytes) -> bytes:
        """
        Produce one member's partial signature from raw private key bytes.
        """
        pass
