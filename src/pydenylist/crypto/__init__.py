from .multisig_provider import MultisigProvider
from .default_multisig_provider import DefaultMultisigProvider

__all__ = ["MultisigProvider", "DefaultMultisigProvider"]
