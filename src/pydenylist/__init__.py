"""pydenylist: signed XOR / binary fuse denylist filters with M-of-N multisig."""
__version__: str = "0.1.0"

from .keys import KeyType, Network, PublicKey  # noqa: E402
from .descriptor import Descriptor, DescriptorBuilder, Edge, Edges, Node, Row  # noqa: E402
from .filter import FILTER_VERSION, Filter, FilterKind  # noqa: E402
from .manifest import Manifest, ManifestSignature, PublicKeyManifest  # noqa: E402
from .crypto import DefaultMultisigProvider, MultisigProvider  # noqa: E402
from .policy import GeneratorPolicy  # noqa: E402
from .verification import FilterState, assess_filter, check_manifest, rebuild_and_verify  # noqa: E402
from .exceptions import DenylistError  # noqa: E402

__all__ = [
    "__version__",
    "KeyType",
    "Network",
    "PublicKey",
    "Descriptor",
    "DescriptorBuilder",
    "Edge",
    "Edges",
    "Node",
    "Row",
    "FILTER_VERSION",
    "Filter",
    "FilterKind",
    "Manifest",
    "ManifestSignature",
    "PublicKeyManifest",
    "DefaultMultisigProvider",
    "MultisigProvider",
    "GeneratorPolicy",
    "FilterState",
    "assess_filter",
    "check_manifest",
    "rebuild_and_verify",
    "DenylistError",
]
