from .xor import Xor32
from .fuse import BinaryFuse32

__all__ = ["Xor32", "BinaryFuse32"]
