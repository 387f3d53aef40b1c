"""Persisted forms of a Descriptor: binary (optionally gzip) and JSON.

Binary layout (little-endian):

    uint8  format            (DESCRIPTOR_FORMAT = 1)
    uint32 node_count
        opaque8 key, optional<string> reason, uint32 carryover
    uint32 edge_key_count
        opaque8 key
    uint32 edge_count
        uint32 source, uint32 target, optional<string> reason, uint32 carryover

Both forms round-trip every Descriptor field losslessly. Decoding validates
structure (distinct keys, in-range indices) but does not re-sort: a persisted
descriptor is taken as already canonical.
"""
from __future__ import annotations

import gzip
import json
import logging
import zlib
from pathlib import Path
from typing import Any, Optional, Union

from ..descriptor import Descriptor, Edge, Edges, Node
from ..exceptions import DecodeError, IoError
from ..keys import PublicKey
from .binary import (
    read_opaque8,
    read_optional_string,
    read_uint8,
    read_uint32,
    require_consumed,
    write_opaque8,
    write_optional_string,
    write_uint8,
    write_uint32,
)

logger = logging.getLogger(__name__)

DESCRIPTOR_FORMAT = 1
GZIP_MAGIC = b"\x1f\x8b"


# --- Binary ---
def encode_descriptor(descriptor: Descriptor) -> bytes:
    out = bytearray(write_uint8(DESCRIPTOR_FORMAT))
    out += write_uint32(len(descriptor.nodes))
    for node in descriptor.nodes:
        out += write_opaque8(node.key.raw)
        out += write_optional_string(node.reason)
        out += write_uint32(node.carryover)
    out += write_uint32(len(descriptor.edges.keys))
    for key in descriptor.edges.keys:
        out += write_opaque8(key.raw)
    out += write_uint32(len(descriptor.edges.edges))
    for edge in descriptor.edges.edges:
        out += write_uint32(edge.source)
        out += write_uint32(edge.target)
        out += write_optional_string(edge.reason)
        out += write_uint32(edge.carryover)
    return bytes(out)


def decode_descriptor(data: bytes) -> Descriptor:
    fmt, off = read_uint8(data, 0)
    if fmt != DESCRIPTOR_FORMAT:
        raise DecodeError(f"unsupported descriptor format {fmt}")

    count, off = read_uint32(data, off)
    nodes = []
    for _ in range(count):
        raw, off = read_opaque8(data, off)
        reason, off = read_optional_string(data, off)
        carryover, off = read_uint32(data, off)
        nodes.append(Node(PublicKey.from_bytes(raw), reason, carryover))

    count, off = read_uint32(data, off)
    keys = []
    for _ in range(count):
        raw, off = read_opaque8(data, off)
        keys.append(PublicKey.from_bytes(raw))

    count, off = read_uint32(data, off)
    edges = []
    for _ in range(count):
        source, off = read_uint32(data, off)
        target, off = read_uint32(data, off)
        reason, off = read_optional_string(data, off)
        carryover, off = read_uint32(data, off)
        edges.append(Edge(source, target, reason, carryover))
    require_consumed(data, off)

    descriptor = Descriptor(nodes=tuple(nodes), edges=Edges(keys=tuple(keys), edges=tuple(edges)))
    validate_descriptor(descriptor)
    return descriptor


# --- JSON ---
def descriptor_to_dict(descriptor: Descriptor) -> dict[str, Any]:
    return {
        "nodes": [
            {"key": str(n.key), "reason": n.reason, "carryover": n.carryover}
            for n in descriptor.nodes
        ],
        "edges": {
            "keys": [str(k) for k in descriptor.edges.keys],
            "edges": [
                {
                    "source": e.source,
                    "target": e.target,
                    "reason": e.reason,
                    "carryover": e.carryover,
                }
                for e in descriptor.edges.edges
            ],
        },
    }


def descriptor_from_dict(data: Any) -> Descriptor:
    try:
        nodes = tuple(
            Node(
                PublicKey.from_string(n["key"]),
                _as_reason(n.get("reason")),
                _as_uint32(n.get("carryover", 0)),
            )
            for n in data["nodes"]
        )
        edges_obj = data["edges"]
        keys = tuple(PublicKey.from_string(k) for k in edges_obj["keys"])
        edges = tuple(
            Edge(
                _as_uint32(e["source"]),
                _as_uint32(e["target"]),
                _as_reason(e.get("reason")),
                _as_uint32(e.get("carryover", 0)),
            )
            for e in edges_obj["edges"]
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise DecodeError(f"malformed descriptor document: {e}") from e
    descriptor = Descriptor(nodes=nodes, edges=Edges(keys=keys, edges=edges))
    validate_descriptor(descriptor)
    return descriptor


def _as_reason(value: Any) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        raise DecodeError(f"expected string reason, got {value!r}")
    return value


def _as_uint32(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFFFFFFFF:
        raise DecodeError(f"expected uint32, got {value!r}")
    return value


def validate_descriptor(descriptor: Descriptor) -> None:
    """Check the structural invariants of a decoded descriptor.

    Raises:
        DecodeError: On duplicate keys, out-of-range or self-referencing
            edges, or edges touching a full node.
    """
    node_keys = {n.key for n in descriptor.nodes}
    if len(node_keys) != len(descriptor.nodes):
        raise DecodeError("duplicate node keys in descriptor")
    keys = descriptor.edges.keys
    if len(set(keys)) != len(keys):
        raise DecodeError("duplicate edge keys in descriptor")
    for edge in descriptor.edges.edges:
        if not (edge.source < len(keys) and edge.target < len(keys)):
            raise DecodeError(f"edge index out of range: ({edge.source}, {edge.target})")
        if edge.source == edge.target:
            raise DecodeError(f"self-referencing edge at index {edge.source}")
        if keys[edge.source] in node_keys or keys[edge.target] in node_keys:
            raise DecodeError("edge references a full node key")


# --- Files ---
def write_descriptor(
    descriptor: Descriptor,
    path: Union[str, Path],
    compress: Optional[bool] = None,
    create_new: bool = False,
) -> None:
    """Write a descriptor, choosing the form from the file suffix.

    ``.json`` selects JSON; otherwise the binary form is written, gzip
    compressed when 'compress' is true or, if unset, when the suffix is ``.gz``.
    """
    path = Path(path)
    if path.suffix == ".json":
        payload = (json.dumps(descriptor_to_dict(descriptor), indent=2) + "\n").encode("utf-8")
    else:
        payload = encode_descriptor(descriptor)
        if compress is None:
            compress = path.suffix == ".gz"
        if compress:
            # mtime=0 keeps compressed output reproducible.
            payload = gzip.compress(payload, mtime=0)
    try:
        with open(path, "xb" if create_new else "wb") as f:
            f.write(payload)
    except OSError as e:
        raise IoError(f"writing descriptor {path}: {e}") from e
    logger.debug("wrote descriptor %s (%d bytes)", path, len(payload))


def read_descriptor(path: Union[str, Path]) -> Descriptor:
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise IoError(f"reading descriptor {path}: {e}") from e
    return loads_descriptor(data)


def loads_descriptor(data: bytes) -> Descriptor:
    """Decode any persisted form, detecting gzip and JSON by content."""
    if data.startswith(GZIP_MAGIC):
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise DecodeError(f"invalid gzip data: {e}") from e
    if data.lstrip().startswith(b"{"):
        try:
            doc = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"invalid descriptor JSON: {e}") from e
        return descriptor_from_dict(doc)
    return decode_descriptor(data)
