"""Canonical denylist descriptor: deduplicated, sorted nodes and edges.

A Descriptor is built once from raw rows and never mutated. Construction
guarantees that any permutation of the same effective input rows yields the
same descriptor, so independently run builds agree on the filter hash.
"""
from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence, Union

from .exceptions import DecodeError, InvariantViolation, IoError
from .hashing import edge_order
from .keys import PublicKey

logger = logging.getLogger(__name__)

ROW_COLUMNS = ("public_key", "target_key", "reason", "carryover")

RawRecord = Union[Sequence[Optional[str]], Mapping[str, Any]]


@dataclass(frozen=True, eq=False)
class Node:
    """A fully excluded key. Identity is the key alone."""

    key: PublicKey
    reason: Optional[str] = None
    carryover: int = 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)


@dataclass(frozen=True)
class Edge:
    """An excluded relationship stored as indices into Edges.keys."""

    source: int
    target: int
    reason: Optional[str] = None
    carryover: int = 0


@dataclass(frozen=True)
class ResolvedEdge:
    """An edge with its endpoint keys looked up."""

    source: PublicKey
    target: PublicKey
    reason: Optional[str] = None
    carryover: int = 0


@dataclass(frozen=True)
class Row:
    """One parsed input row. A row without target_key describes a node."""

    public_key: PublicKey
    target_key: Optional[PublicKey] = None
    reason: Optional[str] = None
    carryover: int = 0

    @property
    def is_edge(self) -> bool:
        return self.target_key is not None

    @classmethod
    def from_record(cls, record: RawRecord) -> "Row":
        """Parse a row from a positional sequence or a column mapping.

        Empty optional columns are treated as absent; carryover defaults to 0.

        Raises:
            DecodeError: On a wrong column count, an unparsable key, a bad
                carryover or an edge whose endpoints are the same key.
        """
        if isinstance(record, Mapping):
            unknown = set(record) - set(ROW_COLUMNS)
            if unknown:
                raise DecodeError(f"unknown row columns: {sorted(unknown)}")
            values = [record.get(name) for name in ROW_COLUMNS]
        else:
            if not 1 <= len(record) <= len(ROW_COLUMNS):
                raise DecodeError(
                    f"expected 1 to {len(ROW_COLUMNS)} columns, got {len(record)}"
                )
            values = list(record) + [None] * (len(ROW_COLUMNS) - len(record))

        raw_key, raw_target, raw_reason, raw_carryover = (_blank_to_none(v) for v in values)
        if raw_key is None:
            raise DecodeError("missing public_key column")
        public_key = _parse_key(raw_key)
        target_key = _parse_key(raw_target) if raw_target is not None else None
        if target_key is not None and target_key == public_key:
            raise DecodeError(f"edge endpoints must differ: {public_key}")
        return cls(
            public_key=public_key,
            target_key=target_key,
            reason=None if raw_reason is None else str(raw_reason),
            carryover=_parse_carryover(raw_carryover),
        )


def _blank_to_none(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _parse_key(value: Any) -> PublicKey:
    if isinstance(value, PublicKey):
        return value
    return PublicKey.from_string(str(value))


def _parse_carryover(value: Any) -> int:
    if value is None:
        return 0
    try:
        carryover = int(str(value).strip())
    except ValueError as e:
        raise DecodeError(f"invalid carryover: {value!r}") from e
    if carryover < 0 or carryover > 0xFFFFFFFF:
        raise DecodeError(f"carryover out of range: {carryover}")
    return carryover


@dataclass(frozen=True)
class Edges:
    """Edge list plus the shared key set the edges index into."""

    keys: tuple[PublicKey, ...] = ()
    edges: tuple[Edge, ...] = ()

    def endpoints(self, edge: Edge) -> tuple[PublicKey, PublicKey]:
        n = len(self.keys)
        if not (0 <= edge.source < n and 0 <= edge.target < n):
            raise InvariantViolation(
                f"edge index out of range: ({edge.source}, {edge.target}) with {n} keys"
            )
        return self.keys[edge.source], self.keys[edge.target]

    def resolve(self) -> Iterator[ResolvedEdge]:
        for edge in self.edges:
            source, target = self.endpoints(edge)
            yield ResolvedEdge(source, target, edge.reason, edge.carryover)

    def __len__(self) -> int:
        return len(self.edges)


@dataclass
class BuildStats:
    """Counts of rows seen and silently discarded during a build."""

    node_rows: int = 0
    edge_rows: int = 0
    duplicate_nodes: int = 0
    duplicate_edges: int = 0
    node_conflicts: int = 0

    @property
    def discarded(self) -> int:
        return self.duplicate_nodes + self.duplicate_edges + self.node_conflicts


class DescriptorBuilder:
    """Accumulates rows and produces a canonical Descriptor.

    Node rows are kept first-occurrence-wins. Edge rows are held back until
    build() so that node precedence does not depend on row order.
    """

    def __init__(self) -> None:
        self._nodes: dict[PublicKey, Node] = {}
        self._edge_rows: list[tuple[PublicKey, PublicKey, Row]] = []
        self.stats = BuildStats()

    def add_row(self, row: Row) -> None:
        if row.target_key is not None:
            self.stats.edge_rows += 1
            self._edge_rows.append((row.public_key, row.target_key, row))
            return
        self.stats.node_rows += 1
        if row.public_key in self._nodes:
            self.stats.duplicate_nodes += 1
            return
        self._nodes[row.public_key] = Node(row.public_key, row.reason, row.carryover)

    def add_rows(self, rows: Iterable[Union[Row, RawRecord]]) -> None:
        for row in rows:
            self.add_row(row if isinstance(row, Row) else Row.from_record(row))

    def build(self) -> "Descriptor":
        nodes = self._nodes
        canonical: dict[tuple[PublicKey, PublicKey], Row] = {}
        for a, b, row in self._edge_rows:
            source, target = edge_order(a, b)
            if source in nodes or target in nodes:
                self.stats.node_conflicts += 1
                continue
            if (source, target) in canonical:
                self.stats.duplicate_edges += 1
                continue
            canonical[(source, target)] = row

        sorted_nodes = tuple(sorted(nodes.values(), key=lambda n: n.key.raw))
        sorted_pairs = sorted(canonical, key=lambda pair: (pair[0].raw, pair[1].raw))

        # Keys are indexed while walking the sorted edges, not in row order,
        # so any permutation of the input rows yields identical bytes.
        key_index: dict[PublicKey, int] = {}
        edges = []
        for source, target in sorted_pairs:
            row = canonical[(source, target)]
            s = key_index.setdefault(source, len(key_index))
            t = key_index.setdefault(target, len(key_index))
            edges.append(Edge(s, t, row.reason, row.carryover))

        if self.stats.discarded:
            logger.info(
                "discarded %d rows (%d duplicate nodes, %d duplicate edges, %d edges shadowed by nodes)",
                self.stats.discarded,
                self.stats.duplicate_nodes,
                self.stats.duplicate_edges,
                self.stats.node_conflicts,
            )
        logger.debug("built descriptor: %d nodes, %d edges", len(sorted_nodes), len(edges))
        return Descriptor(
            nodes=sorted_nodes,
            edges=Edges(keys=tuple(key_index), edges=tuple(edges)),
        )


@dataclass(frozen=True)
class Descriptor:
    """Deduplicated, sorted set of excluded nodes and edges."""

    nodes: tuple[Node, ...] = ()
    edges: Edges = field(default_factory=Edges)

    # --- Construction ---
    @classmethod
    def from_rows(cls, rows: Iterable[Union[Row, RawRecord]]) -> "Descriptor":
        builder = DescriptorBuilder()
        builder.add_rows(rows)
        return builder.build()

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> "Descriptor":
        """Build from a CSV file of public_key,target_key,reason,carryover rows.

        A leading header row naming ``public_key`` is skipped; blank lines are
        ignored.
        """
        return cls.from_rows(read_csv_rows(path))

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "Descriptor":
        """Load a persisted descriptor (binary, gzip-compressed binary or JSON)."""
        from .codec.descriptor import read_descriptor

        return read_descriptor(path)

    def to_path(self, path: Union[str, Path], compress: Optional[bool] = None, create_new: bool = False) -> None:
        from .codec.descriptor import write_descriptor

        write_descriptor(self, path, compress=compress, create_new=create_new)

    # --- Queries ---
    def find_node(self, key: PublicKey) -> Optional[Node]:
        for node in self.nodes:
            if node.key == key:
                return node
        return None

    def find_edges(self, key: PublicKey) -> list[ResolvedEdge]:
        return [e for e in self.edges.resolve() if key in (e.source, e.target)]

    def edge_counts(self) -> dict[PublicKey, int]:
        """Per-key edge counts; full nodes map to -1 (matches every edge)."""
        counts: dict[PublicKey, int] = {node.key: -1 for node in self.nodes}
        for edge in self.edges.edges:
            for key in self.edges.endpoints(edge):
                counts[key] = counts.get(key, 0) + 1
        return counts

    def summary(self) -> dict[str, int]:
        return {
            "nodes": len(self.nodes),
            "edges": len(self.edges.edges),
            "edge_keys": len(self.edges.keys),
        }


def read_csv_rows(path: Union[str, Path]) -> Iterator[Row]:
    try:
        with open(path, newline="", encoding="utf-8") as f:
            for lineno, record in enumerate(csv.reader(f), start=1):
                if not record or all(not cell.strip() for cell in record):
                    continue
                if lineno == 1 and record[0].strip() == ROW_COLUMNS[0]:
                    continue
                try:
                    yield Row.from_record(record)
                except DecodeError as e:
                    raise DecodeError(f"{path}:{lineno}: {e}") from e
    except OSError as e:
        raise IoError(f"reading {path}: {e}") from e
