"""Graph store interface and in-memory implementation.

The knowledge graph only needs node upserts, edge creation and simple
pattern matches (label + key, relationship type + endpoints). Every node
label has one key property that identifies it.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

# Key property per node label
NODE_KEYS: dict[str, str] = {
    "Entity": "id",
    "Alias": "name",
    "Provider": "name",
    "Query": "text",
    "Citation": "id",
}

RELATIONSHIP_TYPES = frozenset(
    {"ALIAS_OF", "CITED_IN", "FROM_PROVIDER", "FOR_QUERY", "COMPETES_WITH"}
)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class GraphStoreError(Exception):
    """Invalid graph operation (unknown label, duplicate node, missing endpoint)."""


def key_property(label: str) -> str:
    """Key property for a node label."""
    try:
        return NODE_KEYS[label]
    except KeyError:
        raise GraphStoreError(f"Unknown node label: {label}") from None


def check_relationship(rel_type: str) -> str:
    if rel_type not in RELATIONSHIP_TYPES or not _IDENTIFIER.match(rel_type):
        raise GraphStoreError(f"Unknown relationship type: {rel_type}")
    return rel_type


@dataclass(frozen=True)
class NodeRef:
    """Pointer to a node by label and key value."""

    label: str
    key: str


@dataclass
class EdgeRecord:
    """A relationship between two nodes."""

    rel_type: str
    source: NodeRef
    target: NodeRef
    properties: dict[str, Any] = field(default_factory=dict)


class GraphStore(ABC):
    """Minimal async graph store used by the knowledge graph."""

    @abstractmethod
    async def merge_node(self, label: str, key: str, properties: dict[str, Any]) -> dict[str, Any]:
        """Create the node if missing, then set the given properties. Returns the node."""
        ...

    @abstractmethod
    async def create_node(self, label: str, key: str, properties: dict[str, Any]) -> dict[str, Any]:
        """Create a node. Raises GraphStoreError if it already exists."""
        ...

    @abstractmethod
    async def get_node(self, label: str, key: str) -> dict[str, Any] | None:
        """Get a node's properties, or None."""
        ...

    @abstractmethod
    async def find_nodes(self, label: str) -> list[dict[str, Any]]:
        """All nodes with a label."""
        ...

    @abstractmethod
    async def create_edge(
        self,
        rel_type: str,
        source: NodeRef,
        target: NodeRef,
        properties: dict[str, Any] | None = None,
    ) -> None:
        """Create a relationship. Both endpoints must exist."""
        ...

    @abstractmethod
    async def merge_edge(
        self,
        rel_type: str,
        source: NodeRef,
        target: NodeRef,
        properties: dict[str, Any] | None = None,
    ) -> bool:
        """Create the relationship unless an identical one exists. Returns True if created."""
        ...

    @abstractmethod
    async def edges(
        self,
        rel_type: str,
        source: NodeRef | None = None,
        target: NodeRef | None = None,
        source_label: str | None = None,
        target_label: str | None = None,
    ) -> list[EdgeRecord]:
        """Relationships of a type, optionally filtered by endpoint or endpoint label."""
        ...

    @abstractmethod
    async def count_nodes(self, label: str) -> int: ...

    @abstractmethod
    async def count_edges(self, rel_type: str) -> int: ...

    async def close(self) -> None:
        """Release resources."""
        return None


class InMemoryGraphStore(GraphStore):
    """Dict-backed store. Operations never suspend, so concurrent callers cannot interleave."""

    def __init__(self) -> None:
        self._nodes: dict[str, dict[str, dict[str, Any]]] = {label: {} for label in NODE_KEYS}
        self._edges: list[EdgeRecord] = []

    def _bucket(self, label: str) -> dict[str, dict[str, Any]]:
        key_property(label)
        return self._nodes[label]

    async def merge_node(self, label: str, key: str, properties: dict[str, Any]) -> dict[str, Any]:
        bucket = self._bucket(label)
        node = bucket.setdefault(key, {key_property(label): key})
        node.update({k: v for k, v in properties.items() if k != key_property(label)})
        return dict(node)

    async def create_node(self, label: str, key: str, properties: dict[str, Any]) -> dict[str, Any]:
        bucket = self._bucket(label)
        if key in bucket:
            raise GraphStoreError(f"{label} '{key}' already exists")
        bucket[key] = {**properties, key_property(label): key}
        return dict(bucket[key])

    async def get_node(self, label: str, key: str) -> dict[str, Any] | None:
        node = self._bucket(label).get(key)
        return dict(node) if node is not None else None

    async def find_nodes(self, label: str) -> list[dict[str, Any]]:
        return [dict(node) for node in self._bucket(label).values()]

    def _require(self, ref: NodeRef) -> None:
        if ref.key not in self._bucket(ref.label):
            raise GraphStoreError(f"{ref.label} '{ref.key}' does not exist")

    async def create_edge(
        self,
        rel_type: str,
        source: NodeRef,
        target: NodeRef,
        properties: dict[str, Any] | None = None,
    ) -> None:
        check_relationship(rel_type)
        self._require(source)
        self._require(target)
        self._edges.append(EdgeRecord(rel_type, source, target, dict(properties or {})))

    async def merge_edge(
        self,
        rel_type: str,
        source: NodeRef,
        target: NodeRef,
        properties: dict[str, Any] | None = None,
    ) -> bool:
        check_relationship(rel_type)
        self._require(source)
        self._require(target)
        properties = dict(properties or {})
        for edge in self._edges:
            if (
                edge.rel_type == rel_type
                and edge.source == source
                and edge.target == target
                and edge.properties == properties
            ):
                return False
        self._edges.append(EdgeRecord(rel_type, source, target, properties))
        return True

    async def edges(
        self,
        rel_type: str,
        source: NodeRef | None = None,
        target: NodeRef | None = None,
        source_label: str | None = None,
        target_label: str | None = None,
    ) -> list[EdgeRecord]:
        check_relationship(rel_type)
        return [
            edge
            for edge in self._edges
            if edge.rel_type == rel_type
            and (source is None or edge.source == source)
            and (target is None or edge.target == target)
            and (source_label is None or edge.source.label == source_label)
            and (target_label is None or edge.target.label == target_label)
        ]

    async def count_nodes(self, label: str) -> int:
        return len(self._bucket(label))

    async def count_edges(self, rel_type: str) -> int:
        check_relationship(rel_type)
        return sum(1 for edge in self._edges if edge.rel_type == rel_type)
