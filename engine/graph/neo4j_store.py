"""Neo4j-backed graph store.

Labels and relationship types are checked against a fixed set before they
are interpolated into Cypher. All values go through query parameters.
"""

from typing import Any

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase

from engine.graph.store import (
    NODE_KEYS,
    EdgeRecord,
    GraphStore,
    GraphStoreError,
    NodeRef,
    check_relationship,
    key_property,
)

logger = structlog.get_logger(__name__)


class Neo4jGraphStore(GraphStore):
    """Graph store on a Neo4j database via the async driver."""

    def __init__(self, uri: str, user: str, password: str, driver: AsyncDriver | None = None):
        self.uri = uri
        self.driver = driver or AsyncGraphDatabase.driver(uri, auth=(user, password))

    async def connect(self) -> None:
        """Verify connectivity and create key constraints."""
        await self.driver.verify_connectivity()
        for label, key in NODE_KEYS.items():
            await self._run(
                f"CREATE CONSTRAINT {label.lower()}_{key} IF NOT EXISTS "
                f"FOR (n:{label}) REQUIRE n.{key} IS UNIQUE"
            )
        logger.info("neo4j_connected", uri=self.uri)

    async def close(self) -> None:
        await self.driver.close()
        logger.info("neo4j_closed")

    async def _run(self, query: str, **params: Any) -> list[dict[str, Any]]:
        async with self.driver.session() as session:
            result = await session.run(query, params)
            return await result.data()

    async def merge_node(self, label: str, key: str, properties: dict[str, Any]) -> dict[str, Any]:
        prop = key_property(label)
        props = {k: v for k, v in properties.items() if k != prop}
        rows = await self._run(
            f"MERGE (n:{label} {{{prop}: $key}}) SET n += $props RETURN properties(n) AS node",
            key=key,
            props=props,
        )
        return rows[0]["node"]

    async def create_node(self, label: str, key: str, properties: dict[str, Any]) -> dict[str, Any]:
        if await self.get_node(label, key) is not None:
            raise GraphStoreError(f"{label} '{key}' already exists")
        prop = key_property(label)
        rows = await self._run(
            f"CREATE (n:{label}) SET n = $props RETURN properties(n) AS node",
            props={**properties, prop: key},
        )
        return rows[0]["node"]

    async def get_node(self, label: str, key: str) -> dict[str, Any] | None:
        prop = key_property(label)
        rows = await self._run(
            f"MATCH (n:{label} {{{prop}: $key}}) RETURN properties(n) AS node",
            key=key,
        )
        return rows[0]["node"] if rows else None

    async def find_nodes(self, label: str) -> list[dict[str, Any]]:
        key_property(label)
        rows = await self._run(f"MATCH (n:{label}) RETURN properties(n) AS node")
        return [row["node"] for row in rows]

    def _endpoints(self, source: NodeRef, target: NodeRef) -> str:
        src_prop = key_property(source.label)
        dst_prop = key_property(target.label)
        return (
            f"MATCH (a:{source.label} {{{src_prop}: $source}}) "
            f"MATCH (b:{target.label} {{{dst_prop}: $target}}) "
        )

    async def create_edge(
        self,
        rel_type: str,
        source: NodeRef,
        target: NodeRef,
        properties: dict[str, Any] | None = None,
    ) -> None:
        check_relationship(rel_type)
        rows = await self._run(
            self._endpoints(source, target)
            + f"CREATE (a)-[r:{rel_type}]->(b) SET r = $props RETURN count(r) AS created",
            source=source.key,
            target=target.key,
            props=properties or {},
        )
        if not rows or rows[0]["created"] == 0:
            raise GraphStoreError(f"Missing endpoint for {rel_type}: {source} -> {target}")

    async def merge_edge(
        self,
        rel_type: str,
        source: NodeRef,
        target: NodeRef,
        properties: dict[str, Any] | None = None,
    ) -> bool:
        check_relationship(rel_type)
        props = properties or {}
        existing = await self.edges(rel_type, source=source, target=target)
        if any(edge.properties == props for edge in existing):
            return False
        await self.create_edge(rel_type, source, target, props)
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
        src_label = source.label if source else source_label
        dst_label = target.label if target else target_label
        src_pattern = f"a:{src_label}" if src_label else "a"
        dst_pattern = f"b:{dst_label}" if dst_label else "b"
        for label in filter(None, (src_label, dst_label)):
            key_property(label)

        where = []
        if source:
            where.append(f"a.{key_property(source.label)} = $source")
        if target:
            where.append(f"b.{key_property(target.label)} = $target")
        clause = f"WHERE {' AND '.join(where)} " if where else ""

        rows = await self._run(
            f"MATCH ({src_pattern})-[r:{rel_type}]->({dst_pattern}) {clause}"
            "RETURN labels(a) AS source_labels, properties(a) AS source, "
            "labels(b) AS target_labels, properties(b) AS target, properties(r) AS props",
            source=source.key if source else None,
            target=target.key if target else None,
        )
        return [
            EdgeRecord(
                rel_type,
                _ref(row["source_labels"], row["source"]),
                _ref(row["target_labels"], row["target"]),
                row["props"],
            )
            for row in rows
        ]

    async def count_nodes(self, label: str) -> int:
        key_property(label)
        rows = await self._run(f"MATCH (n:{label}) RETURN count(n) AS total")
        return rows[0]["total"] if rows else 0

    async def count_edges(self, rel_type: str) -> int:
        check_relationship(rel_type)
        rows = await self._run(f"MATCH ()-[r:{rel_type}]->() RETURN count(r) AS total")
        return rows[0]["total"] if rows else 0


def _ref(labels: list[str], properties: dict[str, Any]) -> NodeRef:
    for label in labels:
        if label in NODE_KEYS:
            return NodeRef(label, properties[NODE_KEYS[label]])
    raise GraphStoreError(f"Node with unknown labels: {labels}")
