"""Graph store backend speaking Bolt/Cypher (Neo4j, FalkorDB Bolt endpoint, Memgraph)."""

import json
from typing import Any, Dict, List, Optional, Tuple

from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from .._utils import ensure_dependency, logger
from ..models import Component, ComponentValidation, ValidationStatus
from .base import ComponentBackend, ComponentSnapshot

EXPORT_NODES_QUERY = """
MATCH (n)
RETURN elementId(n) AS id, labels(n) AS labels, properties(n) AS properties
"""

EXPORT_RELATIONSHIPS_QUERY = """
MATCH (a)-[r]->(b)
RETURN elementId(r) AS id, type(r) AS type, elementId(a) AS start, elementId(b) AS end,
       properties(r) AS properties
"""

# Nodes get a temporary key so relationships can be re-attached after import
IMPORT_NODES_QUERY = """
UNWIND $nodes AS node
CALL apoc.create.node(node.labels, apoc.map.merge(node.properties, {_datavault_id: node.id}))
YIELD node AS created
RETURN count(created) AS count
"""

IMPORT_RELATIONSHIPS_QUERY = """
UNWIND $relationships AS rel
MATCH (a {_datavault_id: rel.start}), (b {_datavault_id: rel.end})
CALL apoc.create.relationship(a, rel.type, rel.properties, b)
YIELD rel AS created
RETURN count(created) AS count
"""

CLEANUP_IMPORT_KEYS_QUERY = """
MATCH (n) WHERE n._datavault_id IS NOT NULL
REMOVE n._datavault_id
"""


def parse_graph_dump(data: bytes) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Return ``(nodes, relationships)`` from a dump.

    Raises:
        ValueError: If the dump is not a JSON object with node and relationship lists
    """
    document = json.loads(data.decode("utf-8"))
    if not isinstance(document, dict):
        raise ValueError("graph dump must be a JSON object")
    nodes = document.get("nodes")
    relationships = document.get("relationships")
    if not isinstance(nodes, list) or not isinstance(relationships, list):
        raise ValueError("graph dump requires 'nodes' and 'relationships' lists")
    return nodes, relationships


class GraphBackend(ComponentBackend):
    """Dump and reload the whole graph as ``{"nodes": [...], "relationships": [...]}``.

    Import needs APOC Core (``apoc.create.node``/``apoc.create.relationship``)
    to recreate dynamic labels and relationship types.
    """

    component = Component.GRAPH

    def __init__(
        self,
        url: str,
        auth: Optional[Tuple[str, str]] = None,
        database: str = "neo4j",
        batch_size: int = 1000,
        driver: Optional[Any] = None,
    ):
        self.url = url
        self.auth = auth
        self.database = database
        self.batch_size = batch_size
        self._driver = driver

    @property
    def driver(self):
        """Lazy create the async driver."""
        if self._driver is None:
            ensure_dependency("neo4j", "neo4j", "Graph backup backend")
            from neo4j import AsyncGraphDatabase
            self._driver = AsyncGraphDatabase.driver(self.url, auth=self.auth)
        return self._driver

    def _retry_decorator(self):
        from neo4j.exceptions import ServiceUnavailable, SessionExpired
        return retry(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((ServiceUnavailable, SessionExpired)),
            reraise=True,
        )

    async def health_check(self) -> bool:
        try:
            await self.driver.verify_connectivity()
        except Exception as e:
            logger.warning(f"Graph backend {self.url} unreachable: {e}")
            return False
        return True

    async def export_snapshot(self) -> ComponentSnapshot:
        nodes, relationships = await self._retry_decorator()(self._read_graph)()
        payload = {"nodes": nodes, "relationships": relationships}
        data = json.dumps(payload, default=str).encode("utf-8")

        logger.info(f"Graph export complete: {len(nodes)} nodes, {len(relationships)} relationships")
        return ComponentSnapshot(
            component=self.component,
            artifacts={"falkordb.dump": data},
            details={"nodes": len(nodes), "relationships": len(relationships)},
        )

    async def _read_graph(self) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        async with self.driver.session(database=self.database) as session:
            node_result = await session.run(EXPORT_NODES_QUERY)
            nodes = [record.data() async for record in node_result]

            rel_result = await session.run(EXPORT_RELATIONSHIPS_QUERY)
            relationships = [record.data() async for record in rel_result]
        return nodes, relationships

    async def import_snapshot(self, snapshot: ComponentSnapshot) -> Dict[str, Any]:
        nodes, relationships = parse_graph_dump(snapshot.primary)

        async with self.driver.session(database=self.database) as session:
            await session.run("MATCH (n) DETACH DELETE n")

            for start in range(0, len(nodes), self.batch_size):
                batch = nodes[start:start + self.batch_size]
                result = await session.run(IMPORT_NODES_QUERY, nodes=batch)
                await result.consume()

            for start in range(0, len(relationships), self.batch_size):
                batch = relationships[start:start + self.batch_size]
                result = await session.run(IMPORT_RELATIONSHIPS_QUERY, relationships=batch)
                await result.consume()

            result = await session.run(CLEANUP_IMPORT_KEYS_QUERY)
            await result.consume()

        logger.info(f"Graph restore complete: {len(nodes)} nodes, {len(relationships)} relationships")
        return {"nodes": len(nodes), "relationships": len(relationships)}

    def inspect_snapshot(self, snapshot: ComponentSnapshot) -> ComponentValidation:
        try:
            nodes, relationships = parse_graph_dump(snapshot.primary)
        except (ValueError, UnicodeDecodeError) as e:
            return ComponentValidation(
                component=self.name,
                status=ValidationStatus.INVALID,
                details=f"Unreadable graph dump: {e}",
            )

        counts = {"nodes": len(nodes), "relationships": len(relationships)}
        if not nodes and not relationships:
            return ComponentValidation(
                component=self.name,
                status=ValidationStatus.WARNING,
                details="Graph dump is empty",
                metadata=counts,
            )
        return ComponentValidation(
            component=self.name,
            status=ValidationStatus.VALID,
            details=f"{counts['nodes']} nodes, {counts['relationships']} relationships",
            metadata=counts,
        )

    async def close(self) -> None:
        if self._driver is not None:
            await self._driver.close()
            self._driver = None
