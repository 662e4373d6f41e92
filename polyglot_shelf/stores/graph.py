"""
Purchase Graph (Neo4j)

Purchases are ``(:User {id})-[:PURCHASED]->(:Product {id, title})``
relationships. MERGE semantics collapse repeat purchases into one edge, so
the graph records *that* a user bought a product, never how often or when.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog
from neo4j import AsyncDriver, RoutingControl

logger = structlog.get_logger(__name__)

RECORD_PURCHASES = """
MERGE (u:User {id: $user_id})
ON CREATE SET u.name = $user_name
WITH u
UNWIND $items AS item
MERGE (p:Product {id: item.id})
ON CREATE SET p.title = item.title
MERGE (u)-[:PURCHASED]->(p)
"""

RECOMMENDATIONS = """
MATCH (p1:Product {id: $product_id})<-[:PURCHASED]-(u:User)-[:PURCHASED]->(p2:Product)
WHERE p1 <> p2
RETURN p2.id AS id, p2.title AS title, COUNT(u) AS frequency
ORDER BY frequency DESC, id
LIMIT $limit
"""

PURCHASE_EDGES = """
MATCH (u:User)-[:PURCHASED]->(p:Product)
RETURN u.id AS user_id, p.id AS product_id
"""


class PurchaseGraph:
    """
    Purchase relationships and co-purchase recommendations.

    Example:
        graph = PurchaseGraph(driver, database="neo4j")
        await graph.record_purchases("user-A", [{"id": "prod_1", "title": "DDIA"}])
        recs = await graph.recommendations("prod_1")
    """

    def __init__(self, driver: AsyncDriver, database: str = "neo4j"):
        self.driver = driver
        self.database = database

    async def _read(self, query: str, **params: Any) -> List[Dict[str, Any]]:
        records, _, _ = await self.driver.execute_query(
            query,
            parameters_=params,
            database_=self.database,
            routing_=RoutingControl.READ,
        )
        return [record.data() for record in records]

    async def _write(self, query: str, **params: Any) -> None:
        await self.driver.execute_query(
            query,
            parameters_=params,
            database_=self.database,
            routing_=RoutingControl.WRITE,
        )

    async def record_purchases(
        self,
        user_id: str,
        items: Iterable[Dict[str, Any]],
        user_name: Optional[str] = None,
    ) -> int:
        """
        MERGE one PURCHASED edge per product.

        Args:
            user_id: Purchasing user
            items: Dicts with ``id`` and optional ``title``
            user_name: Stored on the user node only when it is created

        Returns:
            Number of products in the purchase
        """
        payload = [{"id": item["id"], "title": item.get("title")} for item in items]
        if not payload:
            return 0
        await self._write(
            RECORD_PURCHASES,
            user_id=user_id,
            user_name=user_name,
            items=payload,
        )
        logger.info("Purchases recorded", user_id=user_id, products=len(payload))
        return len(payload)

    async def recommendations(self, product_id: str, limit: int = 3) -> List[Dict[str, Any]]:
        """Products most often bought together with ``product_id``."""
        rows = await self._read(RECOMMENDATIONS, product_id=product_id, limit=limit)
        return [{"id": row["id"], "title": row["title"]} for row in rows]

    async def purchase_edges(self) -> List[Tuple[str, str]]:
        """Every PURCHASED edge as a (user id, product id) pair."""
        rows = await self._read(PURCHASE_EDGES)
        return [(row["user_id"], row["product_id"]) for row in rows]

    async def nodes(self) -> List[Dict[str, Any]]:
        """Properties of every node, for the admin inspector."""
        records, _, _ = await self.driver.execute_query(
            "MATCH (n) RETURN n",
            database_=self.database,
            routing_=RoutingControl.READ,
        )
        return [dict(record["n"]) for record in records]

    async def reset(
        self,
        products: Iterable[Dict[str, Any]],
        users: Iterable[Dict[str, Any]],
        purchases: Iterable[Tuple[str, str]],
    ) -> None:
        """
        Wipe the graph and load sample nodes and purchase edges.

        Used by the seeding script only.
        """
        await self._write("MATCH (n) DETACH DELETE n")
        await self._write("CREATE CONSTRAINT user_id IF NOT EXISTS FOR (u:User) REQUIRE u.id IS UNIQUE")
        await self._write("CREATE CONSTRAINT product_id IF NOT EXISTS FOR (p:Product) REQUIRE p.id IS UNIQUE")
        await self._write(
            "UNWIND $products AS product CREATE (:Product {id: product.id, title: product.title})",
            products=[{"id": p["id"], "title": p.get("title")} for p in products],
        )
        await self._write(
            "UNWIND $users AS user CREATE (:User {id: user.id, name: user.name})",
            users=[{"id": u["id"], "name": u.get("name")} for u in users],
        )
        await self._write(
            """
            UNWIND $edges AS edge
            MATCH (u:User {id: edge.user_id}), (p:Product {id: edge.product_id})
            MERGE (u)-[:PURCHASED]->(p)
            """,
            edges=[{"user_id": u, "product_id": p} for u, p in purchases],
        )
        logger.info("Graph reset")
