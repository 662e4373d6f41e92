"""
Review Store (Cassandra)

Reviews are denormalized into one partition per product, clustered by a
time-based UUID so the newest reviews come first:

    reviews (product_id text, review_id timeuuid, user_name text,
             text text, created_at timestamp,
             PRIMARY KEY (product_id, review_id))

The DataStax driver is blocking, so every call runs in a worker thread.
"""

import asyncio
from typing import Any, Dict, Iterable, List

import structlog

logger = structlog.get_logger(__name__)


def review_to_dict(row: Dict[str, Any]) -> Dict[str, Any]:
    review = dict(row)
    if review.get("review_id") is not None:
        review["review_id"] = str(review["review_id"])
    if review.get("created_at") is not None:
        review["created_at"] = review["created_at"].isoformat()
    return review


class ReviewStore:
    """
    Product reviews in a Cassandra keyspace.

    The session must use ``dict_factory`` as its row factory.
    """

    def __init__(self, session, keyspace: str, replication_factor: int = 1):
        self.session = session
        self.keyspace = keyspace
        self.replication_factor = replication_factor
        self._prepared: Dict[str, Any] = {}

    @property
    def table(self) -> str:
        return f"{self.keyspace}.reviews"

    async def _execute(self, query: str, params: Iterable[Any] = (), prepare: bool = False):
        def run():
            statement = query
            if prepare:
                if query not in self._prepared:
                    self._prepared[query] = self.session.prepare(query)
                statement = self._prepared[query]
            return list(self.session.execute(statement, tuple(params)))

        return await asyncio.to_thread(run)

    async def ensure_schema(self) -> None:
        """Create the keyspace and reviews table if they do not exist."""
        await self._execute(
            f"CREATE KEYSPACE IF NOT EXISTS {self.keyspace} "
            f"WITH replication = {{'class': 'SimpleStrategy', 'replication_factor': {self.replication_factor}}}"
        )
        await self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                product_id text,
                review_id timeuuid,
                user_name text,
                text text,
                created_at timestamp,
                PRIMARY KEY (product_id, review_id)
            ) WITH CLUSTERING ORDER BY (review_id DESC)
            """
        )
        logger.info("Cassandra schema ensured", keyspace=self.keyspace)

    async def list_for_product(self, product_id: str) -> List[Dict[str, Any]]:
        rows = await self._execute(
            f"SELECT * FROM {self.table} WHERE product_id = ?",
            [product_id],
            prepare=True,
        )
        return [review_to_dict(row) for row in rows]

    async def add(self, product_id: str, user_name: str, text: str) -> None:
        await self._execute(
            f"INSERT INTO {self.table} (product_id, review_id, user_name, text, created_at) "
            "VALUES (?, now(), ?, ?, toTimestamp(now()))",
            [product_id, user_name, text],
            prepare=True,
        )

    async def insert_many(self, reviews: Iterable[Dict[str, str]]) -> int:
        count = 0
        for review in reviews:
            await self.add(review["product_id"], review["user_name"], review["text"])
            count += 1
        return count

    async def truncate(self) -> None:
        await self._execute(f"TRUNCATE {self.table}")

    async def list_all(self) -> List[Dict[str, Any]]:
        rows = await self._execute(f"SELECT * FROM {self.table}")
        return [review_to_dict(row) for row in rows]
