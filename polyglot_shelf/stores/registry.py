"""
Store Container

Builds one client per backing store from settings and hands them to the
components that need them. The API keeps a single container on
``app.state.stores``; the seeding script and the scheduled flow build their
own.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import structlog
from neo4j import AsyncGraphDatabase
from pymongo import AsyncMongoClient
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine

from polyglot_shelf.config.settings import Settings, get_settings
from polyglot_shelf.database.connection import (
    check_database_health,
    create_engine,
    create_session_factory,
    verify_connection,
)
from polyglot_shelf.serving.cache import CacheManager
from polyglot_shelf.warehouse.analytics import WarehouseAnalytics
from polyglot_shelf.warehouse.loader import LoadResult, WarehouseLoader
from .carts import CartStore
from .graph import PurchaseGraph
from .products import ProductCatalog
from .reviews import ReviewStore
from .users import UserRepository

logger = structlog.get_logger(__name__)


@dataclass
class Stores:
    """
    Every store adapter plus the warehouse components built on them.

    Raw driver handles are kept so they can be closed and health-checked.
    """
    engine: AsyncEngine
    users: UserRepository
    products: ProductCatalog
    carts: CartStore
    reviews: ReviewStore
    graph: PurchaseGraph
    warehouse: WarehouseLoader
    analytics: WarehouseAnalytics
    analytics_cache: CacheManager
    clients: Dict[str, Any] = field(default_factory=dict)


def build_stores(
    engine: AsyncEngine,
    redis: Redis,
    products_collection,
    cassandra_session,
    neo4j_driver,
    settings: Optional[Settings] = None,
    clients: Optional[Dict[str, Any]] = None,
) -> Stores:
    """Wire store adapters around already-open driver handles."""
    settings = settings or get_settings()

    products = ProductCatalog(products_collection)
    graph = PurchaseGraph(neo4j_driver, database=settings.neo4j.database)
    analytics_cache = CacheManager(
        redis, "analytics", default_ttl=settings.warehouse.analytics_cache_ttl
    )

    async def invalidate_analytics(result: LoadResult) -> None:
        removed = await analytics_cache.invalidate_all()
        logger.debug("Analytics cache invalidated", run_id=result.run_id, keys=removed)

    return Stores(
        engine=engine,
        users=UserRepository(engine, create_session_factory(engine)),
        products=products,
        carts=CartStore(redis, ttl=settings.redis.cart_ttl_seconds),
        reviews=ReviewStore(
            cassandra_session,
            keyspace=settings.cassandra.keyspace,
            replication_factor=settings.cassandra.replication_factor,
        ),
        graph=graph,
        warehouse=WarehouseLoader(
            engine,
            products,
            graph,
            settings=settings.warehouse,
            after_commit=invalidate_analytics,
        ),
        analytics=WarehouseAnalytics(engine),
        analytics_cache=analytics_cache,
        clients=clients or {},
    )


def connect_cassandra(settings: Settings):
    """Open a Cassandra cluster session returning rows as dicts."""
    from cassandra.auth import PlainTextAuthProvider
    from cassandra.cluster import Cluster
    from cassandra.policies import DCAwareRoundRobinPolicy
    from cassandra.query import dict_factory

    auth_provider = None
    if settings.cassandra.username and settings.cassandra.password:
        auth_provider = PlainTextAuthProvider(
            username=settings.cassandra.username,
            password=settings.cassandra.password.get_secret_value(),
        )

    cluster = Cluster(
        contact_points=settings.cassandra.contact_points,
        port=settings.cassandra.port,
        load_balancing_policy=DCAwareRoundRobinPolicy(local_dc=settings.cassandra.local_datacenter),
        auth_provider=auth_provider,
    )
    # No keyspace: it may not exist until the schema is ensured
    session = cluster.connect()
    session.row_factory = dict_factory
    return cluster, session


async def open_stores(settings: Optional[Settings] = None) -> Stores:
    """
    Connect to all five stores.

    Raises:
        Exception: The first driver error; clients opened so far are closed
    """
    settings = settings or get_settings()
    clients: Dict[str, Any] = {}

    try:
        engine = create_engine(settings.database)
        clients["engine"] = engine
        await verify_connection(engine)

        mongo = AsyncMongoClient(
            settings.mongo.url,
            serverSelectionTimeoutMS=settings.mongo.server_selection_timeout_ms,
        )
        clients["mongo"] = mongo
        await mongo.admin.command("ping")
        logger.info("MongoDB connection established")

        redis = Redis.from_url(
            settings.redis.get_url(),
            max_connections=settings.redis.max_connections,
            socket_timeout=settings.redis.socket_timeout,
            decode_responses=settings.redis.decode_responses,
        )
        clients["redis"] = redis
        await redis.ping()
        logger.info("Redis connection established")

        cluster, session = await asyncio.to_thread(connect_cassandra, settings)
        clients["cassandra"] = cluster
        logger.info("Cassandra connection established")

        driver = AsyncGraphDatabase.driver(
            settings.neo4j.uri,
            auth=(settings.neo4j.user, settings.neo4j.password.get_secret_value()),
        )
        clients["neo4j"] = driver
        await driver.verify_connectivity()
        logger.info("Neo4j connection established")
    except Exception as e:
        logger.error("Failed to connect to one or more stores", error=str(e))
        await close_clients(clients)
        raise

    collection = mongo[settings.mongo.database][settings.mongo.products_collection]
    return build_stores(engine, redis, collection, session, driver, settings=settings, clients=clients)


async def ensure_schemas(stores: Stores) -> None:
    """
    Create the users table and the warehouse tables where missing.

    Both run under the warehouse advisory lock, so API workers starting
    together do not race on CREATE TABLE.
    """
    await stores.users.ensure_schema(lock_key=stores.warehouse.settings.advisory_lock_key)
    await stores.warehouse.ensure_schema()
    logger.info("Relational schema ready")


async def close_clients(clients: Dict[str, Any]) -> None:
    """Close every opened driver handle, logging (not raising) close errors."""
    closers = {
        "engine": lambda c: c.dispose(),
        "mongo": lambda c: c.close(),
        "redis": lambda c: c.aclose(),
        "neo4j": lambda c: c.close(),
        "cassandra": lambda c: asyncio.to_thread(c.shutdown),
    }
    for name, client in clients.items():
        try:
            await closers[name](client)
        except Exception as e:
            logger.warning("Error closing client", client=name, error=str(e))
    logger.info("Store clients closed", clients=list(clients))


async def close_stores(stores: Stores) -> None:
    await close_clients(stores.clients)


async def check_stores_health(stores: Stores) -> Dict[str, Dict[str, Any]]:
    """Ping every store; a failing store is reported, not raised."""
    checks: Dict[str, Dict[str, Any]] = {"postgres": await check_database_health(stores.engine)}

    async def probe(name: str, coro_factory) -> None:
        try:
            await coro_factory()
            checks[name] = {"status": "healthy"}
        except Exception as e:
            checks[name] = {"status": "unhealthy", "error": str(e)}

    await probe("mongodb", lambda: stores.products.collection.database.client.admin.command("ping"))
    await probe("redis", lambda: stores.carts.client.ping())
    await probe("cassandra", lambda: asyncio.to_thread(stores.reviews.session.execute, "SELECT now() FROM system.local"))
    await probe("neo4j", lambda: stores.graph.driver.verify_connectivity())
    return checks
