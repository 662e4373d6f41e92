"""
Test Suite Configuration

Warehouse and user tests run against in-memory SQLite. The other stores are
replaced by in-memory fakes exposing the same methods as the adapters.
"""
import fnmatch
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import polars as pl
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from polyglot_shelf.config.settings import WarehouseSettings
from polyglot_shelf.database.connection import create_session_factory
from polyglot_shelf.database.models import Base
from polyglot_shelf.serving.cache import CacheManager
from polyglot_shelf.stores.carts import CartStore
from polyglot_shelf.stores.products import ProductCatalog
from polyglot_shelf.stores.registry import Stores
from polyglot_shelf.stores.users import UserRepository
from polyglot_shelf.warehouse.analytics import WarehouseAnalytics
from polyglot_shelf.warehouse.loader import WarehouseLoader


# =============================================================================
# FAKES
# =============================================================================

class FakeRedis:
    """Subset of the redis.asyncio client used by carts and the cache"""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value
        return True

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def incr(self, key):
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def scan_iter(self, match="*"):
        for key in list(self.data):
            if fnmatch.fnmatch(key, match):
                yield key

    async def ping(self):
        return True


class FakeCursor:
    def __init__(self, documents):
        self.documents = documents

    async def to_list(self, length=None):
        return list(self.documents)


class FakeCollection:
    """Subset of pymongo's AsyncCollection used by the product catalog"""

    def __init__(self, documents=None):
        self.documents: List[Dict[str, Any]] = [dict(d) for d in documents or []]

    def find(self, query):
        return FakeCursor(self.documents)

    async def find_one(self, query):
        return next((d for d in self.documents if d["_id"] == query["_id"]), None)

    async def delete_many(self, query):
        self.documents = []

    async def insert_many(self, documents):
        self.documents.extend(dict(d) for d in documents)


class FakeGraph:
    """In-memory purchase graph with MERGE semantics"""

    def __init__(self, edges: Optional[List[Tuple[str, str]]] = None):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.products: Dict[str, Dict[str, Any]] = {}
        self.edges: List[Tuple[str, str]] = list(edges or [])

    async def record_purchases(self, user_id, items, user_name=None):
        self.users.setdefault(user_id, {"id": user_id, "name": user_name})
        items = list(items)
        for item in items:
            self.products.setdefault(item["id"], {"id": item["id"], "title": item.get("title")})
            if (user_id, item["id"]) not in self.edges:
                self.edges.append((user_id, item["id"]))
        return len(items)

    async def recommendations(self, product_id, limit=3):
        buyers = {u for u, p in self.edges if p == product_id}
        counts: Dict[str, int] = defaultdict(int)
        for u, p in self.edges:
            if u in buyers and p != product_id:
                counts[p] += 1
        ranked = sorted(counts, key=lambda p: (-counts[p], p))[:limit]
        return [{"id": p, "title": self.products.get(p, {}).get("title")} for p in ranked]

    async def purchase_edges(self):
        return list(self.edges)

    async def nodes(self):
        return list(self.users.values()) + list(self.products.values())


class FakeReviews:
    """In-memory review partitions, newest first"""

    def __init__(self):
        self.rows: List[Dict[str, Any]] = []

    async def list_for_product(self, product_id):
        rows = [r for r in self.rows if r["product_id"] == product_id]
        return sorted(rows, key=lambda r: r["created_at"], reverse=True)

    async def add(self, product_id, user_name, text):
        self.rows.append({
            "product_id": product_id,
            "review_id": f"r{len(self.rows) + 1}",
            "user_name": user_name,
            "text": text,
            "created_at": datetime.now(timezone.utc).isoformat(),
        })

    async def list_all(self):
        return list(self.rows)


class FailingSource:
    """Store adapter whose every read fails"""

    async def documents(self):
        raise ConnectionError("connection refused")

    async def purchase_edges(self):
        raise ConnectionError("connection refused")


# =============================================================================
# SAMPLE DATA
# =============================================================================

SAMPLE_PRODUCTS = [
    {"_id": "prod_1", "title": "Designing Data-Intensive Applications", "author": "Martin Kleppmann", "price": 45.99, "imageUrl": "https://placehold.co/1"},
    {"_id": "prod_2", "title": "Building Microservices", "author": "Sam Newman", "price": 39.99, "imageUrl": "https://placehold.co/2", "series": {"name": "O'Reilly Architecture", "edition": 2}},
    {"_id": "prod_3", "title": "Fundamentals of Data Engineering", "author": "Joe Reis & Matt Housley", "price": 55.00, "imageUrl": "https://placehold.co/3"},
    {"_id": "prod_4", "title": "Database Internals", "author": "Alex Petrov", "price": 49.50, "imageUrl": "https://placehold.co/4"},
]

SAMPLE_USERS = [
    {"id": "user-A", "name": "Alice"},
    {"id": "user-B", "name": "Bob"},
    {"id": "user-C", "name": "Carol"},
]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def warehouse_settings() -> WarehouseSettings:
    """Warehouse settings with a fixed purchase date anchor"""
    return WarehouseSettings(
        unresolved_edge_policy="skip",
        purchase_date_anchor=date(2025, 1, 31),
        purchase_date_window_days=30,
    )


@pytest.fixture
async def test_engine():
    """In-memory SQLite engine shared by every connection of one test"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def user_repository(test_engine) -> UserRepository:
    return UserRepository(test_engine, create_session_factory(test_engine))


@pytest.fixture
async def seeded_users(user_repository) -> UserRepository:
    """User repository holding the three sample users"""
    for user in SAMPLE_USERS:
        await user_repository.find_or_create(user["id"], user["name"])
    return user_repository


@pytest.fixture
def product_catalog() -> ProductCatalog:
    return ProductCatalog(FakeCollection(SAMPLE_PRODUCTS))


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def fake_graph() -> FakeGraph:
    return FakeGraph()


@pytest.fixture
def stores(test_engine, user_repository, product_catalog, fake_redis, fake_graph, warehouse_settings) -> Stores:
    """Store container wired the way build_stores wires it"""
    analytics_cache = CacheManager(fake_redis, "analytics", default_ttl=600)

    async def invalidate_analytics(result):
        await analytics_cache.invalidate_all()

    return Stores(
        engine=test_engine,
        users=user_repository,
        products=product_catalog,
        carts=CartStore(fake_redis, ttl=3600),
        reviews=FakeReviews(),
        graph=fake_graph,
        warehouse=WarehouseLoader(
            test_engine,
            product_catalog,
            fake_graph,
            settings=warehouse_settings,
            after_commit=invalidate_analytics,
        ),
        analytics=WarehouseAnalytics(test_engine),
        analytics_cache=analytics_cache,
    )


@pytest.fixture
async def client(stores):
    """HTTP client against an app using the test store container"""
    from polyglot_shelf.main import create_app

    app = create_app(stores=stores)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def sample_users_df() -> pl.DataFrame:
    return pl.DataFrame(
        {"user_id": ["user-A", "user-B", "user-C"], "name": ["Alice", "Bob", "Carol"]},
        schema={"user_id": pl.Utf8, "name": pl.Utf8},
    )


@pytest.fixture
def sample_products_df() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "product_id": ["prod_1", "prod_2", "prod_3", "prod_4"],
            "title": ["DDIA", "Building Microservices", "FDE", "Database Internals"],
            "author": ["Kleppmann", "Newman", "Reis", "Petrov"],
            "price": [45.99, 39.99, 55.00, 49.50],
        },
        schema={"product_id": pl.Utf8, "title": pl.Utf8, "author": pl.Utf8, "price": pl.Float64},
    )
