"""
Integration Tests - HTTP API

Exercises every route through the ASGI app with the test store container.
"""
import asyncio
import json

from httpx import ASGITransport, AsyncClient

from polyglot_shelf.database.models import WAREHOUSE_TABLES, Base
from polyglot_shelf.stores.carts import cart_key
from polyglot_shelf.stores.registry import ensure_schemas

from tests.conftest import SAMPLE_USERS, FailingSource


class TestUsersApi:
    """Tests for /users"""

    async def test_find_or_create_registers_user(self, client):
        response = await client.post("/api/v1/users/find-or-create", json={"id": "user-1", "name": "Ada"})

        assert response.status_code == 200
        assert response.json()["id"] == "user-1"
        assert response.json()["name"] == "Ada"

    async def test_find_or_create_keeps_stored_name(self, client):
        await client.post("/api/v1/users/find-or-create", json={"id": "user-1", "name": "Ada"})
        response = await client.post("/api/v1/users/find-or-create", json={"id": "user-1", "name": "Someone Else"})

        assert response.json()["name"] == "Ada"

    async def test_find_or_create_requires_identity(self, client):
        response = await client.post("/api/v1/users/find-or-create", json={"id": "user-1"})

        assert response.status_code == 400
        assert response.json() == {"error": "User ID and name are required"}

    async def test_get_user(self, client, seeded_users):
        response = await client.get("/api/v1/users/user-B")

        assert response.status_code == 200
        assert response.json()["name"] == "Bob"

    async def test_get_missing_user(self, client):
        response = await client.get("/api/v1/users/nobody")

        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}


class TestProductsApi:
    """Tests for /products"""

    async def test_list_products(self, client):
        response = await client.get("/api/v1/products")

        assert response.status_code == 200
        products = response.json()
        assert [p["id"] for p in products] == ["prod_1", "prod_2", "prod_3", "prod_4"]
        assert set(products[1]) == {"id", "title", "author", "price", "imageUrl"}

    async def test_get_product(self, client):
        response = await client.get("/api/v1/products/prod_2")

        assert response.status_code == 200
        assert response.json()["author"] == "Sam Newman"

    async def test_get_missing_product(self, client):
        response = await client.get("/api/v1/products/prod_404")

        assert response.status_code == 404
        assert response.json() == {"error": "Product not found"}


class TestCartApi:
    """Tests for /cart"""

    async def test_empty_cart(self, client):
        response = await client.get("/api/v1/cart/user-1")

        assert response.status_code == 200
        assert response.json() == {"items": {}}

    async def test_add_increments_quantity(self, client, fake_redis):
        item = {"productId": "prod_1", "title": "DDIA", "price": 45.99}

        await client.post("/api/v1/cart/user-1", json=item)
        response = await client.post("/api/v1/cart/user-1", json=item)

        assert response.json() == {"items": {"prod_1": {"title": "DDIA", "price": 45.99, "quantity": 2}}}
        assert json.loads(fake_redis.data[cart_key("user-1")])["items"]["prod_1"]["quantity"] == 2
        assert fake_redis.ttls[cart_key("user-1")] == 3600

    async def test_add_requires_product_id(self, client):
        response = await client.post("/api/v1/cart/user-1", json={"title": "DDIA"})

        assert response.status_code == 422


class TestReviewsApi:
    """Tests for /reviews"""

    async def test_create_and_list(self, client):
        response = await client.post("/api/v1/reviews/prod_1", json={"userName": "Alex", "text": "Dense."})

        assert response.status_code == 201
        assert response.content == b""

        reviews = (await client.get("/api/v1/reviews/prod_1")).json()
        assert [(r["user_name"], r["text"]) for r in reviews] == [("Alex", "Dense.")]
        assert (await client.get("/api/v1/reviews/prod_2")).json() == []

    async def test_create_rejects_empty_text(self, client):
        response = await client.post("/api/v1/reviews/prod_1", json={"userName": "Alex", "text": ""})

        assert response.status_code == 422


class TestCheckoutApi:
    """Tests for checkout and recommendations"""

    async def test_checkout_empty_cart(self, client):
        response = await client.post("/api/v1/checkout/user-1")

        assert response.status_code == 404
        assert response.json() == {"error": "Cart not found or is empty"}

    async def test_checkout_moves_cart_into_graph(self, client, fake_graph, fake_redis):
        await client.post("/api/v1/cart/user-D", json={"productId": "prod_1", "title": "DDIA", "price": 45.99})
        await client.post("/api/v1/cart/user-D", json={"productId": "prod_3", "title": "FDE", "price": 55.0})

        response = await client.post("/api/v1/checkout/user-D", json={"name": "Dave"})

        assert response.status_code == 200
        assert response.json() == {"message": "Checkout successful"}
        assert sorted(fake_graph.edges) == [("user-D", "prod_1"), ("user-D", "prod_3")]
        assert cart_key("user-D") not in fake_redis.data
        assert (await client.get("/api/v1/users/user-D")).json()["name"] == "Dave"

    async def test_checkout_without_name_uses_id(self, client):
        await client.post("/api/v1/cart/user-E", json={"productId": "prod_2"})

        await client.post("/api/v1/checkout/user-E")

        assert (await client.get("/api/v1/users/user-E")).json()["name"] == "user-E"

    async def test_recommendations(self, client, fake_graph):
        fake_graph.edges.extend([
            ("user-A", "prod_1"), ("user-A", "prod_2"),
            ("user-B", "prod_1"), ("user-B", "prod_2"), ("user-B", "prod_3"),
        ])

        response = await client.get("/api/v1/recommendations/prod_1")

        assert response.status_code == 200
        assert [r["id"] for r in response.json()] == ["prod_2", "prod_3"]

    async def test_recommendations_limit(self, client, fake_graph):
        fake_graph.edges.extend([("user-A", "prod_1"), ("user-A", "prod_2"), ("user-A", "prod_3")])

        response = await client.get("/api/v1/recommendations/prod_1", params={"limit": 1})

        assert len(response.json()) == 1


class TestWarehouseApi:
    """Tests for the ETL trigger and analytics endpoints"""

    async def test_etl_run_and_kpis(self, client, seeded_users, fake_graph):
        fake_graph.edges.extend([("user-A", "prod_1"), ("user-B", "prod_2")])

        response = await client.post("/api/v1/etl/run")

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "ETL completed"
        assert body["result"]["facts_loaded"] == 2

        kpis = (await client.get("/api/v1/analytics/kpis")).json()
        assert kpis == {"total_revenue": 85.98, "total_sales": 2, "total_customers": 2}

    async def test_etl_failure_is_generic(self, client, stores):
        stores.warehouse.products = FailingSource()

        response = await client.post("/api/v1/etl/run")

        assert response.status_code == 500
        assert response.json() == {"error": "ETL failed"}

    async def test_rebuild_invalidates_cached_analytics(self, client, seeded_users, fake_graph, fake_redis):
        before = (await client.get("/api/v1/analytics/kpis")).json()
        assert before["total_sales"] == 0
        assert "analytics:kpis" in fake_redis.data

        fake_graph.edges.append(("user-C", "prod_4"))
        await client.post("/api/v1/etl/run")

        after = (await client.get("/api/v1/analytics/kpis")).json()
        assert after == {"total_revenue": 49.5, "total_sales": 1, "total_customers": 1}

    async def test_sales_breakdowns(self, client, seeded_users, fake_graph):
        fake_graph.edges.extend([("user-A", "prod_3"), ("user-B", "prod_3"), ("user-A", "prod_1")])
        await client.post("/api/v1/etl/run")

        by_product = (await client.get("/api/v1/analytics/sales-by-product")).json()
        assert by_product[0] == {
            "product_id": "prod_3",
            "title": "Fundamentals of Data Engineering",
            "sales": 2,
            "revenue": 110.0,
        }

        by_date = (await client.get("/api/v1/analytics/sales-by-date")).json()
        assert sum(day["sales"] for day in by_date) == 3

        top = (await client.get("/api/v1/analytics/top-customers", params={"limit": 1})).json()
        assert top == [{"user_id": "user-A", "name": "Alice", "purchases": 2}]

    async def test_read_overlapping_rebuild_is_not_cached(self, client, stores, seeded_users, fake_graph):
        """KPIs read before a rebuild commits are not served after it"""
        started, release = asyncio.Event(), asyncio.Event()

        async def slow_kpis():
            kpis = await stores.analytics.kpis()
            started.set()
            await release.wait()
            return kpis

        read = asyncio.create_task(stores.analytics_cache.get_or_set("kpis", slow_kpis))
        await started.wait()
        fake_graph.edges.extend([("user-A", "prod_1"), ("user-B", "prod_2")])
        assert (await client.post("/api/v1/etl/run")).status_code == 200
        release.set()

        assert (await read)["total_sales"] == 0
        kpis = (await client.get("/api/v1/analytics/kpis")).json()
        assert kpis == {"total_revenue": 85.98, "total_sales": 2, "total_customers": 2}

    async def test_analytics_before_schema_is_json_error(self, client, stores, test_engine):
        """Missing warehouse tables give the JSON error shape, and startup creates them"""
        async with test_engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all, tables=WAREHOUSE_TABLES)

        for path in ("kpis", "sales-by-product", "sales-by-date", "top-customers"):
            response = await client.get(f"/api/v1/analytics/{path}")
            assert response.status_code == 500
            assert response.json() == {"error": "Internal server error"}

        await ensure_schemas(stores)

        response = await client.get("/api/v1/analytics/kpis")
        assert response.status_code == 200
        assert response.json() == {"total_revenue": 0.0, "total_sales": 0, "total_customers": 0}

    async def test_top_customers_limit_bounds(self, client):
        response = await client.get("/api/v1/analytics/top-customers", params={"limit": 0})

        assert response.status_code == 422


class TestAdminApi:
    """Tests for the data inspector dumps"""

    async def test_postgres_dump(self, client, seeded_users):
        users = (await client.get("/api/v1/admin/postgres")).json()

        assert [u["id"] for u in users] == [u["id"] for u in SAMPLE_USERS]

    async def test_mongodb_dump_keeps_extension_fields(self, client):
        documents = (await client.get("/api/v1/admin/mongodb")).json()

        assert documents[1]["series"] == {"name": "O'Reilly Architecture", "edition": 2}

    async def test_redis_dump(self, client):
        assert (await client.get("/api/v1/admin/redis/user-1")).json() == {}

        await client.post("/api/v1/cart/user-1", json={"productId": "prod_1"})

        assert "prod_1" in (await client.get("/api/v1/admin/redis/user-1")).json()["items"]

    async def test_neo4j_dump(self, client, fake_graph):
        await fake_graph.record_purchases("user-A", [{"id": "prod_1", "title": "DDIA"}], user_name="Alice")

        nodes = (await client.get("/api/v1/admin/neo4j")).json()

        assert {n["id"] for n in nodes} == {"user-A", "prod_1"}


class TestHealthApi:
    """Tests for health endpoints"""

    async def test_liveness(self, client):
        response = await client.get("/api/v1/health/live")

        assert response.json() == {"status": "alive"}

    async def test_readiness(self, client):
        response = await client.get("/api/v1/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready"}

    async def test_health_reports_each_store(self, client):
        response = await client.get("/api/v1/health")

        body = response.json()
        assert response.status_code == 200
        assert body["checks"]["postgres"]["status"] == "healthy"
        assert set(body["checks"]) == {"postgres", "mongodb", "redis", "cassandra", "neo4j"}
        assert body["status"] in ("healthy", "degraded")

    async def test_metrics_after_rebuild(self, client, seeded_users):
        await client.post("/api/v1/etl/run")

        response = await client.get("/api/v1/metrics")

        assert response.status_code == 200
        assert 'polyglot_shelf_warehouse_runs_total{status="success"}' in response.text
        assert 'polyglot_shelf_warehouse_rows{table="dim_users"} 3.0' in response.text

    async def test_info(self, client):
        body = (await client.get("/api/v1/info")).json()

        assert body["name"] == "polyglot-shelf"


class TestStartup:
    """Tests for the application lifespan"""

    async def test_startup_creates_missing_tables(self, monkeypatch, stores, test_engine):
        """A database holding no tables at all is usable once the app has started"""
        from polyglot_shelf import main

        async with test_engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

        async def open_test_stores(settings):
            return stores

        monkeypatch.setattr(main, "open_stores", open_test_stores)
        monkeypatch.setattr(main, "configure_logging", lambda: None)
        app = main.create_app()

        async with app.router.lifespan_context(app):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                user = await ac.post("/api/v1/users/find-or-create", json={"id": "user-1", "name": "Ada"})
                kpis = await ac.get("/api/v1/analytics/kpis")

        assert user.status_code == 200
        assert kpis.json() == {"total_revenue": 0.0, "total_sales": 0, "total_customers": 0}
