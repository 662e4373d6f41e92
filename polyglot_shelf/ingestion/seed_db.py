"""
Seed every store with sample data.

Usage:
    python -m polyglot_shelf.ingestion.seed_db
    python -m polyglot_shelf.ingestion.seed_db --fake-users 50
"""

import argparse
import asyncio
import random
from typing import Dict, List, Tuple

import structlog
from faker import Faker

from polyglot_shelf.config import get_settings
from polyglot_shelf.config.logging import configure_logging
from polyglot_shelf.stores.registry import Stores, close_stores, open_stores

logger = structlog.get_logger(__name__)

SAMPLE_PRODUCTS = [
    {
        "_id": "prod_1",
        "title": "Designing Data-Intensive Applications",
        "author": "Martin Kleppmann",
        "price": 45.99,
        "imageUrl": "https://placehold.co/600x400/3273dc/ffffff?text=DDI",
    },
    {
        "_id": "prod_2",
        "title": "Building Microservices",
        "author": "Sam Newman",
        "price": 39.99,
        "imageUrl": "https://placehold.co/600x400/23d160/ffffff?text=Microservices",
        "series": {"name": "O'Reilly Architecture", "edition": 2},
    },
    {
        "_id": "prod_3",
        "title": "Fundamentals of Data Engineering",
        "author": "Joe Reis & Matt Housley",
        "price": 55.00,
        "imageUrl": "https://placehold.co/600x400/ffdd57/000000?text=FDE",
    },
]

DEMO_USER = {"id": "user-123-demo", "name": "Demo User"}

GRAPH_USERS = [
    {"id": "user-A", "name": "Alice"},
    {"id": "user-B", "name": "Bob"},
]

SAMPLE_PURCHASES = [
    ("user-A", "prod_1"),
    ("user-A", "prod_2"),
    ("user-B", "prod_2"),
    ("user-B", "prod_3"),
]

SAMPLE_REVIEWS = [
    {"product_id": "prod_1", "user_name": "Alex", "text": "A must-read for any software engineer. Incredibly dense and informative."},
    {"product_id": "prod_1", "user_name": "Maria", "text": "Changed the way I think about systems."},
    {"product_id": "prod_2", "user_name": "Chris", "text": "Great practical advice for moving to a microservices architecture."},
]


def generate_fake_customers(
    n: int,
    product_ids: List[str],
    seed: int = 42,
) -> Tuple[List[Dict[str, str]], List[Tuple[str, str]]]:
    """
    Generate ``n`` users and a few purchases each.

    Returns:
        (users, purchases) ready for the relational and graph stores
    """
    fake = Faker()
    Faker.seed(seed)
    rng = random.Random(seed)

    users = [{"id": f"user-{fake.uuid4()[:8]}", "name": fake.name()} for _ in range(n)]
    purchases = [
        (user["id"], product_id)
        for user in users
        for product_id in rng.sample(product_ids, k=rng.randint(1, len(product_ids)))
    ]
    return users, purchases


async def seed_postgres(stores: Stores, users: List[Dict[str, str]]) -> None:
    logger.info("Seeding PostgreSQL...")
    count = await stores.users.reset(users)
    logger.info("PostgreSQL seeding complete", users=count)


async def seed_mongo(stores: Stores) -> None:
    logger.info("Seeding MongoDB...")
    count = await stores.products.replace_all(SAMPLE_PRODUCTS)
    logger.info("MongoDB seeding complete", products=count)


async def seed_redis(stores: Stores) -> None:
    logger.info("Seeding Redis...")
    await stores.carts.clear(DEMO_USER["id"])
    logger.info("Redis seeding complete: cleared stale cart data")


async def seed_cassandra(stores: Stores) -> None:
    logger.info("Seeding Cassandra...")
    await stores.reviews.ensure_schema()
    await stores.reviews.truncate()
    count = await stores.reviews.insert_many(SAMPLE_REVIEWS)
    logger.info("Cassandra seeding complete", reviews=count)


async def seed_neo4j(
    stores: Stores,
    users: List[Dict[str, str]],
    purchases: List[Tuple[str, str]],
) -> None:
    logger.info("Seeding Neo4j...")
    products = [{"id": p["_id"], "title": p["title"]} for p in SAMPLE_PRODUCTS]
    await stores.graph.reset(products, users, purchases)
    logger.info("Neo4j seeding complete", users=len(users), purchases=len(purchases))


async def main(fake_users: int = 0) -> None:
    configure_logging()
    settings = get_settings()

    graph_users = list(GRAPH_USERS)
    purchases = list(SAMPLE_PURCHASES)
    if fake_users:
        extra_users, extra_purchases = generate_fake_customers(
            fake_users, [p["_id"] for p in SAMPLE_PRODUCTS]
        )
        graph_users.extend(extra_users)
        purchases.extend(extra_purchases)

    stores = await open_stores(settings)
    try:
        # Graph users are registered relationally too, so the warehouse
        # can resolve their purchases
        await seed_postgres(stores, [DEMO_USER] + graph_users)
        await seed_mongo(stores)
        await seed_redis(stores)
        await seed_cassandra(stores)
        await seed_neo4j(stores, graph_users, purchases)
        logger.info("All databases have been successfully seeded")
    except Exception as e:
        logger.error("Seeding failed", error=str(e), error_type=type(e).__name__)
        raise
    finally:
        await close_stores(stores)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed Polyglot Shelf stores with sample data")
    parser.add_argument(
        "--fake-users",
        type=int,
        default=0,
        help="Additional Faker-generated users with random purchases",
    )
    args = parser.parse_args()
    asyncio.run(main(fake_users=args.fake_users))
