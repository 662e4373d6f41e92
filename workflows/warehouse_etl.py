"""
Prefect Workflow Orchestration - Warehouse ETL

Periodically copies operational data into the analytics warehouse:
- Scheduled execution on a fixed interval
- One full rebuild per run, no retries
- Analytics cache invalidated after each successful commit
"""

from datetime import timedelta

from prefect import flow, task, get_run_logger

from polyglot_shelf.config import get_settings
from polyglot_shelf.config.logging import configure_logging
from polyglot_shelf.stores.registry import close_stores, open_stores

settings = get_settings()


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="rebuild_warehouse",
    description="Rebuild the star schema from PostgreSQL, MongoDB and Neo4j",
)
async def rebuild_warehouse() -> dict:
    """Run one warehouse load against freshly opened store connections"""
    logger = get_run_logger()

    stores = await open_stores(settings)
    try:
        result = await stores.warehouse.run()
    finally:
        await close_stores(stores)

    logger.info(
        f"Warehouse rebuilt: {result.users_loaded} users, "
        f"{result.products_loaded} products, {result.facts_loaded} facts "
        f"({result.edges_skipped} edges skipped) in {result.duration_seconds:.2f}s"
    )
    return result.model_dump(mode="json")


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="warehouse_etl",
    description="Full rebuild of the analytics warehouse",
)
async def warehouse_etl() -> dict:
    """
    Warehouse ETL pipeline.

    A failed run leaves the previous warehouse contents in place and
    raises; the next scheduled run starts from scratch.
    """
    logger = get_run_logger()
    logger.info("Starting warehouse ETL")

    try:
        result = await rebuild_warehouse()
    except Exception as e:
        logger.error(f"Warehouse ETL failed: {e}")
        raise

    return {"status": "success", "result": result}


# =============================================================================
# DEPLOYMENT CONFIGURATION
# =============================================================================

if __name__ == "__main__":
    configure_logging()
    warehouse_etl.serve(
        name="warehouse-etl",
        interval=timedelta(minutes=settings.warehouse.schedule_interval_minutes),
    )
