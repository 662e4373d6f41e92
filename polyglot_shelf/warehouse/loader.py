"""
Warehouse Loader

Rebuilds the analytical star schema from the operational stores:

1. Open one transaction on the relational store and take the run lock
2. Ensure ``dim_users``, ``dim_products`` and ``fact_purchases`` exist
3. Extract users (relational), products (document) and purchase edges (graph)
4. Clear the three warehouse tables, resetting surrogate keys
5. Load both dimensions
6. Resolve every edge to its dimension keys and load the facts
7. Commit; any failure rolls the whole transaction back

The three extracts are independent snapshots taken one after another. A
purchase recorded between the user read and the graph read can reference a
user the snapshot does not contain; such edges are handled by the
unresolved-edge policy instead of being hidden.

Rebuilds are single-flight: an asyncio lock serializes runs inside one
process and, on PostgreSQL, ``pg_advisory_xact_lock`` serializes runs
across processes.
"""

import asyncio
import uuid
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import polars as pl
import structlog
from prometheus_client import Counter, Gauge, Histogram
from pydantic import BaseModel
from sqlalchemy import delete, insert, select, text
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from polyglot_shelf.config.settings import WarehouseSettings
from polyglot_shelf.database.connection import acquire_advisory_xact_lock
from polyglot_shelf.database.models import (
    Base,
    DimProduct,
    DimUser,
    FactPurchase,
    User,
    WAREHOUSE_TABLES,
)
from polyglot_shelf.quality.validators import (
    ValidationResult,
    create_edges_validator,
    create_products_validator,
    create_users_validator,
)
from .exceptions import ConnectivityFailure, TransactionFailure, TransformFailure, WarehouseLoadError
from .transform import (
    PRODUCT_KEY_SCHEMA,
    USER_KEY_SCHEMA,
    Snapshot,
    dimension_rows,
    edges_frame,
    keys_frame,
    products_frame,
    resolve_facts,
    users_frame,
    with_purchase_dates,
)

logger = structlog.get_logger(__name__)

CONNECTION_ERRORS = (OperationalError, InterfaceError, OSError)


# =============================================================================
# METRICS
# =============================================================================

WAREHOUSE_RUNS = Counter(
    "polyglot_shelf_warehouse_runs_total",
    "Warehouse rebuilds by outcome",
    ["status"],
)

WAREHOUSE_RUN_DURATION = Histogram(
    "polyglot_shelf_warehouse_run_seconds",
    "Duration of committed warehouse rebuilds",
    buckets=(0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120),
)

WAREHOUSE_ROWS = Gauge(
    "polyglot_shelf_warehouse_rows",
    "Rows loaded by the last committed rebuild",
    ["table"],
)

WAREHOUSE_EDGES_SKIPPED = Gauge(
    "polyglot_shelf_warehouse_edges_skipped",
    "Unresolved purchase edges skipped by the last committed rebuild",
)


class LoadResult(BaseModel):
    """Result of one successful warehouse rebuild"""
    run_id: str
    users_loaded: int
    products_loaded: int
    facts_loaded: int
    edges_skipped: int
    started_at: datetime
    completed_at: datetime
    duration_seconds: float


def _relational_error(e: Exception) -> Exception:
    # Missing tables and bad SQL are rejected statements, not a lost server
    if isinstance(e, ProgrammingError):
        return TransactionFailure(str(e))
    if isinstance(e, CONNECTION_ERRORS) or (isinstance(e, DBAPIError) and e.connection_invalidated):
        return ConnectivityFailure("postgres", str(e))
    return TransactionFailure(str(e))


class WarehouseLoader:
    """
    Full-rebuild ETL from the operational stores into the star schema.

    Args:
        engine: Async engine for the relational store (users and warehouse)
        products: Object with ``async documents()`` returning product documents
        graph: Object with ``async purchase_edges()`` returning (user, product) pairs
        settings: Warehouse settings section
        after_commit: Optional coroutine called with the result of each committed run

    Example:
        loader = WarehouseLoader(engine, catalog, graph)
        result = await loader.run()
    """

    def __init__(
        self,
        engine: AsyncEngine,
        products: Any,
        graph: Any,
        settings: Optional[WarehouseSettings] = None,
        after_commit: Optional[Callable[[LoadResult], Awaitable[Any]]] = None,
        chunk_size: int = 1000,
    ):
        self.engine = engine
        self.products = products
        self.graph = graph
        self.settings = settings or WarehouseSettings()
        self.after_commit = after_commit
        self.chunk_size = chunk_size
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def anchor_date(self) -> date:
        return self.settings.purchase_date_anchor or datetime.now(timezone.utc).date()

    async def ensure_schema(self) -> None:
        """Create the warehouse tables if they do not exist, under the run lock."""
        try:
            async with self.engine.begin() as conn:
                await self._acquire_run_lock(conn)
                await self._create_tables(conn)
        except (SQLAlchemyError, OSError) as e:
            raise _relational_error(e) from e

    async def run(self) -> LoadResult:
        """
        Rebuild the warehouse.

        Concurrent callers wait for the running rebuild to finish and then
        perform their own.

        Raises:
            ConnectivityFailure: A store was unreachable
            TransformFailure: The snapshot failed validation or edges did not resolve
            TransactionFailure: The relational store rejected the load
        """
        async with self._run_lock:
            try:
                result = await self._rebuild()
            except Exception as e:
                status = type(e).__name__ if isinstance(e, WarehouseLoadError) else "error"
                WAREHOUSE_RUNS.labels(status=status).inc()
                raise

        WAREHOUSE_RUNS.labels(status="success").inc()
        WAREHOUSE_RUN_DURATION.observe(result.duration_seconds)
        WAREHOUSE_ROWS.labels(table="dim_users").set(result.users_loaded)
        WAREHOUSE_ROWS.labels(table="dim_products").set(result.products_loaded)
        WAREHOUSE_ROWS.labels(table="fact_purchases").set(result.facts_loaded)
        WAREHOUSE_EDGES_SKIPPED.set(result.edges_skipped)
        return result

    async def _rebuild(self) -> LoadResult:
        run_id = uuid.uuid4().hex[:12]
        log = logger.bind(run_id=run_id)
        started_at = datetime.now(timezone.utc)
        log.info("Warehouse rebuild started")

        try:
            conn = await self.engine.connect()
        except (SQLAlchemyError, OSError) as e:
            raise ConnectivityFailure("postgres", str(e)) from e

        try:
            trans = await conn.begin()
            try:
                await self._acquire_run_lock(conn)
                await self._create_tables(conn)
                snapshot = await self._extract(conn)
                self._validate(snapshot)
                users, products = dimension_rows(snapshot)

                await self._clear(conn)
                user_keys, product_keys = await self._load_dimensions(conn, users, products)
                facts_loaded, skipped = await self._load_facts(conn, snapshot.edges, user_keys, product_keys, log)
            except Exception as e:
                log.error("Warehouse rebuild failed, rolling back", error=str(e), error_type=type(e).__name__)
                await self._rollback(trans, log)
                if isinstance(e, (SQLAlchemyError, OSError)):
                    raise _relational_error(e) from e
                raise

            try:
                await trans.commit()
            except (SQLAlchemyError, OSError) as e:
                log.error("Warehouse commit rejected", error=str(e))
                raise TransactionFailure(str(e)) from e
        finally:
            await conn.close()

        completed_at = datetime.now(timezone.utc)
        result = LoadResult(
            run_id=run_id,
            users_loaded=users.height,
            products_loaded=products.height,
            facts_loaded=facts_loaded,
            edges_skipped=skipped,
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=round((completed_at - started_at).total_seconds(), 3),
        )
        log.info(
            "Warehouse rebuild committed",
            users=result.users_loaded,
            products=result.products_loaded,
            facts=result.facts_loaded,
            skipped=result.edges_skipped,
            duration_seconds=result.duration_seconds,
        )

        if self.after_commit is not None:
            try:
                await self.after_commit(result)
            except Exception as e:
                log.warning("Post-commit hook failed", error=str(e))

        return result

    async def _rollback(self, trans, log) -> None:
        try:
            await trans.rollback()
        except (SQLAlchemyError, OSError) as e:
            # The connection is gone; the server discards the transaction
            log.warning("Rollback failed", error=str(e))

    async def _acquire_run_lock(self, conn: AsyncConnection) -> None:
        await acquire_advisory_xact_lock(conn, self.settings.advisory_lock_key)

    async def _create_tables(self, conn: AsyncConnection) -> None:
        await conn.run_sync(Base.metadata.create_all, tables=WAREHOUSE_TABLES, checkfirst=True)

    # -------------------------------------------------------------------------
    # Extract
    # -------------------------------------------------------------------------

    async def _extract(self, conn: AsyncConnection) -> Snapshot:
        try:
            result = await conn.execute(select(User.id, User.name))
            users = users_frame(row._mapping for row in result)
        except (SQLAlchemyError, OSError) as e:
            raise _relational_error(e) from e

        try:
            products = products_frame(await self.products.documents())
        except Exception as e:
            raise ConnectivityFailure("mongodb", str(e)) from e

        try:
            edges = edges_frame(await self.graph.purchase_edges())
        except Exception as e:
            raise ConnectivityFailure("neo4j", str(e)) from e

        logger.debug(
            "Snapshot extracted",
            users=users.height,
            products=products.height,
            edges=edges.height,
        )
        return Snapshot(users=users, products=products, edges=edges)

    def _validate(self, snapshot: Snapshot) -> None:
        results: List[ValidationResult] = [
            create_users_validator().validate(snapshot.users),
            create_products_validator().validate(snapshot.products),
            create_edges_validator(snapshot.users, snapshot.products).validate(snapshot.edges),
        ]
        errors = [check for result in results for check in result.errors]
        if errors:
            raise TransformFailure("; ".join(check.message for check in errors))

    # -------------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------------

    async def _clear(self, conn: AsyncConnection) -> None:
        if conn.dialect.name == "postgresql":
            await conn.execute(text(
                "TRUNCATE TABLE fact_purchases, dim_products, dim_users RESTART IDENTITY CASCADE"
            ))
        else:
            # Facts first; SQLite hands out rowids from max(rowid) + 1
            for table in (FactPurchase.__table__, DimProduct.__table__, DimUser.__table__):
                await conn.execute(delete(table))

    async def _insert_chunked(self, conn: AsyncConnection, table, records: List[Dict[str, Any]]) -> None:
        for i in range(0, len(records), self.chunk_size):
            await conn.execute(insert(table), records[i:i + self.chunk_size])

    async def _load_dimensions(
        self,
        conn: AsyncConnection,
        users: pl.DataFrame,
        products: pl.DataFrame,
    ) -> Tuple[pl.DataFrame, pl.DataFrame]:
        await self._insert_chunked(conn, DimUser.__table__, users.to_dicts())
        await self._insert_chunked(conn, DimProduct.__table__, products.to_dicts())

        user_keys = keys_frame(
            (row._mapping for row in await conn.execute(select(DimUser.user_key, DimUser.user_id))),
            USER_KEY_SCHEMA,
        )
        product_keys = keys_frame(
            (row._mapping for row in await conn.execute(select(DimProduct.product_key, DimProduct.product_id))),
            PRODUCT_KEY_SCHEMA,
        )
        return user_keys, product_keys

    async def _load_facts(
        self,
        conn: AsyncConnection,
        edges: pl.DataFrame,
        user_keys: pl.DataFrame,
        product_keys: pl.DataFrame,
        log,
    ) -> Tuple[int, int]:
        resolution = resolve_facts(edges, user_keys, product_keys)
        skipped = resolution.unresolved.height

        if skipped:
            sample = resolution.unresolved.head(5).to_dicts()
            if self.settings.unresolved_edge_policy == "fail":
                raise TransformFailure(
                    f"{skipped} purchase edges reference users or products missing from the snapshot: {sample}"
                )
            log.warning("Skipping unresolved purchase edges", count=skipped, sample=sample)

        facts = with_purchase_dates(
            resolution.facts,
            anchor=self.anchor_date(),
            window_days=self.settings.purchase_date_window_days,
        )
        records = facts.select(["user_key", "product_key", "purchase_date"]).to_dicts()
        await self._insert_chunked(conn, FactPurchase.__table__, records)
        return len(records), skipped
