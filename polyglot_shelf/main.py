"""
FastAPI Application

Main entry point for the Polyglot Shelf API.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import structlog

from polyglot_shelf.config import get_settings
from polyglot_shelf.config.logging import configure_logging
from polyglot_shelf.serving.api.middleware import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from polyglot_shelf.serving.api.routes import (
    admin_router,
    analytics_router,
    cart_router,
    checkout_router,
    health_router,
    products_router,
    reviews_router,
    users_router,
)
from polyglot_shelf.stores.registry import Stores, close_stores, ensure_schemas, open_stores

settings = get_settings()
logger = structlog.get_logger(__name__)


def create_app(stores: Optional[Stores] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        stores: Pre-built store container. When omitted the lifespan opens
            connections to every store on startup and closes them on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if stores is not None:
            yield
            return

        configure_logging()
        logger.info("Starting Polyglot Shelf API")

        # A store that cannot be reached at startup is fatal
        app.state.stores = await open_stores(settings)
        logger.info("All stores connected")
        try:
            await ensure_schemas(app.state.stores)
        except Exception:
            await close_stores(app.state.stores)
            raise

        yield

        logger.info("Shutting down...")
        await close_stores(app.state.stores)

    app = FastAPI(
        title="Polyglot Shelf API",
        description="Bookshop backend over PostgreSQL, MongoDB, Redis, Cassandra and Neo4j",
        version=settings.version,
        debug=settings.debug,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        lifespan=lifespan,
    )
    if stores is not None:
        app.state.stores = stores

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(users_router, prefix="/api/v1/users", tags=["Users"])
    app.include_router(products_router, prefix="/api/v1/products", tags=["Products"])
    app.include_router(cart_router, prefix="/api/v1/cart", tags=["Cart"])
    app.include_router(reviews_router, prefix="/api/v1/reviews", tags=["Reviews"])
    app.include_router(checkout_router, prefix="/api/v1", tags=["Checkout"])
    app.include_router(analytics_router, prefix="/api/v1", tags=["Warehouse"])
    app.include_router(admin_router, prefix="/api/v1/admin", tags=["Admin"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": None if settings.is_production else "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
