"""
Admin Inspector Endpoints

Raw dumps of each store for the demo's data inspector.
"""

from fastapi import APIRouter, Depends
import structlog

from polyglot_shelf.serving.api.dependencies import error_response, get_stores
from polyglot_shelf.stores.registry import Stores

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _dump(store: str, reader):
    try:
        return await reader()
    except Exception as e:
        logger.error("Admin dump failed", store=store, error=str(e), error_type=type(e).__name__)
        return error_response(500, "Internal server error")


@router.get("/postgres")
async def dump_postgres(stores: Stores = Depends(get_stores)):
    return await _dump("postgres", stores.users.list_all)


@router.get("/mongodb")
async def dump_mongodb(stores: Stores = Depends(get_stores)):
    return await _dump("mongodb", stores.products.documents)


@router.get("/redis/{user_id}")
async def dump_redis(user_id: str, stores: Stores = Depends(get_stores)):
    async def read_cart():
        return await stores.carts.load(user_id) or {}

    return await _dump("redis", read_cart)


@router.get("/cassandra")
async def dump_cassandra(stores: Stores = Depends(get_stores)):
    return await _dump("cassandra", stores.reviews.list_all)


@router.get("/neo4j")
async def dump_neo4j(stores: Stores = Depends(get_stores)):
    return await _dump("neo4j", stores.graph.nodes)
