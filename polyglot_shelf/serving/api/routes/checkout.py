"""
Checkout and Recommendation Endpoints

Checkout moves a Redis cart into the purchase graph; recommendations read
co-purchases back out of it.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
import structlog

from polyglot_shelf.serving.api.dependencies import error_response, get_stores
from polyglot_shelf.stores.registry import Stores

router = APIRouter()
logger = structlog.get_logger(__name__)


class CheckoutRequest(BaseModel):
    """Optional display name for users checking out for the first time"""
    name: Optional[str] = None


@router.post("/checkout/{user_id}")
async def checkout(
    user_id: str,
    payload: Optional[CheckoutRequest] = None,
    stores: Stores = Depends(get_stores),
):
    """
    Check out the user's cart.

    Steps:
    1. Read the cart (404 when missing or empty)
    2. Register the user in PostgreSQL if this is their first purchase
    3. MERGE one PURCHASED edge per cart product in Neo4j
    4. Delete the cart
    """
    try:
        cart = await stores.carts.load(user_id)
        items = (cart or {}).get("items") or {}
        if not items:
            return error_response(404, "Cart not found or is empty")

        name = (payload.name if payload else None) or user_id
        user = await stores.users.find_or_create(user_id, name)

        await stores.graph.record_purchases(
            user_id,
            [{"id": product_id, "title": item.get("title")} for product_id, item in items.items()],
            user_name=user["name"],
        )

        await stores.carts.clear(user_id)
    except Exception as e:
        logger.error("Error during checkout", user_id=user_id, error=str(e), error_type=type(e).__name__)
        return error_response(500, "Internal server error")

    logger.info("Checkout completed", user_id=user_id, products=len(items))
    return {"message": "Checkout successful"}


@router.get("/recommendations/{product_id}")
async def get_recommendations(
    product_id: str,
    limit: int = Query(3, ge=1, le=20),
    stores: Stores = Depends(get_stores),
):
    """Products most often bought by customers who bought this one."""
    try:
        return await stores.graph.recommendations(product_id, limit=limit)
    except Exception as e:
        logger.error("Error fetching recommendations", product_id=product_id, error=str(e), error_type=type(e).__name__)
        return error_response(500, "Internal server error")
