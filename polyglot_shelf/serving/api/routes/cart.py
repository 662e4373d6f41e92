"""
Cart API Endpoints

Ephemeral carts in Redis.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
import structlog

from polyglot_shelf.serving.api.dependencies import error_response, get_stores
from polyglot_shelf.stores.registry import Stores

router = APIRouter()
logger = structlog.get_logger(__name__)


class AddToCartRequest(BaseModel):
    """One unit of a product to add"""
    productId: str
    title: Optional[str] = None
    price: Optional[float] = None


@router.get("/{user_id}")
async def get_cart(user_id: str, stores: Stores = Depends(get_stores)):
    """Get the user's cart (empty when none is stored)."""
    try:
        return await stores.carts.get(user_id)
    except Exception as e:
        logger.error("Error fetching cart", user_id=user_id, error=str(e), error_type=type(e).__name__)
        return error_response(500, "Internal server error")


@router.post("/{user_id}")
async def add_to_cart(
    user_id: str,
    payload: AddToCartRequest,
    stores: Stores = Depends(get_stores),
):
    """Add a product to the cart and return the updated cart."""
    try:
        return await stores.carts.add_item(user_id, payload.productId, payload.title, payload.price)
    except Exception as e:
        logger.error("Error updating cart", user_id=user_id, error=str(e), error_type=type(e).__name__)
        return error_response(500, "Internal server error")
