"""
Products API Endpoints

Catalog documents from MongoDB.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
import structlog

from polyglot_shelf.serving.api.dependencies import error_response, get_stores
from polyglot_shelf.stores.registry import Stores

router = APIRouter()
logger = structlog.get_logger(__name__)


class ProductResponse(BaseModel):
    """Catalog product"""
    id: str
    title: Optional[str] = None
    author: Optional[str] = None
    price: Optional[float] = None
    imageUrl: Optional[str] = None


@router.get("", response_model=List[ProductResponse])
async def list_products(stores: Stores = Depends(get_stores)):
    """List all products."""
    try:
        return await stores.products.list_products()
    except Exception as e:
        logger.error("Error fetching products", error=str(e), error_type=type(e).__name__)
        return error_response(500, "Internal server error")


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: str, stores: Stores = Depends(get_stores)):
    """Get one product."""
    try:
        product = await stores.products.get(product_id)
    except Exception as e:
        logger.error("Error fetching product", product_id=product_id, error=str(e), error_type=type(e).__name__)
        return error_response(500, "Internal server error")

    if product is None:
        return error_response(404, "Product not found")
    return product
