"""
Reviews API Endpoints

Per-product review partitions in Cassandra.
"""

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
import structlog

from polyglot_shelf.serving.api.dependencies import error_response, get_stores
from polyglot_shelf.stores.registry import Stores

router = APIRouter()
logger = structlog.get_logger(__name__)


class ReviewRequest(BaseModel):
    """New review"""
    userName: str = Field(min_length=1)
    text: str = Field(min_length=1)


@router.get("/{product_id}")
async def list_reviews(product_id: str, stores: Stores = Depends(get_stores)):
    """Reviews for one product, newest first."""
    try:
        return await stores.reviews.list_for_product(product_id)
    except Exception as e:
        logger.error("Error fetching reviews", product_id=product_id, error=str(e), error_type=type(e).__name__)
        return error_response(500, "Internal server error")


@router.post("/{product_id}", status_code=201)
async def create_review(
    product_id: str,
    payload: ReviewRequest,
    stores: Stores = Depends(get_stores),
):
    """Add a review; answers 201 with no body."""
    try:
        await stores.reviews.add(product_id, payload.userName, payload.text)
    except Exception as e:
        logger.error("Error creating review", product_id=product_id, error=str(e), error_type=type(e).__name__)
        return error_response(500, "Internal server error")
    return Response(status_code=201)
