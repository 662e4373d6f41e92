"""
Users API Endpoints

Normalized user records in PostgreSQL.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
import structlog

from polyglot_shelf.serving.api.dependencies import error_response, get_stores
from polyglot_shelf.stores.registry import Stores

router = APIRouter()
logger = structlog.get_logger(__name__)


class FindOrCreateRequest(BaseModel):
    """Identity of the user to look up or register"""
    id: Optional[str] = None
    name: Optional[str] = None


@router.post("/find-or-create")
async def find_or_create_user(
    payload: FindOrCreateRequest,
    stores: Stores = Depends(get_stores),
):
    """Return the user, registering it on first sight."""
    if not payload.id or not payload.name:
        return error_response(400, "User ID and name are required")

    try:
        return await stores.users.find_or_create(payload.id, payload.name)
    except Exception as e:
        logger.error("Error finding or creating user", user_id=payload.id, error=str(e), error_type=type(e).__name__)
        return error_response(500, "Internal server error")


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    stores: Stores = Depends(get_stores),
):
    """Get one user."""
    try:
        user = await stores.users.get(user_id)
    except Exception as e:
        logger.error("Error fetching user", user_id=user_id, error=str(e), error_type=type(e).__name__)
        return error_response(500, "Internal server error")

    if user is None:
        return error_response(404, "User not found")
    return user
