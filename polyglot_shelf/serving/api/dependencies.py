"""
Shared API Dependencies
"""

from fastapi import Request
from fastapi.responses import JSONResponse

from polyglot_shelf.stores.registry import Stores


def get_stores(request: Request) -> Stores:
    """FastAPI dependency returning the process-wide store container."""
    stores = getattr(request.app.state, "stores", None)
    if stores is None:
        raise RuntimeError("Stores not initialized. Start the app through its lifespan.")
    return stores


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})
