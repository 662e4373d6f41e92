"""
Health Check Endpoints

Liveness and readiness probes, a per-store health report and the Prometheus
exposition endpoint.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from polyglot_shelf.config import get_settings
from polyglot_shelf.database.connection import check_database_health
from polyglot_shelf.serving.api.dependencies import get_stores
from polyglot_shelf.stores.registry import Stores, check_stores_health

router = APIRouter()


class HealthResponse(BaseModel):
    """Per-store health report"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    warehouse_running: bool
    checks: Dict[str, Any]


def overall_status(checks: Dict[str, Dict[str, Any]]) -> str:
    """
    ``unhealthy`` without PostgreSQL (no users, no warehouse), ``degraded``
    when any other store is down, ``healthy`` otherwise.
    """
    if checks["postgres"].get("status") != "healthy":
        return "unhealthy"
    if any(check.get("status") != "healthy" for check in checks.values()):
        return "degraded"
    return "healthy"


@router.get("/health", response_model=HealthResponse)
async def health_check(stores: Stores = Depends(get_stores)) -> HealthResponse:
    settings = get_settings()
    checks = await check_stores_health(stores)

    return HealthResponse(
        status=overall_status(checks),
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        warehouse_running=stores.warehouse.is_running,
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """The process is up."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response, stores: Stores = Depends(get_stores)) -> Dict[str, str]:
    """Ready once the relational store answers; 503 otherwise."""
    if (await check_database_health(stores.engine)).get("status") == "healthy":
        return {"status": "ready"}

    response.status_code = 503
    return {"status": "not_ready", "reason": "database_unavailable"}


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
