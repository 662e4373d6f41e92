"""
Warehouse API Endpoints

Trigger for the warehouse rebuild and read-only aggregates over the star
schema it produces.
"""

from datetime import date
from typing import Any, Awaitable, Callable, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
import structlog

from polyglot_shelf.serving.api.dependencies import error_response, get_stores
from polyglot_shelf.stores.registry import Stores
from polyglot_shelf.warehouse.exceptions import WarehouseLoadError

router = APIRouter()
logger = structlog.get_logger(__name__)


class KpiSummary(BaseModel):
    """Headline warehouse metrics"""
    total_revenue: float
    total_sales: int
    total_customers: int


class ProductSales(BaseModel):
    """Sales of one product"""
    product_id: str
    title: Optional[str]
    sales: int
    revenue: float


class DailySales(BaseModel):
    """Sales on one (synthesized) purchase date"""
    date: date
    sales: int
    revenue: float


class CustomerPurchases(BaseModel):
    """Purchase count of one customer"""
    user_id: str
    name: Optional[str]
    purchases: int


@router.post("/etl/run")
async def run_etl(stores: Stores = Depends(get_stores)):
    """
    Rebuild the warehouse from the operational stores.

    Every failure is reported as the same generic error; the run must be
    re-triggered by hand.
    """
    try:
        result = await stores.warehouse.run()
    except WarehouseLoadError as e:
        logger.error("ETL failed", error=str(e), error_type=type(e).__name__)
        return error_response(500, WarehouseLoadError.public_message)
    except Exception as e:
        logger.error("ETL failed unexpectedly", error=str(e), error_type=type(e).__name__)
        return error_response(500, WarehouseLoadError.public_message)

    return {"message": "ETL completed", "result": result.model_dump(mode="json")}


async def cached_query(stores: Stores, name: str, query: Callable[[], Awaitable[Any]]):
    """Serve a warehouse aggregate through the analytics cache."""
    try:
        return await stores.analytics_cache.get_or_set(name, query)
    except Exception as e:
        logger.error("Error querying warehouse", query=name, error=str(e), error_type=type(e).__name__)
        return error_response(500, "Internal server error")


@router.get("/analytics/kpis", response_model=KpiSummary)
async def get_kpis(stores: Stores = Depends(get_stores)):
    """Total revenue, total sales and distinct customers."""
    return await cached_query(stores, "kpis", stores.analytics.kpis)


@router.get("/analytics/sales-by-product", response_model=List[ProductSales])
async def get_sales_by_product(stores: Stores = Depends(get_stores)):
    """Sales and revenue per product, highest revenue first."""
    return await cached_query(stores, "sales_by_product", stores.analytics.sales_by_product)


@router.get("/analytics/sales-by-date", response_model=List[DailySales])
async def get_sales_by_date(stores: Stores = Depends(get_stores)):
    """Sales and revenue per purchase date."""
    return await cached_query(stores, "sales_by_date", stores.analytics.sales_by_date)


@router.get("/analytics/top-customers", response_model=List[CustomerPurchases])
async def get_top_customers(
    limit: int = Query(5, ge=1, le=100),
    stores: Stores = Depends(get_stores),
):
    """Customers with the most purchases."""
    return await cached_query(
        stores,
        f"top_customers:{limit}",
        lambda: stores.analytics.top_customers(limit),
    )
