"""
Warehouse Analytics

Read-only aggregates over the star schema. Revenue is the catalog price of
each purchased product; the fact table carries no amount of its own.
"""

from typing import Any, Dict, List

import structlog
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncEngine

from polyglot_shelf.database.models import DimProduct, DimUser, FactPurchase

logger = structlog.get_logger(__name__)


def _money(value) -> float:
    return round(float(value or 0), 2)


class WarehouseAnalytics:
    """Aggregate queries backing the analytics endpoints."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def _fetch(self, query) -> List[Any]:
        async with self.engine.connect() as conn:
            result = await conn.execute(query)
            return result.all()

    async def kpis(self) -> Dict[str, Any]:
        """Total revenue, total sales and distinct customers."""
        query = (
            select(
                func.coalesce(func.sum(DimProduct.price), 0).label("total_revenue"),
                func.count(FactPurchase.purchase_key).label("total_sales"),
                func.count(func.distinct(FactPurchase.user_key)).label("total_customers"),
            )
            .select_from(FactPurchase)
            .join(DimProduct, FactPurchase.product_key == DimProduct.product_key)
        )
        row = (await self._fetch(query))[0]
        return {
            "total_revenue": _money(row.total_revenue),
            "total_sales": int(row.total_sales or 0),
            "total_customers": int(row.total_customers or 0),
        }

    async def sales_by_product(self) -> List[Dict[str, Any]]:
        revenue = func.coalesce(func.sum(DimProduct.price), 0).label("revenue")
        query = (
            select(
                DimProduct.product_id,
                DimProduct.title,
                func.count(FactPurchase.purchase_key).label("sales"),
                revenue,
            )
            .select_from(FactPurchase)
            .join(DimProduct, FactPurchase.product_key == DimProduct.product_key)
            .group_by(DimProduct.product_id, DimProduct.title)
            .order_by(desc(revenue), DimProduct.product_id)
        )
        return [
            {
                "product_id": row.product_id,
                "title": row.title,
                "sales": row.sales,
                "revenue": _money(row.revenue),
            }
            for row in await self._fetch(query)
        ]

    async def sales_by_date(self) -> List[Dict[str, Any]]:
        query = (
            select(
                FactPurchase.purchase_date,
                func.count(FactPurchase.purchase_key).label("sales"),
                func.coalesce(func.sum(DimProduct.price), 0).label("revenue"),
            )
            .select_from(FactPurchase)
            .join(DimProduct, FactPurchase.product_key == DimProduct.product_key)
            .group_by(FactPurchase.purchase_date)
            .order_by(FactPurchase.purchase_date)
        )
        return [
            {
                "date": row.purchase_date.isoformat(),
                "sales": row.sales,
                "revenue": _money(row.revenue),
            }
            for row in await self._fetch(query)
        ]

    async def top_customers(self, limit: int = 5) -> List[Dict[str, Any]]:
        purchases = func.count(FactPurchase.purchase_key).label("purchases")
        query = (
            select(DimUser.user_id, DimUser.name, purchases)
            .select_from(FactPurchase)
            .join(DimUser, FactPurchase.user_key == DimUser.user_key)
            .group_by(DimUser.user_id, DimUser.name)
            .order_by(desc(purchases), DimUser.user_id)
            .limit(limit)
        )
        return [
            {"user_id": row.user_id, "name": row.name, "purchases": row.purchases}
            for row in await self._fetch(query)
        ]
