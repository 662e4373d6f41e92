"""
Database Models

Relational tables owned by PostgreSQL:

Operational:
- User: normalized user records served by the users endpoints

Warehouse (star schema, rebuilt by the warehouse loader on every run):
- DimUser: one row per operational user
- DimProduct: one row per catalog product
- FactPurchase: one row per purchase edge, keyed by dimension surrogate keys
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# OPERATIONAL TABLES
# =============================================================================

class User(Base):
    """
    User Table

    Source of truth for user identity. Rows are created on explicit
    registration or on first checkout and never deleted by the application.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class DimUser(Base):
    """
    User Dimension Table

    The surrogate key is only stable within one load cycle.
    """
    __tablename__ = "dim_users"

    user_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255))

    purchases: Mapped[List["FactPurchase"]] = relationship(back_populates="user")


class DimProduct(Base):
    """
    Product Dimension Table

    Copies the fixed descriptive fields of a catalog document. Extension
    fields stay in the document store.
    """
    __tablename__ = "dim_products"

    product_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(500))
    author: Mapped[Optional[str]] = mapped_column(String(255))
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))

    purchases: Mapped[List["FactPurchase"]] = relationship(back_populates="product")


# =============================================================================
# FACT TABLES
# =============================================================================

class FactPurchase(Base):
    """
    Purchase Fact Table

    purchase_date is synthesized by the loader: the graph store records no
    timestamp for a purchase.
    """
    __tablename__ = "fact_purchases"

    purchase_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_key: Mapped[int] = mapped_column(
        ForeignKey("dim_users.user_key"), nullable=False
    )
    product_key: Mapped[int] = mapped_column(
        ForeignKey("dim_products.product_key"), nullable=False
    )
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)

    user: Mapped["DimUser"] = relationship(back_populates="purchases")
    product: Mapped["DimProduct"] = relationship(back_populates="purchases")

    __table_args__ = (
        Index("ix_fact_purchases_user", "user_key"),
        Index("ix_fact_purchases_product", "product_key"),
        Index("ix_fact_purchases_date", "purchase_date"),
    )


WAREHOUSE_TABLES = [
    DimUser.__table__,
    DimProduct.__table__,
    FactPurchase.__table__,
]
