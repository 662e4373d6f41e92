"""
Database Module
"""
from .connection import (
    acquire_advisory_xact_lock,
    create_engine,
    create_session_factory,
    verify_connection,
    session_scope,
    check_database_health,
)
from .models import Base, User, DimUser, DimProduct, FactPurchase

__all__ = [
    "acquire_advisory_xact_lock",
    "create_engine",
    "create_session_factory",
    "verify_connection",
    "session_scope",
    "check_database_health",
    "Base",
    "User",
    "DimUser",
    "DimProduct",
    "FactPurchase",
]
