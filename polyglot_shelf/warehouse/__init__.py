"""
Warehouse Module
"""
from .analytics import WarehouseAnalytics
from .exceptions import (
    ConnectivityFailure,
    TransactionFailure,
    TransformFailure,
    WarehouseLoadError,
)
from .loader import LoadResult, WarehouseLoader

__all__ = [
    "WarehouseAnalytics",
    "WarehouseLoader",
    "LoadResult",
    "WarehouseLoadError",
    "ConnectivityFailure",
    "TransformFailure",
    "TransactionFailure",
]
