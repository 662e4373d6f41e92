"""
Operational Store Adapters
"""
from .carts import CartStore
from .graph import PurchaseGraph
from .products import ProductCatalog
from .reviews import ReviewStore
from .users import UserRepository

__all__ = [
    "CartStore",
    "PurchaseGraph",
    "ProductCatalog",
    "ReviewStore",
    "UserRepository",
]
