"""
API Routes Module
"""
from .admin import router as admin_router
from .analytics import router as analytics_router
from .cart import router as cart_router
from .checkout import router as checkout_router
from .health import router as health_router
from .products import router as products_router
from .reviews import router as reviews_router
from .users import router as users_router

__all__ = [
    "admin_router",
    "analytics_router",
    "cart_router",
    "checkout_router",
    "health_router",
    "products_router",
    "reviews_router",
    "users_router",
]
