"""
API Routes Module
"""
from .health import router as health_router
from .products import router as products_router
from .orders import router as orders_router
from .activity import router as activity_router
from .delivery import router as delivery_router
from .admin import router as admin_router

__all__ = [
    "health_router",
    "products_router",
    "orders_router",
    "activity_router",
    "delivery_router",
    "admin_router",
]
