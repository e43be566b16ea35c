"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.bundles import router as bundles_router
from routes.orders import router as orders_router
from routes.loading import router as loading_router

__all__ = [
    "bundles_router",
    "orders_router",
    "loading_router",
]
