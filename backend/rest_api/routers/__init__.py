"""
API routers.
- /api/qr/* - QR table check-in
- /api/shared-carts/* - Shared table carts
- /api/health - Health check
"""

from .public import health_router
from .qr import router as qr_router
from .shared_cart import router as shared_cart_router

__all__ = ["health_router", "qr_router", "shared_cart_router"]
