"""
Domain Services - Application Layer.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    Repository (data access)
        ↓
    Model (entity)

Usage:
    from rest_api.services.domain import SharedCartService

    # In router
    service = SharedCartService(db, redis_sync)
    cart = service.get_or_create_cart(table_id)
"""

from .qr_session_service import QrSessionService, TableCache, epoch_ms, ms_to_datetime
from .shared_cart_service import SharedCartService, to_cart_output

__all__ = [
    "QrSessionService",
    "TableCache",
    "epoch_ms",
    "ms_to_datetime",
    "SharedCartService",
    "to_cart_output",
]
