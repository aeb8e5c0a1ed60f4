"""
Repository Pattern implementation.
Centralizes data access for the check-in and shared-cart services.

Usage:
    from rest_api.repositories import CartRepository, TableRegistry

    registry = TableRegistry(SessionLocal)
    tables = registry.find_active_tables()

    repo = CartRepository(db)
    cart = repo.get_cart_by_table("4")
"""

from .table_registry import TableRegistry, TableRecord
from .session_audit import SessionAuditLog, SessionAuditEvent
from .shared_cart import CartRepository

__all__ = [
    "TableRegistry",
    "TableRecord",
    "SessionAuditLog",
    "SessionAuditEvent",
    "CartRepository",
]
