"""
SQLAlchemy ORM Models Package.

- base: Base class, CreatedAtMixin, PK_TYPE
- table: DiningTable (static id registry)
- session_log: TableSessionLog (check-in audit trail)
- shared_cart: SharedCart, SharedCartItem
"""

from .base import Base, CreatedAtMixin, PK_TYPE, utcnow
from .table import DiningTable
from .session_log import TableSessionLog
from .shared_cart import SharedCart, SharedCartItem

__all__ = [
    "Base",
    "CreatedAtMixin",
    "PK_TYPE",
    "utcnow",
    "DiningTable",
    "TableSessionLog",
    "SharedCart",
    "SharedCartItem",
]
