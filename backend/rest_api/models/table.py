"""
Dining Table Model: the registry behind printed QR codes.
"""

from __future__ import annotations

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import PK_TYPE, Base, CreatedAtMixin


class DiningTable(CreatedAtMixin, Base):
    """
    Physical table with the short static id printed on its QR code.

    Only active tables can issue check-in tokens. Tables are managed by
    the back office; the check-in flow only reads them.
    """

    __tablename__ = "dining_table"

    id: Mapped[int] = mapped_column(PK_TYPE, primary_key=True)
    static_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)  # "Table 4", "Terrace 2"
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<DiningTable(id={self.id}, static_id={self.static_id!r}, active={self.is_active})>"
