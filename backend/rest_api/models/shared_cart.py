"""
Shared Cart Models: one cart aggregate per table, edited by every diner at it.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import Limits

from .base import PK_TYPE, Base, CreatedAtMixin, utcnow


class SharedCart(CreatedAtMixin, Base):
    """
    Cart aggregate for a table.

    ``total_items`` and ``total_amount`` are derived from the items and
    rewritten after every mutation; nothing else writes them.
    """

    __tablename__ = "shared_cart"

    id: Mapped[int] = mapped_column(PK_TYPE, primary_key=True)
    table_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    items: Mapped[list["SharedCartItem"]] = relationship(
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="SharedCartItem.id",
    )

    def __repr__(self) -> str:
        return f"<SharedCart(id={self.id}, table_id={self.table_id!r}, items={self.total_items})>"


class SharedCartItem(Base):
    """
    A line in a shared cart.

    ``id`` is the deterministic product+options identity, unique within
    its cart, so repeated adds of the same selection land on one row.
    """

    __tablename__ = "shared_cart_item"

    cart_id: Mapped[int] = mapped_column(
        PK_TYPE, ForeignKey("shared_cart.id", ondelete="CASCADE"), primary_key=True
    )
    id: Mapped[str] = mapped_column(String(Limits.MAX_ITEM_ID_LENGTH), primary_key=True)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    base_unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    options_subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    # Snapshot of the selected options at add time
    options: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSON, nullable=True)

    cart: Mapped["SharedCart"] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_shared_cart_item_quantity"),
    )

    def __repr__(self) -> str:
        return f"<SharedCartItem(cart_id={self.cart_id}, id={self.id!r}, qty={self.quantity})>"
