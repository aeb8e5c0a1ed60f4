"""
Shared Cart Repository - persistence of cart aggregates and their lines.

Item adds go through a single INSERT ... ON CONFLICT DO UPDATE so two
concurrent adds of the same selection both land as increments on one
row. Totals are always recomputed from the rows currently in the table.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from rest_api.models import SharedCart, SharedCartItem, utcnow
from shared.config.constants import Limits


def _dialect_insert(dialect_name: str):
    """The INSERT construct supporting ON CONFLICT for this backend, if any."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert

        return insert
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert

        return insert
    return None


class CartRepository:
    """
    Data access for SharedCart / SharedCartItem.

    Methods flush but never commit; the service owns the transaction.
    """

    def __init__(self, db: Session):
        self._db = db

    def get_cart_by_table(self, table_id: str) -> SharedCart | None:
        return self._db.scalar(
            select(SharedCart)
            .options(selectinload(SharedCart.items))
            .where(SharedCart.table_id == table_id)
            .execution_options(populate_existing=True)
        )

    def create_cart(self, table_id: str) -> SharedCart:
        """
        Create an empty cart for ``table_id``.

        Two requests racing to create the same cart resolve to the row
        that won the unique constraint.
        """
        cart = SharedCart(table_id=table_id, total_items=0, total_amount=Decimal("0"))
        try:
            self._db.add(cart)
            self._db.flush()
        except IntegrityError:
            # Only ever called first in its transaction, nothing else is lost
            self._db.rollback()
            existing = self.get_cart_by_table(table_id)
            if existing is None:
                raise
            return existing
        return cart

    def upsert_item(
        self,
        cart_id: int,
        item_id: str,
        *,
        product_id: str,
        quantity: int,
        unit_price: Decimal,
        base_unit_price: Decimal,
        options_subtotal: Decimal,
        options: list[dict[str, Any]] | None,
    ) -> None:
        """
        Insert a line, or add ``quantity`` to the existing line with the same identity.

        A merged quantity never exceeds Limits.MAX_ITEM_QUANTITY.
        """
        values = {
            "cart_id": cart_id,
            "id": item_id,
            "product_id": product_id,
            "quantity": quantity,
            "unit_price": unit_price,
            "base_unit_price": base_unit_price,
            "options_subtotal": options_subtotal,
            "options": options or None,
        }
        dialect_insert = _dialect_insert(self._db.get_bind().dialect.name)
        if dialect_insert is None:
            self._upsert_item_locked(values)
            return

        stmt = dialect_insert(SharedCartItem).values(**values)
        merged = SharedCartItem.quantity + stmt.excluded.quantity
        stmt = stmt.on_conflict_do_update(
            index_elements=[SharedCartItem.cart_id, SharedCartItem.id],
            set_={
                "quantity": case(
                    (merged > Limits.MAX_ITEM_QUANTITY, Limits.MAX_ITEM_QUANTITY),
                    else_=merged,
                )
            },
        )
        self._db.execute(stmt)

    def _upsert_item_locked(self, values: dict[str, Any]) -> None:
        # Backends without ON CONFLICT: row lock, then read-modify-write
        existing = self._db.scalar(
            select(SharedCartItem)
            .where(
                SharedCartItem.cart_id == values["cart_id"],
                SharedCartItem.id == values["id"],
            )
            .with_for_update()
        )
        if existing is not None:
            existing.quantity = min(existing.quantity + values["quantity"], Limits.MAX_ITEM_QUANTITY)
        else:
            self._db.add(SharedCartItem(**values))
        self._db.flush()

    def set_item_quantity(self, cart_id: int, item_id: str, quantity: int) -> bool:
        """Absolute quantity set. Returns False when the line does not exist."""
        result = self._db.execute(
            update(SharedCartItem)
            .where(SharedCartItem.cart_id == cart_id, SharedCartItem.id == item_id)
            .values(quantity=quantity)
        )
        return result.rowcount > 0

    def delete_item(self, cart_id: int, item_id: str) -> bool:
        result = self._db.execute(
            delete(SharedCartItem).where(
                SharedCartItem.cart_id == cart_id, SharedCartItem.id == item_id
            )
        )
        return result.rowcount > 0

    def delete_all_items(self, cart_id: int) -> int:
        result = self._db.execute(
            delete(SharedCartItem).where(SharedCartItem.cart_id == cart_id)
        )
        return result.rowcount

    def update_totals(self, cart_id: int) -> tuple[int, Decimal]:
        """
        Recompute and store totals from the current rows.

        Returns:
            Tuple of (total_items, total_amount)
        """
        total_items, total_amount = self._db.execute(
            select(
                func.coalesce(func.sum(SharedCartItem.quantity), 0),
                func.coalesce(
                    func.sum(SharedCartItem.unit_price * SharedCartItem.quantity), 0
                ),
            ).where(SharedCartItem.cart_id == cart_id)
        ).one()

        total_items = int(total_items)
        total_amount = Decimal(str(total_amount)).quantize(Decimal("0.01"))

        self._db.execute(
            update(SharedCart)
            .where(SharedCart.id == cart_id)
            .values(total_items=total_items, total_amount=total_amount, updated_at=utcnow())
        )
        return total_items, total_amount
