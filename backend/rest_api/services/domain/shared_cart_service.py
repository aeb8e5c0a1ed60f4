"""
Shared Cart Service - one convergent cart per table.

Every mutation follows the same path: write rows, recompute totals from
the rows, commit, then publish the complete cart snapshot on
``cart:<tableId>``. Clients replace their local cart with each snapshot;
nothing is ever sent as a delta.

The publish is best-effort: the database is the source of truth and a
bus outage never fails the write.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from rest_api.models import SharedCart
from rest_api.repositories import CartRepository
from shared.config.constants import Limits
from shared.config.logging import cart_logger as logger
from shared.infrastructure.db import safe_commit
from shared.infrastructure.events import channel_cart, publish_best_effort_sync
from shared.utils.exceptions import CartNotFoundError, ValidationError
from shared.utils.options import build_cart_item_id
from shared.utils.schemas import AddCartItemRequest, CartItemOutput, CartOutput

if TYPE_CHECKING:
    import redis


def _to_decimal(value: float | int | Decimal | None) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def to_cart_output(cart: SharedCart) -> CartOutput:
    """Client view of a cart, prices as plain numbers."""
    return CartOutput(
        id=cart.id,
        table_id=cart.table_id,
        items=[
            CartItemOutput(
                id=item.id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=float(item.unit_price),
                base_unit_price=float(item.base_unit_price),
                options_subtotal=float(item.options_subtotal or 0),
                options=item.options or [],
            )
            for item in cart.items
        ],
        total_items=cart.total_items,
        total_amount=float(cart.total_amount),
        updated_at=cart.updated_at,
    )


class SharedCartService:
    """
    Cart operations scoped by table id.

    Usage:
        service = SharedCartService(db, redis_sync_client)
        service.get_or_create_cart("4")
        service.add_item("4", AddCartItemRequest(product_id="p1", quantity=2, unit_price=12000))
    """

    def __init__(self, db: Session, redis_client: "redis.Redis | None" = None):
        self._db = db
        self._repo = CartRepository(db)
        self._redis = redis_client

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_cart(self, table_id: str) -> SharedCart:
        cart = self._repo.get_cart_by_table(table_id)
        if cart is None:
            logger.error("Cart mutation on a table without a cart", table_id=table_id)
            raise CartNotFoundError(table_id)
        return cart

    def _finish(self, table_id: str, cart_id: int) -> CartOutput:
        """Recompute totals, commit, reload, publish."""
        total_items, total_amount = self._repo.update_totals(cart_id)
        safe_commit(self._db)

        cart = self._repo.get_cart_by_table(table_id)
        if cart is None:
            raise CartNotFoundError(table_id)
        output = to_cart_output(cart)

        logger.info(
            "Cart updated",
            table_id=table_id,
            total_items=total_items,
            total_amount=str(total_amount),
        )
        self._publish(table_id, output)
        return output

    def _publish(self, table_id: str, cart: CartOutput) -> None:
        publish_best_effort_sync(
            self._redis,
            channel_cart(table_id),
            {"tableId": table_id, "cart": cart.model_dump(mode="json", by_alias=True)},
        )

    # =========================================================================
    # Operations
    # =========================================================================

    def get_or_create_cart(self, table_id: str) -> CartOutput:
        """Read the table's cart, creating an empty one on first access."""
        cart = self._repo.get_cart_by_table(table_id)
        if cart is None:
            cart = self._repo.create_cart(table_id)
            safe_commit(self._db)
            cart = self._repo.get_cart_by_table(table_id) or cart
            logger.info("Cart created", table_id=table_id)
        return to_cart_output(cart)

    def add_item(self, table_id: str, item: AddCartItemRequest) -> CartOutput:
        """
        Add a product selection, merging into the line with the same identity.

        Raises:
            ValidationError: If the selection yields a line id too long to store.
            CartNotFoundError: If the table has no cart.
        """
        item_id = build_cart_item_id(item.product_id, item.options)
        if len(item_id) > Limits.MAX_ITEM_ID_LENGTH:
            raise ValidationError(
                "INVALID_ITEM",
                "Selected options are too long",
                table_id=table_id,
                item_id_length=len(item_id),
            )

        cart = self._require_cart(table_id)
        base_unit_price = item.base_unit_price if item.base_unit_price is not None else item.unit_price

        try:
            self._repo.upsert_item(
                cart.id,
                item_id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=_to_decimal(item.unit_price),
                base_unit_price=_to_decimal(base_unit_price),
                options_subtotal=_to_decimal(item.options_subtotal),
                options=item.options,
            )
        except Exception:
            self._db.rollback()
            raise

        logger.debug("Cart item upserted", table_id=table_id, item_id=item_id, quantity=item.quantity)
        return self._finish(table_id, cart.id)

    def update_item_quantity(self, table_id: str, item_id: str, quantity: int) -> CartOutput:
        """
        Set a line's quantity. Zero or less removes the line.

        Setting the quantity of a line that does not exist is a no-op.
        """
        if quantity <= 0:
            return self.remove_item(table_id, item_id)

        cart = self._require_cart(table_id)
        if not self._repo.set_item_quantity(cart.id, item_id, quantity):
            logger.debug("Quantity update for missing cart item", table_id=table_id, item_id=item_id)
        return self._finish(table_id, cart.id)

    def remove_item(self, table_id: str, item_id: str) -> CartOutput:
        """Delete a line. Removing a line that is already gone still succeeds."""
        cart = self._require_cart(table_id)
        self._repo.delete_item(cart.id, item_id)
        return self._finish(table_id, cart.id)

    def clear_cart(self, table_id: str) -> CartOutput:
        """Delete every line; the cart itself is kept."""
        cart = self._require_cart(table_id)
        removed = self._repo.delete_all_items(cart.id)
        logger.info("Cart cleared", table_id=table_id, removed=removed)
        return self._finish(table_id, cart.id)
