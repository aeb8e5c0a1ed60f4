"""
Shared cart endpoints.

Every route requires a table session (or a staff bearer). Diners can only
reach the cart of the table they checked in at. Each mutation answers with
the full cart and broadcasts the same snapshot to the table's sockets.
"""

from fastapi import APIRouter, Depends, Request

from rest_api.core.dependencies import (
    TableSessionContext,
    ensure_table_access,
    get_shared_cart_service,
    require_table_session,
)
from rest_api.services.domain import SharedCartService
from shared.security.rate_limit import CART_WRITE_LIMIT, limiter
from shared.utils.schemas import AddCartItemRequest, CartOutput, UpdateCartItemRequest


router = APIRouter(prefix="/api/shared-carts", tags=["shared-cart"])


@router.get("/{table_id}", response_model=CartOutput)
def get_cart(
    table_id: str,
    ctx: TableSessionContext = Depends(require_table_session),
    service: SharedCartService = Depends(get_shared_cart_service),
) -> CartOutput:
    """Get the table's cart, creating an empty one on first access."""
    ensure_table_access(ctx, table_id)
    return service.get_or_create_cart(table_id)


@router.post("/{table_id}/items", response_model=CartOutput)
@limiter.limit(CART_WRITE_LIMIT)
def add_item(
    request: Request,
    table_id: str,
    body: AddCartItemRequest,
    ctx: TableSessionContext = Depends(require_table_session),
    service: SharedCartService = Depends(get_shared_cart_service),
) -> CartOutput:
    """
    Add a product selection.

    The same product with the same options (in any order) merges into one
    line and its quantity grows.
    """
    ensure_table_access(ctx, table_id)
    return service.add_item(table_id, body)


@router.put("/{table_id}/items/{item_id:path}", response_model=CartOutput)
@limiter.limit(CART_WRITE_LIMIT)
def update_item_quantity(
    request: Request,
    table_id: str,
    item_id: str,
    body: UpdateCartItemRequest,
    ctx: TableSessionContext = Depends(require_table_session),
    service: SharedCartService = Depends(get_shared_cart_service),
) -> CartOutput:
    """Set a line's quantity; zero removes it."""
    ensure_table_access(ctx, table_id)
    return service.update_item_quantity(table_id, item_id, body.quantity)


@router.delete("/{table_id}/items/{item_id:path}", response_model=CartOutput)
@limiter.limit(CART_WRITE_LIMIT)
def remove_item(
    request: Request,
    table_id: str,
    item_id: str,
    ctx: TableSessionContext = Depends(require_table_session),
    service: SharedCartService = Depends(get_shared_cart_service),
) -> CartOutput:
    ensure_table_access(ctx, table_id)
    return service.remove_item(table_id, item_id)


@router.delete("/{table_id}", response_model=CartOutput)
@limiter.limit(CART_WRITE_LIMIT)
def clear_cart(
    request: Request,
    table_id: str,
    ctx: TableSessionContext = Depends(require_table_session),
    service: SharedCartService = Depends(get_shared_cart_service),
) -> CartOutput:
    """Empty the cart (it is never deleted)."""
    ensure_table_access(ctx, table_id)
    return service.clear_cart(table_id)
