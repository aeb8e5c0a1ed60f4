"""
Shared Pydantic schemas used across the application.

Wire format is camelCase (the web client and the gateway both speak it);
Python code uses the snake_case field names.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from shared.config.constants import Limits
from shared.utils.options import normalize_options


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Common Types
# =============================================================================

SessionActionName = Literal["issue", "consume"]


# =============================================================================
# Store Records (Redis values)
# =============================================================================


class IssuedTokenRecord(CamelModel):
    """Value stored under ``table:session:<token>``."""

    table_id: str = Field(min_length=1)
    table_number: str
    issued_at: int
    created_ip: str
    created_ua: str
    max_uses: int = 1
    uses: int = 0


class ActiveSession(CamelModel):
    """Value stored under ``table:active:<sessionId>``."""

    session_id: str = Field(min_length=1)
    table_id: str = Field(min_length=1)
    table_number: str
    created_at: int
    expires_at: int
    created_ip: str
    created_ua: str
    last_ip: str
    last_ua: str


# =============================================================================
# QR Check-in Schemas
# =============================================================================


class IssueTokenResponse(CamelModel):
    token: str
    deep_link: str
    ttl: int


class ConsumeTokenResponse(CamelModel):
    table_id: str
    table_number: str
    established_at: datetime
    session_id: str
    session_expires_at: datetime
    session_ttl_seconds: int


class ActiveSessionOutput(CamelModel):
    """Public view of the caller's own session (no network metadata)."""

    session_id: str
    table_id: str
    table_number: str
    created_at: datetime
    expires_at: datetime


class SessionStatRow(BaseModel):
    action: SessionActionName
    result: str
    count: int


class SessionStatsResponse(BaseModel):
    hours: int
    stats: list[SessionStatRow]


# =============================================================================
# Shared Cart Schemas
# =============================================================================


class AddCartItemRequest(CamelModel):
    """Request to add an item to a table's shared cart."""

    product_id: str = Field(min_length=1, max_length=64)
    quantity: int = Field(ge=1, le=Limits.MAX_ITEM_QUANTITY)
    unit_price: float = Field(gt=0)
    base_unit_price: float | None = Field(default=None, ge=0)
    options_subtotal: float = Field(default=0, ge=0)
    options: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("options", mode="before")
    @classmethod
    def _normalize_options(cls, value: Any) -> list[dict[str, Any]]:
        return normalize_options(value)

    @field_validator("product_id")
    @classmethod
    def _strip_product_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("productId must not be blank")
        return value


class UpdateCartItemRequest(CamelModel):
    """Absolute quantity; zero or less removes the line."""

    quantity: int = Field(le=Limits.MAX_ITEM_QUANTITY)


class CartItemOutput(CamelModel):
    id: str
    product_id: str
    quantity: int
    unit_price: float
    base_unit_price: float
    options_subtotal: float
    options: list[dict[str, Any]]


class CartOutput(CamelModel):
    id: int
    table_id: str
    items: list[CartItemOutput]
    total_items: int
    total_amount: float
    updated_at: datetime
