"""
Selected-option payloads for cart and order items.

Clients send options in several shapes (a list of names, a list of
objects, or either one JSON-encoded). ``normalize_options`` reduces all of
them to one canonical list; ``build_cart_item_id`` derives the merge key
of a cart line from it.
"""

from __future__ import annotations

import json
import math
from decimal import Decimal, InvalidOperation
from typing import Any

from shared.config.constants import Limits

OPTION_KEY_SEPARATOR = "::"
OPTION_SEGMENT_SEPARATOR = "|"


def _to_price(value: Any) -> float | int:
    """Numeric coercion that maps anything unparseable (or NaN) to 0."""
    if isinstance(value, bool) or value is None:
        return 0
    try:
        number = float(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return int(number) if number.is_integer() else number


def _normalize_entry(entry: Any) -> dict[str, Any] | None:
    if isinstance(entry, str):
        name = entry.strip()
        if not name:
            return None
        return {"id": None, "name": name, "additionalPrice": 0}

    if isinstance(entry, dict):
        option_id = entry.get("id")
        name = entry.get("name")
        name = name.strip() if isinstance(name, str) else None
        if option_id is None and not name:
            return None
        return {
            "id": option_id,
            "name": name,
            "additionalPrice": _to_price(entry.get("additionalPrice")),
        }

    return None


def normalize_options(raw: Any) -> list[dict[str, Any]]:
    """
    Canonicalize an options payload to ``[{id, name, additionalPrice}]``.

    Accepts a list of strings, a list of ``{id?, name?, additionalPrice?}``
    objects, or a JSON string encoding either. Entries that are neither a
    non-blank string nor an object with an id or name are dropped; any
    other top-level shape yields an empty list.
    """
    if raw is None:
        return []

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []

    if not isinstance(raw, list):
        return []

    normalized = []
    for entry in raw[: Limits.MAX_OPTIONS_PER_ITEM]:
        option = _normalize_entry(entry)
        if option is not None:
            normalized.append(option)
    return normalized


def _option_key(option: dict[str, Any]) -> str:
    if option.get("id") is not None:
        return str(option["id"])
    return (option.get("name") or "").strip()


def build_cart_item_id(product_id: str, options: list[dict[str, Any]] | None) -> str:
    """
    Deterministic identity of a cart line.

    ``product_id`` alone when no options are selected, otherwise
    ``<product_id>::<key>:<price>|<key>:<price>...`` with the pairs sorted
    by key, so the order in which a client lists options never matters.

    >>> build_cart_item_id("p1", [{"id": 7, "additionalPrice": 500}, {"id": 5, "additionalPrice": 1000}])
    'p1::5:1000|7:500'
    """
    if not options:
        return product_id

    pairs = sorted(
        ((_option_key(opt), str(_to_price(opt.get("additionalPrice")))) for opt in options),
        key=lambda pair: pair[0],
    )
    signature = OPTION_SEGMENT_SEPARATOR.join(f"{key}:{price}" for key, price in pairs)
    return f"{product_id}{OPTION_KEY_SEPARATOR}{signature}"
