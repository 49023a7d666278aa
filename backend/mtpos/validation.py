# Overview: Strict coercion of request payload fields.

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import TransactionValidationError


PAYMENT_METHODS = ("cash", "card", "upi", "bank", "credit")
REFUND_TYPES = ("cash", "credit_note")
PURCHASE_PAYMENT_METHODS = ("cash", "bank", "credit")


def _invalid(field: str, message: str, code: str = "INVALID_FIELD") -> TransactionValidationError:
    return TransactionValidationError(code, message, {"field": field})


def coerce_int(value: Any, field: str, *, required: bool = False, minimum: int | None = None) -> int | None:
    """
    Integer ids/quantities - strict validation to reject floats and scientific notation.
    """
    if value is None or value == "":
        if required:
            raise _invalid(field, f"{field} is required")
        return None

    if isinstance(value, bool):
        raise _invalid(field, f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise _invalid(field, f"{field} must be an integer, not a decimal")
        result = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower() or "." in stripped:
            raise _invalid(field, f"{field} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise _invalid(field, f"{field} must be an integer")
    else:
        raise _invalid(field, f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise _invalid(field, f"{field} must be >= {minimum}")
    return result


def coerce_amount(value: Any, field: str) -> Decimal:
    if value is None or value == "" or isinstance(value, bool):
        raise _invalid(field, f"{field} is required", code="INVALID_AMOUNT")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise _invalid(field, f"{field} must be a number", code="INVALID_AMOUNT")
    if not amount.is_finite():
        raise _invalid(field, f"{field} must be a number", code="INVALID_AMOUNT")
    return amount


def coerce_qty(value: Any, *, product_id=None) -> int:
    """Line quantities are positive whole units."""
    try:
        qty = coerce_int(value, "qty", required=True)
    except TransactionValidationError:
        raise TransactionValidationError("INVALID_QTY", "Quantity must be a positive whole number", {"product_id": product_id})
    if qty <= 0:
        raise TransactionValidationError("INVALID_QTY", "Quantity must be greater than zero", {"product_id": product_id})
    return qty


def parse_line_items(raw: Any, *, qty_key: str = "qty") -> list[dict]:
    """[{product_id, qty}] -> validated list; empty list is left to the caller."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise _invalid("items", "items must be a list")

    items = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise _invalid("items", "each item must be an object")
        product_id = coerce_int(entry.get("product_id"), "product_id", required=True)
        qty = coerce_qty(entry.get(qty_key, entry.get("quantity")), product_id=product_id)
        items.append({"product_id": product_id, "qty": qty})
    return items


def require_choice(value: Any, field: str, choices: tuple, code: str) -> str:
    normalized = str(value or "").strip().lower()
    if normalized not in choices:
        raise TransactionValidationError(code, f"{field} must be one of: {', '.join(choices)}", {"field": field, "value": value})
    return normalized
