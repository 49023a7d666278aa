# Overview: Fixed-point money helpers; every stored amount passes through q2().

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    """Coerce DB/JSON values to Decimal without float artifacts."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("boolean is not a monetary value")
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError(f"not a number: {value!r}")


def q2(value) -> Decimal:
    """Round half-up to cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount, percent) -> Decimal:
    return to_decimal(amount) * to_decimal(percent) / HUNDRED


def split_inclusive(gross, tax_percent) -> tuple[Decimal, Decimal]:
    """Split a VAT-inclusive amount into (net, tax), both in cents, net + tax == gross."""
    gross = q2(gross)
    rate = to_decimal(tax_percent)
    if rate <= 0:
        return gross, ZERO
    net = q2(gross / (1 + rate / HUNDRED))
    return net, gross - net


def floor_int(value) -> int:
    return int(to_decimal(value).to_integral_value(rounding=ROUND_FLOOR))


def as_float(value):
    """JSON serialization of stored amounts."""
    if value is None:
        return None
    return float(q2(value))
