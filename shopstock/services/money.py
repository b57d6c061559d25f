"""
Money Utilities - Safe Decimal operations for monetary values.

Avoids float precision issues by using Decimal throughout. Balances and prices
are persisted as strings so documents round-trip without loss.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

MONEY_PRECISION = Decimal("0.01")

Number = Union[str, int, float, Decimal]


def to_decimal(value: Union[Number, None]) -> Decimal:
    """
    Convert any value to Decimal safely.

    Args:
        value: Value to convert (str, int, float, Decimal, or None)

    Returns:
        Decimal representation of the value, or Decimal("0") if None/invalid
    """
    if value is None:
        return Decimal("0")

    if isinstance(value, Decimal):
        return value

    try:
        if isinstance(value, float):
            # Via str to keep the shortest repr, not the binary expansion
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")


def round_money(value: Number) -> Decimal:
    """Round monetary value to cents."""
    return to_decimal(value).quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def multiply(value: Number, factor: Number) -> Decimal:
    """Safe multiplication of monetary value by a factor."""
    return to_decimal(value) * to_decimal(factor)


def line_total(unit_price: Number, quantity: int) -> Decimal:
    """Total price of `quantity` units, rounded to cents."""
    return round_money(multiply(unit_price, quantity))


def to_float(value: Number) -> float:
    """
    Convert Decimal to float for JSON serialization or external APIs.

    Use only at API boundaries, not for internal calculations.
    """
    return float(to_decimal(value))


def compare(a: Number, b: Number) -> int:
    """
    Compare two monetary values.

    Returns:
        -1 if a < b, 0 if a == b, 1 if a > b
    """
    diff = to_decimal(a) - to_decimal(b)
    if diff < 0:
        return -1
    elif diff > 0:
        return 1
    return 0
