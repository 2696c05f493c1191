"""
Money helpers.

WHAT: Decimal coercion, validation and rounding for currency amounts
WHY: Prices must round half-up to whole currency units, which float and
     round() (banker's rounding) do not give us
HOW: Decimal arithmetic with an explicit quantum
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

Number = Union[Decimal, int, float, str]

WHOLE_UNIT = Decimal("1")
CENT = Decimal("0.01")


def to_money(value: Number) -> Decimal:
    """
    Coerce a number to Decimal.

    Floats go through str() so 0.7 becomes Decimal("0.7") rather than its
    binary expansion.

    Raises:
        ValueError: If the value cannot be parsed as a number
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Not a monetary amount: {value!r}") from e


def is_valid_amount(value: Decimal) -> bool:
    """True for finite, non-negative amounts."""
    return value.is_finite() and value >= 0


def round_money(value: Number, unit: Decimal = WHOLE_UNIT) -> Decimal:
    """Round half-up to the nearest multiple of ``unit``."""
    amount = to_money(value)
    return (amount / unit).quantize(Decimal("1"), rounding=ROUND_HALF_UP) * unit


def format_money(value: Decimal) -> str:
    """Render an amount for user-facing text: $94 or $94.50."""
    if value == value.to_integral_value():
        return f"${value:,.0f}"
    return f"${value:,.2f}"
