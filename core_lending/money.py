"""
Money Helpers

Fixed-point helpers for monetary values. Every amount is a Decimal with two
decimal places, and every derived value is rounded half-up. NEVER uses float.
"""

from decimal import Decimal, ROUND_HALF_UP, getcontext
from typing import Union

# High precision for intermediate financial calculations
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

Number = Union[Decimal, int, str]


def to_decimal(value: Number) -> Decimal:
    """Convert a value to Decimal without passing through float"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("Monetary values must not be floats")
    return Decimal(str(value))


def quantize_money(value: Number) -> Decimal:
    """Round to two decimal places using ROUND_HALF_UP"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
