# rotur/core/money.py
"""
Credit arithmetic.

Balances are decimals with two places. They are stored and sent as JSON
numbers, so values leave this module as floats that were rounded through
Decimal; all arithmetic happens on Decimal to keep sums exact.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from rotur.core.errors import BadInput

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Coerce a stored balance (number, numeric string, or missing) to a finite Decimal."""
    if value is None or isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            d = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return Decimal(0)
    if not d.is_finite():
        return Decimal(0)
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


def to_credits(value) -> float:
    return float(to_decimal(value))


def add(a, b) -> float:
    return float((to_decimal(a) + to_decimal(b)).quantize(CENT, rounding=ROUND_HALF_UP))


def sub(a, b) -> float:
    return float((to_decimal(a) - to_decimal(b)).quantize(CENT, rounding=ROUND_HALF_UP))


def percent_of(amount, percent: int) -> float:
    value = to_decimal(amount) * Decimal(percent) / Decimal(100)
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


def parse_amount(value, minimum: str = "0.01") -> float:
    """Validate a client-supplied amount; raises BadInput below the minimum or when non-numeric."""
    if isinstance(value, bool):
        raise BadInput("Amount must be a number")
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise BadInput("Amount must be a number")
    if not d.is_finite():
        raise BadInput("Amount must be a number")
    d = d.quantize(CENT, rounding=ROUND_HALF_UP)
    if d < Decimal(minimum):
        raise BadInput(f"Minimum amount is {minimum}")
    return float(d)
