"""
Money helpers.

Amounts are dollars carried as floats; every accumulation step goes through
round_money so totals do not depend on float summation order.
"""
from decimal import Decimal, ROUND_HALF_UP

_CENT = Decimal("0.01")


def round_money(value: float) -> float:
    """Round a dollar amount to cents, half-up."""
    return float(Decimal(repr(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def to_cents(value: float) -> int:
    """Convert a dollar amount to integer cents for the payment gateway."""
    return int((Decimal(repr(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
