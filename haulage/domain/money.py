"""
Money helpers shared by the pricing, ledger and statement code.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from haulage.core.exceptions import InvalidAmountError

ZERO = Decimal("0")
CENT = Decimal("0.01")

# Money columns are Numeric(12, 2)
MAX_AMOUNT = Decimal("1e10")


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert value to Decimal (floats go through ``str`` to avoid binary noise)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Any) -> Decimal:
    """Round half-up to two decimal places."""
    return (to_decimal(value) or ZERO).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(
    field: str,
    value: Any,
    allow_zero: bool = False,
    limit: Decimal = MAX_AMOUNT,
) -> Decimal:
    """
    Parse a user-entered amount, rounded to the cent.

    Raises InvalidAmountError for unparseable, non-finite, negative (or zero,
    unless ``allow_zero``) values and for values the column cannot hold.
    """
    try:
        amount = to_decimal(value)
        if amount is None or not amount.is_finite():
            raise InvalidAmountError(field, value)
        if abs(amount) >= limit:
            raise InvalidAmountError(field, value, reason=f"must be less than {limit:,.0f}")
        rounded = quantize_money(amount)
    except ArithmeticError:
        raise InvalidAmountError(field, value)

    if rounded < ZERO or (rounded == ZERO and not allow_zero):
        raise InvalidAmountError(field, value)
    return rounded
