"""
Fixed-point money helpers

All amounts are Decimal. Amounts are stored with two decimal places and
compared after quantizing; floats are rejected at the edges.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Convert to a two-place Decimal

    Raises:
        ValueError: For floats or values that are not numbers
    """
    if isinstance(value, float):
        raise ValueError("Monetary amounts must not be floats; pass a str or Decimal")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a monetary amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(amounts) -> Decimal:
    """Sum an iterable of amounts, returning 0.00 for an empty one"""
    total = ZERO
    for amount in amounts:
        total += amount
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def from_payload(value: str | int | None) -> Decimal:
    """Read an amount stored as a JSON string back into a Decimal"""
    if value is None:
        return ZERO
    return Decimal(str(value))


def format_money(amount: Decimal) -> str:
    """Render as $1,234.56 (negative as -$12.00)"""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"
