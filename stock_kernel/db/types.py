"""
Module: stock_kernel.db.types
Responsibility: Annotated column type aliases and the sanctioned rounding
    helpers for money, so every model and service uses identical precision.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and engines.  MUST NOT import from any of those.

Invariants enforced:
    - No floats for monetary values.  All amounts are Decimal.
    - round_money() is the ONLY rounding function for reported amounts.

Failure modes:
    - decimal.InvalidOperation on non-numeric input to to_decimal().
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Integer, Numeric, String

# Monetary amount: 38 digits, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Whole-unit stock quantity
Quantity = Annotated[int, Integer]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, String(64)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(2000)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Decimal | int | str | None) -> Decimal:
    """
    Coerce a stored or user-supplied amount to Decimal.

    None becomes zero.  Floats are rejected: they would silently carry
    binary rounding error into money.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        raise TypeError("float is not accepted for monetary values; use Decimal or str")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the reporting precision.

    Args:
        value: Amount to round.
        decimal_places: Places to keep (default 2).
        rounding: Decimal rounding mode (default ROUND_HALF_UP).

    Returns:
        Rounded Decimal.
    """
    quantizer = Decimal(10) ** -decimal_places
    return value.quantize(quantizer, rounding=rounding)
