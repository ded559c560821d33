"""
Module: billing_kernel.db.types
Responsibility: Annotated type aliases and helpers for money, rate and
    percentage columns.  Centralizes precision and rounding so that every
    model, engine and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and billing_engines.  MUST NOT import from any of
    those layers.

Invariants enforced:
    - Money amounts are stored as Numeric(15, 2).
    - Tax rates and percentages are stored as Numeric(5, 2).
    - round_money() is the ONLY sanctioned rounding function.  Default mode
      is ROUND_HALF_UP.
    - No floats anywhere.  to_decimal() converts floats via str() so binary
      representation noise never leaks into a stored amount.

Failure modes:
    - decimal.InvalidOperation from to_decimal() on non-numeric input.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount, 15 digits / 2 decimal places
Money = Annotated[Decimal, Numeric(15, 2)]

# Tax rate or fee percentage (e.g. 9.00, 18.00, 65.00)
Rate = Annotated[Decimal, Numeric(5, 2)]

# Hourly billing / cost rate
HourlyRate = Annotated[Decimal, Numeric(10, 2)]

# Multiplier applied to raw hourly cost
Multiplier = Annotated[Decimal, Numeric(6, 4)]

ShortCode = Annotated[str, String(50)]
Name = Annotated[str, String(255)]
LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
RATE_FRACTION_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places (default 2).
        rounding: Rounding mode (default ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    if decimal_places == 0:
        return value.quantize(Decimal("1"), rounding=rounding)
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def rate_fraction(rate_percent: Decimal) -> Decimal:
    """Convert a percentage (18.00) to a 4-place fraction (0.1800), HALF_UP."""
    return round_money(rate_percent / HUNDRED, RATE_FRACTION_PLACES)


def to_decimal(value: object) -> Decimal:
    """
    Convert an int, float, str or Decimal to Decimal.

    ``None`` maps to zero.  Floats go through ``str()`` first.

    Raises:
        TypeError: For any other type.
        decimal.InvalidOperation: For a non-numeric string.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError(f"Cannot convert bool to Decimal: {value!r}")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str):
        return Decimal(value.strip())
    raise TypeError(f"Cannot convert {type(value).__name__} to Decimal")
