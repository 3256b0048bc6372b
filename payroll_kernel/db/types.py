"""
Module: payroll_kernel.db.types
Responsibility: The money helpers shared by every engine and model.
    Centralizes precision and rounding so that the resolver,
    the allocator and the ORM all agree on what a payroll amount is.
Architecture position: Kernel > DB.  May be imported by domain/, engines and
    modules.  MUST NOT import from any of those layers.

Invariants enforced:
    - Monetary values are Decimal, never float.  to_decimal() converts every
      accepted input through str so no binary-float error enters a computation.
    - round_money() (2 places, ROUND_HALF_UP) is the ONLY sanctioned rounding
      function for payroll figures.

Failure modes:
    - ValueError on a value that cannot be read as a number.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any, default: Decimal | None = ZERO) -> Decimal:
    """
    Convert ``value`` to Decimal through its string form.

    ``None`` yields ``default``; pass ``default=None`` to reject missing
    values instead.

    Raises:
        ValueError: If value is None with no default, or is not numeric.
    """
    if value is None:
        if default is None:
            raise ValueError("Missing numeric value")
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric value: {value!r}")
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Not a numeric value: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite value: {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for payroll figures.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def sum_money(values: Iterable[Decimal]) -> Decimal:
    """Sum Decimals and round the total to cents."""
    return round_money(sum(values, ZERO))
