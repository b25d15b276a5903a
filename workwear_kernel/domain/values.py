"""
Values -- money coercion and boundary rounding.

Responsibility:
    Converts incoming prices to ``Decimal`` without passing through binary
    floating point and rounds to two decimal places at output boundaries.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Arithmetic on prices is exact Decimal arithmetic; rounding happens
      once, in ``round_money``, when an amount leaves the calculation
      (order totals, personal-payment amounts), never on intermediate
      products.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_PLACES = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """
    Coerce a price-like value to Decimal.

    Floats are converted through ``str`` so ``0.1`` becomes ``Decimal("0.1")``
    rather than its binary expansion.

    Raises:
        ValueError: If the value is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary value: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"Not a monetary value: {value!r}") from exc
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise ValueError(f"Not a monetary value: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a finite monetary value: {value!r}")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up. Output boundaries only."""
    return value.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)
