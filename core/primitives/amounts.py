"""
POS Primitives: Amounts and Quantities
========================================
Money and quantities are Decimal throughout the engine.

Quantities may be fractional (weight / volume units) and are
held to 3 decimal places so repeated additions never drift.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

ZERO = Decimal("0")
QUANTITY_STEP = Decimal("0.001")


def to_decimal(value: Any, *, field_name: str = "value") -> Decimal:
    """
    Coerce int / str / float / Decimal to a finite Decimal.

    Floats go through str() so 0.1 stays 0.1.
    """
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be numeric, got bool.")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, (float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"{field_name} must be numeric, got {value!r}.") from None
    else:
        raise ValueError(
            f"{field_name} must be numeric, got {type(value).__name__}."
        )

    if not result.is_finite():
        raise ValueError(f"{field_name} must be finite, got {value!r}.")
    return result


def optional_decimal(value: Any, *, field_name: str = "value") -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return to_decimal(value, field_name=field_name)


def round_quantity(value: Any) -> Decimal:
    """Round a quantity to exactly 3 decimal places (half up)."""
    return to_decimal(value, field_name="quantity").quantize(
        QUANTITY_STEP, rounding=ROUND_HALF_UP
    )


def is_positive(value: Optional[Decimal]) -> bool:
    return value is not None and value > ZERO


def parse_amount_input(text: Optional[str]) -> Optional[Decimal]:
    """Operator-typed amount, or None when blank or not a number."""
    if text is None or not str(text).strip():
        return None
    try:
        return to_decimal(str(text), field_name="amount")
    except ValueError:
        return None


def parse_quantity_input(text: Optional[str]) -> Optional[Decimal]:
    """
    Operator-typed quantity.

    Returns None for blank, non-numeric or negative input; otherwise
    the value rounded to 3 decimal places.
    """
    value = parse_amount_input(text)
    if value is None or value < ZERO:
        return None
    return round_quantity(value)
