"""
POS Core Primitives
=====================
Engine-agnostic numeric building blocks shared by catalog,
cart and checkout.
"""

from core.primitives.amounts import (
    QUANTITY_STEP,
    ZERO,
    is_positive,
    optional_decimal,
    parse_amount_input,
    parse_quantity_input,
    round_quantity,
    to_decimal,
)

__all__ = [
    "QUANTITY_STEP",
    "ZERO",
    "is_positive",
    "optional_decimal",
    "parse_amount_input",
    "parse_quantity_input",
    "round_quantity",
    "to_decimal",
]
