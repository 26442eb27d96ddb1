"""
POS Pricing Engine: Modes
===========================
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional


class PaymentMode(Enum):
    CASH = "cash"
    CARD = "card"
    CREDIT = "credit"
    WHOLESALE = "wholesale"


class CreditPriceMode(Enum):
    """Which price list a credit sale uses."""

    DISCOUNTED = "discounted"
    REGULAR = "regular"


@dataclass(frozen=True)
class PriceResolution:
    """
    Effective unit price for one product under one mode.

    `sale_price` is the promotional or wholesale price actually
    applied, or None when the catalog price was used.
    """

    price: Decimal
    sale_price: Optional[Decimal] = None
