"""
POS Cart Engine: Cart Models
==============================
Transaction-local state for the sale being rung up.

A CartLine carries a snapshot of the product as it was when added
(or last merged). `total` is derived, never stored, so
total == quantity * price holds after every mutation.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from core.primitives.amounts import ZERO
from engines.catalog.models import Product
from engines.pricing.models import CreditPriceMode, PaymentMode

CUSTOM_LINE_PREFIX = "custom-"
CUSTOM_CATEGORY_ID = "custom"
CUSTOM_STOCK_LEVEL = Decimal("9999")


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    AMOUNT = "amount"


@dataclass(frozen=True)
class LineDiscount:
    """Per-line discount tag. Discounting happens at cart level, so this stays zero."""

    type: DiscountType = DiscountType.AMOUNT
    value: Decimal = ZERO


# ══════════════════════════════════════════════════════════════
# CART LINE
# ══════════════════════════════════════════════════════════════

@dataclass
class CartLine:
    line_id: str
    product: Product
    quantity: Decimal
    original_price: Decimal
    price: Decimal
    sale_price: Optional[Decimal] = None
    discount: LineDiscount = field(default_factory=LineDiscount)
    custom_product_id: Optional[str] = None

    @property
    def total(self) -> Decimal:
        return self.quantity * self.price

    @property
    def name(self) -> str:
        return self.product.name

    @property
    def stock_level(self) -> Decimal:
        return self.product.stock_level

    @property
    def is_custom(self) -> bool:
        return self.custom_product_id is not None

    @property
    def product_id(self) -> Optional[str]:
        """Catalog product id, or None for custom lines."""
        return None if self.is_custom else self.product.id


# ══════════════════════════════════════════════════════════════
# CART
# ══════════════════════════════════════════════════════════════

@dataclass
class Cart:
    """
    The open sale.

    `received_amount` and `partial_payment_amount` hold the raw text
    the operator typed; they are parsed only at checkout.
    """

    lines: List[CartLine] = field(default_factory=list)
    discount_amount: Decimal = ZERO
    payment_mode: PaymentMode = PaymentMode.CASH
    credit_mode: CreditPriceMode = CreditPriceMode.DISCOUNTED
    customer_id: Optional[str] = None
    received_amount: str = ""
    is_partial_payment: bool = False
    partial_payment_amount: str = ""

    @property
    def subtotal(self) -> Decimal:
        return sum((line.price * line.quantity for line in self.lines), ZERO)

    @property
    def current_total(self) -> Decimal:
        return max(ZERO, self.subtotal - self.discount_amount)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        return len(self.lines)

    def find_line(self, line_id: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        return None

    def committed_quantity(self, line_id: str) -> Decimal:
        line = self.find_line(line_id)
        return line.quantity if line is not None else ZERO

    def copy(self) -> "Cart":
        return copy.deepcopy(self)
