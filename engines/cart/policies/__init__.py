"""
POS Cart Engine: Policies
===========================
Validation policies for cart mutations. Each returns None when the
change is allowed, or a RejectionReason explaining the refusal.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from core.commands.rejection import ReasonCode, RejectionReason
from core.primitives.amounts import ZERO
from engines.catalog.models import Product
from engines.cart.models import CartLine


def available_to_promise(product: Product, committed: Decimal) -> Decimal:
    """On-hand stock not yet committed to the cart."""
    return product.stock_level - committed


def check_stock(
    product: Product,
    requested_additional: Decimal,
    committed: Decimal = ZERO,
) -> Optional[RejectionReason]:
    """
    Reject adding `requested_additional` units when the product is
    out of stock or the cart would hold more than is on hand.
    """
    if product.stock_level <= ZERO:
        return RejectionReason(
            code=ReasonCode.OUT_OF_STOCK,
            message=f"{product.name} is out of stock.",
            policy_name="check_stock",
            details={"product_id": product.id},
        )

    available = available_to_promise(product, committed)
    if requested_additional > available:
        return RejectionReason(
            code=ReasonCode.INSUFFICIENT_STOCK,
            message=(
                f"Only {product.stock_level} of {product.name} available "
                f"({committed} already in cart)."
            ),
            policy_name="check_stock",
            details={
                "product_id": product.id,
                "available": available,
                "stock_level": product.stock_level,
            },
        )
    return None


def positive_quantity_policy(quantity: Decimal) -> Optional[RejectionReason]:
    if quantity <= ZERO:
        return RejectionReason(
            code=ReasonCode.INVALID_QUANTITY,
            message="Quantity must be greater than zero.",
            policy_name="positive_quantity_policy",
            details={"quantity": quantity},
        )
    return None


def quantity_update_policy(line: CartLine, new_quantity: Decimal) -> Optional[RejectionReason]:
    """A line may never hold more than its product's stock level. Custom lines are exempt."""
    if line.is_custom:
        return None
    if new_quantity > line.stock_level:
        return RejectionReason(
            code=ReasonCode.INSUFFICIENT_STOCK,
            message=f"Only {line.stock_level} of {line.name} available.",
            policy_name="quantity_update_policy",
            details={
                "line_id": line.line_id,
                "available": line.stock_level,
            },
        )
    return None
