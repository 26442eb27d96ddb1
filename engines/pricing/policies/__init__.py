"""
POS Pricing Engine: Price Resolution
======================================
One rule per payment mode. Exactly one applies to a cart line.

    wholesale          wholesale > discounted_price > price
    credit/discounted  discounted_price > price
    credit/regular     price
    cash, card         discounted_price > price

A candidate only counts when it is strictly positive.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Dict, Optional

from core.primitives.amounts import is_positive
from engines.catalog.models import Product
from engines.pricing.models import CreditPriceMode, PaymentMode, PriceResolution

PriceRule = Callable[[Product, CreditPriceMode], PriceResolution]


def _first_positive(product: Product, *candidates: Optional[Decimal]) -> PriceResolution:
    for candidate in candidates:
        if is_positive(candidate):
            return PriceResolution(price=candidate, sale_price=candidate)
    return PriceResolution(price=product.price, sale_price=None)


def wholesale_price_rule(product: Product, credit_mode: CreditPriceMode) -> PriceResolution:
    return _first_positive(product, product.wholesale, product.discounted_price)


def credit_price_rule(product: Product, credit_mode: CreditPriceMode) -> PriceResolution:
    if credit_mode is CreditPriceMode.REGULAR:
        return PriceResolution(price=product.price, sale_price=None)
    return _first_positive(product, product.discounted_price)


def retail_price_rule(product: Product, credit_mode: CreditPriceMode) -> PriceResolution:
    return _first_positive(product, product.discounted_price)


PRICE_RULES: Dict[PaymentMode, PriceRule] = {
    PaymentMode.WHOLESALE: wholesale_price_rule,
    PaymentMode.CREDIT: credit_price_rule,
    PaymentMode.CASH: retail_price_rule,
    PaymentMode.CARD: retail_price_rule,
}

_missing = set(PaymentMode) - set(PRICE_RULES)
if _missing:
    raise RuntimeError(f"No price rule for payment modes: {sorted(m.value for m in _missing)}")


def resolve_price(
    product: Product,
    payment_mode: PaymentMode,
    credit_mode: CreditPriceMode = CreditPriceMode.DISCOUNTED,
) -> PriceResolution:
    """Effective unit price of `product` under the given modes."""
    return PRICE_RULES[PaymentMode(payment_mode)](product, CreditPriceMode(credit_mode))
