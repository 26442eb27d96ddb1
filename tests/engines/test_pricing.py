"""
Tests for engines.pricing: one price rule per payment mode.
"""

from decimal import Decimal

import pytest

from engines.catalog.models import Product
from engines.pricing.models import CreditPriceMode, PaymentMode
from engines.pricing.policies import PRICE_RULES, resolve_price


def _product(discounted=None, wholesale=None):
    return Product(id="p1", name="Rice 5kg", price="100", stock_level="10",
                   discounted_price=discounted, wholesale=wholesale)


class TestResolvePrice:
    @pytest.mark.parametrize("mode,credit_mode,expected_price,expected_sale", [
        (PaymentMode.CASH, CreditPriceMode.DISCOUNTED, "90", "90"),
        (PaymentMode.CARD, CreditPriceMode.DISCOUNTED, "90", "90"),
        (PaymentMode.WHOLESALE, CreditPriceMode.DISCOUNTED, "80", "80"),
        (PaymentMode.CREDIT, CreditPriceMode.DISCOUNTED, "90", "90"),
        (PaymentMode.CREDIT, CreditPriceMode.REGULAR, "100", None),
    ])
    def test_modes_with_all_prices(self, mode, credit_mode, expected_price, expected_sale):
        result = resolve_price(_product(discounted="90", wholesale="80"), mode, credit_mode)
        assert result.price == Decimal(expected_price)
        assert result.sale_price == (Decimal(expected_sale) if expected_sale else None)

    def test_wholesale_falls_back_to_discounted(self):
        result = resolve_price(_product(discounted="90"), PaymentMode.WHOLESALE)
        assert result.price == Decimal("90")

    def test_fallback_to_catalog_price_has_no_sale_price(self):
        for mode in PaymentMode:
            result = resolve_price(_product(), mode)
            assert result.price == Decimal("100")
            assert result.sale_price is None

    def test_zero_prices_count_as_unset(self):
        result = resolve_price(_product(discounted="0", wholesale="0"), PaymentMode.WHOLESALE)
        assert result.price == Decimal("100")
        assert result.sale_price is None

    def test_accepts_mode_values(self):
        result = resolve_price(_product(discounted="90"), "credit", "regular")
        assert result.price == Decimal("100")

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            resolve_price(_product(), "barter")

    def test_every_mode_has_a_rule(self):
        assert set(PRICE_RULES) == set(PaymentMode)
