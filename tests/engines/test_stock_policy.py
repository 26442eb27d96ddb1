"""
Tests for engines.cart.policies: stock and quantity validation.
"""

from decimal import Decimal

from core.commands import ReasonCode
from engines.cart.models import CartLine
from engines.cart.policies import (
    available_to_promise,
    check_stock,
    positive_quantity_policy,
    quantity_update_policy,
)
from engines.catalog.models import Product


def _product(stock):
    return Product(id="p1", name="Milk", price="200", stock_level=stock)


def _line(product, custom_product_id=None):
    return CartLine(line_id=product.id, product=product, quantity=Decimal("1"),
                    original_price=product.price, price=product.price,
                    custom_product_id=custom_product_id)


class TestCheckStock:
    def test_out_of_stock(self):
        reason = check_stock(_product("0"), Decimal("1"))
        assert reason.code == ReasonCode.OUT_OF_STOCK

    def test_negative_stock_is_out_of_stock(self):
        assert check_stock(_product("-2"), Decimal("1")).code == ReasonCode.OUT_OF_STOCK

    def test_insufficient_reports_available(self):
        reason = check_stock(_product("5"), Decimal("2"), committed=Decimal("4"))
        assert reason.code == ReasonCode.INSUFFICIENT_STOCK
        assert reason.details["available"] == Decimal("1")

    def test_exactly_available_is_allowed(self):
        assert check_stock(_product("5"), Decimal("1"), committed=Decimal("4")) is None

    def test_fractional_quantities(self):
        assert check_stock(_product("1.5"), Decimal("1.500")) is None
        assert check_stock(_product("1.5"), Decimal("1.501")) is not None

    def test_available_to_promise(self):
        assert available_to_promise(_product("5"), Decimal("3")) == Decimal("2")


class TestQuantityPolicies:
    def test_positive_quantity(self):
        assert positive_quantity_policy(Decimal("0.001")) is None
        assert positive_quantity_policy(Decimal("0")).code == ReasonCode.INVALID_QUANTITY

    def test_update_beyond_stock_rejected(self):
        line = _line(_product("5"))
        assert quantity_update_policy(line, Decimal("5")) is None
        assert quantity_update_policy(line, Decimal("6")).code == ReasonCode.INSUFFICIENT_STOCK

    def test_custom_lines_are_unconstrained(self):
        line = _line(_product("1"), custom_product_id="cp1")
        assert quantity_update_policy(line, Decimal("100000")) is None
