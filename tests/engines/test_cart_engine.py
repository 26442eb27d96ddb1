"""
Tests for engines.cart.services.CartEngine: lines, stock, discounts,
payment-mode repricing and events.
"""

from datetime import datetime, timezone
from decimal import Decimal

from core.commands import ReasonCode
from core.time import FixedClock
from engines.cart.events import (
    CART_CLEARED,
    CART_DISCOUNT_APPLIED,
    CART_LINE_ADDED,
    CART_LINE_REMOVED,
    CART_LINE_UPDATED,
    CART_PRICING_CHANGED,
    CART_RESTORED,
)
from engines.cart.models import Cart
from engines.cart.services import CartEngine
from engines.catalog.models import Product
from engines.pricing.models import CreditPriceMode, PaymentMode

T0 = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def _product(pid="p1", price="200", stock="10", discounted=None, wholesale=None):
    return Product(id=pid, name=f"Item {pid}", price=price, stock_level=stock,
                   discounted_price=discounted, wholesale=wholesale)


def _engine():
    return CartEngine(clock=FixedClock(T0))


# ══════════════════════════════════════════════════════════════
# ADDING LINES
# ══════════════════════════════════════════════════════════════

class TestAddItem:
    def test_new_line_priced_by_mode(self):
        engine = _engine()
        outcome = engine.add_item(_product(discounted="180"), 2)
        assert outcome.is_accepted
        line = engine.cart.lines[0]
        assert line.line_id == "p1"
        assert line.price == Decimal("180")
        assert line.sale_price == Decimal("180")
        assert line.original_price == Decimal("200")
        assert line.total == Decimal("360")

    def test_adding_same_product_merges(self):
        engine = _engine()
        engine.add_item(_product(), 2)
        engine.add_item(_product(), 3)
        assert engine.cart.item_count == 1
        assert engine.cart.lines[0].quantity == Decimal("5")
        assert engine.cart.lines[0].total == Decimal("1000")

    def test_fractional_quantities_rounded(self):
        engine = _engine()
        engine.add_item(_product(), "0.1")
        engine.add_item(_product(), "0.2")
        assert engine.cart.lines[0].quantity == Decimal("0.300")

    def test_over_stock_rejected_and_cart_unchanged(self):
        engine = _engine()
        product = _product(stock="5")
        assert engine.add_item(product, 4).is_accepted
        before = engine.snapshot()

        outcome = engine.add_item(product, 2)

        assert outcome.is_rejected
        assert outcome.code == ReasonCode.INSUFFICIENT_STOCK
        assert outcome.reason.details["available"] == Decimal("1")
        assert engine.cart == before

    def test_out_of_stock_rejected(self):
        engine = _engine()
        outcome = engine.add_item(_product(stock="0"), 1)
        assert outcome.code == ReasonCode.OUT_OF_STOCK
        assert engine.cart.is_empty

    def test_invalid_quantities_rejected(self):
        engine = _engine()
        assert engine.add_item(_product(), "abc").code == ReasonCode.INVALID_QUANTITY
        assert engine.add_item(_product(), 0).code == ReasonCode.INVALID_QUANTITY
        assert engine.cart.is_empty

    def test_merge_preserves_applied_sale_price(self):
        engine = _engine()
        engine.add_item(_product(discounted="180"), 1)
        engine.add_item(_product(discounted="150"), 1)
        line = engine.cart.lines[0]
        assert line.sale_price == Decimal("180")
        assert line.price == Decimal("180")

    def test_original_price_never_overwritten(self):
        engine = _engine()
        engine.add_item(_product(price="200"), 1)
        engine.add_item(_product(price="220"), 1)
        assert engine.cart.lines[0].original_price == Decimal("200")

    def test_catalog_price_change_does_not_leak_into_repricing(self):
        engine = _engine()
        engine.add_item(_product(price="200"), 1)
        engine.add_item(_product(price="220"), 1)
        line = engine.cart.lines[0]
        assert line.price == Decimal("200")

        engine.set_payment_mode(PaymentMode.CARD)
        assert engine.cart.lines[0].price == Decimal("200")
        assert engine.subtotal == Decimal("400")

    def test_merge_refreshes_product_snapshot(self):
        engine = _engine()
        engine.add_item(_product(stock="2"), 1)
        engine.add_item(_product(stock="10"), 1)
        assert engine.update_quantity("p1", 8).is_accepted


class TestCustomItem:
    def test_custom_line(self):
        engine = _engine()
        outcome = engine.add_custom_item("cp1", "Gift wrap", "150", 2)
        assert outcome.is_accepted
        line = engine.cart.lines[0]
        assert line.line_id == "custom-cp1"
        assert line.custom_product_id == "cp1"
        assert line.product_id is None
        assert line.product.category_id == "custom"
        assert line.total == Decimal("300")

    def test_custom_line_has_no_stock_limit(self):
        engine = _engine()
        engine.add_custom_item("cp1", "Gift wrap", "150", 1)
        assert engine.update_quantity("custom-cp1", 50000).is_accepted

    def test_invalid_custom_items(self):
        engine = _engine()
        assert engine.add_custom_item("cp1", " ", "10").code == ReasonCode.INVALID_CUSTOM_ITEM
        assert engine.add_custom_item("cp1", "Bag", "0").code == ReasonCode.INVALID_CUSTOM_ITEM
        assert engine.add_custom_item("cp1", "Bag", "x").code == ReasonCode.INVALID_CUSTOM_ITEM
        assert engine.add_custom_item("cp1", "Bag", "10", 0).code == ReasonCode.INVALID_CUSTOM_ITEM
        assert engine.cart.is_empty


# ══════════════════════════════════════════════════════════════
# UPDATING AND REMOVING
# ══════════════════════════════════════════════════════════════

class TestUpdateAndRemove:
    def test_update_quantity(self):
        engine = _engine()
        engine.add_item(_product(), 1)
        assert engine.update_quantity("p1", "4").is_accepted
        assert engine.cart.lines[0].quantity == Decimal("4")
        assert engine.cart.lines[0].total == Decimal("800")

    def test_update_to_zero_removes(self):
        engine = _engine()
        engine.add_item(_product(), 1)
        assert engine.update_quantity("p1", 0).is_accepted
        assert engine.cart.is_empty

    def test_update_beyond_stock_rejected(self):
        engine = _engine()
        engine.add_item(_product(stock="3"), 1)
        outcome = engine.update_quantity("p1", 4)
        assert outcome.code == ReasonCode.INSUFFICIENT_STOCK
        assert engine.cart.lines[0].quantity == Decimal("1")

    def test_unknown_line(self):
        engine = _engine()
        assert engine.update_quantity("nope", 1).code == ReasonCode.LINE_NOT_FOUND
        assert engine.remove_item("nope").code == ReasonCode.LINE_NOT_FOUND

    def test_remove_keeps_order_of_others(self):
        engine = _engine()
        for pid in ("a", "b", "c"):
            engine.add_item(_product(pid=pid), 1)
        engine.remove_item("b")
        assert [line.line_id for line in engine.cart.lines] == ["a", "c"]

    def test_clear_resets_everything_and_drops_history(self):
        engine = _engine()
        calls = []
        engine.set_history_hook(lambda: calls.append("cleared"))
        engine.add_item(_product(), 1)
        engine.set_payment_mode(PaymentMode.CREDIT, CreditPriceMode.REGULAR)
        engine.select_customer("c1")
        engine.set_partial_payment(True, "50")
        engine.apply_bulk_discount("amount", 10)

        engine.clear()

        assert engine.cart == Cart()
        assert calls == ["cleared"]


# ══════════════════════════════════════════════════════════════
# DISCOUNTS AND TOTALS
# ══════════════════════════════════════════════════════════════

class TestDiscounts:
    def test_amount_discount(self):
        engine = _engine()
        engine.add_item(_product(price="200"), 3)
        engine.apply_bulk_discount("amount", 50)
        assert engine.subtotal == Decimal("600")
        assert engine.current_total == Decimal("550")

    def test_percentage_over_100_clamps_to_subtotal(self):
        engine = _engine()
        engine.add_item(_product(price="100"), 1)
        engine.apply_bulk_discount("percentage", 150)
        assert engine.cart.discount_amount == Decimal("100")
        assert engine.current_total == Decimal("0")

    def test_percentage_discount(self):
        engine = _engine()
        engine.add_item(_product(price="200"), 1)
        engine.apply_bulk_discount("percentage", "10")
        assert engine.cart.discount_amount == Decimal("20")

    def test_negative_discount_clamps_to_zero(self):
        engine = _engine()
        engine.add_item(_product(), 1)
        engine.apply_bulk_discount("amount", -30)
        assert engine.cart.discount_amount == Decimal("0")

    def test_invalid_discount_rejected(self):
        engine = _engine()
        assert engine.apply_bulk_discount("bogus", 5).code == ReasonCode.INVALID_DISCOUNT
        assert engine.apply_bulk_discount("amount", "x").code == ReasonCode.INVALID_DISCOUNT

    def test_total_never_negative_after_removal(self):
        engine = _engine()
        engine.add_item(_product(pid="a", price="100"), 1)
        engine.add_item(_product(pid="b", price="100"), 1)
        engine.apply_bulk_discount("amount", 150)
        engine.remove_item("b")
        assert engine.current_total == Decimal("0")
        assert engine.cart.discount_amount == Decimal("100")

    def test_discount_reclamped_when_quantity_drops(self):
        engine = _engine()
        engine.add_item(_product(price="100"), 3)
        engine.apply_bulk_discount("amount", 250)
        engine.update_quantity("p1", 2)
        assert engine.cart.discount_amount == Decimal("200")
        assert engine.current_total == Decimal("0")

    def test_clear_discount(self):
        engine = _engine()
        engine.add_item(_product(), 1)
        engine.apply_bulk_discount("amount", 50)
        engine.clear_discount()
        assert engine.current_total == Decimal("200")


# ══════════════════════════════════════════════════════════════
# PAYMENT MODE
# ══════════════════════════════════════════════════════════════

class TestPaymentMode:
    def test_cash_to_wholesale_reprices_without_touching_quantity(self):
        engine = _engine()
        engine.add_item(_product(price="100", discounted="90", wholesale="80"), 3)
        assert engine.cart.lines[0].total == Decimal("270")

        engine.set_payment_mode(PaymentMode.WHOLESALE)

        line = engine.cart.lines[0]
        assert line.quantity == Decimal("3")
        assert line.price == Decimal("80")
        assert line.sale_price == Decimal("80")
        assert line.total == Decimal("240")

    def test_credit_regular_uses_original_price(self):
        engine = _engine()
        engine.add_item(_product(price="100", discounted="90"), 1)
        engine.set_payment_mode("credit", "regular")
        line = engine.cart.lines[0]
        assert line.price == Decimal("100")
        assert line.sale_price is None

    def test_set_credit_mode_reprices(self):
        engine = _engine()
        engine.add_item(_product(price="100", discounted="90"), 1)
        engine.set_payment_mode(PaymentMode.CREDIT, CreditPriceMode.REGULAR)
        engine.set_credit_mode(CreditPriceMode.DISCOUNTED)
        assert engine.cart.lines[0].price == Decimal("90")

    def test_leaving_cash_resets_received_amount(self):
        engine = _engine()
        engine.add_item(_product(), 1)
        engine.set_received_amount("500")
        engine.set_payment_mode(PaymentMode.CASH)
        assert engine.cart.received_amount == "500"
        engine.set_payment_mode(PaymentMode.CARD)
        assert engine.cart.received_amount == ""

    def test_custom_lines_keep_their_price(self):
        engine = _engine()
        engine.add_custom_item("cp1", "Gift wrap", "150", 1)
        engine.set_payment_mode(PaymentMode.WHOLESALE)
        assert engine.cart.lines[0].price == Decimal("150")


# ══════════════════════════════════════════════════════════════
# EVENTS AND SNAPSHOTS
# ══════════════════════════════════════════════════════════════

class TestEvents:
    def test_every_mutation_emits(self):
        engine = _engine()
        events = []
        engine.subscribe(lambda event_type, cart: events.append(event_type))

        engine.add_item(_product(), 1)
        engine.add_item(_product(), 1)
        engine.apply_bulk_discount("amount", 10)
        engine.set_payment_mode(PaymentMode.CARD)
        engine.remove_item("p1")
        engine.clear()

        assert events == [
            CART_LINE_ADDED,
            CART_LINE_UPDATED,
            CART_DISCOUNT_APPLIED,
            CART_PRICING_CHANGED,
            CART_LINE_REMOVED,
            CART_CLEARED,
        ]

    def test_rejections_do_not_emit(self):
        engine = _engine()
        events = []
        engine.subscribe(lambda event_type, cart: events.append(event_type))
        engine.add_item(_product(stock="0"), 1)
        assert events == []

    def test_unsubscribe(self):
        engine = _engine()
        events = []
        unsubscribe = engine.subscribe(lambda event_type, cart: events.append(event_type))
        unsubscribe()
        engine.add_item(_product(), 1)
        assert events == []

    def test_failing_listener_does_not_break_engine(self):
        engine = _engine()

        def broken(event_type, cart):
            raise RuntimeError("display crashed")

        engine.subscribe(broken)
        assert engine.add_item(_product(), 1).is_accepted
        assert engine.cart.item_count == 1

    def test_listeners_receive_snapshots(self):
        engine = _engine()
        seen = []
        engine.subscribe(lambda event_type, cart: seen.append(cart))
        engine.add_item(_product(), 1)
        seen[0].lines.clear()
        assert engine.cart.item_count == 1

    def test_load_replaces_cart(self):
        source = _engine()
        source.add_item(_product(), 2)
        engine = _engine()
        events = []
        engine.subscribe(lambda event_type, cart: events.append(event_type))

        engine.load(source.snapshot())

        assert engine.cart == source.cart
        assert engine.cart is not source.cart
        assert events == [CART_RESTORED]


# ══════════════════════════════════════════════════════════════
# CHECKOUT LOCK
# ══════════════════════════════════════════════════════════════

class TestCheckoutLock:
    def test_mutations_refused_while_checking_out(self):
        engine = _engine()
        engine.add_item(_product(), 1)
        events = []
        engine.subscribe(lambda event_type, cart: events.append(event_type))
        before = engine.snapshot()

        engine.begin_checkout()
        assert engine.checkout_in_progress
        assert engine.add_item(_product(pid="p2"), 1).code == ReasonCode.CHECKOUT_IN_PROGRESS
        assert engine.update_quantity("p1", 3).code == ReasonCode.CHECKOUT_IN_PROGRESS
        assert engine.remove_item("p1").code == ReasonCode.CHECKOUT_IN_PROGRESS
        assert engine.set_payment_mode(PaymentMode.CARD).code == ReasonCode.CHECKOUT_IN_PROGRESS
        assert engine.clear().code == ReasonCode.CHECKOUT_IN_PROGRESS
        assert engine.cart == before
        assert events == []

        engine.end_checkout()
        assert engine.add_item(_product(pid="p2"), 1).is_accepted
