"""
POS Cart Engine: Application Service
======================================
The single open cart of a terminal.

Operations return an Outcome. A rejected operation leaves the
cart exactly as it was; an accepted one notifies subscribers with
one of the cart.* event types.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable, List, Optional

from core.commands.outcomes import Outcome
from core.commands.rejection import ReasonCode, RejectionReason
from core.primitives.amounts import ZERO, round_quantity, to_decimal
from core.time.clock import Clock, SystemClock
from engines.catalog.models import Product
from engines.cart.events import (
    CART_CLEARED,
    CART_DISCOUNT_APPLIED,
    CART_LINE_ADDED,
    CART_LINE_REMOVED,
    CART_LINE_UPDATED,
    CART_PAYMENT_UPDATED,
    CART_PRICING_CHANGED,
    CART_RESTORED,
)
from engines.cart.models import (
    CUSTOM_CATEGORY_ID,
    CUSTOM_LINE_PREFIX,
    CUSTOM_STOCK_LEVEL,
    Cart,
    CartLine,
    DiscountType,
)
from engines.cart.policies import (
    check_stock,
    positive_quantity_policy,
    quantity_update_policy,
)
from engines.pricing.models import CreditPriceMode, PaymentMode
from engines.pricing.policies import resolve_price

logger = logging.getLogger("pos.cart")

CartListener = Callable[[str, Cart], None]


def _invalid(code: str, message: str, policy_name: str, **details: Any) -> Outcome:
    return Outcome.rejected(RejectionReason(
        code=code, message=message, policy_name=policy_name, details=details,
    ))


def _coerce_quantity(value: Any) -> Optional[Decimal]:
    try:
        return round_quantity(value)
    except ValueError:
        return None


class CartEngine:
    """
    Usage:
        engine = CartEngine()
        engine.add_item(product, Decimal("2"))
        engine.set_payment_mode(PaymentMode.WHOLESALE)
        engine.cart.current_total
    """

    def __init__(self, cart: Optional[Cart] = None, *, clock: Optional[Clock] = None):
        self._cart = cart.copy() if cart is not None else Cart()
        self._clock = clock or SystemClock()
        self._listeners: List[CartListener] = []
        self._history_hook: Optional[Callable[[], None]] = None
        self._checkout_in_progress = False

    # ── read side ─────────────────────────────────────────────

    @property
    def cart(self) -> Cart:
        """Live cart. Mutate only through the engine."""
        return self._cart

    def snapshot(self) -> Cart:
        return self._cart.copy()

    @property
    def subtotal(self) -> Decimal:
        return self._cart.subtotal

    @property
    def current_total(self) -> Decimal:
        return self._cart.current_total

    # ── subscriptions ─────────────────────────────────────────

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_history_hook(self, hook: Optional[Callable[[], None]]) -> None:
        """Called whenever the cart is cleared, to drop persisted history."""
        self._history_hook = hook

    # ══════════════════════════════════════════════════════════
    # LINES
    # ══════════════════════════════════════════════════════════

    def add_item(self, product: Product, quantity: Any = 1) -> Outcome:
        refused = self._refuse_during_checkout("add_item")
        if refused is not None:
            return refused
        qty = _coerce_quantity(quantity)
        if qty is None:
            return _invalid(
                ReasonCode.INVALID_QUANTITY, f"Invalid quantity {quantity!r}.",
                "add_item", quantity=quantity,
            )
        reason = positive_quantity_policy(qty)
        if reason is not None:
            return Outcome.rejected(reason)

        existing = self._cart.find_line(product.id)
        committed = existing.quantity if existing is not None else ZERO
        reason = check_stock(product, qty, committed)
        if reason is not None:
            logger.info(f"add rejected for {product.id}: {reason.code}")
            return Outcome.rejected(reason)

        if existing is not None:
            if existing.sale_price is None:
                existing.sale_price = self._resolve(product).sale_price
            existing.price = (
                existing.sale_price
                if existing.sale_price is not None
                else existing.original_price
            )
            existing.quantity = round_quantity(existing.quantity + qty)
            existing.product = product
            self._emit(CART_LINE_UPDATED)
        else:
            resolution = self._resolve(product)
            self._cart.lines.append(CartLine(
                line_id=product.id,
                product=product,
                quantity=qty,
                original_price=product.price,
                price=resolution.price,
                sale_price=resolution.sale_price,
            ))
            self._emit(CART_LINE_ADDED)
        return Outcome.accepted()

    def add_custom_item(
        self,
        custom_product_id: str,
        name: str,
        price: Any,
        quantity: Any = 1,
    ) -> Outcome:
        """
        Ad-hoc line for something not in the catalog.

        The line id is "custom-<custom_product_id>"; stock is never
        checked. Name must be non-blank, price and quantity positive.
        """
        refused = self._refuse_during_checkout("add_custom_item")
        if refused is not None:
            return refused
        if not name or not str(name).strip():
            return _invalid(
                ReasonCode.INVALID_CUSTOM_ITEM, "Custom item needs a name.", "add_custom_item",
            )
        qty = _coerce_quantity(quantity)
        if qty is None or qty <= ZERO:
            return _invalid(
                ReasonCode.INVALID_CUSTOM_ITEM, "Please enter a valid quantity.",
                "add_custom_item", quantity=quantity,
            )
        try:
            unit_price = to_decimal(price, field_name="price")
        except ValueError:
            unit_price = None
        if unit_price is None or unit_price <= ZERO:
            return _invalid(
                ReasonCode.INVALID_CUSTOM_ITEM, "Please enter a valid price.",
                "add_custom_item", price=price,
            )

        line_id = f"{CUSTOM_LINE_PREFIX}{custom_product_id}"
        now = self._clock.now_utc()
        product = Product(
            id=line_id,
            name=str(name).strip(),
            price=unit_price,
            stock_level=CUSTOM_STOCK_LEVEL,
            category_id=CUSTOM_CATEGORY_ID,
            cost_price=ZERO,
            created_at=now,
            updated_at=now,
        )
        self._cart.lines.append(CartLine(
            line_id=line_id,
            product=product,
            quantity=qty,
            original_price=unit_price,
            price=unit_price,
            custom_product_id=str(custom_product_id),
        ))
        self._emit(CART_LINE_ADDED)
        return Outcome.accepted()

    def update_quantity(self, line_id: str, new_quantity: Any) -> Outcome:
        """Set a line's quantity. Zero or less removes the line."""
        refused = self._refuse_during_checkout("update_quantity")
        if refused is not None:
            return refused
        qty = _coerce_quantity(new_quantity)
        if qty is None:
            return _invalid(
                ReasonCode.INVALID_QUANTITY, f"Invalid quantity {new_quantity!r}.",
                "update_quantity", quantity=new_quantity,
            )
        if qty <= ZERO:
            return self.remove_item(line_id)

        line = self._cart.find_line(line_id)
        if line is None:
            return self._line_not_found(line_id, "update_quantity")

        reason = quantity_update_policy(line, qty)
        if reason is not None:
            return Outcome.rejected(reason)

        line.quantity = qty
        self._clamp_discount()
        self._emit(CART_LINE_UPDATED)
        return Outcome.accepted()

    def remove_item(self, line_id: str) -> Outcome:
        refused = self._refuse_during_checkout("remove_item")
        if refused is not None:
            return refused
        line = self._cart.find_line(line_id)
        if line is None:
            return self._line_not_found(line_id, "remove_item")
        self._cart.lines.remove(line)
        self._clamp_discount()
        logger.debug(f"removed line {line_id}")
        self._emit(CART_LINE_REMOVED)
        return Outcome.accepted()

    def clear(self) -> Outcome:
        """Empty the cart, reset discount, payment and customer, drop history."""
        refused = self._refuse_during_checkout("clear")
        if refused is not None:
            return refused
        self._cart = Cart()
        if self._history_hook is not None:
            self._history_hook()
        self._emit(CART_CLEARED)
        return Outcome.accepted()

    # ══════════════════════════════════════════════════════════
    # DISCOUNT
    # ══════════════════════════════════════════════════════════

    def apply_bulk_discount(self, discount_type: Any, value: Any) -> Outcome:
        """
        Cart-level discount: percentage of the subtotal or a fixed
        amount, clamped to [0, subtotal]. Computed once, from the
        subtotal at the time it is applied.
        """
        refused = self._refuse_during_checkout("apply_bulk_discount")
        if refused is not None:
            return refused
        try:
            kind = DiscountType(discount_type)
            amount = to_decimal(value, field_name="discount")
        except ValueError:
            return _invalid(
                ReasonCode.INVALID_DISCOUNT,
                f"Invalid discount {discount_type!r} / {value!r}.",
                "apply_bulk_discount",
            )

        subtotal = self._cart.subtotal
        if kind is DiscountType.PERCENTAGE:
            amount = subtotal * amount / Decimal(100)
        self._cart.discount_amount = max(ZERO, min(amount, subtotal))
        self._emit(CART_DISCOUNT_APPLIED)
        return Outcome.accepted()

    def clear_discount(self) -> Outcome:
        refused = self._refuse_during_checkout("clear_discount")
        if refused is not None:
            return refused
        self._cart.discount_amount = ZERO
        self._emit(CART_DISCOUNT_APPLIED)
        return Outcome.accepted()

    # ══════════════════════════════════════════════════════════
    # PRICING AND PAYMENT FIELDS
    # ══════════════════════════════════════════════════════════

    def set_payment_mode(self, mode: Any, credit_mode: Any = None) -> Outcome:
        """
        Switch payment mode and re-price every line. Quantities are
        untouched. Any mode other than cash clears the received amount.
        """
        refused = self._refuse_during_checkout("set_payment_mode")
        if refused is not None:
            return refused
        self._cart.payment_mode = PaymentMode(mode)
        if credit_mode is not None:
            self._cart.credit_mode = CreditPriceMode(credit_mode)
        self._reprice()
        if self._cart.payment_mode is not PaymentMode.CASH:
            self._cart.received_amount = ""
        self._emit(CART_PRICING_CHANGED)
        return Outcome.accepted()

    def set_credit_mode(self, credit_mode: Any) -> Outcome:
        refused = self._refuse_during_checkout("set_credit_mode")
        if refused is not None:
            return refused
        self._cart.credit_mode = CreditPriceMode(credit_mode)
        self._reprice()
        self._emit(CART_PRICING_CHANGED)
        return Outcome.accepted()

    def select_customer(self, customer_id: Optional[str]) -> Outcome:
        refused = self._refuse_during_checkout("select_customer")
        if refused is not None:
            return refused
        self._cart.customer_id = customer_id or None
        self._emit(CART_PAYMENT_UPDATED)
        return Outcome.accepted()

    def set_received_amount(self, text: Any) -> Outcome:
        refused = self._refuse_during_checkout("set_received_amount")
        if refused is not None:
            return refused
        self._cart.received_amount = "" if text is None else str(text)
        self._emit(CART_PAYMENT_UPDATED)
        return Outcome.accepted()

    def set_partial_payment(self, enabled: bool, amount: Any = "") -> Outcome:
        refused = self._refuse_during_checkout("set_partial_payment")
        if refused is not None:
            return refused
        self._cart.is_partial_payment = bool(enabled)
        self._cart.partial_payment_amount = "" if amount is None else str(amount)
        self._emit(CART_PAYMENT_UPDATED)
        return Outcome.accepted()

    # ══════════════════════════════════════════════════════════
    # RESTORE
    # ══════════════════════════════════════════════════════════

    def load(self, cart: Cart) -> Outcome:
        """Replace the cart with a restored one. Nothing is re-validated."""
        refused = self._refuse_during_checkout("load")
        if refused is not None:
            return refused
        self._cart = cart.copy()
        logger.info(f"cart restored with {self._cart.item_count} lines")
        self._emit(CART_RESTORED)
        return Outcome.accepted()

    # ══════════════════════════════════════════════════════════
    # CHECKOUT LOCK
    # ══════════════════════════════════════════════════════════

    @property
    def checkout_in_progress(self) -> bool:
        return self._checkout_in_progress

    def begin_checkout(self) -> None:
        """Freeze the cart while a payment is being written. Mutations are refused."""
        self._checkout_in_progress = True

    def end_checkout(self) -> None:
        self._checkout_in_progress = False

    # ── internals ─────────────────────────────────────────────

    def _resolve(self, product: Product):
        return resolve_price(product, self._cart.payment_mode, self._cart.credit_mode)

    def _reprice(self) -> None:
        for line in self._cart.lines:
            resolution = self._resolve(line.product)
            line.sale_price = resolution.sale_price
            line.price = (
                resolution.sale_price
                if resolution.sale_price is not None
                else line.original_price
            )
        self._clamp_discount()

    def _refuse_during_checkout(self, policy_name: str) -> Optional[Outcome]:
        if not self._checkout_in_progress:
            return None
        return _invalid(
            ReasonCode.CHECKOUT_IN_PROGRESS,
            "A payment is being processed; the cart is locked.",
            policy_name,
        )

    def _clamp_discount(self) -> None:
        # The cart discount never exceeds the subtotal.
        subtotal = self._cart.subtotal
        if self._cart.discount_amount > subtotal:
            self._cart.discount_amount = subtotal

    def _line_not_found(self, line_id: str, policy_name: str) -> Outcome:
        return _invalid(
            ReasonCode.LINE_NOT_FOUND, f"No cart line '{line_id}'.",
            policy_name, line_id=line_id,
        )

    def _emit(self, event_type: str) -> None:
        if not self._listeners:
            return
        snapshot = self._cart.copy()
        for listener in list(self._listeners):
            try:
                listener(event_type, snapshot)
            except Exception:
                logger.exception(f"cart listener failed on {event_type}")
