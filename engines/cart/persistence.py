"""
POS Cart Engine: Cart Persistence
===================================
Keeps the open cart alive across crashes and restarts.

One JSON document under one storage key ("pos_cart_history"):

    {
      "cartItems": [...],              # product fields + line fields
      "totalDiscountAmount": "50",
      "paymentMode": "cash",
      "creditPriceMode": "discounted",
      "selectedCustomer": "",
      "receivedAmount": "",
      "isPartialPayment": false,
      "partialPaymentAmount": "",
      "timestamp": "2025-01-01T10:00:00+00:00"
    }

Persistence is best-effort: a failing store is logged and the cart
carries on. Empty carts are never written.
"""

from __future__ import annotations

import atexit
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from core.local_state.errors import PersistenceError
from core.local_state.store import StateStore
from core.primitives.amounts import ZERO, optional_decimal, to_decimal
from core.time.clock import Clock, SystemClock
from engines.catalog.models import Product
from engines.cart.models import Cart, CartLine, DiscountType, LineDiscount
from engines.pricing.models import CreditPriceMode, PaymentMode

logger = logging.getLogger("pos.persistence")

CART_HISTORY_KEY = "pos_cart_history"


# ══════════════════════════════════════════════════════════════
# SERIALIZATION
# ══════════════════════════════════════════════════════════════

def _line_to_dict(line: CartLine) -> Dict[str, Any]:
    item = line.product.to_dict()
    item.update({
        "lineId": line.line_id,
        "catalogPrice": str(line.product.price),
        "price": str(line.price),
        "quantity": str(line.quantity),
        "total": str(line.total),
        "salePrice": str(line.sale_price) if line.sale_price is not None else None,
        "originalPrice": str(line.original_price),
        "discount": {"type": line.discount.type.value, "value": str(line.discount.value)},
        "customProductId": line.custom_product_id,
    })
    return item


def _line_from_dict(item: Mapping[str, Any]) -> CartLine:
    if not isinstance(item, Mapping):
        raise ValueError(f"cart item must be an object, got {type(item).__name__}.")
    original_price = to_decimal(item.get("originalPrice", item["price"]), field_name="originalPrice")
    product_data = dict(item)
    product_data["price"] = item.get("catalogPrice", original_price)
    discount = item.get("discount") or {}
    if not isinstance(discount, Mapping):
        raise ValueError(f"line discount must be an object, got {discount!r}.")
    return CartLine(
        line_id=item.get("lineId") or item["id"],
        product=Product.from_dict(product_data),
        quantity=to_decimal(item["quantity"], field_name="quantity"),
        original_price=original_price,
        price=to_decimal(item["price"], field_name="price"),
        sale_price=optional_decimal(item.get("salePrice"), field_name="salePrice"),
        discount=LineDiscount(
            type=DiscountType(discount.get("type", DiscountType.AMOUNT.value)),
            value=to_decimal(discount.get("value", 0), field_name="discount"),
        ),
        custom_product_id=item.get("customProductId"),
    )


def serialize_cart(cart: Cart, saved_at: datetime) -> Dict[str, Any]:
    return {
        "cartItems": [_line_to_dict(line) for line in cart.lines],
        "totalDiscountAmount": str(cart.discount_amount),
        "paymentMode": cart.payment_mode.value,
        "creditPriceMode": cart.credit_mode.value,
        "selectedCustomer": cart.customer_id or "",
        "receivedAmount": cart.received_amount,
        "isPartialPayment": cart.is_partial_payment,
        "partialPaymentAmount": cart.partial_payment_amount,
        "timestamp": saved_at.isoformat(),
    }


def deserialize_cart(document: Mapping[str, Any]) -> Cart:
    """Rebuild a Cart. Missing fields fall back to defaults; nothing is re-priced."""
    items = document.get("cartItems") or []
    if not isinstance(items, list):
        raise ValueError("cartItems must be a list.")
    lines: List[CartLine] = [_line_from_dict(item) for item in items]
    return Cart(
        lines=lines,
        discount_amount=to_decimal(document.get("totalDiscountAmount") or ZERO),
        payment_mode=PaymentMode(document.get("paymentMode") or PaymentMode.CASH.value),
        credit_mode=CreditPriceMode(
            document.get("creditPriceMode") or CreditPriceMode.DISCOUNTED.value
        ),
        customer_id=document.get("selectedCustomer") or None,
        received_amount=str(document.get("receivedAmount") or ""),
        is_partial_payment=bool(document.get("isPartialPayment", False)),
        partial_payment_amount=str(document.get("partialPaymentAmount") or ""),
    )


@dataclass(frozen=True)
class SavedCart:
    cart: Cart
    saved_at: Optional[datetime]


# ══════════════════════════════════════════════════════════════
# CART PERSISTENCE
# ══════════════════════════════════════════════════════════════

class CartPersistence:
    """
    Usage:
        persistence = CartPersistence(store, clock=clock)
        persistence.attach(engine)            # auto-save on every change
        persistence.install_exit_hook(engine) # last save at interpreter exit
    """

    def __init__(
        self,
        store: StateStore,
        *,
        storage_key: str = CART_HISTORY_KEY,
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = store
        self._key = storage_key
        self._clock = clock or SystemClock()

    @property
    def storage_key(self) -> str:
        return self._key

    def save(self, cart: Cart) -> bool:
        """Write the cart. Returns False when skipped (empty) or failed."""
        if cart.is_empty:
            return False
        now = self._clock.now_utc()
        try:
            self._store.write(self._key, serialize_cart(cart, now), now)
        except PersistenceError as exc:
            logger.warning(f"cart save failed: {exc}")
            return False
        logger.debug(f"cart saved with {cart.item_count} lines")
        return True

    def load(self) -> Optional[SavedCart]:
        try:
            document = self._store.read(self._key)
        except PersistenceError as exc:
            logger.warning(f"cart history unreadable: {exc}")
            return None
        if document is None:
            return None

        try:
            cart = deserialize_cart(document)
            timestamp = document.get("timestamp")
            saved_at = datetime.fromisoformat(timestamp) if timestamp else None
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(f"cart history is malformed, ignoring it: {exc!r}")
            return None
        return SavedCart(cart=cart, saved_at=saved_at)

    def has_saved(self) -> bool:
        try:
            return self._store.exists(self._key)
        except PersistenceError as exc:
            logger.warning(f"cart history check failed: {exc}")
            return False

    def discard(self) -> bool:
        try:
            removed = self._store.delete(self._key)
        except PersistenceError as exc:
            logger.warning(f"cart history discard failed: {exc}")
            return False
        if removed:
            logger.info("cart history discarded")
        return removed

    # ── wiring ────────────────────────────────────────────────

    def attach(self, engine) -> Callable[[], None]:
        """
        Auto-save after every cart event and drop history whenever
        the cart is cleared. Returns a detach function.
        """

        def on_cart_event(event_type: str, cart: Cart) -> None:
            if cart.is_empty:
                self.discard()
            else:
                self.save(cart)

        unsubscribe = engine.subscribe(on_cart_event)
        engine.set_history_hook(self.discard)

        def detach() -> None:
            unsubscribe()
            engine.set_history_hook(None)

        return detach

    def install_exit_hook(self, engine) -> Callable[[], None]:
        """Best-effort save when the interpreter exits. Returns an uninstall function."""

        def save_on_exit() -> None:
            self.save(engine.cart)

        atexit.register(save_on_exit)

        def uninstall() -> None:
            atexit.unregister(save_on_exit)

        return uninstall
