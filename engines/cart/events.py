"""
POS Cart Engine: Event Types
==============================
Every cart mutation is announced to subscribers (auto-save,
display refresh). Listeners receive (event_type, cart snapshot).
"""

from __future__ import annotations

CART_LINE_ADDED = "cart.line.added"
CART_LINE_UPDATED = "cart.line.updated"
CART_LINE_REMOVED = "cart.line.removed"
CART_CLEARED = "cart.cleared"
CART_DISCOUNT_APPLIED = "cart.discount.applied"
CART_PRICING_CHANGED = "cart.pricing.changed"
CART_PAYMENT_UPDATED = "cart.payment.updated"
CART_RESTORED = "cart.restored"

CART_EVENT_TYPES = (
    CART_LINE_ADDED,
    CART_LINE_UPDATED,
    CART_LINE_REMOVED,
    CART_CLEARED,
    CART_DISCOUNT_APPLIED,
    CART_PRICING_CHANGED,
    CART_PAYMENT_UPDATED,
    CART_RESTORED,
)
