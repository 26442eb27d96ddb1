"""
POS Command Layer: Rejection Model
====================================
Structured reasons for refused operator actions.

A rejection is never an exception. Adding more stock than is on
hand, paying too little, or forgetting the customer on a credit
sale are ordinary outcomes: the operator is told why and the cart
stays as it was.

Every rejection is:
- Machine-readable (code)
- Human-readable (message)
- Attributable (policy_name)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


# ══════════════════════════════════════════════════════════════
# REJECTION REASON (frozen explanation structure)
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RejectionReason:
    """
    Structured reason for refusing an operation.

    Fields:
        code:        Machine-readable code (e.g. 'INSUFFICIENT_STOCK').
        message:     Human-readable explanation.
        policy_name: Name of the policy that refused.
        details:     Extra values for the operator message
                     (e.g. {"available": Decimal("2")}).
    """

    code: str
    message: str
    policy_name: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.code or not isinstance(self.code, str):
            raise ValueError("code must be a non-empty string.")

        if not self.message or not isinstance(self.message, str):
            raise ValueError("message must be a non-empty string.")

        if not self.policy_name or not isinstance(self.policy_name, str):
            raise ValueError("policy_name must be a non-empty string.")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "policy_name": self.policy_name,
            "details": {k: str(v) for k, v in self.details.items()},
        }


# ══════════════════════════════════════════════════════════════
# STANDARD REJECTION CODES
# ══════════════════════════════════════════════════════════════

class ReasonCode:
    """
    Known rejection codes.

    Convention: SCREAMING_SNAKE_CASE.
    """

    # ── Stock ─────────────────────────────────────────────────
    OUT_OF_STOCK = "OUT_OF_STOCK"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"

    # ── Cart ──────────────────────────────────────────────────
    LINE_NOT_FOUND = "LINE_NOT_FOUND"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    INVALID_DISCOUNT = "INVALID_DISCOUNT"
    INVALID_CUSTOM_ITEM = "INVALID_CUSTOM_ITEM"
    EMPTY_CART = "EMPTY_CART"

    # ── Payment ───────────────────────────────────────────────
    INVALID_PAYMENT_AMOUNT = "INVALID_PAYMENT_AMOUNT"
    INSUFFICIENT_PAYMENT = "INSUFFICIENT_PAYMENT"
    CUSTOMER_REQUIRED = "CUSTOMER_REQUIRED"
    INVALID_PARTIAL_PAYMENT = "INVALID_PARTIAL_PAYMENT"
    PARTIAL_PAYMENT_TOO_HIGH = "PARTIAL_PAYMENT_TOO_HIGH"
    OPERATOR_REQUIRED = "OPERATOR_REQUIRED"
    INVOICE_WRITE_FAILED = "INVOICE_WRITE_FAILED"
    CHECKOUT_IN_PROGRESS = "CHECKOUT_IN_PROGRESS"

    # ── Catalog ───────────────────────────────────────────────
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    CUSTOM_PRODUCT_FAILED = "CUSTOM_PRODUCT_FAILED"
