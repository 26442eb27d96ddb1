"""
POS Checkout Engine: Payment Policies
=======================================
Checks run in order: cart not empty, the payment-mode rules,
then operator present. The first refusal wins.

    cash / wholesale   received amount numeric and >= total
    credit             customer selected; partial amount in (0, total)
    card               nothing to check (received == total)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Dict, Optional, Tuple

from core.commands.rejection import ReasonCode, RejectionReason
from core.primitives.amounts import ZERO, parse_amount_input
from engines.cart.models import Cart
from engines.checkout.models import PaymentStatus, Settlement
from engines.pricing.models import PaymentMode

CartPolicy = Callable[[Cart], Optional[RejectionReason]]


def cart_not_empty_policy(cart: Cart) -> Optional[RejectionReason]:
    if cart.is_empty:
        return RejectionReason(
            code=ReasonCode.EMPTY_CART,
            message="Cart is empty.",
            policy_name="cart_not_empty_policy",
        )
    return None


def received_amount_policy(cart: Cart) -> Optional[RejectionReason]:
    """Cash and wholesale need a numeric received amount covering the total."""
    received = parse_amount_input(cart.received_amount)
    if received is None:
        return RejectionReason(
            code=ReasonCode.INVALID_PAYMENT_AMOUNT,
            message="Please enter a valid received amount.",
            policy_name="received_amount_policy",
            details={"received_amount": cart.received_amount},
        )
    total = cart.current_total
    if received < total:
        return RejectionReason(
            code=ReasonCode.INSUFFICIENT_PAYMENT,
            message=f"Insufficient payment. Required: {total:.2f}",
            policy_name="received_amount_policy",
            details={"required": total, "received": received},
        )
    return None


def credit_customer_policy(cart: Cart) -> Optional[RejectionReason]:
    if not cart.customer_id:
        return RejectionReason(
            code=ReasonCode.CUSTOMER_REQUIRED,
            message="Select a customer for credit sales.",
            policy_name="credit_customer_policy",
        )
    return None


def partial_payment_policy(cart: Cart) -> Optional[RejectionReason]:
    if not cart.is_partial_payment:
        return None
    partial = parse_amount_input(cart.partial_payment_amount)
    if partial is None or partial <= ZERO:
        return RejectionReason(
            code=ReasonCode.INVALID_PARTIAL_PAYMENT,
            message="Please enter a valid partial payment amount.",
            policy_name="partial_payment_policy",
            details={"partial_payment_amount": cart.partial_payment_amount},
        )
    total = cart.current_total
    if partial >= total:
        return RejectionReason(
            code=ReasonCode.PARTIAL_PAYMENT_TOO_HIGH,
            message="Partial payment must be less than the total.",
            policy_name="partial_payment_policy",
            details={"total": total, "partial": partial},
        )
    return None


def operator_required_policy(operator_id: Optional[str]) -> Optional[RejectionReason]:
    if not operator_id:
        return RejectionReason(
            code=ReasonCode.OPERATOR_REQUIRED,
            message="No operator is signed in.",
            policy_name="operator_required_policy",
        )
    return None


MODE_POLICIES: Dict[PaymentMode, Tuple[CartPolicy, ...]] = {
    PaymentMode.CASH: (received_amount_policy,),
    PaymentMode.WHOLESALE: (received_amount_policy,),
    PaymentMode.CREDIT: (credit_customer_policy, partial_payment_policy),
    PaymentMode.CARD: (),
}


def validate_payment(cart: Cart, operator_id: Optional[str]) -> Optional[RejectionReason]:
    for policy in (cart_not_empty_policy, *MODE_POLICIES[cart.payment_mode]):
        reason = policy(cart)
        if reason is not None:
            return reason
    return operator_required_policy(operator_id)


def build_settlement(cart: Cart) -> Settlement:
    """Settlement for a cart that already passed validate_payment()."""
    total = cart.current_total
    mode = cart.payment_mode

    if mode in (PaymentMode.CASH, PaymentMode.WHOLESALE):
        received: Decimal = parse_amount_input(cart.received_amount)
        return Settlement(total=total, received=received, change=received - total)

    if mode is PaymentMode.CREDIT:
        if cart.is_partial_payment:
            partial: Decimal = parse_amount_input(cart.partial_payment_amount)
            return Settlement(
                total=total,
                received=partial,
                outstanding=total - partial,
                status=PaymentStatus.PARTIAL,
            )
        return Settlement(
            total=total, received=ZERO, outstanding=total, status=PaymentStatus.UNPAID,
        )

    return Settlement(total=total, received=total)
