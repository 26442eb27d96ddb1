"""
POS Checkout Engine: Application Service
==========================================
Turns the open cart into an invoice.

    validate -> invoice write -> payment write (if money changed hands)
             -> receipt print (optional) -> cart cleared, history dropped

Writes are at-least-once: if the payment write fails after the
invoice write succeeded, the cart stays intact and a retry creates
a second invoice. The cart is locked from the invoice write until the
receipt is printed, so a second checkout or a cart edit in that window
is refused.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from core.commands.outcomes import Outcome
from core.commands.rejection import ReasonCode, RejectionReason
from core.config.settings import PosSettings
from core.primitives.amounts import ZERO
from core.time.clock import Clock, SystemClock
from engines.cart.models import Cart
from engines.cart.persistence import CartPersistence
from engines.cart.services import CartEngine
from engines.checkout.models import (
    CheckoutResult,
    InvoiceDraft,
    InvoiceLineDraft,
    PaymentDraft,
    PrintConfig,
    PrintResult,
    ReceiptItem,
    ReceiptPayload,
    Settlement,
)
from engines.checkout.policies import build_settlement, validate_payment
from engines.pricing.models import PaymentMode

logger = logging.getLogger("pos.checkout")

DEFAULT_UNIT = "pc"
PARTIAL_PAYMENT_NOTE = "Partial payment"


# ══════════════════════════════════════════════════════════════
# GATEWAY PROTOCOLS
# ══════════════════════════════════════════════════════════════

class InvoiceGateway(Protocol):
    async def create_invoice(self, draft: InvoiceDraft) -> Mapping[str, Any]:
        ...


class PaymentGateway(Protocol):
    async def create_payment(self, draft: PaymentDraft) -> Mapping[str, Any]:
        ...


class ReceiptPrinter(Protocol):
    async def print_receipt(
        self,
        payload: ReceiptPayload,
        printer_name: Optional[str],
        config: PrintConfig,
    ) -> PrintResult:
        ...


# ══════════════════════════════════════════════════════════════
# IN-MEMORY GATEWAYS
# ══════════════════════════════════════════════════════════════

class InMemorySalesLedger:
    """Invoice and payment backend for wiring and tests."""

    def __init__(self):
        self.invoices: List[InvoiceDraft] = []
        self.payments: List[PaymentDraft] = []
        self.fail_invoice_with: Optional[Exception] = None
        self.fail_payment_with: Optional[Exception] = None

    async def create_invoice(self, draft: InvoiceDraft) -> Dict[str, Any]:
        if self.fail_invoice_with is not None:
            raise self.fail_invoice_with
        self.invoices.append(draft)
        return {"id": f"inv-{len(self.invoices)}", **draft.to_dict()}

    async def create_payment(self, draft: PaymentDraft) -> Dict[str, Any]:
        if self.fail_payment_with is not None:
            raise self.fail_payment_with
        self.payments.append(draft)
        return {"id": f"pay-{len(self.payments)}", **draft.to_dict()}


class RecordingPrinter:
    """Keeps every print job. Set `fail_with` or `result` to simulate trouble."""

    def __init__(self):
        self.jobs: List[Tuple[ReceiptPayload, Optional[str], PrintConfig]] = []
        self.fail_with: Optional[Exception] = None
        self.result = PrintResult(success=True)

    async def print_receipt(
        self,
        payload: ReceiptPayload,
        printer_name: Optional[str],
        config: PrintConfig,
    ) -> PrintResult:
        if self.fail_with is not None:
            raise self.fail_with
        self.jobs.append((payload, printer_name, config))
        return self.result


# ══════════════════════════════════════════════════════════════
# DRAFT BUILDERS
# ══════════════════════════════════════════════════════════════

def build_invoice_draft(cart: Cart, settlement: Settlement, operator_id: str) -> InvoiceDraft:
    return InvoiceDraft(
        customer_id=cart.customer_id,
        employee_id=operator_id,
        sub_total=cart.subtotal,
        total_amount=settlement.total,
        payment_mode=cart.payment_mode,
        discount_amount=min(cart.discount_amount, cart.subtotal),
        amount_received=settlement.received,
        outstanding_balance=settlement.outstanding,
        payment_status=settlement.status,
        sales_details=tuple(
            InvoiceLineDraft(
                product_id=line.product_id,
                custom_product_id=line.custom_product_id,
                quantity=line.quantity,
                unit_price=line.price,
                unit=line.product.unit_size or DEFAULT_UNIT,
                original_price=line.original_price,
            )
            for line in cart.lines
        ),
    )


def build_payment_draft(
    cart: Cart,
    settlement: Settlement,
    invoice_number: str,
    operator_id: str,
) -> PaymentDraft:
    # Money collected on a credit sale is recorded as cash.
    mode = PaymentMode.CASH if cart.payment_mode is PaymentMode.CREDIT else cart.payment_mode
    return PaymentDraft(
        invoice_id=invoice_number,
        amount=settlement.received,
        payment_mode=mode,
        employee_id=operator_id,
        customer_id=cart.customer_id,
        notes=PARTIAL_PAYMENT_NOTE if cart.is_partial_payment else None,
    )


# ══════════════════════════════════════════════════════════════
# PAYMENT PROCESSOR
# ══════════════════════════════════════════════════════════════

class PaymentProcessor:
    def __init__(
        self,
        engine: CartEngine,
        invoices: InvoiceGateway,
        payments: PaymentGateway,
        *,
        printer: Optional[ReceiptPrinter] = None,
        settings: Optional[PosSettings] = None,
        clock: Optional[Clock] = None,
        persistence: Optional[CartPersistence] = None,
    ) -> None:
        self._engine = engine
        self._invoices = invoices
        self._payments = payments
        self._printer = printer
        self._settings = settings or PosSettings()
        self._clock = clock or SystemClock()
        self._persistence = persistence

    async def process_payment(
        self,
        operator_id: Optional[str],
        *,
        operator_name: Optional[str] = None,
        skip_print: bool = False,
    ) -> CheckoutResult:
        """
        Finalize the open cart.

        The cart is locked from the invoice write until the receipt is
        printed, so nothing can be added that would not be invoiced, and
        a second checkout started meanwhile is rejected. A rejected
        result leaves the cart and its saved history untouched; so does
        a failing invoice or payment write.
        """
        if self._engine.checkout_in_progress:
            logger.warning("checkout already in progress, rejecting duplicate")
            return CheckoutResult(outcome=Outcome.rejected(RejectionReason(
                code=ReasonCode.CHECKOUT_IN_PROGRESS,
                message="A payment is already being processed.",
                policy_name="process_payment",
            )))

        cart = self._engine.snapshot()
        reason = validate_payment(cart, operator_id)
        if reason is not None:
            logger.info(f"payment rejected: {reason.code}")
            return CheckoutResult(outcome=Outcome.rejected(reason))

        settlement = build_settlement(cart)
        invoice = build_invoice_draft(cart, settlement, operator_id)

        self._engine.begin_checkout()
        try:
            try:
                invoice_number = await self._write_sale(cart, settlement, invoice, operator_id)
            except Exception as exc:
                logger.exception("invoice write failed; cart left intact for retry")
                return CheckoutResult(
                    outcome=Outcome.rejected(RejectionReason(
                        code=ReasonCode.INVOICE_WRITE_FAILED,
                        message="Payment failed. The cart was kept; please retry.",
                        policy_name="process_payment",
                        details={"error": repr(exc)},
                    )),
                    settlement=settlement,
                    invoice=invoice,
                )

            printed: Optional[bool] = None
            print_error: Optional[str] = None
            if not skip_print and self._printer is not None:
                receipt = self.build_receipt(cart, settlement, invoice_number, operator_name)
                printed, print_error = await self._print(receipt)
        finally:
            self._engine.end_checkout()

        self._engine.clear()
        if self._persistence is not None:
            self._persistence.discard()

        logger.info(
            f"sale completed: invoice={invoice_number} total={settlement.total} "
            f"mode={cart.payment_mode.value} status={settlement.status.value}"
        )
        return CheckoutResult(
            outcome=Outcome.accepted(),
            invoice_number=invoice_number,
            settlement=settlement,
            invoice=invoice,
            printed=printed,
            print_error=print_error,
        )

    def build_receipt(
        self,
        cart: Cart,
        settlement: Settlement,
        invoice_number: Optional[str],
        operator_name: Optional[str] = None,
    ) -> ReceiptPayload:
        store = self._settings.store
        now = self._clock.now_utc()
        shows_change = cart.payment_mode in (PaymentMode.CASH, PaymentMode.WHOLESALE)
        return ReceiptPayload(
            store_name=store.name,
            store_address=store.address,
            store_phone=store.phone,
            invoice_number=invoice_number or self._fallback_invoice_number(),
            date=now.strftime("%Y-%m-%d"),
            time=now.strftime("%H:%M:%S"),
            items=tuple(
                ReceiptItem(
                    name=line.name,
                    quantity=line.quantity,
                    unit=line.product.unit_size or DEFAULT_UNIT,
                    price=line.price,
                    total=line.total,
                    original_price=line.original_price,
                )
                for line in cart.lines
            ),
            subtotal=cart.subtotal,
            discount=min(cart.discount_amount, cart.subtotal),
            total=settlement.total,
            payment_method=cart.payment_mode.value.capitalize(),
            change=settlement.change if shows_change else None,
            amount_received=settlement.received if shows_change else None,
            footer=operator_name or "N/A",
        )

    async def _write_sale(
        self,
        cart: Cart,
        settlement: Settlement,
        invoice: InvoiceDraft,
        operator_id: str,
    ) -> str:
        record = await self._invoices.create_invoice(invoice)
        invoice_number = str((record or {}).get("id") or "") or self._fallback_invoice_number()
        if settlement.received > ZERO:
            await self._payments.create_payment(
                build_payment_draft(cart, settlement, invoice_number, operator_id)
            )
        return invoice_number

    async def _print(self, receipt: ReceiptPayload) -> Tuple[bool, Optional[str]]:
        printer = self._settings.printer
        try:
            result = await self._printer.print_receipt(
                receipt, printer.printer_name, PrintConfig.from_settings(printer)
            )
        except Exception as exc:
            logger.warning(f"receipt print failed for {receipt.invoice_number}: {exc!r}")
            return False, repr(exc)
        if not result.success:
            logger.warning(f"printer reported failure for {receipt.invoice_number}: {result.error}")
        return result.success, result.error

    def _fallback_invoice_number(self) -> str:
        return f"INV-{int(self._clock.now_utc().timestamp() * 1000)}"
