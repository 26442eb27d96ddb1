"""
POS Checkout Engine: Drafts and Results
=========================================
Everything checkout hands to the outside world (invoice, payment,
receipt) is built here as a frozen draft with a camelCase
to_dict() for the backend.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from core.commands.outcomes import Outcome
from core.config.settings import PrinterSettings
from core.primitives.amounts import ZERO
from engines.pricing.models import PaymentMode


def _money(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


class PaymentStatus(Enum):
    PAID = "paid"
    PARTIAL = "partial"
    UNPAID = "unpaid"


@dataclass(frozen=True)
class Settlement:
    """How the current total is being settled."""

    total: Decimal
    received: Decimal
    outstanding: Decimal = ZERO
    change: Decimal = ZERO
    status: PaymentStatus = PaymentStatus.PAID


# ══════════════════════════════════════════════════════════════
# INVOICE / PAYMENT DRAFTS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class InvoiceLineDraft:
    """Exactly one of product_id / custom_product_id is set."""

    quantity: Decimal
    unit_price: Decimal
    original_price: Decimal
    product_id: Optional[str] = None
    custom_product_id: Optional[str] = None
    unit: str = "pc"
    tax_rate: Decimal = ZERO

    def __post_init__(self) -> None:
        if (self.product_id is None) == (self.custom_product_id is None):
            raise ValueError("Invoice line needs exactly one of product_id or custom_product_id.")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "customProductId": self.custom_product_id,
            "quantity": str(self.quantity),
            "unitPrice": str(self.unit_price),
            "unit": self.unit,
            "taxRate": str(self.tax_rate),
            "originalPrice": str(self.original_price),
        }


@dataclass(frozen=True)
class InvoiceDraft:
    employee_id: str
    sub_total: Decimal
    total_amount: Decimal
    payment_mode: PaymentMode
    discount_amount: Decimal
    amount_received: Decimal
    outstanding_balance: Decimal
    payment_status: PaymentStatus
    sales_details: Tuple[InvoiceLineDraft, ...] = ()
    customer_id: Optional[str] = None
    tax_amount: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customerId": self.customer_id,
            "employeeId": self.employee_id,
            "subTotal": str(self.sub_total),
            "totalAmount": str(self.total_amount),
            "paymentMode": self.payment_mode.value,
            "taxAmount": str(self.tax_amount),
            "discountAmount": str(self.discount_amount),
            "amountReceived": str(self.amount_received),
            "outstandingBalance": str(self.outstanding_balance),
            "paymentStatus": self.payment_status.value,
            "salesDetails": [line.to_dict() for line in self.sales_details],
        }


@dataclass(frozen=True)
class PaymentDraft:
    invoice_id: str
    amount: Decimal
    payment_mode: PaymentMode
    employee_id: str
    customer_id: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invoiceId": self.invoice_id,
            "amount": str(self.amount),
            "paymentMode": self.payment_mode.value,
            "employeeId": self.employee_id,
            "customerId": self.customer_id,
            "notes": self.notes,
        }


# ══════════════════════════════════════════════════════════════
# RECEIPT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ReceiptItem:
    name: str
    quantity: Decimal
    unit: str
    price: Decimal
    total: Decimal
    original_price: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "quantity": str(self.quantity),
            "unit": self.unit,
            "price": str(self.price),
            "total": str(self.total),
            "originalPrice": str(self.original_price),
        }


@dataclass(frozen=True)
class ReceiptPayload:
    """
    Printable sale summary. `change` and `amount_received` are only
    present for cash and wholesale sales.
    """

    store_name: str
    store_address: str
    store_phone: str
    invoice_number: str
    date: str
    time: str
    items: Tuple[ReceiptItem, ...]
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    payment_method: str
    footer: str
    tax: Decimal = ZERO
    change: Optional[Decimal] = None
    amount_received: Optional[Decimal] = None

    @property
    def header(self) -> str:
        return self.store_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "header": self.header,
            "storeName": self.store_name,
            "storeAddress": self.store_address,
            "storePhone": self.store_phone,
            "invoiceNumber": self.invoice_number,
            "date": self.date,
            "time": self.time,
            "items": [item.to_dict() for item in self.items],
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "discount": str(self.discount),
            "total": str(self.total),
            "paymentMethod": self.payment_method,
            "change": _money(self.change),
            "amountReceived": _money(self.amount_received),
            "footer": self.footer,
        }


@dataclass(frozen=True)
class PrintConfig:
    width: int = 300
    height: int = 600
    margin: str = "0 0 0 0"
    copies: int = 1
    preview: bool = False
    silent: bool = True

    @classmethod
    def from_settings(cls, printer: PrinterSettings) -> "PrintConfig":
        return cls(
            width=printer.width,
            height=printer.height,
            margin=printer.margin,
            copies=printer.copies,
            preview=printer.preview,
            silent=printer.silent,
        )


@dataclass(frozen=True)
class PrintResult:
    success: bool
    error: Optional[str] = None


# ══════════════════════════════════════════════════════════════
# CHECKOUT RESULT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CheckoutResult:
    """
    outcome:  accepted when the sale was written.
    printed:  None when printing was skipped or no printer is wired.
    """

    outcome: Outcome
    invoice_number: Optional[str] = None
    settlement: Optional[Settlement] = None
    invoice: Optional[InvoiceDraft] = None
    printed: Optional[bool] = None
    print_error: Optional[str] = None

    @property
    def is_accepted(self) -> bool:
        return self.outcome.is_accepted
