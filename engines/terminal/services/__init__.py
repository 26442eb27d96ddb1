"""
POS Terminal Engine: Application Service
==========================================
One PosTerminal per till. It owns the session-level flow the
operator drives:

    start_session -> (restore | discard saved cart)
    scan / search -> quantity prompt -> cart
    checkout      -> invoice, payment, receipt, empty cart

Display and dialogs belong to the caller; the terminal only
reports what happened (ScanOutcome, Outcome, CheckoutResult).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Sequence

from core.commands.outcomes import Outcome
from core.commands.rejection import ReasonCode, RejectionReason
from core.config.settings import PosSettings, build_state_store
from core.local_state.store import StateStore
from core.primitives.amounts import ZERO, parse_amount_input, parse_quantity_input
from core.time.clock import Clock, SystemClock
from engines.cart.persistence import CartPersistence, SavedCart
from engines.cart.services import CartEngine
from engines.catalog.models import Product
from engines.catalog.scanner import ScanGate, SearchDebouncer
from engines.catalog.services import (
    CatalogGateway,
    CatalogService,
    CustomProductGateway,
    MatchSource,
)
from engines.checkout.models import CheckoutResult
from engines.checkout.services import (
    InvoiceGateway,
    PaymentGateway,
    PaymentProcessor,
    ReceiptPrinter,
)

logger = logging.getLogger("pos.terminal")


class ScanStatus(Enum):
    IGNORED = "ignored"
    QUANTITY_REQUIRED = "quantity_required"
    ADDED = "added"
    REJECTED = "rejected"
    OUT_OF_STOCK = "out_of_stock"
    NOT_FOUND = "not_found"
    LOOKUP_FAILED = "lookup_failed"


@dataclass(frozen=True)
class ScanOutcome:
    status: ScanStatus
    code: Optional[str] = None
    product: Optional[Product] = None
    outcome: Optional[Outcome] = None


def _rejected(code: str, message: str, policy_name: str, **details: Any) -> Outcome:
    return Outcome.rejected(RejectionReason(
        code=code, message=message, policy_name=policy_name, details=details,
    ))


# ══════════════════════════════════════════════════════════════
# POS TERMINAL
# ══════════════════════════════════════════════════════════════

class PosTerminal:
    def __init__(
        self,
        catalog: CatalogService,
        engine: CartEngine,
        processor: PaymentProcessor,
        persistence: CartPersistence,
        *,
        settings: Optional[PosSettings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or PosSettings()
        self._clock = clock or SystemClock()
        self.catalog = catalog
        self.engine = engine
        self.processor = processor
        self.persistence = persistence
        self.scan_gate = ScanGate(
            clock=self._clock,
            repeat_window_ms=self._settings.input.scan_repeat_window_ms,
        )
        self.search = SearchDebouncer(
            self._on_search_settled,
            delay_ms=self._settings.input.search_debounce_ms,
        )
        self.operator_id: Optional[str] = None
        self.operator_name: Optional[str] = None
        self.pending_product: Optional[Product] = None
        self.search_term: str = ""
        self.selected_categories: List[str] = []
        self.products: List[Product] = []
        self._detach_persistence: Optional[Callable[[], None]] = None

    @classmethod
    def build(
        cls,
        catalog_gateway: CatalogGateway,
        invoices: InvoiceGateway,
        payments: PaymentGateway,
        *,
        printer: Optional[ReceiptPrinter] = None,
        custom_products: Optional[CustomProductGateway] = None,
        settings: Optional[PosSettings] = None,
        store: Optional[StateStore] = None,
        clock: Optional[Clock] = None,
    ) -> "PosTerminal":
        """Wire a terminal from its collaborators and settings."""
        settings = settings or PosSettings()
        clock = clock or SystemClock()
        catalog = CatalogService(
            catalog_gateway, custom_products=custom_products, settings=settings, clock=clock,
        )
        engine = CartEngine(clock=clock)
        persistence = CartPersistence(
            store if store is not None else build_state_store(settings),
            storage_key=settings.persistence.storage_key,
            clock=clock,
        )
        processor = PaymentProcessor(
            engine, invoices, payments,
            printer=printer, settings=settings, clock=clock, persistence=persistence,
        )
        return cls(catalog, engine, processor, persistence, settings=settings, clock=clock)

    # ══════════════════════════════════════════════════════════
    # SESSION
    # ══════════════════════════════════════════════════════════

    def start_session(self, operator_id: str, operator_name: Optional[str] = None) -> bool:
        """
        Sign the operator in and start auto-saving the cart.

        Returns True when a saved cart is waiting; the caller must then
        call restore_saved_cart() or discard_saved_cart().
        """
        self.switch_operator(operator_id, operator_name)
        if self._detach_persistence is None:
            self._detach_persistence = self.persistence.attach(self.engine)
        has_saved = self.persistence.has_saved()
        if has_saved:
            logger.info("saved cart found, awaiting restore decision")
        return has_saved

    def restore_saved_cart(self) -> Optional[SavedCart]:
        saved = self.persistence.load()
        if saved is None:
            logger.warning("no restorable cart found")
            return None
        self.engine.load(saved.cart)
        return saved

    def discard_saved_cart(self) -> bool:
        return self.persistence.discard()

    def switch_operator(self, operator_id: Optional[str], operator_name: Optional[str] = None) -> None:
        """A different operator must never see the previous one's cached results."""
        if operator_id != self.operator_id:
            self.catalog.clear_caches()
            logger.info(f"operator changed to {operator_id}")
        self.operator_id = operator_id
        self.operator_name = operator_name

    def save_cart(self) -> bool:
        return self.persistence.save(self.engine.cart)

    def install_exit_hook(self) -> Callable[[], None]:
        return self.persistence.install_exit_hook(self.engine)

    def end_session(self) -> None:
        self.search.cancel()
        if self._detach_persistence is not None:
            self._detach_persistence()
            self._detach_persistence = None

    # ══════════════════════════════════════════════════════════
    # SCANNING
    # ══════════════════════════════════════════════════════════

    def set_input_focused(self, focused: bool) -> None:
        """Scans are ignored while the operator types into a field."""
        self.scan_gate.input_focused = focused

    async def handle_scan(self, payload: Optional[Mapping[str, Any]]) -> ScanOutcome:
        """
        Index or exact hit: ask for a quantity. Fuzzy hit: add one unit.
        Out-of-stock products are reported and never touch the cart.
        """
        code = self.scan_gate.accept(payload)
        if code is None:
            return ScanOutcome(status=ScanStatus.IGNORED)

        match = await self.catalog.resolve_code(code)
        if match.source is MatchSource.FAILED:
            return ScanOutcome(status=ScanStatus.LOOKUP_FAILED, code=code)
        if match.product is None:
            if not self.search_term.strip():
                self.type_search(code)
            return ScanOutcome(status=ScanStatus.NOT_FOUND, code=code)

        product = match.product
        if product.stock_level <= ZERO:
            return ScanOutcome(status=ScanStatus.OUT_OF_STOCK, code=code, product=product)

        if match.needs_quantity:
            self.pending_product = product
            return ScanOutcome(status=ScanStatus.QUANTITY_REQUIRED, code=code, product=product)

        outcome = self.engine.add_item(product, Decimal("1"))
        status = ScanStatus.ADDED if outcome.is_accepted else ScanStatus.REJECTED
        return ScanOutcome(status=status, code=code, product=product, outcome=outcome)

    def select_product(self, product: Product) -> None:
        """Product picked from a list; the quantity prompt follows."""
        self.pending_product = product

    def confirm_quantity(self, quantity_text: str) -> Outcome:
        if self.pending_product is None:
            return _rejected(
                ReasonCode.PRODUCT_NOT_FOUND, "No product is waiting for a quantity.",
                "confirm_quantity",
            )
        quantity = parse_quantity_input(quantity_text)
        if quantity is None or quantity <= ZERO:
            return _rejected(
                ReasonCode.INVALID_QUANTITY, "Please enter a valid quantity.",
                "confirm_quantity", quantity=quantity_text,
            )
        outcome = self.engine.add_item(self.pending_product, quantity)
        if outcome.is_accepted:
            self.pending_product = None
        return outcome

    def cancel_quantity(self) -> None:
        self.pending_product = None

    # ══════════════════════════════════════════════════════════
    # SEARCH AND LISTING
    # ══════════════════════════════════════════════════════════

    def type_search(self, term: str):
        """Debounced search; the product list refreshes once typing pauses."""
        self.search_term = term
        return self.search.submit(term)

    def select_categories(self, category_ids: Sequence[str]) -> None:
        self.selected_categories = list(category_ids)

    async def refresh_products(self) -> List[Product]:
        self.products = await self.catalog.find_products_in_categories(
            self.selected_categories,
            search_term=self.search_term.strip() or None,
        )
        return self.products

    async def _on_search_settled(self, term: str) -> List[Product]:
        self.search_term = term
        return await self.refresh_products()

    # ══════════════════════════════════════════════════════════
    # CUSTOM ITEMS AND CHECKOUT
    # ══════════════════════════════════════════════════════════

    async def add_custom_item(self, name: str, price_text: Any, quantity_text: Any = "1") -> Outcome:
        """Register an ad-hoc product with the backend, then add it to the cart."""
        if not name or not str(name).strip():
            return _rejected(
                ReasonCode.INVALID_CUSTOM_ITEM, "Please enter product name.", "add_custom_item",
            )
        quantity = parse_quantity_input(str(quantity_text))
        if quantity is None or quantity <= ZERO:
            return _rejected(
                ReasonCode.INVALID_CUSTOM_ITEM, "Please enter a valid quantity.",
                "add_custom_item", quantity=quantity_text,
            )
        price = parse_amount_input(str(price_text))
        if price is None or price <= ZERO:
            return _rejected(
                ReasonCode.INVALID_CUSTOM_ITEM, "Please enter a valid price.",
                "add_custom_item", price=price_text,
            )

        try:
            record = await self.catalog.create_custom_product(str(name).strip(), price)
        except Exception as exc:
            logger.warning(f"custom product creation failed: {exc!r}")
            return _rejected(
                ReasonCode.CUSTOM_PRODUCT_FAILED, "Failed to create custom product.",
                "add_custom_item", error=repr(exc),
            )
        return self.engine.add_custom_item(record["id"], name, price, quantity)

    async def checkout(self, *, skip_print: bool = False) -> CheckoutResult:
        return await self.processor.process_payment(
            self.operator_id, operator_name=self.operator_name, skip_print=skip_print,
        )
