"""
Tests for engines.terminal.services.PosTerminal: session restore,
scan handling, quantity prompt, search, custom items and checkout.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

from core.commands.rejection import ReasonCode
from core.config import InputTimingSettings, PersistenceSettings, PosSettings
from core.local_state import InMemoryStateStore
from core.time import FixedClock
from engines.catalog.models import Product
from engines.catalog.services import InMemoryCatalog
from engines.checkout.services import InMemorySalesLedger
from engines.terminal.services import PosTerminal, ScanStatus

T0 = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

MILK = Product(id="p1", name="Fresh Milk 1L", price="200", stock_level="10",
               barcode="4006381333931", category_id="dairy")
BREAD = Product(id="p2", name="White Bread", price="150", stock_level="0",
                barcode="5012345678900", category_id="bakery")
EGGS = Product(id="p3", name="Eggs x12", price="450", stock_level="6",
               barcode="7622300441937", category_id="dairy")

SETTINGS = PosSettings(input=InputTimingSettings(search_debounce_ms=10))


def _terminal(store=None, clock=None):
    catalog = InMemoryCatalog([MILK, BREAD, EGGS])
    ledger = InMemorySalesLedger()
    clock = clock or FixedClock(T0)
    terminal = PosTerminal.build(
        catalog, ledger, ledger,
        custom_products=catalog,
        settings=SETTINGS,
        store=store if store is not None else InMemoryStateStore(),
        clock=clock,
    )
    return terminal, catalog, ledger, clock


def _scan(terminal, clock, code):
    clock.advance(milliseconds=200)
    return asyncio.run(terminal.handle_scan({"data": code}))


# ══════════════════════════════════════════════════════════════
# SESSION
# ══════════════════════════════════════════════════════════════

class TestSession:
    def test_fresh_session_has_nothing_to_restore(self):
        terminal, *_ = _terminal()
        assert terminal.start_session("emp-1", "Ada") is False
        assert terminal.operator_id == "emp-1"
        assert terminal.operator_name == "Ada"

    def test_saved_cart_restored_in_next_session(self):
        store = InMemoryStateStore()
        first, _, _, _ = _terminal(store=store)
        first.start_session("emp-1")
        first.engine.add_item(MILK, 2)
        first.engine.set_received_amount("400")

        second, _, _, _ = _terminal(store=store)
        assert second.start_session("emp-1") is True

        saved = second.restore_saved_cart()
        assert saved.saved_at == T0
        assert second.engine.cart.find_line("p1").quantity == Decimal("2")
        assert second.engine.cart.received_amount == "400"

    def test_discard_saved_cart(self):
        store = InMemoryStateStore()
        first, _, _, _ = _terminal(store=store)
        first.start_session("emp-1")
        first.engine.add_item(MILK, 1)

        second, _, _, _ = _terminal(store=store)
        second.start_session("emp-1")
        assert second.discard_saved_cart() is True
        assert second.restore_saved_cart() is None
        assert second.engine.cart.is_empty

    def test_end_session_stops_auto_save(self):
        store = InMemoryStateStore()
        terminal, *_ = _terminal(store=store)
        terminal.start_session("emp-1")
        terminal.end_session()
        terminal.engine.add_item(MILK, 1)
        assert not store.exists("pos_cart_history")

    def test_explicit_save(self):
        store = InMemoryStateStore()
        terminal, *_ = _terminal(store=store)
        terminal.engine.add_item(MILK, 1)
        assert terminal.save_cart() is True
        assert store.exists("pos_cart_history")

    def test_operator_change_clears_caches(self):
        terminal, catalog, _, _ = _terminal()
        terminal.start_session("emp-1")
        asyncio.run(terminal.refresh_products())
        assert terminal.catalog.query_cache.size == 1

        terminal.switch_operator("emp-1", "Ada")
        assert terminal.catalog.query_cache.size == 1

        terminal.switch_operator("emp-2", "Grace")
        assert terminal.catalog.query_cache.size == 0
        assert terminal.catalog.scan_index.size == 0

    def test_build_defaults_to_configured_backend(self):
        catalog = InMemoryCatalog()
        ledger = InMemorySalesLedger()
        settings = PosSettings(persistence=PersistenceSettings(storage_key="till_2"))
        terminal = PosTerminal.build(catalog, ledger, ledger, settings=settings)
        assert terminal.persistence.storage_key == "till_2"
        assert terminal.save_cart() is False


# ══════════════════════════════════════════════════════════════
# SCANNING
# ══════════════════════════════════════════════════════════════

class TestScanning:
    def test_exact_hit_asks_for_quantity(self):
        terminal, _, _, clock = _terminal()
        result = _scan(terminal, clock, "4006381333931")

        assert result.status is ScanStatus.QUANTITY_REQUIRED
        assert terminal.pending_product == MILK
        assert terminal.engine.cart.is_empty

        outcome = terminal.confirm_quantity("2.5")
        assert outcome.is_accepted
        assert terminal.engine.cart.find_line("p1").quantity == Decimal("2.5")
        assert terminal.pending_product is None

    def test_second_scan_uses_scan_index(self):
        terminal, catalog, _, clock = _terminal()
        _scan(terminal, clock, "4006381333931")
        calls = catalog.call_count

        result = _scan(terminal, clock, "4006381333931")
        assert result.status is ScanStatus.QUANTITY_REQUIRED
        assert catalog.call_count == calls

    def test_fuzzy_hit_adds_one_unit(self):
        terminal, _, _, clock = _terminal()
        result = _scan(terminal, clock, "762230044193")

        assert result.status is ScanStatus.ADDED
        assert result.outcome.is_accepted
        assert terminal.engine.cart.find_line("p3").quantity == Decimal("1")

    def test_out_of_stock_never_reaches_cart(self):
        terminal, _, _, clock = _terminal()
        result = _scan(terminal, clock, "5012345678900")

        assert result.status is ScanStatus.OUT_OF_STOCK
        assert result.product == BREAD
        assert terminal.pending_product is None
        assert terminal.engine.cart.is_empty

    def test_not_found_prefills_empty_search(self):
        terminal, _, _, clock = _terminal()
        result = _scan(terminal, clock, "999999999")
        assert result.status is ScanStatus.NOT_FOUND
        assert terminal.search_term == "999999999"

    def test_not_found_runs_search_for_code(self):
        terminal, catalog, _, clock = _terminal()
        clock.advance(milliseconds=200)

        async def scenario():
            result = await terminal.handle_scan({"data": "999999999"})
            await asyncio.sleep(0.05)
            return result

        assert asyncio.run(scenario()).status is ScanStatus.NOT_FOUND
        query = catalog.queries[-1]
        assert query.filters.search_term == "999999999"
        assert query.pagination.take == 50
        assert terminal.products == []

    def test_not_found_keeps_typed_search(self):
        terminal, _, _, clock = _terminal()
        terminal.search_term = "mil"
        _scan(terminal, clock, "999999999")
        assert terminal.search_term == "mil"

    def test_lookup_failure(self):
        terminal, catalog, _, clock = _terminal()
        catalog.fail_with = ConnectionError("catalog offline")
        result = _scan(terminal, clock, "4006381333931")
        assert result.status is ScanStatus.LOOKUP_FAILED
        assert result.code == "4006381333931"

    def test_ignored_scans_do_not_hit_catalog(self):
        terminal, catalog, _, clock = _terminal()

        assert _scan(terminal, clock, "12").status is ScanStatus.IGNORED
        assert asyncio.run(terminal.handle_scan(None)).status is ScanStatus.IGNORED

        terminal.set_input_focused(True)
        assert _scan(terminal, clock, "4006381333931").status is ScanStatus.IGNORED
        assert catalog.call_count == 0

    def test_repeat_within_window_ignored(self):
        terminal, _, _, clock = _terminal()
        _scan(terminal, clock, "4006381333931")
        clock.advance(milliseconds=50)
        repeat = asyncio.run(terminal.handle_scan({"data": "4006381333931"}))
        assert repeat.status is ScanStatus.IGNORED


class TestQuantityPrompt:
    def test_confirm_without_pending_product(self):
        terminal, *_ = _terminal()
        assert terminal.confirm_quantity("1").code == ReasonCode.PRODUCT_NOT_FOUND

    def test_invalid_quantity_keeps_prompt_open(self):
        terminal, *_ = _terminal()
        terminal.select_product(MILK)
        for text in ("", "abc", "0", "-2"):
            assert terminal.confirm_quantity(text).code == ReasonCode.INVALID_QUANTITY
        assert terminal.pending_product == MILK

    def test_stock_rejection_keeps_prompt_open(self):
        terminal, *_ = _terminal()
        terminal.select_product(MILK)
        outcome = terminal.confirm_quantity("11")
        assert outcome.code == ReasonCode.INSUFFICIENT_STOCK
        assert terminal.pending_product == MILK

    def test_cancel(self):
        terminal, *_ = _terminal()
        terminal.select_product(MILK)
        terminal.cancel_quantity()
        assert terminal.pending_product is None


# ══════════════════════════════════════════════════════════════
# SEARCH
# ══════════════════════════════════════════════════════════════

class TestSearch:
    def test_debounced_search_runs_last_term_once(self):
        terminal, catalog, _, _ = _terminal()

        async def scenario():
            terminal.type_search("m")
            terminal.type_search("mi")
            return await terminal.type_search(" milk ")

        products = asyncio.run(scenario())
        assert products == [MILK]
        assert terminal.products == [MILK]
        assert terminal.search_term == "milk"
        assert catalog.call_count == 1

    def test_category_listing(self):
        terminal, *_ = _terminal()
        terminal.select_categories(["dairy", "bakery"])
        products = asyncio.run(terminal.refresh_products())
        assert [p.id for p in products] == ["p1", "p3", "p2"]

    def test_listing_fills_scan_index(self):
        terminal, catalog, _, clock = _terminal()
        asyncio.run(terminal.refresh_products())
        calls = catalog.call_count
        assert _scan(terminal, clock, "7622300441937").status is ScanStatus.QUANTITY_REQUIRED
        assert catalog.call_count == calls


# ══════════════════════════════════════════════════════════════
# CUSTOM ITEMS AND CHECKOUT
# ══════════════════════════════════════════════════════════════

class TestCustomItems:
    def test_custom_item_added(self):
        terminal, *_ = _terminal()
        outcome = asyncio.run(terminal.add_custom_item(" Gift wrap ", "35", "2"))

        assert outcome.is_accepted
        line = terminal.engine.cart.find_line("custom-cp1")
        assert line.name == "Gift wrap"
        assert line.total == Decimal("70")
        assert line.custom_product_id == "cp1"

    def test_invalid_input_never_reaches_backend(self):
        terminal, *_ = _terminal()
        for args in (("", "35"), ("Gift wrap", "abc"), ("Gift wrap", "0"), ("Gift wrap", "35", "0")):
            outcome = asyncio.run(terminal.add_custom_item(*args))
            assert outcome.code == ReasonCode.INVALID_CUSTOM_ITEM
        assert terminal.engine.cart.is_empty

    def test_backend_failure(self):
        terminal, catalog, _, _ = _terminal()
        catalog.fail_with = ConnectionError("backend down")
        outcome = asyncio.run(terminal.add_custom_item("Gift wrap", "35"))
        assert outcome.code == ReasonCode.CUSTOM_PRODUCT_FAILED
        assert terminal.engine.cart.is_empty


class TestCheckout:
    def test_checkout_uses_session_operator(self):
        store = InMemoryStateStore()
        terminal, _, ledger, _ = _terminal(store=store)
        terminal.start_session("emp-1", "Ada")
        terminal.engine.add_item(MILK, 2)
        terminal.engine.set_received_amount("500")

        result = asyncio.run(terminal.checkout())

        assert result.is_accepted
        assert result.settlement.change == Decimal("100")
        assert ledger.invoices[0].employee_id == "emp-1"
        assert terminal.engine.cart.is_empty
        assert not store.exists("pos_cart_history")

    def test_checkout_without_operator(self):
        terminal, *_ = _terminal()
        terminal.engine.add_item(MILK, 1)
        terminal.engine.set_received_amount("200")
        result = asyncio.run(terminal.checkout())
        assert result.outcome.code == ReasonCode.OPERATOR_REQUIRED
