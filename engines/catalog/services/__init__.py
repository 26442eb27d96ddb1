"""
POS Catalog Engine: Application Service
=========================================
Read path from the terminal to the catalog backend.

    CatalogService
      ├── TTLCache    (query key -> product list, coalesced)
      ├── ScanIndex   (barcode/SKU -> product, filled from every result)
      └── CatalogGateway (slow, async, external)

Scan resolution order: scan index, exact code query, fuzzy search.
A lookup never raises; failures come back as a ScanMatch with
source FAILED.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from core.caching import CacheFetchError, TTLCache
from core.config.settings import PosSettings
from core.time.clock import Clock, SystemClock
from engines.catalog.models import Pagination, Product, ProductFilters, ProductQuery
from engines.catalog.scan_index import ScanIndex

logger = logging.getLogger("pos.catalog")

SCAN_LOOKUP_TAKE = 5


# ══════════════════════════════════════════════════════════════
# GATEWAY PROTOCOLS
# ══════════════════════════════════════════════════════════════

class CatalogGateway(Protocol):
    async def find_products(self, query: ProductQuery) -> Sequence[Product]:
        ...


class CustomProductGateway(Protocol):
    async def create_custom_product(self, name: str, price: Decimal) -> Mapping[str, Any]:
        ...


# ══════════════════════════════════════════════════════════════
# IN-MEMORY CATALOG
# ══════════════════════════════════════════════════════════════

class InMemoryCatalog:
    """
    Catalog backend held in a dict, for wiring and tests.

    `code` matches barcode or SKU exactly; `search_term` matches
    name, SKU or barcode case-insensitively. Set `fail_with` to
    make every call raise. `delay` (seconds) simulates latency.
    """

    def __init__(self, products: Sequence[Product] = (), *, delay: float = 0.0):
        self._products: Dict[str, Product] = {p.id: p for p in products}
        self._custom: Dict[str, Dict[str, Any]] = {}
        self.delay = delay
        self.fail_with: Optional[Exception] = None
        self.queries: List[ProductQuery] = []

    def put(self, product: Product) -> None:
        self._products[product.id] = product

    @property
    def call_count(self) -> int:
        return len(self.queries)

    async def find_products(self, query: ProductQuery) -> List[Product]:
        self.queries.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

        filters = query.filters
        matches = [p for p in self._products.values() if self._matches(p, filters)]
        start = query.pagination.skip
        return matches[start:start + query.pagination.take]

    async def create_custom_product(self, name: str, price: Decimal) -> Dict[str, Any]:
        if self.fail_with is not None:
            raise self.fail_with
        custom_id = f"cp{len(self._custom) + 1}"
        record = {"id": custom_id, "name": name, "price": str(price)}
        self._custom[custom_id] = record
        return record

    @staticmethod
    def _matches(product: Product, filters: ProductFilters) -> bool:
        if filters.category_id and product.category_id != filters.category_id:
            return False
        if filters.code and not product.matches_code(filters.code):
            return False
        if filters.search_term:
            term = filters.search_term.lower()
            haystack = [product.name, product.sku or "", product.barcode or ""]
            if not any(term in value.lower() for value in haystack):
                return False
        return True


# ══════════════════════════════════════════════════════════════
# SCAN MATCH
# ══════════════════════════════════════════════════════════════

class MatchSource(Enum):
    INDEX = "index"
    EXACT = "exact"
    FUZZY = "fuzzy"
    NONE = "none"
    FAILED = "failed"


@dataclass(frozen=True)
class ScanMatch:
    code: str
    source: MatchSource
    product: Optional[Product] = None
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.product is not None

    @property
    def needs_quantity(self) -> bool:
        """Index and exact hits ask the operator for a quantity."""
        return self.source in (MatchSource.INDEX, MatchSource.EXACT)


# ══════════════════════════════════════════════════════════════
# CATALOG SERVICE
# ══════════════════════════════════════════════════════════════

class CatalogService:
    def __init__(
        self,
        gateway: CatalogGateway,
        *,
        custom_products: Optional[CustomProductGateway] = None,
        settings: Optional[PosSettings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        settings = settings or PosSettings()
        clock = clock or SystemClock()
        self._gateway = gateway
        self._custom_products = custom_products
        self.query_cache: TTLCache[List[Product]] = TTLCache(
            ttl_ms=settings.cache.ttl_ms,
            max_entries=settings.cache.max_entries,
            clock=clock,
            name="product-query-cache",
        )
        self.scan_index = ScanIndex(
            ttl_ms=settings.scan_index.ttl_ms,
            max_entries=settings.scan_index.max_entries,
            clock=clock,
        )

    async def find_products(self, query: ProductQuery) -> List[Product]:
        """
        Cached product query. Every result, cached or fresh, refreshes
        the scan index. Raises CacheFetchError when the backend fails.
        """
        products = await self.query_cache.get(
            query.cache_key(), lambda: self._fetch(query)
        )
        self.scan_index.index(products)
        return products

    async def find_products_in_categories(
        self,
        category_ids: Sequence[str],
        *,
        search_term: Optional[str] = None,
        pagination: Optional[Pagination] = None,
    ) -> List[Product]:
        """
        Products in any of `category_ids`.

        One cached query per category, run concurrently, merged by
        product id (first occurrence keeps its position, later ones
        replace the value). Zero or one category is a single query.
        """
        pagination = pagination or Pagination()
        if len(category_ids) <= 1:
            category_id = category_ids[0] if category_ids else None
            return await self.find_products(ProductQuery(
                filters=ProductFilters(search_term=search_term, category_id=category_id),
                pagination=pagination,
            ))

        results = await asyncio.gather(*(
            self.find_products(ProductQuery(
                filters=ProductFilters(search_term=search_term, category_id=category_id),
                pagination=pagination,
            ))
            for category_id in category_ids
        ))
        merged: Dict[str, Product] = {}
        for products in results:
            for product in products:
                merged[product.id] = product
        return list(merged.values())

    def lookup_scanned(self, code: str) -> Optional[Product]:
        return self.scan_index.lookup(code)

    async def resolve_code(self, code: str) -> ScanMatch:
        product = self.scan_index.lookup(code)
        if product is not None:
            return ScanMatch(code=code, source=MatchSource.INDEX, product=product)

        try:
            exact = await self.find_products(ProductQuery(
                filters=ProductFilters(code=code),
                pagination=Pagination(take=SCAN_LOOKUP_TAKE),
            ))
            if exact:
                return ScanMatch(code=code, source=MatchSource.EXACT, product=exact[0])

            fuzzy = await self.find_products(ProductQuery(
                filters=ProductFilters(search_term=code),
                pagination=Pagination(take=SCAN_LOOKUP_TAKE),
            ))
        except CacheFetchError as exc:
            logger.warning(f"lookup for '{code}' failed: {exc.cause!r}")
            return ScanMatch(code=code, source=MatchSource.FAILED, error=str(exc.cause))

        if fuzzy:
            return ScanMatch(code=code, source=MatchSource.FUZZY, product=fuzzy[0])

        logger.info(f"product not found for code '{code}'")
        return ScanMatch(code=code, source=MatchSource.NONE)

    def clear_caches(self) -> None:
        """Drop cached queries and scan codes (operator changed)."""
        self.query_cache.clear()
        self.scan_index.clear()
        logger.info("catalog caches cleared")

    async def create_custom_product(self, name: str, price: Decimal) -> Mapping[str, Any]:
        if self._custom_products is None:
            raise RuntimeError("No custom product gateway configured.")
        return await self._custom_products.create_custom_product(name, price)

    async def _fetch(self, query: ProductQuery) -> List[Product]:
        logger.debug(f"fetching products for {query.cache_key()}")
        return list(await self._gateway.find_products(query))
