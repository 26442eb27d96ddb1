"""
POS Catalog Engine: Scan Index
================================
Short-lived code -> product map filled from every product list the
terminal receives. A barcode scan that hits the index skips the
catalog round trip entirely.

Keys are barcodes and SKUs; several keys may point at one product.
Bounded by TTL and by size (oldest insertion evicted first).
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from core.time.clock import Clock, SystemClock
from engines.catalog.models import Product

logger = logging.getLogger("pos.catalog")


@dataclass
class ScanIndexEntry:
    product: Product
    expires_at: datetime


class ScanIndex:
    def __init__(
        self,
        *,
        ttl_ms: int = 5000,
        max_entries: int = 2000,
        clock: Optional[Clock] = None,
    ) -> None:
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive.")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive.")
        self._ttl = timedelta(milliseconds=ttl_ms)
        self._max_entries = max_entries
        self._clock = clock or SystemClock()
        self._entries: "OrderedDict[str, ScanIndexEntry]" = OrderedDict()

    def index(self, products: Iterable[Product]) -> int:
        """
        Record every barcode and SKU of `products`.

        Returns the number of codes written. Re-indexing a code
        refreshes its TTL and product but keeps its position.
        """
        now = self._clock.now_utc()
        expires_at = now + self._ttl
        written = 0
        for product in products:
            for code in product.codes:
                entry = self._entries.get(code)
                if entry is None:
                    self._entries[code] = ScanIndexEntry(product, expires_at)
                else:
                    entry.product = product
                    entry.expires_at = expires_at
                written += 1

        self._sweep(now)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
        return written

    def lookup(self, code: str) -> Optional[Product]:
        entry = self._entries.get(code)
        if entry is None:
            return None
        if self._clock.now_utc() >= entry.expires_at:
            del self._entries[code]
            return None
        return entry.product

    def clear(self) -> None:
        self._entries.clear()

    def codes(self):
        return list(self._entries.keys())

    @property
    def size(self) -> int:
        return len(self._entries)

    def _sweep(self, now: datetime) -> None:
        expired = [code for code, entry in self._entries.items() if now >= entry.expires_at]
        for code in expired:
            del self._entries[code]
        if expired:
            logger.debug(f"scan index: swept {len(expired)} expired codes")
