"""
POS Catalog Engine: Scanner Input
===================================
Barcode scanners behave like very fast keyboards. Before a payload
reaches the catalog it passes three gates:

1. Repeat window: a second trigger within 100 ms is dropped.
2. Plausibility: short or punctuated strings are keyboard noise.
3. Focus: while the operator types in a text field, scans are ignored.

Search-as-you-type is debounced separately (SearchDebouncer).
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime
from typing import Any, Awaitable, Callable, Mapping, Optional

from core.time.clock import Clock, SystemClock, elapsed_ms

logger = logging.getLogger("pos.catalog")

_DIGITS = re.compile(r"^\d+$")
_LETTERS = re.compile(r"^[a-zA-Z]{3,}$")
_NOISE = re.compile(r"[\s!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>?/]")


def is_plausible_code(code: str) -> bool:
    """
    True when `code` looks like a real barcode or SKU.

    Rejects: fewer than 3 characters, all digits under 6,
    all letters under 8, any whitespace or punctuation.
    """
    if not code or len(code) < 3:
        return False
    if _DIGITS.match(code) and len(code) < 6:
        return False
    if _LETTERS.match(code) and len(code) < 8:
        return False
    if _NOISE.search(code):
        return False
    return True


# ══════════════════════════════════════════════════════════════
# SCAN GATE
# ══════════════════════════════════════════════════════════════

class ScanGate:
    """
    Turns raw scanner events ({"data": "..."}) into codes worth looking up.

    Only accepted scans restart the repeat window.
    """

    def __init__(
        self,
        *,
        clock: Optional[Clock] = None,
        repeat_window_ms: int = 100,
    ) -> None:
        self._clock = clock or SystemClock()
        self._repeat_window_ms = repeat_window_ms
        self._last_accepted_at: Optional[datetime] = None
        self.input_focused = False

    def accept(self, payload: Optional[Mapping[str, Any]]) -> Optional[str]:
        if self.input_focused:
            return None

        now = self._clock.now_utc()
        if (
            self._last_accepted_at is not None
            and elapsed_ms(self._last_accepted_at, now) < self._repeat_window_ms
        ):
            return None

        raw = payload.get("data") if payload else None
        if not raw or not isinstance(raw, str):
            logger.warning(f"invalid scan payload received: {payload!r}")
            return None

        code = raw.strip()
        if not is_plausible_code(code):
            logger.debug(f"ignoring implausible scan '{code}'")
            return None

        self._last_accepted_at = now
        return code


# ══════════════════════════════════════════════════════════════
# SEARCH DEBOUNCER
# ══════════════════════════════════════════════════════════════

class SearchDebouncer:
    """
    Runs `on_settled(term)` once typing has paused for `delay_ms`.

    Each submit() cancels the pending one; only the last term
    within a burst is searched. The term is stripped first.
    """

    def __init__(
        self,
        on_settled: Callable[[str], Awaitable[Any]],
        *,
        delay_ms: int = 200,
    ) -> None:
        self._on_settled = on_settled
        self._delay = delay_ms / 1000
        self._pending: Optional[asyncio.Task] = None

    def submit(self, term: str) -> asyncio.Task:
        self.cancel()
        self._pending = asyncio.ensure_future(self._settle(term.strip()))
        return self._pending

    def cancel(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def _settle(self, term: str) -> Any:
        await asyncio.sleep(self._delay)
        return await self._on_settled(term)
