"""
POS Core Time: Injectable Clock
=================================
Cache expiry, scan rate limiting and receipt timestamps all read
time through a Clock that is passed in, never from datetime.now()
inside engine logic.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


# ══════════════════════════════════════════════════════════════
# CLOCK PROTOCOL
# ══════════════════════════════════════════════════════════════

class Clock(Protocol):
    """Injectable time source."""

    def now_utc(self) -> datetime:
        """Return current UTC time."""
        ...  # pragma: no cover


# ══════════════════════════════════════════════════════════════
# IMPLEMENTATIONS
# ══════════════════════════════════════════════════════════════

class SystemClock:
    """Production clock: real system time."""

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Test clock: returns a fixed timestamp until advanced.

    Usage:
        clock = FixedClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        clock.advance(milliseconds=3001)
    """

    def __init__(self, fixed_dt: datetime) -> None:
        if fixed_dt.tzinfo is None:
            raise ValueError("FixedClock requires timezone-aware datetime.")
        self._fixed_dt = fixed_dt

    def now_utc(self) -> datetime:
        return self._fixed_dt

    def advance(self, seconds: float = 0.0, milliseconds: float = 0.0) -> None:
        """Move time forward (multi-step test scenarios)."""
        if seconds < 0 or milliseconds < 0:
            raise ValueError("FixedClock cannot move backwards.")
        self._fixed_dt += timedelta(seconds=seconds, milliseconds=milliseconds)

    def set(self, fixed_dt: datetime) -> None:
        if fixed_dt.tzinfo is None:
            raise ValueError("FixedClock requires timezone-aware datetime.")
        self._fixed_dt = fixed_dt


def elapsed_ms(earlier: datetime, later: datetime) -> float:
    """Milliseconds between two instants (negative if reversed)."""
    return (later - earlier).total_seconds() * 1000.0
