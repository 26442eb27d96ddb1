"""
POS Command Layer: Public API
===============================
Operator actions end in an Outcome. Refusals carry a
RejectionReason and leave state untouched.
"""

from core.commands.outcomes import (
    Outcome,
    OutcomeStatus,
)
from core.commands.rejection import (
    ReasonCode,
    RejectionReason,
)

__all__ = [
    # ── Outcomes ──────────────────────────────────────────────
    "Outcome",
    "OutcomeStatus",
    # ── Rejection ─────────────────────────────────────────────
    "RejectionReason",
    "ReasonCode",
]
