"""
POS Command Layer: Operation Outcome
======================================
Every cart or checkout operation produces exactly one Outcome.

ACCEPTED: the operation was applied.
REJECTED: nothing changed; the reason is mandatory.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.commands.rejection import RejectionReason


class OutcomeStatus(Enum):
    """Binary decision. No middle ground."""
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class Outcome:
    """
    Result of one operator action.

    Invariants:
        - REJECTED + reason is None → ValueError
        - ACCEPTED + reason is not None → ValueError
    """

    status: OutcomeStatus
    reason: Optional[RejectionReason] = None

    def __post_init__(self):
        if not isinstance(self.status, OutcomeStatus):
            raise ValueError(
                f"status must be OutcomeStatus, got {type(self.status).__name__}."
            )

        if self.status == OutcomeStatus.REJECTED and self.reason is None:
            raise ValueError(
                "REJECTED outcome must include a RejectionReason. "
                "No silent rejections allowed."
            )

        if self.status == OutcomeStatus.ACCEPTED and self.reason is not None:
            raise ValueError(
                "ACCEPTED outcome must NOT include a RejectionReason."
            )

    @classmethod
    def accepted(cls) -> "Outcome":
        return cls(status=OutcomeStatus.ACCEPTED)

    @classmethod
    def rejected(cls, reason: RejectionReason) -> "Outcome":
        return cls(status=OutcomeStatus.REJECTED, reason=reason)

    @property
    def is_accepted(self) -> bool:
        return self.status == OutcomeStatus.ACCEPTED

    @property
    def is_rejected(self) -> bool:
        return self.status == OutcomeStatus.REJECTED

    @property
    def code(self) -> Optional[str]:
        return self.reason.code if self.reason else None
