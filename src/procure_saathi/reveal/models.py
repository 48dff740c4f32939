"""
Reveal Gate Models

A RevealRequest tracks one buyer unlocking one supplier's contact on one
requirement. Its status only ever moves forward.

Fun fact: Sealed tenders in 19th-century railway contracts were opened in
public at a fixed hour; the bidders' names came out of the envelope last.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class RevealStatus(str, Enum):
    """
    Reveal lifecycle - monotonic

    LOCKED → REQUESTED → PAID → REVEALED

    LOCKED is the implicit state of every (requirement, supplier) pair
    that has no request yet.
    """

    LOCKED = "locked"
    REQUESTED = "requested"
    PAID = "paid"
    REVEALED = "revealed"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def at_least(self, other: "RevealStatus") -> bool:
        return self.rank >= other.rank


_RANK = {
    RevealStatus.LOCKED: 0,
    RevealStatus.REQUESTED: 1,
    RevealStatus.PAID: 2,
    RevealStatus.REVEALED: 3,
}


class RevealRequest(BaseModel):
    """A buyer's request to unlock a supplier's contact details"""

    requirement_id: str
    supplier_id: str
    bid_id: str
    buyer_id: str
    status: RevealStatus = RevealStatus.REQUESTED
    reveal_fee: Decimal
    requested_at: datetime
    paid_at: datetime | None = None
    revealed_at: datetime | None = None
    payment_reference: str | None = Field(default=None, repr=False)
    payment_failures: int = 0
    last_failure_reason: str | None = None
    version: int = 0

    model_config = {"frozen": True}
