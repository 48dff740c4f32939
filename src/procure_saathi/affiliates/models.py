"""
Affiliate FIFO Queue Models

At most fifty affiliates are ACTIVE at once. Everyone else waits in join
order, and only the FIFO activation path can grant an ACTIVE slot.

Fun fact: The first recorded "take a number" ticket dispenser was patented
in 1977 by a Baskin-Robbins franchisee - fairness, mechanised.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class AffiliateStatus(str, Enum):
    """
    Affiliate lifecycle states

    PENDING/WAITLISTED → (FIFO activation) → ACTIVE → (admin) → SUSPENDED | REJECTED

    No path re-enters PENDING, and no path other than FIFO activation
    enters ACTIVE.
    """

    PENDING = "PENDING"
    WAITLISTED = "WAITLISTED"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    REJECTED = "REJECTED"

    @property
    def is_waiting(self) -> bool:
        return self in (AffiliateStatus.PENDING, AffiliateStatus.WAITLISTED)


class ActivationOutcome(str, Enum):
    ACTIVE = "ACTIVE"
    LIMIT_REACHED = "LIMIT_REACHED"


class AffiliateRecord(BaseModel):
    """One affiliate's place in the programme"""

    affiliate_id: str
    user_id: str
    referral_code: str
    status: AffiliateStatus = AffiliateStatus.PENDING
    queue_position: int | None = Field(
        default=None, description="Dense 1..n position, set only while ACTIVE"
    )
    join_sequence: int = Field(..., ge=1, description="Arrival order")
    joined_at: datetime
    activated_at: datetime | None = None
    deactivated_at: datetime | None = None
    deactivation_reason: str | None = None

    model_config = {"frozen": True}


class ActivationResult(BaseModel):
    """
    Outcome of a FIFO activation

    LIMIT_REACHED is a defined result, not an error: the record is left
    exactly as it was.
    """

    affiliate_id: str
    status: ActivationOutcome
    queue_position: int | None = None

    def to_dict(self) -> dict:
        body: dict = {"status": self.status.value}
        if self.status == ActivationOutcome.ACTIVE:
            body["queuePosition"] = self.queue_position
        return body


class AffiliateStats(BaseModel):
    """Counts per status and remaining ACTIVE capacity"""

    counts: dict[AffiliateStatus, int]
    max_active: int
    remaining_slots: int
