"""
Affiliate FIFO Queue Events

All of them live on the single roster stream, so every capacity decision
is made against one version of the whole roster.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from procure_saathi.affiliates.models import AffiliateStatus


class AffiliateJoined(BaseModel):
    affiliate_id: str
    user_id: str
    referral_code: str
    join_sequence: int
    joined_at: datetime


class AffiliateActivated(BaseModel):
    """Granted an ACTIVE slot at the next dense position"""

    affiliate_id: str
    queue_position: int = Field(..., ge=1)
    activated_at: datetime


class AffiliateActivationRefused(BaseModel):
    """Cap was full; the record is unchanged (audit only)"""

    affiliate_id: str
    active_count: int
    max_active: int
    refused_at: datetime


class AffiliateStatusChanged(BaseModel):
    """
    Administrative status change

    When an ACTIVE affiliate leaves the active set, the new positions of the
    remaining ACTIVE affiliates are carried in the event so replay is exact.
    """

    affiliate_id: str
    from_status: AffiliateStatus
    to_status: AffiliateStatus
    reason: str
    changed_by: str
    changed_at: datetime
    compacted_positions: dict[str, int] = Field(default_factory=dict)
