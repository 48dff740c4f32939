"""Affiliate FIFO Queue Commands"""

from pydantic import BaseModel, Field

from procure_saathi.affiliates.models import AffiliateStatus


class JoinAffiliate(BaseModel):
    """User signs up for the affiliate programme (starts PENDING)"""

    user_id: str = Field(..., min_length=1)
    referral_code: str | None = Field(default=None, max_length=32)


class ActivateFifo(BaseModel):
    """Promote an affiliate to ACTIVE through the FIFO queue"""

    affiliate_id: str


class UpdateAffiliateStatus(BaseModel):
    """
    Generic administrative status change

    Never a path into ACTIVE - that target is refused with Forbidden.
    """

    affiliate_id: str
    new_status: AffiliateStatus
    reason: str = Field(default="", max_length=500)
    acting_admin_id: str = Field(..., min_length=1)
