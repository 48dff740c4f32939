"""
Requirement & Bid Commands

Commands express intentions to modify requirement/bid state. Shape checks
(non-blank text, positive amounts) happen here at the boundary; lifecycle
checks happen in handlers via invariants.
"""

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from procure_saathi.requirements.models import TradeType


class CreateRequirement(BaseModel):
    """Post a new requirement (RFQ); starts ACTIVE"""

    buyer_id: str = Field(..., min_length=1)
    title: str = Field(..., max_length=200)
    category: str
    quantity: Decimal = Field(..., gt=0)
    unit: str
    delivery_location: str
    deadline: datetime
    trade_type: TradeType = TradeType.DOMESTIC_INDIA
    description: str | None = Field(default=None, max_length=5000)

    @field_validator("title", "category", "unit", "delivery_location")
    @classmethod
    def strip_required_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("deadline")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        """Naive deadlines are taken to be UTC"""
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SubmitBid(BaseModel):
    """Supplier submits a sealed bid against an ACTIVE requirement"""

    requirement_id: str
    supplier_id: str = Field(..., min_length=1)
    bid_amount: Decimal = Field(..., gt=0, description="Supplier's price before service fee")
    delivery_days: int = Field(..., ge=1, le=365)
    terms: str | None = Field(default=None, max_length=2000)


class ReviseBid(BaseModel):
    """Owning supplier changes a PENDING bid while the requirement is ACTIVE"""

    requirement_id: str
    bid_id: str
    supplier_id: str = Field(..., min_length=1)
    bid_amount: Decimal = Field(..., gt=0)
    delivery_days: int = Field(..., ge=1, le=365)
    terms: str | None = Field(default=None, max_length=2000)


class AcceptBid(BaseModel):
    """
    Owning buyer accepts one bid

    Atomically: target → accepted, pending siblings → rejected,
    requirement → awarded.
    """

    requirement_id: str
    bid_id: str
    acting_buyer_id: str = Field(..., min_length=1)


class CloseRequirement(BaseModel):
    """Owner closes an ACTIVE requirement without an award"""

    requirement_id: str
    acting_buyer_id: str = Field(..., min_length=1)
    reason: str = Field(default="closed_by_buyer", max_length=500)


class CancelRequirement(BaseModel):
    """Owner cancels an ACTIVE requirement"""

    requirement_id: str
    acting_buyer_id: str = Field(..., min_length=1)
    reason: str = Field(default="cancelled_by_buyer", max_length=500)
