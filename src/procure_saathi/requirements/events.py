"""
Requirement & Bid Events

Events are immutable facts about what happened. All of them live on the
requirement's own stream, so an award is one versioned append.

Fun fact: Sealed-bid auctions are recorded as far back as Herodotus, who
describes Babylonian bride auctions held once a year - in public, alas.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from procure_saathi.requirements.models import TradeType


class RequirementPosted(BaseModel):
    """Buyer posted a requirement"""

    requirement_id: str
    buyer_id: str
    title: str
    category: str
    quantity: Decimal
    unit: str
    delivery_location: str
    deadline: datetime
    trade_type: TradeType
    description: str | None = None
    posted_at: datetime


class BidSubmitted(BaseModel):
    """Supplier submitted a sealed bid"""

    bid_id: str
    requirement_id: str
    supplier_id: str
    bid_amount: Decimal
    service_fee: Decimal
    total_amount: Decimal
    delivery_days: int
    terms: str | None = None
    sequence: int = Field(..., ge=1)
    submitted_at: datetime


class BidRevised(BaseModel):
    """Supplier revised amount/timeline/terms of a pending bid"""

    bid_id: str
    requirement_id: str
    supplier_id: str
    bid_amount: Decimal
    service_fee: Decimal
    total_amount: Decimal
    delivery_days: int
    terms: str | None = None
    revised_at: datetime


class BidAccepted(BaseModel):
    """Buyer accepted this bid"""

    bid_id: str
    requirement_id: str
    accepted_by: str
    accepted_at: datetime


class BidRejected(BaseModel):
    """A pending sibling bid was rejected as part of an award"""

    bid_id: str
    requirement_id: str
    rejected_at: datetime
    reason: str = "another_bid_accepted"


class RequirementAwarded(BaseModel):
    """Requirement awarded to the accepted bid (terminal)"""

    requirement_id: str
    bid_id: str
    supplier_id: str
    awarded_by: str
    awarded_at: datetime


class RequirementClosed(BaseModel):
    """Requirement closed without award (terminal)"""

    requirement_id: str
    closed_by: str
    closed_at: datetime
    reason: str


class RequirementCancelled(BaseModel):
    """Requirement cancelled by its buyer (terminal)"""

    requirement_id: str
    cancelled_by: str
    cancelled_at: datetime
    reason: str
