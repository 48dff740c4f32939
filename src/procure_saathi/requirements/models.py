"""
Requirement & Bid Domain Models

Buyer-posted requirements (RFQs), sealed supplier bids, and the anonymized
view of a bid that buyers compare before an award.

Fun fact: The word "tender" comes from the Old French "tendre" - to
stretch out, to offer. A bid is literally an outstretched hand.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class RequirementStatus(str, Enum):
    """
    Requirement lifecycle states

    Finite state machine:
    ACTIVE → AWARDED   (accept-bid only)
    ACTIVE → CLOSED    (owner close, or deadline passed)
    ACTIVE → CANCELLED (owner cancel)

    Every state other than ACTIVE is terminal.
    """

    ACTIVE = "active"
    CLOSED = "closed"
    AWARDED = "awarded"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not RequirementStatus.ACTIVE


class BidStatus(str, Enum):
    """Bid states: PENDING → ACCEPTED | REJECTED (accept-bid only)"""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TradeType(str, Enum):
    """Trade lane of a requirement (drives the service fee rate)"""

    DOMESTIC_INDIA = "domestic_india"
    IMPORT = "import"
    EXPORT = "export"


class BidOrder(str, Enum):
    """Sort orders for a requirement's bid list"""

    AMOUNT_ASC = "amount_asc"  # lowest total first (default)
    AMOUNT_DESC = "amount_desc"
    DELIVERY_ASC = "delivery_asc"  # fastest delivery first
    NEWEST = "newest"


class Requirement(BaseModel):
    """
    A buyer's procurement requirement (RFQ)

    Never deleted - archived via terminal status.
    """

    requirement_id: str
    buyer_id: str
    title: str
    category: str
    quantity: Decimal
    unit: str
    delivery_location: str
    deadline: datetime
    trade_type: TradeType = TradeType.DOMESTIC_INDIA
    description: str | None = None
    status: RequirementStatus = RequirementStatus.ACTIVE
    created_at: datetime
    awarded_bid_id: str | None = None
    closed_at: datetime | None = None
    close_reason: str | None = None
    version: int = Field(default=0, description="Requirement stream version")

    model_config = {"frozen": True}


class Bid(BaseModel):
    """
    A supplier's sealed bid against a requirement

    Amounts are Decimal end to end: bid_amount is what the supplier asks,
    service_fee is the platform's cut, total_amount is what the buyer pays.
    """

    bid_id: str
    requirement_id: str
    supplier_id: str
    bid_amount: Decimal
    service_fee: Decimal
    total_amount: Decimal
    delivery_days: int
    terms: str | None = None
    status: BidStatus = BidStatus.PENDING
    created_at: datetime
    updated_at: datetime
    decided_at: datetime | None = None
    sequence: int = Field(..., description="Submission order within the requirement (1-based)")

    model_config = {"frozen": True}


class BidView(BaseModel):
    """
    Anonymized bid as shown to buyers

    Carries a pseudonymous supplier code and the supplier's city only.
    Name, company, phone, email, street address and GSTIN are never part
    of this payload; they leave the system through the reveal gate alone.
    """

    bid_id: str
    requirement_id: str
    supplier_code: str
    supplier_city: str | None = None
    bid_amount: Decimal
    service_fee: Decimal
    total_amount: Decimal
    delivery_days: int
    terms: str | None = None
    status: BidStatus
    created_at: datetime

    model_config = {"frozen": True}


class AwardResult(BaseModel):
    """Outcome of a successful accept-bid: the awarded requirement and every touched bid"""

    requirement: Requirement
    accepted_bid: Bid
    rejected_bids: list[Bid] = Field(default_factory=list)
