"""
Bid Ledger & Requirement Lifecycle

Buyers post requirements, suppliers submit sealed bids, and exactly one bid
per requirement can ever be accepted. Accepting a bid rejects its pending
siblings and awards the requirement in one atomic append.
"""

from procure_saathi.requirements.commands import (
    AcceptBid,
    CancelRequirement,
    CloseRequirement,
    CreateRequirement,
    ReviseBid,
    SubmitBid,
)
from procure_saathi.requirements.handlers import (
    RequirementCommandHandlers,
    requirement_stream,
)
from procure_saathi.requirements.models import (
    AwardResult,
    Bid,
    BidOrder,
    BidStatus,
    BidView,
    Requirement,
    RequirementStatus,
    TradeType,
)
from procure_saathi.requirements.pricing import BidPricing, price_bid, service_fee_rate
from procure_saathi.requirements.projections import RequirementBook

__all__ = [
    # Models
    "Requirement",
    "RequirementStatus",
    "Bid",
    "BidStatus",
    "BidView",
    "BidOrder",
    "TradeType",
    "AwardResult",
    # Commands
    "CreateRequirement",
    "SubmitBid",
    "ReviseBid",
    "AcceptBid",
    "CloseRequirement",
    "CancelRequirement",
    # Pricing
    "BidPricing",
    "price_bid",
    "service_fee_rate",
    # Handlers & projections
    "RequirementCommandHandlers",
    "RequirementBook",
    "requirement_stream",
]
