"""
Bid pricing - service fee schedule

Domestic trade pays the domestic rate, import and export pay the
cross-border rate. Fees are rounded half-up to the paisa.
"""

from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel

from procure_saathi.kernel.policy import MarketplacePolicy
from procure_saathi.requirements.models import TradeType

PAISA = Decimal("0.01")


class BidPricing(BaseModel):
    bid_amount: Decimal
    service_fee: Decimal
    total_amount: Decimal


def service_fee_rate(trade_type: TradeType, policy: MarketplacePolicy) -> Decimal:
    """Fee rate for a trade lane"""
    if trade_type == TradeType.DOMESTIC_INDIA:
        return policy.domestic_service_fee_rate
    return policy.cross_border_service_fee_rate


def price_bid(
    bid_amount: Decimal, trade_type: TradeType, policy: MarketplacePolicy
) -> BidPricing:
    """
    Compute service fee and buyer total for a bid amount

    Example:
        >>> price_bid(Decimal("1000"), TradeType.DOMESTIC_INDIA, MarketplacePolicy())
        BidPricing(bid_amount=Decimal('1000.00'), service_fee=Decimal('5.00'), total_amount=Decimal('1005.00'))
    """
    amount = bid_amount.quantize(PAISA, rounding=ROUND_HALF_UP)
    fee = (amount * service_fee_rate(trade_type, policy)).quantize(
        PAISA, rounding=ROUND_HALF_UP
    )
    return BidPricing(bid_amount=amount, service_fee=fee, total_amount=amount + fee)
