"""
Bid anonymization

Bids are shown to buyers under a pseudonymous code. The code is derived
from the supplier id, so the same supplier shows the same code on every
requirement without exposing who they are.
"""

from procure_saathi.kernel.policy import MarketplacePolicy
from procure_saathi.requirements.models import Bid, BidView
from procure_saathi.suppliers.models import SupplierProfile


def supplier_code(supplier_id: str, policy: MarketplacePolicy) -> str:
    """
    Pseudonymous supplier code

    Example:
        >>> supplier_code("acme-steel", MarketplacePolicy())
        'PS-ACME'
    """
    return f"{policy.supplier_code_prefix}{supplier_id[:4].upper()}"


def mask_contact(value: str | None) -> str | None:
    """
    Mask a contact value, keeping the first two and last two characters

    Example:
        >>> mask_contact("9876543210")
        '98******10'
    """
    if not value:
        return value
    if len(value) <= 4:
        return "*" * len(value)
    return value[:2] + "*" * (len(value) - 4) + value[-2:]


def to_bid_view(
    bid: Bid, profile: SupplierProfile | None, policy: MarketplacePolicy
) -> BidView:
    """Anonymized view of a bid: supplier code and city, never contact fields"""
    return BidView(
        bid_id=bid.bid_id,
        requirement_id=bid.requirement_id,
        supplier_code=supplier_code(bid.supplier_id, policy),
        supplier_city=profile.city if profile else None,
        bid_amount=bid.bid_amount,
        service_fee=bid.service_fee,
        total_amount=bid.total_amount,
        delivery_days=bid.delivery_days,
        terms=bid.terms,
        status=bid.status,
        created_at=bid.created_at,
    )
