"""
Test helpers - builders for common marketplace setups

Keeps individual tests focused on the behaviour under test instead of on
the half-dozen calls it takes to get a requirement with bids on it.
"""

from datetime import timedelta
from decimal import Decimal

from procure_saathi.affiliates import AffiliateRecord
from procure_saathi.marketplace import ProcureSaathi
from procure_saathi.requirements import Bid, Requirement


def post_requirement(
    market: ProcureSaathi,
    buyer_id: str = "buyer-1",
    deadline_days: int = 7,
    **overrides,
) -> Requirement:
    """Post an ACTIVE requirement with sensible defaults"""
    fields = {
        "title": "TMT steel bars Fe500",
        "category": "metals",
        "quantity": Decimal("500"),
        "unit": "kg",
        "delivery_location": "Pune",
        "deadline": market.time_provider.now() + timedelta(days=deadline_days),
    }
    fields.update(overrides)
    return market.create_requirement(buyer_id=buyer_id, **fields)


def register_supplier(market: ProcureSaathi, supplier_id: str, city: str = "Mumbai"):
    """Register a supplier with a full private contact profile"""
    return market.register_supplier(
        supplier_id=supplier_id,
        name=f"Contact of {supplier_id}",
        company=f"{supplier_id.title()} Pvt Ltd",
        phone="9876543210",
        email=f"sales@{supplier_id}.example.in",
        address="Plot 12, MIDC Bhosari",
        city=city,
        gstin="27AAPFU0939F1ZV",
    )


def requirement_with_bids(
    market: ProcureSaathi,
    amounts: dict[str, int | str],
    buyer_id: str = "buyer-1",
    delivery_days: int = 7,
) -> tuple[Requirement, dict[str, Bid]]:
    """
    Post a requirement and have each supplier bid the given amount

    Returns:
        (requirement, {supplier_id: bid})
    """
    requirement = post_requirement(market, buyer_id=buyer_id)
    bids = {}
    for supplier_id, amount in amounts.items():
        register_supplier(market, supplier_id)
        bids[supplier_id] = market.submit_bid(
            requirement.requirement_id, supplier_id, amount, delivery_days
        )
    return requirement, bids


def join_affiliates(market: ProcureSaathi, count: int, prefix: str = "user") -> list[AffiliateRecord]:
    """Join ``count`` affiliates in order"""
    return [market.join_affiliate(f"{prefix}-{i:03d}") for i in range(1, count + 1)]


def fill_active_affiliates(market: ProcureSaathi, count: int) -> list[AffiliateRecord]:
    """Join and FIFO-activate ``count`` affiliates"""
    records = join_affiliates(market, count, prefix="active")
    for record in records:
        market.activate_fifo(record.affiliate_id)
    return [market.get_affiliate(r.affiliate_id) for r in records]
