"""
End-to-end bid lifecycle through the ProcureSaathi façade

Covers the award path, the at-most-one-accepted-bid law under concurrent
accepts, anonymized listings and deadline housekeeping.

Fun fact: Sealed bids were opened in public in 19th-century Indian Railways
tenders, with every bidder entitled to watch the envelopes being cut.
"""

import threading
from decimal import Decimal

import pytest

from procure_saathi.kernel.errors import Conflict, InvalidState, NotFound
from procure_saathi.kernel.time import TestTimeProvider
from procure_saathi.marketplace import ProcureSaathi
from procure_saathi.requirements import BidStatus, RequirementStatus
from tests.helpers import post_requirement, register_supplier, requirement_with_bids


def test_lowest_bid_listed_first_and_awarded(market: ProcureSaathi) -> None:
    """Supplier A bids 1000, B bids 900; buyer lists ascending and accepts B"""
    requirement, bids = requirement_with_bids(
        market, {"acme-steel": 1000, "bharat-metal": 900}
    )
    a, b = bids["acme-steel"], bids["bharat-metal"]

    listed = market.list_bids(requirement.requirement_id, "amount_asc")
    assert [v.bid_id for v in listed] == [b.bid_id, a.bid_id]
    assert [v.bid_amount for v in listed] == [Decimal("900.00"), Decimal("1000.00")]

    result = market.accept_bid(requirement.requirement_id, b.bid_id, "buyer-1")

    assert result.requirement.status == RequirementStatus.AWARDED
    assert result.accepted_bid.status == BidStatus.ACCEPTED
    assert [r.bid_id for r in result.rejected_bids] == [a.bid_id]
    assert market.get_bid(a.bid_id).status == BidStatus.REJECTED


def test_concurrent_accepts_have_exactly_one_winner(market: ProcureSaathi) -> None:
    """Two accepts fired together on the same requirement: one wins, one Conflicts"""
    requirement, bids = requirement_with_bids(
        market, {"acme-steel": 1000, "bharat-metal": 900}
    )
    barrier = threading.Barrier(2)
    outcomes: dict[str, str] = {}

    def accept(supplier_id: str) -> None:
        barrier.wait()
        try:
            market.accept_bid(requirement.requirement_id, bids[supplier_id].bid_id, "buyer-1")
            outcomes[supplier_id] = "awarded"
        except Conflict:
            outcomes[supplier_id] = "conflict"

    threads = [threading.Thread(target=accept, args=(s,)) for s in bids]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes.values()) == ["awarded", "conflict"]
    statuses = [market.get_bid(b.bid_id).status for b in bids.values()]
    assert statuses.count(BidStatus.ACCEPTED) == 1
    assert statuses.count(BidStatus.REJECTED) == 1


def test_many_concurrent_accepts_on_many_bids(market: ProcureSaathi) -> None:
    suppliers = {f"supplier-{i:02d}": 1000 + i for i in range(6)}
    requirement, bids = requirement_with_bids(market, suppliers)
    barrier = threading.Barrier(len(bids))
    winners: list[str] = []
    conflicts: list[str] = []

    def accept(bid_id: str) -> None:
        barrier.wait()
        try:
            market.accept_bid(requirement.requirement_id, bid_id, "buyer-1")
            winners.append(bid_id)
        except Conflict:
            conflicts.append(bid_id)

    threads = [threading.Thread(target=accept, args=(b.bid_id,)) for b in bids.values()]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(winners) == 1
    assert len(conflicts) == len(bids) - 1
    accepted = [
        b for b in market.requirement_book.bids_for(requirement.requirement_id)
        if b.status == BidStatus.ACCEPTED
    ]
    assert [b.bid_id for b in accepted] == winners


def test_awarded_requirement_freezes_bids(market: ProcureSaathi) -> None:
    requirement, bids = requirement_with_bids(market, {"acme-steel": 1000})
    market.accept_bid(requirement.requirement_id, bids["acme-steel"].bid_id, "buyer-1")

    register_supplier(market, "late-comer")
    with pytest.raises(InvalidState, match="already been awarded"):
        market.submit_bid(requirement.requirement_id, "late-comer", 500, 3)
    with pytest.raises(InvalidState):
        market.revise_bid(
            requirement.requirement_id, bids["acme-steel"].bid_id, "acme-steel", 10, 1
        )
    with pytest.raises(Conflict):
        market.accept_bid(requirement.requirement_id, bids["acme-steel"].bid_id, "buyer-1")


def test_listing_is_anonymized(market: ProcureSaathi) -> None:
    requirement, _ = requirement_with_bids(market, {"acme-steel": 1000})

    view = market.list_bids(requirement.requirement_id)[0]
    dumped = view.model_dump()

    assert view.supplier_code == "PS-ACME"
    assert view.supplier_city == "Mumbai"
    for leaked in ("supplier_id", "name", "company", "phone", "email", "address", "gstin"):
        assert leaked not in dumped


def test_list_bids_unknown_requirement(market: ProcureSaathi) -> None:
    with pytest.raises(NotFound):
        market.list_bids("missing")


def test_supplier_sees_own_bids_across_requirements(
    market: ProcureSaathi, test_time: TestTimeProvider
) -> None:
    register_supplier(market, "acme-steel")
    first = post_requirement(market, title="Angles")
    test_time.advance_seconds(60)
    second = post_requirement(market, title="Channels")
    test_time.advance_seconds(60)
    market.submit_bid(first.requirement_id, "acme-steel", 100, 2)
    test_time.advance_seconds(60)
    market.submit_bid(second.requirement_id, "acme-steel", 200, 2)

    mine = market.list_supplier_bids("acme-steel")
    assert [b.requirement_id for b in mine] == [second.requirement_id, first.requirement_id]
    assert market.list_supplier_bids("nobody") == []


def test_list_requirements_filters(market: ProcureSaathi, test_time: TestTimeProvider) -> None:
    open_one = post_requirement(market, buyer_id="buyer-1")
    test_time.advance_seconds(5)
    closed_one = post_requirement(market, buyer_id="buyer-1")
    market.close_requirement(closed_one.requirement_id, "buyer-1")
    post_requirement(market, buyer_id="buyer-2")

    active = market.list_requirements(status="active", buyer_id="buyer-1")
    assert [r.requirement_id for r in active] == [open_one.requirement_id]
    assert len(market.list_requirements()) == 3


def test_tick_closes_requirements_past_deadline(
    market: ProcureSaathi, test_time: TestTimeProvider
) -> None:
    soon = post_requirement(market, deadline_days=1)
    later = post_requirement(market, deadline_days=30)

    test_time.advance_days(2)
    result = market.tick()

    assert result.closed_requirement_ids == [soon.requirement_id]
    assert market.get_requirement(soon.requirement_id).close_reason == "deadline_passed"
    assert market.get_requirement(later.requirement_id).status == RequirementStatus.ACTIVE

    # A second tick has nothing left to do
    assert market.tick().closed_requirement_ids == []


def test_state_survives_restart(
    market: ProcureSaathi, temp_db, policy, test_time: TestTimeProvider
) -> None:
    requirement, bids = requirement_with_bids(
        market, {"acme-steel": 1000, "bharat-metal": 900}
    )
    market.accept_bid(requirement.requirement_id, bids["bharat-metal"].bid_id, "buyer-1")

    reopened = ProcureSaathi(temp_db, policy=policy, time_provider=test_time)

    assert reopened.get_requirement(requirement.requirement_id).status == RequirementStatus.AWARDED
    assert reopened.get_bid(bids["acme-steel"].bid_id).status == BidStatus.REJECTED
    with pytest.raises(Conflict):
        reopened.accept_bid(requirement.requirement_id, bids["acme-steel"].bid_id, "buyer-1")


def test_two_instances_on_one_database_stay_consistent(
    market: ProcureSaathi, temp_db, policy, test_time: TestTimeProvider
) -> None:
    """A second process-like instance loses the race and sees the award"""
    requirement, bids = requirement_with_bids(
        market, {"acme-steel": 1000, "bharat-metal": 900}
    )
    other = ProcureSaathi(temp_db, policy=policy, time_provider=test_time)

    market.accept_bid(requirement.requirement_id, bids["acme-steel"].bid_id, "buyer-1")

    with pytest.raises(Conflict):
        other.accept_bid(requirement.requirement_id, bids["bharat-metal"].bid_id, "buyer-1")
    assert other.get_requirement(requirement.requirement_id).status == RequirementStatus.AWARDED
