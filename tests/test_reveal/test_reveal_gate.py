"""
Tests for the reveal gate

Contact details must stay sealed until the requesting buyer has paid for and
confirmed the reveal of that exact (requirement, supplier) pair, and a
reveal never goes backwards.
"""

from decimal import Decimal

import pytest

from procure_saathi.kernel.errors import Forbidden, InvalidState, NotFound
from procure_saathi.kernel.policy import MarketplacePolicy
from procure_saathi.marketplace import ProcureSaathi
from procure_saathi.reveal import RevealStatus
from procure_saathi.suppliers import mask_contact, supplier_code
from tests.helpers import requirement_with_bids


@pytest.fixture
def awarded(market: ProcureSaathi):
    """Requirement with two bids, acme-steel's accepted"""
    requirement, bids = requirement_with_bids(
        market, {"acme-steel": 1000, "bharat-metal": 1200}
    )
    market.accept_bid(requirement.requirement_id, bids["acme-steel"].bid_id, "buyer-1")
    return requirement, bids


def unlock(market: ProcureSaathi, requirement_id: str, bid, buyer_id: str = "buyer-1") -> None:
    market.request_reveal(requirement_id, bid.supplier_id, bid.bid_id, buyer_id)
    market.confirm_reveal_payment(requirement_id, bid.supplier_id, buyer_id, "pay_001")
    market.confirm_reveal(requirement_id, bid.supplier_id, buyer_id)


class TestRevealFlow:
    def test_full_unlock_releases_contact(self, market: ProcureSaathi, awarded) -> None:
        requirement, bids = awarded
        acme = bids["acme-steel"]

        request = market.request_reveal(
            requirement.requirement_id, "acme-steel", acme.bid_id, "buyer-1"
        )
        assert request.status == RevealStatus.REQUESTED
        assert request.reveal_fee == Decimal("499")

        paid = market.confirm_reveal_payment(
            requirement.requirement_id, "acme-steel", "buyer-1", "pay_001"
        )
        assert paid.status == RevealStatus.PAID
        assert paid.payment_reference == "pay_001"

        revealed = market.confirm_reveal(requirement.requirement_id, "acme-steel", "buyer-1")
        assert revealed.status == RevealStatus.REVEALED

        contact = market.get_revealed_contact(requirement.requirement_id, "acme-steel", "buyer-1")
        assert contact is not None
        assert contact.phone == "9876543210"
        assert contact.email == "sales@acme-steel.example.in"
        assert contact.gstin == "27AAPFU0939F1ZV"
        assert contact.revealed_at == revealed.revealed_at

    def test_contact_stays_sealed_until_revealed(self, market: ProcureSaathi, awarded) -> None:
        requirement, bids = awarded
        rid = requirement.requirement_id

        assert market.get_revealed_contact(rid, "acme-steel", "buyer-1") is None

        market.request_reveal(rid, "acme-steel", bids["acme-steel"].bid_id, "buyer-1")
        assert market.get_revealed_contact(rid, "acme-steel", "buyer-1") is None

        market.confirm_reveal_payment(rid, "acme-steel", "buyer-1", "pay_001")
        assert market.get_revealed_contact(rid, "acme-steel", "buyer-1") is None

    def test_reveal_is_per_supplier(self, market: ProcureSaathi, awarded) -> None:
        requirement, bids = awarded
        unlock(market, requirement.requirement_id, bids["acme-steel"])

        assert market.get_revealed_contact(
            requirement.requirement_id, "bharat-metal", "buyer-1"
        ) is None
        assert market.get_reveal_status(requirement.requirement_id, "bharat-metal") is None
        assert market.get_reveal_status(requirement.requirement_id, "acme-steel") == "revealed"

    def test_buyer_lists_own_requests(self, market: ProcureSaathi, awarded) -> None:
        requirement, bids = awarded
        unlock(market, requirement.requirement_id, bids["acme-steel"])
        market.request_reveal(
            requirement.requirement_id, "bharat-metal", bids["bharat-metal"].bid_id, "buyer-1"
        )

        listed = market.list_reveal_requests("buyer-1")

        assert [(r.supplier_id, r.status) for r in listed] == [
            ("acme-steel", RevealStatus.REVEALED),
            ("bharat-metal", RevealStatus.REQUESTED),
        ]
        assert market.list_reveal_requests("buyer-2") == []

    def test_reveal_works_before_award(self, market: ProcureSaathi) -> None:
        requirement, bids = requirement_with_bids(market, {"acme-steel": 1000})
        unlock(market, requirement.requirement_id, bids["acme-steel"])

        assert market.get_revealed_contact(
            requirement.requirement_id, "acme-steel", "buyer-1"
        ) is not None


class TestMonotonicity:
    def test_replayed_steps_return_current_state(self, market: ProcureSaathi, awarded) -> None:
        requirement, bids = awarded
        rid = requirement.requirement_id
        unlock(market, rid, bids["acme-steel"])
        events_before = market.event_store.count_events()

        again = market.request_reveal(rid, "acme-steel", bids["acme-steel"].bid_id, "buyer-1")
        paid_again = market.confirm_reveal_payment(rid, "acme-steel", "buyer-1", "pay_999")
        revealed_again = market.confirm_reveal(rid, "acme-steel", "buyer-1")

        assert again.status == RevealStatus.REVEALED
        assert paid_again.status == RevealStatus.REVEALED
        assert paid_again.payment_reference == "pay_001"
        assert revealed_again.status == RevealStatus.REVEALED
        assert market.event_store.count_events() == events_before

    def test_confirm_before_payment_is_refused(self, market: ProcureSaathi, awarded) -> None:
        requirement, bids = awarded
        rid = requirement.requirement_id
        market.request_reveal(rid, "acme-steel", bids["acme-steel"].bid_id, "buyer-1")

        with pytest.raises(InvalidState, match="payment"):
            market.confirm_reveal(rid, "acme-steel", "buyer-1")
        assert market.get_reveal_status(rid, "acme-steel") == "requested"

    def test_payment_failure_keeps_request_retryable(
        self, market: ProcureSaathi, awarded
    ) -> None:
        requirement, bids = awarded
        rid = requirement.requirement_id
        market.request_reveal(rid, "acme-steel", bids["acme-steel"].bid_id, "buyer-1")

        failed = market.record_reveal_payment_failure(rid, "acme-steel", "buyer-1", "card_declined")
        assert failed.status == RevealStatus.REQUESTED
        assert failed.payment_failures == 1
        assert failed.last_failure_reason == "card_declined"

        paid = market.confirm_reveal_payment(rid, "acme-steel", "buyer-1", "pay_002")
        assert paid.status == RevealStatus.PAID

    def test_late_payment_failure_does_not_regress(
        self, market: ProcureSaathi, awarded
    ) -> None:
        requirement, bids = awarded
        rid = requirement.requirement_id
        unlock(market, rid, bids["acme-steel"])

        after = market.record_reveal_payment_failure(rid, "acme-steel", "buyer-1")
        assert after.status == RevealStatus.REVEALED
        assert after.payment_failures == 0

    def test_status_rank_ordering(self) -> None:
        assert RevealStatus.REVEALED.at_least(RevealStatus.PAID)
        assert RevealStatus.PAID.at_least(RevealStatus.PAID)
        assert not RevealStatus.REQUESTED.at_least(RevealStatus.PAID)


class TestAccessControl:
    def test_other_buyer_cannot_read_contact(self, market: ProcureSaathi, awarded) -> None:
        requirement, bids = awarded
        unlock(market, requirement.requirement_id, bids["acme-steel"])

        with pytest.raises(Forbidden):
            market.get_revealed_contact(requirement.requirement_id, "acme-steel", "buyer-2")

    def test_stranger_without_request_is_forbidden(
        self, market: ProcureSaathi, awarded
    ) -> None:
        requirement, _ = awarded
        with pytest.raises(Forbidden):
            market.get_revealed_contact(requirement.requirement_id, "acme-steel", "buyer-2")
        with pytest.raises(Forbidden):
            market.get_revealed_contact("missing", "acme-steel", "buyer-1")

    def test_only_owner_may_request(self, market: ProcureSaathi, awarded) -> None:
        requirement, bids = awarded
        with pytest.raises(Forbidden):
            market.request_reveal(
                requirement.requirement_id, "acme-steel", bids["acme-steel"].bid_id, "buyer-2"
            )

    def test_only_requesting_buyer_may_pay(self, market: ProcureSaathi, awarded) -> None:
        requirement, bids = awarded
        rid = requirement.requirement_id
        market.request_reveal(rid, "acme-steel", bids["acme-steel"].bid_id, "buyer-1")

        with pytest.raises(Forbidden):
            market.confirm_reveal_payment(rid, "acme-steel", "buyer-2", "pay_x")

    def test_bid_must_belong_to_supplier(self, market: ProcureSaathi, awarded) -> None:
        requirement, bids = awarded
        with pytest.raises(NotFound):
            market.request_reveal(
                requirement.requirement_id, "bharat-metal", bids["acme-steel"].bid_id, "buyer-1"
            )

    def test_payment_without_request_is_not_found(self, market: ProcureSaathi, awarded) -> None:
        requirement, _ = awarded
        with pytest.raises(NotFound):
            market.confirm_reveal_payment(
                requirement.requirement_id, "acme-steel", "buyer-1", "pay_001"
            )

    def test_reveal_survives_restart(self, market: ProcureSaathi, awarded, temp_db, policy,
                                     test_time) -> None:
        requirement, bids = awarded
        unlock(market, requirement.requirement_id, bids["acme-steel"])

        reopened = ProcureSaathi(temp_db, policy=policy, time_provider=test_time)
        contact = reopened.get_revealed_contact(requirement.requirement_id, "acme-steel", "buyer-1")
        assert contact is not None
        assert contact.company == "Acme-Steel Pvt Ltd"


class TestAnonymization:
    def test_supplier_code_is_stable(self) -> None:
        policy = MarketplacePolicy()
        assert supplier_code("acme-steel", policy) == "PS-ACME"
        assert supplier_code("acme-steel", policy) == supplier_code("acme-steel", policy)

    @pytest.mark.parametrize(
        "value,masked",
        [
            ("9876543210", "98******10"),
            ("abcd", "****"),
            ("", ""),
            (None, None),
        ],
    )
    def test_mask_contact(self, value, masked) -> None:
        assert mask_contact(value) == masked
