"""
Requirement & Bid Projections

The RequirementBook is the read model for the whole bid ledger, folded from
requirement streams. Payloads are validated against the event models on the
way in, so a malformed event fails loudly instead of corrupting state.

Fun fact: Double-entry bookkeeping (Pacioli, 1494) also rebuilds balances
from an immutable journal - the ledger is a projection of the day book.
"""

from datetime import datetime
from typing import Callable

from procure_saathi.kernel.events import Event
from procure_saathi.kernel.projection import StreamProjection
from procure_saathi.requirements import events
from procure_saathi.requirements.models import (
    Bid,
    BidOrder,
    BidStatus,
    Requirement,
    RequirementStatus,
)


class RequirementBook(StreamProjection):
    """
    Requirements and their bids

    Rebuilt from RequirementPosted, BidSubmitted, BidRevised, BidAccepted,
    BidRejected, RequirementAwarded, RequirementClosed, RequirementCancelled.
    """

    def __init__(self) -> None:
        super().__init__()
        self.requirements: dict[str, Requirement] = {}
        self.bids: dict[str, Bid] = {}
        self._bids_by_requirement: dict[str, list[str]] = {}

    def handlers(self) -> dict[str, Callable[[Event], None]]:
        return {
            "RequirementPosted": self._apply_requirement_posted,
            "BidSubmitted": self._apply_bid_submitted,
            "BidRevised": self._apply_bid_revised,
            "BidAccepted": self._apply_bid_accepted,
            "BidRejected": self._apply_bid_rejected,
            "RequirementAwarded": self._apply_requirement_awarded,
            "RequirementClosed": self._apply_requirement_closed,
            "RequirementCancelled": self._apply_requirement_cancelled,
        }

    def _update_requirement(self, requirement_id: str, version: int, **changes) -> None:
        current = self.requirements.get(requirement_id)
        if current is None:
            return
        self.requirements[requirement_id] = current.model_copy(
            update={**changes, "version": version}
        )

    def _touch_requirement(self, requirement_id: str, version: int) -> None:
        self._update_requirement(requirement_id, version)

    def _apply_requirement_posted(self, event: Event) -> None:
        payload = events.RequirementPosted.model_validate(event.payload)
        self.requirements[payload.requirement_id] = Requirement(
            requirement_id=payload.requirement_id,
            buyer_id=payload.buyer_id,
            title=payload.title,
            category=payload.category,
            quantity=payload.quantity,
            unit=payload.unit,
            delivery_location=payload.delivery_location,
            deadline=payload.deadline,
            trade_type=payload.trade_type,
            description=payload.description,
            status=RequirementStatus.ACTIVE,
            created_at=payload.posted_at,
            version=event.version,
        )
        self._bids_by_requirement.setdefault(payload.requirement_id, [])

    def _apply_bid_submitted(self, event: Event) -> None:
        payload = events.BidSubmitted.model_validate(event.payload)
        self.bids[payload.bid_id] = Bid(
            bid_id=payload.bid_id,
            requirement_id=payload.requirement_id,
            supplier_id=payload.supplier_id,
            bid_amount=payload.bid_amount,
            service_fee=payload.service_fee,
            total_amount=payload.total_amount,
            delivery_days=payload.delivery_days,
            terms=payload.terms,
            status=BidStatus.PENDING,
            created_at=payload.submitted_at,
            updated_at=payload.submitted_at,
            sequence=payload.sequence,
        )
        self._bids_by_requirement.setdefault(payload.requirement_id, []).append(
            payload.bid_id
        )
        self._touch_requirement(payload.requirement_id, event.version)

    def _apply_bid_revised(self, event: Event) -> None:
        payload = events.BidRevised.model_validate(event.payload)
        bid = self.bids.get(payload.bid_id)
        if bid is not None:
            self.bids[payload.bid_id] = bid.model_copy(
                update={
                    "bid_amount": payload.bid_amount,
                    "service_fee": payload.service_fee,
                    "total_amount": payload.total_amount,
                    "delivery_days": payload.delivery_days,
                    "terms": payload.terms,
                    "updated_at": payload.revised_at,
                }
            )
        self._touch_requirement(payload.requirement_id, event.version)

    def _apply_bid_accepted(self, event: Event) -> None:
        payload = events.BidAccepted.model_validate(event.payload)
        self._decide_bid(payload.bid_id, BidStatus.ACCEPTED, payload.accepted_at)
        self._touch_requirement(payload.requirement_id, event.version)

    def _apply_bid_rejected(self, event: Event) -> None:
        payload = events.BidRejected.model_validate(event.payload)
        self._decide_bid(payload.bid_id, BidStatus.REJECTED, payload.rejected_at)
        self._touch_requirement(payload.requirement_id, event.version)

    def _decide_bid(self, bid_id: str, status: BidStatus, decided_at: datetime) -> None:
        bid = self.bids.get(bid_id)
        if bid is not None:
            self.bids[bid_id] = bid.model_copy(
                update={"status": status, "decided_at": decided_at, "updated_at": decided_at}
            )

    def _apply_requirement_awarded(self, event: Event) -> None:
        payload = events.RequirementAwarded.model_validate(event.payload)
        self._update_requirement(
            payload.requirement_id,
            event.version,
            status=RequirementStatus.AWARDED,
            awarded_bid_id=payload.bid_id,
            closed_at=payload.awarded_at,
        )

    def _apply_requirement_closed(self, event: Event) -> None:
        payload = events.RequirementClosed.model_validate(event.payload)
        self._update_requirement(
            payload.requirement_id,
            event.version,
            status=RequirementStatus.CLOSED,
            closed_at=payload.closed_at,
            close_reason=payload.reason,
        )

    def _apply_requirement_cancelled(self, event: Event) -> None:
        payload = events.RequirementCancelled.model_validate(event.payload)
        self._update_requirement(
            payload.requirement_id,
            event.version,
            status=RequirementStatus.CANCELLED,
            closed_at=payload.cancelled_at,
            close_reason=payload.reason,
        )

    # Queries

    def get(self, requirement_id: str) -> Requirement | None:
        with self._lock:
            return self.requirements.get(requirement_id)

    def get_bid(self, bid_id: str) -> Bid | None:
        with self._lock:
            return self.bids.get(bid_id)

    def bids_for(self, requirement_id: str) -> list[Bid]:
        """Bids on a requirement in submission order"""
        with self._lock:
            return [
                self.bids[bid_id]
                for bid_id in self._bids_by_requirement.get(requirement_id, [])
            ]

    def bid_by_supplier(self, requirement_id: str, supplier_id: str) -> Bid | None:
        for bid in self.bids_for(requirement_id):
            if bid.supplier_id == supplier_id:
                return bid
        return None

    def sorted_bids(
        self, requirement_id: str, order: BidOrder = BidOrder.AMOUNT_ASC
    ) -> list[Bid]:
        """
        Bids ordered for comparison; ties keep submission order

        sorted() is stable and bids_for() is already in submission order.
        """
        bids = self.bids_for(requirement_id)
        if order == BidOrder.AMOUNT_ASC:
            return sorted(bids, key=lambda b: b.total_amount)
        if order == BidOrder.AMOUNT_DESC:
            return sorted(bids, key=lambda b: -b.total_amount)
        if order == BidOrder.DELIVERY_ASC:
            return sorted(bids, key=lambda b: b.delivery_days)
        return sorted(bids, key=lambda b: -b.sequence)

    def list_requirements(
        self,
        status: RequirementStatus | None = None,
        buyer_id: str | None = None,
    ) -> list[Requirement]:
        """Requirements, newest first"""
        with self._lock:
            found = [
                r
                for r in self.requirements.values()
                if (status is None or r.status == status)
                and (buyer_id is None or r.buyer_id == buyer_id)
            ]
        return sorted(found, key=lambda r: r.created_at, reverse=True)

    def list_supplier_bids(self, supplier_id: str) -> list[Bid]:
        """A supplier's own bids across requirements, newest first"""
        with self._lock:
            found = [b for b in self.bids.values() if b.supplier_id == supplier_id]
        return sorted(found, key=lambda b: b.created_at, reverse=True)

    def list_expired_active(self, now: datetime) -> list[Requirement]:
        """ACTIVE requirements whose deadline has passed"""
        with self._lock:
            return [
                r
                for r in self.requirements.values()
                if r.status == RequirementStatus.ACTIVE and now >= r.deadline
            ]
