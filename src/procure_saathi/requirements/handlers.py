"""
Requirement & Bid Command Handlers

Transform commands into events with full validation. Handlers are
stateless: they read the RequirementBook passed in and return events
numbered from the requirement's current stream version. The event store's
version check turns that into a compare-and-swap.

Fun fact: In a Vickrey auction the winner pays the second-highest bid.
Here the buyer simply picks - no auctioneer required.
"""

from procure_saathi.kernel.events import Event, EventBatch
from procure_saathi.kernel.ids import IdFactory, default_id_factory
from procure_saathi.kernel.policy import MarketplacePolicy
from procure_saathi.kernel.time import TimeProvider
from procure_saathi.requirements import commands, events, invariants
from procure_saathi.requirements.models import BidStatus, Requirement
from procure_saathi.requirements.pricing import price_bid
from procure_saathi.requirements.projections import RequirementBook

STREAM_TYPE = "Requirement"


def requirement_stream(requirement_id: str) -> str:
    return f"requirement:{requirement_id}"


class RequirementCommandHandlers:
    """
    Command handlers for the bid ledger and requirement lifecycle

    Stateless handlers: receive command, validate, emit events.
    All state queries done via the projection passed as a parameter.
    """

    def __init__(
        self,
        time_provider: TimeProvider,
        policy: MarketplacePolicy,
        id_factory: IdFactory = default_id_factory,
    ) -> None:
        self.time_provider = time_provider
        self.policy = policy
        self.id_factory = id_factory

    def _batch(
        self, requirement: Requirement, command_id: str, actor_id: str | None
    ) -> EventBatch:
        return EventBatch(
            stream_id=requirement_stream(requirement.requirement_id),
            stream_type=STREAM_TYPE,
            expected_version=requirement.version,
            command_id=command_id,
            actor_id=actor_id,
            occurred_at=self.time_provider.now(),
        )

    def handle_create_requirement(
        self,
        command: commands.CreateRequirement,
        command_id: str,
        actor_id: str,
    ) -> list[Event]:
        """
        Post a new requirement

        Returns:
            List containing RequirementPosted event (stream version 1)
        """
        now = self.time_provider.now()
        invariants.require_future_deadline(command.deadline, now)

        requirement_id = self.id_factory.generate()
        batch = EventBatch(
            stream_id=requirement_stream(requirement_id),
            stream_type=STREAM_TYPE,
            expected_version=0,
            command_id=command_id,
            actor_id=actor_id,
            occurred_at=now,
        )
        batch.add(
            "RequirementPosted",
            events.RequirementPosted(
                requirement_id=requirement_id,
                buyer_id=command.buyer_id,
                title=command.title,
                category=command.category,
                quantity=command.quantity,
                unit=command.unit,
                delivery_location=command.delivery_location,
                deadline=command.deadline,
                trade_type=command.trade_type,
                description=command.description,
                posted_at=now,
            ).model_dump(mode="json"),
        )
        return batch.events

    def handle_submit_bid(
        self,
        command: commands.SubmitBid,
        command_id: str,
        actor_id: str,
        book: RequirementBook,
    ) -> list[Event]:
        """
        Submit a sealed bid

        Validates:
        - Requirement exists and is ACTIVE
        - Bidding deadline has not passed
        - Supplier has no bid on this requirement yet
        """
        requirement = invariants.require_found(
            book.get(command.requirement_id), command.requirement_id
        )
        invariants.require_active(requirement, "submit bid")
        now = self.time_provider.now()
        invariants.require_before_deadline(requirement, now)
        invariants.require_single_bid(
            book.bid_by_supplier(requirement.requirement_id, command.supplier_id),
            command.supplier_id,
            requirement.requirement_id,
        )

        pricing = price_bid(command.bid_amount, requirement.trade_type, self.policy)
        sequence = len(book.bids_for(requirement.requirement_id)) + 1

        batch = self._batch(requirement, command_id, actor_id)
        batch.add(
            "BidSubmitted",
            events.BidSubmitted(
                bid_id=self.id_factory.generate(),
                requirement_id=requirement.requirement_id,
                supplier_id=command.supplier_id,
                bid_amount=pricing.bid_amount,
                service_fee=pricing.service_fee,
                total_amount=pricing.total_amount,
                delivery_days=command.delivery_days,
                terms=command.terms,
                sequence=sequence,
                submitted_at=now,
            ).model_dump(mode="json"),
        )
        return batch.events

    def handle_revise_bid(
        self,
        command: commands.ReviseBid,
        command_id: str,
        actor_id: str,
        book: RequirementBook,
    ) -> list[Event]:
        """Revise amount, timeline and terms of a pending bid; fee is recomputed"""
        requirement = invariants.require_found(
            book.get(command.requirement_id), command.requirement_id
        )
        bid = invariants.require_bid_on_requirement(
            book.get_bid(command.bid_id), command.bid_id, requirement.requirement_id
        )
        invariants.require_bid_owner(bid, command.supplier_id)
        invariants.require_active(requirement, "revise bid")
        invariants.require_before_deadline(requirement, self.time_provider.now())
        invariants.require_bid_pending(bid, "revise bid")

        pricing = price_bid(command.bid_amount, requirement.trade_type, self.policy)
        batch = self._batch(requirement, command_id, actor_id)
        batch.add(
            "BidRevised",
            events.BidRevised(
                bid_id=bid.bid_id,
                requirement_id=requirement.requirement_id,
                supplier_id=bid.supplier_id,
                bid_amount=pricing.bid_amount,
                service_fee=pricing.service_fee,
                total_amount=pricing.total_amount,
                delivery_days=command.delivery_days,
                terms=command.terms,
                revised_at=batch.occurred_at,
            ).model_dump(mode="json"),
        )
        return batch.events

    def handle_accept_bid(
        self,
        command: commands.AcceptBid,
        command_id: str,
        actor_id: str,
        book: RequirementBook,
    ) -> list[Event]:
        """
        Accept one bid, reject its pending siblings, award the requirement

        All events go into one batch on the requirement stream, appended in
        a single transaction at the version read here.

        Validates:
        - Requirement exists (NotFound)
        - Acting buyer owns it (Forbidden)
        - Bid belongs to it (NotFound)
        - Requirement still ACTIVE (Conflict - someone else settled it)
        - Bid is PENDING (InvalidState)
        """
        requirement = invariants.require_found(
            book.get(command.requirement_id), command.requirement_id
        )
        invariants.require_owner(requirement, command.acting_buyer_id)
        bid = invariants.require_bid_on_requirement(
            book.get_bid(command.bid_id), command.bid_id, requirement.requirement_id
        )
        invariants.require_still_open_for_award(requirement)
        invariants.require_bid_pending(bid, "accept bid")

        batch = self._batch(requirement, command_id, actor_id)
        now = batch.occurred_at

        batch.add(
            "BidAccepted",
            events.BidAccepted(
                bid_id=bid.bid_id,
                requirement_id=requirement.requirement_id,
                accepted_by=command.acting_buyer_id,
                accepted_at=now,
            ).model_dump(mode="json"),
        )
        for sibling in book.bids_for(requirement.requirement_id):
            if sibling.bid_id == bid.bid_id or sibling.status != BidStatus.PENDING:
                continue
            batch.add(
                "BidRejected",
                events.BidRejected(
                    bid_id=sibling.bid_id,
                    requirement_id=requirement.requirement_id,
                    rejected_at=now,
                ).model_dump(mode="json"),
            )
        batch.add(
            "RequirementAwarded",
            events.RequirementAwarded(
                requirement_id=requirement.requirement_id,
                bid_id=bid.bid_id,
                supplier_id=bid.supplier_id,
                awarded_by=command.acting_buyer_id,
                awarded_at=now,
            ).model_dump(mode="json"),
        )
        return batch.events

    def handle_close_requirement(
        self,
        command: commands.CloseRequirement,
        command_id: str,
        actor_id: str,
        book: RequirementBook,
    ) -> list[Event]:
        """Owner closes an active requirement without an award"""
        requirement = invariants.require_found(
            book.get(command.requirement_id), command.requirement_id
        )
        invariants.require_owner(requirement, command.acting_buyer_id)
        invariants.require_active(requirement, "close requirement")
        return self._close(requirement, command_id, actor_id, command.reason)

    def handle_cancel_requirement(
        self,
        command: commands.CancelRequirement,
        command_id: str,
        actor_id: str,
        book: RequirementBook,
    ) -> list[Event]:
        """Owner cancels an active requirement"""
        requirement = invariants.require_found(
            book.get(command.requirement_id), command.requirement_id
        )
        invariants.require_owner(requirement, command.acting_buyer_id)
        invariants.require_active(requirement, "cancel requirement")

        batch = self._batch(requirement, command_id, actor_id)
        batch.add(
            "RequirementCancelled",
            events.RequirementCancelled(
                requirement_id=requirement.requirement_id,
                cancelled_by=command.acting_buyer_id,
                cancelled_at=batch.occurred_at,
                reason=command.reason,
            ).model_dump(mode="json"),
        )
        return batch.events

    def handle_close_expired(
        self,
        requirement_id: str,
        command_id: str,
        book: RequirementBook,
    ) -> list[Event]:
        """
        System close of a requirement past its deadline (called from tick)

        Returns an empty list if the requirement was settled meanwhile.
        """
        requirement = book.get(requirement_id)
        if requirement is None or requirement.status.is_terminal:
            return []
        if self.time_provider.now() < requirement.deadline:
            return []
        return self._close(requirement, command_id, None, "deadline_passed")

    def _close(
        self,
        requirement: Requirement,
        command_id: str,
        actor_id: str | None,
        reason: str,
    ) -> list[Event]:
        batch = self._batch(requirement, command_id, actor_id)
        batch.add(
            "RequirementClosed",
            events.RequirementClosed(
                requirement_id=requirement.requirement_id,
                closed_by=actor_id or "system",
                closed_at=batch.occurred_at,
                reason=reason,
            ).model_dump(mode="json"),
        )
        return batch.events
