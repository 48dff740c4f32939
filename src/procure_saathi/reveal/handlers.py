"""
Reveal Gate Command Handlers

Every transition is idempotent: replaying a step the request has already
passed returns no events, and the caller gets the current state back.
"""

from procure_saathi.kernel.errors import Forbidden, InvalidState, NotFound
from procure_saathi.kernel.events import Event, EventBatch
from procure_saathi.kernel.policy import MarketplacePolicy
from procure_saathi.kernel.time import TimeProvider
from procure_saathi.requirements import invariants as requirement_invariants
from procure_saathi.requirements.projections import RequirementBook
from procure_saathi.reveal import commands, events
from procure_saathi.reveal.models import RevealRequest, RevealStatus
from procure_saathi.reveal.projections import RevealGate

STREAM_TYPE = "RevealRequest"


def reveal_stream(requirement_id: str, supplier_id: str) -> str:
    return f"reveal:{requirement_id}:{supplier_id}"


class RevealCommandHandlers:
    """Stateless handlers for the reveal gate"""

    def __init__(self, time_provider: TimeProvider, policy: MarketplacePolicy) -> None:
        self.time_provider = time_provider
        self.policy = policy

    def _batch(self, request: RevealRequest, command_id: str, actor_id: str) -> EventBatch:
        return EventBatch(
            stream_id=reveal_stream(request.requirement_id, request.supplier_id),
            stream_type=STREAM_TYPE,
            expected_version=request.version,
            command_id=command_id,
            actor_id=actor_id,
            occurred_at=self.time_provider.now(),
        )

    def _require_request(
        self, gate: RevealGate, requirement_id: str, supplier_id: str, actor_id: str
    ) -> RevealRequest:
        request = gate.get(requirement_id, supplier_id)
        if request is None:
            raise NotFound("RevealRequest", reveal_stream(requirement_id, supplier_id))
        if request.buyer_id != actor_id:
            raise Forbidden(
                f"{actor_id} is not the buyer who requested this reveal",
                actor_id=actor_id,
            )
        return request

    def handle_request_reveal(
        self,
        command: commands.RequestReveal,
        command_id: str,
        actor_id: str,
        book: RequirementBook,
        gate: RevealGate,
    ) -> list[Event]:
        """
        Create the reveal request (locked → requested)

        Validates:
        - Requirement exists and the acting buyer owns it
        - The bid exists on that requirement and belongs to that supplier

        Returns:
            [RevealRequested], or [] if a request already exists
        """
        requirement = requirement_invariants.require_found(
            book.get(command.requirement_id), command.requirement_id
        )
        requirement_invariants.require_owner(requirement, command.acting_buyer_id)
        bid = requirement_invariants.require_bid_on_requirement(
            book.get_bid(command.bid_id), command.bid_id, requirement.requirement_id
        )
        if bid.supplier_id != command.supplier_id:
            raise NotFound("Bid", command.bid_id)

        existing = gate.get(command.requirement_id, command.supplier_id)
        if existing is not None:
            if existing.buyer_id != command.acting_buyer_id:
                raise Forbidden(
                    "reveal requested by another buyer", actor_id=command.acting_buyer_id
                )
            return []

        now = self.time_provider.now()
        batch = EventBatch(
            stream_id=reveal_stream(command.requirement_id, command.supplier_id),
            stream_type=STREAM_TYPE,
            expected_version=0,
            command_id=command_id,
            actor_id=actor_id,
            occurred_at=now,
        )
        batch.add(
            "RevealRequested",
            events.RevealRequested(
                requirement_id=command.requirement_id,
                supplier_id=command.supplier_id,
                bid_id=command.bid_id,
                buyer_id=command.acting_buyer_id,
                reveal_fee=self.policy.reveal_fee,
                requested_at=now,
            ).model_dump(mode="json"),
        )
        return batch.events

    def handle_confirm_payment(
        self,
        command: commands.ConfirmRevealPayment,
        command_id: str,
        actor_id: str,
        gate: RevealGate,
    ) -> list[Event]:
        """requested → paid; [] if already paid or revealed"""
        request = self._require_request(
            gate, command.requirement_id, command.supplier_id, command.acting_buyer_id
        )
        if request.status.at_least(RevealStatus.PAID):
            return []

        batch = self._batch(request, command_id, actor_id)
        batch.add(
            "RevealPaymentConfirmed",
            events.RevealPaymentConfirmed(
                requirement_id=request.requirement_id,
                supplier_id=request.supplier_id,
                payment_reference=command.payment_reference,
                paid_at=batch.occurred_at,
            ).model_dump(mode="json"),
        )
        return batch.events

    def handle_payment_failure(
        self,
        command: commands.RecordRevealPaymentFailure,
        command_id: str,
        actor_id: str,
        gate: RevealGate,
    ) -> list[Event]:
        """Record a failed payment; status stays requested. [] once paid."""
        request = self._require_request(
            gate, command.requirement_id, command.supplier_id, command.acting_buyer_id
        )
        if request.status.at_least(RevealStatus.PAID):
            return []

        batch = self._batch(request, command_id, actor_id)
        batch.add(
            "RevealPaymentFailed",
            events.RevealPaymentFailed(
                requirement_id=request.requirement_id,
                supplier_id=request.supplier_id,
                reason=command.reason,
                failed_at=batch.occurred_at,
            ).model_dump(mode="json"),
        )
        return batch.events

    def handle_confirm_reveal(
        self,
        command: commands.ConfirmReveal,
        command_id: str,
        actor_id: str,
        gate: RevealGate,
    ) -> list[Event]:
        """
        paid → revealed; [] if already revealed

        Raises:
            InvalidState: if payment has not been confirmed yet
        """
        request = self._require_request(
            gate, command.requirement_id, command.supplier_id, command.acting_buyer_id
        )
        if request.status == RevealStatus.REVEALED:
            return []
        if request.status != RevealStatus.PAID:
            raise InvalidState(
                "Cannot reveal supplier: payment for this reveal has not been confirmed",
                entity_id=reveal_stream(request.requirement_id, request.supplier_id),
                current_state=request.status.value,
            )

        batch = self._batch(request, command_id, actor_id)
        batch.add(
            "SupplierRevealed",
            events.SupplierRevealed(
                requirement_id=request.requirement_id,
                supplier_id=request.supplier_id,
                revealed_at=batch.occurred_at,
            ).model_dump(mode="json"),
        )
        return batch.events
