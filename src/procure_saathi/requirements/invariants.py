"""
Requirement & Bid Invariants

Pure validation functions that enforce lifecycle rules. Each raises a
typed error with a plain-language message naming the blocked action and
the requirement's current state.
"""

from datetime import datetime

from procure_saathi.kernel.errors import Conflict, Forbidden, InvalidState, NotFound
from procure_saathi.requirements.models import (
    Bid,
    BidStatus,
    Requirement,
    RequirementStatus,
)

_STATE_PHRASES = {
    RequirementStatus.AWARDED: "has already been awarded",
    RequirementStatus.CLOSED: "is closed",
    RequirementStatus.CANCELLED: "has been cancelled",
}


def describe_state(requirement: Requirement) -> str:
    """Plain-language phrase for a requirement's status"""
    return _STATE_PHRASES.get(requirement.status, "is active")


def require_found(requirement: Requirement | None, requirement_id: str) -> Requirement:
    if requirement is None:
        raise NotFound("Requirement", requirement_id)
    return requirement


def require_owner(requirement: Requirement, actor_id: str) -> None:
    """Only the buyer who posted a requirement may act on it as buyer"""
    if requirement.buyer_id != actor_id:
        raise Forbidden(
            f"{actor_id} does not own requirement {requirement.requirement_id}",
            actor_id=actor_id,
        )


def require_active(requirement: Requirement, action: str) -> None:
    """
    Lifecycle guard for ordinary operations (bidding, revising, closing)

    Raises:
        InvalidState: if the requirement is in a terminal state
    """
    if requirement.status != RequirementStatus.ACTIVE:
        raise InvalidState(
            f"Cannot {action}: this requirement {describe_state(requirement)}",
            entity_id=requirement.requirement_id,
            current_state=requirement.status.value,
        )


def require_still_open_for_award(requirement: Requirement) -> None:
    """
    Lifecycle guard for accept-bid

    A requirement that is no longer active was settled by another call
    first, which is reported as Conflict rather than InvalidState.
    """
    if requirement.status != RequirementStatus.ACTIVE:
        raise Conflict(
            f"Cannot accept bid: this requirement {describe_state(requirement)}",
            entity_id=requirement.requirement_id,
            current_state=requirement.status.value,
        )


def require_before_deadline(requirement: Requirement, now: datetime) -> None:
    if now >= requirement.deadline:
        raise InvalidState(
            "Cannot submit bid: the bidding deadline for this requirement has passed",
            entity_id=requirement.requirement_id,
            current_state=requirement.status.value,
        )


def require_future_deadline(deadline: datetime, now: datetime) -> None:
    if deadline <= now:
        raise InvalidState("Cannot post requirement: the deadline must be in the future")


def require_bid_on_requirement(
    bid: Bid | None, bid_id: str, requirement_id: str
) -> Bid:
    """The bid must exist and belong to the given requirement"""
    if bid is None or bid.requirement_id != requirement_id:
        raise NotFound("Bid", bid_id)
    return bid


def require_bid_pending(bid: Bid, action: str) -> None:
    if bid.status != BidStatus.PENDING:
        raise InvalidState(
            f"Cannot {action}: this bid is already {bid.status.value}",
            entity_id=bid.bid_id,
            current_state=bid.status.value,
        )


def require_bid_owner(bid: Bid, supplier_id: str) -> None:
    if bid.supplier_id != supplier_id:
        raise Forbidden(
            f"{supplier_id} does not own bid {bid.bid_id}", actor_id=supplier_id
        )


def require_single_bid(existing: Bid | None, supplier_id: str, requirement_id: str) -> None:
    """A supplier holds at most one bid per requirement"""
    if existing is not None:
        raise InvalidState(
            "Cannot submit bid: you have already bid on this requirement, revise your bid instead",
            entity_id=requirement_id,
            current_state=existing.status.value,
        )
