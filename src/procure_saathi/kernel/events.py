"""
Base Event model for event sourcing

Every bid, award, reveal step and affiliate activation is recorded as an
immutable event. Current state is always a fold over the log.

Fun fact: Auction houses have kept paddle-by-paddle bid books since the
18th century - an append-only ledger long before anyone called it one.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from procure_saathi.kernel.ids import generate_id


class Event(BaseModel):
    """
    Base event class - the envelope for every domain fact

    Events are:
    - Immutable (never modified after creation)
    - Append-only (never deleted)
    - Timestamped (preserve temporal ordering)
    - Versioned (stream_id + version gives optimistic locking)

    command_id ties events to the command that produced them (idempotency key).
    """

    event_id: str = Field(
        ...,
        description="Unique event identifier (UUIDv7 for time-ordering)",
    )

    stream_id: str = Field(
        ...,
        description="Aggregate root identifier, e.g. 'requirement:<id>'",
    )

    stream_type: str = Field(
        ...,
        description="Type of aggregate: 'Requirement', 'RevealRequest', 'AffiliateRoster', ...",
    )

    event_type: str = Field(
        ...,
        description="Specific event type: 'BidSubmitted', 'RequirementAwarded', ...",
    )

    occurred_at: datetime = Field(
        ...,
        description="UTC timestamp when event occurred",
    )

    actor_id: str | None = Field(
        default=None,
        description="ID of actor who triggered this event (None for system events)",
    )

    command_id: str = Field(
        ...,
        description="ID of command that caused this event (idempotency key)",
    )

    payload: dict = Field(
        default_factory=dict,
        description="Event-specific data (must be JSON-serializable)",
    )

    version: int = Field(
        ...,
        description="Stream version after this event (monotonically increasing)",
        ge=1,
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "01908e9a-3b87-7000-8000-123456789abc",
                    "stream_id": "requirement:01908e9a-0000-7000-8000-000000000001",
                    "stream_type": "Requirement",
                    "event_type": "BidSubmitted",
                    "occurred_at": "2025-01-15T10:30:00Z",
                    "actor_id": "supplier-acme",
                    "command_id": "cmd-123",
                    "payload": {"bid_id": "bid-1", "bid_amount": "1000.00"},
                    "version": 2,
                }
            ]
        },
    }


def create_event(
    *,
    event_id: str,
    stream_id: str,
    stream_type: str,
    event_type: str,
    occurred_at: datetime,
    command_id: str,
    version: int,
    actor_id: str | None = None,
    payload: dict | None = None,
) -> Event:
    """
    Factory function for creating events with all required fields
    """
    return Event(
        event_id=event_id,
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        actor_id=actor_id,
        command_id=command_id,
        payload=payload or {},
        version=version,
    )


class EventBatch:
    """
    Builder for a run of consecutive events on one stream

    Handlers that emit several facts for a single command (accept one bid,
    reject its siblings, award the requirement) use this to number versions
    consecutively from the expected stream version.
    """

    def __init__(
        self,
        *,
        stream_id: str,
        stream_type: str,
        expected_version: int,
        command_id: str,
        actor_id: str | None,
        occurred_at: datetime,
    ) -> None:
        self.stream_id = stream_id
        self.stream_type = stream_type
        self.expected_version = expected_version
        self.command_id = command_id
        self.actor_id = actor_id
        self.occurred_at = occurred_at
        self.events: list[Event] = []

    def add(self, event_type: str, payload: dict) -> Event:
        event = create_event(
            event_id=generate_id(),
            stream_id=self.stream_id,
            stream_type=self.stream_type,
            event_type=event_type,
            occurred_at=self.occurred_at,
            command_id=self.command_id,
            actor_id=self.actor_id,
            payload=payload,
            version=self.expected_version + len(self.events) + 1,
        )
        self.events.append(event)
        return event
