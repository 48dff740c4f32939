"""
Affiliate FIFO Queue Command Handlers

Activation reads the roster at one version and decides against it: count
ACTIVE, compare with the cap, take position max + 1. The event store only
accepts the resulting event if the roster is still at that version, so two
activations racing for the last slot cannot both win.

Every handler builds its EventBatch, and so pins the roster version, before
it reads a single record.
"""

import secrets

from procure_saathi.affiliates import commands, events
from procure_saathi.affiliates.models import AffiliateRecord, AffiliateStatus
from procure_saathi.affiliates.projections import ROSTER_STREAM, AffiliateRoster
from procure_saathi.kernel.errors import Forbidden, InvalidState, NotFound
from procure_saathi.kernel.events import Event, EventBatch
from procure_saathi.kernel.ids import IdFactory, default_id_factory
from procure_saathi.kernel.policy import MarketplacePolicy
from procure_saathi.kernel.time import TimeProvider

STREAM_TYPE = "AffiliateRoster"

# Administrative transitions; ACTIVE is never a target here
ALLOWED_ADMIN_TRANSITIONS: dict[AffiliateStatus, set[AffiliateStatus]] = {
    AffiliateStatus.PENDING: {
        AffiliateStatus.WAITLISTED,
        AffiliateStatus.SUSPENDED,
        AffiliateStatus.REJECTED,
    },
    AffiliateStatus.WAITLISTED: {AffiliateStatus.SUSPENDED, AffiliateStatus.REJECTED},
    AffiliateStatus.ACTIVE: {AffiliateStatus.SUSPENDED, AffiliateStatus.REJECTED},
    AffiliateStatus.SUSPENDED: {AffiliateStatus.REJECTED},
    AffiliateStatus.REJECTED: set(),
}


def generate_referral_code() -> str:
    return f"PSAFF{secrets.token_hex(3).upper()}"


class AffiliateCommandHandlers:
    """Stateless handlers for the affiliate roster"""

    def __init__(
        self,
        time_provider: TimeProvider,
        policy: MarketplacePolicy,
        id_factory: IdFactory = default_id_factory,
    ) -> None:
        self.time_provider = time_provider
        self.policy = policy
        self.id_factory = id_factory

    def _batch(self, roster: AffiliateRoster, command_id: str, actor_id: str | None) -> EventBatch:
        return EventBatch(
            stream_id=ROSTER_STREAM,
            stream_type=STREAM_TYPE,
            expected_version=roster.version,
            command_id=command_id,
            actor_id=actor_id,
            occurred_at=self.time_provider.now(),
        )

    def _require_record(self, roster: AffiliateRoster, affiliate_id: str) -> AffiliateRecord:
        record = roster.get(affiliate_id)
        if record is None:
            raise NotFound("Affiliate", affiliate_id)
        return record

    def handle_join(
        self,
        command: commands.JoinAffiliate,
        command_id: str,
        actor_id: str,
        roster: AffiliateRoster,
    ) -> list[Event]:
        """Create a PENDING record at the back of the queue (one per user)"""
        batch = self._batch(roster, command_id, actor_id)
        existing = roster.get_by_user(command.user_id)
        if existing is not None:
            raise InvalidState(
                "Cannot join affiliate programme: this user already has an affiliate record",
                entity_id=existing.affiliate_id,
                current_state=existing.status.value,
            )

        batch.add(
            "AffiliateJoined",
            events.AffiliateJoined(
                affiliate_id=self.id_factory.generate(),
                user_id=command.user_id,
                referral_code=command.referral_code or generate_referral_code(),
                join_sequence=roster.next_join_sequence(),
                joined_at=batch.occurred_at,
            ).model_dump(mode="json"),
        )
        return batch.events

    def handle_activate_fifo(
        self,
        command: commands.ActivateFifo,
        command_id: str,
        actor_id: str | None,
        roster: AffiliateRoster,
    ) -> list[Event]:
        """
        FIFO activation

        Returns:
            [] if already ACTIVE,
            [AffiliateActivated] if a slot was free,
            [AffiliateActivationRefused] if the cap is reached

        Raises:
            NotFound: unknown affiliate
            InvalidState: SUSPENDED/REJECTED, or not at the head of the queue
        """
        batch = self._batch(roster, command_id, actor_id)
        record = self._require_record(roster, command.affiliate_id)
        return self._activate(record, batch, roster)

    def handle_activate_next(
        self,
        command_id: str,
        actor_id: str | None,
        roster: AffiliateRoster,
    ) -> tuple[str | None, list[Event]]:
        """Activate the head of the queue; (None, []) when nobody is waiting"""
        batch = self._batch(roster, command_id, actor_id)
        head = roster.queue_head()
        if head is None:
            return None, []
        return head.affiliate_id, self._activate(head, batch, roster, check_head=False)

    def _activate(
        self,
        record: AffiliateRecord,
        batch: EventBatch,
        roster: AffiliateRoster,
        check_head: bool = True,
    ) -> list[Event]:
        # batch.expected_version was read before record, so any newer roster
        # state seen below fails the append and the decision is re-run
        if record.status == AffiliateStatus.ACTIVE:
            return []
        if not record.status.is_waiting:
            raise InvalidState(
                f"Cannot activate affiliate: this affiliate is {record.status.value}",
                entity_id=record.affiliate_id,
                current_state=record.status.value,
            )

        head = roster.queue_head() if check_head else None
        if head is not None and head.affiliate_id != record.affiliate_id:
            raise InvalidState(
                "Cannot activate affiliate: earlier applicants are still waiting",
                entity_id=record.affiliate_id,
                current_state=record.status.value,
            )

        active_count = roster.active_count()
        if active_count >= self.policy.max_active_affiliates:
            batch.add(
                "AffiliateActivationRefused",
                events.AffiliateActivationRefused(
                    affiliate_id=record.affiliate_id,
                    active_count=active_count,
                    max_active=self.policy.max_active_affiliates,
                    refused_at=batch.occurred_at,
                ).model_dump(mode="json"),
            )
            return batch.events

        batch.add(
            "AffiliateActivated",
            events.AffiliateActivated(
                affiliate_id=record.affiliate_id,
                queue_position=roster.max_position() + 1,
                activated_at=batch.occurred_at,
            ).model_dump(mode="json"),
        )
        return batch.events

    def handle_update_status(
        self,
        command: commands.UpdateAffiliateStatus,
        command_id: str,
        actor_id: str,
        roster: AffiliateRoster,
    ) -> list[Event]:
        """
        Generic administrative status change

        Raises:
            Forbidden: target is ACTIVE (only FIFO activation grants it)
            InvalidState: target is PENDING, or the transition is not allowed
        """
        if command.new_status == AffiliateStatus.ACTIVE:
            raise Forbidden(
                "direct ACTIVE status write refused; use FIFO activation",
                actor_id=command.acting_admin_id,
            )

        batch = self._batch(roster, command_id, actor_id)
        record = self._require_record(roster, command.affiliate_id)
        if command.new_status == record.status:
            return []
        if command.new_status == AffiliateStatus.PENDING:
            raise InvalidState(
                "Cannot change affiliate status: no path re-enters PENDING",
                entity_id=record.affiliate_id,
                current_state=record.status.value,
            )
        if command.new_status not in ALLOWED_ADMIN_TRANSITIONS[record.status]:
            raise InvalidState(
                f"Cannot change affiliate status from {record.status.value} "
                f"to {command.new_status.value}",
                entity_id=record.affiliate_id,
                current_state=record.status.value,
            )

        compacted: dict[str, int] = {}
        if record.status == AffiliateStatus.ACTIVE and record.queue_position is not None:
            for other in roster.active():
                if other.queue_position and other.queue_position > record.queue_position:
                    compacted[other.affiliate_id] = other.queue_position - 1

        batch.add(
            "AffiliateStatusChanged",
            events.AffiliateStatusChanged(
                affiliate_id=record.affiliate_id,
                from_status=record.status,
                to_status=command.new_status,
                reason=command.reason,
                changed_by=command.acting_admin_id,
                changed_at=batch.occurred_at,
                compacted_positions=compacted,
            ).model_dump(mode="json"),
        )
        return batch.events
