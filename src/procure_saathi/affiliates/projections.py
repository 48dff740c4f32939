"""Affiliate Roster Projection"""

from typing import Callable

from procure_saathi.affiliates import events
from procure_saathi.affiliates.models import AffiliateRecord, AffiliateStatus
from procure_saathi.kernel.events import Event
from procure_saathi.kernel.projection import StreamProjection

ROSTER_STREAM = "affiliate-roster"


class AffiliateRoster(StreamProjection):
    """
    Every affiliate record, folded from the roster stream

    Rebuilt from AffiliateJoined, AffiliateActivated, AffiliateStatusChanged.
    AffiliateActivationRefused only advances the roster version.
    """

    def __init__(self) -> None:
        super().__init__()
        self.records: dict[str, AffiliateRecord] = {}
        self._by_user: dict[str, str] = {}

    def handlers(self) -> dict[str, Callable[[Event], None]]:
        return {
            "AffiliateJoined": self._apply_joined,
            "AffiliateActivated": self._apply_activated,
            "AffiliateActivationRefused": self._apply_refused,
            "AffiliateStatusChanged": self._apply_status_changed,
        }

    def _apply_joined(self, event: Event) -> None:
        payload = events.AffiliateJoined.model_validate(event.payload)
        self.records[payload.affiliate_id] = AffiliateRecord(
            affiliate_id=payload.affiliate_id,
            user_id=payload.user_id,
            referral_code=payload.referral_code,
            status=AffiliateStatus.PENDING,
            join_sequence=payload.join_sequence,
            joined_at=payload.joined_at,
        )
        self._by_user[payload.user_id] = payload.affiliate_id

    def _apply_activated(self, event: Event) -> None:
        payload = events.AffiliateActivated.model_validate(event.payload)
        record = self.records[payload.affiliate_id]
        self.records[payload.affiliate_id] = record.model_copy(
            update={
                "status": AffiliateStatus.ACTIVE,
                "queue_position": payload.queue_position,
                "activated_at": payload.activated_at,
            }
        )

    def _apply_refused(self, event: Event) -> None:
        events.AffiliateActivationRefused.model_validate(event.payload)

    def _apply_status_changed(self, event: Event) -> None:
        payload = events.AffiliateStatusChanged.model_validate(event.payload)
        record = self.records[payload.affiliate_id]
        update: dict = {"status": payload.to_status}
        if payload.to_status in (AffiliateStatus.SUSPENDED, AffiliateStatus.REJECTED):
            update["deactivated_at"] = payload.changed_at
            update["deactivation_reason"] = payload.reason
        if payload.from_status == AffiliateStatus.ACTIVE:
            update["queue_position"] = None
        self.records[payload.affiliate_id] = record.model_copy(update=update)

        for affiliate_id, position in payload.compacted_positions.items():
            other = self.records[affiliate_id]
            self.records[affiliate_id] = other.model_copy(
                update={"queue_position": position}
            )

    # Queries

    @property
    def version(self) -> int:
        return self.stream_version(ROSTER_STREAM)

    def get(self, affiliate_id: str) -> AffiliateRecord | None:
        with self._lock:
            return self.records.get(affiliate_id)

    def get_by_user(self, user_id: str) -> AffiliateRecord | None:
        with self._lock:
            affiliate_id = self._by_user.get(user_id)
            return self.records.get(affiliate_id) if affiliate_id else None

    def active(self) -> list[AffiliateRecord]:
        """ACTIVE records by queue position"""
        with self._lock:
            found = [r for r in self.records.values() if r.status == AffiliateStatus.ACTIVE]
        return sorted(found, key=lambda r: r.queue_position or 0)

    def active_count(self) -> int:
        return len(self.active())

    def max_position(self) -> int:
        positions = [r.queue_position or 0 for r in self.active()]
        return max(positions, default=0)

    def waiting(self) -> list[AffiliateRecord]:
        """PENDING/WAITLISTED records in join order"""
        with self._lock:
            found = [r for r in self.records.values() if r.status.is_waiting]
        return sorted(found, key=lambda r: r.join_sequence)

    def queue_head(self) -> AffiliateRecord | None:
        waiting = self.waiting()
        return waiting[0] if waiting else None

    def next_join_sequence(self) -> int:
        with self._lock:
            return len(self.records) + 1

    def list_records(self, status: AffiliateStatus | None = None) -> list[AffiliateRecord]:
        """Records ordered by queue position (ACTIVE first), then join order"""
        with self._lock:
            found = [
                r for r in self.records.values() if status is None or r.status == status
            ]
        return sorted(
            found,
            key=lambda r: (
                r.queue_position is None,
                r.queue_position or 0,
                r.join_sequence,
            ),
        )

    def counts(self) -> dict[AffiliateStatus, int]:
        with self._lock:
            counts = {status: 0 for status in AffiliateStatus}
            for record in self.records.values():
                counts[record.status] += 1
            return counts
