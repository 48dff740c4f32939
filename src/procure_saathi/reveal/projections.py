"""
Reveal Gate Projection

Status transitions are applied only forward; an event that would move a
request backwards is ignored rather than trusted.
"""

from typing import Callable

from procure_saathi.kernel.events import Event
from procure_saathi.kernel.projection import StreamProjection
from procure_saathi.reveal import events
from procure_saathi.reveal.models import RevealRequest, RevealStatus


class RevealGate(StreamProjection):
    """Reveal requests keyed by (requirement_id, supplier_id)"""

    def __init__(self) -> None:
        super().__init__()
        self.requests: dict[tuple[str, str], RevealRequest] = {}

    def handlers(self) -> dict[str, Callable[[Event], None]]:
        return {
            "RevealRequested": self._apply_requested,
            "RevealPaymentConfirmed": self._apply_payment_confirmed,
            "RevealPaymentFailed": self._apply_payment_failed,
            "SupplierRevealed": self._apply_revealed,
        }

    def _advance(self, key: tuple[str, str], status: RevealStatus, version: int, **changes) -> None:
        current = self.requests.get(key)
        if current is None:
            return
        update = {**changes, "version": version}
        if status.rank > current.status.rank:
            update["status"] = status
        else:
            update = {"version": version}
        self.requests[key] = current.model_copy(update=update)

    def _apply_requested(self, event: Event) -> None:
        payload = events.RevealRequested.model_validate(event.payload)
        key = (payload.requirement_id, payload.supplier_id)
        if key in self.requests:
            return
        self.requests[key] = RevealRequest(
            requirement_id=payload.requirement_id,
            supplier_id=payload.supplier_id,
            bid_id=payload.bid_id,
            buyer_id=payload.buyer_id,
            status=RevealStatus.REQUESTED,
            reveal_fee=payload.reveal_fee,
            requested_at=payload.requested_at,
            version=event.version,
        )

    def _apply_payment_confirmed(self, event: Event) -> None:
        payload = events.RevealPaymentConfirmed.model_validate(event.payload)
        self._advance(
            (payload.requirement_id, payload.supplier_id),
            RevealStatus.PAID,
            event.version,
            paid_at=payload.paid_at,
            payment_reference=payload.payment_reference,
        )

    def _apply_payment_failed(self, event: Event) -> None:
        payload = events.RevealPaymentFailed.model_validate(event.payload)
        key = (payload.requirement_id, payload.supplier_id)
        current = self.requests.get(key)
        if current is None:
            return
        self.requests[key] = current.model_copy(
            update={
                "payment_failures": current.payment_failures + 1,
                "last_failure_reason": payload.reason,
                "version": event.version,
            }
        )

    def _apply_revealed(self, event: Event) -> None:
        payload = events.SupplierRevealed.model_validate(event.payload)
        self._advance(
            (payload.requirement_id, payload.supplier_id),
            RevealStatus.REVEALED,
            event.version,
            revealed_at=payload.revealed_at,
        )

    # Queries

    def get(self, requirement_id: str, supplier_id: str) -> RevealRequest | None:
        with self._lock:
            return self.requests.get((requirement_id, supplier_id))

    def list_for_buyer(self, buyer_id: str) -> list[RevealRequest]:
        """A buyer's reveal requests, oldest first"""
        with self._lock:
            requests = [r for r in self.requests.values() if r.buyer_id == buyer_id]
        return sorted(requests, key=lambda r: r.requested_at)
