"""Role Security Projection"""

from datetime import datetime
from typing import Callable

from procure_saathi.kernel.events import Event
from procure_saathi.kernel.projection import StreamProjection
from procure_saathi.roles import events
from procure_saathi.roles.models import ManagementRole


class RoleSecurityRegistry(StreamProjection):
    """
    Configured PIN hashes and the verification audit trail

    Rebuilt from RolePinSet, RoleVerificationSucceeded, RoleVerificationFailed,
    RoleSessionExpired, RoleSessionCleared.
    """

    def __init__(self) -> None:
        super().__init__()
        self.pin_hashes: dict[tuple[str, ManagementRole], str] = {}
        self.audit_log: list[dict] = []

    def handlers(self) -> dict[str, Callable[[Event], None]]:
        return {
            "RolePinSet": self._apply_pin_set,
            "RoleVerificationSucceeded": self._apply_succeeded,
            "RoleVerificationFailed": self._apply_failed,
            "RoleSessionExpired": self._apply_expired,
            "RoleSessionCleared": self._apply_cleared,
        }

    def _audit(self, user_id: str, role: str, action: str, at: datetime, **details) -> None:
        self.audit_log.append(
            {"user_id": user_id, "target_role": role, "action": action, "at": at, **details}
        )

    def _apply_pin_set(self, event: Event) -> None:
        payload = events.RolePinSet.model_validate(event.payload)
        self.pin_hashes[(payload.user_id, payload.role)] = payload.pin_hash
        self._audit(payload.user_id, payload.role.security_tag, "pin_set", payload.set_at)

    def _apply_succeeded(self, event: Event) -> None:
        payload = events.RoleVerificationSucceeded.model_validate(event.payload)
        self._audit(
            payload.user_id,
            payload.role.security_tag,
            "unlock_success",
            payload.verified_at,
            method=payload.method.value,
        )

    def _apply_failed(self, event: Event) -> None:
        payload = events.RoleVerificationFailed.model_validate(event.payload)
        self._audit(
            payload.user_id,
            payload.role.security_tag,
            "unlock_failure",
            payload.failed_at,
            method=payload.method.value,
            reason=payload.reason,
        )

    def _apply_expired(self, event: Event) -> None:
        payload = events.RoleSessionExpired.model_validate(event.payload)
        self._audit(
            payload.user_id, payload.role.security_tag, "session_expired", payload.expired_at
        )

    def _apply_cleared(self, event: Event) -> None:
        payload = events.RoleSessionCleared.model_validate(event.payload)
        for role in payload.roles:
            self._audit(
                payload.user_id,
                role.security_tag,
                "session_cleared",
                payload.cleared_at,
                reason=payload.reason,
            )

    # Queries

    def pin_hash(self, user_id: str, role: ManagementRole) -> str | None:
        with self._lock:
            return self.pin_hashes.get((user_id, role))

    def has_pin(self, user_id: str, role: ManagementRole) -> bool:
        return self.pin_hash(user_id, role) is not None

    def audit_for(self, user_id: str) -> list[dict]:
        with self._lock:
            return [entry for entry in self.audit_log if entry["user_id"] == user_id]
