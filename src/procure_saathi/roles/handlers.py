"""
Role Verification Command Handlers

Verification produces exactly one audit event: success with its expiry,
or failure with its reason. The session itself is granted by the caller
from the success event, so the log and the in-memory window agree.
"""

from datetime import datetime, timedelta

from procure_saathi.kernel.events import Event, EventBatch
from procure_saathi.kernel.policy import MarketplacePolicy
from procure_saathi.kernel.time import TimeProvider
from procure_saathi.roles import commands, events
from procure_saathi.roles.models import ManagementRole, VerificationMethod
from procure_saathi.roles.passwords import PasswordVerifier
from procure_saathi.roles.pins import hash_secret, is_well_formed_pin, verify_secret
from procure_saathi.roles.projections import RoleSecurityRegistry

STREAM_TYPE = "RoleSecurity"


def role_security_stream(user_id: str) -> str:
    return f"role-security:{user_id}"


class RoleCommandHandlers:
    """Stateless handlers for PIN configuration and role verification"""

    def __init__(self, time_provider: TimeProvider, policy: MarketplacePolicy) -> None:
        self.time_provider = time_provider
        self.policy = policy

    def _batch(
        self, registry: RoleSecurityRegistry, user_id: str, command_id: str, actor_id: str | None
    ) -> EventBatch:
        stream_id = role_security_stream(user_id)
        return EventBatch(
            stream_id=stream_id,
            stream_type=STREAM_TYPE,
            expected_version=registry.stream_version(stream_id),
            command_id=command_id,
            actor_id=actor_id,
            occurred_at=self.time_provider.now(),
        )

    def handle_set_pin(
        self,
        command: commands.SetRolePin,
        command_id: str,
        actor_id: str,
        registry: RoleSecurityRegistry,
    ) -> list[Event]:
        """Store a salted hash of the PIN; replaces any earlier PIN"""
        batch = self._batch(registry, command.user_id, command_id, actor_id)
        batch.add(
            "RolePinSet",
            events.RolePinSet(
                user_id=command.user_id,
                role=command.role,
                pin_hash=hash_secret(command.pin),
                set_at=batch.occurred_at,
            ).model_dump(mode="json"),
        )
        return batch.events

    def handle_verify(
        self,
        command: commands.VerifyRole,
        command_id: str,
        actor_id: str,
        registry: RoleSecurityRegistry,
        password_verifier: PasswordVerifier | None,
    ) -> list[Event]:
        """
        Check a PIN or password

        Returns:
            [RoleVerificationSucceeded] or [RoleVerificationFailed]
        """
        batch = self._batch(registry, command.user_id, command_id, actor_id)
        reason = self._check_credential(command, registry, password_verifier)
        now = batch.occurred_at

        if reason is None:
            batch.add(
                "RoleVerificationSucceeded",
                events.RoleVerificationSucceeded(
                    user_id=command.user_id,
                    role=command.role,
                    method=command.method,
                    verified_at=now,
                    expires_at=now
                    + timedelta(minutes=self.policy.role_verification_ttl_minutes),
                ).model_dump(mode="json"),
            )
        else:
            batch.add(
                "RoleVerificationFailed",
                events.RoleVerificationFailed(
                    user_id=command.user_id,
                    role=command.role,
                    method=command.method,
                    reason=reason,
                    failed_at=now,
                ).model_dump(mode="json"),
            )
        return batch.events

    def _check_credential(
        self,
        command: commands.VerifyRole,
        registry: RoleSecurityRegistry,
        password_verifier: PasswordVerifier | None,
    ) -> str | None:
        """None on success, otherwise the failure reason"""
        if command.method == VerificationMethod.PIN:
            stored = registry.pin_hash(command.user_id, command.role)
            if stored is None:
                return "pin_not_configured"
            if not is_well_formed_pin(
                command.credential, self.policy.pin_min_length, self.policy.pin_max_length
            ):
                return "invalid_pin"
            if not verify_secret(command.credential, stored):
                return "invalid_pin"
            return None

        if password_verifier is None:
            return "password_verification_unavailable"
        if not password_verifier.verify(command.user_id, command.credential):
            return "invalid_password"
        return None

    def handle_session_expired(
        self,
        user_id: str,
        role: ManagementRole,
        expired_at: datetime,
        command_id: str,
        registry: RoleSecurityRegistry,
    ) -> list[Event]:
        batch = self._batch(registry, user_id, command_id, None)
        batch.add(
            "RoleSessionExpired",
            events.RoleSessionExpired(
                user_id=user_id, role=role, expired_at=expired_at
            ).model_dump(mode="json"),
        )
        return batch.events

    def handle_session_cleared(
        self,
        user_id: str,
        roles: list[ManagementRole],
        reason: str,
        command_id: str,
        actor_id: str | None,
        registry: RoleSecurityRegistry,
    ) -> list[Event]:
        if not roles:
            return []
        batch = self._batch(registry, user_id, command_id, actor_id)
        batch.add(
            "RoleSessionCleared",
            events.RoleSessionCleared(
                user_id=user_id,
                roles=roles,
                reason=reason,
                cleared_at=batch.occurred_at,
            ).model_dump(mode="json"),
        )
        return batch.events
