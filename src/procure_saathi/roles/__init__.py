"""
Role Verification Sessions

Fifteen-minute elevated-access windows for management roles, opened by a
PIN or password check and closed by expiry, explicit clear or sign-out.
"""

from procure_saathi.roles.commands import SetRolePin, VerifyRole
from procure_saathi.roles.handlers import RoleCommandHandlers, role_security_stream
from procure_saathi.roles.models import (
    ManagementRole,
    VerificationMethod,
    VerificationState,
    requires_verification,
)
from procure_saathi.roles.passwords import InMemoryPasswordVerifier, PasswordVerifier
from procure_saathi.roles.projections import RoleSecurityRegistry
from procure_saathi.roles.session import (
    RoleSessionManager,
    RoleVerificationContext,
    SessionReaper,
)

__all__ = [
    "ManagementRole",
    "VerificationMethod",
    "VerificationState",
    "requires_verification",
    "SetRolePin",
    "VerifyRole",
    "RoleCommandHandlers",
    "RoleSecurityRegistry",
    "RoleSessionManager",
    "RoleVerificationContext",
    "SessionReaper",
    "PasswordVerifier",
    "InMemoryPasswordVerifier",
    "role_security_stream",
]
