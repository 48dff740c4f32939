"""
Role Security Events

The audit trail for management-role access. Sessions themselves are
process memory; these events record who unlocked what, and who failed to.
"""

from datetime import datetime

from pydantic import BaseModel

from procure_saathi.roles.models import ManagementRole, VerificationMethod


class RolePinSet(BaseModel):
    user_id: str
    role: ManagementRole
    pin_hash: str
    set_at: datetime


class RoleVerificationSucceeded(BaseModel):
    """unlock_success"""

    user_id: str
    role: ManagementRole
    method: VerificationMethod
    verified_at: datetime
    expires_at: datetime


class RoleVerificationFailed(BaseModel):
    """unlock_failure - no session state was created"""

    user_id: str
    role: ManagementRole
    method: VerificationMethod
    reason: str
    failed_at: datetime


class RoleSessionExpired(BaseModel):
    """session_expired - removed by the sweep"""

    user_id: str
    role: ManagementRole
    expired_at: datetime


class RoleSessionCleared(BaseModel):
    """Explicit revoke (one role) or sign-out (all roles)"""

    user_id: str
    roles: list[ManagementRole]
    reason: str
    cleared_at: datetime
