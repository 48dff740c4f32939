"""Role Verification Commands"""

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from procure_saathi.roles.models import ManagementRole, VerificationMethod
from procure_saathi.roles.pins import is_well_formed_pin


class _RoleCommand(BaseModel):
    user_id: str = Field(..., min_length=1)
    role: ManagementRole

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, value):
        return ManagementRole.parse(value)


class SetRolePin(_RoleCommand):
    """
    Configure (or replace) the PIN for a management role

    PIN bounds come from the policy passed in the validation context:
        SetRolePin.model_validate(data, context={"policy": policy})
    """

    pin: str = Field(..., repr=False)

    @field_validator("pin")
    @classmethod
    def check_pin(cls, value: str, info: ValidationInfo) -> str:
        policy = (info.context or {}).get("policy")
        min_length = policy.pin_min_length if policy else 4
        max_length = policy.pin_max_length if policy else 8
        if not is_well_formed_pin(value, min_length, max_length):
            raise ValueError(f"PIN must be {min_length}-{max_length} digits")
        return value


class VerifyRole(_RoleCommand):
    """Open a verified window for a role with a PIN or a password"""

    method: VerificationMethod
    credential: str = Field(..., repr=False)
