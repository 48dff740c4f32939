"""
Role Verification Models

Management dashboards (CFO, CEO, HR, Manager) sit behind a second,
short-lived verification on top of the normal login.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class ManagementRole(str, Enum):
    CFO = "cfo"
    CEO = "ceo"
    HR = "hr"
    MANAGER = "manager"

    @property
    def security_tag(self) -> str:
        """Role tag used in the security audit stream, e.g. 'buyer_cfo'"""
        return f"buyer_{self.value}"

    @classmethod
    def parse(cls, value: "str | ManagementRole") -> "ManagementRole":
        """Accept 'cfo', 'CFO' or the audit tag 'buyer_cfo'"""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if text.startswith("buyer_"):
            text = text[len("buyer_"):]
        return cls(text)


def requires_verification(role: str) -> bool:
    """True for management roles; ordinary views need no second check"""
    try:
        ManagementRole.parse(role)
    except ValueError:
        return False
    return True


class VerificationMethod(str, Enum):
    PIN = "pin"
    PASSWORD = "password"


class VerificationState(BaseModel):
    """A verified window for one role: valid iff now < expires_at"""

    role: ManagementRole
    method: VerificationMethod
    verified_at: datetime
    expires_at: datetime

    model_config = {"frozen": True}

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at
