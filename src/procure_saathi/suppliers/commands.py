"""Supplier Directory Commands"""

import re

from pydantic import BaseModel, Field, field_validator

GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z0-9]{10}[0-9A-Z]{3}$")


class RegisterSupplier(BaseModel):
    """Register a supplier's private contact profile"""

    supplier_id: str = Field(..., min_length=4)
    name: str = Field(..., min_length=1, max_length=200)
    company: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=6, max_length=20)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    address: str | None = Field(default=None, max_length=500)
    city: str | None = Field(default=None, max_length=100)
    gstin: str | None = None
    categories: list[str] = Field(default_factory=list)

    @field_validator("gstin")
    @classmethod
    def check_gstin(cls, value: str | None) -> str | None:
        if value is None:
            return value
        value = value.strip().upper()
        if not GSTIN_PATTERN.match(value):
            raise ValueError("GSTIN must be 15 characters: state code, PAN, entity code")
        return value
