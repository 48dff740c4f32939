"""
Supplier Directory Models

A supplier's private contact profile. Only the city and the derived
pseudonymous code are ever shown next to a bid.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class SupplierProfile(BaseModel):
    """Private supplier profile - contact fields leave only via the reveal gate"""

    supplier_id: str
    name: str
    company: str
    phone: str
    email: str
    address: str | None = None
    city: str | None = None
    gstin: str | None = None
    categories: list[str] = Field(default_factory=list)
    registered_at: datetime

    model_config = {"frozen": True}


class RevealedContact(BaseModel):
    """Contact details of a supplier, as released to the revealing buyer"""

    supplier_id: str
    supplier_name: str
    company: str
    phone: str
    email: str
    address: str | None = None
    gstin: str | None = None
    revealed_at: datetime

    model_config = {"frozen": True}
