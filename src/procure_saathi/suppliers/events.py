"""Supplier Directory Events"""

from datetime import datetime

from pydantic import BaseModel, Field


class SupplierProfileRegistered(BaseModel):
    """Supplier contact profile stored (private)"""

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
