"""Reveal Gate Events"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class RevealRequested(BaseModel):
    """locked → requested"""

    requirement_id: str
    supplier_id: str
    bid_id: str
    buyer_id: str
    reveal_fee: Decimal
    requested_at: datetime


class RevealPaymentConfirmed(BaseModel):
    """requested → paid"""

    requirement_id: str
    supplier_id: str
    payment_reference: str
    paid_at: datetime


class RevealPaymentFailed(BaseModel):
    """Payment attempt failed; status stays requested (audit only)"""

    requirement_id: str
    supplier_id: str
    reason: str
    failed_at: datetime


class SupplierRevealed(BaseModel):
    """paid → revealed"""

    requirement_id: str
    supplier_id: str
    revealed_at: datetime
