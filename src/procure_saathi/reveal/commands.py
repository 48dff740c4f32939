"""Reveal Gate Commands"""

from pydantic import BaseModel, Field


class RequestReveal(BaseModel):
    """Buyer asks to unlock a supplier's contact (create-or-fetch)"""

    requirement_id: str
    supplier_id: str
    bid_id: str
    acting_buyer_id: str = Field(..., min_length=1)


class ConfirmRevealPayment(BaseModel):
    """Payment for a reveal succeeded: requested → paid"""

    requirement_id: str
    supplier_id: str
    acting_buyer_id: str = Field(..., min_length=1)
    payment_reference: str = Field(..., min_length=1, max_length=200)


class RecordRevealPaymentFailure(BaseModel):
    """Payment for a reveal failed; the request stays retryable"""

    requirement_id: str
    supplier_id: str
    acting_buyer_id: str = Field(..., min_length=1)
    reason: str = Field(default="payment_failed", max_length=500)


class ConfirmReveal(BaseModel):
    """Release the contact: paid → revealed"""

    requirement_id: str
    supplier_id: str
    acting_buyer_id: str = Field(..., min_length=1)
