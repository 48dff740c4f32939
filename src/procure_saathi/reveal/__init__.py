"""
Reveal Gate

Progressive disclosure of supplier contact details. Bids stay anonymized
until the buyer has requested, paid for and confirmed a reveal.
"""

from procure_saathi.reveal.commands import (
    ConfirmReveal,
    ConfirmRevealPayment,
    RecordRevealPaymentFailure,
    RequestReveal,
)
from procure_saathi.reveal.handlers import RevealCommandHandlers, reveal_stream
from procure_saathi.reveal.models import RevealRequest, RevealStatus
from procure_saathi.reveal.projections import RevealGate

__all__ = [
    "RevealRequest",
    "RevealStatus",
    "RequestReveal",
    "ConfirmRevealPayment",
    "RecordRevealPaymentFailure",
    "ConfirmReveal",
    "RevealCommandHandlers",
    "RevealGate",
    "reveal_stream",
]
