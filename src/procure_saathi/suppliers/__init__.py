"""
Supplier Directory

Private supplier contact profiles and the anonymization rules that keep
them out of bid listings.
"""

from procure_saathi.suppliers.anonymization import mask_contact, supplier_code, to_bid_view
from procure_saathi.suppliers.commands import RegisterSupplier
from procure_saathi.suppliers.handlers import SupplierCommandHandlers, supplier_stream
from procure_saathi.suppliers.models import RevealedContact, SupplierProfile
from procure_saathi.suppliers.projections import SupplierDirectory

__all__ = [
    "SupplierProfile",
    "RevealedContact",
    "RegisterSupplier",
    "SupplierCommandHandlers",
    "SupplierDirectory",
    "supplier_stream",
    "supplier_code",
    "mask_contact",
    "to_bid_view",
]
