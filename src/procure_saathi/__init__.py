"""
ProcureSaathi - Sealed-bid procurement marketplace core

Buyers post requirements, suppliers bid anonymously, a buyer awards exactly
one bid and may pay to reveal a supplier's contact details. Alongside sits a
capacity-limited affiliate queue and short-lived management role sessions.

Fun fact: In 193 AD the Praetorian Guard auctioned the Roman throne to the highest
bidder, Didius Julianus. Open bidding; he lasted 66 days.
"""

from procure_saathi.marketplace import ProcureSaathi

__version__ = "0.1.0"
__all__ = ["ProcureSaathi", "__version__"]
