"""
Affiliate FIFO Queue

A hard cap on concurrently ACTIVE affiliates, filled in strict join order.
"""

from procure_saathi.affiliates.admins import AdminDirectory, StaticAdminDirectory
from procure_saathi.affiliates.commands import (
    ActivateFifo,
    JoinAffiliate,
    UpdateAffiliateStatus,
)
from procure_saathi.affiliates.handlers import AffiliateCommandHandlers
from procure_saathi.affiliates.models import (
    ActivationOutcome,
    ActivationResult,
    AffiliateRecord,
    AffiliateStats,
    AffiliateStatus,
)
from procure_saathi.affiliates.projections import ROSTER_STREAM, AffiliateRoster

__all__ = [
    "AffiliateStatus",
    "AffiliateRecord",
    "ActivationOutcome",
    "ActivationResult",
    "AffiliateStats",
    "JoinAffiliate",
    "ActivateFifo",
    "UpdateAffiliateStatus",
    "AffiliateCommandHandlers",
    "AffiliateRoster",
    "ROSTER_STREAM",
    "AdminDirectory",
    "StaticAdminDirectory",
]
