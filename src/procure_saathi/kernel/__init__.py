"""
Kernel - Core event sourcing infrastructure

The kernel provides the event sourcing machinery the marketplace modules
build upon: events, the append-only store, projections, time and ids.

Fun fact: Event sourcing was inspired by accountants - they never erase ledger
entries, they add correcting entries.
"""

from procure_saathi.kernel.errors import (
    Conflict,
    EventStoreError,
    Forbidden,
    InvalidState,
    NotFound,
    ProcureError,
    StreamVersionConflict,
    VerificationFailed,
)
from procure_saathi.kernel.events import Event
from procure_saathi.kernel.ids import IdFactory, SequentialIdFactory, generate_id
from procure_saathi.kernel.policy import MarketplacePolicy
from procure_saathi.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "IdFactory",
    "SequentialIdFactory",
    "generate_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events & policy
    "Event",
    "MarketplacePolicy",
    # Errors
    "ProcureError",
    "EventStoreError",
    "StreamVersionConflict",
    "InvalidState",
    "Conflict",
    "Forbidden",
    "NotFound",
    "VerificationFailed",
]
