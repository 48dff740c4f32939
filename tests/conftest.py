"""
Pytest configuration and shared fixtures

Fun fact: The name "conftest" comes from pytest's configuration testing
framework. Files named conftest.py are automatically discovered and their
fixtures are available to all tests in the same directory and subdirectories!
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest

from procure_saathi.affiliates import (
    AffiliateCommandHandlers,
    AffiliateRoster,
    StaticAdminDirectory,
)
from procure_saathi.kernel.event_store import SQLiteEventStore
from procure_saathi.kernel.ids import SequentialIdFactory
from procure_saathi.kernel.policy import MarketplacePolicy
from procure_saathi.kernel.time import TestTimeProvider
from procure_saathi.marketplace import ProcureSaathi
from procure_saathi.requirements import RequirementBook, RequirementCommandHandlers
from procure_saathi.roles import InMemoryPasswordVerifier


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup
    if db_path.exists():
        db_path.unlink()


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(temp_db)


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC (a Wednesday, mid-quarter, far from
    any daylight-saving switch).
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> MarketplacePolicy:
    """Provide the default marketplace policy"""
    return MarketplacePolicy()


@pytest.fixture
def id_factory() -> SequentialIdFactory:
    return SequentialIdFactory("id")


@pytest.fixture
def password_verifier() -> InMemoryPasswordVerifier:
    """Stand-in for the external auth provider"""
    return InMemoryPasswordVerifier({"mgr-1": "correct horse battery"})


@pytest.fixture
def admin_directory() -> StaticAdminDirectory:
    """Administrators known to the test marketplace"""
    return StaticAdminDirectory({"admin-1", "admin"})


@pytest.fixture
def market(
    temp_db: Path,
    policy: MarketplacePolicy,
    test_time: TestTimeProvider,
    id_factory: SequentialIdFactory,
    password_verifier: InMemoryPasswordVerifier,
    admin_directory: StaticAdminDirectory,
) -> Iterator[ProcureSaathi]:
    """
    Provide a marketplace façade on a fresh database

    Time is frozen; advance it with ``test_time``.
    """
    instance = ProcureSaathi(
        temp_db,
        policy=policy,
        time_provider=test_time,
        id_factory=id_factory,
        password_verifier=password_verifier,
        admin_directory=admin_directory,
    )
    yield instance
    instance.close()


# =============================================================================
# Handler-level fixtures
# =============================================================================


@pytest.fixture
def requirement_handlers(
    test_time: TestTimeProvider, policy: MarketplacePolicy, id_factory: SequentialIdFactory
) -> RequirementCommandHandlers:
    """
    Provide requirement command handlers for testing

    Handlers are stateless - they take projections as parameters.
    """
    return RequirementCommandHandlers(test_time, policy, id_factory)


@pytest.fixture
def requirement_book() -> RequirementBook:
    """Fresh requirement book projection - no shared state between tests"""
    return RequirementBook()


@pytest.fixture
def affiliate_handlers(
    test_time: TestTimeProvider, policy: MarketplacePolicy, id_factory: SequentialIdFactory
) -> AffiliateCommandHandlers:
    return AffiliateCommandHandlers(test_time, policy, id_factory)


@pytest.fixture
def affiliate_roster() -> AffiliateRoster:
    return AffiliateRoster()
