"""
Pytest configuration and shared fixtures

Fun fact: The name "conftest" comes from pytest's configuration testing
framework. Files named conftest.py are automatically discovered and their
fixtures are available to all tests in the same directory and subdirectories!
"""

import tempfile
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterator

import pytest

from procurement_ledger.engine import ProcurementEngine
from procurement_ledger.kernel.event_store import SQLiteEventStore
from procurement_ledger.kernel.identity import Actor
from procurement_ledger.kernel.policy import ProcurementPolicy
from procurement_ledger.kernel.time import TestTimeProvider


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database path that's cleaned up after the test"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "ledger.db"


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(temp_db)


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-03-03 09:00:00 UTC, a Monday early in FY2025.
    """
    return TestTimeProvider(datetime(2025, 3, 3, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> ProcurementPolicy:
    """Default policy: auto-approval off, self-approval forbidden"""
    return ProcurementPolicy()


@pytest.fixture
def auto_policy() -> ProcurementPolicy:
    """Policy with auto-approval on at the default $500 threshold"""
    return ProcurementPolicy(auto_approval_enabled=True)


# =============================================================================
# Actors
# =============================================================================


@pytest.fixture
def requester() -> Actor:
    return Actor(actor_id="alice", display_name="Alice Requester", role="USER")


@pytest.fixture
def approver() -> Actor:
    return Actor(actor_id="bob", display_name="Bob Manager", role="MANAGER")


@pytest.fixture
def finance() -> Actor:
    return Actor(actor_id="fran", display_name="Fran Finance", role="FINANCE")


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def engine(temp_db: Path, policy: ProcurementPolicy, test_time: TestTimeProvider) -> ProcurementEngine:
    """Engine over an empty database"""
    return ProcurementEngine(temp_db, policy=policy, time_provider=test_time)


@pytest.fixture
def auto_engine(
    temp_db: Path, auto_policy: ProcurementPolicy, test_time: TestTimeProvider
) -> ProcurementEngine:
    """Engine with auto-approval enabled"""
    return ProcurementEngine(temp_db, policy=auto_policy, time_provider=test_time)


@pytest.fixture
def office_supplies(engine: ProcurementEngine, finance: Actor):
    """Budget item 5100, $1,000.00, FY2025"""
    return engine.create_budget_item(
        "5100", "Office supplies", 2025, Decimal("1000.00"), finance
    )


@pytest.fixture
def travel(engine: ProcurementEngine, finance: Actor):
    """Budget item 6200, $2,000.00, FY2025"""
    return engine.create_budget_item("6200", "Travel", 2025, Decimal("2000.00"), finance)

