"""
Kernel - Event sourcing, locking and ambient infrastructure

The kernel holds everything the domain modules share: the append-only
event store, the notification bus, per-resource locks, money arithmetic,
policy, logging and metrics.

Fun fact: Event sourcing was inspired by accountants - they never erase ledger
entries, they add correcting entries. A budget ledger is the original use case.
"""

from procurement_ledger.kernel.errors import (
    CommandIdempotencyViolation,
    ConcurrencyTimeout,
    EventStoreError,
    InsufficientBudget,
    InvariantViolation,
    LedgerError,
    StreamVersionConflict,
    ValidationError,
)
from procurement_ledger.kernel.events import Event
from procurement_ledger.kernel.identity import SYSTEM_ACTOR, Actor
from procurement_ledger.kernel.ids import generate_id
from procurement_ledger.kernel.policy import ProcurementPolicy
from procurement_ledger.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "generate_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events
    "Event",
    # Identity & policy
    "Actor",
    "SYSTEM_ACTOR",
    "ProcurementPolicy",
    # Errors
    "LedgerError",
    "EventStoreError",
    "CommandIdempotencyViolation",
    "StreamVersionConflict",
    "ValidationError",
    "InvariantViolation",
    "InsufficientBudget",
    "ConcurrencyTimeout",
]
