"""
Tests for SQLite Event Store

Verifies core event sourcing properties:
- Append-only semantics
- Idempotency via command_id
- Optimistic locking via stream versioning
- Multi-stream atomic batches
- Query capabilities

A ledger that cannot replay its own history cannot be audited, so these
tests pin down ordering, idempotency and conflict detection exactly.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from procurement_ledger.kernel.errors import EventStoreError, StreamVersionConflict
from procurement_ledger.kernel.event_store import SQLiteEventStore
from procurement_ledger.kernel.events import Event, create_event
from procurement_ledger.kernel.ids import generate_id

NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def _event(
    stream_id: str,
    version: int,
    command_id: str | None = None,
    event_type: str = "TestEvent",
    stream_type: str = "budget_item",
    occurred_at: datetime = NOW,
    payload: dict | None = None,
) -> Event:
    return create_event(
        event_id=generate_id(),
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        command_id=command_id or generate_id(),
        actor_id="tester",
        payload=payload or {},
        version=version,
    )


def test_append_and_load_single_event(event_store: SQLiteEventStore) -> None:
    """Test appending and loading a single event"""
    event = _event("item-1", 1, payload={"amount": "400.00"})

    appended = event_store.append("item-1", 0, [event])
    assert len(appended) == 1
    assert appended[0].event_id == event.event_id

    loaded = event_store.load_stream("item-1")
    assert len(loaded) == 1
    assert loaded[0].event_id == event.event_id
    assert loaded[0].payload == {"amount": "400.00"}
    assert loaded[0].actor_id == "tester"
    assert loaded[0].occurred_at == NOW


def test_stream_versioning(event_store: SQLiteEventStore) -> None:
    """Test that stream versions advance one event at a time"""
    event_store.append("item-1", 0, [_event("item-1", 1)])
    assert event_store.get_stream_version("item-1") == 1

    event_store.append("item-1", 1, [_event("item-1", 2)])
    assert event_store.get_stream_version("item-1") == 2

    events = event_store.load_stream("item-1")
    assert [e.version for e in events] == [1, 2]


def test_optimistic_locking_conflict(event_store: SQLiteEventStore) -> None:
    """A writer that read a stale version is refused"""
    event_store.append("item-1", 0, [_event("item-1", 1)])

    with pytest.raises(StreamVersionConflict) as exc_info:
        event_store.append("item-1", 0, [_event("item-1", 1)])

    assert exc_info.value.expected_version == 0
    assert exc_info.value.actual_version == 1
    assert event_store.count_events() == 1


def test_command_idempotency(event_store: SQLiteEventStore) -> None:
    """The same command_id never produces a second set of events"""
    command_id = generate_id()
    first = event_store.append("item-1", 0, [_event("item-1", 1, command_id=command_id)])

    replay = event_store.append("item-1", 0, [_event("item-1", 1, command_id=command_id)])

    assert [e.event_id for e in replay] == [e.event_id for e in first]
    assert event_store.count_events() == 1


def test_append_batch_spans_streams_atomically(event_store: SQLiteEventStore) -> None:
    """A PO event and two budget item events commit together"""
    command_id = generate_id()
    batch = [
        _event("po-1", 1, command_id, "PurchaseOrderApproved", "purchase_order"),
        _event("item-1", 1, command_id, "FundsReserved"),
        _event("item-2", 1, command_id, "FundsReserved"),
    ]

    stored = event_store.append_batch(batch)

    assert len(stored) == 3
    assert event_store.count_streams() == 3
    assert event_store.get_stream_version("item-2") == 1


def test_append_batch_conflict_writes_nothing(event_store: SQLiteEventStore) -> None:
    """If one stream moved, none of the batch is stored"""
    event_store.append("item-2", 0, [_event("item-2", 1)])

    command_id = generate_id()
    batch = [
        _event("item-1", 1, command_id, "FundsReserved"),
        _event("item-2", 1, command_id, "FundsReserved"),  # stale: item-2 is at 1
    ]
    with pytest.raises(StreamVersionConflict):
        event_store.append_batch(batch)

    assert event_store.load_stream("item-1") == []
    assert event_store.count_events() == 1


def test_append_batch_multiple_events_same_stream(event_store: SQLiteEventStore) -> None:
    """Submit + auto-approve put two versions of one PO in one batch"""
    command_id = generate_id()
    batch = [
        _event("po-1", 1, command_id, "PurchaseOrderCreated", "purchase_order"),
        _event("po-1", 2, command_id, "PurchaseOrderSubmitted", "purchase_order"),
    ]
    event_store.append_batch(batch)
    assert event_store.get_stream_version("po-1") == 2


def test_append_batch_rejects_version_gaps(event_store: SQLiteEventStore) -> None:
    command_id = generate_id()
    with pytest.raises(EventStoreError):
        event_store.append_batch([_event("po-1", 1, command_id), _event("po-1", 3, command_id)])


def test_append_batch_rejects_mixed_command_ids(event_store: SQLiteEventStore) -> None:
    with pytest.raises(EventStoreError):
        event_store.append_batch([_event("a", 1), _event("b", 1)])


def test_append_rejects_foreign_stream(event_store: SQLiteEventStore) -> None:
    with pytest.raises(EventStoreError):
        event_store.append("item-1", 0, [_event("item-2", 1)])


def test_append_empty_events_list(event_store: SQLiteEventStore) -> None:
    """Appending nothing is a no-op"""
    assert event_store.append_batch([]) == []
    assert event_store.count_events() == 0


def test_load_all_events_in_commit_order(event_store: SQLiteEventStore) -> None:
    """Replay order is commit order, not id or time order"""
    later = _event("b", 1, occurred_at=NOW + timedelta(days=1))
    earlier = _event("a", 1, occurred_at=NOW)
    event_store.append_batch([later])
    event_store.append_batch([earlier])

    events = event_store.load_all_events()
    assert [e.stream_id for e in events] == ["b", "a"]


def test_load_all_events_with_from_event_id(event_store: SQLiteEventStore) -> None:
    """Resume replay after a known event"""
    stored = [event_store.append_batch([_event(f"s-{i}", 1)])[0] for i in range(5)]

    rest = event_store.load_all_events(from_event_id=stored[1].event_id)
    assert [e.stream_id for e in rest] == ["s-2", "s-3", "s-4"]

    limited = event_store.load_all_events(limit=2)
    assert len(limited) == 2

    assert event_store.load_all_events(from_event_id="missing") == []


def test_query_events_filters(event_store: SQLiteEventStore) -> None:
    """Filter by stream, type and time window"""
    event_store.append_batch([_event("item-1", 1, event_type="BudgetItemCreated")])
    event_store.append_batch(
        [_event("item-1", 2, event_type="FundsReserved", occurred_at=NOW + timedelta(hours=2))]
    )
    event_store.append_batch(
        [_event("po-1", 1, event_type="PurchaseOrderCreated", stream_type="purchase_order")]
    )

    assert len(event_store.query_events(stream_type="budget_item")) == 2
    assert len(event_store.query_events(event_type="FundsReserved")) == 1
    assert len(event_store.query_events(stream_id="po-1")) == 1
    assert len(event_store.query_events(from_time=NOW + timedelta(hours=1))) == 1
    assert len(event_store.query_events(to_time=NOW)) == 2
    assert len(event_store.query_events(limit=1)) == 1
    assert (
        len(event_store.query_events(stream_type="budget_item", event_type="BudgetItemCreated"))
        == 1
    )


def test_count_operations(event_store: SQLiteEventStore) -> None:
    assert event_store.count_events() == 0
    assert event_store.count_streams() == 0

    event_store.append_batch([_event("a", 1)])
    event_store.append_batch([_event("a", 2)])
    event_store.append_batch([_event("b", 1)])

    assert event_store.count_events() == 3
    assert event_store.count_streams() == 2


def test_load_stream_returns_empty_for_nonexistent(event_store: SQLiteEventStore) -> None:
    assert event_store.load_stream("nope") == []
    assert event_store.get_stream_version("nope") == 0


def test_events_survive_reopen(temp_db) -> None:
    """A second store over the same file sees everything"""
    SQLiteEventStore(temp_db).append_batch([_event("a", 1)])
    assert SQLiteEventStore(temp_db).count_events() == 1


def test_occurred_at_normalized_to_utc(event_store: SQLiteEventStore) -> None:
    local = NOW.astimezone(timezone(timedelta(hours=-5)))
    event_store.append("item-1", 0, [_event("item-1", 1, occurred_at=local)])

    loaded = event_store.load_stream("item-1")[0]

    assert loaded.occurred_at == NOW
    assert loaded.occurred_at.utcoffset() == timedelta(0)
    assert len(event_store.query_events(from_time=local)) == 1


def test_event_envelope_rejects_unknown_stream_type_and_naive_time() -> None:
    with pytest.raises(PydanticValidationError):
        _event("x", 1, stream_type="workspace")
    with pytest.raises(PydanticValidationError):
        _event("x", 1, occurred_at=datetime(2025, 3, 3, 9, 0))
