"""
SQLite Event Store - Append-only event log with idempotency

The event store is the source of truth for the ledger. It provides:
- Append-only semantics (events never modified or deleted)
- Idempotency via command_id (same request = same events)
- Optimistic locking via stream versioning
- Multi-stream atomic batches (a PO approval and its reservations commit together)
- Deterministic replay in commit order

Fun fact: The oldest surviving accounting records, Sumerian clay tablets, were
append-only by construction. Once the clay dried, the only way to fix a
mistake was a new tablet.
"""

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from procurement_ledger.kernel.errors import (
    CommandIdempotencyViolation,
    EventStoreError,
    StreamVersionConflict,
)
from procurement_ledger.kernel.events import Event
from procurement_ledger.kernel.logging import get_logger
from procurement_ledger.kernel.metrics import (
    events_appended_total,
    events_loaded_total,
    stream_version_conflicts_total,
)
from procurement_ledger.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

_SELECT_COLUMNS = """
    SELECT
        event_id, stream_id, stream_type, version,
        command_id, event_type, occurred_at, actor_id, payload_json
    FROM events
"""


class SQLiteEventStore:
    """
    SQLite-based event store with append-only semantics

    Uses WAL mode for crash safety and concurrent readers. Every append runs
    inside BEGIN IMMEDIATE, so writers are serialized by SQLite itself and
    a batch is either fully visible or not at all.

    Schema:
    - events table: append-only event log, `seq` gives global commit order
    - Unique constraints: event_id, (stream_id, version)
    - Indices: stream, event type, command id, occurred_at
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize event store with SQLite database

        Args:
            db_path: Path to SQLite database file (created if missing)
        """
        self.db_path = Path(db_path)
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        """Create tables and indices if they don't exist"""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_id TEXT NOT NULL UNIQUE,
                    stream_id TEXT NOT NULL,
                    stream_type TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    command_id TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    occurred_at TEXT NOT NULL,
                    actor_id TEXT,
                    payload_json TEXT NOT NULL,

                    UNIQUE(stream_id, version)
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_stream ON events(stream_id, version)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_time ON events(occurred_at)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_command ON events(command_id)"
            )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database connections

        Connections run in autocommit mode; writers open their own
        transaction explicitly.
        """
        conn = sqlite3.connect(str(self.db_path), timeout=5.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # ========== Write Operations ==========

    def append(
        self,
        stream_id: str,
        expected_version: int,
        events: list[Event],
    ) -> list[Event]:
        """
        Append events to a single stream with optimistic locking

        Args:
            stream_id: Aggregate identifier
            expected_version: Current stream version the caller saw
            events: Events to append (sequential versions, same stream)

        Returns:
            The appended events (or the original ones on an idempotent replay)

        Raises:
            StreamVersionConflict: If stream version doesn't match expected
            EventStoreError: On other database errors
        """
        foreign = [e.stream_id for e in events if e.stream_id != stream_id]
        if foreign:
            raise EventStoreError(
                f"append() got events for other streams: {', '.join(sorted(set(foreign)))}"
            )
        return self.append_batch(events, {stream_id: expected_version})

    @retry_on_sqlite_lock()
    def append_batch(
        self,
        events: list[Event],
        expected_versions: dict[str, int] | None = None,
    ) -> list[Event]:
        """
        Append events spanning several streams in one transaction

        This is the core write operation. It ensures:
        1. Idempotency: a command_id already in the log returns its events
        2. Consistency: every stream's version matches what the caller saw
        3. Atomicity: all events append together or none do

        Args:
            events: Events to append, in order. All share one command_id.
            expected_versions: stream_id -> version the caller read. Streams
                not listed are derived from the first event's version - 1.

        Returns:
            The appended events (or the original ones on an idempotent replay)

        Raises:
            StreamVersionConflict: If any stream moved since it was read
            CommandIdempotencyViolation: If the command raced with itself
            EventStoreError: On other database errors
        """
        if not events:
            return []

        command_id = events[0].command_id
        if any(e.command_id != command_id for e in events):
            raise EventStoreError("All events in a batch must share one command_id")

        expected = self._expected_versions(events, expected_versions or {})

        with self._connect() as conn:
            existing = self._get_events_by_command_id(conn, command_id)
            if existing:
                logger.info(
                    "Command already processed, returning stored events",
                    command_id=command_id,
                    event_count=len(existing),
                )
                return existing

            try:
                conn.execute("BEGIN IMMEDIATE")

                for stream_id, expected_version in expected.items():
                    current_version = self._get_stream_version(conn, stream_id)
                    if current_version != expected_version:
                        stream_type = next(
                            e.stream_type for e in events if e.stream_id == stream_id
                        )
                        stream_version_conflicts_total.labels(stream_type=stream_type).inc()
                        raise StreamVersionConflict(
                            stream_id, expected_version, current_version
                        )

                for event in events:
                    conn.execute(
                        """
                        INSERT INTO events (
                            event_id, stream_id, stream_type, version,
                            command_id, event_type, occurred_at, actor_id, payload_json
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                        (
                            event.event_id,
                            event.stream_id,
                            event.stream_type,
                            event.version,
                            event.command_id,
                            event.event_type,
                            event.occurred_at.isoformat(),
                            event.actor_id,
                            json.dumps(event.payload),
                        ),
                    )

                conn.execute("COMMIT")

            except StreamVersionConflict:
                conn.execute("ROLLBACK")
                raise

            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                existing = self._get_events_by_command_id(conn, command_id)
                if existing:
                    return existing
                if "version" in str(e).lower():
                    stream_id = events[0].stream_id
                    raise StreamVersionConflict(
                        stream_id,
                        expected.get(stream_id, 0),
                        self._get_stream_version(conn, stream_id),
                    ) from e
                raise CommandIdempotencyViolation(command_id, str(e)) from e

            except sqlite3.OperationalError:
                # Lock contention; the retry decorator takes it from here
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

            except Exception as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise EventStoreError(f"Unexpected error appending events: {e}") from e

        for event in events:
            events_appended_total.labels(
                stream_type=event.stream_type, event_type=event.event_type
            ).inc()

        return events

    def _expected_versions(
        self, events: list[Event], given: dict[str, int]
    ) -> dict[str, int]:
        """Work out the pre-append version of every stream in a batch"""
        expected: dict[str, int] = {}
        last_seen: dict[str, int] = {}
        for event in events:
            if event.stream_id not in expected:
                expected[event.stream_id] = given.get(event.stream_id, event.version - 1)
                last_seen[event.stream_id] = expected[event.stream_id]
            if event.version != last_seen[event.stream_id] + 1:
                raise EventStoreError(
                    f"Non-sequential version {event.version} for stream {event.stream_id}"
                )
            last_seen[event.stream_id] = event.version
        return expected

    # ========== Read Operations ==========

    def load_stream(self, stream_id: str) -> list[Event]:
        """
        Load all events for a stream in version order

        Args:
            stream_id: Aggregate identifier

        Returns:
            List of events in version order (empty if stream doesn't exist)
        """
        with self._connect() as conn:
            cursor = conn.execute(
                _SELECT_COLUMNS + " WHERE stream_id = ? ORDER BY version ASC",
                (stream_id,),
            )
            events = [self._row_to_event(row) for row in cursor.fetchall()]

        if events:
            events_loaded_total.labels(stream_type=events[0].stream_type).inc(len(events))
        return events

    def load_all_events(
        self,
        from_event_id: str | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """
        Load events in commit order (for projection rebuilding)

        Args:
            from_event_id: Start after this event (exclusive), or None for all
            limit: Maximum number of events to return, or None for all

        Returns:
            List of events in commit order
        """
        with self._connect() as conn:
            params: list = []
            query = _SELECT_COLUMNS
            if from_event_id:
                row = conn.execute(
                    "SELECT seq FROM events WHERE event_id = ?", (from_event_id,)
                ).fetchone()
                if not row:
                    return []
                query += " WHERE seq > ?"
                params.append(row["seq"])

            query += " ORDER BY seq ASC"
            if limit:
                query += " LIMIT ?"
                params.append(limit)

            cursor = conn.execute(query, params)
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def query_events(
        self,
        *,
        stream_id: str | None = None,
        stream_type: str | None = None,
        event_type: str | None = None,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """
        Query events by various criteria

        Args:
            stream_id: Filter by stream
            stream_type: Filter by stream type (e.g., "budget_item", "purchase_order")
            event_type: Filter by event type (e.g., "FundsReserved")
            from_time: Events at or after this time
            to_time: Events at or before this time
            limit: Maximum number of events to return

        Returns:
            List of matching events in commit order
        """
        conditions = []
        params: list = []

        if stream_id:
            conditions.append("stream_id = ?")
            params.append(stream_id)

        if stream_type:
            conditions.append("stream_type = ?")
            params.append(stream_type)

        if event_type:
            conditions.append("event_type = ?")
            params.append(event_type)

        if from_time:
            conditions.append("occurred_at >= ?")
            params.append(from_time.astimezone(timezone.utc).isoformat())

        if to_time:
            conditions.append("occurred_at <= ?")
            params.append(to_time.astimezone(timezone.utc).isoformat())

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        query = _SELECT_COLUMNS + f" WHERE {where_clause} ORDER BY seq ASC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        with self._connect() as conn:
            cursor = conn.execute(query, params)
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def get_stream_version(self, stream_id: str) -> int:
        """
        Get current version of a stream

        Returns:
            Current stream version (0 if stream doesn't exist)
        """
        with self._connect() as conn:
            return self._get_stream_version(conn, stream_id)

    def count_events(self) -> int:
        """Get total number of events in store"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def count_streams(self) -> int:
        """Get total number of distinct streams"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(DISTINCT stream_id) FROM events").fetchone()[0]

    # ========== Internal Helpers ==========

    def _get_stream_version(self, conn: sqlite3.Connection, stream_id: str) -> int:
        row = conn.execute(
            "SELECT MAX(version) FROM events WHERE stream_id = ?",
            (stream_id,),
        ).fetchone()
        return row[0] if row[0] is not None else 0

    def _get_events_by_command_id(
        self, conn: sqlite3.Connection, command_id: str
    ) -> list[Event]:
        cursor = conn.execute(
            _SELECT_COLUMNS + " WHERE command_id = ? ORDER BY seq ASC",
            (command_id,),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        return Event(
            event_id=row["event_id"],
            stream_id=row["stream_id"],
            stream_type=row["stream_type"],
            version=row["version"],
            command_id=row["command_id"],
            event_type=row["event_type"],
            occurred_at=datetime.fromisoformat(row["occurred_at"]),
            actor_id=row["actor_id"],
            payload=json.loads(row["payload_json"]),
        )
