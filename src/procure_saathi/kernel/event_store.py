"""
SQLite Event Store - Append-only event log with idempotency

The event store is the source of truth for the marketplace. It provides:
- Append-only semantics (events never modified or deleted)
- Idempotency via command_id (same command = same events)
- Optimistic locking via stream versioning
- Deterministic replay capability

Every write runs inside BEGIN IMMEDIATE, so the version check and the insert
happen under the database write lock. Two callers accepting bids on the same
requirement cannot both pass the check: the second sees the first's version
and gets StreamVersionConflict.

Fun fact: The append-only log pattern is one of the oldest database techniques,
dating back to the 1960s IMS database. A sealed-bid ledger is a natural fit.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from procure_saathi.kernel.errors import (
    EventStoreError,
    StreamVersionConflict,
)
from procure_saathi.kernel.events import Event
from procure_saathi.kernel.logging import get_logger
from procure_saathi.kernel.metrics import (
    events_appended_total,
    stream_version_conflicts_total,
)
from procure_saathi.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

_COLUMNS = """
    event_id, stream_id, stream_type, version,
    command_id, event_type, occurred_at, actor_id, payload_json
"""


class SQLiteEventStore:
    """
    SQLite-based event store with append-only semantics

    This implementation uses SQLite with WAL (Write-Ahead Logging) mode
    for crash safety and good concurrent read performance.

    Schema:
    - events table: append-only event log (rowid = global append order)
    - Unique constraints: (stream_id, version)
    - Indices: stream_id, event_type, occurred_at, command_id
    """

    def __init__(self, db_path: str | Path, *, busy_timeout_seconds: float = 10.0) -> None:
        """
        Initialize event store with SQLite database

        Args:
            db_path: Path to SQLite database file
            busy_timeout_seconds: How long a writer waits for the write lock
        """
        self.db_path = Path(db_path)
        self.busy_timeout_seconds = busy_timeout_seconds
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        """Create tables and indices if they don't exist"""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    event_id TEXT PRIMARY KEY,
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
                "CREATE INDEX IF NOT EXISTS idx_events_stream "
                "ON events(stream_id, version)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_time ON events(occurred_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_command ON events(command_id)"
            )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database connections

        Connections run in autocommit mode; append() opens its own
        explicit transaction.
        """
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_seconds,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @retry_on_sqlite_lock()
    def append(
        self,
        stream_id: str,
        expected_version: int,
        events: list[Event],
    ) -> list[Event]:
        """
        Append events to a stream with optimistic locking

        This is the core write operation. It ensures:
        1. Idempotency: Same command_id never creates duplicate events
        2. Consistency: Stream version must match expected
        3. Atomicity: All events append together or none do

        Args:
            stream_id: Aggregate root identifier
            expected_version: Expected current stream version (for optimistic locking)
            events: Events to append (must have sequential versions)

        Returns:
            The appended events (may be from previous execution if idempotent)

        Raises:
            StreamVersionConflict: If stream version doesn't match expected
            EventStoreError: On other database errors
        """
        if not events:
            return []

        first_command_id = events[0].command_id

        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                # Same command already applied to this stream: return the original events
                existing = self._events_for_command(conn, first_command_id, stream_id)
                if existing:
                    conn.execute("ROLLBACK")
                    logger.debug(
                        "Idempotent append, returning existing events",
                        stream_id=stream_id,
                        command_id=first_command_id,
                    )
                    return existing

                current_version = self._get_stream_version(conn, stream_id)
                if current_version != expected_version:
                    raise StreamVersionConflict(stream_id, expected_version, current_version)

                for event in events:
                    conn.execute(
                        f"INSERT INTO events ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
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
                stream_version_conflicts_total.labels(
                    stream_type=events[0].stream_type
                ).inc()
                raise

            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                error_msg = str(e).lower()
                if "stream_id" in error_msg and "version" in error_msg:
                    stream_version_conflicts_total.labels(
                        stream_type=events[0].stream_type
                    ).inc()
                    raise StreamVersionConflict(
                        stream_id, expected_version, self.get_stream_version(stream_id)
                    ) from e
                raise EventStoreError(f"Failed to append events: {e}") from e

            except sqlite3.OperationalError:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                # Lock contention - retried by the decorator
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

    def load_stream(self, stream_id: str, from_version: int = 0) -> list[Event]:
        """
        Load events for a stream in version order

        Args:
            stream_id: Aggregate root identifier
            from_version: Only return events with version > from_version

        Returns:
            List of events in version order (empty if stream doesn't exist)
        """
        with self._connect() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_COLUMNS}
                FROM events
                WHERE stream_id = ? AND version > ?
                ORDER BY version ASC
            """,
                (stream_id, from_version),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def load_all_events(self, limit: int | None = None) -> list[Event]:
        """
        Load every event in append order (for projection rebuilding)

        Args:
            limit: Maximum number of events to return, or None for all
        """
        query = f"SELECT {_COLUMNS} FROM events ORDER BY rowid ASC"
        params: tuple = ()
        if limit:
            query += " LIMIT ?"
            params = (limit,)

        with self._connect() as conn:
            cursor = conn.execute(query, params)
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def query_events(
        self,
        *,
        stream_type: str | None = None,
        event_type: str | None = None,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """
        Query events by various criteria

        Args:
            stream_type: Filter by stream type (e.g., "Requirement", "RoleSecurity")
            event_type: Filter by event type (e.g., "RoleVerificationFailed")
            from_time: Events after this time (inclusive)
            to_time: Events before this time (inclusive)
            limit: Maximum number of events to return

        Returns:
            List of matching events in append order
        """
        conditions = []
        params: list = []

        if stream_type:
            conditions.append("stream_type = ?")
            params.append(stream_type)

        if event_type:
            conditions.append("event_type = ?")
            params.append(event_type)

        if from_time:
            conditions.append("occurred_at >= ?")
            params.append(from_time.isoformat())

        if to_time:
            conditions.append("occurred_at <= ?")
            params.append(to_time.isoformat())

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        query = f"SELECT {_COLUMNS} FROM events WHERE {where_clause} ORDER BY rowid ASC"

        if limit:
            query += " LIMIT ?"
            params.append(limit)

        with self._connect() as conn:
            cursor = conn.execute(query, params)
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def get_stream_version(self, stream_id: str) -> int:
        """
        Get current version of a stream (0 if stream doesn't exist)
        """
        with self._connect() as conn:
            return self._get_stream_version(conn, stream_id)

    def _get_stream_version(self, conn: sqlite3.Connection, stream_id: str) -> int:
        cursor = conn.execute(
            "SELECT MAX(version) FROM events WHERE stream_id = ?",
            (stream_id,),
        )
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def _events_for_command(
        self, conn: sqlite3.Connection, command_id: str, stream_id: str
    ) -> list[Event]:
        cursor = conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM events
            WHERE command_id = ? AND stream_id = ?
            ORDER BY version ASC
        """,
            (command_id, stream_id),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def get_events_by_command_id(self, command_id: str) -> list[Event]:
        """All events produced by a command, across streams"""
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_COLUMNS} FROM events WHERE command_id = ? ORDER BY rowid ASC",
                (command_id,),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        """Convert SQLite row to Event object"""
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

    def count_events(self) -> int:
        """Get total number of events in store"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def count_streams(self) -> int:
        """Get total number of distinct streams"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(DISTINCT stream_id) FROM events").fetchone()[0]


__all__ = ["SQLiteEventStore"]
