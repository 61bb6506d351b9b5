"""
Transaction Store
~~~~~~~~~~~~~~~~~

SQLite-backed durable storage for the transaction marker, the rollback
snapshot and the event journal.

Every decision that may restore or clear state runs inside
:meth:`TransactionStore.session`, which opens the database with
``BEGIN IMMEDIATE``. SQLite grants that RESERVED lock to one connection
at a time across all processes, so the API process, the detached
watchdog and the CLI serialize on it.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from netguard.core.state import TransactionEvent, TransactionState
from netguard.exceptions import StoreError

__all__ = ["TransactionStore", "StoreSession", "DB_FILENAME"]

logger = logging.getLogger(__name__)

DB_FILENAME = "netguard.db"

_SCHEMA_SQL = (
    """\
CREATE TABLE IF NOT EXISTS marker (
    id             INTEGER PRIMARY KEY CHECK (id = 1),
    transaction_id TEXT NOT NULL,
    snapshot_id    TEXT NOT NULL,
    deadline       REAL NOT NULL,
    started_at     REAL NOT NULL,
    watchdog_armed INTEGER NOT NULL DEFAULT 1,
    restore_error  TEXT
)
""",
    """\
CREATE TABLE IF NOT EXISTS snapshots (
    snapshot_id    TEXT PRIMARY KEY,
    transaction_id TEXT NOT NULL,
    data           BLOB NOT NULL,
    captured_at    TEXT NOT NULL
)
""",
    """\
CREATE TABLE IF NOT EXISTS events (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    kind           TEXT NOT NULL,
    transaction_id TEXT,
    actor          TEXT NOT NULL,
    detail         TEXT NOT NULL,
    timestamp      TEXT NOT NULL
)
""",
)


class StoreSession:
    """
    Operations available while holding the store's write lock.

    Obtained from :meth:`TransactionStore.session`; never constructed
    directly.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ── Marker ────────────────────────────────────────────────────

    def read_marker(self) -> TransactionState:
        return _read_marker(self._conn)

    def write_marker(self, state: TransactionState) -> None:
        """Persist a pending marker, replacing any existing one."""
        if not state.pending or state.deadline is None:
            raise ValueError("Only a pending state with a deadline can be written")
        self._conn.execute(
            """INSERT OR REPLACE INTO marker
               (id, transaction_id, snapshot_id, deadline, started_at,
                watchdog_armed, restore_error)
               VALUES (1, ?, ?, ?, ?, ?, ?)""",
            (
                state.transaction_id,
                state.snapshot_id,
                state.deadline,
                state.started_at,
                1 if state.watchdog_armed else 0,
                state.restore_error,
            ),
        )

    def record_restore_error(self, message: str) -> None:
        self._conn.execute(
            "UPDATE marker SET restore_error = ? WHERE id = 1", (message,)
        )

    def clear_marker(self) -> None:
        self._conn.execute("DELETE FROM marker WHERE id = 1")

    # ── Snapshots ─────────────────────────────────────────────────

    def put_snapshot(self, snapshot_id: str, transaction_id: str, data: bytes) -> None:
        self._conn.execute(
            """INSERT INTO snapshots (snapshot_id, transaction_id, data, captured_at)
               VALUES (?, ?, ?, ?)""",
            (
                snapshot_id,
                transaction_id,
                sqlite3.Binary(data),
                datetime.now(UTC).isoformat(),
            ),
        )

    def get_snapshot(self, snapshot_id: str) -> bytes | None:
        row = self._conn.execute(
            "SELECT data FROM snapshots WHERE snapshot_id = ?", (snapshot_id,)
        ).fetchone()
        return bytes(row[0]) if row is not None else None

    def delete_snapshot(self, snapshot_id: str) -> None:
        self._conn.execute(
            "DELETE FROM snapshots WHERE snapshot_id = ?", (snapshot_id,)
        )

    def snapshot_ids(self) -> list[str]:
        return _snapshot_ids(self._conn)

    # ── Journal ───────────────────────────────────────────────────

    def append_event(self, event: TransactionEvent) -> None:
        _insert_event(self._conn, event)


class TransactionStore:
    """
    Durable home of the marker, the snapshot and the journal.

    The database lives at ``<state_dir>/netguard.db``, a location that
    does not depend on the API process, so a restarted API, the detached
    watchdog and the CLI all find the same in-flight transaction.
    """

    def __init__(self, state_dir: str, lock_timeout: float = 30.0) -> None:
        self._state_dir = state_dir
        self._lock_timeout = lock_timeout
        os.makedirs(state_dir, exist_ok=True)
        self._db_path = os.path.join(state_dir, DB_FILENAME)
        self._init_db()

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def state_dir(self) -> str:
        return self._state_dir

    def _connect(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(
                self._db_path,
                timeout=self._lock_timeout,
                isolation_level=None,
            )
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open transaction store {self._db_path}: {exc}") from exc

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            for statement in _SCHEMA_SQL:
                conn.execute(statement)
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot initialize transaction store: {exc}") from exc
        finally:
            conn.close()

    @contextmanager
    def session(self) -> Iterator[StoreSession]:
        """
        Hold the store's write lock for the duration of the block.

        Commits when the block exits normally, rolls back when it raises.

        Raises:
            StoreError: If the lock cannot be taken within lock_timeout
                or SQLite reports an error.
        """
        conn = self._connect()
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as exc:
                raise StoreError(f"Transaction store is locked: {exc}") from exc
            try:
                yield StoreSession(conn)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            try:
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                raise StoreError(f"Cannot commit transaction store: {exc}") from exc
        except sqlite3.Error as exc:
            raise StoreError(f"Transaction store error: {exc}") from exc
        finally:
            conn.close()

    def read_marker(self) -> TransactionState:
        """Read the marker without taking the write lock."""
        conn = self._connect()
        try:
            return _read_marker(conn)
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot read marker: {exc}") from exc
        finally:
            conn.close()

    def snapshot_ids(self) -> list[str]:
        conn = self._connect()
        try:
            return _snapshot_ids(conn)
        finally:
            conn.close()

    def append_event(self, event: TransactionEvent) -> None:
        """Record a journal event in its own short transaction."""
        conn = self._connect()
        try:
            _insert_event(conn, event)
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot write journal event: {exc}") from exc
        finally:
            conn.close()

    def list_events(self, limit: int = 100) -> list[TransactionEvent]:
        """Return the most recent journal events, newest first."""
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT kind, transaction_id, actor, detail, timestamp "
                "FROM events ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        finally:
            conn.close()
        return [
            TransactionEvent(
                kind=row[0],
                transaction_id=row[1],
                actor=row[2],
                detail=row[3],
                timestamp=datetime.fromisoformat(row[4]),
            )
            for row in rows
        ]

    def prune_events(self, keep: int) -> int:
        """Delete all but the newest ``keep`` events. Returns rows deleted."""
        conn = self._connect()
        try:
            cursor = conn.execute(
                "DELETE FROM events WHERE id NOT IN "
                "(SELECT id FROM events ORDER BY id DESC LIMIT ?)",
                (keep,),
            )
            return cursor.rowcount
        finally:
            conn.close()


def _read_marker(conn: sqlite3.Connection) -> TransactionState:
    row = conn.execute(
        "SELECT transaction_id, snapshot_id, deadline, started_at, "
        "watchdog_armed, restore_error FROM marker WHERE id = 1"
    ).fetchone()
    if row is None:
        return TransactionState.idle()
    return TransactionState(
        pending=True,
        transaction_id=row[0],
        snapshot_id=row[1],
        deadline=float(row[2]),
        started_at=float(row[3]),
        watchdog_armed=bool(row[4]),
        restore_error=row[5],
    )


def _snapshot_ids(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute("SELECT snapshot_id FROM snapshots").fetchall()
    return [row[0] for row in rows]


def _insert_event(conn: sqlite3.Connection, event: TransactionEvent) -> None:
    conn.execute(
        """INSERT INTO events (kind, transaction_id, actor, detail, timestamp)
           VALUES (?, ?, ?, ?, ?)""",
        (
            event.kind,
            event.transaction_id,
            event.actor,
            event.detail,
            event.timestamp.isoformat(),
        ),
    )
