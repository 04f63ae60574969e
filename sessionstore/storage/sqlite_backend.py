"""
SQLite Session Backend: WAL Mode with Immediate Transactions

Provides durable, crash-safe session rows with:
- Write-Ahead Logging (WAL) so readers never see a half-written blob
- BEGIN IMMEDIATE per tie, giving one writer at a time
- Bounded lock wait via busy_timeout
- Rollback on every failed exit path

Locking granularity:
    SQLite takes its write lock on the whole database file, so ties on
    different session ids also serialize. Same-id operations are
    linearizable, which is the guarantee the store relies on.

Thread Safety:
    SQLiteConnectionProvider hands each thread its own connection. A
    single connection must never be shared by concurrent ties.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sessionstore.core import constants as C
from sessionstore.core.config import SQLiteConfig
from sessionstore.core.errors import StorageError
from sessionstore.core.types import Result, Err, SessionId
from sessionstore.storage.protocols import ConnectionProvider, TiedRow
from sessionstore.storage.schema import SessionSchema

logger = logging.getLogger(__name__)


class SQLiteConnectionProvider:
    """
    Thread-local sqlite3 connections for one database file.

    ":memory:" databases are private to a connection, so the provider
    returns one shared connection for them; use a file path whenever
    more than one thread touches the store.
    """

    __slots__ = ("_config", "_local", "_connections", "_lock", "_shared")

    # SQLite PRAGMA settings applied to every new connection
    PRAGMAS = [
        "PRAGMA synchronous = NORMAL",    # Safe with WAL
        "PRAGMA temp_store = MEMORY",
        "PRAGMA foreign_keys = ON",
    ]

    def __init__(self, config: Optional[SQLiteConfig] = None) -> None:
        self._config = config or SQLiteConfig()
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._lock = threading.Lock()
        self._shared: Optional[sqlite3.Connection] = None

    def get_connection(self) -> sqlite3.Connection:
        if self._config.is_memory:
            with self._lock:
                if self._shared is None:
                    self._shared = self._connect()
                    self._connections.append(self._shared)
                return self._shared

        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._connect()
            self._local.conn = conn
            with self._lock:
                self._connections.append(conn)
        return conn

    def _connect(self) -> sqlite3.Connection:
        path = self._config.db_path
        if not self._config.is_memory:
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit for explicit transaction control
        )
        conn.row_factory = sqlite3.Row

        if self._config.wal_enabled and not self._config.is_memory:
            # Switching modes needs the write lock; skip it once the file is WAL.
            mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
            if str(mode).lower() != "wal":
                conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA cache_size = -{int(self._config.cache_size_kb)}")
        for pragma in self.PRAGMAS:
            conn.execute(pragma)

        logger.debug("SQLite connection opened", extra={"db_path": str(path)})
        return conn

    def close(self) -> None:
        with self._lock:
            connections, self._connections = self._connections, []
            self._shared = None
        for conn in connections:
            conn.close()
        self._local = threading.local()


class SQLiteSessionBackend:
    """
    Session rows in a SQLite table.

    Every tie, reads included, holds the database-wide write lock, so
    sessions with different ids wait on each other. Use the Redis backend
    when unrelated sessions must progress independently.

    Usage:
        provider = SQLiteConnectionProvider(SQLiteConfig(db_path=Path("s.db")))
        backend = SQLiteSessionBackend(provider)
        backend.ensure_schema()

        with backend.tie(None, timeout_ms=5000) as row:
            row.write(blob)
    """

    __slots__ = ("_provider", "_schema")

    def __init__(
        self,
        provider: ConnectionProvider,
        table: str = C.DEFAULT_TABLE_NAME,
    ) -> None:
        self._provider = provider
        self._schema = SessionSchema(table)

    @property
    def table(self) -> str:
        return self._schema.table

    def _connection(self) -> sqlite3.Connection:
        try:
            return self._provider.get_connection()
        except (sqlite3.Error, OSError) as e:
            raise StorageError.connection_failed("sqlite", cause=e) from e

    def ensure_schema(self) -> Result[None, StorageError]:
        try:
            conn = self._connection()
        except StorageError as e:
            return Err(StorageError.provision_failed(self.table, cause=e))
        return self._schema.create_all(conn)

    # -------------------------------------------------------------------------
    # TIE / UNTIE
    # -------------------------------------------------------------------------

    @contextmanager
    def tie(self, session_id: Optional[str], timeout_ms: int) -> Iterator[TiedRow]:
        label = session_id or C.NEW_SESSION_LABEL
        conn = self._connection()

        if conn.in_transaction:
            raise StorageError.lock_failed(label, "connection already inside a transaction")

        try:
            conn.execute(f"PRAGMA busy_timeout = {int(timeout_ms)}")
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            reason = C.REASON_LOCK_TIMEOUT if "locked" in str(e) else "could not begin transaction"
            raise StorageError.lock_failed(label, reason, cause=e) from e

        try:
            row = self._load(conn, session_id)
        except BaseException:
            self._rollback(conn, label)
            raise

        try:
            yield row
        except BaseException:
            self._rollback(conn, row.session_id)
            raise

        try:
            self._flush(conn, row)
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn, row.session_id)
            raise StorageError.lock_failed(row.session_id, "write failed", cause=e) from e

    def _load(self, conn: sqlite3.Connection, session_id: Optional[str]) -> TiedRow:
        try:
            if session_id is None:
                return self._reserve(conn)

            cursor = conn.execute(
                f"SELECT a_session FROM {self.table} WHERE id = ?",
                (session_id,),
            )
            found = cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError.lock_failed(session_id or C.NEW_SESSION_LABEL, "read failed", cause=e) from e

        if found is None:
            raise StorageError.lock_failed(session_id, C.REASON_NOT_FOUND)
        return TiedRow(session_id=session_id, blob=found["a_session"])

    def _reserve(self, conn: sqlite3.Connection) -> TiedRow:
        """Insert a placeholder row under a freshly minted id."""
        for _ in range(C.MAX_CREATE_ATTEMPTS):
            candidate = SessionId.generate().value
            try:
                conn.execute(
                    f"INSERT INTO {self.table} (id, a_session) VALUES (?, NULL)",
                    (candidate,),
                )
            except sqlite3.IntegrityError:
                logger.warning("Session id collision on insert", extra={"session_id": candidate})
                continue
            return TiedRow(session_id=candidate, blob=None, is_new=True)

        raise StorageError.lock_failed(C.NEW_SESSION_LABEL, "could not allocate a unique session id")

    def _flush(self, conn: sqlite3.Connection, row: TiedRow) -> None:
        if row.removed:
            conn.execute(f"DELETE FROM {self.table} WHERE id = ?", (row.session_id,))
        elif row.pending is not None:
            conn.execute(
                f"UPDATE {self.table} SET a_session = ? WHERE id = ?",
                (row.pending, row.session_id),
            )

    @staticmethod
    def _rollback(conn: sqlite3.Connection, label: str) -> None:
        try:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.warning(
                "Rollback failed",
                extra={"session_id": label, "error": str(e)},
            )

    # -------------------------------------------------------------------------
    # ADMINISTRATIVE OPERATIONS
    # -------------------------------------------------------------------------

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._connection().execute(sql, params)
        except sqlite3.Error as e:
            raise StorageError.connection_failed(f"sqlite table {self.table}", cause=e) from e

    def exists(self, session_id: str) -> bool:
        cursor = self._execute(f"SELECT 1 FROM {self.table} WHERE id = ?", (session_id,))
        return cursor.fetchone() is not None

    def count(self) -> int:
        cursor = self._execute(f"SELECT COUNT(*) FROM {self.table}")
        return int(cursor.fetchone()[0])

    def list_ids(self, limit: int = 100) -> list[str]:
        cursor = self._execute(
            f"SELECT id FROM {self.table} ORDER BY id LIMIT ?",
            (limit,),
        )
        return [r["id"] for r in cursor.fetchall()]

    def purge(self) -> int:
        cursor = self._execute(f"DELETE FROM {self.table}")
        return cursor.rowcount

    def close(self) -> None:
        close = getattr(self._provider, "close", None)
        if close is not None:
            close()


def memory_config() -> SQLiteConfig:
    """SQLite config for a throwaway in-memory database."""
    return SQLiteConfig(db_path=Path(":memory:"), wal_enabled=False)
