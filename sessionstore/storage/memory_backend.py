"""
In-Memory Session Backend

Process-local rows with one threading.Lock per session id. Used for
development and tests; nothing survives the process.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from sessionstore.core import constants as C
from sessionstore.core.errors import StorageError
from sessionstore.core.types import Result, Ok, SessionId
from sessionstore.storage.protocols import TiedRow

logger = logging.getLogger(__name__)


class InMemorySessionBackend:
    """
    Dictionary-backed session rows.

    Row locks are created lazily and only for ids that exist, so probing
    unknown ids does not grow the lock table.
    """

    __slots__ = ("_rows", "_locks", "_guard")

    def __init__(self) -> None:
        self._rows: dict[str, Optional[str]] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def ensure_schema(self) -> Result[None, StorageError]:
        return Ok(None)

    @contextmanager
    def tie(self, session_id: Optional[str], timeout_ms: int) -> Iterator[TiedRow]:
        if session_id is None:
            lock, row = self._reserve()
        else:
            lock = self._acquire(session_id, timeout_ms)
            with self._guard:
                present = session_id in self._rows
                blob = self._rows.get(session_id)
            if not present:
                lock.release()
                raise StorageError.lock_failed(session_id, C.REASON_NOT_FOUND)
            row = TiedRow(session_id=session_id, blob=blob)

        try:
            try:
                yield row
            except BaseException:
                if row.is_new:
                    with self._guard:
                        self._rows.pop(row.session_id, None)
                        self._locks.pop(row.session_id, None)
                raise

            with self._guard:
                # A purge while tied leaves nothing to flush.
                if row.session_id in self._rows:
                    if row.removed:
                        # Waiters still hold the old lock and will see the row gone.
                        self._rows.pop(row.session_id)
                        self._locks.pop(row.session_id, None)
                    elif row.pending is not None:
                        self._rows[row.session_id] = row.pending
        finally:
            lock.release()

    def _acquire(self, session_id: str, timeout_ms: int) -> threading.Lock:
        with self._guard:
            if session_id not in self._rows:
                raise StorageError.lock_failed(session_id, C.REASON_NOT_FOUND)
            lock = self._locks.setdefault(session_id, threading.Lock())

        if not lock.acquire(timeout=timeout_ms / 1000):
            raise StorageError.lock_failed(session_id, C.REASON_LOCK_TIMEOUT)
        return lock

    def _reserve(self) -> tuple[threading.Lock, TiedRow]:
        with self._guard:
            for _ in range(C.MAX_CREATE_ATTEMPTS):
                candidate = SessionId.generate().value
                if candidate in self._rows:
                    continue
                lock = self._locks.setdefault(candidate, threading.Lock())
                # Nobody else knows this id yet, so the lock is free.
                lock.acquire()
                self._rows[candidate] = None
                return lock, TiedRow(session_id=candidate, blob=None, is_new=True)

        raise StorageError.lock_failed(C.NEW_SESSION_LABEL, "could not allocate a unique session id")

    def exists(self, session_id: str) -> bool:
        with self._guard:
            return session_id in self._rows

    def count(self) -> int:
        with self._guard:
            return len(self._rows)

    def list_ids(self, limit: int = 100) -> list[str]:
        with self._guard:
            return sorted(self._rows)[:limit]

    def purge(self) -> int:
        with self._guard:
            removed = len(self._rows)
            self._rows.clear()
            # Holders keep their lock objects; waiters find the row gone.
            self._locks.clear()
        return removed

    def close(self) -> None:
        logger.debug("In-memory session backend closed")
