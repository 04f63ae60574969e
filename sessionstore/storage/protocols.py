"""
Storage Protocol Definitions: Pluggable Session Backends

Provides structural subtyping protocols (PEP 544) for the collaborators the
session store consumes:
- ConnectionProvider: supplies the backend handle; owned by the caller
- SessionBackend: lockable row storage with the tie/untie idiom

Tie/untie:
    A backend's tie() is a context manager. Entering it locks the row for
    the given id (or reserves a freshly minted id when None is passed) and
    loads its stored blob. The caller records a new blob with write() or a
    deletion with remove(). Leaving the block normally persists the change
    and commits; leaving by exception rolls back. The lock is released on
    every exit path.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from sessionstore.core.errors import StorageError
from sessionstore.core.types import Result


@runtime_checkable
class ConnectionProvider(Protocol):
    """Source of backend handles (sqlite3 connection, redis client, ...)."""

    def get_connection(self) -> Any:
        ...


@dataclass
class TiedRow:
    """
    A session row bound to the current tie.

    Attributes:
        session_id: Canonical id of the row
        blob: Stored representation as loaded (None for a fresh row)
        is_new: True when the row was reserved by this tie
    """

    session_id: str
    blob: Optional[str] = None
    is_new: bool = False

    _pending: Optional[str] = field(default=None, repr=False)
    _removed: bool = field(default=False, repr=False)

    def write(self, blob: str) -> None:
        """Stage a new stored blob, persisted when the tie exits cleanly."""
        self._pending = blob
        self._removed = False

    def remove(self) -> None:
        """Stage deletion of the row."""
        self._removed = True
        self._pending = None

    @property
    def pending(self) -> Optional[str]:
        return self._pending

    @property
    def removed(self) -> bool:
        return self._removed


@runtime_checkable
class SessionBackend(Protocol):
    """
    Lockable, persisted storage of encoded session rows.

    tie() raises StorageLockError when the row cannot be locked, does not
    exist, or the backend fails while loading it. All other methods are
    unlocked administrative reads or bulk operations.
    """

    def ensure_schema(self) -> Result[None, StorageError]:
        """Idempotently provision whatever storage structure is needed."""
        ...

    def tie(
        self,
        session_id: Optional[str],
        timeout_ms: int,
    ) -> AbstractContextManager[TiedRow]:
        ...

    def exists(self, session_id: str) -> bool:
        ...

    def count(self) -> int:
        ...

    def list_ids(self, limit: int = 100) -> list[str]:
        ...

    def purge(self) -> int:
        ...

    def close(self) -> None:
        ...
