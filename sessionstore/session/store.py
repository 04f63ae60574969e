"""
Session Store: Lockable, Persisted Key-Value Sessions

Every public operation is one tie/untie cycle on the backend:

    tie(id)  ->  decode blob  ->  mutate  ->  encode  ->  write  ->  untie

Error policy:
    create / update   write path; failures come back as Err values
    get               read path; any failure reads as "no session" (None)
                      and is logged at WARNING unless the row is simply absent
    delete            False when nothing was removed, never raises

The sentinel id ("null") and malformed ids never reach the backend; they
behave exactly like ids that were never created.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Optional, Union

from sessionstore.core import constants as C
from sessionstore.core.config import SessionStoreConfig
from sessionstore.core.errors import (
    CodecError,
    SessionStoreError,
    StorageError,
    StorageLockError,
    ValidationError,
)
from sessionstore.core.types import Result, Ok, Err, SessionId
from sessionstore.observability.logging import StructuredLogger
from sessionstore.observability.metrics import SessionMetrics
from sessionstore.session.codec import SessionCodec, SessionRecord
from sessionstore.storage.protocols import SessionBackend

logger = logging.getLogger(__name__)

SessionIdLike = Union[str, SessionId, None]


def _validate_attributes(attributes: Any) -> Optional[ValidationError]:
    if not isinstance(attributes, Mapping):
        return ValidationError.invalid_attributes(
            f"expected a mapping, got {type(attributes).__name__}"
        )
    for key in attributes:
        if not isinstance(key, str):
            return ValidationError.invalid_attributes(f"attribute key {key!r} is not a string")
    return None


def _is_not_found(error: StorageError) -> bool:
    return isinstance(error, StorageLockError) and error.context.get("reason") == C.REASON_NOT_FOUND


class SessionStore:
    """
    Server-side session store over a pluggable backend.

    Usage:
        store = SessionStore(create_backend(config), config=config)
        store.migrate()

        session_id = store.create({"user": "ada"}).unwrap()
        store.update(session_id, {"cart": [1, 2]})
        attrs = store.get(session_id)      # {"user": "ada", "cart": [1, 2]}
        store.delete(session_id)           # True
    """

    __slots__ = (
        "_backend",
        "_codec",
        "_config",
        "_metrics",
        "_schema_checked",
        "_schema_lock",
    )

    def __init__(
        self,
        backend: SessionBackend,
        codec: Optional[SessionCodec] = None,
        config: Optional[SessionStoreConfig] = None,
        metrics: Optional[SessionMetrics] = None,
    ) -> None:
        self._backend = backend
        self._config = config or SessionStoreConfig()
        self._codec = codec or SessionCodec(self._config.codec)
        self._metrics = metrics or SessionMetrics()
        self._schema_checked = False
        self._schema_lock = threading.Lock()

    @property
    def backend(self) -> SessionBackend:
        return self._backend

    @property
    def config(self) -> SessionStoreConfig:
        return self._config

    # -------------------------------------------------------------------------
    # SCHEMA
    # -------------------------------------------------------------------------

    def migrate(self) -> Result[None, StorageError]:
        """Idempotently provision backend storage. Run once at startup."""
        result = self._backend.ensure_schema()
        with self._schema_lock:
            self._schema_checked = True
        if result.is_ok():
            logger.info("Session storage ready", extra={"table": self._config.table_name})
        return result

    def _ensure_schema_once(self) -> None:
        if self._schema_checked:
            return
        with self._schema_lock:
            if self._schema_checked:
                return
            result = self._backend.ensure_schema()
            # Published only once the DDL has finished.
            self._schema_checked = True
        if result.is_err():
            # Table may still exist; the following write reports the real failure.
            logger.warning(
                "Lazy schema provisioning failed",
                extra={"error": result.error.to_dict()},
            )

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def create(self, attributes: Mapping[str, Any]) -> Result[str, SessionStoreError]:
        """
        Create a session holding exactly `attributes`.

        Returns:
            Ok(session_id): Id minted by the backend
            Err(ValidationError): attributes is not a str-keyed mapping
            Err(CodecError): attributes are not JSON-serializable
            Err(StorageError): the new row could not be tied or written
        """
        with self._metrics.latency.time(operation="create"):
            result = self._create(attributes)
        self._metrics.record("create", "ok" if result.is_ok() else "error")
        return result

    def _create(self, attributes: Mapping[str, Any]) -> Result[str, SessionStoreError]:
        invalid = _validate_attributes(attributes)
        if invalid is not None:
            return Err(invalid)

        self._ensure_schema_once()

        try:
            with self._backend.tie(None, self._config.lock_timeout_ms) as row:
                record = SessionRecord(session_id=row.session_id, attributes=dict(attributes))
                encoded = self._codec.encode(record)
                if encoded.is_err():
                    raise encoded.error
                row.write(encoded.unwrap())
        except SessionStoreError as e:
            logger.error("Session create failed", extra={"error": e.to_dict()})
            return Err(e)

        logger.debug("Session created", extra={"session_id": row.session_id})
        return Ok(row.session_id)

    def get(self, session_id: SessionIdLike) -> Optional[dict[str, Any]]:
        """
        Return the attributes of a session, or None for "no session".

        None covers unknown, deleted, sentinel and malformed ids as well as
        backend or decode failures; failures are logged, not raised.
        """
        with self._metrics.latency.time(operation="get"):
            attributes = self._get(session_id)
        self._metrics.record("get", "hit" if attributes is not None else "miss")
        return attributes

    def _get(self, session_id: SessionIdLike) -> Optional[dict[str, Any]]:
        sid = self._coerce(session_id)
        if sid is None:
            return None

        with StructuredLogger.context(session_id=sid.value):
            try:
                with self._backend.tie(sid.value, self._config.lock_timeout_ms) as row:
                    blob = row.blob
            except StorageError as e:
                if _is_not_found(e):
                    logger.debug("Session not found")
                else:
                    logger.warning(
                        "Session read failed; treating as no session",
                        extra={"error": e.to_dict()},
                    )
                return None

            if not blob:
                # Row reserved by a create that has not written yet.
                return None

            decoded = self._codec.decode(blob, sid.value)
            if decoded.is_err():
                logger.warning(
                    "Session blob undecodable; treating as no session",
                    extra={"error": decoded.error.to_dict()},
                )
                return None

        return decoded.unwrap().attributes

    def update(
        self,
        session_id: SessionIdLike,
        attributes: Mapping[str, Any],
    ) -> Result[None, SessionStoreError]:
        """
        Merge `attributes` into an existing session under its row lock.

        Keys not present in `attributes` are preserved. The read, merge and
        write happen inside one tie, so concurrent merges never lose keys.

        Returns:
            Ok(None): Merged and persisted
            Err(StorageLockError): Session missing, lock timed out, or I/O failed
            Err(StorageError): Stored blob is corrupted
            Err(ValidationError | CodecError): Bad attributes
        """
        with self._metrics.latency.time(operation="update"):
            result = self._update(session_id, attributes)
        self._metrics.record("update", "ok" if result.is_ok() else "error")
        return result

    def _update(
        self,
        session_id: SessionIdLike,
        attributes: Mapping[str, Any],
    ) -> Result[None, SessionStoreError]:
        invalid = _validate_attributes(attributes)
        if invalid is not None:
            return Err(invalid)

        sid = self._coerce(session_id)
        if sid is None:
            return Err(StorageError.lock_failed(str(session_id), C.REASON_NOT_FOUND))

        with StructuredLogger.context(session_id=sid.value):
            try:
                with self._backend.tie(sid.value, self._config.lock_timeout_ms) as row:
                    decoded = self._codec.decode(row.blob, sid.value)
                    if decoded.is_err():
                        raise StorageError.corruption(sid.value, decoded.error.message)
                    record = decoded.unwrap()
                    record.merge(attributes)
                    encoded = self._codec.encode(record)
                    if encoded.is_err():
                        raise encoded.error
                    row.write(encoded.unwrap())
            except CodecError as e:
                return Err(e)
            except StorageError as e:
                if not _is_not_found(e):
                    logger.error("Session update failed", extra={"error": e.to_dict()})
                return Err(e)

            logger.debug("Session updated", extra={"keys": sorted(attributes)})
        return Ok(None)

    def delete(self, session_id: SessionIdLike) -> bool:
        """
        Remove a session.

        Returns:
            True when a row was removed; the caller should drop its token.
            False when nothing was removed (unknown id or failed tie).
        """
        with self._metrics.latency.time(operation="delete"):
            deleted = self._delete(session_id)
        self._metrics.record("delete", "ok" if deleted else "miss")
        return deleted

    def _delete(self, session_id: SessionIdLike) -> bool:
        sid = self._coerce(session_id)
        if sid is None:
            return False

        with StructuredLogger.context(session_id=sid.value):
            try:
                with self._backend.tie(sid.value, self._config.lock_timeout_ms) as row:
                    row.remove()
            except StorageError as e:
                if not _is_not_found(e):
                    logger.warning("Session delete failed", extra={"error": e.to_dict()})
                return False

            logger.debug("Session deleted")
        return True

    # -------------------------------------------------------------------------
    # ADMINISTRATIVE OPERATIONS (raise StorageError on backend failure)
    # -------------------------------------------------------------------------

    def exists(self, session_id: SessionIdLike) -> bool:
        sid = self._coerce(session_id)
        if sid is None:
            return False
        return self._backend.exists(sid.value)

    def count(self) -> int:
        return self._backend.count()

    def list_ids(self, limit: int = 100) -> list[str]:
        if limit <= 0:
            return []
        return self._backend.list_ids(limit)

    def purge(self) -> int:
        """Delete every session. Returns the number of rows removed."""
        removed = self._backend.purge()
        logger.info("Sessions purged", extra={"removed": removed})
        return removed

    def close(self) -> None:
        self._backend.close()

    # -------------------------------------------------------------------------
    # HELPERS
    # -------------------------------------------------------------------------

    @staticmethod
    def _coerce(session_id: SessionIdLike) -> Optional[SessionId]:
        """Canonical id, or None for the sentinel and anything unparseable."""
        if session_id is None:
            return None
        if isinstance(session_id, SessionId):
            return None if session_id.is_null else session_id

        parsed = SessionId.parse(session_id)
        if parsed.is_err():
            logger.debug("Rejected session id", extra={"error": parsed.error})
            return None
        sid = parsed.unwrap()
        return None if sid.is_null else sid
