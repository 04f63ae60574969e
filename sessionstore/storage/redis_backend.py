"""
Redis Session Backend
=====================

Session rows as plain string keys, guarded by per-session redis locks.

Key Layout:
-----------
| Key                         | Value                          |
|-----------------------------|--------------------------------|
| {prefix}{session_id}        | encoded session blob           |
| {prefix}{session_id}:lock   | redis-py Lock token            |

Locking:
--------
Each tie acquires `{prefix}{session_id}:lock` with a bounded
blocking_timeout (the store's lock wait) and an expiry (lock TTL) so a
crashed holder cannot wedge the session forever. Different ids never
contend.

Creation:
---------
A fresh id is claimed with SET NX before any data is written; a
collision simply retries with a new id. If the caller fails before the
tie exits cleanly, the reservation is deleted again.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import redis
from redis.exceptions import LockError, RedisError
from redis.lock import Lock

from sessionstore.core import constants as C
from sessionstore.core.config import RedisConfig
from sessionstore.core.errors import StorageError
from sessionstore.core.types import Result, Ok, SessionId
from sessionstore.storage.protocols import ConnectionProvider, TiedRow

logger = logging.getLogger(__name__)


class RedisConnectionProvider:
    """Builds one pooled, thread-safe redis client from configuration."""

    __slots__ = ("_config", "_client")

    def __init__(self, config: Optional[RedisConfig] = None) -> None:
        self._config = config or RedisConfig()
        self._client: Optional[redis.Redis] = None

    def get_connection(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.Redis(
                host=self._config.host,
                port=self._config.port,
                db=self._config.db,
                password=self._config.password,
                socket_timeout=self._config.socket_timeout_s,
                decode_responses=True,
            )
            logger.info(
                "Redis client created",
                extra={"host": self._config.host, "port": self._config.port, "db": self._config.db},
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


class RedisSessionBackend:
    """
    Session rows in Redis.

    Usage:
        backend = RedisSessionBackend(RedisConnectionProvider(RedisConfig(host="cache")))
        with backend.tie(session_id, timeout_ms=5000) as row:
            row.write(blob)
    """

    __slots__ = ("_provider", "_config")

    def __init__(
        self,
        provider: ConnectionProvider,
        config: Optional[RedisConfig] = None,
    ) -> None:
        self._provider = provider
        self._config = config or RedisConfig()

    def _client(self) -> redis.Redis:
        try:
            return self._provider.get_connection()
        except RedisError as e:
            raise StorageError.connection_failed(
                f"{self._config.host}:{self._config.port}", cause=e
            ) from e

    def _key(self, session_id: str) -> str:
        return f"{self._config.key_prefix}{session_id}"

    def _lock_key(self, session_id: str) -> str:
        return f"{self._key(session_id)}{C.REDIS_LOCK_SUFFIX}"

    def ensure_schema(self) -> Result[None, StorageError]:
        # Keys need no provisioning.
        return Ok(None)

    # -------------------------------------------------------------------------
    # TIE / UNTIE
    # -------------------------------------------------------------------------

    @contextmanager
    def tie(self, session_id: Optional[str], timeout_ms: int) -> Iterator[TiedRow]:
        client = self._client()

        if session_id is None:
            lock, row = self._reserve(client, timeout_ms)
        else:
            lock = self._acquire(client, session_id, timeout_ms)
            try:
                row = self._load(client, session_id)
            except BaseException:
                self._release(lock, session_id)
                raise

        try:
            try:
                yield row
            except BaseException:
                if row.is_new:
                    self._discard(client, row.session_id)
                raise

            try:
                self._flush(client, row)
            except RedisError as e:
                if row.is_new:
                    self._discard(client, row.session_id)
                raise StorageError.lock_failed(row.session_id, "write failed", cause=e) from e
        finally:
            self._release(lock, row.session_id)

    def _acquire(self, client: redis.Redis, session_id: str, timeout_ms: int) -> Lock:
        lock = client.lock(
            self._lock_key(session_id),
            timeout=self._config.lock_ttl_ms / 1000,
            blocking=True,
            blocking_timeout=timeout_ms / 1000,
            thread_local=False,
        )
        try:
            acquired = lock.acquire()
        except RedisError as e:
            raise StorageError.lock_failed(session_id, "lock acquisition failed", cause=e) from e
        if not acquired:
            raise StorageError.lock_failed(session_id, C.REASON_LOCK_TIMEOUT)
        return lock

    def _release(self, lock: Lock, session_id: str) -> None:
        try:
            lock.release()
        except LockError as e:
            # Lock TTL elapsed mid-operation; another tie may already own it.
            logger.warning(
                "Session lock expired before release",
                extra={"session_id": session_id, "error": str(e)},
            )
        except RedisError as e:
            logger.warning(
                "Session lock release failed",
                extra={"session_id": session_id, "error": str(e)},
            )

    def _load(self, client: redis.Redis, session_id: str) -> TiedRow:
        try:
            blob = client.get(self._key(session_id))
        except RedisError as e:
            raise StorageError.lock_failed(session_id, "read failed", cause=e) from e
        if blob is None:
            raise StorageError.lock_failed(session_id, C.REASON_NOT_FOUND)
        if isinstance(blob, bytes):
            blob = blob.decode("utf-8")
        return TiedRow(session_id=session_id, blob=blob)

    def _reserve(self, client: redis.Redis, timeout_ms: int) -> tuple[Lock, TiedRow]:
        """Claim a fresh id with SET NX while holding its lock."""
        for _ in range(C.MAX_CREATE_ATTEMPTS):
            candidate = SessionId.generate().value
            lock = self._acquire(client, candidate, timeout_ms)
            try:
                claimed = client.set(self._key(candidate), "", nx=True)
            except RedisError as e:
                self._release(lock, candidate)
                raise StorageError.lock_failed(candidate, "reservation failed", cause=e) from e
            if claimed:
                return lock, TiedRow(session_id=candidate, blob=None, is_new=True)
            self._release(lock, candidate)
            logger.warning("Session id collision on insert", extra={"session_id": candidate})

        raise StorageError.lock_failed(C.NEW_SESSION_LABEL, "could not allocate a unique session id")

    def _flush(self, client: redis.Redis, row: TiedRow) -> None:
        key = self._key(row.session_id)
        if row.removed:
            client.delete(key)
        elif row.pending is not None:
            ttl = self._config.session_ttl_seconds
            client.set(key, row.pending, ex=ttl if ttl > 0 else None)

    def _discard(self, client: redis.Redis, session_id: str) -> None:
        try:
            client.delete(self._key(session_id))
        except RedisError as e:
            logger.warning(
                "Could not discard reserved session",
                extra={"session_id": session_id, "error": str(e)},
            )

    # -------------------------------------------------------------------------
    # ADMINISTRATIVE OPERATIONS
    # -------------------------------------------------------------------------

    def _session_keys(self, client: redis.Redis) -> Iterator[str]:
        for key in client.scan_iter(match=f"{self._config.key_prefix}*"):
            if isinstance(key, bytes):
                key = key.decode("utf-8")
            if not key.endswith(C.REDIS_LOCK_SUFFIX):
                yield key

    def _admin_error(self, e: RedisError) -> StorageError:
        return StorageError.connection_failed(f"{self._config.host}:{self._config.port}", cause=e)

    def exists(self, session_id: str) -> bool:
        try:
            return self._client().exists(self._key(session_id)) > 0
        except RedisError as e:
            raise self._admin_error(e) from e

    def count(self) -> int:
        try:
            return sum(1 for _ in self._session_keys(self._client()))
        except RedisError as e:
            raise self._admin_error(e) from e

    def list_ids(self, limit: int = 100) -> list[str]:
        prefix_len = len(self._config.key_prefix)
        ids: list[str] = []
        try:
            for key in self._session_keys(self._client()):
                ids.append(key[prefix_len:])
                if len(ids) >= limit:
                    break
        except RedisError as e:
            raise self._admin_error(e) from e
        return sorted(ids)

    def purge(self) -> int:
        client = self._client()
        try:
            keys = list(self._session_keys(client))
            if not keys:
                return 0
            return int(client.delete(*keys))
        except RedisError as e:
            raise self._admin_error(e) from e

    def close(self) -> None:
        close = getattr(self._provider, "close", None)
        if close is not None:
            close()
