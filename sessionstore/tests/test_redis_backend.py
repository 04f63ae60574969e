"""
Unit Tests: Redis Backend (mocked client)

Tests:
    - Key layout and lock arguments
    - SET NX reservation on create, TTL on write
    - Not-found, lock timeout and release failures
    - Administrative scans skip lock keys
"""

from unittest.mock import MagicMock, call

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, LockError

from sessionstore.core import constants as C
from sessionstore.core.config import RedisConfig
from sessionstore.core.errors import StorageError, StorageLockError
from sessionstore.storage.redis_backend import RedisSessionBackend

SID = "0123456789abcdef0123456789abcdef"


@pytest.fixture
def client():
    client = MagicMock()
    client.lock.return_value.acquire.return_value = True
    client.get.return_value = "j:{}"
    client.set.return_value = True
    return client


def make_backend(client, **config):
    provider = MagicMock()
    provider.get_connection.return_value = client
    return RedisSessionBackend(provider, RedisConfig(**config))


class TestTieExisting:
    """Tying an existing key."""

    def test_lock_arguments(self, client):
        backend = make_backend(client, lock_ttl_ms=30_000)
        with backend.tie(SID, 2500):
            pass

        client.lock.assert_called_once_with(
            f"session:{SID}:lock",
            timeout=30.0,
            blocking=True,
            blocking_timeout=2.5,
            thread_local=False,
        )
        client.lock.return_value.release.assert_called_once()

    def test_loads_blob(self, client):
        client.get.return_value = "j:stored"
        with make_backend(client).tie(SID, 1000) as row:
            assert row.blob == "j:stored"
            assert not row.is_new
        client.get.assert_called_once_with(f"session:{SID}")

    def test_write(self, client):
        with make_backend(client).tie(SID, 1000) as row:
            row.write("j:new")
        client.set.assert_called_once_with(f"session:{SID}", "j:new", ex=None)

    def test_write_with_ttl(self, client):
        with make_backend(client, session_ttl_seconds=600).tie(SID, 1000) as row:
            row.write("j:new")
        client.set.assert_called_once_with(f"session:{SID}", "j:new", ex=600)

    def test_remove(self, client):
        with make_backend(client).tie(SID, 1000) as row:
            row.remove()
        client.delete.assert_called_once_with(f"session:{SID}")

    def test_custom_prefix(self, client):
        with make_backend(client, key_prefix="app:sess:").tie(SID, 1000):
            pass
        client.get.assert_called_once_with(f"app:sess:{SID}")

    def test_exception_skips_write(self, client):
        with pytest.raises(RuntimeError):
            with make_backend(client).tie(SID, 1000) as row:
                row.write("j:new")
                raise RuntimeError("boom")
        client.set.assert_not_called()
        client.delete.assert_not_called()
        client.lock.return_value.release.assert_called_once()


class TestTieFailures:
    """Errors raised as StorageLockError."""

    def test_missing_key(self, client):
        client.get.return_value = None
        with pytest.raises(StorageLockError) as exc_info:
            with make_backend(client).tie(SID, 1000):
                pass
        assert exc_info.value.context["reason"] == C.REASON_NOT_FOUND
        client.lock.return_value.release.assert_called_once()

    def test_lock_timeout(self, client):
        client.lock.return_value.acquire.return_value = False
        with pytest.raises(StorageLockError) as exc_info:
            with make_backend(client).tie(SID, 1000):
                pass
        assert exc_info.value.context["reason"] == C.REASON_LOCK_TIMEOUT
        client.get.assert_not_called()

    def test_connection_error_on_lock(self, client):
        client.lock.return_value.acquire.side_effect = RedisConnectionError("down")
        with pytest.raises(StorageLockError):
            with make_backend(client).tie(SID, 1000):
                pass

    def test_write_error(self, client):
        client.set.side_effect = RedisConnectionError("down")
        with pytest.raises(StorageLockError) as exc_info:
            with make_backend(client).tie(SID, 1000) as row:
                row.write("j:new")
        assert exc_info.value.context["reason"] == "write failed"
        client.lock.return_value.release.assert_called_once()

    def test_expired_lock_logged_not_raised(self, client, caplog):
        client.lock.return_value.release.side_effect = LockError("expired")
        with make_backend(client).tie(SID, 1000) as row:
            row.write("j:new")
        client.set.assert_called_once()
        assert any("expired" in r.getMessage() for r in caplog.records)


class TestTieNew:
    """Reserving a fresh id."""

    def test_reserves_with_set_nx(self, client):
        with make_backend(client).tie(None, 1000) as row:
            assert row.is_new
            assert row.blob is None
            row.write("j:created")

        key = f"session:{row.session_id}"
        assert client.set.call_args_list == [
            call(key, "", nx=True),
            call(key, "j:created", ex=None),
        ]
        client.get.assert_not_called()

    def test_collision_retries(self, client):
        client.set.side_effect = [None, True, True]
        with make_backend(client).tie(None, 1000) as row:
            row.write("j:created")

        first_key = client.set.call_args_list[0].args[0]
        second_key = client.set.call_args_list[1].args[0]
        assert first_key != second_key
        assert client.lock.return_value.release.call_count == 2

    def test_exhausted_collisions(self, client):
        client.set.return_value = None
        with pytest.raises(StorageLockError):
            with make_backend(client).tie(None, 1000):
                pass
        assert client.set.call_count == C.MAX_CREATE_ATTEMPTS

    def test_exception_discards_reservation(self, client):
        with pytest.raises(RuntimeError):
            with make_backend(client).tie(None, 1000) as row:
                raise RuntimeError("encode failed")
        client.delete.assert_called_once_with(f"session:{row.session_id}")


class TestAdmin:
    """Key scans."""

    def test_list_ids_skips_locks(self, client):
        client.scan_iter.return_value = iter([
            f"session:{'b' * 32}",
            f"session:{'a' * 32}",
            f"session:{'a' * 32}:lock",
        ])
        assert make_backend(client).list_ids() == ["a" * 32, "b" * 32]
        client.scan_iter.assert_called_once_with(match="session:*")

    def test_count(self, client):
        client.scan_iter.return_value = iter(["session:x", "session:y:lock"])
        assert make_backend(client).count() == 1

    def test_purge(self, client):
        client.scan_iter.return_value = iter(["session:x", "session:y", "session:y:lock"])
        client.delete.return_value = 2
        assert make_backend(client).purge() == 2
        client.delete.assert_called_once_with("session:x", "session:y")

    def test_purge_empty(self, client):
        client.scan_iter.return_value = iter([])
        assert make_backend(client).purge() == 0
        client.delete.assert_not_called()

    def test_exists(self, client):
        client.exists.return_value = 1
        assert make_backend(client).exists(SID)
        client.exists.assert_called_once_with(f"session:{SID}")

    def test_admin_errors_wrapped(self, client):
        client.exists.side_effect = RedisConnectionError("down")
        with pytest.raises(StorageError) as exc_info:
            make_backend(client).exists(SID)
        assert exc_info.value.code.name == "STORAGE_CONNECTION_FAILED"

    def test_close_closes_provider(self, client):
        provider = MagicMock()
        provider.get_connection.return_value = client
        RedisSessionBackend(provider).close()
        provider.close.assert_called_once()
